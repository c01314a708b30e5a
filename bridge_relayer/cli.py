"""
CLI entry point for the bridge relayer.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import httpx
import structlog
import typer
import uvicorn

from .config import Settings
from .errors import ConfigurationError

app = typer.Typer(
    name="bridge-relayer",
    help="Lock/mint, burn/unlock relayer between two EVM chains",
    add_completion=False,
)


def configure_logging(json_logs: bool = False, level: str = "info") -> None:
    """Configure structlog for console or JSON output."""
    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="HTTP port (overrides PORT / RELAYER_PORT)",
    ),
    json_logs: bool = typer.Option(False, "--json", help="Emit JSON logs"),
    log_level: str = typer.Option("info", "--log-level", help="debug, info, warning, error"),
) -> None:
    """
    Start the relayer and serve the status API.
    """
    from .api import create_app
    from .engine import RelayEngine

    configure_logging(json_logs, log_level)

    settings = Settings.from_env(config_path)
    if port is not None:
        settings.port = port

    try:
        engine = RelayEngine(settings)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Relayer address: {engine.source.address}")
    typer.echo(f"Status API on http://{settings.host}:{settings.port}")

    uvicorn.run(
        create_app(engine),
        host=settings.host,
        port=settings.port,
        log_level=log_level,
    )


def _get_json(url: str) -> None:
    try:
        response = httpx.get(url, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        typer.echo(f"Request failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(response.json(), indent=2))


@app.command()
def status(
    tx_hash: str = typer.Argument(..., help="Source transaction hash"),
    url: str = typer.Option("http://localhost:3001", "--url", help="Relayer API URL"),
) -> None:
    """
    Show the bridge status of a source transaction.
    """
    _get_json(f"{url.rstrip('/')}/status/{tx_hash}")


@app.command("retry-queue")
def retry_queue(
    url: str = typer.Option("http://localhost:3001", "--url", help="Relayer API URL"),
) -> None:
    """
    Show operations waiting for retry.
    """
    _get_json(f"{url.rstrip('/')}/retry-queue")


@app.command()
def version() -> None:
    """Show the relayer version."""
    from bridge_relayer import __version__
    typer.echo(f"bridge-relayer v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
