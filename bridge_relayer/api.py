"""
Read-only HTTP API polled by the bridge frontend.

Provides:
- Health check (GET /health)
- Operation status by source tx hash (GET /status/{tx_hash})
- Retry queue contents for operators (GET /retry-queue)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .engine import RelayEngine
from .models import now_ms
from .schemas import HealthResponse, RetryQueueItem, RetryQueueResponse, StatusResponse

logger = structlog.get_logger()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def create_app(engine: RelayEngine, manage_engine: bool = True) -> FastAPI:
    """
    Build the API around a relay engine.

    With `manage_engine`, the engine is started and stopped with the
    application lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if manage_engine:
            await engine.start()
        logger.info("API started", version=__version__)

        yield

        if manage_engine:
            await engine.stop()
        logger.info("API stopped")

    app = FastAPI(
        title="EVM Bridge Relayer",
        description="Status API for the lock/mint, burn/unlock relayer",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=engine.settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Status is polled every couple of seconds; nothing may be cached.
    @app.middleware("http")
    async def disable_caching(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(NO_CACHE_HEADERS)
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(ok=True, timestamp=now_ms())

    @app.get(
        "/status/{tx_hash}",
        response_model=StatusResponse,
        response_model_exclude_none=True,
    )
    async def get_status(tx_hash: str) -> StatusResponse:
        """
        Status of the bridge operation started by `tx_hash`.

        Unknown hashes report `pending`.
        """
        status = engine.status.get(tx_hash)
        return StatusResponse.model_validate(status.to_dict())

    @app.get("/retry-queue", response_model=RetryQueueResponse)
    async def get_retry_queue() -> RetryQueueResponse:
        items = [RetryQueueItem.model_validate(op.to_dict()) for op in engine.retry_queue.snapshot()]
        return RetryQueueResponse(count=len(items), items=items)

    return app
