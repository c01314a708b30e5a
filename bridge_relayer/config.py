"""
Configuration for the bridge relayer.

All settings can be overridden via environment variables or a `.env` file.
Variable names follow the deployment's existing `.env` (SEPOLIA_RPC_URL,
BASE_SEPOLIA_RPC_URL, RELAYER_PRIVATE_KEY, ...).
"""

from pathlib import Path
from typing import Optional

from eth_account import Account
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Signing credential used for every destination-chain action
    relayer_private_key: str = Field(default="", description="Relayer private key (0x...)")

    # Source chain (locks happen here, unlocks are sent here)
    source_rpc_url: str = Field(
        default="",
        validation_alias=AliasChoices("SOURCE_RPC_URL", "SEPOLIA_RPC_URL"),
    )
    source_chain_id: int = Field(default=11155111, description="Sepolia")
    bridge_source_address: str = Field(
        default="0x05b315e576cbd50a5d3f4313a00ba31be20e495d",
        description="BridgeSource contract on the source chain",
    )

    # Destination chain (wrapped tokens are minted and burned here)
    destination_rpc_url: str = Field(
        default="",
        validation_alias=AliasChoices("DESTINATION_RPC_URL", "BASE_SEPOLIA_RPC_URL"),
    )
    destination_chain_id: int = Field(default=84532, description="Base Sepolia")
    bridge_destination_address: str = Field(
        default="0xe0af9d805d6cd555bd1e24627e6358ff45be9986",
        description="BridgeDestination contract on the destination chain",
    )

    # Token identity passed to mintTokens (zero address = native ETH)
    source_token: str = ZERO_ADDRESS

    # HTTP server
    host: str = "0.0.0.0"
    port: int = Field(default=3001, validation_alias=AliasChoices("PORT", "RELAYER_PORT"))
    allowed_origins: list[str] = Field(default=["*"], description="CORS allowed origins")

    # Dispatch path: wait-retries on the same tx hash
    confirmation_timeout_seconds: float = 60.0
    confirmation_attempts: int = 3

    # Retry queue
    retry_confirmation_timeout_seconds: float = 90.0
    max_retry_attempts: int = 5
    retry_interval_seconds: float = 30.0

    # Status store
    status_sweep_interval_seconds: float = 300.0
    status_retention_seconds: float = 3600.0

    # Event subscriptions
    poll_interval_seconds: float = 4.0

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings from the environment, optionally from a specific .env file."""
        return cls(_env_file=env_path) if env_path else cls()

    def validate_required(self) -> None:
        """
        Fail fast on missing required settings.

        Raises:
            ConfigurationError: If the signing key is missing or malformed,
                either RPC URL is missing, or a tunable is out of range.
        """
        if not self.relayer_private_key:
            raise ConfigurationError("RELAYER_PRIVATE_KEY not set")

        try:
            Account.from_key(self.relayer_private_key)
        except Exception as e:
            raise ConfigurationError("RELAYER_PRIVATE_KEY is not a valid private key") from e

        if not self.source_rpc_url or not self.destination_rpc_url:
            raise ConfigurationError("RPC URLs not set (SEPOLIA_RPC_URL, BASE_SEPOLIA_RPC_URL)")

        if not self.bridge_source_address or not self.bridge_destination_address:
            raise ConfigurationError("Bridge contract addresses not set")

        if self.confirmation_attempts < 1:
            raise ConfigurationError("confirmation_attempts must be at least 1")

        if self.max_retry_attempts < 1:
            raise ConfigurationError("max_retry_attempts must be at least 1")

