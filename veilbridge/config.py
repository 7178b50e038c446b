"""Application configuration."""

import os
from dataclasses import dataclass
from typing import Optional

from veilbridge.errors import ConfigError

# Oasis Sapphire testnet, where the vault contract lives
DEFAULT_DESTINATION_DOMAIN = 23295


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Read API settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Record store
    database_url: str = "sqlite+aiosqlite:///veilbridge.db"

    # Source chain (ingress contract)
    source_rpc_url: str = "https://rpc.sepolia.mantle.xyz"
    ingress_address: Optional[str] = None
    ingress_start_block: int = 0

    # Destination chain (vault contract)
    destination_rpc_url: str = "https://testnet.sapphire.oasis.io"
    vault_address: Optional[str] = None
    vault_start_block: int = 0
    destination_domain: int = DEFAULT_DESTINATION_DOMAIN

    # Indexer polling
    block_range: int = 100
    indexer_poll_interval: float = 5.0
    # Parked commitments and completions are dropped after this many failed attempts
    pending_max_attempts: int = 12

    # Settlement processor
    owner_private_key: Optional[str] = None
    poll_interval_ms: int = 10000
    max_retries: int = 3
    retry_delay_ms: int = 5000
    # When set, the processor reads candidates from the read API instead of the store
    indexer_api_url: Optional[str] = None

    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_env("PORT", 8000),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///veilbridge.db"),
            source_rpc_url=os.getenv(
                "SOURCE_RPC_URL",
                "https://rpc.sepolia.mantle.xyz"
            ),
            ingress_address=os.getenv("INGRESS_ADDRESS") or None,
            ingress_start_block=_int_env("INGRESS_START_BLOCK", 0),
            destination_rpc_url=os.getenv(
                "DESTINATION_RPC_URL",
                "https://testnet.sapphire.oasis.io"
            ),
            vault_address=os.getenv("VAULT_ADDRESS") or None,
            vault_start_block=_int_env("VAULT_START_BLOCK", 0),
            destination_domain=_int_env("DESTINATION_DOMAIN", DEFAULT_DESTINATION_DOMAIN),
            block_range=_int_env("BLOCK_RANGE", 100),
            indexer_poll_interval=float(_int_env("INDEXER_POLL_INTERVAL", 5)),
            pending_max_attempts=_int_env("PENDING_MAX_ATTEMPTS", 12),
            owner_private_key=os.getenv("OWNER_PRIVATE_KEY") or None,
            poll_interval_ms=_int_env("POLL_INTERVAL", 10000),
            max_retries=_int_env("MAX_RETRIES", 3),
            retry_delay_ms=_int_env("RETRY_DELAY", 5000),
            indexer_api_url=os.getenv("INDEXER_API_URL") or None,
            log_level=os.getenv("LOG_LEVEL", "info"),
        )

    @property
    def poll_interval(self) -> float:
        """Settlement polling interval in seconds."""
        return self.poll_interval_ms / 1000

    @property
    def retry_delay(self) -> float:
        """Base settlement retry delay in seconds."""
        return self.retry_delay_ms / 1000

    def validate_indexer(self) -> None:
        """Raise ConfigError unless both contracts can be indexed."""
        missing = [
            name for name, value in (
                ("INGRESS_ADDRESS", self.ingress_address),
                ("VAULT_ADDRESS", self.vault_address),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"{', '.join(missing)} environment variable is required")
        if self.block_range <= 0:
            raise ConfigError("BLOCK_RANGE must be positive")
        if self.pending_max_attempts < 1:
            raise ConfigError("PENDING_MAX_ATTEMPTS must be at least 1")

    def validate_processor(self) -> None:
        """Raise ConfigError unless the settlement processor can sign and send."""
        if not self.vault_address:
            raise ConfigError("VAULT_ADDRESS environment variable is required")
        if not self.owner_private_key:
            raise ConfigError("OWNER_PRIVATE_KEY environment variable is required")
        if self.poll_interval_ms <= 0:
            raise ConfigError("POLL_INTERVAL must be positive")
        if self.max_retries < 1:
            raise ConfigError("MAX_RETRIES must be at least 1")
        if self.retry_delay_ms < 0:
            raise ConfigError("RETRY_DELAY must not be negative")
