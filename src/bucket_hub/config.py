"""Configuration with Pydantic Settings.

Settings are read from ``BUCKET_HUB_*`` environment variables and an
optional ``.env`` file. Nested poll policies accept JSON, e.g.::

    BUCKET_HUB_FILE_READY_POLL='{"interval": 5, "max_attempts": 120}'

Examples:
    >>> from bucket_hub.config import get_settings
    >>> get_settings().file_ready_poll.max_attempts
    60
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.ledger import DEFAULT_GAS_LIMIT, DEFAULT_PRIORITY_FEE_WEI
from .core.polling import PollPolicy

TESTNET_CHAIN_ID = 55931
TESTNET_RPC_URL = "https://services.datahaven-testnet.network/testnet"
TESTNET_MSP_URL = "https://deo-dh-backend.testnet.datahaven-infra.network/"


class Settings(BaseSettings):
    """Runtime settings for the client and CLI."""

    model_config = SettingsConfigDict(
        env_prefix="BUCKET_HUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Network
    backend_url: str = Field(default=TESTNET_MSP_URL, description="Storage provider backend URL")
    chain_id: int = Field(default=TESTNET_CHAIN_ID)
    rpc_url: str = Field(default=TESTNET_RPC_URL)
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    # Login scope; must match the real frontend origin in production
    domain: str = Field(default="localhost")
    uri: str = Field(default="http://localhost")

    # Fees
    priority_fee_wei: int = Field(default=DEFAULT_PRIORITY_FEE_WEI, ge=0)
    gas_limit: int = Field(default=DEFAULT_GAS_LIMIT, gt=0)

    # Session persistence
    persist_session: bool = Field(default=True)
    session_ttl_seconds: int = Field(default=3600, gt=0)
    keyring_service: str = Field(default="bucket-hub")

    # "module:factory" returning a wallet (ChainClient + Signer)
    chain_plugin: Optional[str] = Field(default=None)

    # Polling budgets
    msp_confirmation_poll: PollPolicy = Field(
        default_factory=lambda: PollPolicy(interval=2.0, max_attempts=10)
    )
    bucket_index_poll: PollPolicy = Field(
        default_factory=lambda: PollPolicy(interval=2.0, max_attempts=10)
    )
    file_ready_poll: PollPolicy = Field(
        default_factory=lambda: PollPolicy(interval=5.0, max_attempts=60)
    )
    file_deletion_poll: PollPolicy = Field(
        default_factory=lambda: PollPolicy(interval=3.0, max_attempts=30, initial_delay=3.0)
    )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
