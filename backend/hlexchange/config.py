from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, Optional

from hyperliquid.utils import constants
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    hyperliquid_private_key: str = Field(
        default="",
        alias="HYPERLIQUID_PRIVATE_KEY",
        validation_alias=AliasChoices(
            "HYPERLIQUID_PRIVATE_KEY",
            "hyperliquid_private_key",
            "HL_PRIVATE_KEY",
            "HL_API_SECRET",
        ),
        description="API wallet or main wallet private key (0x...) used to sign actions.",
    )
    hyperliquid_vault_address: Optional[str] = Field(
        default=None,
        alias="HYPERLIQUID_VAULT_ADDRESS",
        validation_alias=AliasChoices(
            "HYPERLIQUID_VAULT_ADDRESS",
            "hyperliquid_vault_address",
            "HL_VAULT_ADDRESS",
        ),
        description="Vault or subaccount to trade on behalf of; signed into every L1 action.",
    )
    hyperliquid_testnet: bool = Field(
        default=False,
        alias="HYPERLIQUID_TESTNET",
        validation_alias=AliasChoices(
            "HYPERLIQUID_TESTNET",
            "hyperliquid_testnet",
            "HL_TESTNET",
        ),
        description="Use Hyperliquid testnet instead of mainnet",
    )
    hyperliquid_base_url: Optional[str] = Field(
        default=None,
        alias="HYPERLIQUID_BASE_URL",
        validation_alias=AliasChoices("HYPERLIQUID_BASE_URL", "hyperliquid_base_url"),
        description="Override for the REST base URL (defaults to the SDK mainnet/testnet constant).",
    )
    signature_chain_id: str = Field(
        default="0xa4b1",
        alias="SIGNATURE_CHAIN_ID",
        validation_alias=AliasChoices("SIGNATURE_CHAIN_ID", "signature_chain_id"),
        description="Hex chain id placed in user-signed actions (transfers, withdrawals).",
    )
    rate_limit_capacity: int = Field(
        default=1200,
        alias="RATE_LIMIT_CAPACITY",
        validation_alias=AliasChoices("RATE_LIMIT_CAPACITY", "rate_limit_capacity"),
        description="Request weight available per rate window.",
    )
    rate_limit_window_seconds: float = Field(
        default=60.0,
        alias="RATE_LIMIT_WINDOW_SECONDS",
        validation_alias=AliasChoices("RATE_LIMIT_WINDOW_SECONDS", "rate_limit_window_seconds"),
        description="Seconds over which the full capacity replenishes.",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        alias="HTTP_TIMEOUT_SECONDS",
        validation_alias=AliasChoices("HTTP_TIMEOUT_SECONDS", "http_timeout_seconds"),
        description="Per-attempt HTTP timeout.",
    )
    http_max_retries: int = Field(
        default=2,
        alias="HTTP_MAX_RETRIES",
        validation_alias=AliasChoices("HTTP_MAX_RETRIES", "http_max_retries"),
        description="Retries after the first attempt for transient failures.",
    )
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
        description="Python logging level for the application.",
    )

    def model_post_init(self, __context: object) -> None:
        if self.rate_limit_capacity <= 0:
            self.rate_limit_capacity = 1200
        if self.rate_limit_window_seconds <= 0:
            self.rate_limit_window_seconds = 60.0
        if self.http_max_retries < 0:
            self.http_max_retries = 0
        if self.hyperliquid_vault_address == "":
            self.hyperliquid_vault_address = None
        self.log_level = str(self.log_level or "INFO").upper()

    def has_hyperliquid_credentials(self) -> bool:
        """Return True if a signing key is configured."""
        return bool(
            self.hyperliquid_private_key
            and self.hyperliquid_private_key.startswith("0x")
        )

    @property
    def base_url(self) -> str:
        if self.hyperliquid_base_url:
            return self.hyperliquid_base_url.rstrip("/")
        return (
            constants.TESTNET_API_URL
            if self.hyperliquid_testnet
            else constants.MAINNET_API_URL
        )

    @property
    def is_mainnet(self) -> bool:
        return not self.hyperliquid_testnet

    @property
    def credential_status(self) -> Dict[str, bool]:
        return {
            "private_key": self.has_hyperliquid_credentials(),
            "vault_address": bool(self.hyperliquid_vault_address),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Provide a cached Settings instance."""

    return Settings()  # type: ignore[arg-type]
