from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from dex_adapter.types import NoncePolicy


class AdapterSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DEX_ADAPTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Multisig account and member key
    multisig_public_key: str
    passphrase: SecretStr

    # Chain
    network: str = "devnet"
    address_prefix: str = "dex"
    transaction_version: int = Field(default=2, ge=1)

    # Ledger query service
    ledger_url: str = "http://localhost:4003"
    module_alias: str = "ark"
    request_timeout: float = Field(default=15.0, gt=0)
    retry_delay: float = Field(default=5.0, ge=0)
    retry_jitter: float = Field(default=0.0, ge=0)

    # Nonce sequencing
    nonce_policy: NoncePolicy = NoncePolicy.ROLLING_CACHE
    lookahead_page_size: int = Field(default=100, ge=1)
    max_lookahead_iterations: int = Field(default=10, ge=1)
    recent_identifier_capacity: int = Field(default=1000, ge=1)
    reset_scan_block_limit: int = Field(default=100, ge=0)
