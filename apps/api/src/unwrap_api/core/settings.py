from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./unwrap.db"
    tracing_enabled: bool = True

    # Application URLs
    app_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Ledger (Celo) configuration
    ledger_backend: Literal["memory", "web3"] = "memory"
    celo_rpc_url: str = "https://alfajores-forno.celo-testnet.org"
    chain_id: int = 44787
    unwrap_contract_address: str = "0x349a3172D4D8e3fFdd96De7736F622442FF14A24"
    cusd_token_address: str = "0x874069Fa1Eb16D44d622F2e0Ca25eeA172369bC1"
    signer_private_key: str | None = None
    fee_collector_address: str = "0x000000000000000000000000000000000000fee5"
    fee_percentage_bps: int = 50
    receipt_timeout_seconds: float = 120.0

    # Create-flow verification
    settle_delay_seconds: float = 2.0
    verification_attempts: int = 3
    verification_delay_seconds: float = 2.0

    # Gift card store
    gift_card_ttl_days: int = 30

    # Event synchronizer
    event_sync_worker_enabled: bool = False
    event_sync_interval_seconds: int = 10

    @field_validator("fee_percentage_bps")
    @classmethod
    def _validate_fee_bps(cls, value: int) -> int:
        if value < 0 or value > 10_000:
            raise ValueError("fee_percentage_bps must be between 0 and 10000")
        return value

    @field_validator("verification_attempts")
    @classmethod
    def _validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("verification_attempts must be at least 1")
        return value

    # Email / notification settings
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com/emails"
    resend_sender: str = "Unwrap <onboarding@resend.dev>"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
