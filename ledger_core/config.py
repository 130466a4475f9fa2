"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables.

    Frozen: components receive it explicitly instead of reading globals.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Service
    service_name: str = "ledger-core"
    log_level: str = "INFO"

    # Ledger store
    store_backend: Literal["sql", "http"] = "sql"
    store_url: str = "http://localhost:54321/rest/v1"
    store_api_key: str | None = None
    database_url: str = "sqlite:///./ledger.db"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    store_max_retries: int = 3
    store_backoff_base: float = 0.5  # Exponential backoff base in seconds

    # Mutations
    mutation_timeout_seconds: float = 10.0

    # Money
    default_currency: str = "COP"
    money_quantum: Decimal = Decimal("0.01")

    # Scheduler
    scheduler_max_catch_up_passes: int = 36


settings = Settings()
