from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    # Store backend: sql | memory
    store_backend: str = "sql"

    # Primary (admin) store is required; the secondary (regular) store is optional
    database_url: str
    secondary_database_url: str | None = None

    # Charges / reconciliation
    default_currency: str = "CAD"
    default_invoice_status: str = "uninvoiced"
    charges_fetch_limit: int = 100

    # Invoice status catalog cache; 0 means every load revalidates against the store
    status_cache_ttl_seconds: float = 0.0

    # EDI ingestion observation
    upload_poll_interval_seconds: float = 2.0
    upload_stall_timeout_seconds: float = 120.0
    stuck_upload_minutes: int = 15
    stuck_repair_limit: int = 5


settings = Settings()
