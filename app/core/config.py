# app/core/config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the process environment (Docker Compose passes the
    # root .env through), so there is no env_file directive here.
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Database URLs ---
    DATABASE_URL_PROD: str = "postgresql://crm:crm@db:5432/crm_campaigns"
    DATABASE_URL_LOCAL: str = "sqlite:///./crm_campaigns.db"

    # --- Secrets ---
    JWT_SECRET: str = "change-me"
    INTERNAL_API_KEY: str = "change-me-internal"
    ANTHROPIC_API_KEY: Optional[str] = None

    # Public URL the tracking pixel and click links point back to
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # --- Dispatch tuning ---
    # 550ms between sends is ~1.8 req/sec, inside the 2 req/sec free tiers
    EMAIL_DELAY_MS: int = 550
    MAX_SEND_ATTEMPTS: int = 3
    RETRY_BACKOFF_MAX_SECONDS: float = 10.0
    SEND_TIMEOUT_SECONDS: float = 30.0
    CAMPAIGN_DISPATCH_TIMEOUT_SECONDS: float = 3600.0
    DISPATCH_MAX_WORKERS: int = 4

    LOG_LEVEL: str = "INFO"

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )


# Create a single instance of the settings
settings = Settings()
