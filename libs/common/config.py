from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SQL_ECHO: bool = False

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth
    # Placeholder keeps local/test runs from failing. Real deployments override via env.
    AUTH_JWT_SECRET: str = "test-jwt-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"
    SERVICE_ROLE_TOKEN_TTL_SECONDS: int = 300

    # Redis (arq worker + rate limiting)
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: Optional[str] = None

    # Collaborating services
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8004"

    # Referrals & campaigns
    SYSTEM_CAMPAIGN_CODE: str = "SYSTEM"
    DEFAULT_REFERRAL_REWARD: int = 100
    REFERRAL_BATCH_SIZE: int = 500
    STUCK_REFERRAL_THRESHOLD_MINUTES: int = 15

    # Payouts
    PAYOUT_BATCH_SIZE: int = 100
    PAYOUT_DUPLICATE_WINDOW_MINUTES: int = 5
    PAYOUT_PLATFORM_FEE_PERCENT: float = 0.0
    PAYOUT_CLAIM_TIMEOUT_MINUTES: int = 30

    # Ledger
    LEDGER_APPEND_MAX_ATTEMPTS: int = 3

    # Notification outbox
    NOTIFICATION_BATCH_SIZE: int = 100
    NOTIFICATION_MAX_ATTEMPTS: int = 5

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
