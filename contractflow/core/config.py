# =====================================================
# FILE: contractflow/core/config.py
# Application Settings (environment / .env driven)
# =====================================================

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    PROJECT_NAME: str = "ContractFlow"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "contractflow"
    DB_PASSWORD: str = ""
    DB_NAME: str = "contractflow"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_PRE_PING: bool = True

    # Batch / parallelism
    SWEEP_MAX_WORKERS: int = 8
    ASSEMBLY_MAX_WORKERS: int = 6

    # Renewal defaults
    DEFAULT_NOTICE_PERIOD_DAYS: int = 30
    DEFAULT_RENEWAL_TERM_MONTHS: int = 12
    DEFAULT_UPLIFT_PERCENT: float = 0.0
    INTERNAL_DECISION_LEAD_DAYS: int = 30
    CASCADE_RETRY_ATTEMPTS: int = 3
    RENEWAL_REMINDER_DAYS: Annotated[List[int], NoDecode] = [90, 60, 30, 7]

    # Notifications
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_RETRY_DELAY_SECONDS: float = 0.5
    NOTIFICATION_WORKERS: int = 2

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = 60
    REMINDER_INTERVAL_MINUTES: int = 1440

    # Mail (optional, simulated when missing)
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_FROM: str = "noreply@contractflow.local"
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("RENEWAL_REMINDER_DAYS", mode="before")
    @classmethod
    def parse_reminder_days(cls, v):
        """Accept a comma-separated string as well as a JSON list"""
        if isinstance(v, str):
            return [int(day.strip()) for day in v.strip("[] ").split(",") if day.strip()]
        return v

    @property
    def mail_configured(self) -> bool:
        return bool(self.MAIL_USERNAME and self.MAIL_PASSWORD)


@lru_cache
def get_settings() -> "Settings":
    return Settings()


settings = get_settings()
