"""
Configuration management for DoseKeeper
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseKeeper"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dosekeeper.db"
    DATABASE_ECHO: bool = False

    # Email (SMTP)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "reminders@dosekeeper.local"

    # Push gateway
    PUSH_GATEWAY_URL: Optional[str] = None
    PUSH_GATEWAY_TOKEN: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # Reminder scheduler
    SCHEDULER_ENABLED: bool = True
    UPCOMING_SWEEP_INTERVAL_SECONDS: int = 300  # 5 minutes
    OVERDUE_SWEEP_INTERVAL_SECONDS: int = 900   # 15 minutes
    AUTO_MISS_ENABLED: bool = False
    AUTO_MISS_INTERVAL_SECONDS: int = 900
    SCHEDULER_MAX_CONCURRENCY: int = 4
    DEFAULT_REMINDER_MINUTES: int = 15
    MAX_REMINDER_MINUTES: int = 60
    DEFAULT_LATE_WINDOW_MINUTES: int = 240
    OVERDUE_LOOKBACK_MINUTES: int = 240
    DISPATCH_MARKER_RETENTION_HOURS: int = 48

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class RewardConfig:
    """Point tiers and bonuses awarded when a dose is logged"""

    # Lateness tiers (minutes after the scheduled instant)
    PERFECT_TIMING_MINUTES: int = 15
    ON_TIME_MINUTES: int = 30       # beyond this a dose counts as taken late
    SLIGHTLY_LATE_MINUTES: int = 60

    PERFECT_TIMING_POINTS: int = 15
    PERFECT_TIMING_BONUS: int = 5
    ON_TIME_POINTS: int = 12
    SLIGHTLY_LATE_POINTS: int = 8
    LATE_POINTS: int = 3
    OUTSIDE_WINDOW_POINTS: int = 1

    # Streak bonuses
    WEEK_STREAK_DAYS: int = 7
    WEEK_STREAK_BONUS: int = 10
    MONTH_STREAK_DAYS: int = 30
    MONTH_STREAK_BONUS: int = 25
    STREAK_LOOKBACK_DAYS: int = 365

    # Ledger and levels
    DAILY_CHECK_IN_POINTS: int = 10
    POINTS_PER_LEVEL: int = 100
    RECENT_REWARDS_LIMIT: int = 10


# Database table names
class TableNames:
    PATIENTS = "patients"
    MEDICATIONS = "medications"
    REGIMENS = "regimens"
    DOSE_RECORDS = "dose_records"
    REWARD_LEDGER = "reward_ledger"


settings = get_settings()
reward_config = RewardConfig()
