from typing import Dict
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Incident Desk"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./incident_desk.db"

    # SLA monitoring
    SLA_MONITORING_ENABLED: bool = True
    SLA_CHECK_INTERVAL_MS: int = 15 * 60 * 1000
    SLA_WARNING_RATIO: float = 0.8
    SLA_CRITICAL_RATIO: float = 0.95
    SLA_ALERT_DEDUP_HOURS: int = 24

    # Default resolution hours when no sla_configs row is active
    SLA_DEFAULT_HOURS_CRITICAL: int = 4
    SLA_DEFAULT_HOURS_HIGH: int = 24
    SLA_DEFAULT_HOURS_MEDIUM: int = 72
    SLA_DEFAULT_HOURS_LOW: int = 120
    SLA_FALLBACK_HOURS: int = 24

    # Business hours window (UTC, weekdays only)
    BUSINESS_DAY_START_HOUR: int = 9
    BUSINESS_DAY_END_HOUR: int = 17

    @field_validator("SLA_CHECK_INTERVAL_MS")
    @classmethod
    def check_interval_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SLA_CHECK_INTERVAL_MS must be positive")
        return v

    @field_validator("BUSINESS_DAY_START_HOUR", "BUSINESS_DAY_END_HOUR")
    @classmethod
    def check_hour_of_day(cls, v: int) -> int:
        if not 0 <= v <= 24:
            raise ValueError("business hours must be between 0 and 24")
        return v

    # Notification Settings
    NOTIFICATION_ENABLED: bool = True

    # Email/SMTP Settings
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = "Incident Desk Notifications"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30

    # Notification URLs (for links in emails)
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    # Logging
    ENABLE_STRUCTURED_LOGGING: bool = True  # Use JSON structured logging

    @property
    def email_enabled(self) -> bool:
        """Check if email notifications are configured."""
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD)

    @property
    def sla_check_interval_seconds(self) -> float:
        return self.SLA_CHECK_INTERVAL_MS / 1000

    @property
    def default_resolution_hours(self) -> Dict[str, int]:
        """Per-priority resolution hours used when nothing is persisted."""
        return {
            "critical": self.SLA_DEFAULT_HOURS_CRITICAL,
            "high": self.SLA_DEFAULT_HOURS_HIGH,
            "medium": self.SLA_DEFAULT_HOURS_MEDIUM,
            "low": self.SLA_DEFAULT_HOURS_LOW,
        }


settings = Settings()
