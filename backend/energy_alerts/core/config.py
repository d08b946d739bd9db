from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/energy_alerts.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Local timezone used for day/week/month window boundaries
    TIMEZONE: str = "UTC"

    # Alert evaluation
    ALERT_CHECK_INTERVAL_SECONDS: int = 3600
    ALERT_RULE_MAX_ATTEMPTS: int = 2
    ALERT_TICK_LOCK_TTL_SECONDS: int = 3300
    DEFAULT_TRIGGER_THRESHOLD: int = 80

    # Anomaly detection
    ANOMALY_THRESHOLD_PERCENT: int = 50
    ANOMALY_LOOKBACK_DAYS: int = 7

    # Triggered alert listing
    TRIGGERED_ALERTS_PAGE_SIZE: int = 50

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


settings = Settings()
