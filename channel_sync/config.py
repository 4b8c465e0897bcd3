from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Dict


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./channel_sync.db",
        alias="DATABASE_URL"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # ==============================================
    # Reconciliation
    # ==============================================
    # Start the hourly job inside the API process
    reconciliation_enabled: bool = Field(default=True, alias="RECONCILIATION_ENABLED")

    # Days ahead compared per mapping, starting today
    reconciliation_window_days: int = Field(default=30, alias="RECONCILIATION_WINDOW_DAYS")

    # Divergence (%) above which a run is classified DIVERGENCE
    reconciliation_divergence_threshold: float = Field(
        default=5.0,
        alias="RECONCILIATION_DIVERGENCE_THRESHOLD"
    )

    # Cron: every hour at this minute
    reconciliation_cron_minute: int = Field(default=0, alias="RECONCILIATION_CRON_MINUTE")
    reconciliation_timezone: str = Field(default="UTC", alias="RECONCILIATION_TIMEZONE")

    # 1 = sequential
    reconciliation_max_workers: int = Field(default=1, alias="RECONCILIATION_MAX_WORKERS")

    # Link attached to operator alerts
    reconciliation_alert_link: str = Field(default="/admin/sync", alias="RECONCILIATION_ALERT_LINK")

    # ==============================================
    # Channel connectors (Server-Side Only!)
    # ==============================================
    # Format: airbnb=https://api.example.com/v1,booking=https://...
    channel_endpoints: str = Field(default="", alias="CHANNEL_ENDPOINTS")
    channel_api_key: str = Field(default="", alias="CHANNEL_API_KEY")
    channel_timeout_seconds: int = Field(default=20, alias="CHANNEL_TIMEOUT_SECONDS")

    @property
    def channel_endpoint_map(self) -> Dict[str, str]:
        """Parse channel endpoints into {channel_name: base_url}"""
        endpoints = {}
        for pair in self.channel_endpoints.split(","):
            if "=" not in pair:
                continue
            name, url = pair.split("=", 1)
            name = name.strip().upper()
            url = url.strip().rstrip("/")
            if name and url:
                endpoints[name] = url
        return endpoints

    @field_validator('reconciliation_window_days')
    @classmethod
    def validate_window_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RECONCILIATION_WINDOW_DAYS must be at least 1")
        return v

    @field_validator('reconciliation_divergence_threshold')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if v < 0:
            raise ValueError("RECONCILIATION_DIVERGENCE_THRESHOLD cannot be negative")
        return v

    @field_validator('reconciliation_max_workers')
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        return max(v, 1)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
