"""
CrowdCast Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
Complex values (channel tables, escalation minutes) are read as JSON.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChannelSettings(BaseModel):
    """Per-channel dispatch configuration."""

    enabled: bool = True
    priority: list[str] = Field(default_factory=lambda: ["critical", "high", "medium", "low"])
    retry_attempts: int = Field(default=1, ge=1)
    webhook_url: str = ""


def _default_channels() -> dict[str, ChannelSettings]:
    return {
        "PUSH": ChannelSettings(priority=["critical", "high", "medium"], retry_attempts=3),
        "EMAIL": ChannelSettings(priority=["critical", "high"], retry_attempts=2),
        "SMS": ChannelSettings(enabled=False, priority=["critical"], retry_attempts=1),
        "DASHBOARD": ChannelSettings(
            priority=["critical", "high", "medium", "low"], retry_attempts=1
        ),
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "CrowdCast"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./crowdcast.db",
        alias="DATABASE_URL",
    )
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")

    # ── Grid aggregation ─────────────────────────────────────────────────
    event_id: str = Field(default="current_event", alias="EVENT_ID")
    grid_resolution: int = Field(default=20, ge=1, alias="GRID_RESOLUTION")
    bounds_north: float = Field(default=37.7800, alias="GRID_BOUNDS_NORTH")
    bounds_south: float = Field(default=37.7700, alias="GRID_BOUNDS_SOUTH")
    bounds_east: float = Field(default=-122.4100, alias="GRID_BOUNDS_EAST")
    bounds_west: float = Field(default=-122.4300, alias="GRID_BOUNDS_WEST")
    collection_interval_seconds: float = Field(default=30.0, alias="COLLECTION_INTERVAL_SECONDS")
    batch_size: int = Field(default=50, ge=1, alias="BATCH_SIZE")
    flush_interval_seconds: float = Field(default=60.0, alias="FLUSH_INTERVAL_SECONDS")
    max_buffered_cycles: int = Field(default=1000, ge=1, alias="MAX_BUFFERED_CYCLES")
    point_source_url: str = Field(default="", alias="POINT_SOURCE_URL")
    point_source_timeout_seconds: float = Field(default=10.0, alias="POINT_SOURCE_TIMEOUT_SECONDS")

    # ── Forecasting ──────────────────────────────────────────────────────
    forecast_endpoint_url: str = Field(default="", alias="FORECAST_ENDPOINT_URL")
    credential_url: str = Field(default="", alias="FORECAST_CREDENTIAL_URL")
    forecast_project_id: str = Field(default="", alias="FORECAST_PROJECT_ID")
    forecast_horizon: int = Field(default=10, ge=1, alias="FORECAST_HORIZON")
    surge_threshold: float = Field(default=8.0, alias="SURGE_THRESHOLD")
    forecast_timeout_seconds: float = Field(default=15.0, alias="FORECAST_TIMEOUT_SECONDS")
    forecast_cache_size: int = Field(default=50, ge=1, alias="FORECAST_CACHE_SIZE")
    token_refresh_margin_seconds: float = Field(default=300.0, alias="TOKEN_REFRESH_MARGIN_SECONDS")
    forecast_breaker_failures: int = Field(default=5, alias="FORECAST_BREAKER_FAILURES")
    forecast_breaker_recovery_seconds: float = Field(
        default=60.0, alias="FORECAST_BREAKER_RECOVERY_SECONDS"
    )

    # ── Alerting ──────────────────────────────────────────────────────────
    escalation_minutes: dict[str, float] = Field(
        default_factory=lambda: {"critical": 1.0, "high": 2.0, "medium": 5.0, "low": 10.0},
        alias="ESCALATION_MINUTES",
    )
    max_escalation_level: int = Field(default=3, ge=1, alias="MAX_ESCALATION_LEVEL")
    critical_density: float = Field(default=9.0, alias="CRITICAL_DENSITY")
    bottleneck_velocity: float = Field(default=0.3, alias="BOTTLENECK_VELOCITY")
    notification_batch_size: int = Field(default=10, ge=1, alias="NOTIFICATION_BATCH_SIZE")
    notification_interval_seconds: float = Field(default=5.0, alias="NOTIFICATION_INTERVAL_SECONDS")
    notification_timeout_seconds: float = Field(default=10.0, alias="NOTIFICATION_TIMEOUT_SECONDS")
    notification_channels: dict[str, ChannelSettings] = Field(
        default_factory=_default_channels,
        alias="NOTIFICATION_CHANNELS",
    )
    alert_cooldown_minutes: int = Field(default=5, alias="ALERT_COOLDOWN_MINUTES")
    max_alerts_per_day: int = Field(default=200, alias="MAX_ALERTS_PER_DAY")
    alert_ttl_minutes: int = Field(default=240, alias="ALERT_TTL_MINUTES")
    alert_expiry_check_minutes: int = Field(default=15, alias="ALERT_EXPIRY_CHECK_MINUTES")
    default_zone: str = Field(default="Event Area", alias="DEFAULT_ZONE")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


settings = Settings()
