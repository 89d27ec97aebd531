"""Pydantic-based settings for the Beacon notification queue."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for Beacon."""

    model_config = SettingsConfigDict(
        env_prefix="BEACON_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8010, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database settings
    database_url: str = Field(default="sqlite+aiosqlite:///data/beacon.db", description="Database URL")

    # Processor settings
    processor_interval: float = Field(default=30.0, description="Seconds between processor ticks")
    processor_batch_size: int = Field(default=5, description="Maximum jobs claimed per tick")
    processor_idle_stop_ticks: int = Field(
        default=40, description="Consecutive idle ticks before the processor stops itself"
    )
    processor_start_on_demand: bool = Field(
        default=True, description="Restart a stopped processor when a job is added"
    )
    processor_autostart: bool = Field(default=True, description="Start the processor on application startup")

    # Janitor settings
    janitor_interval_hours: float = Field(default=24.0, description="Hours between janitor sweeps")
    janitor_retention_days: int = Field(default=30, description="Days to keep terminal jobs")
    stale_processing_timeout: int = Field(
        default=600, description="Seconds after which a processing job is considered abandoned"
    )

    # Delivery settings
    delivery_url: str = Field(
        default="http://localhost:3000/api/notifications/send", description="Push delivery endpoint"
    )
    delivery_timeout: float = Field(default=30.0, description="Delivery request timeout in seconds")

    # Admission settings
    enable_notifications: bool = Field(default=True, description="Accept new notification jobs")
    notifications_daily_cap: int = Field(default=100, description="Maximum jobs created per 24 hours")
    default_max_attempts: int = Field(default=3, description="Delivery attempts per job when unspecified")

    @property
    def log_format(self) -> str:
        """Log message format."""
        return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def janitor_interval(self) -> float:
        """Janitor interval in seconds."""
        return self.janitor_interval_hours * 3600
