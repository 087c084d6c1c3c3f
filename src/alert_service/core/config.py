"""Configuration management for alert-service."""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnomalyConfig(BaseModel):
    """Anomaly detector tuning."""

    model_config = ConfigDict(frozen=True)

    sensitivity: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Higher values lower the effective z threshold"
    )
    min_data_points: int = Field(
        default=20, ge=1, description="Samples required before any anomaly is reported"
    )
    std_dev_threshold: float = Field(
        default=3.0, gt=0.0, description="Base z-score threshold for spike/drop detection"
    )
    window_size: int = Field(default=1000, ge=2, description="Rolling window capacity per metric")
    trend_window: int = Field(
        default=10, ge=2, description="Sub-window length used for trend-change slopes"
    )
    enable_spike: bool = True
    enable_drop: bool = True
    enable_trend_change: bool = True
    enable_outlier: bool = True


class AlertConfig(BaseModel):
    """Runtime configuration of an AlertManager."""

    model_config = ConfigDict(frozen=True)

    enable_anomaly_detection: bool = False
    anomaly_config: AnomalyConfig | None = None
    evaluation_interval_ms: float = Field(
        default=10000, gt=0, description="Auto-evaluation tick interval in milliseconds"
    )
    max_history_size: int = Field(default=1000, ge=1, description="Alert history capacity")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    # Alert manager settings
    evaluation_interval_ms: float = Field(
        default=10000, gt=0, description="Auto-evaluation interval in milliseconds"
    )
    max_history_size: int = Field(default=1000, ge=1, description="Alert history capacity")

    # Anomaly detection settings
    enable_anomaly_detection: bool = Field(
        default=False, description="Create an anomaly detector inside the alert manager"
    )
    anomaly_sensitivity: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Anomaly detector sensitivity"
    )
    anomaly_min_data_points: int = Field(
        default=20, ge=1, description="Minimum history before anomalies are reported"
    )
    anomaly_std_dev_threshold: float = Field(
        default=3.0, gt=0.0, description="Standard deviation threshold for anomalies"
    )

    def to_alert_config(self) -> AlertConfig:
        """Build the runtime AlertConfig from these settings."""
        return AlertConfig(
            enable_anomaly_detection=self.enable_anomaly_detection,
            anomaly_config=AnomalyConfig(
                sensitivity=self.anomaly_sensitivity,
                min_data_points=self.anomaly_min_data_points,
                std_dev_threshold=self.anomaly_std_dev_threshold,
            ),
            evaluation_interval_ms=self.evaluation_interval_ms,
            max_history_size=self.max_history_size,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
