"""
Capacity engine settings loaded from the environment (pydantic-settings).

Each concern has its own prefix: ENGINE_ for the process, DATABASE_ for the
durable cluster-state store and AUTOSCALING_ for the evaluation cycle.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Where published cluster state is persisted."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./autoscaling.db",
        description="SQLAlchemy async URL of the cluster-state database",
    )
    echo: bool = Field(default=False, description="Log emitted SQL")

    @field_validator("url")
    @classmethod
    def _require_scheme(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError(f"database url must include a scheme, got [{value}]")
        return value


class AutoscalingSettings(BaseSettings):
    """Evaluation cycle tuning."""

    model_config = SettingsConfigDict(env_prefix="AUTOSCALING_")

    cluster_id: str = Field(default="default", min_length=1)
    decider_timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Upper bound for a single decider evaluation"
    )
    max_workers: int = Field(default=8, ge=1, le=256, description="Decider worker pool size")
    publish_retries: int = Field(
        default=3, ge=0, description="Retries for administrative policy mutations on conflict"
    )
    metrics_prefix: str = Field(default="autoscaling", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class AppSettings(BaseSettings):
    """Process-wide settings with the nested groups above."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    autoscaling: AutoscalingSettings = Field(default_factory=AutoscalingSettings)

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_development(self) -> bool:
        return self.env == "development"


@lru_cache
def get_settings() -> AppSettings:
    """Settings are read once per process."""
    return AppSettings()


settings = get_settings()
