"""
Configuration management for the FinHub backtest engine.

Uses pydantic-settings for type-safe environment variable handling.
All values can be overridden with FINHUB_-prefixed environment variables.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Strategy parameters live on the request; these settings only cover
    constants of the simulation and its ambient services.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: AppEnvironment = Field(
        default=AppEnvironment.DEVELOPMENT,
        description="Application environment",
    )

    # Data paths
    data_dir: Path = Field(
        default=Path("./data"),
        description="Root directory for price store and run artefacts",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON-style log lines")

    # Simulation constants
    atr_period: int = Field(
        default=14,
        ge=2,
        le=250,
        description="Average True Range window in calendar days",
    )
    periods_per_year: int = Field(
        default=252,
        ge=1,
        description="Annualization factor for Sharpe and Sortino",
    )
    return_epsilon: float = Field(
        default=1e-6,
        gt=0,
        description="Guard for divisors in return/drawdown calculations",
    )

    # Persistence
    error_message_max_length: int = Field(
        default=500,
        ge=16,
        le=10000,
        description="Maximum stored length of a failed run's error message",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir_exists(cls, v: Path) -> Path:
        """Ensure data directory exists."""
        v.mkdir(parents=True, exist_ok=True)
        return v.resolve()

    @property
    def bars_dir(self) -> Path:
        """Directory holding per-symbol Parquet bar files."""
        return self.data_dir / "parquet" / "bars"

    @property
    def runs_dir(self) -> Path:
        """Directory holding per-run artefacts."""
        return self.data_dir / "runs"

    def get_redacted_config(self) -> dict[str, str | int | float | bool]:
        """
        Get configuration dict safe for logging.
        """
        return {
            "env": self.env.value,
            "data_dir": str(self.data_dir),
            "log_level": self.log_level,
            "log_json": self.log_json,
            "atr_period": self.atr_period,
            "periods_per_year": self.periods_per_year,
            "return_epsilon": self.return_epsilon,
            "error_message_max_length": self.error_message_max_length,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout application.
    """
    return Settings()
