"""
Tests for environment-driven settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from finhub_engine.config import AppEnvironment, Settings, get_settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, settings: Settings) -> None:
        assert settings.env == AppEnvironment.DEVELOPMENT
        assert settings.atr_period == 14
        assert settings.periods_per_year == 252
        assert settings.return_epsilon == 1e-6
        assert settings.error_message_max_length == 500
        assert settings.log_level == "INFO"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FINHUB_ATR_PERIOD", "20")
        monkeypatch.setenv("FINHUB_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.atr_period == 20
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FINHUB_LOG_LEVEL", "VERBOSE")

        with pytest.raises(ValidationError):
            Settings()

    def test_atr_period_bounds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FINHUB_ATR_PERIOD", "1")

        with pytest.raises(ValidationError):
            Settings()

    def test_data_dir_created(self, tmp_path: Path) -> None:
        target = tmp_path / "fresh" / "data"

        settings = Settings(data_dir=target)

        assert target.is_dir()
        assert settings.data_dir == target.resolve()
        assert settings.bars_dir == target.resolve() / "parquet" / "bars"
        assert settings.runs_dir == target.resolve() / "runs"

    def test_redacted_config(self, settings: Settings) -> None:
        config = settings.get_redacted_config()

        assert config["env"] == "development"
        assert config["atr_period"] == 14
        assert set(config) >= {"data_dir", "log_level", "error_message_max_length"}


class TestGetSettings:
    """Tests for the cached accessor."""

    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        monkeypatch.setenv("FINHUB_ATR_PERIOD", "30")
        get_settings.cache_clear()

        assert get_settings() is not first
        assert get_settings().atr_period == 30
