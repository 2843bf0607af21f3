"""
Pytest configuration and shared fixtures.
"""

import logging
from collections.abc import Generator
from pathlib import Path

import pytest

from finhub_engine.config import Settings, get_settings


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Point the data dir at a temp directory and reset cached settings."""
    monkeypatch.setenv("FINHUB_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("FINHUB_ENV", "development")
    for var in ("FINHUB_ATR_PERIOD", "FINHUB_LOG_LEVEL", "FINHUB_LOG_JSON"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def data_dir(settings: Settings) -> Path:
    return settings.data_dir


@pytest.fixture
def restore_root_logger() -> Generator[logging.Logger, None, None]:
    """Undo setup_logging() changes to the root logger after a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield root

    root.handlers[:] = handlers
    root.setLevel(level)
