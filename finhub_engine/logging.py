"""
Structured logging configuration for the FinHub backtest engine.

Provides consistent logging format across all modules with:
- JSON lines output for production
- Human-readable output for development
- Run ID tracking so every line of a backtest can be correlated
- An in-memory ring buffer for diagnostics
"""

import json
import logging
import sys
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for tracking the run ID of the backtest being executed
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)


class FinHubFormatter(logging.Formatter):
    """
    Custom formatter for engine logs.

    Includes timestamp, level, module, run_id (if set), and message. With
    json_output each record is serialized as one JSON object per line.
    """

    def __init__(self, fmt: str | None = None, json_output: bool = False):
        super().__init__(fmt)
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(UTC).isoformat()
        run_id = current_run_id.get()

        if self.json_output:
            entry: dict[str, Any] = {
                "timestamp": record.timestamp,
                "level": record.levelname,
                "module": record.name,
                "run_id": run_id,
                "message": record.getMessage(),
            }
            if record.exc_info:
                entry["exc_info"] = self.formatException(record.exc_info)
            return json.dumps(entry, default=str)

        record.run_id = f"[{run_id}] " if run_id else ""
        return super().format(record)


class InMemoryHandler(logging.Handler):
    """In-memory log handler for diagnostics."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.logs: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            log_entry = {
                "timestamp": getattr(record, "timestamp", datetime.now(UTC).isoformat()),
                "level": record.levelname,
                "level_no": record.levelno,
                "logger": record.name,
                "run_id": current_run_id.get(),
                "message": record.getMessage(),
            }
            self.logs.append(log_entry)
        except Exception:
            self.handleError(record)


_in_memory_handler = InMemoryHandler()


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure logging for the engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format (for production)

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    formatter = FinHubFormatter(
        "%(timestamp)s | %(levelname)-8s | %(name)s | %(run_id)s%(message)s",
        json_output=json_output,
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)

    _in_memory_handler.setLevel(numeric_level)
    _in_memory_handler.setFormatter(formatter)
    root.addHandler(_in_memory_handler)

    logging.getLogger("fsspec").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def get_in_memory_logs(level: str = "INFO", limit: int = 50) -> list[dict[str, Any]]:
    """Get filtered logs from memory."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    filtered = [log for log in _in_memory_handler.logs if log["level_no"] >= numeric_level]
    return filtered[-limit:]


def set_run_id(run_id: str) -> None:
    """Set the current run ID for log correlation."""
    current_run_id.set(run_id)


def clear_run_id() -> None:
    """Clear the current run ID."""
    current_run_id.set(None)
