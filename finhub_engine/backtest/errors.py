"""
Error kinds raised by the backtest engine.

Callers branch on the exception type (or its `kind`) instead of matching
message strings: caller-input problems are client errors, persistence
problems are environment errors.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from finhub_engine.backtest.models import BacktestResult


class ErrorKind(str, Enum):
    """Discriminator for backtest failures."""

    INVALID_REQUEST = "invalid_request"
    DATA_UNAVAILABLE = "data_unavailable"
    PERSISTENCE = "persistence"


class BacktestError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind
    is_client_error: bool = False


class ValidationError(BacktestError):
    """Raised when a request is malformed or names an unsupported strategy."""

    kind = ErrorKind.INVALID_REQUEST
    is_client_error = True

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class DataUnavailableError(BacktestError):
    """Raised when no symbol in the universe has bars in the requested range."""

    kind = ErrorKind.DATA_UNAVAILABLE
    is_client_error = True

    def __init__(self, message: str, symbols: list[str] | None = None):
        super().__init__(message)
        self.symbols = symbols or []


class PersistenceError(BacktestError):
    """
    Raised when results could not be committed to the result sink.

    The simulation itself succeeded: `result` holds the in-memory trades,
    equity curve and metrics so the caller can retry persistence alone.
    """

    kind = ErrorKind.PERSISTENCE

    def __init__(
        self,
        message: str,
        run_id: str | None = None,
        result: "BacktestResult | None" = None,
    ):
        super().__init__(message)
        self.run_id = run_id
        self.result = result
