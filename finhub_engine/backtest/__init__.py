"""
Backtest engine module for FinHub.

Provides deterministic, bar-driven backtesting of the trend-breakout
strategy with:
- Request validation and canonical hashing
- Cost model for slippage, spread and commission
- Portfolio for cash/position tracking
- Metrics calculation (CAGR, drawdown, Sharpe, Sortino, etc.)
"""

from finhub_engine.backtest.errors import (
    BacktestError,
    DataUnavailableError,
    ErrorKind,
    PersistenceError,
    ValidationError,
)
from finhub_engine.backtest.models import (
    BacktestRequest,
    BacktestResult,
    EquityPoint,
    MetricsSummary,
    OrderRecord,
    RunStatus,
    TradeRecord,
)

__all__ = [
    "BacktestError",
    "BacktestRequest",
    "BacktestResult",
    "DataUnavailableError",
    "EquityPoint",
    "ErrorKind",
    "MetricsSummary",
    "OrderRecord",
    "PersistenceError",
    "RunStatus",
    "TradeRecord",
    "ValidationError",
]
