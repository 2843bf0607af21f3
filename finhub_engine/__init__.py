"""
FinHub Backtest Engine

A deterministic daily backtest engine supporting:
- The trend_breakout long-only strategy
- Slippage, spread and commission modelling with risk-budget sizing
- Performance metrics (CAGR, drawdown, Sharpe, Sortino, profit factor)
- Pluggable price sources and result sinks (in-memory, Parquet, artefacts)
"""

__version__ = "1.0.0"
__author__ = "FinHub Development Team"

from finhub_engine.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
