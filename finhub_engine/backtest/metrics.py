"""
Performance metrics calculation for backtesting.

Computes CAGR, max drawdown, Sharpe, Sortino, win rate, profit factor,
expectancy and exposure. Degenerate inputs (too few points, zero variance,
no trades, no losses) yield 0.0, never an exception.
"""

import math
from collections.abc import Sequence
from typing import Any

from finhub_engine.backtest.models import EquityPoint, MetricsSummary, TradeRecord
from finhub_engine.logging import get_logger

logger = get_logger(__name__)

PERIODS_PER_YEAR = 252  # daily bars
DAYS_PER_YEAR = 365
EPSILON = 1e-6


def _population_stdev(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def calculate_returns(
    equity_curve: Sequence[EquityPoint],
    epsilon: float = EPSILON,
) -> list[float]:
    """Period-over-period returns, previous equity floored at epsilon."""
    if len(equity_curve) < 2:
        return []

    returns = []
    for i in range(1, len(equity_curve)):
        prev_equity = equity_curve[i - 1].equity
        curr_equity = equity_curve[i].equity
        returns.append((curr_equity - prev_equity) / max(epsilon, prev_equity))
    return returns


def calculate_sharpe_ratio(
    returns: Sequence[float],
    periods_per_year: int = PERIODS_PER_YEAR,
) -> float:
    """
    Calculate Sharpe ratio.

    Sharpe = mean_return / population_std_dev * sqrt(periods_per_year)
    """
    if not returns:
        return 0.0

    std_dev = _population_stdev(returns)
    if std_dev <= 0:
        return 0.0

    mean_ret = sum(returns) / len(returns)
    return (mean_ret / std_dev) * math.sqrt(periods_per_year)


def calculate_sortino_ratio(
    returns: Sequence[float],
    periods_per_year: int = PERIODS_PER_YEAR,
) -> float:
    """
    Calculate Sortino ratio (uses downside deviation).

    Sortino = mean_return / population_std_dev(negative returns) * sqrt(periods_per_year)

    The downside deviation is taken around the mean of the negative returns,
    so a single negative return (or several equal ones) gives 0.
    """
    if not returns:
        return 0.0

    downside_returns = [r for r in returns if r < 0]
    downside_dev = _population_stdev(downside_returns)
    if downside_dev <= 0:
        return 0.0

    mean_ret = sum(returns) / len(returns)
    return (mean_ret / downside_dev) * math.sqrt(periods_per_year)


def calculate_max_drawdown(
    equity_curve: Sequence[EquityPoint],
    epsilon: float = EPSILON,
) -> float:
    """
    Calculate maximum drawdown as a fraction of the running peak.

    Returns:
        Most negative (equity - peak) / peak, or 0.0 without a drawdown.
    """
    if len(equity_curve) < 2:
        return 0.0

    high_water_mark = equity_curve[0].equity
    max_dd = 0.0
    for point in equity_curve[1:]:
        high_water_mark = max(high_water_mark, point.equity)
        dd = (point.equity - high_water_mark) / max(epsilon, high_water_mark)
        max_dd = min(max_dd, dd)
    return max_dd


def calculate_cagr(
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    epsilon: float = EPSILON,
) -> float:
    """
    Compound annual growth rate over the calendar span of the curve.

    CAGR = (final / initial) ^ (365 / days) - 1, days at least 1
    """
    if len(equity_curve) < 2:
        return 0.0

    days = max(1, (equity_curve[-1].date - equity_curve[0].date).days)
    ratio = equity_curve[-1].equity / max(epsilon, initial_capital)
    if ratio <= 0:
        return -1.0
    try:
        return ratio ** (DAYS_PER_YEAR / days) - 1
    except OverflowError:
        logger.warning("CAGR overflow over %d days (ratio %.4f), reporting 0", days, ratio)
        return 0.0


def calculate_trade_metrics(trades: Sequence[TradeRecord]) -> dict[str, Any]:
    """Calculate trading metrics from net trade PnL."""
    if not trades:
        return {
            "total_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "profit_factor": 0.0,
            "expectancy": 0.0,
        }

    wins = [t.pnl_net for t in trades if t.pnl_net > 0]
    losses = [t.pnl_net for t in trades if t.pnl_net < 0]

    total_trades = len(trades)
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))

    # no losing trades reports 0, not infinity
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

    return {
        "total_trades": total_trades,
        "winning_trades": len(wins),
        "losing_trades": len(losses),
        "win_rate": len(wins) / total_trades,
        "profit_factor": profit_factor,
        "expectancy": sum(t.pnl_net for t in trades) / total_trades,
    }


def calculate_exposure(equity_curve: Sequence[EquityPoint]) -> float:
    """Fraction of equity points with at least one open position."""
    if not equity_curve:
        return 0.0
    in_market = sum(1 for p in equity_curve if p.open_positions > 0)
    return in_market / len(equity_curve)


def compute_metrics(
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[TradeRecord],
    initial_capital: float,
    periods_per_year: int = PERIODS_PER_YEAR,
    epsilon: float = EPSILON,
) -> MetricsSummary:
    """
    Compute complete metrics summary.

    Args:
        equity_curve: Sequence of equity points, ascending by date
        trades: Sequence of trade records
        initial_capital: Starting capital
        periods_per_year: Annualization factor for Sharpe/Sortino
        epsilon: Floor for divisors

    Returns:
        MetricsSummary; all zero when the curve has fewer than 2 points.
    """
    if len(equity_curve) < 2:
        logger.debug("Fewer than 2 equity points, metrics are zero")
        final_equity = equity_curve[-1].equity if equity_curve else initial_capital
        return MetricsSummary(final_equity=final_equity)

    returns = calculate_returns(equity_curve, epsilon)
    trade_metrics = calculate_trade_metrics(trades)
    final_equity = equity_curve[-1].equity

    return MetricsSummary(
        cagr=calculate_cagr(equity_curve, initial_capital, epsilon),
        max_drawdown=calculate_max_drawdown(equity_curve, epsilon),
        sharpe=calculate_sharpe_ratio(returns, periods_per_year),
        sortino=calculate_sortino_ratio(returns, periods_per_year),
        win_rate=trade_metrics["win_rate"],
        profit_factor=trade_metrics["profit_factor"],
        expectancy=trade_metrics["expectancy"],
        exposure=calculate_exposure(equity_curve),
        total_trades=trade_metrics["total_trades"],
        winning_trades=trade_metrics["winning_trades"],
        losing_trades=trade_metrics["losing_trades"],
        total_return_pct=final_equity / max(epsilon, initial_capital) - 1,
        final_equity=final_equity,
    )
