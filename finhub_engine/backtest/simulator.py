"""
Bar-by-bar simulator for the trend-breakout strategy.

Long-only, filled at the bar close through the cost model:
- BUY when the close breaks above the highest high of the buy lookback
- SELL when the close hits the ATR stop or breaks below the lowest low of
  the sell lookback

For each date in the timeline, symbols are visited in universe order and
each symbol's exit is evaluated before its entry, so a position closed on a
bar can be re-opened on that same bar. The loop does no I/O.
"""

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from finhub_engine.backtest.broker_sim import CostModel
from finhub_engine.backtest.indicators import DEFAULT_ATR_PERIOD, atr, highest, lowest
from finhub_engine.backtest.models import (
    BacktestRequest,
    EquityPoint,
    ExitReason,
    OrderRecord,
    OrderSide,
    PositionSnapshot,
    TradeRecord,
)
from finhub_engine.backtest.portfolio import OpenPosition, Portfolio
from finhub_engine.backtest.sizing import calculate_position_size
from finhub_engine.domain import PriceBar, PriceSeries
from finhub_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SimulationResult:
    """Raw output of one simulation pass."""

    trades: list[TradeRecord] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    orders: list[OrderRecord] = field(default_factory=list)
    open_positions: list[PositionSnapshot] = field(default_factory=list)
    final_cash: float = 0.0
    final_equity: float = 0.0
    rejected_entries: int = 0


# =============================================================================
# Signal Rules
# =============================================================================


def evaluate_exit(
    position: OpenPosition,
    series: PriceSeries,
    day: dt.date,
    close: float,
    sell_lookback: int,
) -> ExitReason | None:
    """
    Exit rule for an open position.

    The stop takes precedence; the breakdown signal is only checked when the
    stop did not trigger and the sell window is covered.
    """
    if position.should_stop(close):
        return ExitReason.STOP
    lookback_low = lowest(series, day, sell_lookback)
    if lookback_low is not None and close < lookback_low:
        return ExitReason.SIGNAL
    return None


def evaluate_entry(
    series: PriceSeries,
    day: dt.date,
    close: float,
    request: BacktestRequest,
    atr_period: int = DEFAULT_ATR_PERIOD,
) -> float | None:
    """
    Entry rule for a flat symbol.

    Returns:
        Initial stop price when the close breaks out above the buy lookback
        high and a valid stop below the close exists, otherwise None.
    """
    lookback_high = highest(series, day, request.breakout_lookback_buy)
    if lookback_high is None or close <= lookback_high:
        return None

    current_atr = atr(series, day, atr_period)
    if current_atr is not None:
        stop = close - request.atr_multiplier * current_atr
    else:
        stop = lowest(series, day, request.breakout_lookback_sell)

    if stop is None or stop >= close:
        return None
    return stop


# =============================================================================
# Simulator
# =============================================================================


class Simulator:
    """
    Deterministic per-bar state machine over a loaded universe.

    One instance runs one simulation; state is never shared between runs.
    """

    def __init__(
        self,
        request: BacktestRequest,
        series_by_symbol: Mapping[str, PriceSeries],
        atr_period: int = DEFAULT_ATR_PERIOD,
    ) -> None:
        self.request = request
        self.atr_period = atr_period
        self.costs = CostModel.from_request(request)
        self.portfolio = Portfolio(initial_cash=request.initial_capital)
        # universe order decides who gets cash first
        self._series = [
            (symbol, series_by_symbol[symbol])
            for symbol in request.universe
            if symbol in series_by_symbol
        ]
        self._last_date: dt.date | None = None

    def run(self, dates: Iterable[dt.date]) -> SimulationResult:
        """
        Process every date of the timeline in order.

        Args:
            dates: Strictly increasing dates

        Returns:
            SimulationResult with trades, equity curve and orders
        """
        for day in dates:
            self.process_date(day)

        portfolio = self.portfolio
        if portfolio.rejected_entries:
            logger.warning(
                "%d entries rejected for insufficient cash",
                portfolio.rejected_entries,
            )
        logger.debug("Simulation finished: %s", portfolio.to_summary())

        return SimulationResult(
            trades=list(portfolio.closed_trades),
            equity_curve=list(portfolio.equity_curve),
            orders=list(portfolio.orders),
            open_positions=portfolio.open_position_snapshots(),
            final_cash=portfolio.cash,
            final_equity=portfolio.final_equity,
            rejected_entries=portfolio.rejected_entries,
        )

    def process_date(self, day: dt.date) -> EquityPoint:
        """Run exits, entries and mark-to-market for one date."""
        if self._last_date is not None and day <= self._last_date:
            raise ValueError(
                f"Dates must be strictly increasing: {day.isoformat()} after "
                f"{self._last_date.isoformat()}"
            )
        self._last_date = day

        positions_value = 0.0
        marked = 0
        for symbol, series in self._series:
            bar = series.get(day)
            if bar is None or bar.close is None:
                continue

            self._process_bar(symbol, series, bar, day)

            position = self.portfolio.get_position(symbol)
            if position is not None:
                positions_value += position.market_value(bar.close)
                marked += 1

        return self.portfolio.record_equity_point(day, positions_value, marked)

    def _process_bar(
        self,
        symbol: str,
        series: PriceSeries,
        bar: PriceBar,
        day: dt.date,
    ) -> None:
        close = bar.close
        portfolio = self.portfolio

        position = portfolio.get_position(symbol)
        if position is not None:
            position.bars_held += 1
            reason = evaluate_exit(
                position, series, day, close, self.request.breakout_lookback_sell
            )
            if reason is not None:
                fill = self.costs.price_fill(OrderSide.SELL, close, position.quantity)
                portfolio.close_position(fill, symbol, day, reason)

        if portfolio.has_position(symbol):
            return

        stop = evaluate_entry(series, day, close, self.request, self.atr_period)
        if stop is None:
            return

        size = calculate_position_size(
            cash=portfolio.cash,
            risk_per_trade_pct=self.request.risk_per_trade_pct,
            entry_price=close,
            stop_price=stop,
        )
        if not size.is_valid:
            logger.debug(
                "No entry for %s on %s: %s",
                symbol,
                day.isoformat(),
                size.rejection_reason,
            )
            return

        fill = self.costs.price_fill(OrderSide.BUY, close, size.quantity)
        portfolio.open_position(fill, symbol, stop, day)


def simulate(
    request: BacktestRequest,
    series_by_symbol: Mapping[str, PriceSeries],
    dates: Iterable[dt.date],
    atr_period: int = DEFAULT_ATR_PERIOD,
) -> SimulationResult:
    """Run a fresh Simulator over `dates`."""
    return Simulator(request, series_by_symbol, atr_period=atr_period).run(dates)
