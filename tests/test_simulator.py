"""
Tests for the per-bar trend-breakout simulator.

Scenarios use synthetic bars so every entry, stop and rejection is known in
advance.
"""

import math
from unittest.mock import patch

import pytest

from finhub_engine.backtest.engine import run_simulation
from finhub_engine.backtest.models import (
    BacktestRequest,
    BacktestResult,
    ExitReason,
    OrderSide,
    OrderStatus,
)
from finhub_engine.backtest.portfolio import INSUFFICIENT_CASH, OpenPosition
from finhub_engine.backtest.simulator import Simulator, evaluate_entry, evaluate_exit
from finhub_engine.data import InMemoryPriceSource
from finhub_engine.domain import PriceSeries
from tests.synthetic_data import (
    bars_from_closes,
    day,
    flat_then_breakout,
    linear_closes,
    make_payload,
    wave_bars,
)


def _run(bars, **overrides) -> BacktestResult:
    return run_simulation(make_payload(**overrides), InMemoryPriceSource(bars))


# =============================================================================
# Scenario Tests
# =============================================================================


class TestRisingMarket:
    """Steady uptrend: one entry after warm-up, never an exit."""

    @pytest.fixture
    def result(self) -> BacktestResult:
        bars = bars_from_closes("AAA", linear_closes(100.0, 130.0, 30))
        return _run(bars, breakout_lookback_buy=10, breakout_lookback_sell=5)

    def test_single_entry_after_lookback(self, result: BacktestResult) -> None:
        buys = [o for o in result.orders if o.side == OrderSide.BUY]

        assert len(buys) == 1
        assert buys[0].status == OrderStatus.FILLED
        assert buys[0].date == day(10)

    def test_no_exits(self, result: BacktestResult) -> None:
        assert result.trades == []
        assert len(result.open_positions) == 1
        assert result.open_positions[0].symbol == "AAA"
        assert result.open_positions[0].entry_date == day(10)

    def test_equity_never_decreases(self, result: BacktestResult) -> None:
        equities = [p.equity for p in result.equity_curve]

        assert len(equities) == 30
        for prev, curr in zip(equities, equities[1:], strict=False):
            assert curr >= prev - 1e-9

    def test_flat_before_entry(self, result: BacktestResult) -> None:
        for point in result.equity_curve[:10]:
            assert point.equity == 100000.0
            assert point.open_positions == 0

    def test_missing_close_skips_symbol_for_the_day(self) -> None:
        closes: list[float | None] = list(linear_closes(100.0, 130.0, 30))
        closes[15] = None
        result = _run(
            bars_from_closes("AAA", closes),
            breakout_lookback_buy=10,
            breakout_lookback_sell=5,
        )

        skipped = result.equity_curve[15]
        assert skipped.date == day(15)
        assert skipped.open_positions == 0
        assert skipped.equity == pytest.approx(skipped.cash)

        assert result.equity_curve[16].open_positions == 1
        assert result.trades == []
        assert len(result.open_positions) == 1

    def test_nan_close_treated_as_missing(self) -> None:
        closes = linear_closes(100.0, 130.0, 30)
        closes[15] = math.nan
        result = _run(
            bars_from_closes("AAA", closes),
            breakout_lookback_buy=10,
            breakout_lookback_sell=5,
        )

        skipped = result.equity_curve[15]
        assert skipped.open_positions == 0
        assert skipped.equity == pytest.approx(skipped.cash)

        assert all(math.isfinite(p.equity) for p in result.equity_curve)
        assert all(math.isfinite(p.drawdown) for p in result.equity_curve)
        metrics = result.metrics
        for value in (metrics.sharpe, metrics.sortino, metrics.cagr, metrics.max_drawdown):
            assert math.isfinite(value)
        assert len(result.open_positions) == 1


class TestImmediateStop:
    """Breakout followed by a drop through the stop on the next bar."""

    def test_cost_dominated_loss(self) -> None:
        bars = flat_then_breakout("AAA", breakout=100.5, after=[100.4])
        result = _run(
            bars,
            risk_per_trade_pct=0.0333,
            commission_pct=0.1,
            min_fee=1.0,
        )

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.entry_date == day(25)
        assert trade.exit_date == day(26)
        assert trade.exit_reason == ExitReason.STOP
        assert trade.quantity > 0
        assert trade.bars_held == 1

        assert trade.pnl_net == pytest.approx(trade.pnl_gross - trade.costs)
        assert trade.pnl_net < 0
        assert abs(trade.pnl_gross) < trade.costs

        entry_commission = trade.entry_price * trade.quantity * 0.001
        exit_commission = trade.exit_price * trade.quantity * 0.001
        assert trade.costs == pytest.approx(entry_commission + exit_commission)

        assert result.open_positions == []
        assert result.final_cash == pytest.approx(100000.0 + trade.pnl_net)

    def test_sharp_drop(self) -> None:
        bars = flat_then_breakout("AAA", breakout=102.0, after=[90.0], band=1.0)
        result = _run(bars, commission_pct=0.05, min_fee=1.0, slippage_bps=5.0, spread_bps=5.0)

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.exit_reason in {ExitReason.STOP, ExitReason.SIGNAL}
        assert trade.exit_date == day(26)
        assert trade.pnl_net == pytest.approx(trade.pnl_gross - trade.costs)
        assert trade.pnl_net < 0


class TestInsufficientCash:
    """Entry signal whose cost exceeds cash is rejected."""

    def test_no_position_opened(self) -> None:
        # stop = 100 (no ATR on close-only bars), qty = 2000 / 1 -> 202,000 > cash
        bars = flat_then_breakout("AAA", breakout=101.0, band=None)
        result = _run(bars, risk_per_trade_pct=2.0)

        assert result.trades == []
        assert result.open_positions == []
        assert result.final_cash == 100000.0
        assert all(p.equity == 100000.0 for p in result.equity_curve)

        assert len(result.orders) == 1
        order = result.orders[0]
        assert order.status == OrderStatus.REJECTED
        assert order.rejection_reason == INSUFFICIENT_CASH
        assert order.quantity == 2000
        assert any("insufficient cash" in w for w in result.warnings)


class TestUniverseOrder:
    """Earlier universe symbols get first claim on cash within a bar."""

    @pytest.fixture
    def bars(self) -> list:
        # BIG: stop distance 1 -> ~94% of cash; SMALL: stop distance 10 -> ~10%
        return flat_then_breakout("BIG", breakout=101.0, band=None) + flat_then_breakout(
            "SMALL", breakout=110.0, band=None
        )

    def test_first_symbol_takes_the_cash(self, bars: list) -> None:
        result = _run(bars, universe=["BIG", "SMALL"], risk_per_trade_pct=0.94, min_fee=3000.0)

        assert [p.symbol for p in result.open_positions] == ["BIG"]
        rejected = [o for o in result.orders if o.status == OrderStatus.REJECTED]
        assert [o.symbol for o in rejected] == ["SMALL"]

    def test_reversed_order_fills_both(self, bars: list) -> None:
        result = _run(bars, universe=["SMALL", "BIG"], risk_per_trade_pct=0.94, min_fee=3000.0)

        assert [p.symbol for p in result.open_positions] == ["SMALL", "BIG"]
        assert all(o.status == OrderStatus.FILLED for o in result.orders)


# =============================================================================
# Bar Ordering
# =============================================================================


class TestBarOrdering:
    """Exit is evaluated before entry for the same symbol and bar."""

    def test_reentry_on_exit_bar(self) -> None:
        request = BacktestRequest.model_validate(make_payload())
        series = PriceSeries("AAA", bars_from_closes("AAA", [50.0, 50.0, 50.0]))

        with (
            patch(
                "finhub_engine.backtest.simulator.evaluate_exit",
                return_value=ExitReason.SIGNAL,
            ),
            patch(
                "finhub_engine.backtest.simulator.evaluate_entry",
                side_effect=lambda series, day, close, request, atr_period: close - 1.0,
            ),
        ):
            result = Simulator(request, {"AAA": series}).run(series.dates)

        assert [(o.date, o.side) for o in result.orders] == [
            (day(0), OrderSide.BUY),
            (day(1), OrderSide.SELL),
            (day(1), OrderSide.BUY),
            (day(2), OrderSide.SELL),
            (day(2), OrderSide.BUY),
        ]
        assert len(result.trades) == 2
        assert len(result.open_positions) == 1

    def test_dates_must_increase(self) -> None:
        request = BacktestRequest.model_validate(make_payload())
        series = PriceSeries("AAA", bars_from_closes("AAA", [50.0, 50.0]))
        simulator = Simulator(request, {"AAA": series})

        simulator.process_date(day(1))
        with pytest.raises(ValueError):
            simulator.process_date(day(1))


# =============================================================================
# Signal Rules
# =============================================================================


class TestSignalRules:
    """Tests for evaluate_exit and evaluate_entry."""

    def test_stop_takes_precedence(self) -> None:
        series = PriceSeries("AAA", bars_from_closes("AAA", [100.0] * 30, band=1.0))
        position = OpenPosition("AAA", 10, 100.0, 0.0, 95.0, day(0))

        assert evaluate_exit(position, series, day(29), 94.0, 10) == ExitReason.STOP

    def test_breakdown_signal(self) -> None:
        series = PriceSeries("AAA", bars_from_closes("AAA", [100.0] * 30, band=1.0))
        position = OpenPosition("AAA", 10, 100.0, 0.0, 90.0, day(0))

        # lowest low over the window is 99
        assert evaluate_exit(position, series, day(29), 98.5, 10) == ExitReason.SIGNAL
        assert evaluate_exit(position, series, day(29), 99.0, 10) is None

    def test_entry_requires_breakout(self) -> None:
        request = BacktestRequest.model_validate(make_payload())
        series = PriceSeries("AAA", bars_from_closes("AAA", [100.0] * 30, band=1.0))

        # highest high is 101
        assert evaluate_entry(series, day(29), 101.0, request) is None
        stop = evaluate_entry(series, day(29), 102.0, request)
        assert stop is not None
        assert stop < 102.0

    def test_entry_stop_falls_back_to_lowest_low(self) -> None:
        request = BacktestRequest.model_validate(make_payload())
        series = PriceSeries("AAA", bars_from_closes("AAA", [100.0] * 30, band=None))

        assert evaluate_entry(series, day(29), 105.0, request) == 100.0


# =============================================================================
# Invariants
# =============================================================================


class TestInvariants:
    """Properties that hold for any run."""

    @pytest.fixture
    def result(self) -> BacktestResult:
        bars = (
            wave_bars("AAA")
            + wave_bars("BBB", phase=1.0, base=50.0)
            + wave_bars("CCC", phase=2.0, base=200.0)
        )
        return _run(
            bars,
            universe=["AAA", "BBB", "CCC"],
            commission_pct=0.1,
            min_fee=1.0,
            slippage_bps=5.0,
            spread_bps=5.0,
            breakout_lookback_sell=10,
        )

    def test_produces_trades(self, result: BacktestResult) -> None:
        assert len(result.trades) > 0

    def test_trade_windows(self, result: BacktestResult) -> None:
        for trade in result.trades:
            assert trade.entry_date < trade.exit_date
            assert trade.quantity > 0
            assert trade.bars_held >= 1
            assert trade.pnl_net == pytest.approx(trade.pnl_gross - trade.costs)

    def test_no_overlapping_trades_per_symbol(self, result: BacktestResult) -> None:
        for symbol in ("AAA", "BBB", "CCC"):
            trades = sorted(
                (t for t in result.trades if t.symbol == symbol),
                key=lambda t: t.entry_date,
            )
            for prev, curr in zip(trades, trades[1:], strict=False):
                assert curr.entry_date >= prev.exit_date

        open_symbols = [p.symbol for p in result.open_positions]
        assert len(open_symbols) == len(set(open_symbols))

    def test_cash_never_negative(self, result: BacktestResult) -> None:
        assert all(p.cash >= 0 for p in result.equity_curve)

    def test_dates_strictly_increase(self, result: BacktestResult) -> None:
        dates = [p.date for p in result.equity_curve]
        assert dates == sorted(set(dates))

    def test_final_equity_identity(self, result: BacktestResult) -> None:
        last_day = result.equity_curve[-1].date
        bars = (
            wave_bars("AAA")
            + wave_bars("BBB", phase=1.0, base=50.0)
            + wave_bars("CCC", phase=2.0, base=200.0)
        )
        closes = {b.symbol: b.close for b in bars if b.date == last_day}
        marked = sum(p.quantity * closes[p.symbol] for p in result.open_positions)

        assert result.final_equity == result.equity_curve[-1].equity
        assert result.final_equity == pytest.approx(result.final_cash + marked)

    def test_metrics_bounds(self, result: BacktestResult) -> None:
        assert result.metrics.max_drawdown <= 0
        assert 0.0 <= result.metrics.exposure <= 1.0
        assert 0.0 <= result.metrics.win_rate <= 1.0
        assert result.metrics.total_trades == len(result.trades)

    def test_deterministic(self, result: BacktestResult) -> None:
        bars = (
            wave_bars("AAA")
            + wave_bars("BBB", phase=1.0, base=50.0)
            + wave_bars("CCC", phase=2.0, base=200.0)
        )
        again = _run(
            bars,
            universe=["AAA", "BBB", "CCC"],
            commission_pct=0.1,
            min_fee=1.0,
            slippage_bps=5.0,
            spread_bps=5.0,
            breakout_lookback_sell=10,
        )

        assert again.trades == result.trades
        assert again.equity_curve == result.equity_curve
        assert again.orders == result.orders
        assert again.metrics == result.metrics
        assert again.request_hash == result.request_hash
