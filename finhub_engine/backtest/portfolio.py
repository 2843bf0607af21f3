"""
Portfolio management for backtesting.

Tracks cash, open positions, orders, closed trades and the equity curve.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Any

from finhub_engine.backtest.broker_sim import Fill
from finhub_engine.backtest.models import (
    EquityPoint,
    ExitReason,
    OrderRecord,
    OrderSide,
    OrderStatus,
    PositionSnapshot,
    TradeRecord,
)
from finhub_engine.logging import get_logger

logger = get_logger(__name__)

INSUFFICIENT_CASH = "insufficient_cash"


@dataclass
class OpenPosition:
    """An open long position. At most one per symbol."""

    symbol: str
    quantity: int
    entry_price: float  # execution price, costs model applied
    entry_costs: float  # entry commission
    stop_price: float
    entry_date: dt.date
    bars_held: int = 0

    def should_stop(self, close: float) -> bool:
        return close <= self.stop_price

    def market_value(self, close: float) -> float:
        return close * self.quantity

    def snapshot(self) -> PositionSnapshot:
        return PositionSnapshot(
            symbol=self.symbol,
            quantity=self.quantity,
            entry_price=self.entry_price,
            entry_costs=self.entry_costs,
            stop_price=self.stop_price,
            entry_date=self.entry_date,
            bars_held=self.bars_held,
        )


@dataclass
class Portfolio:
    """
    Portfolio state manager.

    Invariants:
    - cash never goes negative; an entry whose total cost exceeds cash is
      rejected and recorded, cash untouched
    - at most one open position per symbol
    - equity = cash + sum(close * quantity) over positions marked that day
    """

    initial_cash: float
    cash: float = field(init=False)
    positions: dict[str, OpenPosition] = field(default_factory=dict)
    closed_trades: list[TradeRecord] = field(default_factory=list)
    orders: list[OrderRecord] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    high_water_mark: float | None = field(default=None, init=False)
    rejected_entries: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.cash = self.initial_cash

    @property
    def position_count(self) -> int:
        return len(self.positions)

    @property
    def final_equity(self) -> float:
        """Equity of the last recorded point, or initial cash before any."""
        if not self.equity_curve:
            return self.initial_cash
        return self.equity_curve[-1].equity

    def get_position(self, symbol: str) -> OpenPosition | None:
        return self.positions.get(symbol)

    def has_position(self, symbol: str) -> bool:
        return symbol in self.positions

    def open_position(
        self,
        fill: Fill,
        symbol: str,
        stop_price: float,
        day: dt.date,
    ) -> OpenPosition | None:
        """
        Open a position from a priced BUY fill if cash covers it.

        Returns:
            The new position, or None when the entry was rejected for
            insufficient cash (a rejected order is recorded).
        """
        if symbol in self.positions:
            raise ValueError(f"Position already open for {symbol}")

        total_cost = fill.total_cost
        if self.cash < total_cost:
            self.rejected_entries += 1
            self.orders.append(
                OrderRecord(
                    date=day,
                    symbol=symbol,
                    side=OrderSide.BUY,
                    quantity=fill.quantity,
                    reference_price=fill.reference_price,
                    fill_price=None,
                    status=OrderStatus.REJECTED,
                    rejection_reason=INSUFFICIENT_CASH,
                )
            )
            logger.debug(
                "Entry rejected: %s %d on %s needs %.2f, cash %.2f",
                symbol,
                fill.quantity,
                day.isoformat(),
                total_cost,
                self.cash,
            )
            return None

        self.cash -= total_cost
        position = OpenPosition(
            symbol=symbol,
            quantity=fill.quantity,
            entry_price=fill.fill_price,
            entry_costs=fill.commission,
            stop_price=stop_price,
            entry_date=day,
        )
        self.positions[symbol] = position
        self.orders.append(self._filled_order(fill, symbol, day))

        logger.debug(
            "Opened %s: %d @ %.5f stop=%.5f on %s",
            symbol,
            fill.quantity,
            fill.fill_price,
            stop_price,
            day.isoformat(),
        )
        return position

    def close_position(
        self,
        fill: Fill,
        symbol: str,
        day: dt.date,
        exit_reason: ExitReason,
    ) -> TradeRecord:
        """Close a position with a priced SELL fill and return the trade record."""
        position = self.positions.pop(symbol)

        pnl_gross = (fill.fill_price - position.entry_price) * position.quantity
        pnl_net = pnl_gross - position.entry_costs - fill.commission

        trade = TradeRecord(
            symbol=symbol,
            entry_date=position.entry_date,
            entry_price=position.entry_price,
            exit_date=day,
            exit_price=fill.fill_price,
            quantity=position.quantity,
            pnl_gross=pnl_gross,
            costs=position.entry_costs + fill.commission,
            pnl_net=pnl_net,
            exit_reason=exit_reason,
            bars_held=position.bars_held,
        )

        self.cash += fill.net_proceeds
        self.closed_trades.append(trade)
        self.orders.append(self._filled_order(fill, symbol, day))

        logger.debug(
            "Closed %s (%s) on %s: PnL=%.2f",
            symbol,
            exit_reason.value,
            day.isoformat(),
            pnl_net,
        )
        return trade

    def record_equity_point(
        self,
        day: dt.date,
        positions_value: float,
        open_positions: int,
    ) -> EquityPoint:
        """Record the close-of-day equity with drawdown from the running peak."""
        equity = self.cash + positions_value
        if self.high_water_mark is None or equity > self.high_water_mark:
            self.high_water_mark = equity
        peak = self.high_water_mark
        drawdown = (equity - peak) / peak if peak > 0 else 0.0

        point = EquityPoint(
            date=day,
            equity=equity,
            cash=self.cash,
            positions_value=positions_value,
            open_positions=open_positions,
            drawdown=drawdown,
        )
        self.equity_curve.append(point)
        return point

    def open_position_snapshots(self) -> list[PositionSnapshot]:
        return [pos.snapshot() for pos in self.positions.values()]

    def to_summary(self) -> dict[str, Any]:
        """Get portfolio summary."""
        return {
            "cash": self.cash,
            "equity": self.final_equity,
            "position_count": self.position_count,
            "trade_count": len(self.closed_trades),
            "order_count": len(self.orders),
            "rejected_entries": self.rejected_entries,
            "high_water_mark": self.high_water_mark,
        }

    @staticmethod
    def _filled_order(fill: Fill, symbol: str, day: dt.date) -> OrderRecord:
        return OrderRecord(
            date=day,
            symbol=symbol,
            side=fill.side,
            quantity=fill.quantity,
            reference_price=fill.reference_price,
            fill_price=fill.fill_price,
            commission=fill.commission,
            status=OrderStatus.FILLED,
        )
