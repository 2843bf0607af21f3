"""
Broker simulation for backtesting.

Simulates fills at the bar close with configurable spread, slippage and
commission (percentage of notional with a minimum fee).
"""

from dataclasses import dataclass

from finhub_engine.backtest.models import BacktestRequest, OrderSide
from finhub_engine.logging import get_logger

logger = get_logger(__name__)

BPS = 10_000.0


@dataclass(frozen=True)
class Fill:
    """Result of pricing a fill."""

    side: OrderSide
    reference_price: float
    fill_price: float
    quantity: int
    commission: float

    @property
    def notional(self) -> float:
        return self.fill_price * self.quantity

    @property
    def total_cost(self) -> float:
        """Cash needed for a BUY fill, commission included."""
        return self.notional + self.commission

    @property
    def net_proceeds(self) -> float:
        """Cash received for a SELL fill, commission deducted."""
        return self.notional - self.commission


@dataclass(frozen=True)
class CostModel:
    """
    Execution cost model.

    Fill price model:
    - BUY: close * (1 + (slippage_bps + spread_bps) / 10000)
    - SELL: close * (1 - (slippage_bps + spread_bps) / 10000)

    Commission: max(fill_price * quantity * commission_pct / 100, min_fee)
    """

    slippage_bps: float = 0.0
    spread_bps: float = 0.0
    commission_pct: float = 0.0
    min_fee: float = 0.0

    @classmethod
    def from_request(cls, request: BacktestRequest) -> "CostModel":
        return cls(
            slippage_bps=request.slippage_bps,
            spread_bps=request.spread_bps,
            commission_pct=request.commission_pct,
            min_fee=request.min_fee,
        )

    @property
    def friction(self) -> float:
        """Combined slippage and spread as a fraction of price."""
        return (self.slippage_bps + self.spread_bps) / BPS

    def buy_price(self, close: float) -> float:
        return close * (1.0 + self.friction)

    def sell_price(self, close: float) -> float:
        return close * (1.0 - self.friction)

    def commission(self, fill_price: float, quantity: int) -> float:
        """Commission for a fill, never below the minimum fee."""
        return max(fill_price * quantity * self.commission_pct / 100.0, self.min_fee)

    def price_fill(self, side: OrderSide, close: float, quantity: int) -> Fill:
        """
        Price a fill of `quantity` units against a bar close.

        Args:
            side: BUY to open, SELL to close
            close: Bar close the fill is derived from
            quantity: Whole units

        Returns:
            Fill with execution price and commission
        """
        if side == OrderSide.BUY:
            fill_price = self.buy_price(close)
        else:
            fill_price = self.sell_price(close)

        fill = Fill(
            side=side,
            reference_price=close,
            fill_price=fill_price,
            quantity=quantity,
            commission=self.commission(fill_price, quantity),
        )
        logger.debug(
            "Priced %s %d @ %.5f (close=%.5f, commission=%.2f)",
            side.value,
            quantity,
            fill_price,
            close,
            fill.commission,
        )
        return fill
