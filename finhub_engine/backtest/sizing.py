"""
Position sizing for backtesting.

Risk-budget sizing: the cash put at risk between entry and stop is a fixed
percentage of current cash.
"""

import math
from dataclasses import dataclass

from finhub_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SizeResult:
    """Result of position sizing calculation."""

    quantity: int
    risk_amount: float = 0.0
    stop_distance: float = 0.0
    rejection_reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.rejection_reason is None and self.quantity > 0


def calculate_position_size(
    cash: float,
    risk_per_trade_pct: float,
    entry_price: float,
    stop_price: float,
) -> SizeResult:
    """
    Calculate a whole-unit position size from the risk budget.

    quantity = floor((cash * risk_pct / 100) / (entry_price - stop_price))

    Args:
        cash: Cash available at the time of the signal
        risk_per_trade_pct: Percent of cash to risk
        entry_price: Signal price (bar close)
        stop_price: Initial stop, must be below entry_price

    Returns:
        SizeResult; quantity 0 with a rejection reason when no position fits.
    """
    stop_distance = entry_price - stop_price
    if stop_distance <= 0:
        return SizeResult(
            quantity=0,
            rejection_reason="Stop price is not below entry price",
        )

    risk_amount = cash * risk_per_trade_pct / 100.0
    if risk_amount <= 0:
        return SizeResult(quantity=0, stop_distance=stop_distance, rejection_reason="No cash to risk")

    quantity = math.floor(risk_amount / stop_distance)
    if quantity <= 0:
        logger.debug(
            "Risk budget %.2f below one unit at stop distance %.5f",
            risk_amount,
            stop_distance,
        )
        return SizeResult(
            quantity=0,
            risk_amount=risk_amount,
            stop_distance=stop_distance,
            rejection_reason="Risk budget smaller than one unit",
        )

    return SizeResult(
        quantity=quantity,
        risk_amount=risk_amount,
        stop_distance=stop_distance,
    )
