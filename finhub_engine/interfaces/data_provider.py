"""
PriceSeriesSource interface.

Defines the contract for reading historical daily bars.
"""

import datetime as dt
from abc import ABC, abstractmethod

from finhub_engine.domain import PriceSeries


class PriceSeriesSource(ABC):
    """
    Abstract base class for read-only daily price sources.

    The engine calls get_series once per universe symbol before the
    simulation starts and never during it.
    """

    @abstractmethod
    def get_series(
        self,
        symbol: str,
        start: dt.date,
        end: dt.date,
    ) -> PriceSeries:
        """
        Get the daily bars for a symbol.

        Args:
            symbol: Instrument symbol
            start: First date (inclusive)
            end: Last date (inclusive)

        Returns:
            Date-ordered series; empty when the symbol has no data in range.
        """
        pass
