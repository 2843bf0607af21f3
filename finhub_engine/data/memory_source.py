"""
In-memory price source.

Holds bars per symbol in memory; used by tests and by callers that already
have their data loaded.
"""

import datetime as dt
from collections.abc import Iterable

from finhub_engine.domain import PriceBar, PriceSeries
from finhub_engine.interfaces import PriceSeriesSource


class InMemoryPriceSource(PriceSeriesSource):
    """PriceSeriesSource backed by a dict of symbol -> PriceSeries."""

    def __init__(self, bars: Iterable[PriceBar] = ()) -> None:
        self._series: dict[str, PriceSeries] = {}
        self.calls: list[tuple[str, dt.date, dt.date]] = []
        self.add_bars(bars)

    def add_bars(self, bars: Iterable[PriceBar]) -> None:
        """Add bars, merging with existing ones by date (new bars win)."""
        by_symbol: dict[str, list[PriceBar]] = {}
        for bar in bars:
            by_symbol.setdefault(bar.symbol, []).append(bar)
        for symbol, new_bars in by_symbol.items():
            existing = self._series.get(symbol)
            merged = (existing.bars if existing else []) + new_bars
            self._series[symbol] = PriceSeries(symbol, merged)

    def add_series(self, series: PriceSeries) -> None:
        self._series[series.symbol] = series

    def symbols(self) -> list[str]:
        return sorted(self._series)

    def get_series(self, symbol: str, start: dt.date, end: dt.date) -> PriceSeries:
        self.calls.append((symbol, start, end))
        series = self._series.get(symbol)
        if series is None:
            return PriceSeries(symbol)
        return series.between(start, end)
