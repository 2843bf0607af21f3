"""
Series loading and the global date index.

Every universe series is fully loaded before the simulation starts; the
simulation then walks the sorted union of their dates.
"""

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass, field

from finhub_engine.backtest.errors import DataUnavailableError
from finhub_engine.backtest.models import BacktestRequest
from finhub_engine.domain import PriceSeries
from finhub_engine.interfaces import PriceSeriesSource
from finhub_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class LoadedUniverse:
    """Series that loaded, keyed in universe order, plus symbols dropped."""

    series: dict[str, PriceSeries] = field(default_factory=dict)
    dropped: list[str] = field(default_factory=list)

    @property
    def symbols(self) -> list[str]:
        return list(self.series)

    @property
    def warnings(self) -> list[str]:
        return [f"No price data for {symbol} in range, symbol skipped" for symbol in self.dropped]


def load_universe(source: PriceSeriesSource, request: BacktestRequest) -> LoadedUniverse:
    """
    Load every universe symbol's bars for the request range.

    Each series is clipped to [start, end] whatever the source returns.
    Symbols without bars are dropped.

    Raises:
        DataUnavailableError: no symbol has any bar in range
    """
    loaded = LoadedUniverse()
    for symbol in request.universe:
        series = source.get_series(symbol, request.start, request.end)
        if series:
            series = series.between(request.start, request.end)
        if not series:
            logger.info(
                "No bars for %s between %s and %s, dropping",
                symbol,
                request.start.isoformat(),
                request.end.isoformat(),
            )
            loaded.dropped.append(symbol)
            continue
        loaded.series[symbol] = series
        logger.debug("Loaded %r", series)

    if not loaded.series:
        raise DataUnavailableError(
            f"No price data for universe {', '.join(request.universe)} between "
            f"{request.start.isoformat()} and {request.end.isoformat()}",
            symbols=list(request.universe),
        )
    return loaded


def build_date_index(series_by_symbol: Mapping[str, PriceSeries]) -> list[dt.date]:
    """Sorted union of all bar dates, each date once."""
    dates: set[dt.date] = set()
    for series in series_by_symbol.values():
        dates.update(series.dates)
    return sorted(dates)
