"""
Daily price bar domain model.

PriceBar is one OHLCV observation for an instrument on a date. PriceSeries
keeps a symbol's bars in an explicit date-sorted structure so lookups and
trailing windows never depend on mapping insertion order.
"""

import datetime as dt
import math
from bisect import bisect_left, bisect_right
from collections.abc import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finhub_engine.logging import get_logger

logger = get_logger(__name__)


class PriceBar(BaseModel):
    """
    A single daily OHLCV bar.

    Immutable to ensure deterministic backtesting. Price fields may be None
    when the provider did not supply them, and NaN or infinite prices are
    stored as None. Consumers skip a bar whose required field is missing
    instead of treating it as zero.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Instrument symbol")
    date: dt.date = Field(..., description="Trading date")

    open: float | None = Field(default=None, description="Opening price")
    high: float | None = Field(default=None, description="Highest price")
    low: float | None = Field(default=None, description="Lowest price")
    close: float | None = Field(default=None, description="Closing price")
    volume: int | None = Field(default=None, ge=0, description="Traded volume")

    @field_validator("open", "high", "low", "close")
    @classmethod
    def non_finite_as_missing(cls, v: float | None) -> float | None:
        """NaN and infinite prices count as missing."""
        if v is not None and not math.isfinite(v):
            return None
        return v

    @property
    def high_or_close(self) -> float | None:
        """High price, falling back to close when high is missing."""
        return self.high if self.high is not None else self.close

    @property
    def low_or_close(self) -> float | None:
        """Low price, falling back to close when low is missing."""
        return self.low if self.low is not None else self.close

    @property
    def has_range(self) -> bool:
        """Whether high, low and close are all present."""
        return self.high is not None and self.low is not None and self.close is not None


class PriceSeries:
    """
    Date-sorted bars for one symbol.

    Bars are held in two parallel lists (dates and bars) kept in strictly
    increasing date order; all lookups use bisection. When the input holds
    two bars for the same date the later one wins.
    """

    __slots__ = ("symbol", "_dates", "_bars")

    def __init__(self, symbol: str, bars: Iterable[PriceBar] = ()) -> None:
        self.symbol = symbol
        by_date: dict[dt.date, PriceBar] = {}
        for bar in bars:
            if bar.date in by_date:
                logger.warning(
                    "Duplicate bar for %s on %s, keeping the later row",
                    symbol,
                    bar.date.isoformat(),
                )
            by_date[bar.date] = bar
        self._dates: list[dt.date] = sorted(by_date)
        self._bars: list[PriceBar] = [by_date[d] for d in self._dates]

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[PriceBar]:
        return iter(self._bars)

    def __bool__(self) -> bool:
        return bool(self._bars)

    def __repr__(self) -> str:
        if not self._bars:
            return f"PriceSeries({self.symbol!r}, empty)"
        return (
            f"PriceSeries({self.symbol!r}, {len(self)} bars, "
            f"{self.first_date.isoformat()}..{self.last_date.isoformat()})"
        )

    @property
    def dates(self) -> list[dt.date]:
        """Dates of all bars, ascending."""
        return list(self._dates)

    @property
    def bars(self) -> list[PriceBar]:
        """All bars, ascending by date."""
        return list(self._bars)

    @property
    def first_date(self) -> dt.date:
        if not self._dates:
            raise ValueError(f"Series {self.symbol} is empty")
        return self._dates[0]

    @property
    def last_date(self) -> dt.date:
        if not self._dates:
            raise ValueError(f"Series {self.symbol} is empty")
        return self._dates[-1]

    def index_of(self, day: dt.date) -> int | None:
        """Position of the bar dated `day`, or None."""
        i = bisect_left(self._dates, day)
        if i < len(self._dates) and self._dates[i] == day:
            return i
        return None

    def get(self, day: dt.date) -> PriceBar | None:
        """Bar dated `day`, or None if the symbol did not trade that day."""
        i = self.index_of(day)
        return self._bars[i] if i is not None else None

    def bar_at(self, index: int) -> PriceBar:
        return self._bars[index]

    def window(self, start: dt.date, end: dt.date) -> list[PriceBar]:
        """Bars dated in the half-open range [start, end)."""
        lo = bisect_left(self._dates, start)
        hi = bisect_left(self._dates, end)
        return self._bars[lo:hi]

    def between(self, start: dt.date, end: dt.date) -> "PriceSeries":
        """New series restricted to the closed range [start, end]."""
        lo = bisect_left(self._dates, start)
        hi = bisect_right(self._dates, end)
        return PriceSeries(self.symbol, self._bars[lo:hi])
