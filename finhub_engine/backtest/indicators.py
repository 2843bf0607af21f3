"""
Technical indicators for the trend-breakout strategy.

All functions are pure and deterministic - same inputs always produce same
outputs. Windows are measured in calendar days and only use bars strictly
before (highest/lowest) or up to (ATR) the evaluation date, so there is no
lookahead. Each call bisects into the sorted series and touches only the
bars inside its window.
"""

import datetime as dt

from finhub_engine.domain import PriceSeries

DEFAULT_ATR_PERIOD = 14


def _lookback_bars(series: PriceSeries, current: dt.date, lookback_days: int) -> list | None:
    """
    Bars dated in [current - lookback_days, current).

    Returns None while the series' history does not yet reach back to the
    window start (warm-up), so a half-filled window never produces a signal.
    """
    if lookback_days <= 0 or not series:
        return None
    window_start = current - dt.timedelta(days=lookback_days)
    if series.first_date > window_start:
        return None
    return series.window(window_start, current)


def highest(series: PriceSeries, current: dt.date, lookback_days: int) -> float | None:
    """
    Highest high over the trailing window strictly before `current`.

    Uses the close when a bar's high is missing; bars with neither are
    ignored.

    Args:
        series: Symbol's price series
        current: Evaluation date (excluded from the window)
        lookback_days: Window length in calendar days

    Returns:
        Highest value, or None if the window is not covered or holds no values.
    """
    bars = _lookback_bars(series, current, lookback_days)
    if bars is None:
        return None
    values = [b.high_or_close for b in bars if b.high_or_close is not None]
    return max(values) if values else None


def lowest(series: PriceSeries, current: dt.date, lookback_days: int) -> float | None:
    """
    Lowest low over the trailing window strictly before `current`.

    Uses the close when a bar's low is missing; bars with neither are ignored.
    """
    bars = _lookback_bars(series, current, lookback_days)
    if bars is None:
        return None
    values = [b.low_or_close for b in bars if b.low_or_close is not None]
    return min(values) if values else None


def true_range(high: float, low: float, prev_close: float | None) -> float:
    """True range of a bar given the previous bar's close (if any)."""
    tr = high - low
    if prev_close is not None:
        tr = max(tr, abs(high - prev_close), abs(low - prev_close))
    return tr


def atr(series: PriceSeries, current: dt.date, period: int = DEFAULT_ATR_PERIOD) -> float | None:
    """
    Average True Range over the `period` calendar days ending on `current`.

    The previous close of a bar is the close of the bar just before it in the
    series, whatever its date. Bars missing high, low or close contribute no
    observation.

    Args:
        series: Symbol's price series
        current: Evaluation date (included in the window)
        period: Window length in calendar days

    Returns:
        Arithmetic mean of the true ranges in (current - period, current],
        or None when fewer than period / 2 observations exist.
    """
    if period <= 0 or not series:
        return None

    window_start = current - dt.timedelta(days=period - 1)
    window = series.window(window_start, current + dt.timedelta(days=1))
    if not window:
        return None

    first_index = series.index_of(window[0].date)
    prev_close = series.bar_at(first_index - 1).close if first_index else None

    ranges: list[float] = []
    for bar in window:
        if bar.has_range:
            ranges.append(true_range(bar.high, bar.low, prev_close))
        prev_close = bar.close

    if len(ranges) < period / 2:
        return None
    return sum(ranges) / len(ranges)
