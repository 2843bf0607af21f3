"""
Domain models for the FinHub backtest engine.

- PriceBar: one daily OHLCV observation
- PriceSeries: a symbol's bars in date order
"""

from finhub_engine.domain.bar import PriceBar, PriceSeries

__all__ = [
    "PriceBar",
    "PriceSeries",
]
