"""
Price data sources for the backtest engine.
"""

from finhub_engine.data.memory_source import InMemoryPriceSource
from finhub_engine.data.parquet_store import ParquetPriceStore

__all__ = ["InMemoryPriceSource", "ParquetPriceStore"]
