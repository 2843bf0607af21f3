"""
Interfaces (abstract base classes) for the FinHub backtest engine.

These define the contracts of the engine's external collaborators:
- PriceSeriesSource: historical daily bars
- ResultSink: run persistence and retrieval
"""

from finhub_engine.interfaces.data_provider import PriceSeriesSource
from finhub_engine.interfaces.result_sink import ResultSink

__all__ = [
    "PriceSeriesSource",
    "ResultSink",
]
