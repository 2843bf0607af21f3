"""
Run persistence for the backtest engine.
"""

from finhub_engine.runtime.artefacts import ArtefactResultSink
from finhub_engine.runtime.memory_sink import InMemoryResultSink
from finhub_engine.runtime.run_context import generate_run_id

__all__ = ["ArtefactResultSink", "InMemoryResultSink", "generate_run_id"]
