"""
ResultSink interface.

Defines the contract for persisting and retrieving backtest runs.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from finhub_engine.backtest.models import (
    BacktestRequest,
    EquityPoint,
    MetricsSummary,
    OrderRecord,
    RunSummary,
    TradeRecord,
)


class ResultSink(ABC):
    """
    Abstract base class for backtest result storage.

    persist() is a single transaction: after it returns every row is
    stored, and if it raises nothing from that call is visible.
    """

    @abstractmethod
    def create_run(self, request: BacktestRequest, request_hash: str) -> str:
        """
        Register a new run in `running` status.

        Args:
            request: Validated request
            request_hash: Canonical request hash (audit/dedup key)

        Returns:
            Run ID.
        """
        pass

    @abstractmethod
    def persist(
        self,
        run_id: str,
        summary: RunSummary,
        trades: Sequence[TradeRecord],
        equity: Sequence[EquityPoint],
        metrics: MetricsSummary,
        orders: Sequence[OrderRecord] = (),
    ) -> None:
        """
        Atomically store a completed run's summary, trades, equity and metrics.

        Orders (fills and rejected entries) are stored when the sink keeps them.

        Raises:
            Any exception on failure; nothing is committed in that case.
        """
        pass

    @abstractmethod
    def mark_failed(self, run_id: str, message: str) -> None:
        """Mark a run as failed with an error message."""
        pass

    # =========================================================================
    # Retrieval
    # =========================================================================

    @abstractmethod
    def get_run(self, run_id: str) -> dict[str, Any] | None:
        """Run record (request, hash, status, summary fields) or None."""
        pass

    @abstractmethod
    def get_trades(self, run_id: str) -> list[TradeRecord]:
        """Trades of a committed run, ordered by entry date."""
        pass

    @abstractmethod
    def get_equity(self, run_id: str) -> list[EquityPoint]:
        """Equity curve of a committed run, ordered by date."""
        pass

    @abstractmethod
    def get_metrics(self, run_id: str) -> MetricsSummary | None:
        """Metrics of a committed run, or None."""
        pass

    @abstractmethod
    def get_orders(self, run_id: str) -> list[OrderRecord]:
        """Orders of a committed run, in simulation order."""
        pass
