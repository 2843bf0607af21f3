"""
In-memory result sink.

Keeps run records and results in dicts. A persist() call builds every row
first and publishes them with a single assignment, so a failure while
building leaves nothing visible.
"""

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
from finhub_engine.interfaces import ResultSink
from finhub_engine.logging import get_logger
from finhub_engine.runtime.run_context import (
    completed_run_record,
    failed_run_record,
    generate_run_id,
    new_run_record,
)

logger = get_logger(__name__)


class InMemoryResultSink(ResultSink):
    """ResultSink holding everything in process memory."""

    def __init__(self) -> None:
        self._runs: dict[str, dict[str, Any]] = {}
        self._results: dict[str, dict[str, Any]] = {}

    def create_run(self, request: BacktestRequest, request_hash: str) -> str:
        run_id = generate_run_id()
        self._runs[run_id] = new_run_record(run_id, request, request_hash)
        logger.debug("Created run %s", run_id)
        return run_id

    def persist(
        self,
        run_id: str,
        summary: RunSummary,
        trades: Sequence[TradeRecord],
        equity: Sequence[EquityPoint],
        metrics: MetricsSummary,
        orders: Sequence[OrderRecord] = (),
    ) -> None:
        record = self._require_run(run_id)
        results = {
            "trades": list(trades),
            "equity": list(equity),
            "metrics": metrics.model_copy(),
            "orders": list(orders),
        }
        updated = completed_run_record(record, summary)

        self._results[run_id] = results
        self._runs[run_id] = updated

    def mark_failed(self, run_id: str, message: str) -> None:
        record = self._require_run(run_id)
        self._runs[run_id] = failed_run_record(record, message)

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        record = self._runs.get(run_id)
        return dict(record) if record is not None else None

    def get_trades(self, run_id: str) -> list[TradeRecord]:
        return list(self._results.get(run_id, {}).get("trades", []))

    def get_equity(self, run_id: str) -> list[EquityPoint]:
        return list(self._results.get(run_id, {}).get("equity", []))

    def get_metrics(self, run_id: str) -> MetricsSummary | None:
        return self._results.get(run_id, {}).get("metrics")

    def get_orders(self, run_id: str) -> list[OrderRecord]:
        return list(self._results.get(run_id, {}).get("orders", []))

    def list_runs(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._runs.values()]

    def _require_run(self, run_id: str) -> dict[str, Any]:
        record = self._runs.get(run_id)
        if record is None:
            raise KeyError(f"Unknown run: {run_id}")
        return record
