"""
Artefact-directory result sink.

Directory structure:
{data_dir}/
    runs/
        {run_id}/
            run.json             # Run record: request, hash, status, summary
            results/             # Present only once committed
                summary.json     # RunSummary
                trades.parquet   # Closed trades
                equity.parquet   # Equity curve with drawdown
                metrics.json     # MetricsSummary
                orders.parquet   # Fills and rejected entries

Results are written into a temporary sibling directory and committed with a
single rename, so readers see all result files or none. The completed run
record is written right after the rename; if that write fails the new results
are removed and any previously committed results are restored.
"""

import json
import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

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

RUN_FILE = "run.json"
RESULTS_DIR = "results"
SUMMARY_FILE = "summary.json"
TRADES_FILE = "trades.parquet"
EQUITY_FILE = "equity.parquet"
METRICS_FILE = "metrics.json"
ORDERS_FILE = "orders.parquet"

TRADE_COLUMNS = list(TradeRecord.model_fields)
EQUITY_COLUMNS = list(EquityPoint.model_fields)
ORDER_COLUMNS = list(OrderRecord.model_fields)


def atomic_write_json(path: Path, data: dict) -> None:
    """Write JSON atomically using temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=".json",
    )
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _write_records(path: Path, records: Sequence[Any], columns: list[str]) -> None:
    df = pd.DataFrame([r.model_dump(mode="json") for r in records], columns=columns)
    df.to_parquet(path, index=False)


def _read_records(path: Path) -> list[dict[str, Any]]:
    """Rows of a Parquet file as plain dicts, nulls as None."""
    if not path.exists():
        return []
    df = pd.read_parquet(path)
    if df.empty:
        return []
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


class ArtefactResultSink(ResultSink):
    """ResultSink storing each run as a directory of JSON and Parquet files."""

    def __init__(self, base_dir: Path) -> None:
        """
        Initialize artefact sink.

        Args:
            base_dir: Base data directory; runs live under runs/
        """
        self.base_dir = base_dir
        self.runs_dir = base_dir / "runs"
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def get_run_directory(self, run_id: str) -> Path | None:
        run_dir = self.runs_dir / run_id
        if run_dir.exists():
            return run_dir
        return None

    def _results_dir(self, run_id: str) -> Path:
        return self.runs_dir / run_id / RESULTS_DIR

    def _read_record(self, run_id: str) -> dict[str, Any] | None:
        path = self.runs_dir / run_id / RUN_FILE
        if not path.exists():
            return None
        with open(path) as f:
            return json.load(f)

    def _require_record(self, run_id: str) -> dict[str, Any]:
        record = self._read_record(run_id)
        if record is None:
            raise KeyError(f"Unknown run: {run_id}")
        return record

    # =========================================================================
    # Writes
    # =========================================================================

    def create_run(self, request: BacktestRequest, request_hash: str) -> str:
        run_id = generate_run_id()
        run_dir = self.runs_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=False)
        atomic_write_json(run_dir / RUN_FILE, new_run_record(run_id, request, request_hash))
        logger.debug("Created run directory %s", run_dir)
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
        record = self._require_record(run_id)
        run_dir = self.runs_dir / run_id
        results_dir = run_dir / RESULTS_DIR

        staging = Path(tempfile.mkdtemp(dir=run_dir, prefix=".tmp_results_"))
        try:
            with open(staging / SUMMARY_FILE, "w") as f:
                json.dump(summary.model_dump(mode="json"), f, indent=2)
            _write_records(staging / TRADES_FILE, trades, TRADE_COLUMNS)
            _write_records(staging / EQUITY_FILE, equity, EQUITY_COLUMNS)
            with open(staging / METRICS_FILE, "w") as f:
                json.dump(metrics.model_dump(mode="json"), f, indent=2)
            _write_records(staging / ORDERS_FILE, orders, ORDER_COLUMNS)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        previous = None
        committed = False
        try:
            if results_dir.exists():
                previous = run_dir / f".old_results_{os.getpid()}"
                os.rename(results_dir, previous)
            os.rename(staging, results_dir)
            committed = True
            atomic_write_json(run_dir / RUN_FILE, completed_run_record(record, summary))
        except Exception:
            logger.error("Commit failed for %s, restoring previous results", run_id)
            if committed:
                shutil.rmtree(results_dir, ignore_errors=True)
            shutil.rmtree(staging, ignore_errors=True)
            if previous is not None:
                os.rename(previous, results_dir)
            raise

        if previous is not None:
            shutil.rmtree(previous, ignore_errors=True)
        logger.debug("Committed results for %s", run_id)

    def mark_failed(self, run_id: str, message: str) -> None:
        record = self._require_record(run_id)
        atomic_write_json(self.runs_dir / run_id / RUN_FILE, failed_run_record(record, message))

    # =========================================================================
    # Retrieval
    # =========================================================================

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        return self._read_record(run_id)

    def get_summary(self, run_id: str) -> RunSummary | None:
        path = self._results_dir(run_id) / SUMMARY_FILE
        if not path.exists():
            return None
        with open(path) as f:
            return RunSummary.model_validate(json.load(f))

    def get_trades(self, run_id: str) -> list[TradeRecord]:
        rows = _read_records(self._results_dir(run_id) / TRADES_FILE)
        return [TradeRecord.model_validate(row) for row in rows]

    def get_equity(self, run_id: str) -> list[EquityPoint]:
        rows = _read_records(self._results_dir(run_id) / EQUITY_FILE)
        return [EquityPoint.model_validate(row) for row in rows]

    def get_metrics(self, run_id: str) -> MetricsSummary | None:
        path = self._results_dir(run_id) / METRICS_FILE
        if not path.exists():
            return None
        with open(path) as f:
            return MetricsSummary.model_validate(json.load(f))

    def get_orders(self, run_id: str) -> list[OrderRecord]:
        rows = _read_records(self._results_dir(run_id) / ORDERS_FILE)
        return [OrderRecord.model_validate(row) for row in rows]

    def list_runs(self, limit: int = 100) -> list[dict[str, Any]]:
        """
        List recent runs, newest first.

        Args:
            limit: Maximum number of runs to return

        Returns:
            List of run records.
        """
        runs = []
        for run_dir in sorted(self.runs_dir.iterdir(), reverse=True):
            if not run_dir.is_dir():
                continue
            record = self._read_record(run_dir.name)
            if record is None:
                continue
            runs.append(record)
            if len(runs) >= limit:
                break
        return runs
