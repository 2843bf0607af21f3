"""
Run identifiers and run record helpers.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from finhub_engine.backtest.models import BacktestRequest, RunStatus, RunSummary


def generate_run_id(prefix: str = "bt") -> str:
    """
    Generate a unique run ID.

    Format: {prefix}_{timestamp}_{uuid8}
    Example: bt_20240115_143022_a1b2c3d4

    Args:
        prefix: ID prefix

    Returns:
        Unique run ID string.
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{short_uuid}"


def new_run_record(run_id: str, request: BacktestRequest, request_hash: str) -> dict[str, Any]:
    """Initial record of a run in `running` status."""
    return {
        "run_id": run_id,
        "status": RunStatus.RUNNING.value,
        "strategy_id": request.strategy_id,
        "user_id": request.user_id,
        "request": request.canonical_dict(),
        "request_hash": request_hash,
        "created_at": datetime.now(UTC).isoformat(),
        "completed_at": None,
        "error": None,
        "final_capital": None,
        "trades_count": None,
        "equity_points": None,
        "engine_version": None,
    }


def completed_run_record(record: dict[str, Any], summary: RunSummary) -> dict[str, Any]:
    """Copy of a run record updated with a completed summary."""
    return {
        **record,
        "status": summary.status.value,
        "completed_at": datetime.now(UTC).isoformat(),
        "error": None,
        "final_capital": summary.final_capital,
        "trades_count": summary.trades_count,
        "equity_points": summary.equity_points,
        "engine_version": summary.engine_version,
    }


def failed_run_record(record: dict[str, Any], message: str) -> dict[str, Any]:
    """Copy of a run record marked failed."""
    return {
        **record,
        "status": RunStatus.FAILED.value,
        "completed_at": datetime.now(UTC).isoformat(),
        "error": message,
    }
