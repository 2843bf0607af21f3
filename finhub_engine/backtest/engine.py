"""
Backtest Engine - Deterministic bar-driven backtesting.

Main orchestration for running a backtest:
- Request validation and canonical hashing
- Run registration in the result sink
- Loading every universe series up front
- Per-bar simulation of the trend-breakout strategy
- Metrics calculation
- Atomic persistence of summary, trades, equity, metrics and orders
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from finhub_engine.backtest.errors import PersistenceError
from finhub_engine.backtest.metrics import compute_metrics
from finhub_engine.backtest.models import (
    BacktestRequest,
    BacktestResult,
    EquityPoint,
    MetricsSummary,
    OrderRecord,
    RunStatus,
    TradeRecord,
)
from finhub_engine.backtest.simulator import simulate
from finhub_engine.backtest.timeline import build_date_index, load_universe
from finhub_engine.backtest.validator import validate_request
from finhub_engine.config import Settings, get_settings
from finhub_engine.interfaces import PriceSeriesSource, ResultSink
from finhub_engine.logging import clear_run_id, get_logger, set_run_id

logger = get_logger(__name__)

RequestPayload = BacktestRequest | Mapping[str, Any]


def _execute(
    request: BacktestRequest,
    request_hash: str,
    source: PriceSeriesSource,
    settings: Settings,
    run_id: str | None = None,
) -> BacktestResult:
    """Load, simulate and measure an already validated request."""
    started_at = datetime.now(UTC)

    logger.info(
        "Starting backtest: strategy=%s, %d symbols, %s to %s, hash=%s",
        request.strategy_id,
        len(request.universe),
        request.start.isoformat(),
        request.end.isoformat(),
        request_hash[:12],
    )

    loaded = load_universe(source, request)
    dates = build_date_index(loaded.series)
    logger.debug("Date index: %d dates across %d symbols", len(dates), len(loaded.series))

    sim = simulate(request, loaded.series, dates, atr_period=settings.atr_period)

    metrics = compute_metrics(
        equity_curve=sim.equity_curve,
        trades=sim.trades,
        initial_capital=request.initial_capital,
        periods_per_year=settings.periods_per_year,
        epsilon=settings.return_epsilon,
    )

    warnings = loaded.warnings
    if sim.rejected_entries:
        warnings.append(f"{sim.rejected_entries} entries rejected for insufficient cash")

    completed_at = datetime.now(UTC)

    logger.info(
        "Backtest completed: %d trades, %d open, final equity=%.2f, Sharpe=%.2f, MaxDD=%.2f%%",
        len(sim.trades),
        len(sim.open_positions),
        sim.final_equity,
        metrics.sharpe,
        metrics.max_drawdown * 100,
    )

    return BacktestResult(
        run_id=run_id,
        status=RunStatus.COMPLETED,
        request=request,
        request_hash=request_hash,
        trades=sim.trades,
        equity_curve=sim.equity_curve,
        metrics=metrics,
        orders=sim.orders,
        open_positions=sim.open_positions,
        final_cash=sim.final_cash,
        final_equity=sim.final_equity,
        symbols_loaded=loaded.symbols,
        symbols_dropped=loaded.dropped,
        warnings=warnings,
        started_at=started_at,
        completed_at=completed_at,
    )


def run_simulation(
    payload: RequestPayload,
    source: PriceSeriesSource,
    settings: Settings | None = None,
) -> BacktestResult:
    """
    Validate and simulate a request without touching any result sink.

    Args:
        payload: BacktestRequest or the caller's JSON mapping
        source: Price series source
        settings: Engine settings (defaults to get_settings())

    Returns:
        BacktestResult with no run_id

    Raises:
        ValidationError: invalid request
        DataUnavailableError: no symbol has bars in range
    """
    request, request_hash = validate_request(payload)
    return _execute(request, request_hash, source, settings or get_settings())


class BacktestEngine:
    """
    Orchestrates validation, simulation and persistence of backtest runs.

    Each run() builds fresh simulation state; the engine holds no state
    between runs beyond its collaborators.
    """

    def __init__(
        self,
        source: PriceSeriesSource,
        sink: ResultSink,
        settings: Settings | None = None,
    ):
        """
        Initialize backtest engine.

        Args:
            source: Store for reading historical bars
            sink: Store for run records and results
            settings: Engine settings (defaults to get_settings())
        """
        self._source = source
        self._sink = sink
        self._settings = settings or get_settings()

    def run(self, payload: RequestPayload) -> BacktestResult:
        """
        Run a backtest and persist its results.

        Args:
            payload: BacktestRequest or the caller's JSON mapping

        Returns:
            Persisted BacktestResult (status completed)

        Raises:
            ValidationError: invalid request; nothing was created in the sink
            DataUnavailableError: no data; the run is marked failed
            PersistenceError: results could not be stored; the run is marked
                failed and the error carries the in-memory result
        """
        request, request_hash = validate_request(payload)

        run_id = self._sink.create_run(request, request_hash)
        set_run_id(run_id)
        try:
            try:
                result = _execute(request, request_hash, self._source, self._settings, run_id)
            except Exception as e:
                logger.error("Backtest run %s failed: %s", run_id, e)
                self._mark_failed(run_id, str(e))
                raise
            return self.persist(result)
        finally:
            clear_run_id()

    def simulate(self, payload: RequestPayload) -> BacktestResult:
        """Validate and simulate without creating or persisting a run."""
        return run_simulation(payload, self._source, self._settings)

    def persist(self, result: BacktestResult) -> BacktestResult:
        """
        Atomically store a simulated result under its run.

        Can be called again with the result carried by a PersistenceError to
        retry persistence alone.

        Returns:
            The result with status completed

        Raises:
            ValueError: result has no run_id
            PersistenceError: the sink failed; the run is marked failed
        """
        if result.run_id is None:
            raise ValueError("Result has no run_id; use run() to create a run first")
        run_id = result.run_id

        completed = result.model_copy(update={"status": RunStatus.COMPLETED, "error": None})
        try:
            self._sink.persist(
                run_id,
                completed.to_summary(),
                completed.trades,
                completed.equity_curve,
                completed.metrics,
                orders=completed.orders,
            )
        except Exception as e:
            message = self._truncate(f"Failed to persist results: {e}")
            logger.error("Persistence failed for run %s: %s", run_id, e)
            self._mark_failed(run_id, message)
            failed = result.model_copy(update={"status": RunStatus.FAILED, "error": message})
            raise PersistenceError(message, run_id=run_id, result=failed) from e

        logger.info(
            "Persisted run %s: %d trades, %d equity points",
            run_id,
            len(completed.trades),
            len(completed.equity_curve),
        )
        return completed

    # =========================================================================
    # Retrieval
    # =========================================================================

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        return self._sink.get_run(run_id)

    def get_trades(self, run_id: str) -> list[TradeRecord]:
        return self._sink.get_trades(run_id)

    def get_equity(self, run_id: str) -> list[EquityPoint]:
        return self._sink.get_equity(run_id)

    def get_metrics(self, run_id: str) -> MetricsSummary | None:
        return self._sink.get_metrics(run_id)

    def get_orders(self, run_id: str) -> list[OrderRecord]:
        return self._sink.get_orders(run_id)

    def _truncate(self, message: str) -> str:
        return message[: self._settings.error_message_max_length]

    def _mark_failed(self, run_id: str, message: str) -> None:
        try:
            self._sink.mark_failed(run_id, self._truncate(message))
        except Exception:
            # the original failure is re-raised by the caller
            logger.exception("Could not mark run %s as failed", run_id)
