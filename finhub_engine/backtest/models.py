"""
Backtest data models.

Defines contracts for backtest requests, results, trades, orders, equity
points and metrics.
"""

import datetime as dt
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

ENGINE_VERSION = "1.0.0"

TREND_BREAKOUT = "trend_breakout"


class ExitReason(str, Enum):
    """Why a position was closed."""

    STOP = "stop"
    SIGNAL = "signal"


class OrderSide(str, Enum):
    """Order side. Long-only: BUY opens, SELL closes."""

    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(str, Enum):
    """Order status in simulation."""

    FILLED = "filled"
    REJECTED = "rejected"


class RunStatus(str, Enum):
    """Lifecycle status of a persisted run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Request Models
# =============================================================================


class BacktestRequest(BaseModel):
    """
    Request to run a backtest.

    The universe order is significant: symbols earlier in the list get first
    claim on cash when several entries fire on the same bar.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    strategy_id: str = Field(..., description="Strategy identifier")
    universe: tuple[str, ...] = Field(..., description="Ordered symbols to backtest")
    start: dt.date = Field(
        ...,
        description="First date of the backtest range",
        validation_alias=AliasChoices("start", "start_date"),
    )
    end: dt.date = Field(
        ...,
        description="Last date of the backtest range (inclusive)",
        validation_alias=AliasChoices("end", "end_date"),
    )
    initial_capital: float = Field(
        ...,
        gt=0,
        description="Starting cash",
        validation_alias=AliasChoices("initial_capital", "initial_cash"),
    )
    risk_per_trade_pct: float = Field(
        ..., gt=0, le=100, description="Cash risked per entry, percent"
    )
    commission_pct: float = Field(default=0.0, ge=0, description="Commission, percent of notional")
    min_fee: float = Field(default=0.0, ge=0, description="Minimum commission per fill")
    slippage_bps: float = Field(default=0.0, ge=0, description="Slippage in basis points")
    spread_bps: float = Field(default=0.0, ge=0, description="Spread in basis points")
    breakout_lookback_buy: int = Field(..., gt=0, description="Entry breakout window, days")
    breakout_lookback_sell: int = Field(..., gt=0, description="Exit breakdown window, days")
    atr_multiplier: float = Field(..., gt=0, description="Stop distance in ATRs")
    user_id: int | None = Field(default=None, description="Requesting user, audit only")

    @field_validator("universe")
    @classmethod
    def normalize_universe(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Strip symbols, drop blanks and repeated symbols, keep first-seen order."""
        seen: dict[str, None] = {}
        for symbol in v:
            cleaned = symbol.strip()
            if cleaned:
                seen.setdefault(cleaned, None)
        if not seen:
            raise ValueError("universe must contain at least one symbol")
        return tuple(seen)

    @model_validator(mode="after")
    def check_date_range(self) -> "BacktestRequest":
        if self.start > self.end:
            raise ValueError(
                f"start ({self.start.isoformat()}) must not be after end ({self.end.isoformat()})"
            )
        return self

    def canonical_dict(self) -> dict[str, Any]:
        """JSON-ready form used for hashing and audit."""
        return self.model_dump(mode="json")


# =============================================================================
# Result Models
# =============================================================================


class EquityPoint(BaseModel):
    """Portfolio value at the close of one timeline date."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    equity: float = Field(description="Cash plus mark-to-market of open positions")
    cash: float = 0.0
    positions_value: float = 0.0
    open_positions: int = 0
    drawdown: float = Field(default=0.0, description="Fraction below running peak (<= 0)")


class TradeRecord(BaseModel):
    """Record of a completed round trip (entry + exit)."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    entry_date: dt.date
    entry_price: float = Field(description="Entry execution price after costs model")
    exit_date: dt.date
    exit_price: float = Field(description="Exit execution price after costs model")
    quantity: int
    pnl_gross: float
    costs: float = Field(description="Entry plus exit commission")
    pnl_net: float
    exit_reason: ExitReason
    bars_held: int = 0


class OrderRecord(BaseModel):
    """Record of a fill or of an entry rejected for lack of cash."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    symbol: str
    side: OrderSide
    quantity: int
    reference_price: float = Field(description="Bar close the fill was derived from")
    fill_price: float | None = None
    commission: float = 0.0
    status: OrderStatus
    rejection_reason: str | None = None


class PositionSnapshot(BaseModel):
    """A position still open at the end of a run."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    quantity: int
    entry_price: float
    entry_costs: float
    stop_price: float
    entry_date: dt.date
    bars_held: int = 0


class MetricsSummary(BaseModel):
    """Performance metrics summary."""

    cagr: float = 0.0
    max_drawdown: float = 0.0
    sharpe: float = 0.0
    sortino: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    exposure: float = 0.0

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_return_pct: float = 0.0
    final_equity: float = 0.0


class RunSummary(BaseModel):
    """Summary row stored alongside a run's trades, equity and metrics."""

    run_id: str
    status: RunStatus
    request_hash: str
    final_capital: float
    trades_count: int
    equity_points: int
    engine_version: str = ENGINE_VERSION


class BacktestResult(BaseModel):
    """Complete in-memory backtest result."""

    run_id: str | None = None
    status: RunStatus = RunStatus.COMPLETED
    request: BacktestRequest
    request_hash: str
    trades: list[TradeRecord] = Field(default_factory=list)
    equity_curve: list[EquityPoint] = Field(default_factory=list)
    metrics: MetricsSummary = Field(default_factory=MetricsSummary)
    orders: list[OrderRecord] = Field(default_factory=list)
    open_positions: list[PositionSnapshot] = Field(default_factory=list)
    final_cash: float
    final_equity: float
    symbols_loaded: list[str] = Field(default_factory=list)
    symbols_dropped: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    started_at: dt.datetime
    completed_at: dt.datetime | None = None
    engine_version: str = ENGINE_VERSION

    def to_summary(self) -> RunSummary:
        if self.run_id is None:
            raise ValueError("Result has no run_id; create the run before summarizing")
        return RunSummary(
            run_id=self.run_id,
            status=self.status,
            request_hash=self.request_hash,
            final_capital=self.final_equity,
            trades_count=len(self.trades),
            equity_points=len(self.equity_curve),
            engine_version=self.engine_version,
        )
