#!/usr/bin/env python3
"""
Quick backtest runner for the trend-breakout strategy.

Reads bars from the local Parquet store and stores results as run artefacts
under {data_dir}/runs.

Usage:
    python scripts/run_backtest.py --symbols AAPL MSFT --start 2023-01-01 --end 2024-12-31
    python scripts/run_backtest.py --request request.json
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from finhub_engine.backtest.engine import BacktestEngine
from finhub_engine.backtest.errors import BacktestError, PersistenceError
from finhub_engine.config import get_settings
from finhub_engine.data.parquet_store import ParquetPriceStore
from finhub_engine.logging import setup_logging
from finhub_engine.runtime.artefacts import ArtefactResultSink


def build_payload(args: argparse.Namespace) -> dict:
    """Request payload from a JSON file or from command-line flags."""
    if args.request:
        with open(args.request) as f:
            return json.load(f)

    return {
        "strategy_id": "trend_breakout",
        "universe": args.symbols,
        "start_date": args.start,
        "end_date": args.end,
        "initial_capital": args.capital,
        "risk_per_trade_pct": args.risk,
        "commission_pct": args.commission,
        "min_fee": args.min_fee,
        "slippage_bps": args.slippage,
        "spread_bps": args.spread,
        "breakout_lookback_buy": args.buy_lookback,
        "breakout_lookback_sell": args.sell_lookback,
        "atr_multiplier": args.atr_multiplier,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a trend_breakout backtest")
    parser.add_argument("--request", help="Path to a JSON request (overrides flags)")
    parser.add_argument("--symbols", nargs="+", default=["AAPL"], help="Universe, in priority order")
    parser.add_argument("--start", default="2023-01-01", help="Start date")
    parser.add_argument("--end", default="2024-12-31", help="End date")
    parser.add_argument("--capital", type=float, default=100000.0, help="Initial capital")
    parser.add_argument("--risk", type=float, default=1.0, help="Risk per trade, percent")
    parser.add_argument("--commission", type=float, default=0.1, help="Commission, percent")
    parser.add_argument("--min-fee", type=float, default=1.0, help="Minimum fee per fill")
    parser.add_argument("--slippage", type=float, default=5.0, help="Slippage, bps")
    parser.add_argument("--spread", type=float, default=2.0, help="Spread, bps")
    parser.add_argument("--buy-lookback", type=int, default=20, help="Breakout lookback, days")
    parser.add_argument("--sell-lookback", type=int, default=10, help="Breakdown lookback, days")
    parser.add_argument("--atr-multiplier", type=float, default=2.0, help="Stop distance in ATRs")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)

    engine = BacktestEngine(
        ParquetPriceStore(settings.data_dir),
        ArtefactResultSink(settings.data_dir),
        settings,
    )

    try:
        result = engine.run(build_payload(args))
    except PersistenceError as e:
        print(f"Simulation finished but results were not stored: {e}")
        return 2
    except BacktestError as e:
        print(f"Backtest failed ({e.kind.value}): {e}")
        return 1

    print(f"\n{'='*60}")
    print(f"Run ID: {result.run_id}")
    print(f"Symbols: {', '.join(result.symbols_loaded)}")
    if result.symbols_dropped:
        print(f"Dropped: {', '.join(result.symbols_dropped)}")
    print(f"Total Trades: {len(result.trades)}")
    print(f"Open Positions: {len(result.open_positions)}")
    print(f"Final Equity: {result.final_equity:.2f}")
    print("\nMetrics:")
    for key, value in result.metrics.model_dump().items():
        if isinstance(value, float):
            print(f"  {key}: {value:.4f}")
        else:
            print(f"  {key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
