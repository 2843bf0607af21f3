#!/usr/bin/env python3
"""
Import daily OHLCV bars from CSV files into the local Parquet store.

Expected columns: date, open, high, low, close, volume (case-insensitive).
Missing values are kept as missing, never filled with zero. The symbol is
taken from --symbol or from the file name.

Usage:
    python scripts/ingest_prices.py data/csv/AAPL.csv data/csv/MSFT.csv
    python scripts/ingest_prices.py prices.csv --symbol AAPL
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from finhub_engine.config import get_settings
from finhub_engine.data.parquet_store import ParquetPriceStore
from finhub_engine.domain import PriceBar
from finhub_engine.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _optional(value: object, cast: type) -> float | int | None:
    return None if pd.isna(value) else cast(value)


def load_csv(path: Path, symbol: str) -> list[PriceBar]:
    """Parse a CSV of daily bars into PriceBar objects."""
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    if "date" not in df.columns:
        raise ValueError(f"{path}: no 'date' column")

    df["date"] = pd.to_datetime(df["date"]).dt.date
    for column in ("open", "high", "low", "close", "volume"):
        if column not in df.columns:
            df[column] = None

    bars = []
    for row in df.itertuples(index=False):
        bars.append(
            PriceBar(
                symbol=symbol,
                date=row.date,
                open=_optional(row.open, float),
                high=_optional(row.high, float),
                low=_optional(row.low, float),
                close=_optional(row.close, float),
                volume=_optional(row.volume, int),
            )
        )
    return bars


def main() -> int:
    parser = argparse.ArgumentParser(description="Import daily bars into the Parquet store")
    parser.add_argument("files", nargs="+", help="CSV files to import")
    parser.add_argument("--symbol", help="Symbol for all files (default: file stem)")
    parser.add_argument("--data-dir", help="Override FINHUB_DATA_DIR")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    data_dir = Path(args.data_dir) if args.data_dir else settings.data_dir
    store = ParquetPriceStore(data_dir)

    total = 0
    for file_name in args.files:
        path = Path(file_name)
        symbol = args.symbol or path.stem.upper()
        try:
            bars = load_csv(path, symbol)
        except (OSError, ValueError) as e:
            logger.error("Skipping %s: %s", path, e)
            continue

        written, replaced = store.write_bars(bars)
        total += written
        print(f"{symbol:10} {written:6d} bars ({replaced} replaced) -> {store.bars_dir}")

    print(f"\nImported {total} bars")
    return 0


if __name__ == "__main__":
    sys.exit(main())
