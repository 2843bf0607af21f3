"""
Parquet-backed daily bar store.

Directory structure:
{data_dir}/
    parquet/
        bars/
            {symbol}.parquet   # one row per date, sorted ascending

Writes merge with existing rows by date (new rows win) and replace the
file atomically via temp file + rename.
"""

import datetime as dt
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pandas as pd

from finhub_engine.domain import PriceBar, PriceSeries
from finhub_engine.interfaces import PriceSeriesSource
from finhub_engine.logging import get_logger

logger = get_logger(__name__)

BAR_COLUMNS = ["symbol", "date", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close"]


def _optional_float(value: Any) -> float | None:
    return None if pd.isna(value) else float(value)


def _optional_int(value: Any) -> int | None:
    return None if pd.isna(value) else int(value)


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    """Convert bars to a DataFrame with ISO date strings and nullable prices."""
    rows = [
        {
            "symbol": b.symbol,
            "date": b.date.isoformat(),
            "open": b.open,
            "high": b.high,
            "low": b.low,
            "close": b.close,
            "volume": b.volume,
        }
        for b in bars
    ]
    df = pd.DataFrame(rows, columns=BAR_COLUMNS)
    df = df.astype({col: "float64" for col in PRICE_COLUMNS})
    df["volume"] = df["volume"].astype("Int64")
    return df


def frame_to_bars(df: pd.DataFrame) -> list[PriceBar]:
    """Convert a bar DataFrame back to PriceBar objects."""
    return [
        PriceBar(
            symbol=row.symbol,
            date=dt.date.fromisoformat(row.date),
            open=_optional_float(row.open),
            high=_optional_float(row.high),
            low=_optional_float(row.low),
            close=_optional_float(row.close),
            volume=_optional_int(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


class ParquetPriceStore(PriceSeriesSource):
    """
    Store and read daily bars, one Parquet file per symbol.

    Missing prices are stored as nulls and come back as None, never zero.
    """

    def __init__(self, data_dir: Path) -> None:
        """
        Initialize store.

        Args:
            data_dir: Root data directory; bars live under parquet/bars/
        """
        self.data_dir = data_dir
        self.bars_dir = data_dir / "parquet" / "bars"
        self.bars_dir.mkdir(parents=True, exist_ok=True)

    def _symbol_path(self, symbol: str) -> Path:
        return self.bars_dir / f"{symbol}.parquet"

    def _read_frame(self, symbol: str) -> pd.DataFrame | None:
        path = self._symbol_path(symbol)
        if not path.exists():
            return None
        return pd.read_parquet(path)

    def write_bars(self, bars: Iterable[PriceBar]) -> tuple[int, int]:
        """
        Write bars, merging with stored rows by (symbol, date).

        Args:
            bars: Bars for any number of symbols

        Returns:
            (rows_written, rows_replaced): rows in the input, and how many of
            them replaced a stored row or an earlier input row for the same date.
        """
        by_symbol: dict[str, list[PriceBar]] = {}
        for bar in bars:
            by_symbol.setdefault(bar.symbol, []).append(bar)

        written = 0
        replaced = 0
        for symbol, symbol_bars in by_symbol.items():
            new_df = bars_to_frame(symbol_bars)
            existing = self._read_frame(symbol)
            frames = [new_df] if existing is None else [existing, new_df]
            combined = pd.concat(frames, ignore_index=True)
            merged = (
                combined.drop_duplicates(subset=["date"], keep="last")
                .sort_values("date")
                .reset_index(drop=True)
            )

            self._atomic_write(merged, self._symbol_path(symbol))

            written += len(new_df)
            replaced += len(combined) - len(merged)
            logger.debug(
                "Wrote %d bars for %s (%d rows stored)",
                len(new_df),
                symbol,
                len(merged),
            )

        if written:
            logger.info("Wrote %d bars for %d symbols (%d replaced)", written, len(by_symbol), replaced)
        return written, replaced

    def read_bars(
        self,
        symbol: str,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[PriceBar]:
        """
        Read stored bars for a symbol.

        Args:
            symbol: Instrument symbol
            start: First date (inclusive), optional
            end: Last date (inclusive), optional

        Returns:
            Bars sorted by date; empty when nothing is stored.
        """
        df = self._read_frame(symbol)
        if df is None or df.empty:
            return []
        if start is not None:
            df = df[df["date"] >= start.isoformat()]
        if end is not None:
            df = df[df["date"] <= end.isoformat()]
        return frame_to_bars(df)

    def get_series(self, symbol: str, start: dt.date, end: dt.date) -> PriceSeries:
        return PriceSeries(symbol, self.read_bars(symbol, start, end))

    def count_bars(self, symbol: str) -> int:
        df = self._read_frame(symbol)
        return 0 if df is None else len(df)

    def list_symbols(self) -> list[str]:
        """Symbols with a stored bar file, sorted."""
        return sorted(p.stem for p in self.bars_dir.glob("*.parquet"))

    def delete_symbol(self, symbol: str) -> bool:
        path = self._symbol_path(symbol)
        if not path.exists():
            return False
        path.unlink()
        return True

    @staticmethod
    def _atomic_write(df: pd.DataFrame, path: Path) -> None:
        """Write Parquet atomically using temp file + rename."""
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".parquet")
        os.close(fd)
        try:
            df.to_parquet(tmp_path, index=False)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
