"""
Tests for series loading and the global date index.
"""

import datetime as dt

import pytest

from finhub_engine.backtest.errors import DataUnavailableError, ErrorKind
from finhub_engine.backtest.models import BacktestRequest
from finhub_engine.backtest.timeline import build_date_index, load_universe
from finhub_engine.data import InMemoryPriceSource
from finhub_engine.domain import PriceSeries
from tests.synthetic_data import bars_from_closes, day, make_bar, make_payload


def _request(**overrides) -> BacktestRequest:
    return BacktestRequest.model_validate(make_payload(**overrides))


class TestLoadUniverse:
    """Tests for load_universe."""

    def test_loads_in_universe_order(self) -> None:
        source = InMemoryPriceSource(
            bars_from_closes("AAA", [1.0, 2.0]) + bars_from_closes("BBB", [3.0, 4.0])
        )
        loaded = load_universe(source, _request(universe=["BBB", "AAA"]))

        assert loaded.symbols == ["BBB", "AAA"]
        assert loaded.dropped == []
        assert [call[0] for call in source.calls] == ["BBB", "AAA"]

    def test_symbols_without_data_dropped(self) -> None:
        source = InMemoryPriceSource(bars_from_closes("AAA", [1.0, 2.0]))
        loaded = load_universe(source, _request(universe=["AAA", "ZZZ"]))

        assert loaded.symbols == ["AAA"]
        assert loaded.dropped == ["ZZZ"]
        assert len(loaded.warnings) == 1
        assert "ZZZ" in loaded.warnings[0]

    def test_series_clipped_to_range(self) -> None:
        class LooseSource(InMemoryPriceSource):
            """Ignores the requested range."""

            def get_series(self, symbol: str, start: dt.date, end: dt.date) -> PriceSeries:
                return self._series.get(symbol, PriceSeries(symbol))

        source = LooseSource(bars_from_closes("AAA", [1.0] * 10))
        request = _request(start_date=day(2).isoformat(), end_date=day(5).isoformat())

        loaded = load_universe(source, request)

        assert loaded.series["AAA"].dates == [day(2), day(3), day(4), day(5)]

    def test_out_of_range_only_counts_as_missing(self) -> None:
        source = InMemoryPriceSource([make_bar("AAA", dt.date(2020, 1, 1), 10.0)])

        with pytest.raises(DataUnavailableError):
            load_universe(source, _request())

    def test_all_symbols_empty_raises(self) -> None:
        with pytest.raises(DataUnavailableError) as exc_info:
            load_universe(InMemoryPriceSource(), _request(universe=["AAA", "BBB"]))

        error = exc_info.value
        assert error.kind == ErrorKind.DATA_UNAVAILABLE
        assert error.is_client_error
        assert error.symbols == ["AAA", "BBB"]


class TestDateIndex:
    """Tests for build_date_index."""

    def test_sorted_union(self) -> None:
        series = {
            "AAA": PriceSeries("AAA", [make_bar("AAA", day(d), 1.0) for d in (0, 2, 4)]),
            "BBB": PriceSeries("BBB", [make_bar("BBB", day(d), 1.0) for d in (1, 2, 5)]),
        }
        assert build_date_index(series) == [day(0), day(1), day(2), day(4), day(5)]

    def test_empty(self) -> None:
        assert build_date_index({}) == []


class TestInMemoryPriceSource:
    """Tests for InMemoryPriceSource."""

    def test_later_bars_win(self) -> None:
        source = InMemoryPriceSource(bars_from_closes("AAA", [1.0, 2.0]))
        source.add_bars([make_bar("AAA", day(1), 5.0)])

        series = source.get_series("AAA", day(0), day(10))
        assert [b.close for b in series] == [1.0, 5.0]

    def test_add_series(self) -> None:
        source = InMemoryPriceSource()
        source.add_series(PriceSeries("BBB", bars_from_closes("BBB", [1.0])))
        source.add_series(PriceSeries("AAA", bars_from_closes("AAA", [1.0])))

        assert source.symbols() == ["AAA", "BBB"]
        assert len(source.get_series("ZZZ", day(0), day(1))) == 0
        assert source.calls == [("ZZZ", day(0), day(1))]
