"""
Tests for the execution cost model.

Verifies spread, slippage and commission calculations.
"""

import pytest

from finhub_engine.backtest.broker_sim import CostModel
from finhub_engine.backtest.models import BacktestRequest, OrderSide
from tests.synthetic_data import make_payload

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def default_costs() -> CostModel:
    """Cost model with no frictions."""
    return CostModel()


@pytest.fixture
def configured_costs() -> CostModel:
    """Cost model with 5 bps slippage, 5 bps spread, 0.1% commission, min fee 1."""
    return CostModel(slippage_bps=5.0, spread_bps=5.0, commission_pct=0.1, min_fee=1.0)


# =============================================================================
# Fill Price Tests
# =============================================================================


class TestFillPrice:
    """Tests for slippage and spread on fill prices."""

    def test_no_friction(self, default_costs: CostModel) -> None:
        assert default_costs.buy_price(100.0) == 100.0
        assert default_costs.sell_price(100.0) == 100.0

    def test_buy_pays_up(self, configured_costs: CostModel) -> None:
        # (5 + 5) bps = 0.1%
        assert configured_costs.buy_price(100.0) == pytest.approx(100.1)

    def test_sell_receives_less(self, configured_costs: CostModel) -> None:
        assert configured_costs.sell_price(100.0) == pytest.approx(99.9)

    def test_slippage_and_spread_are_additive(self) -> None:
        slippage_only = CostModel(slippage_bps=10.0)
        spread_only = CostModel(spread_bps=10.0)
        both = CostModel(slippage_bps=5.0, spread_bps=5.0)

        assert slippage_only.buy_price(50.0) == pytest.approx(both.buy_price(50.0))
        assert spread_only.sell_price(50.0) == pytest.approx(both.sell_price(50.0))


# =============================================================================
# Commission Tests
# =============================================================================


class TestCommission:
    """Tests for percentage commission with a minimum fee."""

    def test_percentage_commission(self, configured_costs: CostModel) -> None:
        # 100 * 50 * 0.1% = 5.0
        assert configured_costs.commission(100.0, 50) == pytest.approx(5.0)

    def test_minimum_fee_applies(self, configured_costs: CostModel) -> None:
        # 100 * 5 * 0.1% = 0.5 -> min fee 1.0
        assert configured_costs.commission(100.0, 5) == 1.0

    def test_zero_commission(self, default_costs: CostModel) -> None:
        assert default_costs.commission(100.0, 1000) == 0.0

    def test_min_fee_without_percentage(self) -> None:
        costs = CostModel(min_fee=2.5)
        assert costs.commission(100.0, 1000) == 2.5


# =============================================================================
# Fill Tests
# =============================================================================


class TestPriceFill:
    """Tests for complete fill pricing."""

    def test_buy_fill(self, configured_costs: CostModel) -> None:
        fill = configured_costs.price_fill(OrderSide.BUY, 100.0, 50)

        assert fill.side == OrderSide.BUY
        assert fill.reference_price == 100.0
        assert fill.fill_price == pytest.approx(100.1)
        assert fill.commission == pytest.approx(100.1 * 50 * 0.001)
        assert fill.total_cost == pytest.approx(100.1 * 50 + fill.commission)

    def test_sell_fill(self, configured_costs: CostModel) -> None:
        fill = configured_costs.price_fill(OrderSide.SELL, 100.0, 50)

        assert fill.fill_price == pytest.approx(99.9)
        assert fill.net_proceeds == pytest.approx(99.9 * 50 - fill.commission)

    def test_from_request(self) -> None:
        request = BacktestRequest.model_validate(
            make_payload(slippage_bps=3.0, spread_bps=7.0, commission_pct=0.25, min_fee=4.0)
        )
        costs = CostModel.from_request(request)

        assert costs == CostModel(
            slippage_bps=3.0, spread_bps=7.0, commission_pct=0.25, min_fee=4.0
        )
        assert costs.friction == pytest.approx(0.001)
