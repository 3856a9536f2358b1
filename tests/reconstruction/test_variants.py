"""
Tests for variant rules.
"""

import pytest

from trade_reconstruction.types import ContractType, RawFill, TradeDirection, UnknownVariantError
from trade_reconstruction.variants import (
    INVERSE_COST,
    INVERSE_FUTURES,
    LINEAR_COST,
    LINEAR_FUTURES,
    MARGIN,
    SPOT,
    canonical_pos_side,
    get_variant,
)


def raw(side, pos_side=""):
    return RawFill(inst_id="BTC-USDT-SWAP", side=side, pos_side=pos_side)


# =============================================================
# TEST: Position keys
# =============================================================

class TestPositionKeys:
    """Canonical position keys."""

    @pytest.mark.parametrize("pos_side,expected", [
        ("long", "long"),
        ("LONG", "long"),
        (" Short ", "short"),
        ("net", "net"),
        ("BOTH", "net"),
        ("", "net"),
        (None, "net"),
        ("weird", "net"),
    ])
    def test_canonical_pos_side(self, pos_side, expected):
        assert canonical_pos_side(pos_side) == expected

    def test_futures_key_includes_side(self):
        assert LINEAR_FUTURES.position_key_of("BTC-USDT-SWAP", "LONG") == "BTC-USDT-SWAP-long"
        assert INVERSE_FUTURES.position_key_of("BTCUSD_PERP", "BOTH") == "BTCUSD_PERP-net"

    def test_spot_and_margin_key_is_instrument(self):
        assert SPOT.position_key_of("BTCUSDT", "long") == "BTCUSDT"
        assert MARGIN.position_key_of("BTCUSDT", "") == "BTCUSDT"


# =============================================================
# TEST: Opening predicates
# =============================================================

class TestOpeningPredicates:
    """Which fills may open a position."""

    @pytest.mark.parametrize("side,pos_side,expected", [
        ("buy", "long", True),
        ("sell", "short", True),
        ("sell", "long", False),
        ("buy", "short", False),
        ("sell", "net", True),
        ("buy", "", True),
    ])
    def test_futures(self, side, pos_side, expected):
        assert LINEAR_FUTURES.is_opening_fill(raw(side, pos_side)) is expected
        assert INVERSE_FUTURES.is_opening_fill(raw(side, pos_side)) is expected

    def test_spot(self):
        assert SPOT.is_opening_fill(raw("buy"))
        assert not SPOT.is_opening_fill(raw("sell"))

    def test_margin(self):
        assert MARGIN.is_opening_fill(raw("buy"))
        assert MARGIN.is_opening_fill(raw("sell"))

    def test_margin_direction_from_side(self):
        assert MARGIN.direction_of(raw("sell", "long")) == TradeDirection.SHORT
        assert SPOT.direction_of(raw("sell")) == TradeDirection.LONG


# =============================================================
# TEST: Cost models
# =============================================================

class TestCostModels:
    """Cost basis and PnL formulas."""

    def test_linear(self):
        assert LINEAR_COST.cost_of(2, 100) == pytest.approx(200)
        assert LINEAR_COST.average_price(2, 200) == pytest.approx(100)
        assert LINEAR_COST.realized_pnl(TradeDirection.SHORT, 100, 90, 2) == pytest.approx(20)

    def test_inverse(self):
        assert INVERSE_COST.cost_of(1000, 50000) == pytest.approx(0.02)
        assert INVERSE_COST.average_price(1000, 0.02) == pytest.approx(50000)
        assert INVERSE_COST.realized_pnl(
            TradeDirection.LONG, 50000, 55000, 1000
        ) == pytest.approx(1000 * (1 / 50000 - 1 / 55000))

    def test_inverse_zero_price(self):
        assert INVERSE_COST.cost_of(1000, 0) == 0.0
        assert INVERSE_COST.realized_pnl(TradeDirection.LONG, 0, 100, 1) == 0.0

    def test_empty_average(self):
        assert LINEAR_COST.average_price(0, 0) == 0.0
        assert INVERSE_COST.average_price(0, 0) == 0.0

    def test_instrument_override(self):
        assert LINEAR_FUTURES.cost_model(ContractType.INVERSE) is INVERSE_COST
        assert INVERSE_FUTURES.cost_model(None) is INVERSE_COST
        assert SPOT.cost_model(ContractType.INVERSE) is LINEAR_COST


# =============================================================
# TEST: Registry
# =============================================================

class TestRegistry:

    def test_lookup(self):
        assert get_variant("Margin") is MARGIN

    def test_unknown(self):
        with pytest.raises(UnknownVariantError):
            get_variant("options")
