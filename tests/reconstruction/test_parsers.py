"""
Tests for safe numeric parsing.
"""

import math
from decimal import Decimal

import pytest

from trade_reconstruction.parsers import parse_float, parse_int


# =============================================================
# TEST: parse_int
# =============================================================

class TestParseInt:
    """Test integer parsing."""

    def test_plain_string(self):
        """Timestamps arrive as digit strings."""
        assert parse_int("1700000000000") == 1700000000000

    def test_numeric_prefix(self):
        """Trailing garbage after a numeric prefix is ignored."""
        assert parse_int("12abc") == 12

    def test_float_string_truncates(self):
        assert parse_int("12.9") == 12
        assert parse_int("-3.7") == -3

    @pytest.mark.parametrize("value", [None, "", "abc", "  ", True, float("nan"), float("inf")])
    def test_fallback_on_bad_input(self, value):
        """Unparseable input returns the fallback."""
        assert parse_int(value, 7) == 7

    def test_numbers_pass_through(self):
        assert parse_int(42) == 42
        assert parse_int(42.9) == 42
        assert parse_int(Decimal("5")) == 5

    def test_non_finite_decimal(self):
        assert parse_int(Decimal("NaN"), -1) == -1


# =============================================================
# TEST: parse_float
# =============================================================

class TestParseFloat:
    """Test float parsing."""

    def test_plain_string(self):
        assert parse_float("50000.5") == 50000.5

    def test_exponent(self):
        assert parse_float("1.5e3") == 1500.0

    def test_numeric_prefix(self):
        assert parse_float("0.25USDT") == 0.25

    def test_leading_dot(self):
        assert parse_float(".5") == 0.5

    @pytest.mark.parametrize("value", [None, "", "-", "abc", "NaN", "inf", float("nan"), float("-inf")])
    def test_fallback_on_bad_input(self, value):
        """Unparseable or non-finite input returns the fallback."""
        assert parse_float(value, 1.25) == 1.25

    def test_overflow_falls_back(self):
        """Huge exponents would be infinite."""
        assert parse_float("1e999", 0.0) == 0.0
        assert parse_float(10 ** 400, 2.0) == 2.0

    def test_result_always_finite(self):
        for value in ["1", "-0.0001", "3e-5", 7, Decimal("1.1")]:
            assert math.isfinite(parse_float(value))

    def test_never_raises_on_objects(self):
        """Arbitrary objects are stringified, not rejected with an exception."""
        assert parse_float(object(), 9.0) == 9.0
