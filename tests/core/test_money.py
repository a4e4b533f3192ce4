"""
Tests for money arithmetic and clock helpers.

============================================================
PURPOSE
============================================================
Verify exact decimal handling used by the ledger.

TEST PRINCIPLES:
- No binary float drift in cash arithmetic
- Invalid numbers are rejected, never coerced

============================================================
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from core import money
from core.clock import ensure_utc, format_iso_z
from core.exceptions import InvalidTradeError


# ============================================================
# CONVERSION TESTS
# ============================================================

class TestToDecimal:
    """Tests for to_decimal."""

    def test_float_goes_through_str(self):
        """0.1 stays 0.1, not its binary expansion."""
        assert money.to_decimal(0.1) == Decimal("0.1")

    def test_int_and_string(self):
        assert money.to_decimal(7) == Decimal(7)
        assert money.to_decimal(" 12.50 ") == Decimal("12.50")

    @pytest.mark.parametrize("value", [True, "abc", float("nan"), float("inf"), None, [1]])
    def test_rejects_invalid_values(self, value):
        with pytest.raises(InvalidTradeError):
            money.to_decimal(value)


# ============================================================
# ARITHMETIC TESTS
# ============================================================

class TestArithmetic:
    """Tests for exact arithmetic helpers."""

    def test_repeated_additions_are_exact(self):
        total = Decimal(0)
        for _ in range(10):
            total = money.add(total, 0.1)
        assert total == Decimal("1.0")

    def test_mul_and_sub(self):
        cost = money.mul(3, "187.35")
        assert cost == Decimal("562.05")
        assert money.sub(Decimal("100000"), cost) == Decimal("99437.95")

    def test_div_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            money.div(1, 0)

    def test_compare_and_is_zero(self):
        assert money.compare("1.10", "1.1") == 0
        assert money.compare(1, 2) == -1
        assert money.compare(3, 2) == 1
        assert money.is_zero("0.000")


# ============================================================
# FORMATTING TESTS
# ============================================================

class TestFormatting:
    """Tests for rounding and normalization."""

    def test_quantize_cents_rounds_half_up(self):
        assert money.quantize_cents("10.005") == Decimal("10.01")
        assert money.quantize_cents("10.004") == Decimal("10.00")

    def test_normalize_avoids_exponent(self):
        assert format(money.normalize(Decimal("100000.000")), "f") == "100000"
        assert format(money.normalize(Decimal("1.2500")), "f") == "1.25"
        assert money.normalize(Decimal("0.00")) == Decimal(0)

    def test_to_float(self):
        assert money.to_float(Decimal("99.5")) == 99.5


class TestClock:
    """Tests for UTC helpers."""

    def test_ensure_utc_attaches_timezone(self):
        naive = datetime(2024, 5, 1, 14, 30)
        assert ensure_utc(naive).tzinfo == timezone.utc

    def test_ensure_utc_converts_aware(self):
        aware = datetime(2024, 5, 1, 16, 30, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(aware) == datetime(2024, 5, 1, 14, 30, tzinfo=timezone.utc)

    def test_format_iso_z(self):
        dt = datetime(2024, 5, 1, 14, 30, 5, 123456, tzinfo=timezone.utc)
        assert format_iso_z(dt) == "2024-05-01T14:30:05.123Z"

    def test_ensure_utc_none(self):
        assert ensure_utc(None) is None
