"""
test_fixed_point.py - Unit tests for checked arithmetic and Fixed values

Tests:
- Named rounding operations round in the stated direction
- Checked arithmetic rejects underflow, overflow and division by zero
- Fixed construction truncates and rejects floats
"""

import pytest
from decimal import Decimal, ROUND_FLOOR, ROUND_CEILING, ROUND_HALF_EVEN

from marginpool import (
    Fixed, FIXED_ONE, FIXED_ZERO, ONE, MAX_UINT256,
    mul_div, mul_floor, mul_ceil, div_floor, div_ceil,
    checked_add, checked_sub, checked_mul, checked_div,
    CheckedArithmeticError,
)


class TestNamedRounding:
    """Tests for mul_floor / mul_ceil / div_floor / div_ceil."""

    def test_mul_floor_truncates(self):
        assert mul_floor(25, Fixed.from_decimal("0.8")) == 20
        assert mul_floor(5, Fixed.from_decimal("0.1")) == 0

    def test_mul_ceil_rounds_up(self):
        assert mul_ceil(5, Fixed.from_decimal("0.1")) == 1
        assert mul_ceil(5000, Fixed.from_decimal("1.0225")) == 5113

    def test_exact_products_do_not_round(self):
        ratio = Fixed.from_decimal("1.5")
        assert mul_floor(40, ratio) == mul_ceil(40, ratio) == 60

    def test_div_floor_and_ceil(self):
        ratio = Fixed.from_decimal("1.5")
        assert div_floor(100, ratio) == 66
        assert div_ceil(100, ratio) == 67
        assert div_ceil(60, ratio) == 40

    def test_mul_div_directions(self):
        assert mul_div(10, 1, 3, ROUND_FLOOR) == 3
        assert mul_div(10, 1, 3, ROUND_CEILING) == 4

    def test_mul_div_rejects_bankers_rounding(self):
        with pytest.raises(ValueError):
            mul_div(10, 1, 4, ROUND_HALF_EVEN)

    def test_mul_div_by_zero(self):
        with pytest.raises(CheckedArithmeticError):
            mul_div(1, 1, 0)


class TestCheckedArithmetic:
    """Tests for range-checked integer helpers."""

    def test_add_and_sub(self):
        assert checked_add(2, 3) == 5
        assert checked_sub(5, 3) == 2

    def test_underflow_raises(self):
        with pytest.raises(CheckedArithmeticError):
            checked_sub(3, 5)

    def test_overflow_raises(self):
        with pytest.raises(CheckedArithmeticError):
            checked_add(MAX_UINT256, 1)
        with pytest.raises(CheckedArithmeticError):
            checked_mul(MAX_UINT256, 2)

    def test_division_by_zero_raises(self):
        with pytest.raises(CheckedArithmeticError):
            checked_div(1, 0)

    def test_is_arithmetic_error(self):
        """Callers can catch the builtin ArithmeticError."""
        with pytest.raises(ArithmeticError):
            checked_sub(0, 1)


class TestFixed:
    """Tests for the Fixed value type."""

    def test_from_decimal_scales(self):
        assert Fixed.from_decimal("0.8").raw == 8 * ONE // 10
        assert Fixed.from_decimal(Decimal("2")).raw == 2 * ONE
        assert Fixed.from_decimal(3) == Fixed(3 * ONE)

    def test_from_decimal_truncates_past_18_digits(self):
        assert Fixed.from_decimal("0.1234567890123456789").raw == 123456789012345678

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            Fixed.from_decimal(0.5)

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            Fixed.from_decimal(Decimal("NaN"))

    def test_negative_rejected(self):
        with pytest.raises(CheckedArithmeticError):
            Fixed.from_decimal("-1")

    def test_from_ratio(self):
        assert Fixed.from_ratio(1, 4) == Fixed.from_decimal("0.25")
        assert Fixed.from_ratio(1, 3, ROUND_CEILING).raw == ONE // 3 + 1

    def test_arithmetic(self):
        a = Fixed.from_decimal("1.5")
        b = Fixed.from_decimal("0.5")
        assert a + b == Fixed.from_decimal("2")
        assert a - b == FIXED_ONE
        assert a.mul(b) == Fixed.from_decimal("0.75")
        assert b.div(a) == Fixed.from_ratio(1, 3)
        assert b.scale(4) == Fixed.from_decimal("2")

    def test_ordering_and_helpers(self):
        assert FIXED_ZERO < FIXED_ONE
        assert FIXED_ZERO.is_zero()
        assert str(Fixed.from_decimal("1.25")) == "1.25"
        assert Fixed.from_decimal("1.25").to_decimal() == Decimal("1.25")

    def test_raw_must_be_int(self):
        with pytest.raises(TypeError):
            Fixed(True)
