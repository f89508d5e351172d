"""
fixed_point.py - Checked integer arithmetic and 18-digit fixed-point values

Amounts in the engine are plain non-negative ints in an asset's smallest unit.
Rates, indices, prices and auction ratios are Fixed values: an int scaled by
10**18. Every operation that can lose precision names its rounding direction
(mul_floor, div_ceil, ...). There is no implicit rounding and no banker's
rounding; call sites pick the direction that keeps protocol liabilities at or
below protocol assets.

Checked arithmetic:
    All helpers keep results inside [0, MAX_UINT256]. Underflow, overflow and
    division by zero raise CheckedArithmeticError, which aborts the enclosing
    engine call.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_FLOOR, ROUND_CEILING
from typing import Union

from .core import CheckedArithmeticError


DECIMALS = 18
ONE = 10 ** DECIMALS
MAX_UINT256 = 2 ** 256 - 1

Numeric = Union[Decimal, int, str]


# ============================================================================
# CHECKED INTEGER ARITHMETIC
# ============================================================================

def _check_range(value: int, op: str) -> int:
    if value < 0:
        raise CheckedArithmeticError(f"{op} underflow: {value}")
    if value > MAX_UINT256:
        raise CheckedArithmeticError(f"{op} overflow")
    return value


def checked_add(a: int, b: int) -> int:
    return _check_range(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _check_range(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _check_range(a * b, "mul")


def checked_div(a: int, b: int) -> int:
    """Floor division of non-negative ints."""
    if b == 0:
        raise CheckedArithmeticError("division by zero")
    return _check_range(a // b, "div")


def mul_div(a: int, b: int, c: int, rounding: str = ROUND_FLOOR) -> int:
    """
    Compute a * b / c with a single explicit rounding step.

    Args:
        a, b, c: Non-negative ints
        rounding: decimal.ROUND_FLOOR or decimal.ROUND_CEILING

    Raises:
        CheckedArithmeticError: On division by zero or out-of-range result
        ValueError: On any other rounding mode
    """
    if c == 0:
        raise CheckedArithmeticError("division by zero")
    product = checked_mul(a, b)
    if rounding == ROUND_FLOOR:
        return _check_range(product // c, "mul_div")
    if rounding == ROUND_CEILING:
        return _check_range(-(-product // c), "mul_div")
    raise ValueError(f"Unsupported rounding mode: {rounding}")


# ============================================================================
# FIXED-POINT VALUE
# ============================================================================

@dataclass(frozen=True, slots=True, order=True)
class Fixed:
    """
    Non-negative fixed-point number with 18 fractional digits.

    Attributes:
        raw: The scaled integer (value * 10**18)

    Example:
        ratio = Fixed.from_decimal("0.8")
        mul_floor(25, ratio)   # -> 20
    """
    raw: int

    def __post_init__(self):
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise TypeError(f"Fixed raw value must be int, got {type(self.raw)}")
        _check_range(self.raw, "fixed")

    @classmethod
    def from_decimal(cls, value: Numeric) -> Fixed:
        """Build from a Decimal, int or numeric string, truncating past 18 digits."""
        if isinstance(value, Fixed):
            return value
        if isinstance(value, float):
            raise TypeError("Use Decimal or str for Fixed values, not float")
        d = value if isinstance(value, Decimal) else Decimal(str(value))
        if d.is_nan() or d.is_infinite():
            raise ValueError(f"Fixed value must be finite, got {d}")
        scaled = (d * ONE).quantize(Decimal("1"), rounding=ROUND_DOWN)
        return cls(int(scaled))

    @classmethod
    def from_ratio(cls, numerator: int, denominator: int, rounding: str = ROUND_FLOOR) -> Fixed:
        """numerator / denominator as a Fixed value."""
        return cls(mul_div(numerator, ONE, denominator, rounding))

    def to_decimal(self) -> Decimal:
        return Decimal(self.raw) / Decimal(ONE)

    def is_zero(self) -> bool:
        return self.raw == 0

    def __add__(self, other: Fixed) -> Fixed:
        return Fixed(checked_add(self.raw, other.raw))

    def __sub__(self, other: Fixed) -> Fixed:
        return Fixed(checked_sub(self.raw, other.raw))

    def mul(self, other: Fixed, rounding: str = ROUND_FLOOR) -> Fixed:
        return Fixed(mul_div(self.raw, other.raw, ONE, rounding))

    def div(self, other: Fixed, rounding: str = ROUND_FLOOR) -> Fixed:
        return Fixed(mul_div(self.raw, ONE, other.raw, rounding))

    def scale(self, n: int) -> Fixed:
        """Multiply by a plain integer (exact)."""
        return Fixed(checked_mul(self.raw, n))

    def __str__(self) -> str:
        return format(self.to_decimal().normalize(), 'f')

    def __repr__(self) -> str:
        return f"Fixed({self})"


FIXED_ZERO = Fixed(0)
FIXED_ONE = Fixed(ONE)


def fixed_min(a: Fixed, b: Fixed) -> Fixed:
    return a if a <= b else b


# ============================================================================
# NAMED ROUNDING OPERATIONS (int amount x Fixed)
# ============================================================================

def mul_floor(target: int, d: Fixed) -> int:
    """target * d, rounded down."""
    return mul_div(target, d.raw, ONE, ROUND_FLOOR)


def mul_ceil(target: int, d: Fixed) -> int:
    """target * d, rounded up."""
    return mul_div(target, d.raw, ONE, ROUND_CEILING)


def div_floor(target: int, d: Fixed) -> int:
    """target / d, rounded down."""
    return mul_div(target, ONE, d.raw, ROUND_FLOOR)


def div_ceil(target: int, d: Fixed) -> int:
    """target / d, rounded up."""
    return mul_div(target, ONE, d.raw, ROUND_CEILING)
