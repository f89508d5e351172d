"""
interest.py - Utilization-driven interest-rate curves

Borrow rates are annualized Fixed values computed from pool utilization
(total borrow / total supply). Suppliers earn the borrow rate scaled by
utilization, less the reserve factor that funds the insurance fund:

    supply_rate = borrow_rate * utilization * (1 - reserve_factor)

Two curves are provided:
    PolynomialRateModel: rate = c0 + c1*u + c2*u^2 + ...
    KinkedRateModel:     two-slope curve with an optimal-utilization kink
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, Tuple, runtime_checkable

from .fixed_point import Fixed, FIXED_ONE, FIXED_ZERO, checked_div


@runtime_checkable
class InterestRateModel(Protocol):
    """Maps utilization (0..1) to an annualized borrow rate."""

    def borrow_rate(self, utilization: Fixed) -> Fixed:
        ...


@dataclass(frozen=True, slots=True)
class PolynomialRateModel:
    """
    Polynomial borrow-rate curve.

    Attributes:
        coefficients: (c0, c1, c2, ...) so that rate = sum(c_i * u^i)

    Example:
        model = PolynomialRateModel((Decimal("0"), Decimal("0.2"), Decimal("0.5")))
        model.borrow_rate(Fixed.from_decimal("0.5"))   # 0.1 + 0.125 = 0.225
    """
    coefficients: Tuple[Fixed, ...] = field(
        default=(FIXED_ZERO, Fixed.from_decimal("0.2"), Fixed.from_decimal("0.5"))
    )

    def __post_init__(self):
        if not self.coefficients:
            raise ValueError("PolynomialRateModel needs at least one coefficient")
        object.__setattr__(
            self, 'coefficients', tuple(Fixed.from_decimal(c) for c in self.coefficients)
        )

    def borrow_rate(self, utilization: Fixed) -> Fixed:
        rate = FIXED_ZERO
        power = FIXED_ONE
        for coefficient in self.coefficients:
            rate = rate + coefficient.mul(power)
            power = power.mul(utilization)
        return rate


@dataclass(frozen=True, slots=True)
class KinkedRateModel:
    """
    Two-slope borrow-rate curve.

    Below optimal utilization:
        R = base_rate + slope1 * (U / U_opt)
    Above optimal utilization:
        R = base_rate + slope1 + slope2 * ((U - U_opt) / (1 - U_opt))
    """
    base_rate: Fixed
    slope1: Fixed
    slope2: Fixed
    optimal_utilization: Fixed

    def __post_init__(self):
        for name in ('base_rate', 'slope1', 'slope2', 'optimal_utilization'):
            object.__setattr__(self, name, Fixed.from_decimal(getattr(self, name)))
        if self.optimal_utilization.is_zero() or self.optimal_utilization >= FIXED_ONE:
            raise ValueError(
                f"optimal_utilization must be in (0, 1), got {self.optimal_utilization}"
            )

    def borrow_rate(self, utilization: Fixed) -> Fixed:
        if utilization <= self.optimal_utilization:
            return self.base_rate + self.slope1.mul(utilization.div(self.optimal_utilization))
        excess = (utilization - self.optimal_utilization).div(FIXED_ONE - self.optimal_utilization)
        return self.base_rate + self.slope1 + self.slope2.mul(excess)


DEFAULT_RATE_MODEL = PolynomialRateModel()


def supply_rate(borrow_rate: Fixed, utilization: Fixed, reserve_factor: Fixed) -> Fixed:
    """Annualized supply rate, rounded down."""
    return borrow_rate.mul(utilization).mul(FIXED_ONE - reserve_factor)


def per_height(rate: Fixed, heights_per_year: int) -> Fixed:
    """Convert an annualized rate to a per-height rate, rounded down."""
    return Fixed(checked_div(rate.raw, heights_per_year))


@dataclass(frozen=True, slots=True)
class AssetConfig:
    """
    Lending parameters for one pool asset.

    Attributes:
        asset: Asset symbol
        interest_model: Curve mapping utilization to the borrow rate
        reserve_factor: Share of borrow interest routed to the insurance fund (0-1)
    """
    asset: str
    interest_model: InterestRateModel = DEFAULT_RATE_MODEL
    reserve_factor: Fixed = Fixed.from_decimal("0.1")

    def __post_init__(self):
        if not self.asset or not self.asset.strip():
            raise ValueError("AssetConfig asset cannot be empty")
        if not isinstance(self.reserve_factor, Fixed):
            object.__setattr__(self, 'reserve_factor', Fixed.from_decimal(self.reserve_factor))
        if self.reserve_factor > FIXED_ONE:
            raise ValueError(f"reserve_factor must be in [0, 1], got {self.reserve_factor}")
        if not isinstance(self.interest_model, InterestRateModel):
            raise ValueError("interest_model must provide borrow_rate(utilization)")
