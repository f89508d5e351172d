"""
insurance.py - Per-asset insurance fund

The fund is fed by the reserve share of borrow interest (see pool.accrue_interest)
and drawn on when an auction settles above ratio 1: the protocol credits the
borrower with more debt repayment than the bidder actually paid, and the gap
is claimed here. Whatever the fund cannot cover is socialized across
suppliers through the supply index.
"""

from __future__ import annotations
from dataclasses import dataclass

from .events import InsuranceClaimed
from .fixed_point import checked_add, checked_sub
from .pool import accrue_interest, project_pool, socialize_loss
from .state import LendingState


@dataclass(frozen=True, slots=True)
class InsuranceClaim:
    """
    Outcome of a claim against the fund.

    Attributes:
        asset: Fund asset
        requested: Amount claimed
        covered: Amount paid from the fund balance
        shortfall: Amount socialized across suppliers (requested - covered)
    """
    asset: str
    requested: int
    covered: int
    shortfall: int

    def __post_init__(self):
        if self.covered + self.shortfall != self.requested:
            raise ValueError(
                f"covered ({self.covered}) + shortfall ({self.shortfall}) "
                f"!= requested ({self.requested})"
            )


def get_insurance_balance(state: LendingState, asset: str) -> int:
    """Fund balance including reserve accrued up to the current height."""
    return project_pool(state, asset).insurance_reserve


def claim_insurance(state: LendingState, asset: str, amount: int) -> InsuranceClaim:
    """
    Draw amount from the fund, socializing any part it cannot cover.

    Accounting only: the claimed value never left the pool's cash, it was
    simply not paid in by the bidder.
    """
    if amount < 0:
        raise ValueError(f"Claim cannot be negative, got {amount}")
    accrue_interest(state, asset)
    fund = state.get_insurance_fund(asset)
    covered = min(amount, fund.balance)
    shortfall = checked_sub(amount, covered)

    fund.balance = checked_sub(fund.balance, covered)
    fund.total_claimed = checked_add(fund.total_claimed, amount)
    fund.total_shortfall = checked_add(fund.total_shortfall, shortfall)
    socialize_loss(state, asset, shortfall)

    state.emit(InsuranceClaimed(state.height, asset, amount, covered, shortfall))
    return InsuranceClaim(asset, amount, covered, shortfall)
