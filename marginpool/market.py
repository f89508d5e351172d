"""
market.py - Market term sheet

A market is a base/quote pair with its own risk and auction parameters.
Markets are immutable once registered.

Key Formulas:
    ratio        = balances_value / debts_value
    liquidatable = ratio < liquidate_rate
    borrow/withdraw allowed only while ratio >= withdraw_rate
    auction ratio(elapsed) = min(auction_ratio_start + auction_ratio_per_height * elapsed,
                                 auction_ratio_ceiling)
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from .fixed_point import Fixed, FIXED_ONE


DEFAULT_LIQUIDATE_RATE = Decimal("1.2")
DEFAULT_WITHDRAW_RATE = Decimal("2")
DEFAULT_INITIATOR_REWARD_RATIO = Decimal("0.05")
DEFAULT_AUCTION_RATIO_START = Decimal("0.01")
DEFAULT_AUCTION_RATIO_PER_HEIGHT = Decimal("0.01")
DEFAULT_AUCTION_RATIO_CEILING = Decimal("2")

_FIXED_FIELDS = (
    'liquidate_rate', 'withdraw_rate', 'initiator_reward_ratio',
    'auction_ratio_start', 'auction_ratio_per_height', 'auction_ratio_ceiling',
)


@dataclass(frozen=True, slots=True)
class Market:
    """
    Immutable market parameters.

    Attributes:
        market_id: Registry key
        base_asset: Base asset symbol
        quote_asset: Quote asset symbol
        liquidate_rate: Accounts below this collateral ratio can be liquidated
        withdraw_rate: Borrowing and collateral withdrawal must leave the ratio at or above this
        initiator_reward_ratio: Share of non-bidder collateral paid to the liquidator (ratio <= 1 fills)
        auction_ratio_start: Auction price ratio at the liquidation height
        auction_ratio_per_height: Ratio increase per elapsed height
        auction_ratio_ceiling: Maximum auction ratio
        borrow_enabled: Whether new borrows are accepted
    """
    market_id: int
    base_asset: str
    quote_asset: str
    liquidate_rate: Fixed = Fixed.from_decimal(DEFAULT_LIQUIDATE_RATE)
    withdraw_rate: Fixed = Fixed.from_decimal(DEFAULT_WITHDRAW_RATE)
    initiator_reward_ratio: Fixed = Fixed.from_decimal(DEFAULT_INITIATOR_REWARD_RATIO)
    auction_ratio_start: Fixed = Fixed.from_decimal(DEFAULT_AUCTION_RATIO_START)
    auction_ratio_per_height: Fixed = Fixed.from_decimal(DEFAULT_AUCTION_RATIO_PER_HEIGHT)
    auction_ratio_ceiling: Fixed = Fixed.from_decimal(DEFAULT_AUCTION_RATIO_CEILING)
    borrow_enabled: bool = True

    def __post_init__(self):
        """Convert Decimal/str parameters to Fixed and validate them."""
        for name in _FIXED_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, Fixed):
                object.__setattr__(self, name, Fixed.from_decimal(value))

        if self.market_id < 0:
            raise ValueError(f"market_id cannot be negative, got {self.market_id}")
        if not self.base_asset or not self.quote_asset:
            raise ValueError("Market assets cannot be empty")
        if self.base_asset == self.quote_asset:
            raise ValueError("base_asset and quote_asset must be different")
        if self.liquidate_rate <= FIXED_ONE:
            raise ValueError(f"liquidate_rate must exceed 1, got {self.liquidate_rate}")
        if self.withdraw_rate < self.liquidate_rate:
            raise ValueError(
                f"withdraw_rate ({self.withdraw_rate}) cannot be below "
                f"liquidate_rate ({self.liquidate_rate})"
            )
        if self.initiator_reward_ratio > FIXED_ONE:
            raise ValueError(
                f"initiator_reward_ratio must be in [0, 1], got {self.initiator_reward_ratio}"
            )
        if self.auction_ratio_start >= FIXED_ONE:
            raise ValueError(f"auction_ratio_start must be below 1, got {self.auction_ratio_start}")
        if self.auction_ratio_ceiling <= FIXED_ONE:
            raise ValueError(
                f"auction_ratio_ceiling must exceed 1, got {self.auction_ratio_ceiling}"
            )

    @property
    def assets(self) -> Tuple[str, str]:
        return (self.base_asset, self.quote_asset)

    def other_asset(self, asset: str) -> str:
        """The asset on the other side of the pair."""
        if asset == self.base_asset:
            return self.quote_asset
        if asset == self.quote_asset:
            return self.base_asset
        raise ValueError(f"{asset} is not traded in market {self.market_id}")
