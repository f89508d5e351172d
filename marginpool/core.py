"""
Core types for the margin-lending engine.

This module provides the foundational pieces every other module builds on:
1. Constants: reserved owners, default parameters
2. Exceptions: LendingError and the validation/arithmetic taxonomy
3. Enums: account and auction status, balance path categories
4. BalancePath: the owner-path under which the custody ledger keeps balances
5. Protocols: CustodyLedger, the narrow interface the core moves value through

Nothing here holds mutable state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Owner of the shared per-asset liquidity reservoir.
POOL_OWNER = "pool"

# Accrual time base: heights per year (12-second heights).
DEFAULT_HEIGHTS_PER_YEAR = 2_628_000

# First id handed out by the auction counter.
FIRST_AUCTION_ID = 1


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(LendingError):
    """Raised when an operation's preconditions do not hold. No state is changed."""
    pass


class InsufficientLiquidity(ValidationError):
    """Raised when a withdrawal or borrow exceeds the pool's available cash."""
    pass


class InsufficientBalance(ValidationError):
    """Raised when a caller asks to move more than they hold."""
    pass


class InsufficientFunds(InsufficientBalance):
    """Raised by the custody ledger when a path balance would go negative."""
    pass


class InsufficientCollateral(ValidationError):
    """Raised when an account would fall below the market's withdraw rate."""
    pass


class BorrowDisabled(ValidationError):
    """Raised when borrowing in a market that has borrowing switched off."""
    pass


class UnknownMarket(ValidationError):
    """Raised when a market id has not been registered."""
    pass


class UnknownAsset(ValidationError):
    """Raised when an asset has not been registered."""
    pass


class AuctionNotActive(ValidationError):
    """Raised when filling an auction that does not exist or has finished."""
    pass


class PriceUnavailable(ValidationError):
    """Raised when the price source has no price for an asset at the current height."""
    pass


class LiquidationError(ValidationError):
    """Raised when a liquidatable account cannot be turned into an auction."""
    pass


class NotLiquidatable(LendingError):
    """
    Raised when liquidating an account that is healthy or already liquid.

    Kept apart from ValidationError so liquidation bots can tell a lost race
    (someone else liquidated first, or prices moved) from a malformed call.
    """
    pass


class CheckedArithmeticError(LendingError, ArithmeticError):
    """Raised on integer overflow, underflow or division by zero."""
    pass


class ConservationError(LendingError):
    """Raised when a settlement would create or destroy collateral."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class AccountStatus(Enum):
    """
    NORMAL: The account can borrow, repay and move collateral.
    LIQUID: The account is being liquidated through an auction.
    """
    NORMAL = "normal"
    LIQUID = "liquid"


class AuctionStatus(Enum):
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class PathCategory(Enum):
    """
    Classification of custody balances.

    COMMON: A user's free balance inside the protocol.
    COLLATERAL_ACCOUNT: A user's isolated balance in one market.
    POOL: The lending pool's cash.
    """
    COMMON = "common"
    COLLATERAL_ACCOUNT = "collateral_account"
    POOL = "pool"


# ============================================================================
# BALANCE PATHS
# ============================================================================

@dataclass(frozen=True, slots=True)
class BalancePath:
    """
    Owner path under which the custody ledger keeps a balance.

    Attributes:
        owner: User id (or POOL_OWNER)
        category: Which kind of balance this is
        market_id: Market for COLLATERAL_ACCOUNT paths, None otherwise
    """
    owner: str
    category: PathCategory
    market_id: Optional[int] = None

    def __post_init__(self):
        if not self.owner or not self.owner.strip():
            raise ValueError("BalancePath owner cannot be empty")
        if self.category == PathCategory.COLLATERAL_ACCOUNT:
            if self.market_id is None:
                raise ValueError("Collateral account path requires a market_id")
        elif self.market_id is not None:
            raise ValueError(f"{self.category.value} path cannot carry a market_id")

    def __repr__(self) -> str:
        if self.market_id is None:
            return f"Path({self.owner}/{self.category.value})"
        return f"Path({self.owner}/{self.category.value}/{self.market_id})"


def common_path(user: str) -> BalancePath:
    return BalancePath(user, PathCategory.COMMON)


def market_path(user: str, market_id: int) -> BalancePath:
    return BalancePath(user, PathCategory.COLLATERAL_ACCOUNT, market_id)


POOL_PATH = BalancePath(POOL_OWNER, PathCategory.POOL)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class CustodyLedger(Protocol):
    """
    Balance-transfer primitive the core moves value through.

    The core never holds value itself. It updates its own accounting first
    and then asks the custody ledger to move the matching amounts.
    """

    def deposit_for(self, asset: str, payer: str, path: BalancePath, amount: int) -> None:
        """Move amount from an external payer into a path."""
        ...

    def withdraw_from(self, asset: str, path: BalancePath, payee: str, amount: int) -> None:
        """Move amount out of a path to an external payee."""
        ...

    def transfer(self, asset: str, source: BalancePath, dest: BalancePath, amount: int) -> None:
        """Move amount between two paths."""
        ...

    def balance_of(self, path: BalancePath, asset: str) -> int:
        """Return the balance held under a path (0 if none)."""
        ...
