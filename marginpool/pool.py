"""
pool.py - Interest-bearing per-asset liquidity pools

Suppliers deposit into a shared pool per asset; borrowers in every market
draw from it. Positions are stored normalized by the pool's supply or borrow
index, so compounding is lazy: accrue_interest() moves the indices and every
position follows.

ARCHITECTURE:
=============

1. PURE PROJECTION (project_pool):
   - Computes indices, totals and the insurance reserve at any height
   - Never writes; every read goes through it so reads see interest up to
     the current height without an explicit accrual

2. ACCRUAL (accrue_interest):
   - Commits the projection; called before every mutation of an asset

3. MUTATIONS (supply, withdraw, borrow, repay):
   - Accrue, validate, update accounting, then move value in custody

Rounding (always in the pool's favor):
    supply shares   = amount / supply_index   (floor)
    withdraw shares = amount / supply_index   (ceil)
    borrow debt     = amount / borrow_index   (ceil)
    repay debt      = amount / borrow_index   (floor, exact zero on full repay)
    supplier claims = shares * supply_index   (floor)
    debts           = debt * borrow_index     (ceil)

Accrual splits the borrow interest I so that both sides grow by exactly I:
suppliers get at most I * (1 - reserve_factor) and the insurance reserve gets
the rest, rounding dust included. Total supply therefore never falls behind
total borrow.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_CEILING
from typing import Optional

from .core import (
    CustodyLedger, POOL_PATH, ValidationError, InsufficientBalance,
    InsufficientLiquidity, common_path, market_path,
)
from .events import PoolSupplied, PoolWithdrawn, Borrowed, Repaid
from .fixed_point import (
    Fixed, FIXED_ONE, FIXED_ZERO, ONE,
    checked_add, checked_sub, mul_div, mul_floor, div_floor, div_ceil,
)
from .interest import per_height, supply_rate
from .state import LendingState


@dataclass(frozen=True, slots=True)
class PoolProjection:
    """
    Pool accounting as it would stand after accruing to `height`.

    total_supply includes the insurance reserve, which is lent out alongside
    supplier funds.
    """
    asset: str
    height: int
    supply_index: int
    borrow_index: int
    supplier_supply: int
    insurance_reserve: int
    total_supply: int
    total_borrow: int
    reserve_accrued: int


@dataclass(frozen=True, slots=True)
class InterestRates:
    """Annualized rates at a (possibly hypothetical) utilization."""
    borrow_rate: Fixed
    supply_rate: Fixed
    utilization: Fixed


# ============================================================================
# PURE PROJECTION
# ============================================================================

def _supplier_total(normalized: int, supply_index: int) -> int:
    return mul_div(normalized, supply_index, ONE, ROUND_FLOOR)


def _borrow_total(normalized: int, borrow_index: int) -> int:
    return mul_div(normalized, borrow_index, ONE, ROUND_CEILING)


def utilization_of(total_borrow: int, total_supply: int) -> Fixed:
    """total_borrow / total_supply, 0 for an empty pool, capped at 1."""
    if total_supply == 0:
        return FIXED_ZERO
    if total_borrow >= total_supply:
        return FIXED_ONE
    return Fixed.from_ratio(total_borrow, total_supply)


def project_pool(state: LendingState, asset: str, height: Optional[int] = None) -> PoolProjection:
    """
    Project pool accounting to a height without committing anything.

    Args:
        state: Engine store
        asset: Pool asset
        height: Target height (default: state.height)

    Returns:
        PoolProjection with indices and totals at that height
    """
    pool = state.get_pool(asset)
    config = state.get_asset_config(asset)
    reserve = state.get_insurance_fund(asset).balance
    if height is None:
        height = state.height

    supplier = _supplier_total(pool.normalized_total_supply, pool.supply_index)
    borrow = _borrow_total(pool.normalized_total_borrow, pool.borrow_index)
    elapsed = height - pool.last_accrual_height

    if elapsed <= 0 or pool.normalized_total_borrow == 0:
        return PoolProjection(
            asset=asset,
            height=max(height, pool.last_accrual_height),
            supply_index=pool.supply_index,
            borrow_index=pool.borrow_index,
            supplier_supply=supplier,
            insurance_reserve=reserve,
            total_supply=checked_add(supplier, reserve),
            total_borrow=borrow,
            reserve_accrued=0,
        )

    utilization = utilization_of(borrow, checked_add(supplier, reserve))
    rate = per_height(config.interest_model.borrow_rate(utilization), state.heights_per_year)
    growth = FIXED_ONE + rate.scale(elapsed)
    borrow_index = mul_div(pool.borrow_index, growth.raw, ONE, ROUND_CEILING)
    new_borrow = _borrow_total(pool.normalized_total_borrow, borrow_index)
    interest = checked_sub(new_borrow, borrow)

    supplier_share = checked_sub(interest, mul_floor(interest, config.reserve_factor))
    supply_index = pool.supply_index
    if pool.normalized_total_supply > 0 and supplier_share > 0:
        candidate = mul_div(
            checked_add(supplier, supplier_share), ONE, pool.normalized_total_supply, ROUND_FLOOR
        )
        supply_index = max(candidate, pool.supply_index)
    new_supplier = _supplier_total(pool.normalized_total_supply, supply_index)
    reserve_accrued = checked_sub(interest, checked_sub(new_supplier, supplier))
    new_reserve = checked_add(reserve, reserve_accrued)

    return PoolProjection(
        asset=asset,
        height=height,
        supply_index=supply_index,
        borrow_index=borrow_index,
        supplier_supply=new_supplier,
        insurance_reserve=new_reserve,
        total_supply=checked_add(new_supplier, new_reserve),
        total_borrow=new_borrow,
        reserve_accrued=reserve_accrued,
    )


def accrue_interest(state: LendingState, asset: str) -> PoolProjection:
    """Commit the projection at the current height."""
    projection = project_pool(state, asset)
    pool = state.get_pool(asset)
    pool.supply_index = projection.supply_index
    pool.borrow_index = projection.borrow_index
    pool.last_accrual_height = projection.height
    if projection.reserve_accrued:
        fund = state.get_insurance_fund(asset)
        fund.balance = checked_add(fund.balance, projection.reserve_accrued)
    return projection


# ============================================================================
# READS
# ============================================================================

def get_total_supply(state: LendingState, asset: str) -> int:
    return project_pool(state, asset).total_supply


def get_total_borrow(state: LendingState, asset: str) -> int:
    return project_pool(state, asset).total_borrow


def get_supply_of(state: LendingState, asset: str, user: str) -> int:
    """A supplier's effective balance including interest to the current height."""
    normalized = state.supplies.get((asset, user), 0)
    if normalized == 0:
        return 0
    return _supplier_total(normalized, project_pool(state, asset).supply_index)


def get_amount_borrowed(state: LendingState, asset: str, user: str, market_id: int) -> int:
    """Outstanding debt of one account in one asset, interest included."""
    account = state.find_account(user, market_id)
    if account is None:
        return 0
    normalized = account.normalized_borrows.get(asset, 0)
    if normalized == 0:
        return 0
    return _borrow_total(normalized, project_pool(state, asset).borrow_index)


def get_cash(ledger: CustodyLedger, asset: str) -> int:
    """Value the pool actually holds in custody."""
    return ledger.balance_of(POOL_PATH, asset)


def get_available(state: LendingState, ledger: CustodyLedger, asset: str) -> int:
    """Amount that can leave the pool: unborrowed supply, bounded by cash on hand."""
    projection = project_pool(state, asset)
    unborrowed = checked_sub(projection.total_supply, projection.total_borrow)
    return min(unborrowed, get_cash(ledger, asset))


def get_utilization(state: LendingState, asset: str) -> Fixed:
    projection = project_pool(state, asset)
    return utilization_of(projection.total_borrow, projection.total_supply)


def get_interest_rates(state: LendingState, asset: str, extra_borrow: int = 0) -> InterestRates:
    """
    Borrow and supply rates, optionally as if extra_borrow were also borrowed.

    Example:
        rates = get_interest_rates(state, "USDT", extra_borrow=1_000)
        rates.borrow_rate   # rate a new 1,000 borrow would pay
    """
    if extra_borrow < 0:
        raise ValueError(f"extra_borrow cannot be negative, got {extra_borrow}")
    projection = project_pool(state, asset)
    config = state.get_asset_config(asset)
    utilization = utilization_of(
        checked_add(projection.total_borrow, extra_borrow), projection.total_supply
    )
    borrow_rate = config.interest_model.borrow_rate(utilization)
    return InterestRates(
        borrow_rate=borrow_rate,
        supply_rate=supply_rate(borrow_rate, utilization, config.reserve_factor),
        utilization=utilization,
    )


# ============================================================================
# MUTATIONS
# ============================================================================

def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")


def _ensure_solvent(state: LendingState, asset: str) -> None:
    projection = project_pool(state, asset)
    if projection.total_borrow > projection.total_supply:
        raise InsufficientLiquidity(
            f"{asset}: total borrow {projection.total_borrow} would exceed "
            f"total supply {projection.total_supply}"
        )


def supply(state: LendingState, ledger: CustodyLedger, asset: str, amount: int, user: str) -> int:
    """
    Move amount from the user's common balance into the pool.

    Returns:
        Normalized shares credited

    Raises:
        ValidationError: If amount is too small to buy a single share
    """
    _require_amount(amount)
    accrue_interest(state, asset)
    pool = state.get_pool(asset)
    shares = div_floor(amount, Fixed(pool.supply_index))
    if shares == 0:
        raise ValidationError(f"Supply of {amount} {asset} is below one share")

    key = (asset, user)
    state.supplies[key] = checked_add(state.supplies.get(key, 0), shares)
    pool.normalized_total_supply = checked_add(pool.normalized_total_supply, shares)
    state.emit(PoolSupplied(state.height, asset, user, amount))

    ledger.transfer(asset, common_path(user), POOL_PATH, amount)
    return shares


def withdraw(state: LendingState, ledger: CustodyLedger, asset: str, amount: int, user: str) -> int:
    """
    Move amount of the user's supply out of the pool to their common balance.

    Raises:
        InsufficientBalance: If amount exceeds the user's effective supply
        InsufficientLiquidity: If amount exceeds unborrowed supply or cash on hand
    """
    _require_amount(amount)
    accrue_interest(state, asset)
    balance = get_supply_of(state, asset, user)
    if amount > balance:
        raise InsufficientBalance(f"{user} supplied {balance} {asset}, cannot withdraw {amount}")
    available = get_available(state, ledger, asset)
    if amount > available:
        raise InsufficientLiquidity(f"{asset}: only {available} available, requested {amount}")

    pool = state.get_pool(asset)
    key = (asset, user)
    held = state.supplies[key]
    shares = min(div_ceil(amount, Fixed(pool.supply_index)), held)
    remaining = checked_sub(held, shares)
    if remaining:
        state.supplies[key] = remaining
    else:
        del state.supplies[key]
    pool.normalized_total_supply = checked_sub(pool.normalized_total_supply, shares)
    _ensure_solvent(state, asset)
    state.emit(PoolWithdrawn(state.height, asset, user, amount))

    ledger.transfer(asset, POOL_PATH, common_path(user), amount)
    return amount


def borrow(
    state: LendingState,
    ledger: CustodyLedger,
    user: str,
    market_id: int,
    asset: str,
    amount: int,
) -> int:
    """
    Lend amount from the pool into the user's collateral account.

    Collateral sufficiency is the caller's concern; this only checks liquidity.

    Raises:
        ValidationError: If asset is not part of the market
        InsufficientLiquidity: If the pool cannot fund the borrow
    """
    _require_amount(amount)
    market = state.get_market(market_id)
    if asset not in market.assets:
        raise ValidationError(f"{asset} is not traded in market {market_id}")
    accrue_interest(state, asset)
    available = get_available(state, ledger, asset)
    if amount > available:
        raise InsufficientLiquidity(f"{asset}: only {available} available, requested {amount}")

    pool = state.get_pool(asset)
    account = state.get_account(user, market_id)
    debt = div_ceil(amount, Fixed(pool.borrow_index))
    account.normalized_borrows[asset] = checked_add(account.normalized_borrows.get(asset, 0), debt)
    pool.normalized_total_borrow = checked_add(pool.normalized_total_borrow, debt)
    _ensure_solvent(state, asset)
    state.emit(Borrowed(state.height, user, market_id, asset, amount))

    ledger.transfer(asset, POOL_PATH, market_path(user, market_id), amount)
    return amount


def apply_repay(state: LendingState, user: str, market_id: int, asset: str, amount: int) -> int:
    """
    Reduce an account's debt by up to amount (accounting only, no custody).

    Returns:
        The amount actually applied: min(amount, outstanding debt)
    """
    accrue_interest(state, asset)
    borrowed = get_amount_borrowed(state, asset, user, market_id)
    actual = min(borrowed, amount)
    if actual == 0:
        return 0

    pool = state.get_pool(asset)
    account = state.get_account(user, market_id)
    held = account.normalized_borrows[asset]
    if actual == borrowed:
        debt = held
    else:
        debt = min(div_floor(actual, Fixed(pool.borrow_index)), held)
    remaining = checked_sub(held, debt)
    if remaining:
        account.normalized_borrows[asset] = remaining
    else:
        del account.normalized_borrows[asset]
    pool.normalized_total_borrow = checked_sub(pool.normalized_total_borrow, debt)
    state.emit(Repaid(state.height, user, market_id, asset, actual))
    return actual


def repay(
    state: LendingState,
    ledger: CustodyLedger,
    user: str,
    market_id: int,
    asset: str,
    amount: int,
) -> int:
    """
    Repay debt from the account's own balance.

    The applied amount is clamped to the outstanding debt; only that amount
    moves. Anything requested above it stays in the account.

    Returns:
        The amount actually repaid
    """
    _require_amount(amount)
    state.get_market(market_id)
    actual = apply_repay(state, user, market_id, asset, amount)
    if actual:
        ledger.transfer(asset, market_path(user, market_id), POOL_PATH, actual)
    return actual


def socialize_loss(state: LendingState, asset: str, amount: int) -> None:
    """
    Spread an uncovered loss over suppliers by lowering the supply index.

    Supplier claims drop by at most amount.
    """
    if amount == 0:
        return
    accrue_interest(state, asset)
    pool = state.get_pool(asset)
    supplier = _supplier_total(pool.normalized_total_supply, pool.supply_index)
    target = checked_sub(supplier, amount)
    if pool.normalized_total_supply == 0:
        return
    new_index = mul_div(target, ONE, pool.normalized_total_supply, ROUND_CEILING)
    pool.supply_index = min(new_index, pool.supply_index)
