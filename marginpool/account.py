"""
account.py - Collateral account risk and liquidation

A collateral account is a user's isolated margin position in one market.
Its asset balances sit in the custody ledger under the account's market path.
Its debts are pool borrows tagged with the market id.

Risk evaluation (get_details):
    balances_value = sum(balance * price)      rounded down
    debts_value    = sum(debt * price)         rounded up
    ratio          = balances_value / debts_value
    liquidatable   = status NORMAL and debt > 0 and ratio < liquidate_rate

Debts are projected to the current height, so risk reflects interest accrued
since the last touch without an explicit accrual.

Liquidation lifecycle:
    NORMAL --liquidate()--> LIQUID --auction ends--> NORMAL
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .core import (
    AccountStatus, CustodyLedger, ValidationError, InsufficientBalance,
    InsufficientCollateral, BorrowDisabled, LiquidationError, NotLiquidatable,
    PriceUnavailable, common_path, market_path,
)
from .events import AccountLiquidated, CollateralDeposited, CollateralWithdrawn
from .fixed_point import Fixed, checked_add, checked_sub, mul_floor, mul_ceil, div_floor
from .market import Market
from .pricing_source import PricingSource
from .state import LendingState
from . import auction as auctions
from . import pool


@dataclass(frozen=True, slots=True)
class AccountDetails:
    """
    Risk view of one collateral account at the current height.

    Attributes:
        balances: Asset -> amount held under the account's market path
        debts: Asset -> outstanding debt including projected interest
        balances_value: Value of balances in the price numeraire (floor)
        debts_value: Value of debts in the price numeraire (ceil)
        ratio: balances_value / debts_value, None when there is no debt value
        liquidatable: Whether liquidate() would accept the account
    """
    user: str
    market_id: int
    status: AccountStatus
    balances: Dict[str, int]
    debts: Dict[str, int]
    balances_value: int
    debts_value: int
    ratio: Optional[Fixed]
    liquidatable: bool

    @property
    def has_debt(self) -> bool:
        return any(self.debts.values())


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of liquidate().

    auction_id is None when the forced repayment cleared every debt, in which
    case the account stays NORMAL and no auction exists.
    """
    user: str
    market_id: int
    initiator: str
    repaid: Dict[str, int]
    auction_id: Optional[int] = None
    debt_asset: Optional[str] = None
    collateral_asset: Optional[str] = None

    @property
    def auction_created(self) -> bool:
        return self.auction_id is not None


# ============================================================================
# RISK
# ============================================================================

def _require_market_asset(market: Market, asset: str) -> None:
    if asset not in market.assets:
        raise ValidationError(f"{asset} is not traded in market {market.market_id}")


def _price(prices: PricingSource, asset: str, height: int) -> Fixed:
    price = prices.get_price(asset, height)
    if price is None:
        raise PriceUnavailable(f"No price for {asset} at height {height}")
    return Fixed.from_decimal(price)


def get_details(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
) -> AccountDetails:
    """
    Evaluate an account's collateralization. Pure read.

    Raises:
        UnknownMarket: If market_id is not registered
        PriceUnavailable: If either market asset has no price
    """
    market = state.get_market(market_id)
    account = state.find_account(user, market_id)
    status = account.status if account is not None else AccountStatus.NORMAL
    path = market_path(user, market_id)

    balances: Dict[str, int] = {}
    debts: Dict[str, int] = {}
    balances_value = 0
    debts_value = 0
    for asset in market.assets:
        price = _price(prices, asset, state.height)
        balances[asset] = ledger.balance_of(path, asset)
        debts[asset] = pool.get_amount_borrowed(state, asset, user, market_id)
        balances_value = checked_add(balances_value, mul_floor(balances[asset], price))
        debts_value = checked_add(debts_value, mul_ceil(debts[asset], price))

    ratio = Fixed.from_ratio(balances_value, debts_value) if debts_value > 0 else None
    liquidatable = (
        status == AccountStatus.NORMAL
        and ratio is not None
        and ratio < market.liquidate_rate
    )
    return AccountDetails(
        user=user,
        market_id=market_id,
        status=status,
        balances=balances,
        debts=debts,
        balances_value=balances_value,
        debts_value=debts_value,
        ratio=ratio,
        liquidatable=liquidatable,
    )


def is_liquidatable(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
) -> bool:
    return get_details(state, ledger, prices, user, market_id).liquidatable


def get_transferable_amount(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
    asset: str,
) -> int:
    """
    Largest amount of asset that can leave the account.

    LIQUID accounts can move nothing. Accounts without debt can move
    everything. Otherwise the remaining balances must still be worth at least
    withdraw_rate times the debts.
    """
    market = state.get_market(market_id)
    _require_market_asset(market, asset)
    details = get_details(state, ledger, prices, user, market_id)
    if details.status == AccountStatus.LIQUID:
        return 0
    balance = details.balances[asset]
    if details.debts_value == 0:
        return balance

    required = mul_ceil(details.debts_value, market.withdraw_rate)
    if details.balances_value <= required:
        return 0
    price = _price(prices, asset, state.height)
    if price.is_zero():
        return balance
    excess = checked_sub(details.balances_value, required)
    return min(balance, div_floor(excess, price))


def ensure_borrow_allowed(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
) -> AccountDetails:
    """
    Post-borrow risk check.

    Raises:
        BorrowDisabled: If the market does not accept borrows
        InsufficientCollateral: If the account is LIQUID or its ratio is
            below the market's withdraw rate
    """
    market = state.get_market(market_id)
    if not market.borrow_enabled:
        raise BorrowDisabled(f"Borrowing is disabled in market {market_id}")
    details = get_details(state, ledger, prices, user, market_id)
    if details.status != AccountStatus.NORMAL:
        raise InsufficientCollateral(f"{user} is being liquidated in market {market_id}")
    if details.ratio is not None and details.ratio < market.withdraw_rate:
        raise InsufficientCollateral(
            f"{user} collateral ratio {details.ratio} below withdraw rate {market.withdraw_rate}"
        )
    return details


# ============================================================================
# COLLATERAL MOVEMENTS
# ============================================================================

def deposit_collateral(
    state: LendingState,
    ledger: CustodyLedger,
    user: str,
    market_id: int,
    asset: str,
    amount: int,
) -> None:
    """Move amount from the user's common balance into the market account."""
    market = state.get_market(market_id)
    _require_market_asset(market, asset)
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")
    state.get_account(user, market_id)
    state.emit(CollateralDeposited(state.height, user, market_id, asset, amount))
    ledger.transfer(asset, common_path(user), market_path(user, market_id), amount)


def withdraw_collateral(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
    asset: str,
    amount: int,
) -> None:
    """
    Move amount from the market account back to the user's common balance.

    Raises:
        InsufficientBalance: If the account holds less than amount
        InsufficientCollateral: If the withdrawal would breach the withdraw rate
    """
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")
    balance = ledger.balance_of(market_path(user, market_id), asset)
    if amount > balance:
        raise InsufficientBalance(f"{user} holds {balance} {asset} in market {market_id}")
    transferable = get_transferable_amount(state, ledger, prices, user, market_id, asset)
    if amount > transferable:
        raise InsufficientCollateral(
            f"{user} can withdraw at most {transferable} {asset} from market {market_id}"
        )
    state.emit(CollateralWithdrawn(state.height, user, market_id, asset, amount))
    ledger.transfer(asset, market_path(user, market_id), common_path(user), amount)


# ============================================================================
# LIQUIDATION
# ============================================================================

def liquidate(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    user: str,
    market_id: int,
    initiator: str,
) -> LiquidationResult:
    """
    Force-liquidate an under-collateralized account.

    Steps:
        1. Require liquidatable (else NotLiquidatable)
        2. Repay base and quote debts from the account's own balances
        3. No debt left: return without an auction
        4. Debt left on exactly one side: mark LIQUID and open an auction
           selling the other side

    Raises:
        NotLiquidatable: If the account is healthy, has no debt or is already LIQUID
        LiquidationError: If debt remains on both sides after the forced repay
    """
    details = get_details(state, ledger, prices, user, market_id)
    if not details.liquidatable:
        raise NotLiquidatable(
            f"{user} in market {market_id} is not liquidatable "
            f"(status={details.status.value}, ratio={details.ratio})"
        )

    market = state.get_market(market_id)
    path = market_path(user, market_id)
    repaid: Dict[str, int] = {}
    for asset in market.assets:
        debt = pool.get_amount_borrowed(state, asset, user, market_id)
        available = min(debt, ledger.balance_of(path, asset))
        repaid[asset] = pool.repay(state, ledger, user, market_id, asset, available) if available else 0

    remaining = {
        asset: pool.get_amount_borrowed(state, asset, user, market_id) for asset in market.assets
    }
    if not any(remaining.values()):
        state.emit(AccountLiquidated(state.height, user, market_id, initiator, None))
        return LiquidationResult(user, market_id, initiator, repaid)
    if all(remaining.values()):
        raise LiquidationError(
            f"{user} in market {market_id} still owes both {market.base_asset} and "
            f"{market.quote_asset} after repayment"
        )

    debt_asset = market.base_asset if remaining[market.base_asset] else market.quote_asset
    collateral_asset = market.other_asset(debt_asset)
    state.get_account(user, market_id).status = AccountStatus.LIQUID
    auction = auctions.create(state, market_id, user, initiator, debt_asset, collateral_asset)
    state.emit(AccountLiquidated(state.height, user, market_id, initiator, auction.auction_id))
    return LiquidationResult(
        user, market_id, initiator, repaid,
        auction_id=auction.auction_id,
        debt_asset=debt_asset,
        collateral_asset=collateral_asset,
    )


def liquidate_multi(
    state: LendingState,
    ledger: CustodyLedger,
    prices: PricingSource,
    accounts: Iterable[Tuple[str, int]],
    initiator: str,
) -> List[LiquidationResult]:
    """
    Liquidate every (user, market_id) pair in order.

    Stops at the first failure. Callers that need all-or-nothing batches
    (LendingEngine.liquidate_accounts) wrap this in a rollback.
    """
    return [
        liquidate(state, ledger, prices, user, market_id, initiator)
        for user, market_id in accounts
    ]
