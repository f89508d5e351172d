"""
auction.py - Liquidation auctions

A liquidated account's remaining debt is sold for its collateral through an
auction priced by an elapsed-height ratio. Bidders fill it in one or more
partial calls; the auction ends exactly when the debt reaches zero.

State Machine:
    IN_PROGRESS --debt reaches 0--> FINISHED (terminal)

Ratio curve:
    The ratio starts below 1 and rises with every height up to a ceiling
    above 1. LinearRatioCurve is the default; any RatioCurve can be supplied.

Settlement regimes (resolved once per fill):

    RatioAtMostOne (ratio <= 1), bidder brings `amount` of the debt asset:
        actual     = min(amount, left_debt)
        collateral = left_collateral * actual // left_debt
        bidder     = floor(collateral * ratio)
        initiator  = floor((collateral - bidder) * initiator_reward_ratio)
        borrower   = collateral - bidder - initiator
        bidder pays actual

    RatioAboveOne (ratio > 1), bidder brings `amount`, repaying amount * ratio:
        repay      = floor(amount * ratio)
        actual     = min(repay, left_debt)
        bidder pays amount, or ceil(actual / ratio) when actual < repay
        insurance claim = actual - bidder pays
        collateral = left_collateral * actual // left_debt, all to the bidder

Example (ratio 0.8, debt 100, collateral 50, reward 0.1, amount 50):
    actual = 50, collateral = 25, bidder 20, initiator 0, borrower 5
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol, Union, runtime_checkable

from .core import (
    AccountStatus, AuctionStatus, AuctionNotActive, ConservationError,
    CustodyLedger, ValidationError, POOL_PATH, common_path, market_path,
)
from .events import AuctionCreated, AuctionFilled, AuctionFinished
from .fixed_point import (
    Fixed, FIXED_ONE, checked_sub, fixed_min, mul_floor, div_ceil,
)
from .insurance import claim_insurance
from .market import Market
from .state import Auction, LendingState
from . import pool


# ============================================================================
# RATIO CURVES
# ============================================================================

@runtime_checkable
class RatioCurve(Protocol):
    """
    Maps heights elapsed since the auction started to a price ratio.

    Implementations must be deterministic and non-decreasing in elapsed.
    """

    def ratio_at(self, elapsed: int) -> Fixed:
        ...


@dataclass(frozen=True, slots=True)
class LinearRatioCurve:
    """
    ratio(elapsed) = min(start + per_height * elapsed, ceiling)

    Attributes:
        start: Ratio at the liquidation height (below 1)
        per_height: Increase per elapsed height
        ceiling: Maximum ratio (above 1)
    """
    start: Fixed
    per_height: Fixed
    ceiling: Fixed

    def __post_init__(self):
        for name in ('start', 'per_height', 'ceiling'):
            object.__setattr__(self, name, Fixed.from_decimal(getattr(self, name)))
        if self.start >= FIXED_ONE:
            raise ValueError(f"start must be below 1, got {self.start}")
        if self.ceiling <= FIXED_ONE:
            raise ValueError(f"ceiling must exceed 1, got {self.ceiling}")

    def ratio_at(self, elapsed: int) -> Fixed:
        if elapsed < 0:
            raise ValueError(f"elapsed cannot be negative, got {elapsed}")
        return fixed_min(self.start + self.per_height.scale(elapsed), self.ceiling)


def curve_for_market(market: Market) -> LinearRatioCurve:
    return LinearRatioCurve(
        market.auction_ratio_start,
        market.auction_ratio_per_height,
        market.auction_ratio_ceiling,
    )


# ============================================================================
# SETTLEMENT (pure)
# ============================================================================

@dataclass(frozen=True, slots=True)
class AuctionSnapshot:
    """Inputs a settlement reads, captured at the start of a fill."""
    left_debt: int
    left_collateral: int
    ratio: Fixed
    initiator_reward_ratio: Fixed

    def __post_init__(self):
        if self.left_debt <= 0:
            raise ValidationError(f"Auction has no debt left to repay ({self.left_debt})")
        if self.left_collateral < 0:
            raise ValidationError(f"Collateral cannot be negative ({self.left_collateral})")

    def collateral_for(self, actual_repay: int) -> int:
        """Collateral released by repaying actual_repay, truncating."""
        return self.left_collateral * actual_repay // self.left_debt


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    Effects of one fill, computed before anything is applied.

    Attributes:
        regime: "ratio_at_most_one" or "ratio_above_one"
        requested: Amount the bidder offered
        repay_amount: Nominal debt repayment (requested * ratio above 1)
        actual_repay: Debt actually cleared (never above left_debt)
        bidder_repay: Debt asset the bidder pays
        insurance_claim: actual_repay - bidder_repay, claimed from the fund
        collateral_to_process: Collateral leaving the borrower's account
        collateral_for_bidder / _initiator / _borrower: Its split
    """
    regime: str
    ratio: Fixed
    requested: int
    repay_amount: int
    actual_repay: int
    bidder_repay: int
    insurance_claim: int
    collateral_to_process: int
    collateral_for_bidder: int
    collateral_for_initiator: int
    collateral_for_borrower: int

    def __post_init__(self):
        split = self.collateral_for_bidder + self.collateral_for_initiator + self.collateral_for_borrower
        if split != self.collateral_to_process:
            raise ConservationError(
                f"Collateral split {split} != collateral processed {self.collateral_to_process}"
            )
        if min(self.collateral_for_bidder, self.collateral_for_initiator,
               self.collateral_for_borrower, self.bidder_repay, self.insurance_claim) < 0:
            raise ConservationError(f"Negative settlement component in {self}")
        if self.bidder_repay + self.insurance_claim != self.actual_repay:
            raise ConservationError(
                f"bidder_repay ({self.bidder_repay}) + insurance_claim ({self.insurance_claim}) "
                f"!= actual_repay ({self.actual_repay})"
            )


@dataclass(frozen=True, slots=True)
class RatioAtMostOne:
    """Bidder pays in full and collateral is shared with initiator and borrower."""
    name: str = "ratio_at_most_one"

    def settle(self, snapshot: AuctionSnapshot, amount: int) -> Settlement:
        actual = min(amount, snapshot.left_debt)
        collateral = snapshot.collateral_for(actual)
        for_bidder = mul_floor(collateral, snapshot.ratio)
        for_initiator = mul_floor(checked_sub(collateral, for_bidder), snapshot.initiator_reward_ratio)
        for_borrower = collateral - for_bidder - for_initiator
        return Settlement(
            regime=self.name,
            ratio=snapshot.ratio,
            requested=amount,
            repay_amount=amount,
            actual_repay=actual,
            bidder_repay=actual,
            insurance_claim=0,
            collateral_to_process=collateral,
            collateral_for_bidder=for_bidder,
            collateral_for_initiator=for_initiator,
            collateral_for_borrower=for_borrower,
        )


@dataclass(frozen=True, slots=True)
class RatioAboveOne:
    """Bidder pays less than it repays; the insurance fund covers the gap."""
    name: str = "ratio_above_one"

    def settle(self, snapshot: AuctionSnapshot, amount: int) -> Settlement:
        repay_amount = mul_floor(amount, snapshot.ratio)
        actual = min(repay_amount, snapshot.left_debt)
        if actual < repay_amount:
            bidder_repay = div_ceil(actual, snapshot.ratio)
        else:
            bidder_repay = amount
        collateral = snapshot.collateral_for(actual)
        return Settlement(
            regime=self.name,
            ratio=snapshot.ratio,
            requested=amount,
            repay_amount=repay_amount,
            actual_repay=actual,
            bidder_repay=bidder_repay,
            insurance_claim=checked_sub(actual, bidder_repay),
            collateral_to_process=collateral,
            collateral_for_bidder=collateral,
            collateral_for_initiator=0,
            collateral_for_borrower=0,
        )


Regime = Union[RatioAtMostOne, RatioAboveOne]


def resolve_regime(ratio: Fixed) -> Regime:
    return RatioAtMostOne() if ratio <= FIXED_ONE else RatioAboveOne()


# ============================================================================
# LIFECYCLE
# ============================================================================

@dataclass(frozen=True, slots=True)
class FillResult:
    """Outcome of fill_auction_with_amount()."""
    auction_id: int
    bidder: str
    settlement: Settlement
    remaining_debt: int
    finished: bool


@dataclass(frozen=True, slots=True)
class AuctionDetails:
    """Read view of an auction at the current height."""
    auction_id: int
    status: AuctionStatus
    market_id: int
    borrower: str
    initiator: str
    debt_asset: str
    collateral_asset: str
    start_height: int
    left_debt: int
    left_collateral: int
    ratio: Fixed


def create(
    state: LendingState,
    market_id: int,
    borrower: str,
    initiator: str,
    debt_asset: str,
    collateral_asset: str,
) -> Auction:
    """Open an auction at the current height and add it to the active set."""
    auction = Auction(
        auction_id=state.next_auction_id,
        status=AuctionStatus.IN_PROGRESS,
        start_height=state.height,
        market_id=market_id,
        borrower=borrower,
        initiator=initiator,
        debt_asset=debt_asset,
        collateral_asset=collateral_asset,
    )
    state.next_auction_id += 1
    state.auctions[auction.auction_id] = auction
    state.active_auctions.add(auction.auction_id)
    state.emit(AuctionCreated(state.height, auction.auction_id))
    return auction


def ratio(state: LendingState, auction: Auction, curve: Optional[RatioCurve] = None) -> Fixed:
    """Current price ratio of an auction (market curve unless overridden)."""
    if curve is None:
        curve = curve_for_market(state.get_market(auction.market_id))
    return curve.ratio_at(state.height - auction.start_height)


def get_active_auction(state: LendingState, auction_id: int) -> Auction:
    auction = state.auctions.get(auction_id)
    if auction is None or auction.status != AuctionStatus.IN_PROGRESS:
        raise AuctionNotActive(f"Auction {auction_id} is not in progress")
    return auction


def end_auction(state: LendingState, auction: Auction) -> None:
    """Finish the auction and hand the account back to its owner."""
    auction.status = AuctionStatus.FINISHED
    state.get_account(auction.borrower, auction.market_id).status = AccountStatus.NORMAL
    state.active_auctions.remove(auction.auction_id)
    state.emit(AuctionFinished(state.height, auction.auction_id))


def fill_auction_with_amount(
    state: LendingState,
    ledger: CustodyLedger,
    auction_id: int,
    bidder: str,
    amount: int,
    curve: Optional[RatioCurve] = None,
) -> FillResult:
    """
    Repay part of an auction's debt in exchange for collateral.

    The bidder's debt asset comes from its common balance; collateral shares
    land in the common balances of bidder, initiator and borrower.

    Raises:
        AuctionNotActive: If the auction does not exist or has finished
        ValidationError: If amount is not positive
        InsufficientFunds: If the bidder cannot pay (raised by the ledger)
    """
    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")
    auction = get_active_auction(state, auction_id)
    market = state.get_market(auction.market_id)
    borrower = auction.borrower
    account_path = market_path(borrower, auction.market_id)

    pool.accrue_interest(state, auction.debt_asset)
    snapshot = AuctionSnapshot(
        left_debt=pool.get_amount_borrowed(state, auction.debt_asset, borrower, auction.market_id),
        left_collateral=ledger.balance_of(account_path, auction.collateral_asset),
        ratio=ratio(state, auction, curve),
        initiator_reward_ratio=market.initiator_reward_ratio,
    )
    settlement = resolve_regime(snapshot.ratio).settle(snapshot, amount)

    # Accounting first
    pool.apply_repay(state, borrower, auction.market_id, auction.debt_asset, settlement.actual_repay)
    if settlement.insurance_claim:
        claim_insurance(state, auction.debt_asset, settlement.insurance_claim)
    state.emit(AuctionFilled(
        state.height, auction_id, settlement.repay_amount, bidder,
        settlement.actual_repay, settlement.bidder_repay, settlement.collateral_for_bidder,
    ))
    remaining = pool.get_amount_borrowed(state, auction.debt_asset, borrower, auction.market_id)
    if remaining == 0:
        end_auction(state, auction)

    # Then custody: bidder pays into the account, the account repays the pool
    if settlement.bidder_repay:
        ledger.transfer(auction.debt_asset, common_path(bidder), account_path, settlement.bidder_repay)
        ledger.transfer(auction.debt_asset, account_path, POOL_PATH, settlement.bidder_repay)
    shares = (
        (bidder, settlement.collateral_for_bidder),
        (auction.initiator, settlement.collateral_for_initiator),
        (borrower, settlement.collateral_for_borrower),
    )
    for recipient, share in shares:
        if share:
            ledger.transfer(auction.collateral_asset, account_path, common_path(recipient), share)

    return FillResult(auction_id, bidder, settlement, remaining, remaining == 0)


def get_auction_details(
    state: LendingState,
    ledger: CustodyLedger,
    auction_id: int,
    curve: Optional[RatioCurve] = None,
) -> AuctionDetails:
    auction = state.auctions.get(auction_id)
    if auction is None:
        raise AuctionNotActive(f"Auction {auction_id} does not exist")
    return AuctionDetails(
        auction_id=auction.auction_id,
        status=auction.status,
        market_id=auction.market_id,
        borrower=auction.borrower,
        initiator=auction.initiator,
        debt_asset=auction.debt_asset,
        collateral_asset=auction.collateral_asset,
        start_height=auction.start_height,
        left_debt=pool.get_amount_borrowed(
            state, auction.debt_asset, auction.borrower, auction.market_id
        ),
        left_collateral=ledger.balance_of(
            market_path(auction.borrower, auction.market_id), auction.collateral_asset
        ),
        ratio=ratio(state, auction, curve),
    )
