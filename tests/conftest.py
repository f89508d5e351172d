"""
conftest.py - Shared pytest fixtures for marginpool tests

Provides common fixtures used across unit, functional and conformance tests:
- Custody ledgers with ETH and USDT registered
- Engines over a single ETH/USDT market (id 1)
- Funded scenarios: a lender supplying USDT, a trader borrowing against ETH
- Snapshot helpers for "nothing changed" assertions

Prices are per smallest unit: ETH 20, USDT 1. Pools default to a zero
interest curve so liquidation and auction arithmetic is exact; interest tests
build their own engine with a live curve.
"""

import pytest
from decimal import Decimal
from typing import Any, Dict, Optional

from marginpool import (
    Ledger, token, StaticPricingSource, PricingSource,
    LendingEngine, LendingState, AssetConfig, Market,
    PolynomialRateModel, RatioCurve, Fixed,
)


MARKET_ID = 1
ZERO_RATE = PolynomialRateModel((Decimal("0"),))


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

class ConstantRatioCurve:
    """Auction curve pinned to one ratio (for exact settlement tests)."""

    def __init__(self, ratio: str):
        self.ratio = Fixed.from_decimal(ratio)

    def ratio_at(self, elapsed: int) -> Fixed:
        return self.ratio


def build_engine(
    rate_model=ZERO_RATE,
    reserve_factor: str = "0.1",
    heights_per_year: int = 100,
    ratio_curve: Optional[RatioCurve] = None,
    prices: Optional[PricingSource] = None,
    **market_kwargs,
) -> LendingEngine:
    """Create an engine with ETH and USDT pools and the ETH/USDT market."""
    ledger = Ledger("custody", verbose=False, test_mode=True)
    ledger.register_asset(token("ETH", "Ether"))
    ledger.register_asset(token("USDT", "Tether"))
    if prices is None:
        prices = StaticPricingSource({"ETH": Decimal("20"), "USDT": Decimal("1")})

    engine = LendingEngine(
        ledger, prices,
        state=LendingState(heights_per_year=heights_per_year),
        ratio_curve=ratio_curve,
    )
    for asset in ("ETH", "USDT"):
        engine.register_asset(AssetConfig(asset, rate_model, Decimal(reserve_factor)))
    engine.register_market(Market(MARKET_ID, "ETH", "USDT", **market_kwargs))
    return engine


def fund(engine: LendingEngine, user: str, asset: str, amount: int) -> None:
    """Mint into the user's wallet and deposit it into their common balance."""
    held = engine.ledger.wallet_balance(user, asset)
    engine.ledger.set_wallet_balance(user, asset, held + amount)
    engine.deposit(user, asset, amount)


def open_position(
    engine: LendingEngine,
    user: str = "trader",
    collateral: int = 1_000,
    borrow: int = 9_000,
    take_out: bool = True,
) -> None:
    """
    Post ETH collateral, borrow USDT and (optionally) move the loan out of the account.

    With ETH at 20: 1,000 ETH backs 9,000 USDT at ratio 20,000 / 9,000.
    """
    fund(engine, user, "ETH", collateral)
    engine.deposit_collateral(user, MARKET_ID, "ETH", collateral)
    engine.borrow(user, MARKET_ID, "USDT", borrow)
    if take_out:
        engine.withdraw_collateral(user, MARKET_ID, "USDT", borrow)


def engine_fingerprint(engine: LendingEngine) -> Dict[str, Any]:
    """Everything an operation could change, for before/after comparisons."""
    state = engine.state
    return {
        'height': state.height,
        'balances': dict(engine.ledger.balances),
        'wallets': dict(engine.ledger.wallets),
        'log': len(engine.ledger.transfer_log),
        'pools': {a: (p.normalized_total_supply, p.normalized_total_borrow,
                      p.supply_index, p.borrow_index, p.last_accrual_height)
                  for a, p in state.pools.items()},
        'supplies': dict(state.supplies),
        'accounts': {k: (a.status, dict(a.normalized_borrows)) for k, a in state.accounts.items()},
        'auctions': {i: a.status for i, a in state.auctions.items()},
        'active': state.active_auctions.ids(),
        'insurance': {a: (f.balance, f.total_claimed, f.total_shortfall)
                      for a, f in state.insurance.items()},
        'events': len(state.events),
        'next_auction_id': state.next_auction_id,
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh zero-rate engine with no balances."""
    return build_engine()


@pytest.fixture
def funded_engine():
    """Lender has supplied 100,000 USDT; nobody has borrowed."""
    engine = build_engine(
        auction_ratio_start=Decimal("0.8"),
        auction_ratio_per_height=Decimal("0.1"),
    )
    fund(engine, "lender", "USDT", 100_000)
    engine.supply_pool("lender", "USDT", 100_000)
    return engine


@pytest.fixture
def leveraged_engine(funded_engine):
    """Trader owes 9,000 USDT against 1,000 ETH and has taken the loan out."""
    open_position(funded_engine)
    return funded_engine


@pytest.fixture
def auction_engine(leveraged_engine):
    """ETH fell to 10; the trader was liquidated by keeper into auction 1."""
    leveraged_engine.prices.update_price("ETH", Decimal("10"))
    leveraged_engine.liquidate_account("trader", MARKET_ID, "keeper")
    fund(leveraged_engine, "bidder", "USDT", 20_000)
    return leveraged_engine


@pytest.fixture
def interest_engine():
    """
    Live polynomial curve, 100 heights per year.

    Lender supplied 10,000 USDT; trader borrowed 5,000 USDT against
    1,000 ETH and kept the loan in the account (utilization 0.5).
    """
    engine = build_engine(rate_model=PolynomialRateModel())
    fund(engine, "lender", "USDT", 10_000)
    engine.supply_pool("lender", "USDT", 10_000)
    open_position(engine, collateral=1_000, borrow=5_000, take_out=False)
    return engine
