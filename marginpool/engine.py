"""
engine.py - LendingEngine, the public operation surface

Wraps the service modules (pool, account, auction, insurance) behind one
object holding the store, the custody ledger and the price source.

Every mutating call is all-or-nothing: the engine snapshots its state and the
custody ledger before the call and restores both if anything raises, then
re-raises. Reads never mutate; they project interest to the current height.

Example:
    engine = LendingEngine(ledger, prices, verbose=True)
    engine.register_asset(AssetConfig("USDT"))
    engine.register_asset(AssetConfig("ETH"))
    engine.register_market(Market(1, "ETH", "USDT"))
    engine.deposit("alice", "USDT", 10_000)
    engine.supply_pool("alice", "USDT", 10_000)
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Tuple

from .core import UnknownAsset, ValidationError, common_path
from .events import Event
from .fixed_point import Fixed
from .interest import AssetConfig
from .ledger import Ledger
from .market import Market
from .pricing_source import PricingSource
from .state import LendingState
from . import account as accounts
from . import auction as auctions
from . import insurance
from . import pool


class LendingEngine:
    """
    Margin-lending engine: pools, collateral accounts, auctions, insurance.

    Thread Safety:
        Not thread-safe. Calls must be serialized by the caller; each call
        runs to completion before the next begins.
    """

    def __init__(
        self,
        ledger: Ledger,
        prices: PricingSource,
        state: Optional[LendingState] = None,
        ratio_curve: Optional[auctions.RatioCurve] = None,
        verbose: bool = False,
    ):
        """
        Args:
            ledger: Custody ledger; must support snapshot() and restore()
            prices: Price source used for account risk
            state: Existing store (default: a fresh LendingState)
            ratio_curve: Auction curve for every market (default: each
                market's LinearRatioCurve)
            verbose: Print one line per applied or rejected operation
        """
        self.ledger = ledger
        self.prices = prices
        self.state = state if state is not None else LendingState()
        self.ratio_curve = ratio_curve
        self.verbose = verbose

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        state_snapshot = self.state.clone()
        ledger_snapshot = self.ledger.snapshot()
        try:
            yield
        except Exception as exc:
            self.state.restore(state_snapshot)
            self.ledger.restore(ledger_snapshot)
            if self.verbose:
                print(f"✗ REJECTED: {operation}: {type(exc).__name__}: {exc}")
            raise
        if self.verbose:
            print(f"✓ {operation}")

    # ========================================================================
    # TIME AND CONFIGURATION
    # ========================================================================

    @property
    def height(self) -> int:
        return self.state.height

    def advance_height(self, heights: int = 1) -> int:
        """Move the clock forward. Interest accrues lazily on next touch."""
        if heights < 0:
            raise ValueError(f"Cannot move height backwards ({heights})")
        self.state.height += heights
        return self.state.height

    def register_asset(self, config: AssetConfig) -> None:
        """
        Raises:
            UnknownAsset: If the custody ledger does not know the asset
        """
        if config.asset not in self.ledger.list_assets():
            raise UnknownAsset(f"Asset {config.asset} is not registered with the custody ledger")
        self.state.register_asset(config)
        if self.verbose:
            print(f"📝 Pool: {config.asset} (reserve factor {config.reserve_factor})")

    def register_market(self, market: Market) -> None:
        self.state.register_market(market)
        if self.verbose:
            print(f"📝 Market {market.market_id}: {market.base_asset}/{market.quote_asset}")

    # ========================================================================
    # WALLET <-> PROTOCOL
    # ========================================================================

    def deposit(self, user: str, asset: str, amount: int) -> None:
        """Move value from the user's external wallet into their common balance."""
        with self._atomic(f"deposit {amount} {asset} for {user}"):
            self.state.get_pool(asset)
            self.ledger.deposit_for(asset, user, common_path(user), amount)

    def withdraw(self, user: str, asset: str, amount: int) -> None:
        """Move value from the user's common balance back to their wallet."""
        with self._atomic(f"withdraw {amount} {asset} for {user}"):
            self.state.get_pool(asset)
            self.ledger.withdraw_from(asset, common_path(user), user, amount)

    def common_balance(self, user: str, asset: str) -> int:
        return self.ledger.balance_of(common_path(user), asset)

    # ========================================================================
    # POOL
    # ========================================================================

    def supply_pool(self, user: str, asset: str, amount: int) -> None:
        with self._atomic(f"supply {amount} {asset} from {user}"):
            pool.supply(self.state, self.ledger, asset, amount, user)

    def withdraw_pool(self, user: str, asset: str, amount: int) -> None:
        with self._atomic(f"withdraw {amount} {asset} supply of {user}"):
            pool.withdraw(self.state, self.ledger, asset, amount, user)

    def borrow(self, user: str, market_id: int, asset: str, amount: int) -> None:
        """
        Borrow into the user's collateral account.

        Raises:
            InsufficientLiquidity: If the pool cannot fund it
            InsufficientCollateral: If the account would fall below the withdraw rate
            BorrowDisabled: If the market has borrowing switched off
        """
        with self._atomic(f"borrow {amount} {asset} by {user} in market {market_id}"):
            pool.borrow(self.state, self.ledger, user, market_id, asset, amount)
            accounts.ensure_borrow_allowed(self.state, self.ledger, self.prices, user, market_id)

    def repay(self, user: str, market_id: int, asset: str, amount: int) -> int:
        """Repay from the account's balance. Returns the amount actually repaid."""
        with self._atomic(f"repay {amount} {asset} by {user} in market {market_id}"):
            return pool.repay(self.state, self.ledger, user, market_id, asset, amount)

    def get_pool_total_supply(self, asset: str) -> int:
        return pool.get_total_supply(self.state, asset)

    def get_pool_total_borrow(self, asset: str) -> int:
        return pool.get_total_borrow(self.state, asset)

    def get_pool_supply_of(self, user: str, asset: str) -> int:
        return pool.get_supply_of(self.state, asset, user)

    def get_pool_cash(self, asset: str) -> int:
        return pool.get_cash(self.ledger, asset)

    def get_pool_utilization(self, asset: str) -> Fixed:
        return pool.get_utilization(self.state, asset)

    def get_pool_interest_rate(self, asset: str, extra_borrow: int = 0) -> pool.InterestRates:
        return pool.get_interest_rates(self.state, asset, extra_borrow)

    def get_amount_borrowed(self, user: str, market_id: int, asset: str) -> int:
        return pool.get_amount_borrowed(self.state, asset, user, market_id)

    def get_insurance_balance(self, asset: str) -> int:
        return insurance.get_insurance_balance(self.state, asset)

    # ========================================================================
    # COLLATERAL ACCOUNTS
    # ========================================================================

    def deposit_collateral(self, user: str, market_id: int, asset: str, amount: int) -> None:
        with self._atomic(f"deposit {amount} {asset} collateral for {user} in market {market_id}"):
            accounts.deposit_collateral(self.state, self.ledger, user, market_id, asset, amount)

    def withdraw_collateral(self, user: str, market_id: int, asset: str, amount: int) -> None:
        with self._atomic(f"withdraw {amount} {asset} collateral for {user} in market {market_id}"):
            accounts.withdraw_collateral(
                self.state, self.ledger, self.prices, user, market_id, asset, amount
            )

    def get_transferable_amount(self, user: str, market_id: int, asset: str) -> int:
        return accounts.get_transferable_amount(
            self.state, self.ledger, self.prices, user, market_id, asset
        )

    def get_account_details(self, user: str, market_id: int) -> accounts.AccountDetails:
        return accounts.get_details(self.state, self.ledger, self.prices, user, market_id)

    def is_account_liquidatable(self, user: str, market_id: int) -> bool:
        return accounts.is_liquidatable(self.state, self.ledger, self.prices, user, market_id)

    def liquidate_account(self, user: str, market_id: int, initiator: str) -> accounts.LiquidationResult:
        """
        Raises:
            NotLiquidatable: If the account is healthy or already LIQUID
        """
        with self._atomic(f"liquidate {user} in market {market_id} by {initiator}"):
            return accounts.liquidate(
                self.state, self.ledger, self.prices, user, market_id, initiator
            )

    def liquidate_accounts(
        self,
        pairs: Iterable[Tuple[str, int]],
        initiator: str,
    ) -> List[accounts.LiquidationResult]:
        """
        Liquidate a batch of (user, market_id) pairs.

        All-or-nothing: if any pair fails (e.g., NotLiquidatable) no
        liquidation in the batch takes effect.
        """
        pairs = list(pairs)
        if not pairs:
            raise ValidationError("Batch liquidation needs at least one account")
        with self._atomic(f"liquidate {len(pairs)} accounts by {initiator}"):
            return accounts.liquidate_multi(self.state, self.ledger, self.prices, pairs, initiator)

    # ========================================================================
    # AUCTIONS
    # ========================================================================

    def fill_auction_with_amount(self, auction_id: int, bidder: str, amount: int) -> auctions.FillResult:
        with self._atomic(f"fill auction {auction_id} with {amount} by {bidder}"):
            return auctions.fill_auction_with_amount(
                self.state, self.ledger, auction_id, bidder, amount, self.ratio_curve
            )

    def get_auction_details(self, auction_id: int) -> auctions.AuctionDetails:
        return auctions.get_auction_details(self.state, self.ledger, auction_id, self.ratio_curve)

    def active_auction_ids(self) -> List[int]:
        return self.state.active_auctions.ids()

    @property
    def events(self) -> List[Event]:
        return list(self.state.events)

    def __repr__(self) -> str:
        return (
            f"LendingEngine(height={self.state.height}, markets={len(self.state.markets)}, "
            f"active_auctions={len(self.state.active_auctions)})"
        )
