"""
state.py - The explicit store threaded through every engine operation

LendingState holds everything the core mutates: markets, pool accounting,
supply positions, collateral accounts, auctions, insurance funds and the
event log. Service functions in pool.py, account.py, auction.py and
insurance.py receive it as their first argument; there are no module-level
singletons. Value itself lives in the custody ledger, not here.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
import copy

from .core import (
    AccountStatus, AuctionStatus, UnknownAsset, UnknownMarket,
    DEFAULT_HEIGHTS_PER_YEAR, FIRST_AUCTION_ID,
)
from .events import Event
from .fixed_point import ONE
from .interest import AssetConfig
from .market import Market


@dataclass
class PoolAsset:
    """
    Pool accounting for one asset.

    Totals are stored normalized (divided by their index) so interest accrues
    to every position at once when the index moves. Indices are raw Fixed ints.
    """
    asset: str
    normalized_total_supply: int = 0
    normalized_total_borrow: int = 0
    supply_index: int = ONE
    borrow_index: int = ONE
    last_accrual_height: int = 0


@dataclass
class CollateralAccount:
    """
    A user's isolated margin position in one market.

    Asset balances live in the custody ledger under the account's market
    path; only status and normalized borrows are kept here.
    """
    user: str
    market_id: int
    status: AccountStatus = AccountStatus.NORMAL
    normalized_borrows: Dict[str, int] = field(default_factory=dict)


@dataclass
class Auction:
    """Liquidation auction. Only status changes after creation."""
    auction_id: int
    status: AuctionStatus
    start_height: int
    market_id: int
    borrower: str
    initiator: str
    debt_asset: str
    collateral_asset: str


@dataclass
class InsuranceFund:
    """
    Per-asset reserve fed by the reserve factor of borrow interest.

    Attributes:
        balance: Reserve currently available to cover shortfalls
        total_claimed: Cumulative claims made against the fund
        total_shortfall: Cumulative claims the fund could not cover (socialized)
    """
    asset: str
    balance: int = 0
    total_claimed: int = 0
    total_shortfall: int = 0


class ActiveAuctionSet:
    """
    Compact set of in-progress auction ids.

    Backed by a list plus an id -> position map. Removal swaps the last id
    into the removed slot and truncates, so it is O(1) but does NOT preserve
    insertion order.
    """

    def __init__(self):
        self._ids: List[int] = []
        self._positions: Dict[int, int] = {}

    def add(self, auction_id: int) -> None:
        if auction_id in self._positions:
            raise ValueError(f"Auction {auction_id} already active")
        self._positions[auction_id] = len(self._ids)
        self._ids.append(auction_id)

    def remove(self, auction_id: int) -> None:
        position = self._positions.pop(auction_id, None)
        if position is None:
            raise KeyError(auction_id)
        last = self._ids.pop()
        if last != auction_id:
            self._ids[position] = last
            self._positions[last] = position

    def ids(self) -> List[int]:
        """Current ids in storage order (not creation order after removals)."""
        return list(self._ids)

    def __contains__(self, auction_id: int) -> bool:
        return auction_id in self._positions

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"ActiveAuctionSet({self._ids})"


class LendingState:
    """
    Mutable store for the whole engine.

    Not thread-safe. Every public operation is expected to run to completion
    before the next begins.
    """

    def __init__(self, heights_per_year: int = DEFAULT_HEIGHTS_PER_YEAR, height: int = 0):
        if heights_per_year <= 0:
            raise ValueError(f"heights_per_year must be positive, got {heights_per_year}")
        self.height = height
        self.heights_per_year = heights_per_year
        self.markets: Dict[int, Market] = {}
        self.asset_configs: Dict[str, AssetConfig] = {}
        self.pools: Dict[str, PoolAsset] = {}
        # (asset, user) -> normalized supply
        self.supplies: Dict[Tuple[str, str], int] = {}
        self.accounts: Dict[Tuple[str, int], CollateralAccount] = {}
        self.auctions: Dict[int, Auction] = {}
        self.active_auctions = ActiveAuctionSet()
        self.insurance: Dict[str, InsuranceFund] = {}
        self.events: List[Event] = []
        self.next_auction_id = FIRST_AUCTION_ID

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_asset(self, config: AssetConfig) -> None:
        if config.asset in self.asset_configs:
            raise ValueError(f"Asset {config.asset} already registered")
        self.asset_configs[config.asset] = config
        self.pools[config.asset] = PoolAsset(config.asset, last_accrual_height=self.height)
        self.insurance[config.asset] = InsuranceFund(config.asset)

    def register_market(self, market: Market) -> None:
        if market.market_id in self.markets:
            raise ValueError(f"Market {market.market_id} already registered")
        for asset in market.assets:
            if asset not in self.pools:
                raise UnknownAsset(f"Market {market.market_id} uses unregistered asset {asset}")
        self.markets[market.market_id] = market

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_market(self, market_id: int) -> Market:
        market = self.markets.get(market_id)
        if market is None:
            raise UnknownMarket(f"Market {market_id} not registered")
        return market

    def get_pool(self, asset: str) -> PoolAsset:
        pool = self.pools.get(asset)
        if pool is None:
            raise UnknownAsset(f"Asset {asset} not registered")
        return pool

    def get_asset_config(self, asset: str) -> AssetConfig:
        config = self.asset_configs.get(asset)
        if config is None:
            raise UnknownAsset(f"Asset {asset} not registered")
        return config

    def get_insurance_fund(self, asset: str) -> InsuranceFund:
        fund = self.insurance.get(asset)
        if fund is None:
            raise UnknownAsset(f"Asset {asset} not registered")
        return fund

    def find_account(self, user: str, market_id: int) -> Optional[CollateralAccount]:
        return self.accounts.get((user, market_id))

    def get_account(self, user: str, market_id: int) -> CollateralAccount:
        """Return the account, creating it on first use."""
        self.get_market(market_id)
        account = self.accounts.get((user, market_id))
        if account is None:
            account = CollateralAccount(user, market_id)
            self.accounts[(user, market_id)] = account
        return account

    def emit(self, event: Event) -> None:
        self.events.append(event)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def clone(self) -> LendingState:
        """Create a fully independent copy (markets and configs are immutable and shared)."""
        cloned = LendingState.__new__(LendingState)
        cloned.height = self.height
        cloned.heights_per_year = self.heights_per_year
        cloned.markets = dict(self.markets)
        cloned.asset_configs = dict(self.asset_configs)
        cloned.pools = copy.deepcopy(self.pools)
        cloned.supplies = dict(self.supplies)
        cloned.accounts = copy.deepcopy(self.accounts)
        cloned.auctions = copy.deepcopy(self.auctions)
        cloned.active_auctions = copy.deepcopy(self.active_auctions)
        cloned.insurance = copy.deepcopy(self.insurance)
        cloned.events = list(self.events)
        cloned.next_auction_id = self.next_auction_id
        return cloned

    def restore(self, snapshot: LendingState) -> None:
        """Replace this store's contents with a snapshot taken by clone()."""
        self.__dict__.update(snapshot.clone().__dict__)
