"""
test_state.py - Unit tests for the lending store and insurance funds

Tests:
- ActiveAuctionSet: O(1) swap-remove, duplicates, missing ids
- LendingState: registration, lookups, clone/restore independence
- Insurance: fully covered claims, shortfalls socialized across suppliers
"""

import pytest
from decimal import Decimal

from marginpool import (
    ActiveAuctionSet, LendingState, AssetConfig, Market, AccountStatus,
    UnknownAsset, UnknownMarket, InsuranceClaim, InsuranceClaimed,
    claim_insurance, get_insurance_balance, ONE,
)

from tests.conftest import MARKET_ID


class TestActiveAuctionSet:
    """Tests for the compact active-auction set."""

    def test_add_and_contains(self):
        active = ActiveAuctionSet()
        active.add(1)
        active.add(2)
        assert 1 in active
        assert 3 not in active
        assert len(active) == 2
        assert active.ids() == [1, 2]

    def test_remove_swaps_last_into_place(self):
        active = ActiveAuctionSet()
        for auction_id in (1, 2, 3, 4):
            active.add(auction_id)
        active.remove(2)
        assert active.ids() == [1, 4, 3]
        active.remove(1)
        assert active.ids() == [3, 4]

    def test_remove_last(self):
        active = ActiveAuctionSet()
        active.add(7)
        active.add(8)
        active.remove(8)
        assert active.ids() == [7]
        active.add(8)
        assert active.ids() == [7, 8]

    def test_remove_missing(self):
        active = ActiveAuctionSet()
        active.add(1)
        with pytest.raises(KeyError):
            active.remove(5)
        active.remove(1)
        with pytest.raises(KeyError):
            active.remove(1)

    def test_duplicate_add(self):
        active = ActiveAuctionSet()
        active.add(1)
        with pytest.raises(ValueError):
            active.add(1)

    def test_iteration_is_a_copy(self):
        active = ActiveAuctionSet()
        active.add(1)
        active.add(2)
        for auction_id in active:
            active.remove(auction_id)
        assert len(active) == 0


class TestLendingState:
    """Tests for registration, lookups and snapshots."""

    @pytest.fixture
    def state(self):
        state = LendingState(heights_per_year=100)
        state.register_asset(AssetConfig("ETH"))
        state.register_asset(AssetConfig("USDT"))
        state.register_market(Market(MARKET_ID, "ETH", "USDT"))
        return state

    def test_heights_per_year_positive(self):
        with pytest.raises(ValueError):
            LendingState(heights_per_year=0)

    def test_register_creates_pool_and_fund(self, state):
        assert state.get_pool("ETH").supply_index == ONE
        assert state.get_insurance_fund("USDT").balance == 0

    def test_duplicate_asset(self, state):
        with pytest.raises(ValueError):
            state.register_asset(AssetConfig("ETH"))

    def test_duplicate_market(self, state):
        with pytest.raises(ValueError):
            state.register_market(Market(MARKET_ID, "ETH", "USDT"))

    def test_market_with_unknown_asset(self, state):
        with pytest.raises(UnknownAsset):
            state.register_market(Market(2, "BTC", "USDT"))

    def test_lookups_raise(self, state):
        with pytest.raises(UnknownMarket):
            state.get_market(9)
        with pytest.raises(UnknownAsset):
            state.get_pool("BTC")
        with pytest.raises(UnknownAsset):
            state.get_asset_config("BTC")
        with pytest.raises(UnknownAsset):
            state.get_insurance_fund("BTC")

    def test_get_account_creates_on_first_use(self, state):
        assert state.find_account("alice", MARKET_ID) is None
        account = state.get_account("alice", MARKET_ID)
        assert account.status == AccountStatus.NORMAL
        assert state.find_account("alice", MARKET_ID) is account

    def test_get_account_unknown_market(self, state):
        with pytest.raises(UnknownMarket):
            state.get_account("alice", 9)
        assert state.accounts == {}

    def test_clone_is_independent(self, state):
        state.get_account("alice", MARKET_ID).normalized_borrows["USDT"] = 10
        state.active_auctions.add(1)
        cloned = state.clone()

        cloned.get_account("alice", MARKET_ID).normalized_borrows["USDT"] = 99
        cloned.get_pool("USDT").normalized_total_borrow = 99
        cloned.active_auctions.remove(1)
        cloned.height = 50

        assert state.get_account("alice", MARKET_ID).normalized_borrows["USDT"] == 10
        assert state.get_pool("USDT").normalized_total_borrow == 0
        assert 1 in state.active_auctions
        assert state.height == 0

    def test_restore(self, state):
        snapshot = state.clone()
        state.get_pool("USDT").normalized_total_supply = 500
        state.supplies[("USDT", "alice")] = 500
        state.next_auction_id = 7
        state.restore(snapshot)
        assert state.get_pool("USDT").normalized_total_supply == 0
        assert state.supplies == {}
        assert state.next_auction_id == 1

    def test_restore_leaves_snapshot_reusable(self, state):
        snapshot = state.clone()
        state.restore(snapshot)
        state.get_pool("USDT").normalized_total_supply = 1
        assert snapshot.get_pool("USDT").normalized_total_supply == 0


class TestInsurance:
    """Tests for claims against the insurance fund."""

    @pytest.fixture
    def state(self):
        """Lender holds 1,000 normalized USDT at index 1; fund holds 300."""
        state = LendingState(heights_per_year=100)
        state.register_asset(AssetConfig("USDT"))
        pool = state.get_pool("USDT")
        pool.normalized_total_supply = 1_000
        state.supplies[("USDT", "lender")] = 1_000
        state.get_insurance_fund("USDT").balance = 300
        return state

    def test_fully_covered(self, state):
        claim = claim_insurance(state, "USDT", 200)
        assert claim == InsuranceClaim("USDT", 200, 200, 0)
        fund = state.get_insurance_fund("USDT")
        assert fund.balance == 100
        assert fund.total_claimed == 200
        assert fund.total_shortfall == 0
        assert state.get_pool("USDT").supply_index == ONE
        assert state.events[-1] == InsuranceClaimed(0, "USDT", 200, 200, 0)

    def test_shortfall_socialized(self, state):
        claim = claim_insurance(state, "USDT", 500)
        assert claim.covered == 300
        assert claim.shortfall == 200
        assert state.get_insurance_fund("USDT").balance == 0
        assert state.get_insurance_fund("USDT").total_shortfall == 200
        # 800 left for 1,000 normalized units
        assert state.get_pool("USDT").supply_index == ONE * 8 // 10

    def test_zero_claim(self, state):
        claim = claim_insurance(state, "USDT", 0)
        assert claim == InsuranceClaim("USDT", 0, 0, 0)
        assert state.get_insurance_fund("USDT").balance == 300

    def test_negative_claim(self, state):
        with pytest.raises(ValueError):
            claim_insurance(state, "USDT", -1)

    def test_balance_read(self, state):
        assert get_insurance_balance(state, "USDT") == 300

    def test_claim_record_must_add_up(self):
        with pytest.raises(ValueError):
            InsuranceClaim("USDT", 10, 5, 4)
