"""
test_ledger.py - Unit tests for the custody ledger

Tests:
- Asset registration and wallet funding (test mode only)
- deposit_for / withdraw_from / transfer validation
- Balance paths and their invariants
- Snapshot / restore and conservation checks
"""

import pytest

from marginpool import (
    Ledger, Asset, token, BalancePath, PathCategory, CustodyLedger,
    common_path, market_path, POOL_PATH,
    LendingError, InsufficientFunds, UnknownAsset,
)


@pytest.fixture
def ledger():
    ledger = Ledger("custody", test_mode=True)
    ledger.register_asset(token("USDT", "Tether"))
    ledger.set_wallet_balance("alice", "USDT", 1_000)
    return ledger


class TestRegistration:
    """Tests for assets and wallet funding."""

    def test_register_asset(self, ledger):
        assert ledger.list_assets() == ["USDT"]

    def test_duplicate_asset_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.register_asset(token("USDT", "Tether again"))

    def test_empty_symbol_rejected(self):
        with pytest.raises(ValueError):
            Asset("", "Nothing")

    def test_set_wallet_balance_requires_test_mode(self):
        ledger = Ledger("prod")
        ledger.register_asset(token("USDT", "Tether"))
        with pytest.raises(LendingError):
            ledger.set_wallet_balance("alice", "USDT", 100)

    def test_unknown_asset(self, ledger):
        with pytest.raises(UnknownAsset):
            ledger.balance_of(common_path("alice"), "ETH")

    def test_satisfies_custody_protocol(self, ledger):
        assert isinstance(ledger, CustodyLedger)


class TestBalancePaths:
    """Tests for BalancePath construction."""

    def test_market_path_requires_market(self):
        with pytest.raises(ValueError):
            BalancePath("alice", PathCategory.COLLATERAL_ACCOUNT)

    def test_common_path_rejects_market(self):
        with pytest.raises(ValueError):
            BalancePath("alice", PathCategory.COMMON, 1)

    def test_paths_are_distinct_keys(self):
        assert common_path("alice") != market_path("alice", 1)
        assert market_path("alice", 1) != market_path("alice", 2)
        assert market_path("alice", 1) == market_path("alice", 1)


class TestMovements:
    """Tests for deposit_for / withdraw_from / transfer."""

    def test_deposit_for(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 400)
        assert ledger.wallet_balance("alice", "USDT") == 600
        assert ledger.balance_of(common_path("alice"), "USDT") == 400

    def test_deposit_more_than_wallet(self, ledger):
        with pytest.raises(InsufficientFunds):
            ledger.deposit_for("USDT", "alice", common_path("alice"), 1_001)

    def test_transfer(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 400)
        ledger.transfer("USDT", common_path("alice"), POOL_PATH, 150)
        assert ledger.balance_of(common_path("alice"), "USDT") == 250
        assert ledger.balance_of(POOL_PATH, "USDT") == 150

    def test_overdraft_rejected(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 100)
        with pytest.raises(InsufficientFunds):
            ledger.transfer("USDT", common_path("alice"), POOL_PATH, 101)
        assert ledger.balance_of(common_path("alice"), "USDT") == 100

    def test_self_transfer_rejected(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 100)
        with pytest.raises(ValueError):
            ledger.transfer("USDT", common_path("alice"), common_path("alice"), 10)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, ledger, amount):
        with pytest.raises(ValueError):
            ledger.deposit_for("USDT", "alice", common_path("alice"), amount)

    def test_withdraw_from(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 400)
        ledger.withdraw_from("USDT", common_path("alice"), "bob", 100)
        assert ledger.wallet_balance("bob", "USDT") == 100
        assert ledger.balance_of(common_path("alice"), "USDT") == 300

    def test_empty_balances_dropped(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 100)
        ledger.transfer("USDT", common_path("alice"), POOL_PATH, 100)
        assert (common_path("alice"), "USDT") not in ledger.balances

    def test_transfer_log(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 100)
        ledger.transfer("USDT", common_path("alice"), POOL_PATH, 60)
        kinds = [entry.kind for entry in ledger.transfer_log]
        assert kinds == ["deposit", "transfer"]
        assert ledger.transfer_log[1].amount == 60


class TestSnapshots:
    """Tests for snapshot/restore, clone and conservation."""

    def test_restore_undoes_movements(self, ledger):
        snapshot = ledger.snapshot()
        ledger.deposit_for("USDT", "alice", common_path("alice"), 100)
        ledger.transfer("USDT", common_path("alice"), POOL_PATH, 60)
        ledger.restore(snapshot)
        assert ledger.wallet_balance("alice", "USDT") == 1_000
        assert ledger.balance_of(POOL_PATH, "USDT") == 0
        assert ledger.transfer_log == []

    def test_clone_is_independent(self, ledger):
        cloned = ledger.clone()
        cloned.deposit_for("USDT", "alice", common_path("alice"), 100)
        assert ledger.wallet_balance("alice", "USDT") == 1_000
        assert cloned.wallet_balance("alice", "USDT") == 900

    def test_movements_conserve_supply(self, ledger):
        ledger.deposit_for("USDT", "alice", common_path("alice"), 500)
        ledger.transfer("USDT", common_path("alice"), market_path("alice", 1), 200)
        ledger.withdraw_from("USDT", market_path("alice", 1), "bob", 50)
        result = ledger.verify_conservation({"USDT": 1_000})
        assert result['valid']
        assert result['supplies'] == {"USDT": 1_000}

    def test_conservation_reports_discrepancy(self, ledger):
        result = ledger.verify_conservation({"USDT": 999, "ETH": 0})
        assert not result['valid']
        assert len(result['discrepancies']) == 2
