"""
ledger.py - Custody ledger holding per-(path, asset) balances

Reference implementation of the CustodyLedger protocol. The lending engine
treats custody as an external collaborator: it never edits balances directly,
only through deposit_for / withdraw_from / transfer.

Key responsibilities:
    - Keeps external wallet holdings and in-protocol path balances apart
    - Validates every movement (registered asset, positive int, no overdraft)
    - Logs every movement in an append-only transfer log
    - Supports snapshot/restore so a caller can roll back a failed operation
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Any
import copy

from .core import (
    BalancePath, LendingError, InsufficientFunds, UnknownAsset,
)


@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of a transferable asset.

    Attributes:
        symbol: Short identifier (e.g., "ETH", "USDT")
        name: Human-readable name
        decimals: Number of decimals in one whole token (informational)
    """
    symbol: str
    name: str
    decimals: int = 18

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Asset symbol cannot be empty")
        if self.decimals < 0:
            raise ValueError(f"decimals cannot be negative, got {self.decimals}")


def token(symbol: str, name: str, decimals: int = 18) -> Asset:
    """Create a fungible token asset."""
    return Asset(symbol=symbol, name=name, decimals=decimals)


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """
    One logged custody movement.

    source/dest are either a BalancePath or an external address string.
    """
    sequence: int
    kind: str  # deposit, withdraw, transfer
    asset: str
    source: Any
    dest: Any
    amount: int

    def __repr__(self) -> str:
        return f"Entry#{self.sequence}({self.kind} {self.amount} {self.asset}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    assets: Dict[str, Asset]
    wallets: Dict[Tuple[str, str], int]
    balances: Dict[Tuple[BalancePath, str], int]
    log_length: int


class Ledger:
    """
    Custody ledger with full validation and audit trail.

    Balances are non-negative ints. External wallets model value outside the
    protocol; paths model value held inside it.

    Thread Safety:
        Not thread-safe. Calls are expected to be serialized by the caller.

    Example:
        ledger = Ledger("main")
        ledger.register_asset(token("USDT", "Tether"))
        ledger.set_wallet_balance("alice", "USDT", 1_000)   # test mode only
        ledger.deposit_for("USDT", "alice", common_path("alice"), 500)
    """

    def __init__(self, name: str, verbose: bool = False, test_mode: bool = False):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            verbose: Print one line per movement (default: False)
            test_mode: Allow set_wallet_balance() (default: False)
        """
        self.name = name
        self.assets: Dict[str, Asset] = {}
        self.wallets: Dict[Tuple[str, str], int] = defaultdict(int)
        self.balances: Dict[Tuple[BalancePath, str], int] = defaultdict(int)
        self.transfer_log: List[LedgerEntry] = []
        self.verbose = verbose
        self._test_mode = test_mode

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, path: BalancePath, asset: str) -> int:
        """
        Balance of an asset under a path.

        Raises:
            UnknownAsset: If asset is not registered
        """
        self._require_asset(asset)
        return self.balances.get((path, asset), 0)

    def wallet_balance(self, address: str, asset: str) -> int:
        """External (out-of-protocol) holding of an address."""
        self._require_asset(asset)
        return self.wallets.get((address, asset), 0)

    def list_assets(self) -> List[str]:
        return sorted(self.assets.keys())

    def total_supply(self, asset: str) -> int:
        """Sum of an asset across all external wallets and all paths."""
        self._require_asset(asset)
        in_wallets = sum(q for (_, a), q in self.wallets.items() if a == asset)
        in_paths = sum(q for (_, a), q in self.balances.items() if a == asset)
        return in_wallets + in_paths

    def verify_conservation(self, expected_supplies: Dict[str, int]) -> Dict[str, Any]:
        """
        Check that every asset's total equals its expected supply.

        Movements only redistribute value, so totals change only through
        set_wallet_balance().

        Returns:
            Dict with 'valid', 'supplies' and 'discrepancies'
        """
        supplies = {}
        discrepancies = []
        for asset, expected in expected_supplies.items():
            if asset not in self.assets:
                discrepancies.append({'asset': asset, 'expected': expected, 'actual': 0,
                                      'error': 'asset not registered'})
                continue
            actual = self.total_supply(asset)
            supplies[asset] = actual
            if actual != expected:
                discrepancies.append({'asset': asset, 'expected': expected, 'actual': actual})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_asset(self, asset: Asset) -> None:
        """
        Raises:
            ValueError: If the symbol is already registered
        """
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            print(f"📝 Registered: {asset.symbol} ({asset.name})")

    def set_wallet_balance(self, address: str, asset: str, amount: int) -> None:
        """
        Set an external wallet balance directly.

        Only available in test mode; it mints or burns value.

        Raises:
            LendingError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LendingError(
                "set_wallet_balance() is disabled in production mode. "
                "Set test_mode=True when creating Ledger for testing."
            )
        self._require_asset(asset)
        self._require_amount(amount, allow_zero=True)
        self.wallets[(address, asset)] = amount

    # ========================================================================
    # MOVEMENTS
    # ========================================================================

    def deposit_for(self, asset: str, payer: str, path: BalancePath, amount: int) -> None:
        """
        Move amount from an external wallet into a path.

        Raises:
            InsufficientFunds: If the payer's wallet holds less than amount
        """
        self._require_asset(asset)
        self._require_amount(amount)
        held = self.wallets.get((payer, asset), 0)
        if held < amount:
            raise InsufficientFunds(f"{payer} holds {held} {asset}, needs {amount}")
        self.wallets[(payer, asset)] = held - amount
        self.balances[(path, asset)] += amount
        self._log("deposit", asset, payer, path, amount)

    def withdraw_from(self, asset: str, path: BalancePath, payee: str, amount: int) -> None:
        """
        Move amount out of a path into an external wallet.

        Raises:
            InsufficientFunds: If the path holds less than amount
        """
        self._require_asset(asset)
        self._require_amount(amount)
        self._debit(path, asset, amount)
        self.wallets[(payee, asset)] += amount
        self._log("withdraw", asset, path, payee, amount)

    def transfer(self, asset: str, source: BalancePath, dest: BalancePath, amount: int) -> None:
        """
        Move amount between two paths.

        Raises:
            InsufficientFunds: If the source path holds less than amount
            ValueError: If source and dest are the same path
        """
        self._require_asset(asset)
        self._require_amount(amount)
        if source == dest:
            raise ValueError("Source and dest must be different")
        self._debit(source, asset, amount)
        self.balances[(dest, asset)] += amount
        self._log("transfer", asset, source, dest, amount)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Capture balances so a failed caller operation can be rolled back."""
        return LedgerSnapshot(
            assets=dict(self.assets),
            wallets=dict(self.wallets),
            balances=dict(self.balances),
            log_length=len(self.transfer_log),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Return balances and the log to a previous snapshot."""
        self.assets = dict(snapshot.assets)
        self.wallets = defaultdict(int, snapshot.wallets)
        self.balances = defaultdict(int, snapshot.balances)
        del self.transfer_log[snapshot.log_length:]

    def clone(self) -> Ledger:
        """Create a fully independent copy of this ledger."""
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.assets = dict(self.assets)
        cloned.wallets = defaultdict(int, self.wallets)
        cloned.balances = defaultdict(int, self.balances)
        cloned.transfer_log = copy.copy(self.transfer_log)
        return cloned

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_asset(self, asset: str) -> None:
        if asset not in self.assets:
            raise UnknownAsset(f"Asset {asset} not registered")

    @staticmethod
    def _require_amount(amount: int, allow_zero: bool = False) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"Amount must be int, got {type(amount)}")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValueError(f"Amount must be positive, got {amount}")

    def _debit(self, path: BalancePath, asset: str, amount: int) -> None:
        held = self.balances.get((path, asset), 0)
        if held < amount:
            raise InsufficientFunds(f"{path} holds {held} {asset}, needs {amount}")
        remaining = held - amount
        if remaining:
            self.balances[(path, asset)] = remaining
        else:
            # Drop empty balances to keep the map compact
            self.balances.pop((path, asset), None)

    def _log(self, kind: str, asset: str, source: Any, dest: Any, amount: int) -> None:
        entry = LedgerEntry(len(self.transfer_log), kind, asset, source, dest, amount)
        self.transfer_log.append(entry)
        if self.verbose:
            print(f"✓ {entry!r}")
