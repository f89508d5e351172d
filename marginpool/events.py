"""
events.py - Append-only event records

Every state transition the engine performs is recorded as a frozen event on
LendingState.events. Off-chain observers index these; the engine itself never
reads them back.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Event:
    height: int


@dataclass(frozen=True, slots=True)
class PoolSupplied(Event):
    asset: str
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class PoolWithdrawn(Event):
    asset: str
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class Borrowed(Event):
    user: str
    market_id: int
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class Repaid(Event):
    user: str
    market_id: int
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralDeposited(Event):
    user: str
    market_id: int
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralWithdrawn(Event):
    user: str
    market_id: int
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class AccountLiquidated(Event):
    user: str
    market_id: int
    initiator: str
    auction_id: Optional[int]


@dataclass(frozen=True, slots=True)
class AuctionCreated(Event):
    auction_id: int


@dataclass(frozen=True, slots=True)
class AuctionFilled(Event):
    auction_id: int
    repay_amount: int
    bidder: str
    actual_repay: int
    bidder_repay: int
    collateral_for_bidder: int


@dataclass(frozen=True, slots=True)
class AuctionFinished(Event):
    auction_id: int


@dataclass(frozen=True, slots=True)
class InsuranceClaimed(Event):
    asset: str
    amount: int
    covered: int
    shortfall: int
