"""
simulation.py - Price-path generation and a liquidation keeper

Stress-testing helpers: drive an engine along a random price path and
liquidate whatever becomes under-collateralized, the way an off-chain
keeper bot would.

Price paths use discrete Geometric Brownian Motion:
    S(t+dt) = S(t) * exp((mu - 0.5*sigma^2)*dt + sigma*sqrt(dt)*Z),  Z ~ N(0,1)
drawn with numpy's seeded Generator, so a seed fully determines a path.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .core import NotLiquidatable
from .engine import LendingEngine
from .pricing_source import HeightSeriesPricingSource


def generate_price_path(
    initial: Decimal,
    volatility: float,
    steps: int,
    seed: int = 42,
    drift: float = 0.0,
    dt: float = 1.0 / 365.0,
    precision: int = 8,
) -> List[Decimal]:
    """
    Generate a GBM price path.

    Args:
        initial: Price at step 0
        volatility: Annualized volatility (e.g., 0.8 for 80%)
        steps: Number of steps after the initial price
        seed: Random seed for reproducibility
        drift: Annualized drift (default 0)
        dt: Years per step (default one day)
        precision: Decimal places kept in each price

    Returns:
        steps + 1 prices, starting with initial
    """
    if steps < 0:
        raise ValueError(f"steps cannot be negative, got {steps}")
    if volatility < 0:
        raise ValueError(f"volatility cannot be negative, got {volatility}")
    rng = np.random.default_rng(seed)
    shocks = rng.standard_normal(steps)
    exponents = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * shocks
    factors = np.exp(np.concatenate(([0.0], np.cumsum(exponents))))
    path = float(initial) * factors
    quantum = Decimal(1).scaleb(-precision)
    return [Decimal(f"{p:.{precision}f}").quantize(quantum) for p in path]


def price_paths_source(
    paths: Dict[str, Sequence[Decimal]],
    start_height: int = 0,
    step: int = 1,
) -> HeightSeriesPricingSource:
    """Lay price paths out on heights start_height, start_height + step, ..."""
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    return HeightSeriesPricingSource({
        asset: [(start_height + i * step, price) for i, price in enumerate(path)]
        for asset, path in paths.items()
    })


@dataclass(frozen=True, slots=True)
class SweepResult:
    """
    One keeper pass.

    Attributes:
        height: Height the sweep ran at
        liquidated: (user, market_id, auction_id) per liquidation; auction_id
            is None when the forced repay cleared the debt
        skipped: Accounts that were not liquidatable
    """
    height: int
    liquidated: List[Tuple[str, int, Optional[int]]] = field(default_factory=list)
    skipped: List[Tuple[str, int]] = field(default_factory=list)


def liquidation_sweep(
    engine: LendingEngine,
    accounts: Iterable[Tuple[str, int]],
    initiator: str,
) -> SweepResult:
    """
    Liquidate every liquidatable account in accounts.

    Each liquidation is its own engine call, so one account losing a race
    (NotLiquidatable) does not undo the others.
    """
    result = SweepResult(engine.height)
    for user, market_id in accounts:
        if not engine.is_account_liquidatable(user, market_id):
            result.skipped.append((user, market_id))
            continue
        try:
            outcome = engine.liquidate_account(user, market_id, initiator)
        except NotLiquidatable:
            result.skipped.append((user, market_id))
            continue
        result.liquidated.append((user, market_id, outcome.auction_id))
    return result


def run_keeper(
    engine: LendingEngine,
    accounts: Sequence[Tuple[str, int]],
    heights: Iterable[int],
    initiator: str,
) -> List[SweepResult]:
    """
    Advance the engine through heights, sweeping at each one.

    Heights must be non-decreasing and not behind the engine's height.
    """
    results = []
    for height in heights:
        engine.advance_height(height - engine.height)
        results.append(liquidation_sweep(engine, accounts, initiator))
    return results
