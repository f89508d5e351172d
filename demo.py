#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Margin Pool Step by Step

A walkthrough of the lending engine: supply a pool, borrow against
collateral, watch interest accrue, and follow a liquidation from the price
drop to the last auction fill. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Custody ledger, pools, a market, the first supplier
  4-5:  Borrowing    - Collateral checks, rejections, interest accrual
  6-8:  Liquidation  - Forced repay, the auction curve, both fill regimes
  9-10: Stress       - A keeper on a random price path, the solvency check

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
import sys

from marginpool import (
    Ledger, token, StaticPricingSource,
    LendingEngine, LendingState, AssetConfig, Market, PolynomialRateModel,
    LendingError, generate_price_path, price_paths_source, run_keeper,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    heights_per_year: int = 100
    eth_price: Decimal = Decimal("20")
    crashed_eth_price: Decimal = Decimal("10")

    lender_usdt: int = 100_000
    trader_eth: int = 1_000
    trader_borrow: int = 9_000
    bidder_usdt: int = 100_000

    auction_ratio_start: Decimal = Decimal("0.8")
    auction_ratio_per_height: Decimal = Decimal("0.1")

    keeper_traders: int = 5
    keeper_steps: int = 60
    keeper_volatility: float = 1.5
    keeper_seed: int = 11


CONFIG = DemoConfig()
MARKET_ID = 1

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def fund(engine: LendingEngine, user: str, asset: str, amount: int):
    """Mint into a wallet (test mode) and deposit into the protocol."""
    held = engine.ledger.wallet_balance(user, asset)
    engine.ledger.set_wallet_balance(user, asset, held + amount)
    engine.deposit(user, asset, amount)


def print_pool(engine: LendingEngine, asset: str = "USDT"):
    rates = engine.get_pool_interest_rate(asset)
    print(f"Total supply:   {engine.get_pool_total_supply(asset):>10,}")
    print(f"Total borrow:   {engine.get_pool_total_borrow(asset):>10,}")
    print(f"Cash:           {engine.get_pool_cash(asset):>10,}")
    print(f"Insurance:      {engine.get_insurance_balance(asset):>10,}")
    print(f"Utilization:    {rates.utilization}")
    print(f"Borrow rate:    {rates.borrow_rate}")
    print(f"Supply rate:    {rates.supply_rate}")


def print_account(engine: LendingEngine, user: str):
    details = engine.get_account_details(user, MARKET_ID)
    print(f"Status:         {details.status.value}")
    print(f"Balances:       {details.balances}")
    print(f"Debts:          {details.debts}")
    print(f"Value:          {details.balances_value:,} / {details.debts_value:,}")
    print(f"Ratio:          {details.ratio}")
    print(f"Liquidatable:   {details.liquidatable}")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_custody():
    """Create the custody ledger that holds every balance."""
    step_header(1, "The Custody Ledger",
        "Value lives in a custody ledger under paths; the engine only keeps accounting.")

    print("""
    Every balance is keyed by (path, asset). A path is one of:

    - common(user)            the user's free balance inside the protocol
    - market(user, market_id) the user's isolated collateral account
    - pool                    the lending pool's cash

    Wallets sit outside the protocol. deposit() moves wallet -> common.
    """)
    wait_for_enter()

    print('>>> ledger = Ledger("custody", verbose=True, test_mode=True)')
    ledger = Ledger("custody", verbose=True, test_mode=True)
    ledger.register_asset(token("ETH", "Ether"))
    ledger.register_asset(token("USDT", "Tether"))
    return ledger


def step_02_engine(ledger: Ledger):
    """Register pools and the ETH/USDT market."""
    step_header(2, "Pools and Markets",
        "Each asset gets a pool with an interest curve; a market pairs two pools.")

    prices = StaticPricingSource({"ETH": CONFIG.eth_price, "USDT": Decimal("1")})
    ledger.verbose = False
    engine = LendingEngine(
        ledger, prices,
        state=LendingState(heights_per_year=CONFIG.heights_per_year),
        verbose=True,
    )
    for asset in ("ETH", "USDT"):
        engine.register_asset(AssetConfig(asset, PolynomialRateModel()))
    engine.register_market(Market(
        MARKET_ID, "ETH", "USDT",
        auction_ratio_start=CONFIG.auction_ratio_start,
        auction_ratio_per_height=CONFIG.auction_ratio_per_height,
    ))

    section_header("Market 1")
    market = engine.state.get_market(MARKET_ID)
    print(f"Liquidate below ratio:   {market.liquidate_rate}")
    print(f"Borrow/withdraw above:   {market.withdraw_rate}")
    print(f"Initiator reward:        {market.initiator_reward_ratio}")
    print(f"Auction ratio:           {market.auction_ratio_start} + "
          f"{market.auction_ratio_per_height}/height, capped at {market.auction_ratio_ceiling}")
    wait_for_enter()
    return engine


def step_03_supply(engine: LendingEngine):
    """A lender supplies USDT to the pool."""
    step_header(3, "Supplying the Pool",
        "Suppliers receive normalized shares that grow with the supply index.")

    fund(engine, "lender", "USDT", CONFIG.lender_usdt)
    engine.supply_pool("lender", "USDT", CONFIG.lender_usdt)

    section_header("USDT Pool")
    print_pool(engine)
    wait_for_enter()


# ============================================================================
# PHASE 2: BORROWING (Steps 4-5)
# ============================================================================

def step_04_borrow(engine: LendingEngine):
    """Post collateral and borrow; see a rejected over-borrow."""
    step_header(4, "Borrowing Against Collateral",
        "A borrow must leave the account at or above the withdraw rate.")

    fund(engine, "trader", "ETH", CONFIG.trader_eth)
    engine.deposit_collateral("trader", MARKET_ID, "ETH", CONFIG.trader_eth)
    engine.borrow("trader", MARKET_ID, "USDT", CONFIG.trader_borrow)
    engine.withdraw_collateral("trader", MARKET_ID, "USDT", CONFIG.trader_borrow)

    section_header("Trying to borrow too much")
    try:
        engine.borrow("trader", MARKET_ID, "USDT", 5_000)
    except LendingError:
        print("Rejected, and the pool is exactly as it was:")

    section_header("Trader's account")
    print_account(engine, "trader")
    wait_for_enter()


def step_05_interest(engine: LendingEngine):
    """Advance heights and watch interest accrue lazily."""
    step_header(5, "Interest Accrual",
        "Reads project interest to the current height; nothing is stored until a write.")

    for heights in (1, 4, 5):
        engine.advance_height(heights)
        owed = engine.get_amount_borrowed("trader", MARKET_ID, "USDT")
        supplied = engine.get_pool_supply_of("lender", "USDT")
        print(f"height {engine.height:>3}: trader owes {owed:,}, lender holds {supplied:,}, "
              f"insurance {engine.get_insurance_balance('USDT'):,}")
    wait_for_enter()


# ============================================================================
# PHASE 3: LIQUIDATION (Steps 6-8)
# ============================================================================

def step_06_liquidate(engine: LendingEngine):
    """Crash the price and liquidate the account."""
    step_header(6, "Liquidation",
        "Below the liquidate rate anyone can liquidate; the remaining debt goes to auction.")

    engine.prices.update_price("ETH", CONFIG.crashed_eth_price)
    print_account(engine, "trader")
    result = engine.liquidate_account("trader", MARKET_ID, "keeper")

    section_header("Result")
    print(f"Forced repay:   {result.repaid}")
    print(f"Auction:        {result.auction_id} ({result.debt_asset} debt for {result.collateral_asset})")
    wait_for_enter()
    return result.auction_id


def step_07_fill_below_one(engine: LendingEngine, auction_id: int):
    """Fill half the auction while its ratio is below 1."""
    step_header(7, "Filling Below Ratio 1",
        "The bidder pays in full and gets ratio x collateral; the rest is shared.")

    fund(engine, "bidder", "USDT", CONFIG.bidder_usdt)
    details = engine.get_auction_details(auction_id)
    print(f"Ratio {details.ratio}: debt {details.left_debt:,}, collateral {details.left_collateral:,}")

    fill = engine.fill_auction_with_amount(auction_id, "bidder", details.left_debt // 2)
    s = fill.settlement
    section_header("Settlement")
    print(f"Repaid:         {s.actual_repay:,}")
    print(f"Collateral:     bidder {s.collateral_for_bidder}, initiator {s.collateral_for_initiator}, "
          f"borrower {s.collateral_for_borrower}")
    wait_for_enter()


def step_08_fill_above_one(engine: LendingEngine, auction_id: int):
    """Let the ratio rise above 1 and finish the auction."""
    step_header(8, "Filling Above Ratio 1",
        "The bidder repays more than it pays; insurance (then suppliers) covers the gap.")

    engine.advance_height(5)
    details = engine.get_auction_details(auction_id)
    print(f"Ratio {details.ratio}: debt {details.left_debt:,}, collateral {details.left_collateral:,}")

    fill = engine.fill_auction_with_amount(auction_id, "bidder", details.left_debt)
    s = fill.settlement
    section_header("Settlement")
    print(f"Repay amount:   {s.repay_amount:,} (cleared {s.actual_repay:,})")
    print(f"Bidder paid:    {s.bidder_repay:,}")
    print(f"Insurance:      {s.insurance_claim:,}")
    print(f"Finished:       {fill.finished}")

    section_header("USDT Pool")
    print_pool(engine)
    wait_for_enter()


# ============================================================================
# PHASE 4: STRESS (Steps 9-10)
# ============================================================================

def step_09_keeper():
    """Run a keeper over traders on a random ETH path."""
    step_header(9, "A Keeper on a Random Path",
        "Simulate ETH with GBM and liquidate whoever falls below the line.")

    path = generate_price_path(CONFIG.eth_price, CONFIG.keeper_volatility,
                               CONFIG.keeper_steps, seed=CONFIG.keeper_seed)
    prices = price_paths_source({"ETH": path, "USDT": [Decimal("1")] * len(path)})
    ledger = Ledger("keeper", test_mode=True)
    ledger.register_asset(token("ETH", "Ether"))
    ledger.register_asset(token("USDT", "Tether"))
    engine = LendingEngine(ledger, prices, state=LendingState(heights_per_year=365))
    for asset in ("ETH", "USDT"):
        engine.register_asset(AssetConfig(asset))
    engine.register_market(Market(MARKET_ID, "ETH", "USDT"))

    fund(engine, "lender", "USDT", 1_000_000)
    engine.supply_pool("lender", "USDT", 1_000_000)
    accounts = []
    for i in range(CONFIG.keeper_traders):
        user = f"trader_{i}"
        fund(engine, user, "ETH", 1_000)
        engine.deposit_collateral(user, MARKET_ID, "ETH", 1_000)
        engine.borrow(user, MARKET_ID, "USDT", 6_000 + 1_000 * i)
        engine.withdraw_collateral(user, MARKET_ID, "USDT", 6_000 + 1_000 * i)
        accounts.append((user, MARKET_ID))

    print(f"ETH path: start {path[0]}, min {min(path)}, end {path[-1]}")
    sweeps = run_keeper(engine, accounts, range(1, len(path)), "keeper")
    for sweep in sweeps:
        for user, _, auction_id in sweep.liquidated:
            print(f"height {sweep.height:>3}: liquidated {user} "
                  f"(ETH {prices.get_price('ETH', sweep.height)}) -> auction {auction_id}")
    if not any(sweep.liquidated for sweep in sweeps):
        print("No account fell below the liquidate rate on this path.")
    wait_for_enter()


def step_10_solvency(engine: LendingEngine):
    """Check the pool invariants after everything above."""
    step_header(10, "Solvency Check",
        "Borrow never exceeds supply, and cash always covers supply minus borrow.")

    supply = engine.get_pool_total_supply("USDT")
    borrow = engine.get_pool_total_borrow("USDT")
    cash = engine.get_pool_cash("USDT")
    print(f"borrow <= supply:        {borrow:,} <= {supply:,}  {'✓' if borrow <= supply else '✗'}")
    print(f"cash >= supply - borrow: {cash:,} >= {supply - borrow:,}  "
          f"{'✓' if cash >= supply - borrow else '✗'}")
    print(f"\nEvents emitted: {len(engine.events)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       MARGINPOOL - INTERACTIVE TUTORIAL")
    print("=" * 70)

    ledger = step_01_custody()
    engine = step_02_engine(ledger)
    step_03_supply(engine)
    step_04_borrow(engine)
    step_05_interest(engine)
    auction_id = step_06_liquidate(engine)
    step_07_fill_below_one(engine, auction_id)
    step_08_fill_above_one(engine, auction_id)
    step_09_keeper()
    step_10_solvency(engine)


if __name__ == "__main__":
    main()
