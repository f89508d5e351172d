"""
marginpool - Margin-lending and collateral-liquidation engine

Shared per-asset lending pools, isolated per-(user, market) collateral
accounts, liquidation through a time-priced two-regime auction, and a
per-asset insurance fund absorbing the shortfall.

Usage:
    from decimal import Decimal
    from marginpool import (
        Ledger, token, StaticPricingSource, LendingEngine, AssetConfig, Market,
    )

    ledger = Ledger("custody", test_mode=True)
    ledger.register_asset(token("ETH", "Ether"))
    ledger.register_asset(token("USDT", "Tether"))
    prices = StaticPricingSource({"ETH": Decimal("2000"), "USDT": Decimal("1")})

    engine = LendingEngine(ledger, prices)
    engine.register_asset(AssetConfig("ETH"))
    engine.register_asset(AssetConfig("USDT"))
    engine.register_market(Market(1, "ETH", "USDT"))

    ledger.set_wallet_balance("lender", "USDT", 100_000)
    engine.deposit("lender", "USDT", 100_000)
    engine.supply_pool("lender", "USDT", 100_000)

    ledger.set_wallet_balance("trader", "ETH", 10)
    engine.deposit("trader", "ETH", 10)
    engine.deposit_collateral("trader", 1, "ETH", 10)
    engine.borrow("trader", 1, "USDT", 5_000)
"""

# Core types
from .core import (
    LendingError,
    ValidationError,
    InsufficientLiquidity,
    InsufficientBalance,
    InsufficientFunds,
    InsufficientCollateral,
    BorrowDisabled,
    UnknownMarket,
    UnknownAsset,
    AuctionNotActive,
    PriceUnavailable,
    LiquidationError,
    NotLiquidatable,
    CheckedArithmeticError,
    ConservationError,
    AccountStatus,
    AuctionStatus,
    PathCategory,
    BalancePath,
    CustodyLedger,
    common_path,
    market_path,
    POOL_PATH,
    POOL_OWNER,
    DEFAULT_HEIGHTS_PER_YEAR,
)

# Fixed point
from .fixed_point import (
    Fixed,
    FIXED_ZERO,
    FIXED_ONE,
    DECIMALS,
    ONE,
    MAX_UINT256,
    mul_div,
    mul_floor,
    mul_ceil,
    div_floor,
    div_ceil,
    checked_add,
    checked_sub,
    checked_mul,
    checked_div,
)

# Events
from .events import (
    Event,
    PoolSupplied,
    PoolWithdrawn,
    Borrowed,
    Repaid,
    CollateralDeposited,
    CollateralWithdrawn,
    AccountLiquidated,
    AuctionCreated,
    AuctionFilled,
    AuctionFinished,
    InsuranceClaimed,
)

# Custody and prices
from .ledger import Ledger, Asset, LedgerEntry, LedgerSnapshot, token
from .pricing_source import PricingSource, StaticPricingSource, HeightSeriesPricingSource

# Configuration
from .interest import (
    InterestRateModel,
    PolynomialRateModel,
    KinkedRateModel,
    AssetConfig,
    DEFAULT_RATE_MODEL,
    supply_rate,
    per_height,
)
from .market import Market

# State
from .state import (
    LendingState,
    PoolAsset,
    CollateralAccount,
    Auction,
    InsuranceFund,
    ActiveAuctionSet,
)

# Services
from .pool import PoolProjection, InterestRates, project_pool, accrue_interest
from .insurance import InsuranceClaim, claim_insurance, get_insurance_balance
from .account import AccountDetails, LiquidationResult
from .auction import (
    RatioCurve,
    LinearRatioCurve,
    AuctionSnapshot,
    Settlement,
    RatioAtMostOne,
    RatioAboveOne,
    resolve_regime,
    FillResult,
    AuctionDetails,
)
from .engine import LendingEngine

# Simulation
from .simulation import (
    generate_price_path,
    price_paths_source,
    liquidation_sweep,
    run_keeper,
    SweepResult,
)

__all__ = [
    # Errors
    'LendingError',
    'ValidationError',
    'InsufficientLiquidity',
    'InsufficientBalance',
    'InsufficientFunds',
    'InsufficientCollateral',
    'BorrowDisabled',
    'UnknownMarket',
    'UnknownAsset',
    'AuctionNotActive',
    'PriceUnavailable',
    'LiquidationError',
    'NotLiquidatable',
    'CheckedArithmeticError',
    'ConservationError',
    # Enums and paths
    'AccountStatus',
    'AuctionStatus',
    'PathCategory',
    'BalancePath',
    'CustodyLedger',
    'common_path',
    'market_path',
    'POOL_PATH',
    'POOL_OWNER',
    'DEFAULT_HEIGHTS_PER_YEAR',
    # Fixed point
    'Fixed',
    'FIXED_ZERO',
    'FIXED_ONE',
    'DECIMALS',
    'ONE',
    'MAX_UINT256',
    'mul_div',
    'mul_floor',
    'mul_ceil',
    'div_floor',
    'div_ceil',
    'checked_add',
    'checked_sub',
    'checked_mul',
    'checked_div',
    # Events
    'Event',
    'PoolSupplied',
    'PoolWithdrawn',
    'Borrowed',
    'Repaid',
    'CollateralDeposited',
    'CollateralWithdrawn',
    'AccountLiquidated',
    'AuctionCreated',
    'AuctionFilled',
    'AuctionFinished',
    'InsuranceClaimed',
    # Custody and prices
    'Ledger',
    'Asset',
    'LedgerEntry',
    'LedgerSnapshot',
    'token',
    'PricingSource',
    'StaticPricingSource',
    'HeightSeriesPricingSource',
    # Configuration
    'InterestRateModel',
    'PolynomialRateModel',
    'KinkedRateModel',
    'AssetConfig',
    'DEFAULT_RATE_MODEL',
    'supply_rate',
    'per_height',
    'Market',
    # State
    'LendingState',
    'PoolAsset',
    'CollateralAccount',
    'Auction',
    'InsuranceFund',
    'ActiveAuctionSet',
    # Services
    'PoolProjection',
    'InterestRates',
    'project_pool',
    'accrue_interest',
    'InsuranceClaim',
    'claim_insurance',
    'get_insurance_balance',
    'AccountDetails',
    'LiquidationResult',
    'RatioCurve',
    'LinearRatioCurve',
    'AuctionSnapshot',
    'Settlement',
    'RatioAtMostOne',
    'RatioAboveOne',
    'resolve_regime',
    'FillResult',
    'AuctionDetails',
    'LendingEngine',
    # Simulation
    'generate_price_path',
    'price_paths_source',
    'liquidation_sweep',
    'run_keeper',
    'SweepResult',
]

__version__ = '1.0.0'
