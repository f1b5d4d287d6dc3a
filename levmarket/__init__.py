"""
levmarket - Leveraged token money market

A lending pool for one underlying asset and an engine that issues 2x
leveraged tokens financed by it, with fixed-point (WAD) accounting and
all-or-nothing operations.

Usage:
    from levmarket import Market, StaticPriceOracle, to_wad

    market = Market("USDC")
    market.register_asset("WETH")
    market.fund("lender", "USDC", to_wad(100_000))
    market.supply("lender", to_wad(100_000))

    oracle = StaticPriceOracle(to_wad(4000))
    venue = market.create_venue(oracle, "WETH",
                                inventory={"WETH": to_wad(1000)})
    market.create_token("owner", "ETH2X", "WETH", oracle, venue,
                        initial_price=to_wad(100))
    market.fund("alice", "WETH", to_wad(1))
    minted = market.mint("alice", "ETH2X", to_wad(1))
"""

from .core import (
    WAD,
    MAX_UINT256,
    SECONDS_PER_YEAR,
    POOL_WALLET,
    MAX_SWAP_SLIPPAGE,
    DEFAULT_FEE_RATE,
    DEFAULT_MIN_LEVERAGE_RATIO,
    DEFAULT_MAX_LEVERAGE_RATIO,
    DEFAULT_REBALANCING_STEP,
    DEFAULT_REBALANCE_INTERVAL,
    MarketError,
    ArithmeticFailure,
    InsufficientLiquidity,
    BorrowCapExceeded,
    OracleUnavailable,
    SlippageExceeded,
    OutOfRebalanceRange,
    NotRegistered,
    Unauthorized,
    InsufficientBalance,
    Reentrancy,
    PriceOracle,
    SwapVenue,
    Authorizer,
    OwnerAuthorizer,
    AllowAll,
)

from .fixed_point import (
    checked_add,
    checked_sub,
    checked_mul,
    checked_div,
    mul_div,
    mul_div_up,
    wmul,
    wmul_up,
    wdiv,
    wdiv_up,
    to_wad,
    from_wad,
)

from .interest_rate import InterestRateParams, InterestRateModel, utilization_rate
from .clock import Clock
from .tokens import TokenLedger
from .transaction import Guard, Transactor
from .pricing_source import fetch_price, StaticPriceOracle, TimeSeriesPriceOracle
from .swap import SimulatedSwapVenue
from .pool import LendingPool, PoolState, DebtLedger
from .registry import TokenMetadata, LeveragedTokenRegistry
from .engine import (
    LeveragedTokenEngine,
    TokenValuation,
    RebalanceResult,
    RebalanceDirection,
)
from .market import Market

__all__ = [
    # Constants
    'WAD', 'MAX_UINT256', 'SECONDS_PER_YEAR', 'POOL_WALLET', 'MAX_SWAP_SLIPPAGE',
    'DEFAULT_FEE_RATE', 'DEFAULT_MIN_LEVERAGE_RATIO', 'DEFAULT_MAX_LEVERAGE_RATIO',
    'DEFAULT_REBALANCING_STEP', 'DEFAULT_REBALANCE_INTERVAL',
    # Exceptions
    'MarketError', 'ArithmeticFailure', 'InsufficientLiquidity', 'BorrowCapExceeded',
    'OracleUnavailable', 'SlippageExceeded', 'OutOfRebalanceRange', 'NotRegistered',
    'Unauthorized', 'InsufficientBalance', 'Reentrancy',
    # Protocols and authorizers
    'PriceOracle', 'SwapVenue', 'Authorizer', 'OwnerAuthorizer', 'AllowAll',
    # Fixed point
    'checked_add', 'checked_sub', 'checked_mul', 'checked_div',
    'mul_div', 'mul_div_up', 'wmul', 'wmul_up', 'wdiv', 'wdiv_up',
    'to_wad', 'from_wad',
    # Components
    'InterestRateParams', 'InterestRateModel', 'utilization_rate',
    'Clock', 'TokenLedger', 'Guard', 'Transactor',
    'fetch_price', 'StaticPriceOracle', 'TimeSeriesPriceOracle',
    'SimulatedSwapVenue',
    'LendingPool', 'PoolState', 'DebtLedger',
    'TokenMetadata', 'LeveragedTokenRegistry',
    'LeveragedTokenEngine', 'TokenValuation', 'RebalanceResult', 'RebalanceDirection',
    'Market',
]
