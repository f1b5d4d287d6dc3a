"""
Core types, constants and protocols for the leveraged-token money market.

This module provides the foundational pieces shared by every component:
1. Constants: default protocol parameters and reserved identities
2. Exceptions: MarketError and the domain-specific error taxonomy
3. Protocols: PriceOracle, SwapVenue, Authorizer and Participant

Nothing in this module holds state. Amounts, prices and ratios are 18-decimal
fixed-point integers (see fixed_point.py).
"""

from __future__ import annotations
from typing import Any, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Unit scale of every fixed-point value: WAD represents 1.0.
WAD = 10 ** 18

# Largest representable integer; results above it overflow.
MAX_UINT256 = 2 ** 256 - 1

# Seconds in a non-leap year; annual rates are divided by this.
SECONDS_PER_YEAR = 31_536_000

# Reserved holder for assets held by the lending pool itself.
POOL_WALLET = "pool"

# Maximum price deviation tolerated versus the oracle on every swap (1%).
MAX_SWAP_SLIPPAGE = WAD // 100

# Registration defaults for a 2x token.
DEFAULT_FEE_RATE = WAD // 1000                 # 0.1%
DEFAULT_MIN_LEVERAGE_RATIO = 17 * WAD // 10    # 1.7x
DEFAULT_MAX_LEVERAGE_RATIO = 23 * WAD // 10    # 2.3x
DEFAULT_REBALANCING_STEP = 2 * WAD // 10       # 0.2x
DEFAULT_REBALANCE_INTERVAL = 24 * 60 * 60      # daily

# Authorization actions checked against the Authorizer.
ACTION_CREATE_TOKEN = "create_token"
ACTION_SET_TOKEN_PARAMETERS = "set_token_parameters"
ACTION_COLLECT_TOKEN_FEES = "collect_token_fees"
ACTION_GRANT_BORROWER = "grant_borrower"
ACTION_SET_POOL_PARAMETERS = "set_pool_parameters"
ACTION_COLLECT_POOL_FEES = "collect_pool_fees"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for all money-market errors."""
    pass


class ArithmeticFailure(MarketError, ArithmeticError):
    """Raised on fixed-point overflow, underflow or division by zero."""
    pass


class InsufficientLiquidity(MarketError):
    """Raised when the pool's available cash cannot fund a borrow or withdrawal."""
    pass


class BorrowCapExceeded(MarketError):
    """Raised when a borrow would take a borrower above its granted maximum."""
    pass


class OracleUnavailable(MarketError):
    """Raised when the price oracle returns no usable price."""
    pass


class SlippageExceeded(MarketError):
    """Raised when a swap would cost more than the bounded maximum input."""
    pass


class OutOfRebalanceRange(MarketError):
    """Raised when leverage is already inside the target band and no rebalance is pending."""
    pass


class NotRegistered(MarketError):
    """Raised when operating on a leveraged token that has not been created."""
    pass


class Unauthorized(MarketError):
    """Raised when the caller lacks the role an operation requires."""
    pass


class InsufficientBalance(MarketError):
    """Raised when a transfer or burn exceeds the holder's token balance."""
    pass


class Reentrancy(MarketError):
    """Raised when a guarded entry point is re-entered while already held."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    Source of the collateral price, in underlying units per collateral unit.

    Implementations return a WAD-scaled integer or raise. The engine treats
    a zero price, a None, or any exception as OracleUnavailable.
    """

    def get_price(self) -> int:
        ...


@runtime_checkable
class SwapVenue(Protocol):
    """
    Exact-output swap venue.

    swap() pulls at most max_amount_in of token_in from payer and delivers
    exactly exact_amount_out of token_out to payer. It returns the amount of
    token_in actually spent, or raises SlippageExceeded.
    """

    def swap(
        self,
        payer: str,
        token_in: str,
        token_out: str,
        max_amount_in: int,
        exact_amount_out: int,
    ) -> int:
        ...


@runtime_checkable
class Authorizer(Protocol):
    """Boolean authorization predicate consumed by administrative operations."""

    def is_authorized(self, caller: str, action: str) -> bool:
        ...


class Participant(Protocol):
    """
    Stateful component that takes part in atomic calls.

    snapshot() captures everything the component may mutate; restore() puts
    that state back after a failed call.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


# ============================================================================
# AUTHORIZERS
# ============================================================================

class OwnerAuthorizer:
    """Authorizes every administrative action for a single owner identity."""

    def __init__(self, owner: str):
        self.owner = owner

    def is_authorized(self, caller: str, action: str) -> bool:
        return caller == self.owner

    def __repr__(self):
        return f"OwnerAuthorizer(owner={self.owner!r})"


class AllowAll:
    """Authorizer that accepts every caller. Intended for simulations."""

    def is_authorized(self, caller: str, action: str) -> bool:
        return True


def require_authorized(authorizer: Authorizer, caller: str, action: str) -> None:
    """Raise Unauthorized unless the authorizer accepts caller for action."""
    if not authorizer.is_authorized(caller, action):
        raise Unauthorized(f"{caller} is not authorized to {action}")
