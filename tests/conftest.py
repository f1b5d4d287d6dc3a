"""
conftest.py - Shared pytest fixtures for levmarket tests

Provides common fixtures used across unit, functional and conformance tests:
- A bare market with the underlying and one collateral asset registered
- A seeded market: 100,000 USDC supplied, WETH at 4000, 0.5% venue slippage
- A leveraged token (ETH2X, initial price 100) ready to mint
- State capture helpers for rollback assertions
"""

import pytest
from datetime import datetime
from typing import Any, Dict

from levmarket import (
    Market, StaticPriceOracle, SimulatedSwapVenue, to_wad,
)


START = datetime(2024, 1, 1)

UNDERLYING = "USDC"
COLLATERAL = "WETH"
TOKEN = "ETH2X"
OWNER = "owner"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def build_market(
    pool_cash: int = to_wad(100_000),
    price: int = to_wad(4000),
    slippage: int = to_wad("0.005"),
    verbose: bool = False,
    bypass_cooldown_when_partial: bool = True,
    **token_parameters: Any,
):
    """
    Build a market with a funded pool and one leveraged token.

    Returns:
        (market, oracle, venue)
    """
    market = Market(UNDERLYING, initial_time=START, verbose=verbose,
                    bypass_cooldown_when_partial=bypass_cooldown_when_partial)
    market.register_asset(COLLATERAL, "Wrapped Ether")
    if pool_cash:
        market.fund("lender", UNDERLYING, pool_cash)
        market.supply("lender", pool_cash)

    oracle = StaticPriceOracle(price)
    venue = market.create_venue(
        oracle, COLLATERAL, slippage=slippage,
        inventory={COLLATERAL: to_wad(1_000), UNDERLYING: to_wad(10_000_000)},
    )
    parameters = {"initial_price": to_wad(100), "fee_rate": to_wad("0.001")}
    parameters.update(token_parameters)
    market.create_token(OWNER, TOKEN, COLLATERAL, oracle, venue, **parameters)
    return market, oracle, venue


def capture_state(market: Market) -> Dict[str, Any]:
    """Everything an atomic call may mutate, for before/after comparison."""
    return {
        "tokens": market.tokens.snapshot(),
        "pool": market.pool.snapshot(),
        "registry": market.registry.snapshot(),
    }


def assert_state_unchanged(market: Market, before: Dict[str, Any]) -> None:
    after = capture_state(market)
    assert after["tokens"] == before["tokens"]
    assert after["pool"] == before["pool"]
    assert after["registry"] == before["registry"]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def bare_market():
    """Market with USDC and WETH registered, nothing funded."""
    market = Market(UNDERLYING, initial_time=START)
    market.register_asset(COLLATERAL, "Wrapped Ether")
    return market


@pytest.fixture
def funded_market():
    """Market with 100,000 USDC supplied and a 'desk' borrower capped at 50,000."""
    market = Market(UNDERLYING, initial_time=START)
    market.register_asset(COLLATERAL, "Wrapped Ether")
    market.fund("lender", UNDERLYING, to_wad(100_000))
    market.supply("lender", to_wad(100_000))
    market.pool.grant_borrower(OWNER, "desk", to_wad(50_000))
    market.fund("desk", UNDERLYING, to_wad(1_000))
    return market


@pytest.fixture
def token_market():
    """Seeded market with ETH2X registered and alice holding 10 WETH."""
    market, _, _ = build_market()
    market.fund("alice", COLLATERAL, to_wad(10))
    market.fund("bob", COLLATERAL, to_wad(10))
    return market


@pytest.fixture
def oracle(token_market) -> StaticPriceOracle:
    return token_market.registry.get(TOKEN).oracle


@pytest.fixture
def venue(token_market) -> SimulatedSwapVenue:
    return token_market.registry.get(TOKEN).venue


@pytest.fixture
def minted_market(token_market):
    """token_market after alice minted with 1 WETH at 4000."""
    token_market.mint("alice", TOKEN, to_wad(1))
    return token_market
