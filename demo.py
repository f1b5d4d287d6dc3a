#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A 2x Leveraged Token, Step by Step

Walks through one market from an empty pool to a fully unwound position.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  The Pool      - Supplying liquidity, the rate curve, the exchange rate
  4-6:  The Token     - Creating ETH2X, minting, NAV and leverage
  7-9:  Keeping 2x    - Price shocks, rebalancing, the notional cap
  10-11: Unwinding    - Interest over time, redemption and fee collection

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from levmarket import (
    Market, StaticPriceOracle, OutOfRebalanceRange,
    to_wad, from_wad,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2024, 1, 1)

    underlying: str = "USDC"
    collateral: str = "WETH"
    token: str = "ETH2X"

    pool_liquidity: str = "100000"
    eth_price: str = "4000"
    venue_slippage: str = "0.005"
    initial_nav: str = "100"
    fee_rate: str = "0.001"

    shock_price: str = "3300"
    rebalance_cap: str = "300"


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_token(market: Market):
    v = market.valuation(CONFIG.token)
    print(f"  price                {from_wad(v.price)}")
    print(f"  supply               {from_wad(v.supply)}")
    print(f"  collateral/token     {from_wad(v.collateral_per_token)}")
    print(f"  debt/token           {from_wad(v.debt_per_token)}")
    print(f"  NAV                  {from_wad(v.nav)}")
    print(f"  leverage             {from_wad(v.leverage_ratio)}")


# ============================================================================
# PHASE 1: THE POOL
# ============================================================================

def step_01_supply():
    step_header(1, "Supplying the Pool",
        "Lenders deposit the underlying and receive pool shares.")

    market = Market(CONFIG.underlying, initial_time=CONFIG.start_time, verbose=True)
    market.register_asset(CONFIG.collateral, "Wrapped Ether")
    market.fund("lender", CONFIG.underlying, to_wad(CONFIG.pool_liquidity))
    market.supply("lender", to_wad(CONFIG.pool_liquidity))

    section_header("Pool State")
    print(f"  cash available       {from_wad(market.pool.cash_available())}")
    print(f"  exchange rate        {from_wad(market.pool.exchange_rate())}")
    return market


def step_02_rate_curve(market: Market):
    step_header(2, "The Rate Curve",
        "Borrowing gets expensive fast once utilization passes the 90% kink.")

    curve = market.pool.rate_model.rate_curve(11)
    print("  utilization   borrow APR   supply APR")
    for u, b, s in zip(curve["utilization"], curve["borrow_apr"], curve["supply_apr"]):
        print(f"  {u:>10.0%}   {b:>10.2%}   {s:>10.2%}")
    return market


# ============================================================================
# PHASE 2: THE TOKEN
# ============================================================================

def step_03_create_token(market: Market):
    step_header(3, "Creating ETH2X",
        "A leveraged token needs an oracle, a swap venue and a leverage band.")

    oracle = StaticPriceOracle(to_wad(CONFIG.eth_price))
    venue = market.create_venue(
        oracle, CONFIG.collateral, slippage=to_wad(CONFIG.venue_slippage),
        inventory={CONFIG.collateral: to_wad(1_000), CONFIG.underlying: to_wad(10_000_000)},
    )
    market.create_token("owner", CONFIG.token, CONFIG.collateral, oracle, venue,
                        initial_price=to_wad(CONFIG.initial_nav),
                        fee_rate=to_wad(CONFIG.fee_rate))
    return market, oracle


def step_04_mint(market: Market):
    step_header(4, "Minting",
        "1 WETH in: 0.999 WETH kept, 0.999 WETH bought with borrowed USDC.")

    market.fund("alice", CONFIG.collateral, to_wad(5))
    minted = market.mint("alice", CONFIG.token, to_wad(1))

    section_header("Result")
    print(f"  minted               {from_wad(minted)} {CONFIG.token}")
    print("  value at NAV 100     = 4000 deposit - 4 fee - 19.98 slippage")
    show_token(market)
    return market


def step_05_second_mint(market: Market):
    step_header(5, "A Second Mint",
        "At an unchanged price an identical deposit mints an identical quantity.")

    market.fund("bob", CONFIG.collateral, to_wad(5))
    minted = market.mint("bob", CONFIG.token, to_wad(1))
    print(f"\n  bob minted           {from_wad(minted)} {CONFIG.token}")
    return market


def step_06_in_band(market: Market):
    step_header(6, "Inside the Band",
        "Rebalancing is refused while leverage sits between 1.7x and 2.3x.")

    try:
        market.rebalance(CONFIG.token)
    except OutOfRebalanceRange as exc:
        print(f"  ⚠️  {exc}")
    return market


# ============================================================================
# PHASE 3: KEEPING 2X
# ============================================================================

def step_07_price_shock(market: Market, oracle: StaticPriceOracle):
    step_header(7, "Price Shock",
        "A falling price raises leverage above the band.")

    oracle.update_price(to_wad(CONFIG.shock_price))
    show_token(market)
    return market


def step_08_capped_rebalance(market: Market):
    step_header(8, "A Capped Rebalance",
        "A notional cap splits the move; the pending flag lets it continue.")

    market.engine.set_token_parameters("owner", CONFIG.token,
                                       max_rebalancing_notional=to_wad(CONFIG.rebalance_cap))
    result = market.periodic_rebalance(CONFIG.token)
    print(f"\n  partial              {result.is_partial}")
    while market.registry.get(CONFIG.token).is_partial_rebalance_pending:
        result = market.periodic_rebalance(CONFIG.token)
        print(f"  continued            leverage {from_wad(result.leverage_after)}")
    return market


def step_09_cooldown(market: Market):
    step_header(9, "Cooldown",
        "The periodic keeper runs at most once per day unless a partial move is pending.")

    result = market.periodic_rebalance(CONFIG.token)
    print(f"  periodic_rebalance   -> {result}")
    return market


# ============================================================================
# PHASE 4: UNWINDING
# ============================================================================

def step_10_interest(market: Market):
    step_header(10, "Ninety Days of Interest",
        "Debt grows, NAV drifts down, suppliers earn.")

    market.advance(timedelta(days=90))
    market.accrue_interest()
    show_token(market)
    print(f"\n  pool exchange rate   {from_wad(market.pool.exchange_rate())}")
    return market


def step_11_unwind(market: Market):
    step_header(11, "Unwinding",
        "Redemptions repay the pool; fees go to the treasury.")

    for holder in ("alice", "bob"):
        market.redeem(holder, CONFIG.token, market.balance_of(holder, CONFIG.token))
    market.engine.collect_token_fees("owner", CONFIG.token)
    market.pool.collect_pending_fees("owner", "treasury")
    market.print_summary()
    return market


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LEVERAGED TOKEN MARKET - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    market = step_01_supply()
    wait_for_enter()
    market = step_02_rate_curve(market)
    wait_for_enter()

    market, oracle = step_03_create_token(market)
    wait_for_enter()
    market = step_04_mint(market)
    wait_for_enter()
    market = step_05_second_mint(market)
    wait_for_enter()
    market = step_06_in_band(market)
    wait_for_enter()

    market = step_07_price_shock(market, oracle)
    wait_for_enter()
    market = step_08_capped_rebalance(market)
    wait_for_enter()
    market = step_09_cooldown(market)
    wait_for_enter()

    market = step_10_interest(market)
    wait_for_enter()
    step_11_unwind(market)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
