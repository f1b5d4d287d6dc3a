"""
market.py - One lending pool and its leveraged tokens, wired together

Market owns every stateful component for a single underlying asset and
registers each of them with one Transactor, so a failed call anywhere rolls
back balances, pool accounting and token metadata together.

Usage:
    market = Market("USDC", verbose=True)
    market.register_asset("WETH", "Wrapped Ether")
    market.fund("lender", "USDC", to_wad(100_000))
    market.supply("lender", to_wad(100_000))

    oracle = StaticPriceOracle(to_wad(4000))
    venue = market.create_venue(oracle, "WETH", slippage=to_wad("0.005"))
    market.create_token("owner", "ETH2X", "WETH", oracle, venue,
                        initial_price=to_wad(100))
    market.fund("alice", "WETH", to_wad(1))
    market.mint("alice", "ETH2X", to_wad(1))
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .clock import Clock
from .core import Authorizer, OwnerAuthorizer, PriceOracle
from .engine import LeveragedTokenEngine, RebalanceResult, TokenValuation
from .fixed_point import from_wad
from .interest_rate import InterestRateModel
from .pool import LendingPool
from .registry import LeveragedTokenRegistry, TokenMetadata
from .swap import SimulatedSwapVenue
from .tokens import TokenLedger
from .transaction import Transactor


class Market:
    """
    Lending pool, leveraged-token engine and their shared collaborators.

    The pool and engine are reachable as attributes for anything the
    pass-through methods below do not cover.
    """

    def __init__(
        self,
        underlying: str,
        share_symbol: Optional[str] = None,
        authorizer: Optional[Authorizer] = None,
        rate_model: Optional[InterestRateModel] = None,
        initial_time: Optional[datetime] = None,
        bypass_cooldown_when_partial: bool = True,
        verbose: bool = False,
    ):
        """
        Args:
            underlying: Symbol of the lent asset, registered here
            share_symbol: Pool share symbol (default: "lp" + underlying)
            authorizer: Administrative predicate (default: OwnerAuthorizer("owner"))
            rate_model: Pool rate curve (default parameters if omitted)
            initial_time: Starting logical time (default: 1970-01-01)
            bypass_cooldown_when_partial: See LeveragedTokenEngine
            verbose: Print one line per applied or rolled-back operation
        """
        self.verbose = verbose
        self.clock = Clock(initial_time)
        self.authorizer = authorizer or OwnerAuthorizer("owner")
        self.tokens = TokenLedger()
        self.tokens.register_token(underlying)
        self.transactor = Transactor(verbose=verbose)
        self.transactor.register(self.tokens)

        self.pool = LendingPool(
            underlying,
            share_symbol or f"lp{underlying}",
            self.tokens,
            self.transactor,
            self.clock,
            self.authorizer,
            rate_model=rate_model,
            verbose=verbose,
        )
        self.registry = LeveragedTokenRegistry()
        self.transactor.register(self.registry)
        self.engine = LeveragedTokenEngine(
            self.pool,
            self.registry,
            self.tokens,
            self.transactor,
            self.clock,
            self.authorizer,
            bypass_cooldown_when_partial=bypass_cooldown_when_partial,
            verbose=verbose,
        )

    @property
    def underlying(self) -> str:
        return self.pool.underlying

    # ========================================================================
    # SETUP
    # ========================================================================

    def register_asset(self, symbol: str, name: str = "") -> None:
        """Register a collateral asset in the token ledger."""
        self.tokens.register_token(symbol, name)
        if self.verbose:
            print(f"📝 Registered asset: {symbol}")

    def fund(self, holder: str, symbol: str, amount: int) -> None:
        """Issue amount of symbol to holder from outside the market."""
        self.tokens.mint(holder, symbol, amount)

    def create_venue(
        self,
        oracle: PriceOracle,
        collateral: str,
        slippage: int = 0,
        inventory: Optional[Dict[str, int]] = None,
        wallet: Optional[str] = None,
    ) -> SimulatedSwapVenue:
        """
        Build a SimulatedSwapVenue for collateral/underlying on this ledger.

        Args:
            oracle: Reference price for the venue's quotes
            collateral: Collateral token symbol
            slippage: Extra cost per swap (WAD fraction)
            inventory: Optional {symbol: amount} issued to the venue wallet
            wallet: Venue holder id (default: "venue:" + collateral)
        """
        venue = SimulatedSwapVenue(
            self.tokens, oracle, collateral, self.underlying,
            slippage=slippage, wallet=wallet or f"venue:{collateral}",
        )
        for symbol, amount in (inventory or {}).items():
            self.fund(venue.wallet, symbol, amount)
        return venue

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self.clock.current_time

    def advance_time(self, new_time: datetime) -> None:
        """Move the logical clock forward. Interest accrues on the next call."""
        self.clock.advance_time(new_time)

    def advance(self, delta: timedelta) -> None:
        self.clock.advance(delta)

    # ========================================================================
    # POOL
    # ========================================================================

    def supply(self, account: str, amount: int) -> int:
        return self.pool.supply(account, amount)

    def withdraw(self, account: str, share_amount: int) -> int:
        return self.pool.withdraw(account, share_amount)

    def accrue_interest(self) -> int:
        return self.pool.accrue_interest()

    # ========================================================================
    # LEVERAGED TOKENS
    # ========================================================================

    def create_token(self, caller: str, token_id: str, collateral: str,
                     oracle: PriceOracle, venue, initial_price: int,
                     **parameters: Any) -> TokenMetadata:
        return self.engine.create_token(
            caller, token_id, collateral, oracle, venue, initial_price, **parameters
        )

    def mint(self, account: str, token_id: str, amount: int) -> int:
        return self.engine.mint(account, token_id, amount)

    def redeem(self, account: str, token_id: str, amount: int) -> int:
        return self.engine.redeem(account, token_id, amount)

    def rebalance(self, token_id: str) -> RebalanceResult:
        return self.engine.rebalance(token_id)

    def periodic_rebalance(self, token_id: str) -> Optional[RebalanceResult]:
        return self.engine.periodic_rebalance(token_id)

    def valuation(self, token_id: str) -> TokenValuation:
        return self.engine.valuation(token_id)

    def balance_of(self, holder: str, symbol: str) -> int:
        return self.tokens.balance_of(holder, symbol)

    # ========================================================================
    # REPORTING
    # ========================================================================

    def summary(self) -> Dict[str, Any]:
        """
        Snapshot of pool and token figures in human units (Decimal).

        Oracle failures propagate; every listed token needs a live price.
        """
        pool = self.pool
        report: Dict[str, Any] = {
            "time": self.clock.current_time,
            "pool": {
                "cash_available": from_wad(pool.cash_available()),
                "total_outstanding_debt": from_wad(pool.total_outstanding_debt),
                "total_pending_fees": from_wad(pool.total_pending_fees),
                "utilization_rate": from_wad(pool.utilization_rate()),
                "exchange_rate": from_wad(pool.exchange_rate()),
            },
            "tokens": {},
        }
        for token_id in self.registry.list_tokens():
            v = self.engine.valuation(token_id)
            report["tokens"][token_id] = {
                "supply": from_wad(v.supply),
                "nav": from_wad(v.nav),
                "leverage_ratio": from_wad(v.leverage_ratio),
                "collateral_per_token": from_wad(v.collateral_per_token),
                "debt_per_token": from_wad(v.debt_per_token),
            }
        return report

    def print_summary(self) -> None:
        report = self.summary()
        print(f"\n{'=' * 60}")
        print(f"MARKET {self.underlying} @ {report['time']}")
        print(f"{'=' * 60}")
        for key, value in report["pool"].items():
            print(f"  {key:<24} {value}")
        for token_id, figures in report["tokens"].items():
            print(f"\n  {token_id}")
            for key, value in figures.items():
                print(f"    {key:<22} {value}")

    def __repr__(self):
        return f"Market({self.underlying}, tokens={self.registry.list_tokens()})"
