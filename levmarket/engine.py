"""
engine.py - Leveraged token issuance, redemption and rebalancing

The engine mints and redeems 2x leveraged tokens against a collateral asset,
financing the leverage with debt drawn from the LendingPool, and keeps each
token's leverage inside its target band by rebalancing.

Each leveraged token holds its assets under its own id: its collateral and
any in-flight underlying sit in the TokenLedger under token_id, and its debt
is recorded in the pool under the same id.

Key Formulas:
    collateral_per_token = (total_collateral - total_pending_fees) / supply
    debt_per_token       = ceil(pool debt of token) / supply
    NAV                  = collateral_per_token * price - debt_per_token
                           (initial_price while either per-token value is 0)
    leverage_ratio       = collateral_per_token * price / NAV

    mint:      fee = amount * fee_rate, principal = amount - fee
               buy principal more collateral with borrowed underlying
               minted = (2 * principal * price - underlying spent) / NAV
    rebalance: notional = rebalancing_step * NAV * supply  (capped)

Every swap is bounded at 1% from the oracle price: buying collateral may cost
at most price * 1.01, selling may give up at most 1% more collateral than the
oracle implies.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .clock import Clock
from .core import (
    WAD, MAX_UINT256, MAX_SWAP_SLIPPAGE,
    ACTION_CREATE_TOKEN, ACTION_SET_TOKEN_PARAMETERS, ACTION_COLLECT_TOKEN_FEES,
    Authorizer, NotRegistered, OutOfRebalanceRange, PriceOracle, SlippageExceeded, SwapVenue,
    require_authorized,
)
from .fixed_point import (
    checked_add, checked_sub, checked_mul,
    mul_div, mul_div_up, wmul, wmul_up, wdiv, wdiv_up, from_wad,
)
from .pool import LendingPool
from .pricing_source import fetch_price
from .registry import LeveragedTokenRegistry, TokenMetadata
from .tokens import TokenLedger
from .transaction import Guard, Transactor


# ============================================================================
# RESULT TYPES
# ============================================================================

class RebalanceDirection(Enum):
    """Which way a rebalance moved leverage."""
    LEVERAGE_UP = "leverage_up"
    LEVERAGE_DOWN = "leverage_down"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class TokenValuation:
    """
    Point-in-time valuation of one leveraged token.

    All values are WAD-scaled; per-token values are in underlying units
    except collateral_per_token, which is in collateral units.
    """
    token_id: str
    price: int
    supply: int
    net_collateral: int
    debt: int
    collateral_per_token: int
    debt_per_token: int
    collateral_value_per_token: int
    nav: int
    leverage_ratio: int

    @property
    def is_bootstrap(self) -> bool:
        """True while NAV falls back to the initial price."""
        return self.collateral_per_token == 0 or self.debt_per_token == 0


@dataclass(frozen=True, slots=True)
class RebalanceResult:
    """Outcome of one rebalance call."""
    token_id: str
    direction: RebalanceDirection
    notional: int
    collateral_delta: int
    underlying_spent: int
    leverage_before: int
    leverage_after: int
    is_partial: bool


# ============================================================================
# ENGINE
# ============================================================================

class LeveragedTokenEngine:
    """
    Issuer and rebalancer for every leveraged token backed by one pool.

    Example:
        engine.create_token("owner", "ETH2X", "WETH", oracle, venue,
                            initial_price=to_wad(100))
        minted = engine.mint("alice", "ETH2X", to_wad(1))
        engine.rebalance("ETH2X")
    """

    def __init__(
        self,
        pool: LendingPool,
        registry: LeveragedTokenRegistry,
        tokens: TokenLedger,
        transactor: Transactor,
        clock: Clock,
        authorizer: Authorizer,
        max_swap_slippage: int = MAX_SWAP_SLIPPAGE,
        bypass_cooldown_when_partial: bool = True,
        verbose: bool = False,
    ):
        """
        Args:
            pool: Lending pool that finances the leverage
            registry: Token metadata store (registered with transactor by the caller)
            tokens: Token ledger holding all balances
            transactor: Shared transaction scope
            clock: Logical market clock
            authorizer: Predicate for administrative operations
            max_swap_slippage: Tolerance versus the oracle on every swap (WAD)
            bypass_cooldown_when_partial: Let periodic_rebalance() continue a
                pending partial rebalance before the cooldown has elapsed
            verbose: Print one line per applied operation
        """
        self.pool = pool
        self.registry = registry
        self.tokens = tokens
        self.clock = clock
        self.authorizer = authorizer
        self.max_swap_slippage = max_swap_slippage
        self.bypass_cooldown_when_partial = bypass_cooldown_when_partial
        self.verbose = verbose
        self._guard = Guard("engine")
        self._transactor = transactor

    @property
    def underlying(self) -> str:
        return self.pool.underlying

    # ========================================================================
    # VALUATION (read-only)
    # ========================================================================

    def _valuate(self, meta: TokenMetadata) -> TokenValuation:
        price = fetch_price(meta.oracle)
        supply = self.tokens.total_supply(meta.token_id)
        net_collateral = meta.net_collateral
        debt = self.pool.outstanding_debt_of(meta.token_id)

        if supply == 0:
            collateral_per_token = 0
            debt_per_token = 0
        else:
            collateral_per_token = wdiv(net_collateral, supply)
            debt_per_token = wdiv(debt, supply) if debt > 0 else 0
        collateral_value_per_token = wmul(collateral_per_token, price)

        if collateral_per_token == 0 or debt_per_token == 0:
            nav = meta.initial_price
            leverage_ratio = wdiv(collateral_value_per_token, nav)
        else:
            # Aggregate numerators: one rounding step instead of three.
            collateral_value = wmul(net_collateral, price)
            net_value = checked_sub(collateral_value, debt)
            nav = wdiv(net_value, supply)
            leverage_ratio = wdiv(collateral_value, net_value)

        return TokenValuation(
            token_id=meta.token_id,
            price=price,
            supply=supply,
            net_collateral=net_collateral,
            debt=debt,
            collateral_per_token=collateral_per_token,
            debt_per_token=debt_per_token,
            collateral_value_per_token=collateral_value_per_token,
            nav=nav,
            leverage_ratio=leverage_ratio,
        )

    def valuation(self, token_id: str) -> TokenValuation:
        """
        Valuation of token_id from stored state.

        Debt is read as of the pool's last accrual; every mutating entry
        point accrues before valuing.

        Raises:
            NotRegistered: If token_id is unknown
            OracleUnavailable: If the oracle has no usable price
        """
        return self._valuate(self.registry.get(token_id))

    def nav(self, token_id: str) -> int:
        """Net asset value of one token, in underlying units (WAD)."""
        return self.valuation(token_id).nav

    def leverage_ratio(self, token_id: str) -> int:
        return self.valuation(token_id).leverage_ratio

    def collateral_per_token(self, token_id: str) -> int:
        return self.valuation(token_id).collateral_per_token

    def debt_per_token(self, token_id: str) -> int:
        return self.valuation(token_id).debt_per_token

    # ========================================================================
    # SWAP HELPERS
    # ========================================================================

    def _with_tolerance(self, amount: int) -> int:
        return mul_div_up(amount, checked_add(WAD, self.max_swap_slippage), WAD)

    def _swap(self, meta: TokenMetadata, token_in: str, token_out: str,
              max_in: int, amount_out: int) -> int:
        """Swap through the token's venue, rejecting any answer above max_in."""
        amount_in = meta.venue.swap(meta.token_id, token_in, token_out, max_in, amount_out)
        if amount_in > max_in:
            raise SlippageExceeded(
                f"{meta.token_id} swap {token_in}->{token_out} took {amount_in}, "
                f"maximum is {max_in}"
            )
        return amount_in

    def _buy_collateral(self, meta: TokenMetadata, collateral_amount: int, price: int) -> int:
        """
        Buy exactly collateral_amount with borrowed underlying.

        Borrows the bounded maximum, swaps, and returns the unspent part, so
        the token's new debt equals the underlying actually spent.

        Returns:
            Underlying spent
        """
        max_in = self._with_tolerance(wmul_up(collateral_amount, price))
        self.pool.borrow(meta.token_id, max_in)
        spent = self._swap(meta, self.underlying, meta.collateral, max_in, collateral_amount)
        unspent = checked_sub(max_in, spent)
        if unspent > 0:
            self.pool.repay(meta.token_id, unspent)
        return spent

    def _sell_collateral(self, meta: TokenMetadata, repay_amount: int, price: int) -> int:
        """
        Sell collateral for exactly repay_amount underlying and repay the pool.

        Returns:
            Collateral given up
        """
        max_in = self._with_tolerance(wdiv_up(repay_amount, price))
        sold = self._swap(meta, meta.collateral, self.underlying, max_in, repay_amount)
        self.pool.repay(meta.token_id, repay_amount)
        return sold

    # ========================================================================
    # MINT / REDEEM
    # ========================================================================

    def mint(self, account: str, token_id: str, amount: int) -> int:
        """
        Deposit collateral and receive leveraged tokens.

        The deposit net of the fee is matched with an equal amount of
        collateral bought on credit, so the position starts at 2x.
        Slippage and fees reduce the minted quantity rather than the NAV.

        Args:
            account: Depositor
            token_id: Leveraged token to mint
            amount: Collateral deposited (WAD)

        Returns:
            Leveraged tokens minted to account

        Raises:
            NotRegistered, OracleUnavailable, InsufficientLiquidity,
            SlippageExceeded, InsufficientBalance
        """
        if amount <= 0:
            raise ValueError(f"mint amount must be positive, got {amount}")
        with self._transactor.atomic(self._guard, "mint"):
            self.pool.accrue_interest()
            meta = self.registry.get(token_id)
            before = self._valuate(meta)
            price = before.price

            fee = wmul(amount, meta.fee_rate)
            principal = checked_sub(amount, fee)
            if principal == 0:
                raise ValueError(f"mint amount {amount} is consumed entirely by the fee")

            self.tokens.transfer(meta.collateral, account, token_id, amount)
            spent = self._buy_collateral(meta, principal, price)

            invested = wmul(checked_mul(2, principal), price)
            minted = wdiv(checked_sub(invested, spent), before.nav)
            if minted == 0:
                raise ValueError(f"mint amount {amount} is too small to mint a token")

            meta.total_collateral = checked_add(
                meta.total_collateral, checked_add(checked_mul(2, principal), fee)
            )
            meta.total_pending_fees = checked_add(meta.total_pending_fees, fee)
            self.tokens.mint(account, token_id, minted)

            if self.verbose:
                print(f"✓ MINT {token_id} {account}: {from_wad(amount)} {meta.collateral} "
                      f"-> {from_wad(minted)} {token_id} "
                      f"(fee {from_wad(fee)}, borrowed {from_wad(spent)} {self.underlying})")
            return minted

    def redeem(self, account: str, token_id: str, amount: int) -> int:
        """
        Burn leveraged tokens and receive the collateral they represent.

        The redeemed share of debt is repaid by selling collateral; the fee
        is charged on the redeemed collateral and stays behind as pending
        fees.

        Args:
            account: Holder redeeming
            token_id: Leveraged token to redeem
            amount: Leveraged tokens to burn (WAD)

        Returns:
            Collateral paid to account

        Raises:
            NotRegistered, OracleUnavailable, SlippageExceeded,
            InsufficientBalance, ArithmeticFailure (if the position is underwater)
        """
        if amount <= 0:
            raise ValueError(f"redeem amount must be positive, got {amount}")
        with self._transactor.atomic(self._guard, "redeem"):
            self.pool.accrue_interest()
            meta = self.registry.get(token_id)
            price = fetch_price(meta.oracle)
            supply = self.tokens.total_supply(token_id)
            self.tokens.burn(account, token_id, amount)

            net_collateral = meta.net_collateral
            debt = self.pool.outstanding_debt_of(token_id)
            if amount == supply:
                collateral_share = net_collateral
                debt_share = debt
            else:
                collateral_share = mul_div(net_collateral, amount, supply)
                debt_share = min(mul_div_up(debt, amount, supply), debt)

            fee = wmul(collateral_share, meta.fee_rate)
            sold = self._sell_collateral(meta, debt_share, price) if debt_share > 0 else 0
            payout = checked_sub(checked_sub(collateral_share, fee), sold)

            meta.total_collateral = checked_sub(
                meta.total_collateral, checked_sub(collateral_share, fee)
            )
            meta.total_pending_fees = checked_add(meta.total_pending_fees, fee)
            if payout > 0:
                self.tokens.transfer(meta.collateral, token_id, account, payout)

            if self.verbose:
                print(f"✓ REDEEM {token_id} {account}: {from_wad(amount)} {token_id} "
                      f"-> {from_wad(payout)} {meta.collateral} "
                      f"(fee {from_wad(fee)}, repaid {from_wad(debt_share)} {self.underlying})")
            return payout

    # ========================================================================
    # REBALANCE
    # ========================================================================

    def _rebalance(self, token_id: str) -> RebalanceResult:
        self.pool.accrue_interest()
        meta = self.registry.get(token_id)
        before = self._valuate(meta)
        if before.supply == 0:
            raise OutOfRebalanceRange(f"{token_id} has no supply to rebalance")

        ratio = before.leverage_ratio
        step = meta.rebalancing_step
        if ratio < meta.min_leverage_ratio:
            direction = RebalanceDirection.LEVERAGE_UP
        elif ratio > meta.max_leverage_ratio:
            direction = RebalanceDirection.LEVERAGE_DOWN
        elif meta.is_partial_rebalance_pending:
            # Continue toward the band midpoint without overshooting it.
            target = meta.target_leverage_ratio
            if ratio == target:
                meta.is_partial_rebalance_pending = False
                return RebalanceResult(
                    token_id, RebalanceDirection.NONE, 0, 0, 0, ratio, ratio, False
                )
            if ratio < target:
                direction = RebalanceDirection.LEVERAGE_UP
                step = min(step, target - ratio)
            else:
                direction = RebalanceDirection.LEVERAGE_DOWN
                step = min(step, ratio - target)
        else:
            raise OutOfRebalanceRange(
                f"{token_id} leverage {from_wad(ratio)} is inside "
                f"[{from_wad(meta.min_leverage_ratio)}, {from_wad(meta.max_leverage_ratio)}]"
            )

        notional = wmul(wmul(step, before.nav), before.supply)
        is_partial = notional > meta.max_rebalancing_notional
        if is_partial:
            notional = meta.max_rebalancing_notional

        if direction is RebalanceDirection.LEVERAGE_UP:
            collateral_out = wdiv(notional, before.price)
            if collateral_out == 0:
                raise OutOfRebalanceRange(f"{token_id} rebalance notional rounds to zero")
            spent = self._buy_collateral(meta, collateral_out, before.price)
            meta.total_collateral = checked_add(meta.total_collateral, collateral_out)
            collateral_delta = collateral_out
        else:
            repay_amount = min(notional, before.debt)
            if repay_amount == 0:
                raise OutOfRebalanceRange(f"{token_id} has no debt to repay")
            sold = self._sell_collateral(meta, repay_amount, before.price)
            meta.total_collateral = checked_sub(meta.total_collateral, sold)
            collateral_delta = sold
            spent = repay_amount

        meta.is_partial_rebalance_pending = is_partial
        meta.last_rebalance_timestamp = self.clock.timestamp()
        after = self._valuate(meta)

        if self.verbose:
            flag = " (partial)" if is_partial else ""
            print(f"✓ REBALANCE {token_id} {direction.value}: leverage "
                  f"{from_wad(ratio)} -> {from_wad(after.leverage_ratio)}, "
                  f"notional {from_wad(notional)} {self.underlying}{flag}")
        return RebalanceResult(
            token_id=token_id,
            direction=direction,
            notional=notional,
            collateral_delta=collateral_delta,
            underlying_spent=spent,
            leverage_before=ratio,
            leverage_after=after.leverage_ratio,
            is_partial=is_partial,
        )

    def rebalance(self, token_id: str) -> RebalanceResult:
        """
        Move token_id's leverage one step back toward its band.

        Raises:
            OutOfRebalanceRange: If leverage is inside the band and no partial
                rebalance is pending
            NotRegistered, OracleUnavailable, InsufficientLiquidity,
            SlippageExceeded
        """
        with self._transactor.atomic(self._guard, "rebalance"):
            return self._rebalance(token_id)

    def periodic_rebalance(self, token_id: str) -> Optional[RebalanceResult]:
        """
        Rebalance at most once per rebalance_interval.

        Before the interval has elapsed this returns None without touching
        state, unless a partial rebalance is pending and
        bypass_cooldown_when_partial is set.
        """
        with self._transactor.atomic(self._guard, "periodic_rebalance"):
            meta = self.registry.get(token_id)
            next_allowed = checked_add(meta.last_rebalance_timestamp, meta.rebalance_interval)
            if self.clock.timestamp() < next_allowed:
                bypass = meta.is_partial_rebalance_pending and self.bypass_cooldown_when_partial
                if not bypass:
                    return None
            return self._rebalance(token_id)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def create_token(
        self,
        caller: str,
        token_id: str,
        collateral: str,
        oracle: PriceOracle,
        venue: SwapVenue,
        initial_price: int,
        max_borrow_amount: int = MAX_UINT256,
        **parameters,
    ) -> TokenMetadata:
        """
        Register a new leveraged token and approve it as a pool borrower.

        Args:
            caller: Identity checked against the authorizer
            token_id: New leveraged token symbol
            collateral: Registered collateral token symbol
            oracle: Collateral price source
            venue: Collateral/underlying swap venue
            initial_price: NAV while the token has no supply (WAD)
            max_borrow_amount: Pool borrow cap for this token
            **parameters: Optional TokenMetadata configuration fields
                (fee_rate, min/max_leverage_ratio, rebalancing_step, ...)

        Raises:
            Unauthorized: If caller may not create tokens
            NotRegistered: If the collateral token is unknown
            ValueError: On invalid parameters or a duplicate id
        """
        with self._transactor.atomic(self._guard, "create_token"):
            require_authorized(self.authorizer, caller, ACTION_CREATE_TOKEN)
            if not self.tokens.is_registered(collateral):
                raise NotRegistered(f"Collateral token {collateral} not registered")
            meta = TokenMetadata(
                token_id=token_id,
                collateral=collateral,
                oracle=oracle,
                venue=venue,
                initial_price=initial_price,
                **parameters,
            )
            self.registry.register(meta)
            self.tokens.register_token(token_id, f"{token_id} leveraged token")
            self.pool.grant_borrower(caller, token_id, max_borrow_amount)
            if self.verbose:
                print(f"📝 Registered: {token_id} on {collateral} "
                      f"[band {from_wad(meta.min_leverage_ratio)}-{from_wad(meta.max_leverage_ratio)}]")
            return meta

    def set_token_parameters(self, caller: str, token_id: str, **changes) -> TokenMetadata:
        """Change a token's configuration (see registry.MUTABLE_PARAMETERS)."""
        with self._transactor.atomic(self._guard, "set_token_parameters"):
            require_authorized(self.authorizer, caller, ACTION_SET_TOKEN_PARAMETERS)
            return self.registry.set_parameters(token_id, **changes)

    def collect_token_fees(self, caller: str, token_id: str) -> int:
        """
        Pay token_id's pending collateral fees to its fee recipient.

        Returns:
            Collateral transferred
        """
        with self._transactor.atomic(self._guard, "collect_token_fees"):
            require_authorized(self.authorizer, caller, ACTION_COLLECT_TOKEN_FEES)
            meta = self.registry.get(token_id)
            fees = meta.total_pending_fees
            meta.total_pending_fees = 0
            meta.total_collateral = checked_sub(meta.total_collateral, fees)
            if fees > 0:
                self.tokens.transfer(meta.collateral, token_id, meta.fee_recipient, fees)
            if self.verbose:
                print(f"✓ COLLECT FEES {token_id} -> {meta.fee_recipient}: "
                      f"{from_wad(fees)} {meta.collateral}")
            return fees

    def __repr__(self):
        return f"LeveragedTokenEngine({self.underlying}, tokens={self.registry.list_tokens()})"
