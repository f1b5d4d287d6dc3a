"""
pool.py - Shared lending pool with proportional debt shares

Suppliers deposit the underlying asset and receive pool shares; approved
borrowers (the leveraged-token engine) draw on the pooled cash and owe
interest set by the InterestRateModel.

ARCHITECTURE:
=============

1. STATE (explicit, owned by the pool):
   - PoolState: totals and the last accrual timestamp
   - DebtLedger: borrower -> debt shares, borrower -> borrow cap

2. READS (no mutation): cash_available, exchange_rate, debt_share_rate,
   utilization_rate, borrow/supply rates, outstanding_debt_of

3. ENTRY POINTS (guarded and atomic): accrue_interest, supply, withdraw,
   borrow, repay, grant_borrower, set_interest_rate_params,
   collect_pending_fees. Every entry point accrues interest first.

Key Formulas:
    cash_available  = pool underlying balance - total_pending_fees   (floor 0)
    exchange_rate   = (cash_available + total_outstanding_debt) / share_supply
    debt_share_rate = total_outstanding_debt / total_debt_shares
    interest        = borrow_rate * elapsed * total_outstanding_debt
    debt_of(b)      = ceil(shares(b) * total_outstanding_debt / total_debt_shares)

Rounding: shares are truncated when written, debt is rounded up when read,
so every rounding error lands in the pool's favor.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import copy

from .clock import Clock
from .core import (
    WAD, POOL_WALLET,
    ACTION_GRANT_BORROWER, ACTION_SET_POOL_PARAMETERS, ACTION_COLLECT_POOL_FEES,
    Authorizer, InsufficientLiquidity, BorrowCapExceeded, Unauthorized,
    ArithmeticFailure, require_authorized,
)
from .fixed_point import (
    checked_add, checked_sub,
    mul_div_up, wmul, wdiv, from_wad,
)
from .interest_rate import InterestRateModel, InterestRateParams, utilization_rate
from .tokens import TokenLedger
from .transaction import Guard, Transactor


# ============================================================================
# STATE
# ============================================================================

@dataclass
class PoolState:
    """
    Aggregate pool accounting, in underlying units.

    Invariant: total_debt_shares == 0 <=> total_outstanding_debt == 0
    """
    total_outstanding_debt: int = 0
    total_pending_fees: int = 0
    total_debt_shares: int = 0
    last_accrual_timestamp: int = 0


@dataclass
class DebtLedger:
    """Per-borrower debt shares and borrow caps. Entries are never deleted."""
    shares: Dict[str, int] = field(default_factory=dict)
    borrow_caps: Dict[str, int] = field(default_factory=dict)

    def shares_of(self, borrower: str) -> int:
        return self.shares.get(borrower, 0)

    def is_borrower(self, borrower: str) -> bool:
        return borrower in self.borrow_caps


# ============================================================================
# LENDING POOL
# ============================================================================

class LendingPool:
    """
    Lending pool for one underlying asset.

    Example:
        pool = LendingPool("USDC", "lpUSDC", tokens, transactor, clock, authorizer)
        pool.supply("alice", to_wad(100_000))
        pool.grant_borrower("owner", "ETH2X", to_wad(50_000))
        pool.borrow("ETH2X", to_wad(4_000))
    """

    def __init__(
        self,
        underlying: str,
        share_symbol: str,
        tokens: TokenLedger,
        transactor: Transactor,
        clock: Clock,
        authorizer: Authorizer,
        rate_model: Optional[InterestRateModel] = None,
        wallet: str = POOL_WALLET,
        verbose: bool = False,
    ):
        """
        Create a pool and register its share token.

        Args:
            underlying: Symbol of the lent asset (must be registered in tokens)
            share_symbol: Symbol for supplier shares (registered here)
            tokens: Token ledger holding all balances
            transactor: Shared transaction scope; the pool registers itself
            clock: Logical market clock
            authorizer: Predicate for administrative operations
            rate_model: Borrow-rate curve (default parameters if omitted)
            wallet: Holder id under which the pool keeps its underlying
            verbose: Print one line per applied operation
        """
        self.underlying = underlying
        self.share_symbol = share_symbol
        self.tokens = tokens
        self.clock = clock
        self.authorizer = authorizer
        self.rate_model = rate_model or InterestRateModel()
        self.wallet = wallet
        self.verbose = verbose

        self.state = PoolState(last_accrual_timestamp=clock.timestamp())
        self.debts = DebtLedger()

        self._guard = Guard("pool")
        self._transactor = transactor
        tokens.register_token(share_symbol, f"{underlying} pool share")
        transactor.register(self)

    # ========================================================================
    # READS
    # ========================================================================

    @property
    def total_outstanding_debt(self) -> int:
        return self.state.total_outstanding_debt

    @property
    def total_pending_fees(self) -> int:
        return self.state.total_pending_fees

    def cash_available(self) -> int:
        """Underlying held by the pool that is not owed to the protocol as fees."""
        balance = self.tokens.balance_of(self.wallet, self.underlying)
        if self.state.total_pending_fees >= balance:
            return 0
        return balance - self.state.total_pending_fees

    def total_share_supply(self) -> int:
        return self.tokens.total_supply(self.share_symbol)

    def share_balance_of(self, account: str) -> int:
        return self.tokens.balance_of(account, self.share_symbol)

    def exchange_rate(self) -> int:
        """Underlying redeemable per pool share (WAD); 1.0 before any supply."""
        supply = self.total_share_supply()
        if supply == 0:
            return WAD
        backing = checked_add(self.cash_available(), self.state.total_outstanding_debt)
        return wdiv(backing, supply)

    def debt_share_rate(self) -> int:
        """Underlying owed per debt share (WAD); 1.0 when there is no debt."""
        if self.state.total_outstanding_debt == 0 or self.state.total_debt_shares == 0:
            return WAD
        return wdiv(self.state.total_outstanding_debt, self.state.total_debt_shares)

    def utilization_rate(self) -> int:
        return utilization_rate(self.cash_available(), self.state.total_outstanding_debt)

    def borrow_rate_per_second(self) -> int:
        return self.rate_model.borrow_rate(self.cash_available(), self.state.total_outstanding_debt)

    def supply_rate_per_second(self) -> int:
        return self.rate_model.supply_rate(self.cash_available(), self.state.total_outstanding_debt)

    def outstanding_debt_of(self, borrower: str) -> int:
        """
        Debt owed by borrower, rounded up.

        Reads the stored state; call accrue_interest() first for an
        up-to-date figure.
        """
        shares = self.debts.shares_of(borrower)
        if shares == 0 or self.state.total_debt_shares == 0:
            return 0
        return mul_div_up(
            shares, self.state.total_outstanding_debt, self.state.total_debt_shares
        )

    def borrow_cap_of(self, borrower: str) -> int:
        return self.debts.borrow_caps.get(borrower, 0)

    # ========================================================================
    # INTEREST ACCRUAL
    # ========================================================================

    def _accrue(self) -> int:
        """Bring debt and fees up to the current time; returns interest added."""
        now = self.clock.timestamp()
        elapsed = checked_sub(now, self.state.last_accrual_timestamp)
        if elapsed == 0:
            return 0

        interest = 0
        if self.state.total_outstanding_debt > 0:
            rate = self.borrow_rate_per_second()
            interest = self.rate_model.interest_for(
                self.state.total_outstanding_debt, rate, elapsed
            )
            fee = wmul(interest, self.rate_model.params.performance_fee)
            self.state.total_pending_fees = checked_add(self.state.total_pending_fees, fee)
            self.state.total_outstanding_debt = checked_add(
                self.state.total_outstanding_debt, interest
            )
        self.state.last_accrual_timestamp = now
        return interest

    def accrue_interest(self) -> int:
        """
        Accrue interest for the time elapsed since the last accrual.

        Calling it twice at the same instant changes nothing.

        Returns:
            Interest added to total_outstanding_debt
        """
        with self._transactor.atomic(self._guard, "accrue_interest"):
            return self._accrue()

    # ========================================================================
    # SUPPLY SIDE
    # ========================================================================

    def supply(self, account: str, amount: int) -> int:
        """
        Deposit underlying and mint pool shares at the current exchange rate.

        Returns:
            Pool shares minted to account
        """
        if amount <= 0:
            raise ValueError(f"supply amount must be positive, got {amount}")
        with self._transactor.atomic(self._guard, "supply"):
            self._accrue()
            shares = wdiv(amount, self.exchange_rate())
            if shares == 0:
                raise ValueError(f"supply amount {amount} is too small to mint a share")
            self.tokens.transfer(self.underlying, account, self.wallet, amount)
            self.tokens.mint(account, self.share_symbol, shares)
            if self.verbose:
                print(f"✓ SUPPLY {account}: {from_wad(amount)} {self.underlying} "
                      f"-> {from_wad(shares)} {self.share_symbol}")
            return shares

    def withdraw(self, account: str, share_amount: int) -> int:
        """
        Burn pool shares and pay out underlying at the current exchange rate.

        Returns:
            Underlying paid to account

        Raises:
            InsufficientLiquidity: If available cash cannot cover the payout
        """
        if share_amount <= 0:
            raise ValueError(f"share amount must be positive, got {share_amount}")
        with self._transactor.atomic(self._guard, "withdraw"):
            self._accrue()
            amount = wmul(share_amount, self.exchange_rate())
            cash = self.cash_available()
            if amount > cash:
                raise InsufficientLiquidity(
                    f"Withdrawal of {from_wad(amount)} {self.underlying} exceeds "
                    f"available cash {from_wad(cash)}"
                )
            self.tokens.burn(account, self.share_symbol, share_amount)
            if amount > 0:
                self.tokens.transfer(self.underlying, self.wallet, account, amount)
            if self.verbose:
                print(f"✓ WITHDRAW {account}: {from_wad(share_amount)} {self.share_symbol} "
                      f"-> {from_wad(amount)} {self.underlying}")
            return amount

    # ========================================================================
    # BORROW SIDE
    # ========================================================================

    def borrow(self, borrower: str, amount: int) -> int:
        """
        Lend amount of underlying to an approved borrower.

        Returns:
            Debt shares added to borrower

        Raises:
            Unauthorized: If borrower was never granted
            InsufficientLiquidity: If cash_available < amount
            BorrowCapExceeded: If the borrower's debt would exceed its cap
        """
        if amount <= 0:
            raise ValueError(f"borrow amount must be positive, got {amount}")
        with self._transactor.atomic(self._guard, "borrow"):
            self._accrue()
            if not self.debts.is_borrower(borrower):
                raise Unauthorized(f"{borrower} is not an approved borrower")
            cash = self.cash_available()
            if amount > cash:
                raise InsufficientLiquidity(
                    f"Borrow of {from_wad(amount)} {self.underlying} exceeds "
                    f"available cash {from_wad(cash)}"
                )
            new_debt = checked_add(self.outstanding_debt_of(borrower), amount)
            if new_debt > self.borrow_cap_of(borrower):
                raise BorrowCapExceeded(
                    f"{borrower} debt would be {from_wad(new_debt)}, cap is "
                    f"{from_wad(self.borrow_cap_of(borrower))}"
                )

            shares = wdiv(amount, self.debt_share_rate())
            if shares == 0:
                raise ValueError(f"borrow amount {amount} is too small to record a debt share")
            self.debts.shares[borrower] = checked_add(self.debts.shares_of(borrower), shares)
            self.state.total_debt_shares = checked_add(self.state.total_debt_shares, shares)
            self.state.total_outstanding_debt = checked_add(
                self.state.total_outstanding_debt, amount
            )
            self.tokens.transfer(self.underlying, self.wallet, borrower, amount)
            return shares

    def repay(self, borrower: str, amount: int) -> int:
        """
        Pay back amount of underlying on borrower's behalf.

        Repaying exactly the outstanding debt clears all of the borrower's
        shares.

        Returns:
            Debt shares removed from borrower

        Raises:
            ArithmeticFailure: If amount exceeds the outstanding debt
        """
        if amount <= 0:
            raise ValueError(f"repay amount must be positive, got {amount}")
        with self._transactor.atomic(self._guard, "repay"):
            self._accrue()
            owed = self.outstanding_debt_of(borrower)
            if amount > owed:
                raise ArithmeticFailure(
                    f"Repay of {from_wad(amount)} exceeds {borrower} debt {from_wad(owed)}"
                )
            held = self.debts.shares_of(borrower)
            if amount == owed:
                shares = held
            else:
                shares = min(wdiv(amount, self.debt_share_rate()), held)

            self.tokens.transfer(self.underlying, borrower, self.wallet, amount)
            self.debts.shares[borrower] = checked_sub(held, shares)
            self.state.total_debt_shares = checked_sub(self.state.total_debt_shares, shares)
            self.state.total_outstanding_debt = checked_sub(
                self.state.total_outstanding_debt, amount
            )
            if self.state.total_debt_shares == 0:
                # Rounding dust with no remaining claimant.
                self.state.total_outstanding_debt = 0
            return shares

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def grant_borrower(self, caller: str, borrower: str, max_borrow_amount: int) -> None:
        """Approve borrower (or change its cap). A cap of 0 blocks new borrowing."""
        if max_borrow_amount < 0:
            raise ValueError(f"max_borrow_amount cannot be negative, got {max_borrow_amount}")
        with self._transactor.atomic(self._guard, "grant_borrower"):
            require_authorized(self.authorizer, caller, ACTION_GRANT_BORROWER)
            self._accrue()
            self.debts.borrow_caps[borrower] = max_borrow_amount
            self.debts.shares.setdefault(borrower, 0)

    def set_interest_rate_params(self, caller: str, params: InterestRateParams) -> None:
        """Replace the rate curve. Interest up to now accrues at the old curve."""
        with self._transactor.atomic(self._guard, "set_interest_rate_params"):
            require_authorized(self.authorizer, caller, ACTION_SET_POOL_PARAMETERS)
            self._accrue()
            self.rate_model = InterestRateModel(params)

    def collect_pending_fees(self, caller: str, recipient: str) -> int:
        """
        Pay the accumulated performance fee to recipient.

        Returns:
            Underlying transferred

        Raises:
            InsufficientLiquidity: If the pool's balance cannot cover the fees
        """
        with self._transactor.atomic(self._guard, "collect_pending_fees"):
            require_authorized(self.authorizer, caller, ACTION_COLLECT_POOL_FEES)
            self._accrue()
            fees = self.state.total_pending_fees
            balance = self.tokens.balance_of(self.wallet, self.underlying)
            if fees > balance:
                raise InsufficientLiquidity(
                    f"Pending fees {from_wad(fees)} exceed pool balance {from_wad(balance)}"
                )
            self.state.total_pending_fees = 0
            if fees > 0:
                self.tokens.transfer(self.underlying, self.wallet, recipient, fees)
            if self.verbose:
                print(f"✓ COLLECT POOL FEES -> {recipient}: {from_wad(fees)} {self.underlying}")
            return fees

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": copy.deepcopy(self.state),
            "debts": copy.deepcopy(self.debts),
            "rate_model": self.rate_model,
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.state = copy.deepcopy(snapshot["state"])
        self.debts = copy.deepcopy(snapshot["debts"])
        self.rate_model = snapshot["rate_model"]

    def __repr__(self):
        return (f"LendingPool({self.underlying}, debt={from_wad(self.state.total_outstanding_debt)}, "
                f"cash={from_wad(self.cash_available())})")
