"""
test_lending_pool.py - Unit tests for LendingPool

Tests cover:
- Supply and withdraw at the exchange rate
- Borrow checks: approval, liquidity, borrow cap
- Repay, including full repayment and over-repayment
- Interest accrual, performance fees and fee collection
- Administrative authorization
"""

import pytest
from datetime import timedelta

from levmarket import (
    WAD, POOL_WALLET, SECONDS_PER_YEAR,
    InsufficientLiquidity, BorrowCapExceeded, Unauthorized, ArithmeticFailure,
    InsufficientBalance, InterestRateModel, InterestRateParams, to_wad, wmul,
)

from tests.conftest import OWNER, UNDERLYING


class TestSupplyWithdraw:

    def test_first_supply_mints_one_to_one(self, bare_market):
        bare_market.fund("alice", UNDERLYING, to_wad(500))
        shares = bare_market.supply("alice", to_wad(500))
        assert shares == to_wad(500)
        assert bare_market.pool.share_balance_of("alice") == to_wad(500)
        assert bare_market.pool.cash_available() == to_wad(500)
        assert bare_market.pool.exchange_rate() == WAD

    def test_exchange_rate_before_supply(self, bare_market):
        assert bare_market.pool.exchange_rate() == WAD

    def test_withdraw_all(self, funded_market):
        paid = funded_market.withdraw("lender", to_wad(100_000))
        assert paid == to_wad(100_000)
        assert funded_market.balance_of("lender", UNDERLYING) == to_wad(100_000)
        assert funded_market.pool.total_share_supply() == 0

    def test_supply_without_balance(self, bare_market):
        with pytest.raises(InsufficientBalance):
            bare_market.supply("alice", to_wad(1))

    def test_withdraw_more_shares_than_held(self, funded_market):
        with pytest.raises(InsufficientBalance):
            funded_market.withdraw("lender", to_wad(100_001))

    def test_withdraw_blocked_by_borrowing(self, funded_market):
        funded_market.pool.borrow("desk", to_wad(40_000))
        with pytest.raises(InsufficientLiquidity):
            funded_market.withdraw("lender", to_wad(70_000))
        assert funded_market.pool.share_balance_of("lender") == to_wad(100_000)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amounts(self, funded_market, amount):
        with pytest.raises(ValueError):
            funded_market.supply("lender", amount)
        with pytest.raises(ValueError):
            funded_market.withdraw("lender", amount)


class TestBorrow:

    def test_borrow(self, funded_market):
        pool = funded_market.pool
        shares = pool.borrow("desk", to_wad(10_000))
        assert shares == to_wad(10_000)
        assert pool.outstanding_debt_of("desk") == to_wad(10_000)
        assert pool.total_outstanding_debt == to_wad(10_000)
        assert pool.cash_available() == to_wad(90_000)
        assert funded_market.balance_of("desk", UNDERLYING) == to_wad(11_000)

    def test_unapproved_borrower(self, funded_market):
        with pytest.raises(Unauthorized):
            funded_market.pool.borrow("stranger", to_wad(1))

    def test_insufficient_liquidity(self, funded_market):
        funded_market.pool.grant_borrower(OWNER, "whale", to_wad(1_000_000))
        with pytest.raises(InsufficientLiquidity):
            funded_market.pool.borrow("whale", to_wad(100_001))

    def test_borrow_cap(self, funded_market):
        funded_market.pool.borrow("desk", to_wad(30_000))
        with pytest.raises(BorrowCapExceeded):
            funded_market.pool.borrow("desk", to_wad(20_001))
        assert funded_market.pool.outstanding_debt_of("desk") == to_wad(30_000)

    def test_zero_cap_blocks_borrowing(self, funded_market):
        funded_market.pool.grant_borrower(OWNER, "desk", 0)
        with pytest.raises(BorrowCapExceeded):
            funded_market.pool.borrow("desk", to_wad(1))


class TestRepay:

    def test_partial_repay(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(10_000))
        pool.repay("desk", to_wad(4_000))
        assert pool.outstanding_debt_of("desk") == to_wad(6_000)
        assert pool.cash_available() == to_wad(94_000)

    def test_full_repay_clears_shares(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(10_000))
        funded_market.advance(timedelta(days=30))
        pool.accrue_interest()
        owed = pool.outstanding_debt_of("desk")
        assert owed > to_wad(10_000)
        pool.repay("desk", owed)
        assert pool.debts.shares_of("desk") == 0
        assert pool.state.total_debt_shares == 0
        assert pool.total_outstanding_debt == 0

    def test_over_repay(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(100))
        with pytest.raises(ArithmeticFailure):
            pool.repay("desk", to_wad(101))
        assert pool.outstanding_debt_of("desk") == to_wad(100)

    def test_borrow_then_repay_restores_debt(self, funded_market):
        """Borrow and repay of the same amount leaves prior debt unchanged."""
        pool = funded_market.pool
        pool.borrow("desk", to_wad(5_000))
        funded_market.advance(timedelta(days=7))
        pool.accrue_interest()
        before = pool.outstanding_debt_of("desk")
        pool.borrow("desk", to_wad("1234.567"))
        pool.repay("desk", to_wad("1234.567"))
        assert abs(pool.outstanding_debt_of("desk") - before) <= 1


class TestInterest:

    def test_accrual(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        rate = pool.borrow_rate_per_second()
        debt = pool.total_outstanding_debt
        funded_market.advance(timedelta(days=1))

        interest = pool.accrue_interest()
        assert interest == wmul(rate * 86_400, debt)
        assert pool.total_outstanding_debt == debt + interest
        assert pool.total_pending_fees == wmul(interest, 10 * WAD // 100)

    def test_accrual_uses_rate_model(self, funded_market):
        class FlatInterest(InterestRateModel):
            def interest_for(self, principal, rate_per_second, elapsed_seconds):
                return 7 * WAD

        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        debt = pool.total_outstanding_debt
        pool.rate_model = FlatInterest()
        funded_market.advance(timedelta(hours=1))
        assert pool.accrue_interest() == 7 * WAD
        assert pool.total_outstanding_debt == debt + 7 * WAD

    def test_rates_follow_pool_balances(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        cash, debt = pool.cash_available(), pool.total_outstanding_debt
        assert pool.borrow_rate_per_second() == pool.rate_model.borrow_rate(cash, debt)
        assert pool.supply_rate_per_second() == pool.rate_model.supply_rate(cash, debt)
        assert pool.borrow_rate_per_second() == pool.rate_model.borrow_rate_per_second(
            pool.utilization_rate())

    def test_accrue_twice_same_instant(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        funded_market.advance(timedelta(hours=5))
        pool.accrue_interest()
        state = (pool.total_outstanding_debt, pool.total_pending_fees,
                 pool.state.last_accrual_timestamp)
        assert pool.accrue_interest() == 0
        assert (pool.total_outstanding_debt, pool.total_pending_fees,
                pool.state.last_accrual_timestamp) == state

    def test_no_debt_no_interest(self, funded_market):
        funded_market.advance(timedelta(days=365))
        assert funded_market.accrue_interest() == 0
        assert funded_market.pool.exchange_rate() == WAD

    def test_exchange_rate_grows(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        rates = [pool.exchange_rate()]
        for _ in range(4):
            funded_market.advance(timedelta(days=90))
            pool.accrue_interest()
            rates.append(pool.exchange_rate())
        assert rates == sorted(rates)
        assert rates[-1] > WAD

    def test_supplier_earns_interest(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        funded_market.advance(timedelta(seconds=SECONDS_PER_YEAR))
        pool.accrue_interest()
        funded_market.fund("desk", UNDERLYING, to_wad(10_000))
        pool.repay("desk", pool.outstanding_debt_of("desk"))
        fees = pool.total_pending_fees
        paid = funded_market.withdraw("lender", to_wad(100_000))
        assert paid > to_wad(100_000)
        assert funded_market.balance_of(POOL_WALLET, UNDERLYING) >= fees


class TestAdministration:

    def test_grant_requires_owner(self, funded_market):
        with pytest.raises(Unauthorized):
            funded_market.pool.grant_borrower("mallory", "mallory", to_wad(1))
        assert not funded_market.pool.debts.is_borrower("mallory")

    def test_negative_cap(self, funded_market):
        with pytest.raises(ValueError):
            funded_market.pool.grant_borrower(OWNER, "desk", -1)

    def test_set_interest_rate_params(self, funded_market):
        params = InterestRateParams(slope1=10 * WAD // 100)
        funded_market.pool.set_interest_rate_params(OWNER, params)
        assert funded_market.pool.rate_model.params == params

    def test_set_interest_rate_params_requires_owner(self, funded_market):
        with pytest.raises(Unauthorized):
            funded_market.pool.set_interest_rate_params("mallory", InterestRateParams())

    def test_collect_pending_fees(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(45_000))
        funded_market.advance(timedelta(days=30))
        pool.accrue_interest()
        fees = pool.total_pending_fees
        assert fees > 0

        collected = pool.collect_pending_fees(OWNER, "treasury")
        assert collected == fees
        assert pool.total_pending_fees == 0
        assert funded_market.balance_of("treasury", UNDERLYING) == fees

    def test_collect_pending_fees_requires_owner(self, funded_market):
        with pytest.raises(Unauthorized):
            funded_market.pool.collect_pending_fees("mallory", "mallory")

    def test_collect_fees_exceeding_balance(self, funded_market):
        pool = funded_market.pool
        pool.borrow("desk", to_wad(50_000))
        pool.grant_borrower(OWNER, "desk2", to_wad(100_000))
        pool.borrow("desk2", pool.cash_available())
        funded_market.advance(timedelta(days=365))
        pool.accrue_interest()
        assert pool.total_pending_fees > 0
        with pytest.raises(InsufficientLiquidity):
            pool.collect_pending_fees(OWNER, "treasury")
        assert pool.total_pending_fees > 0
