"""
interest_rate.py - Kinked two-slope interest rate model

Converts pool utilization into a per-second borrow rate.

Key Formulas:
    U = debt / (debt + cash)                       (0 if debt == 0, 1 if cash == 0)
    below the kink:   rate = U / U_opt * slope1
    at/above kink:    rate = slope1 + (U - U_opt) / (1 - U) * slope2
    borrow_rate = min(rate / SECONDS_PER_YEAR, max_borrow_rate_per_second)
    supply_rate = U * borrow_rate * (1 - performance_fee)

The curve stays flat under normal utilization and steepens sharply as the
pool approaches full utilization, so that rates defend the last of the
pool's liquidity. All values are WAD-scaled integers.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

import numpy as np

from .core import WAD, SECONDS_PER_YEAR
from .fixed_point import (
    checked_add, checked_sub, checked_mul, checked_div,
    wmul, wdiv, mul_div,
)


# ============================================================================
# PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class InterestRateParams:
    """
    Immutable rate-curve configuration.

    Attributes:
        optimal_utilization: Kink position U_opt (WAD, strictly between 0 and 1)
        slope1: Annual rate reached at the kink (WAD)
        slope2: Annual steepness above the kink (WAD)
        max_borrow_rate_per_second: Hard cap on the per-second borrow rate (WAD)
        performance_fee: Share of interest kept by the protocol (WAD, <= 1)
    """
    optimal_utilization: int = 90 * WAD // 100
    slope1: int = 20 * WAD // 100
    slope2: int = 60 * WAD // 100
    max_borrow_rate_per_second: int = 50_735_667_174  # ~393% APY
    performance_fee: int = 10 * WAD // 100

    def __post_init__(self):
        if not 0 < self.optimal_utilization < WAD:
            raise ValueError(
                f"optimal_utilization must be in (0, 1), got {self.optimal_utilization}"
            )
        if self.slope1 < 0 or self.slope2 < 0:
            raise ValueError("slopes must be non-negative")
        if self.max_borrow_rate_per_second <= 0:
            raise ValueError("max_borrow_rate_per_second must be positive")
        if not 0 <= self.performance_fee <= WAD:
            raise ValueError(f"performance_fee must be in [0, 1], got {self.performance_fee}")


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def utilization_rate(cash_available: int, outstanding_debt: int) -> int:
    """
    Fraction of the pool currently lent out, clamped to [0, 1].

    Args:
        cash_available: Underlying held by the pool and free to lend
        outstanding_debt: Underlying owed by all borrowers

    Returns:
        Utilization as a WAD value
    """
    if outstanding_debt == 0:
        return 0
    if cash_available == 0:
        return WAD
    total = checked_add(outstanding_debt, cash_available)
    return min(wdiv(outstanding_debt, total), WAD)


class InterestRateModel:
    """Kinked two-slope borrow-rate curve."""

    def __init__(self, params: InterestRateParams | None = None) -> None:
        self.params = params or InterestRateParams()

    def borrow_rate_per_second(self, utilization: int) -> int:
        """
        Per-second borrow rate for a given utilization.

        Args:
            utilization: WAD utilization in [0, 1]

        Returns:
            WAD rate per second, capped at max_borrow_rate_per_second
        """
        p = self.params
        if utilization == 0:
            return 0
        if utilization >= WAD:
            return p.max_borrow_rate_per_second

        if utilization < p.optimal_utilization:
            position = wdiv(utilization, p.optimal_utilization)
            annual = wmul(position, p.slope1)
        else:
            excess = checked_sub(utilization, p.optimal_utilization)
            steepness = wdiv(excess, checked_sub(WAD, utilization))
            annual = checked_add(p.slope1, wmul(steepness, p.slope2))

        rate = checked_div(annual, SECONDS_PER_YEAR)
        return min(rate, p.max_borrow_rate_per_second)

    def supply_rate_per_second(self, utilization: int) -> int:
        """Per-second rate earned by suppliers after the performance fee."""
        borrow_rate = self.borrow_rate_per_second(utilization)
        gross = wmul(utilization, borrow_rate)
        return wmul(gross, checked_sub(WAD, self.params.performance_fee))

    def borrow_rate(self, cash_available: int, outstanding_debt: int) -> int:
        """Per-second borrow rate for the given pool balances."""
        return self.borrow_rate_per_second(utilization_rate(cash_available, outstanding_debt))

    def supply_rate(self, cash_available: int, outstanding_debt: int) -> int:
        """Per-second supply rate for the given pool balances."""
        return self.supply_rate_per_second(utilization_rate(cash_available, outstanding_debt))

    def annualize(self, rate_per_second: int) -> int:
        """Simple (non-compounded) annual rate for a per-second rate."""
        return checked_mul(rate_per_second, SECONDS_PER_YEAR)

    def interest_for(self, principal: int, rate_per_second: int, elapsed_seconds: int) -> int:
        """Interest owed on principal over elapsed_seconds, truncated."""
        return mul_div(principal, checked_mul(rate_per_second, elapsed_seconds), WAD)

    def rate_curve(self, n_points: int = 101) -> Dict[str, np.ndarray]:
        """
        Sample the curve over utilization in [0, 1] for plotting.

        Returns:
            Dict with float arrays 'utilization', 'borrow_apr', 'supply_apr'
        """
        if n_points < 2:
            raise ValueError(f"n_points must be at least 2, got {n_points}")
        utilizations = [i * WAD // (n_points - 1) for i in range(n_points)]
        borrow = [self.annualize(self.borrow_rate_per_second(u)) for u in utilizations]
        supply = [self.annualize(self.supply_rate_per_second(u)) for u in utilizations]
        scale = float(WAD)
        return {
            "utilization": np.array(utilizations, dtype=np.float64) / scale,
            "borrow_apr": np.array(borrow, dtype=np.float64) / scale,
            "supply_apr": np.array(supply, dtype=np.float64) / scale,
        }

    def __repr__(self):
        return f"InterestRateModel({self.params})"
