"""
pricing_source.py - Price oracles for leveraged-token collateral

Provides PriceOracle implementations quoting one collateral asset in units
of the pool's underlying asset (WAD-scaled):

- StaticPriceOracle: a settable price, independent of time
- TimeSeriesPriceOracle: historical observations read at the market clock,
  with an optional staleness bound

fetch_price() is the single entry point the engine uses: it turns every kind
of unusable answer into OracleUnavailable.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .core import OracleUnavailable, PriceOracle


def fetch_price(oracle: PriceOracle) -> int:
    """
    Query an oracle, rejecting zero, missing or failing answers.

    Raises:
        OracleUnavailable: If the oracle raises or returns no positive price
    """
    try:
        price = oracle.get_price()
    except OracleUnavailable:
        raise
    except Exception as exc:
        raise OracleUnavailable(f"Oracle {oracle!r} failed: {exc}") from exc
    if price is None or price <= 0:
        raise OracleUnavailable(f"Oracle {oracle!r} returned unusable price {price!r}")
    return price


class StaticPriceOracle:
    """
    Oracle with a single settable price.

    A price of 0 models a feed that is down.
    """

    def __init__(self, price: int):
        self.price = price

    def get_price(self) -> int:
        return self.price

    def update_price(self, price: int) -> None:
        """Set a new price."""
        self.price = price

    def __repr__(self):
        return f"StaticPriceOracle({self.price})"


class TimeSeriesPriceOracle:
    """
    Oracle backed by timestamped observations.

    Returns the most recent observation at or before the clock's current
    time. When max_age is set, an observation older than max_age is stale
    and get_price() raises OracleUnavailable.
    """

    def __init__(
        self,
        clock: Callable[[], datetime],
        observations: Optional[List[Tuple[datetime, int]]] = None,
        max_age: Optional[timedelta] = None,
    ):
        """
        Args:
            clock: Zero-argument callable returning the current time
            observations: Optional (timestamp, price) pairs, in any order
            max_age: Optional staleness bound
        """
        self.clock = clock
        self.max_age = max_age
        self.history: List[Tuple[datetime, int]] = sorted(observations or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, price: int) -> None:
        """Add an observation, keeping history sorted by timestamp."""
        self.history.append((timestamp, price))
        self.history.sort(key=lambda x: x[0])

    def get_price(self) -> int:
        now = self.clock()
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, now)
        if idx == 0:
            raise OracleUnavailable(f"No price observation at or before {now}")
        observed_at, price = self.history[idx - 1]
        if self.max_age is not None and now - observed_at > self.max_age:
            raise OracleUnavailable(
                f"Stale price: last observation {observed_at} is older than {self.max_age}"
            )
        return price

    def __repr__(self):
        return f"TimeSeriesPriceOracle({len(self.history)} observations, max_age={self.max_age})"
