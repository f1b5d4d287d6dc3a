"""
clock.py - Logical market time

The market never reads the wall clock. Time is a logical datetime that only
moves forward when the caller advances it, which keeps interest accrual and
rebalance cooldowns fully reproducible.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional


EPOCH = datetime(1970, 1, 1)


class Clock:
    """Forward-only logical clock."""

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Args:
            initial_time: Starting time (default: 1970-01-01)
        """
        self._current_time: datetime = initial_time or EPOCH

    @property
    def current_time(self) -> datetime:
        """Return the current logical time."""
        return self._current_time

    def __call__(self) -> datetime:
        return self._current_time

    def timestamp(self) -> int:
        """Whole seconds since EPOCH; the unit used by all accrual math."""
        return int((self._current_time - EPOCH).total_seconds())

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the clock to a new time.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def advance(self, delta: timedelta) -> None:
        """Advance the clock by delta."""
        self.advance_time(self._current_time + delta)

    def __repr__(self):
        return f"Clock({self._current_time.isoformat()})"
