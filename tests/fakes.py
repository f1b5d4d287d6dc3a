"""
fakes.py - Misbehaving collaborators for failure-path tests

Each fake implements one of the market's protocols (PriceOracle, SwapVenue,
Authorizer) and fails in one specific way.
"""

from typing import Callable, List, Optional, Tuple

from levmarket import SimulatedSwapVenue


class FailingOracle:
    """Oracle whose feed raises a non-market exception."""

    def __init__(self, message: str = "feed offline"):
        self.message = message
        self.calls = 0

    def get_price(self) -> int:
        self.calls += 1
        raise ConnectionError(self.message)


class NoneOracle:
    """Oracle that answers None."""

    def get_price(self):
        return None


class ReentrantSwapVenue:
    """
    Swap venue that calls back into the market before delegating.

    The callback runs on the first swap only; its exception, if any,
    propagates out of swap().
    """

    def __init__(self, inner: SimulatedSwapVenue, callback: Callable[[], object]):
        self.inner = inner
        self.callback = callback
        self.fired = False

    def swap(self, payer, token_in, token_out, max_amount_in, exact_amount_out):
        if not self.fired:
            self.fired = True
            self.callback()
        return self.inner.swap(payer, token_in, token_out, max_amount_in, exact_amount_out)


class OverchargingSwapVenue:
    """
    Swap venue that ignores max_amount_in and takes a multiple of it.

    Delivers exact_amount_out from the inner venue's inventory.
    """

    def __init__(self, inner: SimulatedSwapVenue, factor: int = 2):
        self.inner = inner
        self.factor = factor
        self.wallet = inner.wallet

    def swap(self, payer, token_in, token_out, max_amount_in, exact_amount_out):
        amount_in = self.factor * max_amount_in
        self.inner.tokens.transfer(token_in, payer, self.wallet, amount_in)
        self.inner.tokens.transfer(token_out, self.wallet, payer, exact_amount_out)
        return amount_in


class RecordingAuthorizer:
    """Authorizer that accepts a fixed set of (caller, action) pairs and records queries."""

    def __init__(self, allowed: Optional[List[Tuple[str, str]]] = None):
        self.allowed = set(allowed or [])
        self.queries: List[Tuple[str, str]] = []

    def is_authorized(self, caller: str, action: str) -> bool:
        self.queries.append((caller, action))
        return (caller, action) in self.allowed
