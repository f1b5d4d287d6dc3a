"""
transaction.py - Non-reentrant guards and all-or-nothing execution

Every state-mutating entry point of the market runs inside
Transactor.atomic(guard):

    - the guard is acquired on entry and released on every exit path;
      re-entering a held guard raises Reentrancy immediately
    - the outermost atomic call snapshots every registered participant;
      if anything raises before it returns, every participant is restored
      and the error is re-raised
    - nested atomic calls (the engine borrowing from the pool) join the
      outer call and share its snapshot

INVARIANT: a call either applies all of its changes or none of them.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .core import Participant, Reentrancy


class Guard:
    """Mutual-exclusion flag for one component's entry points."""

    def __init__(self, name: str):
        self.name = name
        self._held_by: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._held_by is not None

    def acquire(self, operation: str) -> None:
        if self._held_by is not None:
            raise Reentrancy(
                f"{self.name}.{operation} re-entered while {self.name}.{self._held_by} is running"
            )
        self._held_by = operation

    def release(self) -> None:
        self._held_by = None

    def __repr__(self):
        return f"Guard({self.name}, held_by={self._held_by})"


class Transactor:
    """
    Shared transaction scope for all participants of one market.

    Example:
        tx = Transactor()
        tx.register(tokens)
        tx.register(pool)
        with tx.atomic(pool_guard, "borrow"):
            ...  # any exception restores tokens and pool
    """

    def __init__(self, verbose: bool = False):
        self._participants: List[Participant] = []
        self._depth = 0
        self.verbose = verbose

    def register(self, participant: Participant) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self, guard: Guard, operation: str) -> Iterator[None]:
        """
        Run the body under guard, rolling everything back if it raises.

        Args:
            guard: The component guard to hold for the duration of the body
            operation: Name used in reentrancy and rollback messages
        """
        guard.acquire(operation)
        try:
            outermost = self._depth == 0
            snapshots = [p.snapshot() for p in self._participants] if outermost else None
            self._depth += 1
            try:
                yield
            except BaseException as exc:
                if outermost:
                    for participant, snap in zip(self._participants, snapshots):
                        participant.restore(snap)
                    if self.verbose:
                        print(f"✗ ROLLED BACK {guard.name}.{operation}: {type(exc).__name__}: {exc}")
                raise
            finally:
                self._depth -= 1
        finally:
            guard.release()
