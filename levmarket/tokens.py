"""
tokens.py - In-memory fungible token ledger

Balances for every token the market touches: the underlying asset, the
collateral asset, pool shares and each leveraged token. This stands in for
the external token contracts and keeps exactly the surface the engine needs:
mint, burn, transfer, balance_of and total_supply.

Invariant (conservation):
    for every token, sum of balances over all holders == total_supply(token)

Allowances are not modelled; callers move their own balances.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set, Tuple, Any
import copy

from .core import InsufficientBalance, NotRegistered
from .fixed_point import checked_add, checked_sub


class TokenLedger:
    """
    Balance book for a set of registered tokens.

    Example:
        tokens = TokenLedger()
        tokens.register_token("USDC", "USD Coin")
        tokens.mint("alice", "USDC", to_wad(1000))
        tokens.transfer("USDC", "alice", "bob", to_wad(100))
    """

    def __init__(self) -> None:
        self.names: Dict[str, str] = {}
        self.balances: Dict[str, Dict[str, int]] = {}
        self._supply: Dict[str, int] = {}

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_token(self, symbol: str, name: str = "") -> None:
        """
        Register a new token symbol with zero supply.

        Raises:
            ValueError: If the symbol is empty or already registered
        """
        if not symbol or not symbol.strip():
            raise ValueError("Token symbol cannot be empty")
        if symbol in self.names:
            raise ValueError(f"Token {symbol} already registered")
        self.names[symbol] = name or symbol
        self.balances[symbol] = defaultdict(int)
        self._supply[symbol] = 0

    def is_registered(self, symbol: str) -> bool:
        return symbol in self.names

    def list_tokens(self) -> List[str]:
        return sorted(self.names)

    def _book(self, symbol: str) -> Dict[str, int]:
        if symbol not in self.balances:
            raise NotRegistered(f"Token {symbol} not registered")
        return self.balances[symbol]

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, holder: str, symbol: str) -> int:
        """Balance of holder; 0 if the holder has never held the token."""
        return self._book(symbol).get(holder, 0)

    def total_supply(self, symbol: str) -> int:
        self._book(symbol)
        return self._supply[symbol]

    def holders(self, symbol: str) -> Set[str]:
        """Holders with a non-zero balance."""
        return {h for h, q in self._book(symbol).items() if q}

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def mint(self, holder: str, symbol: str, amount: int) -> None:
        """Create amount of symbol in holder's balance."""
        book = self._book(symbol)
        self._require_amount(amount)
        book[holder] = checked_add(book[holder], amount)
        self._supply[symbol] = checked_add(self._supply[symbol], amount)

    def burn(self, holder: str, symbol: str, amount: int) -> None:
        """
        Destroy amount of symbol from holder's balance.

        Raises:
            InsufficientBalance: If holder holds less than amount
        """
        book = self._book(symbol)
        self._require_amount(amount)
        if book.get(holder, 0) < amount:
            raise InsufficientBalance(
                f"{holder} cannot burn {amount} {symbol}: balance {book.get(holder, 0)}"
            )
        book[holder] = checked_sub(book[holder], amount)
        self._supply[symbol] = checked_sub(self._supply[symbol], amount)

    def transfer(self, symbol: str, source: str, dest: str, amount: int) -> None:
        """
        Move amount of symbol from source to dest.

        Zero-amount transfers are accepted and change nothing.

        Raises:
            InsufficientBalance: If source holds less than amount
            ValueError: If source and dest are the same holder
        """
        book = self._book(symbol)
        self._require_amount(amount)
        if source == dest:
            raise ValueError("Source and dest must be different")
        if book.get(source, 0) < amount:
            raise InsufficientBalance(
                f"{source} cannot transfer {amount} {symbol}: balance {book.get(source, 0)}"
            )
        book[source] = checked_sub(book[source], amount)
        book[dest] = checked_add(book[dest], amount)

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TypeError(f"Token amounts must be int, got {type(amount).__name__}")
        if amount < 0:
            raise ValueError(f"Token amount cannot be negative, got {amount}")

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    def snapshot(self) -> Tuple[Dict[str, str], Dict[str, Dict[str, int]], Dict[str, int]]:
        return (
            dict(self.names),
            {symbol: dict(book) for symbol, book in self.balances.items()},
            dict(self._supply),
        )

    def restore(self, snapshot: Any) -> None:
        names, balances, supply = copy.deepcopy(snapshot)
        self.names = names
        self.balances = {symbol: defaultdict(int, book) for symbol, book in balances.items()}
        self._supply = supply

    def verify_conservation(self, symbol: str) -> bool:
        """Check that the sum of balances equals the recorded supply."""
        return sum(self._book(symbol).values()) == self._supply[symbol]

    def __repr__(self):
        return f"TokenLedger({len(self.names)} tokens)"
