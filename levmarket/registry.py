"""
registry.py - Leveraged token configuration and accounting state

One TokenMetadata record per issued leveraged token. The record mixes
configuration set at creation (collateral, oracle, venue, fee rate, leverage
band, rebalancing step and cap) with the mutable accounting the engine
updates on every mint, redeem and rebalance (gross collateral, pending fees,
the sticky partial-rebalance flag).

Invariant: total_collateral >= total_pending_fees
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Dict, List, Any, Tuple

from .core import (
    WAD, MAX_UINT256,
    DEFAULT_FEE_RATE, DEFAULT_MIN_LEVERAGE_RATIO, DEFAULT_MAX_LEVERAGE_RATIO,
    DEFAULT_REBALANCING_STEP, DEFAULT_REBALANCE_INTERVAL,
    NotRegistered, PriceOracle, SwapVenue,
)
from .fixed_point import checked_sub


# Fields set_parameters() may change after creation.
MUTABLE_PARAMETERS = frozenset({
    "fee_rate",
    "min_leverage_ratio",
    "max_leverage_ratio",
    "rebalancing_step",
    "max_rebalancing_notional",
    "rebalance_interval",
    "fee_recipient",
})


@dataclass
class TokenMetadata:
    """
    Configuration and accounting for one leveraged token.

    Attributes:
        token_id: Leveraged token symbol (also its borrower id in the pool)
        collateral: Collateral token symbol
        oracle: Price source for collateral in underlying units
        venue: Swap venue between collateral and underlying
        initial_price: NAV used while the token has no supply (WAD, underlying)
        fee_rate: Creation/redemption fee (WAD fraction)
        fee_recipient: Holder that receives collected collateral fees
        total_collateral: Gross collateral held, including pending fees
        total_pending_fees: Collateral owed to the fee recipient
        min_leverage_ratio: Lower edge of the target band (WAD)
        max_leverage_ratio: Upper edge of the target band (WAD)
        rebalancing_step: Leverage change per rebalance (WAD)
        max_rebalancing_notional: Cap on underlying traded per rebalance
        rebalance_interval: Cooldown of the periodic rebalance, in seconds
        last_rebalance_timestamp: Time of the last successful rebalance
        is_partial_rebalance_pending: Set when a rebalance was capped
    """
    token_id: str
    collateral: str
    oracle: PriceOracle
    venue: SwapVenue
    initial_price: int
    fee_rate: int = DEFAULT_FEE_RATE
    fee_recipient: str = "treasury"
    total_collateral: int = 0
    total_pending_fees: int = 0
    min_leverage_ratio: int = DEFAULT_MIN_LEVERAGE_RATIO
    max_leverage_ratio: int = DEFAULT_MAX_LEVERAGE_RATIO
    rebalancing_step: int = DEFAULT_REBALANCING_STEP
    max_rebalancing_notional: int = MAX_UINT256
    rebalance_interval: int = DEFAULT_REBALANCE_INTERVAL
    last_rebalance_timestamp: int = 0
    is_partial_rebalance_pending: bool = False

    def __post_init__(self):
        validate_parameters(self)

    @property
    def net_collateral(self) -> int:
        """Collateral backing the token holders (gross minus pending fees)."""
        return checked_sub(self.total_collateral, self.total_pending_fees)

    @property
    def target_leverage_ratio(self) -> int:
        """Midpoint of the leverage band."""
        return (self.min_leverage_ratio + self.max_leverage_ratio) // 2


def validate_parameters(meta: TokenMetadata) -> None:
    """
    Check a metadata record's configuration.

    Raises:
        ValueError: On an empty id, a non-positive initial price, a fee rate
            outside [0, 1), an inverted or sub-1x band, or a non-positive
            step, cap or interval
    """
    if not meta.token_id or not meta.token_id.strip():
        raise ValueError("token_id cannot be empty")
    if not meta.collateral:
        raise ValueError("collateral cannot be empty")
    if meta.initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got {meta.initial_price}")
    if not 0 <= meta.fee_rate < WAD:
        raise ValueError(f"fee_rate must be in [0, 1), got {meta.fee_rate}")
    if meta.min_leverage_ratio <= WAD:
        raise ValueError(f"min_leverage_ratio must exceed 1x, got {meta.min_leverage_ratio}")
    if meta.min_leverage_ratio >= meta.max_leverage_ratio:
        raise ValueError(
            f"min_leverage_ratio {meta.min_leverage_ratio} must be below "
            f"max_leverage_ratio {meta.max_leverage_ratio}"
        )
    if meta.rebalancing_step <= 0:
        raise ValueError(f"rebalancing_step must be positive, got {meta.rebalancing_step}")
    if meta.max_rebalancing_notional <= 0:
        raise ValueError(
            f"max_rebalancing_notional must be positive, got {meta.max_rebalancing_notional}"
        )
    if meta.rebalance_interval < 0:
        raise ValueError(f"rebalance_interval cannot be negative, got {meta.rebalance_interval}")
    if meta.total_collateral < meta.total_pending_fees:
        raise ValueError("total_collateral cannot be below total_pending_fees")


class LeveragedTokenRegistry:
    """Owner of every TokenMetadata record, keyed by token id."""

    def __init__(self) -> None:
        self._tokens: Dict[str, TokenMetadata] = {}

    def register(self, meta: TokenMetadata) -> TokenMetadata:
        """
        Add a new token record.

        Raises:
            ValueError: If the id is already registered
        """
        if meta.token_id in self._tokens:
            raise ValueError(f"Leveraged token {meta.token_id} already registered")
        self._tokens[meta.token_id] = meta
        return meta

    def get(self, token_id: str) -> TokenMetadata:
        """
        Return the record for token_id.

        Raises:
            NotRegistered: If token_id is unknown
        """
        try:
            return self._tokens[token_id]
        except KeyError:
            raise NotRegistered(f"Leveraged token {token_id} not registered") from None

    def is_registered(self, token_id: str) -> bool:
        return token_id in self._tokens

    def list_tokens(self) -> List[str]:
        return sorted(self._tokens)

    def set_parameters(self, token_id: str, **changes: Any) -> TokenMetadata:
        """
        Change configuration fields of an existing token.

        Only MUTABLE_PARAMETERS may change. The new configuration is validated
        as a whole, then applied to the existing record in place.

        Raises:
            NotRegistered: If token_id is unknown
            ValueError: For unknown fields or an invalid combination
        """
        current = self.get(token_id)
        unknown = set(changes) - MUTABLE_PARAMETERS
        if unknown:
            raise ValueError(f"Cannot set parameters {sorted(unknown)}")
        replace(current, **changes)
        for name, value in changes.items():
            setattr(current, name, value)
        return current

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    def snapshot(self) -> Dict[str, Tuple[TokenMetadata, Dict[str, Any]]]:
        # Field values per record; oracle and venue are shared, not copied.
        return {
            tid: (meta, {f.name: getattr(meta, f.name) for f in fields(meta)})
            for tid, meta in self._tokens.items()
        }

    def restore(self, snapshot: Dict[str, Tuple[TokenMetadata, Dict[str, Any]]]) -> None:
        # Records are restored in place so held references stay live.
        self._tokens = {}
        for tid, (meta, values) in snapshot.items():
            for name, value in values.items():
                setattr(meta, name, value)
            self._tokens[tid] = meta

    def __repr__(self):
        return f"LeveragedTokenRegistry({len(self._tokens)} tokens)"
