"""
fixed_point.py - Checked 18-decimal fixed-point arithmetic

Every amount, price, rate and ratio in the market is a non-negative integer
scaled by WAD (10**18). The helpers here are the only arithmetic the
accounting code uses, so that:

    - results never leave [0, MAX_UINT256]: overflow, underflow and division
      by zero raise ArithmeticFailure instead of wrapping
    - rounding direction is always explicit: the plain helpers truncate,
      the *_up helpers round toward +infinity

Key Formulas:
    wmul(a, b) = a * b / WAD
    wdiv(a, b) = a * WAD / b
    mul_div(a, b, d) = a * b / d   (single rounding step)

Decimal is used only at the edges (to_wad / from_wad) for human-readable
inputs and reports.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Union

from .core import WAD, MAX_UINT256, ArithmeticFailure


Numeric = Union[int, str, Decimal]


def _check(value: int, operation: str) -> int:
    """Reject results outside the representable unsigned range."""
    if value < 0:
        raise ArithmeticFailure(f"Arithmetic underflow in {operation}")
    if value > MAX_UINT256:
        raise ArithmeticFailure(f"Arithmetic overflow in {operation}")
    return value


def _require_operands(operation: str, *values: int) -> None:
    for v in values:
        if not isinstance(v, int) or isinstance(v, bool):
            raise TypeError(f"{operation} operands must be int, got {type(v).__name__}")
        _check(v, operation)


# ============================================================================
# CHECKED INTEGER ARITHMETIC
# ============================================================================

def checked_add(a: int, b: int) -> int:
    """Add with overflow checking."""
    _require_operands("addition", a, b)
    return _check(a + b, "addition")


def checked_sub(a: int, b: int) -> int:
    """Subtract with underflow checking."""
    _require_operands("subtraction", a, b)
    return _check(a - b, "subtraction")


def checked_mul(a: int, b: int) -> int:
    """Multiply with overflow checking."""
    _require_operands("multiplication", a, b)
    return _check(a * b, "multiplication")


def checked_div(a: int, b: int) -> int:
    """Truncating division; division by zero is an arithmetic failure."""
    _require_operands("division", a, b)
    if b == 0:
        raise ArithmeticFailure("Division by zero")
    return a // b


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator, truncated, with a single rounding step.

    The intermediate product is checked against the 256-bit width.
    """
    return checked_div(checked_mul(a, b), denominator)


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """Compute a * b / denominator, rounded up."""
    product = checked_mul(a, b)
    if denominator == 0:
        raise ArithmeticFailure("Division by zero")
    return _check(-(-product // denominator), "division")


# ============================================================================
# WAD ARITHMETIC
# ============================================================================

def wmul(a: int, b: int) -> int:
    """Multiply two WAD values, truncating."""
    return mul_div(a, b, WAD)


def wmul_up(a: int, b: int) -> int:
    """Multiply two WAD values, rounding up."""
    return mul_div_up(a, b, WAD)


def wdiv(a: int, b: int) -> int:
    """Divide two WAD values, truncating."""
    return mul_div(a, WAD, b)


def wdiv_up(a: int, b: int) -> int:
    """Divide two WAD values, rounding up."""
    return mul_div_up(a, WAD, b)


# ============================================================================
# CONVERSION
# ============================================================================

def to_wad(value: Numeric) -> int:
    """
    Convert a human-readable quantity to a WAD integer.

    Ints are taken as whole units (to_wad(3) == 3 * WAD). Strings and Decimals
    may carry up to 18 fractional digits; further digits are truncated.

    Raises:
        ValueError: for floats, negative values, NaN or infinity
    """
    if isinstance(value, (bool, float)):
        raise ValueError(f"to_wad() requires int, str or Decimal, got {type(value).__name__}")
    d = Decimal(value)
    if not d.is_finite():
        raise ValueError(f"to_wad() requires a finite value, got {value}")
    if d < 0:
        raise ValueError(f"to_wad() requires a non-negative value, got {value}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = (d * WAD).to_integral_value(rounding=ROUND_DOWN)
    return _check(int(scaled), "conversion")


def from_wad(value: int) -> Decimal:
    """Convert a WAD integer to an exact Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(value) / Decimal(WAD)
