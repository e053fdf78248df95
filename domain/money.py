"""
Domain money helpers (pure).

All amounts in the order lifecycle are Decimals with two fractional digits.
Supabase returns numeric columns as int/float/str, so every value crossing the
persistence boundary passes through `to_money`.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Convert a number-like value to a 2-place Decimal.

    Floats are converted through `str()` so 0.1 becomes Decimal("0.10"), not
    its binary expansion. None maps to 0.00.
    """

    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid money amount")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def require_non_negative(name: str, value: Decimal) -> None:
    """Amounts entering the payment plan must never be negative."""

    if value < 0:
        raise ValueError(f"{name} must be >= 0")


def money_to_json(value: Decimal) -> float:
    """Serialize a money Decimal for a JSON/numeric Supabase column."""

    return float(value)
