"""Atomic/human token amount conversion."""
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import InputError

U64_MAX = 2**64 - 1


def to_atomic(amount: float, decimals: int) -> int:
    """Scale a human amount to atomic units, rounding to the nearest unit.

    Negative amounts clamp to zero. Results that do not fit a u64 raise
    ``InputError``.
    """
    if not math.isfinite(amount):
        raise InputError(f"amount must be finite, got {amount}")
    scaled = (Decimal(repr(float(amount))) * (Decimal(10) ** decimals)).to_integral_value(
        rounding=ROUND_HALF_UP
    )
    atomic = max(int(scaled), 0)
    if atomic > U64_MAX:
        raise InputError(f"amount {amount} overflows u64 at {decimals} decimals")
    return atomic


def to_human(atomic: int, decimals: int) -> float:
    return float(Decimal(atomic) / (Decimal(10) ** decimals))
