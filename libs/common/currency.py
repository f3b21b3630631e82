"""Money helpers for the store.

Internal storage unit: Rupiah as ``Decimal`` with two places (Numeric(12, 2)).
Gateway unit: whole Rupiah integers (Midtrans rejects fractional IDR).
Signature unit: the ``gross_amount`` string exactly as Midtrans sends it,
e.g. ``"115000.00"``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_money(value: Number) -> Decimal:
    """Quantize any numeric input to two decimal places (round half-up)."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_gateway_amount(value: Number) -> int:
    """Whole-Rupiah integer for gateway payloads."""
    return int(to_money(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_gross_amount(value: Number) -> str:
    """Render an amount the way Midtrans renders ``gross_amount``."""
    return f"{to_money(value):.2f}"


def amounts_match(left: Number, right: Number) -> bool:
    """Compare two amounts after quantization; unparsable input never matches."""
    try:
        return to_money(left) == to_money(right)
    except (InvalidOperation, TypeError, ValueError):
        return False
