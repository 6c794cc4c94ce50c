"""Currency helpers for checkout amounts.

All amounts are VND held as ``Decimal``. VND has no minor unit in practice,
so "minor units" and whole dong are the same thing here.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

# ─── constants ───────────────────────────────────────────────────────────────

ZERO = Decimal("0")
ONE_DONG = Decimal("1")
CURRENCY_SYMBOL = "₫"


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_amount(value: Any, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """Coerce a JSON number/str into a Decimal; non-numeric input gives ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not amount.is_finite():
        return default
    return amount


def round_dong(amount: Decimal) -> Decimal:
    """Round half-up to a whole dong."""
    return amount.quantize(ONE_DONG, rounding=ROUND_HALF_UP)


def amounts_differ(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    return abs(a - b) > tolerance


def format_vnd(amount: Decimal | int | float) -> str:
    """Format like ``vi-VN`` locale: ``500.000 ₫``."""
    whole = int(round_dong(to_amount(amount)))
    sign = "-" if whole < 0 else ""
    return f"{sign}{abs(whole):,}".replace(",", ".") + f" {CURRENCY_SYMBOL}"
