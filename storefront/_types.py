"""
Core types for storefront: money and time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

type Money = Decimal
"""Currency amount, always quantized to cents."""

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal | int | str | float) -> Money:
    """
    Quantize to cents (half-up).

    Floats go through str() so 19.99 stays 19.99.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Money) -> int:
    """Storage form: integer cents."""
    return int(money(amount) * 100)


def from_cents(cents: int) -> Money:
    return money(Decimal(cents) / 100)


# ═══════════════════════════════════════════════════════════════════════════════
# Time
# ═══════════════════════════════════════════════════════════════════════════════


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every table column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Money",
    # Money helpers
    "CENT",
    "ZERO",
    "money",
    "to_cents",
    "from_cents",
    # Time
    "utcnow",
)
