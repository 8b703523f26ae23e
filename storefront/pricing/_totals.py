"""
Pricing — deterministic order totals.

    totals = compute_totals(lines, discount=Decimal("4.00"), settings=settings)
    totals.total  # subtotal + shipping + tax - discount, never below zero
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from storefront._types import CENT, Money, ZERO, money
from storefront.config import Settings


@dataclass(frozen=True, slots=True)
class PriceLine:
    unit_price: Money
    quantity: int
    free_shipping: bool = False

    @property
    def line_total(self) -> Money:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Money
    shipping: Money
    tax: Money
    discount: Money
    total: Money

    def reconciles(self) -> bool:
        """total == subtotal + shipping + tax - discount within a cent (or clamped to 0)."""
        expected = self.subtotal + self.shipping + self.tax - self.discount
        if expected < ZERO:
            return self.total == ZERO
        return abs(self.total - expected) <= CENT


def shipping_for(lines: Sequence[PriceLine], flat_rate: Money) -> Money:
    """Free when there is nothing to ship or every line ships free."""
    if not lines or all(line.free_shipping for line in lines):
        return ZERO
    return money(flat_rate)


def compute_totals(
    lines: Sequence[PriceLine],
    discount: Money = ZERO,
    settings: Settings | None = None,
) -> Totals:
    settings = settings or Settings()
    subtotal = money(sum((line.line_total for line in lines), ZERO))
    shipping = shipping_for(lines, settings.flat_shipping)
    tax = money(subtotal * settings.tax_rate)
    discount = money(max(discount, ZERO))
    total = max(ZERO, money(subtotal + shipping + tax - discount))
    return Totals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        discount=discount,
        total=total,
    )


__all__ = ("PriceLine", "Totals", "shipping_for", "compute_totals")
