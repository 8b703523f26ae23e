"""
Cart types.

Persisted lines hold only what the buyer chose; everything else on a
``CartLineView`` is joined from the catalog and ledger at read time.
"""

from __future__ import annotations

from dataclasses import dataclass

from storefront._types import Money, money
from storefront.collaborators import Product
from storefront.coupons import CouponLine
from storefront.pricing import PriceLine


@dataclass(frozen=True, slots=True)
class AddToCart:
    product_id: str
    quantity: int = 1
    variant_id: str | None = None


@dataclass(frozen=True, slots=True)
class CartLineView:
    product_id: str
    variant_id: str | None
    quantity: int
    price: Money
    selected: bool
    product_name: str
    product_image: str
    available: bool
    in_stock: bool
    current_price: Money
    product: Product | None

    @property
    def purchasable(self) -> bool:
        """Selected, still in the catalog and in stock: a checkout candidate."""
        return self.selected and self.available and self.in_stock

    @property
    def line_total(self) -> Money:
        return money(self.price * self.quantity)

    def price_line(self) -> PriceLine:
        return PriceLine(
            unit_price=self.price,
            quantity=self.quantity,
            free_shipping=self.product.free_shipping if self.product else False,
        )

    def coupon_line(self) -> CouponLine:
        return CouponLine(
            product_id=self.product_id,
            category_id=self.product.category_id if self.product else None,
            amount=self.line_total,
        )


@dataclass(frozen=True, slots=True)
class CartView:
    user_id: str
    lines: tuple[CartLineView, ...]
    coupon_code: str | None
    subtotal: Money

    @property
    def purchasable(self) -> tuple[CartLineView, ...]:
        return tuple(line for line in self.lines if line.purchasable)


__all__ = ("AddToCart", "CartLineView", "CartView")
