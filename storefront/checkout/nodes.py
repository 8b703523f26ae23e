"""
Checkout graph — the quote shared by cart preview and order placement.

    RequestNode ─► CartLinesNode ─► SnapshotNode ─► TotalsNode ─► QuoteNode
                         │                             ▲
                         └──────────► CouponNode ──────┘

Nodes raise ``CheckoutRejected``; CheckoutService turns it into Error.
No ``from __future__ import annotations`` here: nodnod reads the hints.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog
from kungfu import Ok, Error

from storefront import graph as G
from storefront._types import Money, ZERO, utcnow
from storefront.cart import CartLineView, CartService, CartView
from storefront.collaborators import Product
from storefront.config import Settings
from storefront.coupons import CouponService, CouponVerdict, normalize_code
from storefront.errors import CommerceError, Errors
from storefront.orders import OrderItem
from storefront.pricing import PriceLine, Totals, compute_totals

logger = structlog.get_logger(__name__)


class CheckoutRejected(Exception):
    def __init__(self, error: CommerceError) -> None:
        super().__init__(error.message)
        self.error = error


@dataclass(frozen=True, slots=True)
class QuoteRequest:
    """
    strict: reject an unusable coupon instead of pricing without it.
    Set when the buyer typed the code at checkout.
    """

    buyer_id: str
    coupon_code: str | None = None
    strict: bool = False
    now: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class CheckoutPorts:
    carts: CartService
    coupons: CouponService
    settings: Settings


@dataclass(frozen=True, slots=True)
class CheckoutQuote:
    buyer_id: str
    items: tuple[OrderItem, ...]
    totals: Totals
    coupon_code: str | None = None
    coupon_message: str | None = None

    @property
    def quantities(self) -> dict[str, int]:
        """Units per product across variants, in first-seen order."""
        counts: dict[str, int] = {}
        for item in self.items:
            counts[item.product_id] = counts.get(item.product_id, 0) + item.quantity
        return counts


# ═══════════════════════════════════════════════════════════════════════════════
# Input
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class RequestNode:
    def __init__(self, data: QuoteRequest) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, request: QuoteRequest) -> "RequestNode":
        return cls(request)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class CartLinesNode:
    """Selected, available, in-stock lines. Nothing left is EMPTY_CART."""

    def __init__(self, cart: CartView, lines: tuple[CartLineView, ...]) -> None:
        self.cart = cart
        self.lines = lines

    @classmethod
    async def __compose__(cls, request: RequestNode, ports: CheckoutPorts) -> "CartLinesNode":
        match await ports.carts.get_cart(request.data.buyer_id):
            case Error(e):
                raise CheckoutRejected(e)
            case Ok(cart):
                pass

        lines = cart.purchasable
        if not lines:
            raise CheckoutRejected(Errors.empty_cart())
        return cls(cart, lines)


def _snapshot(line: CartLineView, product: Product) -> OrderItem:
    variant = product.variants.get(line.variant_id) if line.variant_id else None
    return OrderItem(
        product_id=line.product_id,
        product_name=product.name,
        quantity=line.quantity,
        unit_price=line.price,
        seller_id=product.seller_id,
        product_image=product.image,
        variant_id=line.variant_id,
        variant_attributes=dict(variant.attributes) if variant is not None else None,
    )


@G.node
class SnapshotNode:
    """Freeze each line into an OrderItem at the price it was added at."""

    def __init__(self, items: tuple[OrderItem, ...], price_lines: tuple[PriceLine, ...]) -> None:
        self.items = items
        self.price_lines = price_lines

    @classmethod
    def __compose__(cls, lines: CartLinesNode) -> "SnapshotNode":
        items = tuple(
            _snapshot(line, line.product) for line in lines.lines if line.product is not None
        )
        return cls(items, tuple(line.price_line() for line in lines.lines))


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class CouponNode:
    """
    Evaluate the requested code, falling back to the cart's stored one.

    code is set only when the coupon is usable.
    """

    def __init__(self, code: str | None, verdict: CouponVerdict | None) -> None:
        self.code = code
        self.verdict = verdict

    @property
    def discount(self) -> Money:
        if self.verdict is None or not self.verdict.valid:
            return ZERO
        return self.verdict.discount_amount

    @classmethod
    async def __compose__(
        cls, request: RequestNode, lines: CartLinesNode, ports: CheckoutPorts
    ) -> "CouponNode":
        raw = request.data.coupon_code or lines.cart.coupon_code
        if not raw:
            return cls(None, None)

        code = normalize_code(raw)
        coupon_lines = [line.coupon_line() for line in lines.lines]
        match await ports.coupons.validate_coupon(code, coupon_lines, request.data.now):
            case Error(e):
                raise CheckoutRejected(e)
            case Ok(verdict):
                pass

        if verdict.valid:
            return cls(code, verdict)

        logger.info(
            "coupon_rejected_at_checkout",
            buyer_id=request.data.buyer_id,
            code=code,
            reason=verdict.code,
        )
        if request.data.strict:
            raise CheckoutRejected(
                Errors.validation(verdict.message or "Invalid coupon", verdict.code or "INVALID_COUPON")
            )
        return cls(None, verdict)


# ═══════════════════════════════════════════════════════════════════════════════
# Totals
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class TotalsNode:
    def __init__(self, data: Totals) -> None:
        self.data = data

    @classmethod
    def __compose__(
        cls, snapshot: SnapshotNode, coupon: CouponNode, ports: CheckoutPorts
    ) -> "TotalsNode":
        return cls(compute_totals(snapshot.price_lines, coupon.discount, ports.settings))


@G.node
class QuoteNode:
    """Terminal node of the checkout graph."""

    def __init__(self, data: CheckoutQuote) -> None:
        self.data = data

    @classmethod
    def __compose__(
        cls,
        request: RequestNode,
        snapshot: SnapshotNode,
        coupon: CouponNode,
        totals: TotalsNode,
    ) -> "QuoteNode":
        verdict = coupon.verdict
        return cls(CheckoutQuote(
            buyer_id=request.data.buyer_id,
            items=snapshot.items,
            totals=totals.data,
            coupon_code=coupon.code,
            coupon_message=verdict.message if verdict is not None and not verdict.valid else None,
        ))


__all__ = (
    "CheckoutRejected",
    "QuoteRequest",
    "CheckoutPorts",
    "CheckoutQuote",
    "RequestNode",
    "CartLinesNode",
    "SnapshotNode",
    "CouponNode",
    "TotalsNode",
    "QuoteNode",
)
