"""
Order types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from storefront._types import Money, from_cents, money
from storefront.db import OrderEventTable, OrderItemTable, OrderTable
from storefront.pricing import Totals


class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "cod"
    PAYPAL = "paypal"


class Role(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class Actor:
    """Caller identity. ``role`` is the account role, not the relation to an order."""

    user_id: str
    role: Role = Role.BUYER

    @classmethod
    def system(cls) -> Actor:
        return cls("system", Role.SYSTEM)


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderItem:
    """Line frozen at checkout."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: Money
    seller_id: str
    product_image: str | None = None
    variant_id: str | None = None
    variant_attributes: dict[str, Any] | None = None

    @property
    def line_total(self) -> Money:
        return money(self.unit_price * self.quantity)

    @classmethod
    def from_row(cls, row: OrderItemTable) -> OrderItem:
        return cls(
            product_id=row.product_id,
            product_name=row.product_name,
            quantity=row.quantity,
            unit_price=from_cents(row.unit_price_cents),
            seller_id=row.seller_id,
            product_image=row.product_image,
            variant_id=row.variant_id,
            variant_attributes=row.variant_attributes,
        )


@dataclass(frozen=True, slots=True)
class StatusChange:
    from_status: OrderStatus | None
    to_status: OrderStatus
    actor_id: str | None
    note: str | None
    at: datetime

    @classmethod
    def from_row(cls, row: OrderEventTable) -> StatusChange:
        return cls(
            from_status=OrderStatus(row.from_status) if row.from_status else None,
            to_status=OrderStatus(row.to_status),
            actor_id=row.actor_id,
            note=row.note,
            at=row.created_at,
        )


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    buyer_id: str
    items: tuple[OrderItem, ...]
    totals: Totals
    shipping_address_id: str
    payment_method: PaymentMethod
    payment_status: bool
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    coupon_code: str | None = None
    notes: str | None = None
    cancel_reason: str | None = None
    provider_order_id: str | None = None
    payment_id: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    history: tuple[StatusChange, ...] = ()

    @property
    def seller_ids(self) -> frozenset[str]:
        return frozenset(item.seller_id for item in self.items)

    @property
    def total(self) -> Money:
        return self.totals.total

    @classmethod
    def from_row(cls, row: OrderTable) -> Order:
        return cls(
            id=row.id,
            order_number=row.order_number,
            buyer_id=row.buyer_id,
            items=tuple(OrderItem.from_row(i) for i in row.items),
            totals=Totals(
                subtotal=from_cents(row.subtotal_cents),
                shipping=from_cents(row.shipping_cents),
                tax=from_cents(row.tax_cents),
                discount=from_cents(row.discount_cents),
                total=from_cents(row.total_cents),
            ),
            shipping_address_id=row.shipping_address_id,
            payment_method=PaymentMethod(row.payment_method),
            payment_status=row.payment_status,
            status=OrderStatus(row.status),
            created_at=row.created_at,
            updated_at=row.updated_at,
            coupon_code=row.coupon_code,
            notes=row.notes,
            cancel_reason=row.cancel_reason,
            provider_order_id=row.provider_order_id,
            payment_id=row.payment_id,
            tracking_number=row.tracking_number,
            carrier=row.carrier,
            estimated_delivery=row.estimated_delivery,
            paid_at=row.paid_at,
            shipped_at=row.shipped_at,
            delivered_at=row.delivered_at,
            cancelled_at=row.cancelled_at,
            history=tuple(StatusChange.from_row(e) for e in row.history),
        )


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """Everything checkout decided; the order service only persists it."""

    order_number: str
    buyer_id: str
    items: tuple[OrderItem, ...]
    totals: Totals
    shipping_address_id: str
    payment_method: PaymentMethod
    coupon_code: str | None = None
    notes: str | None = None

    @property
    def initial_status(self) -> OrderStatus:
        """COD is treated as pre-authorized and skips PENDING."""
        return OrderStatus.PAID if self.payment_method == PaymentMethod.COD else OrderStatus.PENDING


# ═══════════════════════════════════════════════════════════════════════════════
# Listing
# ═══════════════════════════════════════════════════════════════════════════════


class SortField(Enum):
    CREATED_AT = "created_at"
    TOTAL = "total"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class OrderQuery:
    """
    Listing filter.

    With ``as_seller`` the actor sees orders containing any of their items.
    Otherwise admins and the system see everything and anyone else sees
    their own purchases; a SELLER role alone never selects the seller view.
    """

    actor: Actor
    status: OrderStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    sort: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int | None = None
    as_seller: bool = False


@dataclass(frozen=True, slots=True)
class OrderPage:
    orders: list[Order] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


__all__ = (
    "OrderStatus",
    "PaymentMethod",
    "Role",
    "Actor",
    "OrderItem",
    "StatusChange",
    "Order",
    "OrderDraft",
    "SortField",
    "SortOrder",
    "OrderQuery",
    "OrderPage",
)
