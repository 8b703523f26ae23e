"""
Orders — frozen line items, totals, and a forward-only status machine.

    await orders.ship_order(order_id, seller, tracking_number="1Z999")
    await orders.cancel_order(order_id, buyer, reason="Changed my mind")
"""

from storefront.orders._types import (
    OrderStatus,
    PaymentMethod,
    Role,
    Actor,
    OrderItem,
    StatusChange,
    Order,
    OrderDraft,
    SortField,
    SortOrder,
    OrderQuery,
    OrderPage,
)
from storefront.orders._machine import (
    TRANSITIONS,
    can_transition,
    sources,
    is_path,
    Relation,
    Operation,
    relations,
    is_allowed,
)
from storefront.orders._service import OrderService

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
    "TRANSITIONS",
    "can_transition",
    "sources",
    "is_path",
    "Relation",
    "Operation",
    "relations",
    "is_allowed",
    "OrderService",
)
