"""
Order state machine and authorization.

    PENDING ─► PAID ─► SHIPPED ─► DELIVERED ─► RETURNED ─► REFUNDED
       │         │
       └────┬────┘
            ▼
        CANCELLED

Statuses only move along these edges; nothing ever moves backwards.
"""

from __future__ import annotations

from enum import Enum

from storefront.orders._types import Actor, Order, OrderStatus, Role

S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.PAID, S.CANCELLED}),
    S.PAID: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.RETURNED}),
    S.RETURNED: frozenset({S.REFUNDED}),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
}

def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def sources(target: OrderStatus) -> frozenset[OrderStatus]:
    """Statuses an order may be in to move to target."""
    return frozenset(s for s, nxt in TRANSITIONS.items() if target in nxt)


def is_path(statuses: list[OrderStatus]) -> bool:
    """True if every consecutive pair is an allowed transition."""
    return all(can_transition(a, b) for a, b in zip(statuses, statuses[1:]))


# ═══════════════════════════════════════════════════════════════════════════════
# Authorization
# ═══════════════════════════════════════════════════════════════════════════════


class Relation(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class Operation(Enum):
    VIEW = "view"
    PAY = "pay"
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"
    RETURN = "return"
    REFUND = "refund"


R = Relation

# ADMIN and SYSTEM are allowed everything and are not listed.
PERMISSIONS: dict[Operation, frozenset[Relation]] = {
    Operation.VIEW: frozenset({R.BUYER, R.SELLER}),
    Operation.PAY: frozenset({R.BUYER}),
    Operation.SHIP: frozenset({R.SELLER}),
    Operation.DELIVER: frozenset({R.BUYER, R.SELLER}),
    Operation.CANCEL: frozenset({R.BUYER, R.SELLER}),
    Operation.RETURN: frozenset({R.SELLER}),
    Operation.REFUND: frozenset(),
}


def relations(order: Order, actor: Actor) -> frozenset[Relation]:
    """Every way actor is related to order (a seller may also be the buyer)."""
    found: set[Relation] = set()
    if actor.role == Role.ADMIN:
        found.add(R.ADMIN)
    if actor.role == Role.SYSTEM:
        found.add(R.SYSTEM)
    if actor.user_id == order.buyer_id:
        found.add(R.BUYER)
    if actor.user_id in order.seller_ids:
        found.add(R.SELLER)
    return frozenset(found)


def is_allowed(operation: Operation, order: Order, actor: Actor) -> bool:
    related = relations(order, actor)
    if related & {R.ADMIN, R.SYSTEM}:
        return True
    return bool(related & PERMISSIONS[operation])


__all__ = (
    "TRANSITIONS",
    "can_transition",
    "sources",
    "is_path",
    "Relation",
    "Operation",
    "PERMISSIONS",
    "relations",
    "is_allowed",
)
