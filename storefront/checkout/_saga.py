"""
Placement saga — stock, coupon, order as one all-or-nothing unit.

    take stock (per product) ─► redeem coupon ─► insert order
         ▲ undo take           ▲ revert usage

A failure anywhere runs the recorded compensators in reverse. Undoing a take
restores on-hand stock and the reservation it consumed, and a coupon is only
counted for an order that exists.
"""

from __future__ import annotations

from typing import Any

from kungfu import LazyCoroResult

from storefront import saga as S
from storefront.coupons import CouponService
from storefront.errors import CommerceError
from storefront.inventory import InventoryLedger
from storefront.orders import OrderDraft, OrderService


def take_stock(
    ledger: InventoryLedger, product_id: str, quantity: int
) -> S.SagaStep[Any, CommerceError]:
    return S.step(
        LazyCoroResult(lambda: ledger.take_stock(product_id, quantity)),
        compensate=ledger.undo_take,
        name=f"stock:{product_id}",
    )


def redeem_coupon(coupons: CouponService, code: str) -> S.SagaStep[Any, CommerceError]:
    return S.step(
        LazyCoroResult(lambda: coupons.increment_usage_count(code)),
        compensate=lambda redeemed: coupons.revert_usage(redeemed),
        name=f"coupon:{code}",
    )


def insert_order(orders: OrderService, draft: OrderDraft) -> S.SagaStep[Any, CommerceError]:
    return S.step(
        LazyCoroResult(lambda: orders.insert_order(draft)),
        name=f"order:{draft.order_number}",
    )


def placement_steps(
    draft: OrderDraft,
    quantities: dict[str, int],
    *,
    ledger: InventoryLedger,
    coupons: CouponService,
    orders: OrderService,
) -> list[S.SagaStep[Any, CommerceError]]:
    """Steps in execution order; the last one yields the Order."""
    steps = [take_stock(ledger, pid, qty) for pid, qty in quantities.items()]
    if draft.coupon_code is not None:
        steps.append(redeem_coupon(coupons, draft.coupon_code))
    steps.append(insert_order(orders, draft))
    return steps


__all__ = ("take_stock", "redeem_coupon", "insert_order", "placement_steps")
