"""
Order service — persistence, listing and status transitions.

Each transition is a conditional UPDATE matching the status the caller
observed. If another request moved the order first, no row matches and the
caller gets CONFLICT; the stored status is never overwritten blindly.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog
from kungfu import Result, Ok, Error
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from storefront._types import to_cents, utcnow
from storefront.config import Settings
from storefront.db import (
    OrderEventTable,
    OrderItemTable,
    OrderTable,
    SessionFactory,
    guarded,
)
from storefront.errors import CommerceError, Errors
from storefront.inventory import InventoryLedger
from storefront.notify import EventKind, NotificationDispatcher, OrderEvent
from storefront.orders._machine import Operation, can_transition, is_allowed, sources
from storefront.orders._types import (
    Actor,
    Order,
    OrderDraft,
    OrderPage,
    OrderQuery,
    OrderStatus,
    PaymentMethod,
    Role,
    SortField,
    SortOrder,
)

logger = structlog.get_logger(__name__)

S = OrderStatus

_CONFLICT_CODES: dict[OrderStatus, str] = {
    S.PAID: "ORDER_NOT_PENDING",
    S.SHIPPED: "ORDER_NOT_PAID",
    S.DELIVERED: "ORDER_NOT_SHIPPED",
    S.CANCELLED: "ORDER_NOT_CANCELLABLE",
    S.RETURNED: "ORDER_NOT_DELIVERED",
    S.REFUNDED: "ORDER_NOT_RETURNED",
}

_EVENTS: dict[OrderStatus, EventKind] = {
    S.PAID: EventKind.ORDER_PAID,
    S.SHIPPED: EventKind.ORDER_SHIPPED,
    S.DELIVERED: EventKind.ORDER_DELIVERED,
    S.CANCELLED: EventKind.ORDER_CANCELLED,
    S.RETURNED: EventKind.ORDER_RETURNED,
    S.REFUNDED: EventKind.ORDER_REFUNDED,
}


def _required(target: OrderStatus) -> str:
    return " or ".join(s.name for s in OrderStatus if s in sources(target))


def _state_conflict(order: Order, target: OrderStatus) -> CommerceError:
    return Errors.conflict(
        _CONFLICT_CODES[target],
        f"Order must be in {_required(target)} status to become {target.name}. "
        f"Current status: {order.status.name}",
    )


def _recipients(order: Order) -> tuple[str, ...]:
    return (order.buyer_id, *sorted(order.seller_ids - {order.buyer_id}))


class OrderService:
    def __init__(
        self,
        session_factory: SessionFactory,
        ledger: InventoryLedger,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session_factory
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._settings = settings or Settings()

    def _emit(self, kind: EventKind, order: Order, **data: Any) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.emit(OrderEvent(
            kind,
            order.id,
            recipients=_recipients(order),
            data={"order_number": order.order_number, "status": order.status.value, **data},
        ))

    # ═══════════════════════════════════════════════════════════════════════════
    # Create
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("order.insert")
    async def insert_order(self, draft: OrderDraft) -> Result[Order, CommerceError]:
        """Persist a priced order. Items and totals are never updated afterwards."""
        now = utcnow()
        status = draft.initial_status
        totals = draft.totals
        row = OrderTable(
            id=uuid.uuid4().hex,
            order_number=draft.order_number,
            buyer_id=draft.buyer_id,
            subtotal_cents=to_cents(totals.subtotal),
            shipping_cents=to_cents(totals.shipping),
            tax_cents=to_cents(totals.tax),
            discount_cents=to_cents(totals.discount),
            total_cents=to_cents(totals.total),
            coupon_code=draft.coupon_code,
            shipping_address_id=draft.shipping_address_id,
            payment_method=draft.payment_method.value,
            payment_status=draft.payment_method == PaymentMethod.COD,
            status=status.value,
            notes=draft.notes,
            created_at=now,
            updated_at=now,
            paid_at=now if status == S.PAID else None,
            items=[
                OrderItemTable(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    product_image=item.product_image,
                    quantity=item.quantity,
                    unit_price_cents=to_cents(item.unit_price),
                    variant_id=item.variant_id,
                    variant_attributes=item.variant_attributes,
                    seller_id=item.seller_id,
                )
                for item in draft.items
            ],
            history=[
                OrderEventTable(
                    from_status=None,
                    to_status=status.value,
                    actor_id=draft.buyer_id,
                    note="Order placed",
                    created_at=now,
                )
            ],
        )
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            return Error(Errors.already_exists("Order", draft.order_number))

        order = Order.from_row(row)
        logger.info(
            "order_inserted",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            total=str(order.total),
        )
        return Ok(order)

    # ═══════════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════════

    async def _fetch(self, order_id: str) -> Order | None:
        async with self._session() as session:
            row = await session.get(OrderTable, order_id)
            return Order.from_row(row) if row is not None else None

    async def _fetch_by_provider(self, provider_order_id: str) -> Order | None:
        async with self._session() as session:
            row = (
                await session.execute(
                    select(OrderTable).where(OrderTable.provider_order_id == provider_order_id)
                )
            ).scalar_one_or_none()
            return Order.from_row(row) if row is not None else None

    async def _authorized(
        self, order_id: str, actor: Actor, operation: Operation
    ) -> Result[Order, CommerceError]:
        order = await self._fetch(order_id)
        if order is None:
            return Error(Errors.not_found("Order", order_id))
        if not is_allowed(operation, order, actor):
            return Error(Errors.unauthorized("Unauthorized access to this order"))
        return Ok(order)

    @guarded("order.get")
    async def get_order(self, order_id: str, actor: Actor) -> Result[Order, CommerceError]:
        return await self._authorized(order_id, actor, Operation.VIEW)

    @guarded("order.get_by_provider")
    async def get_by_provider_order(self, provider_order_id: str) -> Result[Order, CommerceError]:
        order = await self._fetch_by_provider(provider_order_id)
        if order is None:
            return Error(Errors.not_found("Order", provider_order_id))
        return Ok(order)

    @guarded("order.list")
    async def list_orders(self, query: OrderQuery) -> Result[OrderPage, CommerceError]:
        """
        One page of orders in the actor's scope.

        page is at least 1; limit defaults to ``settings.page_size`` and is
        clamped to ``[1, settings.max_page_size]``.
        """
        page = max(query.page, 1)
        limit = min(max(query.limit or self._settings.page_size, 1), self._settings.max_page_size)
        actor = query.actor

        stmt = select(OrderTable)
        if query.as_seller:
            stmt = stmt.where(OrderTable.items.any(OrderItemTable.seller_id == actor.user_id))
        elif actor.role not in (Role.ADMIN, Role.SYSTEM):
            stmt = stmt.where(OrderTable.buyer_id == actor.user_id)

        if query.status is not None:
            stmt = stmt.where(OrderTable.status == query.status.value)
        if query.date_from is not None:
            stmt = stmt.where(OrderTable.created_at >= query.date_from)
        if query.date_to is not None:
            stmt = stmt.where(OrderTable.created_at <= query.date_to)

        column = OrderTable.total_cents if query.sort == SortField.TOTAL else OrderTable.created_at
        ordering = column.asc() if query.order == SortOrder.ASC else column.desc()

        async with self._session() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            rows = (
                await session.execute(
                    stmt.order_by(ordering, OrderTable.id).offset((page - 1) * limit).limit(limit)
                )
            ).scalars()
            orders = [Order.from_row(r) for r in rows]

        return Ok(OrderPage(orders=orders, total=total, page=page, limit=limit))

    # ═══════════════════════════════════════════════════════════════════════════
    # Transitions
    # ═══════════════════════════════════════════════════════════════════════════

    async def _transition(
        self,
        order: Order,
        target: OrderStatus,
        actor: Actor,
        *,
        note: str | None = None,
        **values: Any,
    ) -> Result[Order, CommerceError]:
        if not can_transition(order.status, target):
            logger.info(
                "order_transition_rejected",
                order_id=order.id,
                status=order.status.value,
                target=target.value,
            )
            return Error(_state_conflict(order, target))

        now = utcnow()
        async with self._session() as session:
            result = await session.execute(
                update(OrderTable)
                .where(OrderTable.id == order.id, OrderTable.status == order.status.value)
                .values(status=target.value, updated_at=now, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                logger.warning("order_transition_lost_race", order_id=order.id, target=target.value)
                return Error(Errors.conflict(
                    _CONFLICT_CODES[target],
                    "Order status changed concurrently; reload and retry",
                ))
            session.add(OrderEventTable(
                order_id=order.id,
                from_status=order.status.value,
                to_status=target.value,
                actor_id=actor.user_id,
                note=note,
                created_at=now,
            ))
            await session.commit()

        updated = await self._fetch(order.id)
        if updated is None:
            return Error(Errors.not_found("Order", order.id))
        logger.info(
            "order_transitioned",
            order_id=order.id,
            from_status=order.status.value,
            to_status=target.value,
            actor_id=actor.user_id,
        )
        self._emit(_EVENTS[target], updated)
        return Ok(updated)

    async def _act(
        self,
        order_id: str,
        actor: Actor,
        operation: Operation,
        target: OrderStatus,
        *,
        note: str | None = None,
        **values: Any,
    ) -> Result[Order, CommerceError]:
        match await self._authorized(order_id, actor, operation):
            case Error(e):
                return Error(e)
            case Ok(order):
                return await self._transition(order, target, actor, note=note, **values)

    @guarded("order.pay")
    async def pay_order(
        self, order_id: str, actor: Actor, payment_id: str | None = None
    ) -> Result[Order, CommerceError]:
        """PENDING -> PAID. Fails ORDER_NOT_PENDING otherwise."""
        values: dict[str, Any] = {"payment_status": True, "paid_at": utcnow()}
        if payment_id is not None:
            values["payment_id"] = payment_id
        return await self._act(order_id, actor, Operation.PAY, S.PAID, note="Payment received", **values)

    @guarded("order.ship")
    async def ship_order(
        self,
        order_id: str,
        actor: Actor,
        tracking_number: str,
        carrier: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> Result[Order, CommerceError]:
        """PAID -> SHIPPED. Seller of an item or admin."""
        if not tracking_number.strip():
            return Error(Errors.validation("Tracking number is required", "TRACKING_NUMBER_REQUIRED"))
        return await self._act(
            order_id,
            actor,
            Operation.SHIP,
            S.SHIPPED,
            note=f"Shipped with tracking {tracking_number}",
            tracking_number=tracking_number.strip(),
            carrier=carrier,
            estimated_delivery=estimated_delivery,
            shipped_at=utcnow(),
        )

    @guarded("order.deliver")
    async def deliver_order(
        self, order_id: str, actor: Actor, notes: str | None = None
    ) -> Result[Order, CommerceError]:
        """SHIPPED -> DELIVERED; stamps delivered_at."""
        return await self._act(
            order_id, actor, Operation.DELIVER, S.DELIVERED, note=notes, delivered_at=utcnow()
        )

    @guarded("order.cancel")
    async def cancel_order(
        self, order_id: str, actor: Actor, reason: str | None = None
    ) -> Result[Order, CommerceError]:
        """
        PENDING|PAID -> CANCELLED.

        Stock goes back on hand only with ``settings.restock_on_cancel``; a
        reservation the order consumed at checkout is not held again.
        Coupon usage is never given back.
        """
        note = reason or f"Cancelled by {actor.role.value}"
        result = await self._act(
            order_id,
            actor,
            Operation.CANCEL,
            S.CANCELLED,
            note=note,
            cancel_reason=note,
            cancelled_at=utcnow(),
        )
        match result:
            case Ok(order) if self._settings.restock_on_cancel:
                await self._restock(order)
        return result

    async def _restock(self, order: Order) -> None:
        for item in order.items:
            match await self._ledger.restock(item.product_id, item.quantity):
                case Error(e):
                    logger.error(
                        "cancel_restock_failed",
                        order_id=order.id,
                        product_id=item.product_id,
                        code=e.code,
                    )

    @guarded("order.return")
    async def mark_returned(
        self, order_id: str, actor: Actor, note: str | None = None
    ) -> Result[Order, CommerceError]:
        """DELIVERED -> RETURNED, driven by the return workflow."""
        return await self._act(order_id, actor, Operation.RETURN, S.RETURNED, note=note)

    @guarded("order.refund")
    async def mark_refunded(
        self, order_id: str, actor: Actor, note: str | None = None
    ) -> Result[Order, CommerceError]:
        """RETURNED -> REFUNDED."""
        return await self._act(
            order_id, actor, Operation.REFUND, S.REFUNDED, note=note, payment_status=False
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Payment Provider Hooks
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("order.attach_provider")
    async def attach_provider_order(
        self, order_id: str, provider_order_id: str
    ) -> Result[Order, CommerceError]:
        """Remember the gateway's id for a PENDING order."""
        async with self._session() as session:
            result = await session.execute(
                update(OrderTable)
                .where(OrderTable.id == order_id, OrderTable.status == S.PENDING.value)
                .values(provider_order_id=provider_order_id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        order = await self._fetch(order_id)
        if order is None:
            return Error(Errors.not_found("Order", order_id))
        if result.rowcount == 0:
            return Error(_state_conflict(order, S.PAID))
        return Ok(order)

    @guarded("order.paid_by_provider")
    async def mark_paid_by_provider(
        self, provider_order_id: str, payment_id: str | None = None
    ) -> Result[Order, CommerceError]:
        """
        Webhook path: PENDING -> PAID for the order holding provider_order_id.

        Already-paid orders are returned unchanged so replays are harmless.
        """
        order = await self._fetch_by_provider(provider_order_id)
        if order is None:
            return Error(Errors.not_found("Order", provider_order_id))
        if order.status == S.PAID and order.payment_status:
            return Ok(order)
        values: dict[str, Any] = {"payment_status": True, "paid_at": utcnow()}
        if payment_id is not None:
            values["payment_id"] = payment_id
        return await self._transition(
            order, S.PAID, Actor.system(), note="Payment confirmed by provider", **values
        )

    def placed(self, order: Order) -> None:
        """Announce a freshly placed order."""
        self._emit(
            EventKind.ORDER_PLACED,
            order,
            total=str(order.total),
            payment_method=order.payment_method.value,
        )


__all__ = ("OrderService",)
