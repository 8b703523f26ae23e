"""
Payment service — drives order payment state from gateway outcomes.

Capture and refund run through idempotent executors keyed by
``capture:<provider_order_id>`` and ``refund:<order_number>``. A retried
request replays the recorded gateway outcome; a caller arriving while the
first call is still out waits for it. A declined refund is forgotten so an
admin can try again.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from combinators import flow, lift as L
from kungfu import LazyCoroResult, Result, Ok, Error
from sqlalchemy import select

from storefront import idempotency as I
from storefront._types import Money, from_cents, money, to_cents, utcnow
from storefront.config import Settings
from storefront.db import PaymentTransactionTable, SessionFactory, guarded
from storefront.errors import CommerceError, ErrorKind, Errors
from storefront.orders import (
    Actor,
    Operation,
    Order,
    OrderService,
    OrderStatus,
    PaymentMethod,
    is_allowed,
)
from storefront.payments._gateway import (
    GatewayOutcome,
    GatewayStatus,
    PaymentGateway,
    PaymentSession,
)

logger = structlog.get_logger(__name__)


class PaymentEventKind(Enum):
    COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
    FAILED = "PAYMENT.CAPTURE.DENIED"
    REFUNDED = "PAYMENT.CAPTURE.REFUNDED"


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    """Provider notification, already authenticated by the caller."""

    kind: PaymentEventKind
    provider_order_id: str
    payment_id: str | None = None


@dataclass(frozen=True, slots=True)
class RefundRequest:
    order_number: str
    payment_id: str
    amount: Money
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentTransaction:
    order_id: str
    kind: str
    status: str
    amount: Money
    provider_ref: str | None
    reason: str | None
    created_at: datetime


def _gateway_error(e: Exception) -> CommerceError:
    if isinstance(e, TimeoutError):
        return Errors.external("PAYMENT_GATEWAY_TIMEOUT", "Payment provider did not respond in time")
    return Errors.external("PAYMENT_GATEWAY_ERROR", "Payment provider request failed")


def _outcome_json(outcome: GatewayOutcome) -> dict[str, Any]:
    return {"status": outcome.status.value, "reference": outcome.reference}


def _from_idempotency(err: I.IdempotencyError[CommerceError]) -> CommerceError:
    if isinstance(err.original_error, CommerceError):
        return err.original_error
    if err.kind == I.IdempotencyErrorKind.CONFLICT:
        return Errors.conflict("PAYMENT_IN_PROGRESS", "A payment request for this order is already running")
    return Errors.external("PAYMENT_GATEWAY_ERROR", err.message)


class PaymentService:
    def __init__(
        self,
        session_factory: SessionFactory,
        gateway: PaymentGateway,
        orders: OrderService,
        settings: Settings | None = None,
        store: I.StoreAny | None = None,
    ) -> None:
        self._session = session_factory
        self._gateway = gateway
        self._orders = orders
        self._settings = settings or Settings()
        store = store if store is not None else I.SQLAlchemyStore(session_factory)
        policy = (
            I.Policy()
            .with_ttl(delta=self._settings.payment_idempotency_ttl)
            .with_on_pending(I.WAIT)
            .with_wait_timeout(seconds=self._settings.gateway_timeout_seconds * 2)
        )
        self._captures: I.IdempotentExecutor[Order, dict[str, Any], CommerceError] = (
            I.idempotent(lambda order: self._capture(order.provider_order_id))
            .key(lambda order: f"capture:{order.provider_order_id}")
            .store(store)
            .policy(policy)
            .build()
        )
        self._refunds: I.IdempotentExecutor[RefundRequest, dict[str, Any], CommerceError] = (
            I.idempotent(
                lambda req: self._refund(req.payment_id, req.amount, req.reason)
            )
            .key(lambda req: f"refund:{req.order_number}")
            .store(store)
            .policy(policy)
            .build()
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Gateway calls
    # ═══════════════════════════════════════════════════════════════════════════

    def _call[T](self, fn: Callable[[], Awaitable[T]]) -> LazyCoroResult[T, CommerceError]:
        """Gateway call bounded by the configured timeout."""
        timeout = self._settings.gateway_timeout_seconds
        return L.catching_async(
            lambda: asyncio.wait_for(fn(), timeout),
            on_error=_gateway_error,
        )

    def _capture(self, provider_order_id: str) -> LazyCoroResult[dict[str, Any], CommerceError]:
        return (
            flow(self._call(lambda: self._gateway.capture_payment(provider_order_id)))
            .map(_outcome_json)
            .compile()
        )

    def _refund(
        self, payment_id: str, amount: Money, reason: str | None
    ) -> LazyCoroResult[dict[str, Any], CommerceError]:
        return (
            flow(self._call(lambda: self._gateway.refund_payment(payment_id, amount, reason)))
            .map(_outcome_json)
            .compile()
        )

    async def _record(
        self,
        order: Order,
        kind: str,
        status: str,
        amount: Money,
        provider_ref: str | None = None,
        reason: str | None = None,
    ) -> None:
        async with self._session() as session:
            session.add(PaymentTransactionTable(
                order_id=order.id,
                kind=kind,
                status=status,
                amount_cents=to_cents(amount),
                provider_ref=provider_ref,
                reason=reason,
                created_at=utcnow(),
            ))
            await session.commit()

    async def _payable(self, order_id: str, actor: Actor) -> Result[Order, CommerceError]:
        match await self._orders.get_order(order_id, actor):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if not is_allowed(Operation.PAY, order, actor):
            return Error(Errors.unauthorized("Only the buyer can pay for this order"))
        if order.payment_method != PaymentMethod.PAYPAL:
            return Error(Errors.validation(
                "Order is not paid through the payment provider", "PAYMENT_METHOD_MISMATCH"
            ))
        return Ok(order)

    # ═══════════════════════════════════════════════════════════════════════════
    # Buyer flow
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("payment.start")
    async def start_payment(
        self, order_id: str, actor: Actor, return_url: str, cancel_url: str
    ) -> Result[PaymentSession, CommerceError]:
        match await self._payable(order_id, actor):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if order.payment_status:
            return Error(Errors.conflict("ORDER_ALREADY_PAID", "Order has already been paid"))
        if order.status != OrderStatus.PENDING:
            return Error(Errors.conflict(
                "ORDER_NOT_PENDING",
                f"Order must be in PENDING status to pay. Current status: {order.status.name}",
            ))

        match await self._call(lambda: self._gateway.create_payment(order, return_url, cancel_url)):
            case Error(e):
                logger.error("payment_start_failed", order_id=order.id, code=e.code)
                return Error(e)
            case Ok(payment):
                pass

        match await self._orders.attach_provider_order(order.id, payment.provider_order_id):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        await self._record(order, "create", "created", order.total, payment.provider_order_id)
        logger.info(
            "payment_started",
            order_id=order.id,
            provider_order_id=payment.provider_order_id,
        )
        return Ok(payment)

    @guarded("payment.capture")
    async def capture_payment(self, order_id: str, actor: Actor) -> Result[Order, CommerceError]:
        """
        Capture an approved payment and mark the order PAID.

        Safe to retry: a second call replays the first gateway outcome.
        """
        match await self._payable(order_id, actor):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if order.status == OrderStatus.PAID and order.payment_status:
            return Ok(order)
        if order.provider_order_id is None:
            return Error(Errors.validation("Payment has not been started", "PAYMENT_NOT_STARTED"))

        provider_order_id = order.provider_order_id
        match await self._captures.run(order):
            case Error(err):
                error = _from_idempotency(err)
                logger.error("payment_capture_failed", order_id=order.id, code=error.code)
                return Error(error)
            case Ok(done):
                outcome = done.value
                replayed = done.from_cache

        if outcome["status"] != GatewayStatus.COMPLETED.value:
            if not replayed:
                await self._record(order, "capture", "failed", order.total, provider_order_id)
            logger.warning("payment_declined", order_id=order.id, provider_order_id=provider_order_id)
            return Error(Errors.external("PAYMENT_FAILED", "Payment failed"))

        if not replayed:
            await self._record(order, "capture", "completed", order.total, outcome["reference"])

        match await self._orders.pay_order(order.id, actor, payment_id=outcome["reference"]):
            case Ok(paid):
                return Ok(paid)
            case Error(e) if e.kind == ErrorKind.CONFLICT:
                # The provider webhook may have marked it paid first.
                return await self._orders.get_order(order.id, actor)
            case Error(e):
                return Error(e)

    # ═══════════════════════════════════════════════════════════════════════════
    # Refunds
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("payment.refund")
    async def refund_order(
        self,
        order_id: str,
        actor: Actor,
        amount: Money | None = None,
        reason: str | None = None,
    ) -> Result[Order, CommerceError]:
        """
        Refund a RETURNED order and mark it REFUNDED.

        Provider-paid orders are refunded through the gateway; cash on
        delivery refunds are only recorded.
        """
        match await self._orders.get_order(order_id, actor):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if not is_allowed(Operation.REFUND, order, actor):
            return Error(Errors.unauthorized("Admin permission required"))
        if order.status != OrderStatus.RETURNED:
            return Error(Errors.conflict(
                "ORDER_NOT_RETURNED",
                f"Order must be in RETURNED status to refund. Current status: {order.status.name}",
            ))

        refund = money(amount) if amount is not None else order.total
        if refund <= 0 or refund > order.total:
            return Error(Errors.validation("Refund amount must be between 0 and the order total", "INVALID_AMOUNT"))

        reference: str | None = None
        if order.payment_method == PaymentMethod.PAYPAL:
            payment_id = order.payment_id or order.provider_order_id
            if payment_id is None:
                return Error(Errors.validation("Order has no captured payment", "PAYMENT_NOT_CAPTURED"))

            request = RefundRequest(order.order_number, payment_id, refund, reason)
            match await self._refunds.run(request):
                case Error(err):
                    error = _from_idempotency(err)
                    logger.error("refund_failed", order_id=order.id, code=error.code)
                    return Error(error)
                case Ok(done):
                    outcome = done.value

            if outcome["status"] == GatewayStatus.FAILED.value:
                await self._refunds.invalidate(request)
                await self._record(order, "refund", "failed", refund, reason=reason)
                return Error(Errors.external("REFUND_FAILED", "Refund failed"))
            reference = outcome["reference"]

        await self._record(order, "refund", "completed", refund, reference, reason)
        logger.info("order_refunded", order_id=order.id, amount=str(refund))
        return await self._orders.mark_refunded(order.id, actor, note=reason)

    # ═══════════════════════════════════════════════════════════════════════════
    # Webhook
    # ═══════════════════════════════════════════════════════════════════════════

    async def handle_event(self, event: PaymentEvent) -> None:
        """
        Apply a provider notification.

        Never raises: the provider must always get an acknowledgement, so
        every failure is logged and dropped.
        """
        log = logger.bind(kind=event.kind.value, provider_order_id=event.provider_order_id)
        try:
            match event.kind:
                case PaymentEventKind.COMPLETED:
                    result = await self._orders.mark_paid_by_provider(
                        event.provider_order_id, event.payment_id
                    )
                case PaymentEventKind.REFUNDED:
                    result = await self._refunded_by_provider(event.provider_order_id)
                case PaymentEventKind.FAILED:
                    log.warning("payment_failed_notification")
                    return
        except Exception:
            log.exception("payment_event_crashed")
            return

        match result:
            case Ok(order):
                log.info("payment_event_applied", order_id=order.id, status=order.status.value)
            case Error(e):
                log.warning("payment_event_rejected", code=e.code)

    async def _refunded_by_provider(self, provider_order_id: str) -> Result[Order, CommerceError]:
        match await self._orders.get_by_provider_order(provider_order_id):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if order.status == OrderStatus.REFUNDED:
            return Ok(order)
        return await self._orders.mark_refunded(
            order.id, Actor.system(), note="Refunded by payment provider"
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Audit
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("payment.transactions")
    async def transactions(self, order_id: str) -> Result[list[PaymentTransaction], CommerceError]:
        async with self._session() as session:
            rows = (
                await session.execute(
                    select(PaymentTransactionTable)
                    .where(PaymentTransactionTable.order_id == order_id)
                    .order_by(PaymentTransactionTable.id)
                )
            ).scalars()
            return Ok([
                PaymentTransaction(
                    order_id=row.order_id,
                    kind=row.kind,
                    status=row.status,
                    amount=from_cents(row.amount_cents),
                    provider_ref=row.provider_ref,
                    reason=row.reason,
                    created_at=row.created_at,
                )
                for row in rows
            ])


__all__ = (
    "PaymentEventKind",
    "PaymentEvent",
    "PaymentTransaction",
    "PaymentService",
)
