"""
Notifications — fire-and-forget order events.

A failing or slow notifier never blocks or rolls back the operation that
emitted the event; failures are logged and dropped.

    dispatcher = NotificationDispatcher(notifier)
    dispatcher.emit(OrderEvent(EventKind.ORDER_SHIPPED, order_id, ...))
    ...
    await dispatcher.drain()  # on shutdown / in tests
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


class EventKind(Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_PAID = "ORDER_PAID"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_RETURNED = "ORDER_RETURNED"
    ORDER_REFUNDED = "ORDER_REFUNDED"
    COUPON_CREATED = "COUPON_CREATED"


@dataclass(frozen=True, slots=True)
class OrderEvent:
    """
    Notification payload.

    subject_id: order id, or coupon code for COUPON_CREATED.
    recipients: user ids to notify (buyer, sellers).
    """

    kind: EventKind
    subject_id: str
    recipients: tuple[str, ...] = ()
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def notify(self, event: OrderEvent) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════════


class NotificationDispatcher:
    """Schedules notifier calls as background tasks."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self._tasks: set[asyncio.Task[None]] = set()

    def emit(self, event: OrderEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, event: OrderEvent) -> None:
        try:
            await self._notifier.notify(event)
        except Exception:
            logger.exception(
                "notification_failed",
                kind=event.kind.value,
                subject_id=event.subject_id,
            )

    async def drain(self) -> None:
        """Wait for every in-flight notification."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


# ═══════════════════════════════════════════════════════════════════════════════
# Notifiers
# ═══════════════════════════════════════════════════════════════════════════════


class LoggingNotifier:
    """Default notifier: writes events to the log."""

    async def notify(self, event: OrderEvent) -> None:
        logger.info(
            "notification",
            kind=event.kind.value,
            subject_id=event.subject_id,
            recipients=list(event.recipients),
        )


class RecordingNotifier:
    """Collects events in memory."""

    def __init__(self) -> None:
        self.events: list[OrderEvent] = []

    async def notify(self, event: OrderEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[EventKind]:
        return [e.kind for e in self.events]


__all__ = (
    "EventKind",
    "OrderEvent",
    "Notifier",
    "NotificationDispatcher",
    "LoggingNotifier",
    "RecordingNotifier",
)
