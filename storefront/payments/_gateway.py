"""
Payment gateway boundary.

Gateways raise on transport failures; the payment service turns those into
EXTERNAL_FAILURE. Business outcomes (declined, refunded) come back as
values.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Protocol

from storefront._types import Money
from storefront.orders import Order


class GatewayStatus(Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


@dataclass(frozen=True, slots=True)
class PaymentSession:
    """Where to send the buyer to approve, and the provider's id for the payment."""

    approval_url: str
    provider_order_id: str


@dataclass(frozen=True, slots=True)
class GatewayOutcome:
    status: GatewayStatus
    reference: str | None = None


class PaymentGateway(Protocol):
    async def create_payment(
        self, order: Order, return_url: str, cancel_url: str
    ) -> PaymentSession: ...

    async def capture_payment(self, provider_order_id: str) -> GatewayOutcome: ...

    async def refund_payment(
        self, payment_id: str, amount: Money | None = None, reason: str | None = None
    ) -> GatewayOutcome: ...


# ═══════════════════════════════════════════════════════════════════════════════
# In-memory gateway
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class MemoryGateway:
    """
    Scriptable gateway for tests and local runs.

    declined: provider ids whose capture reports FAILED.
    refused: payment ids whose refund reports FAILED.
    delay: seconds every call sleeps before answering.
    fail_with: exception raised by the next call, then cleared.
    """

    declined: set[str] = field(default_factory=set)
    refused: set[str] = field(default_factory=set)
    delay: float = 0.0
    fail_with: Exception | None = None
    captures: list[str] = field(default_factory=list)
    refunds: list[tuple[str, Decimal | None, str | None]] = field(default_factory=list)
    sessions: dict[str, str] = field(default_factory=dict)

    async def _call(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    async def create_payment(
        self, order: Order, return_url: str, cancel_url: str
    ) -> PaymentSession:
        await self._call()
        provider_order_id = f"PAY-{uuid.uuid4().hex[:12].upper()}"
        self.sessions[provider_order_id] = order.id
        return PaymentSession(
            approval_url=f"https://payments.invalid/approve?token={provider_order_id}",
            provider_order_id=provider_order_id,
        )

    async def capture_payment(self, provider_order_id: str) -> GatewayOutcome:
        await self._call()
        self.captures.append(provider_order_id)
        if provider_order_id in self.declined:
            return GatewayOutcome(GatewayStatus.FAILED)
        return GatewayOutcome(GatewayStatus.COMPLETED, reference=f"CAP-{provider_order_id}")

    async def refund_payment(
        self, payment_id: str, amount: Money | None = None, reason: str | None = None
    ) -> GatewayOutcome:
        await self._call()
        self.refunds.append((payment_id, amount, reason))
        if payment_id in self.refused:
            return GatewayOutcome(GatewayStatus.FAILED)
        return GatewayOutcome(GatewayStatus.REFUNDED, reference=f"REF-{payment_id}")


__all__ = (
    "GatewayStatus",
    "PaymentSession",
    "GatewayOutcome",
    "PaymentGateway",
    "MemoryGateway",
)
