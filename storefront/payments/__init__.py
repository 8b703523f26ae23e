"""
Payments — gateway-backed capture and refunds, plus provider webhooks.
"""

from storefront.payments._gateway import (
    GatewayStatus,
    PaymentSession,
    GatewayOutcome,
    PaymentGateway,
    MemoryGateway,
)
from storefront.payments._service import (
    PaymentEventKind,
    PaymentEvent,
    PaymentTransaction,
    PaymentService,
)

__all__ = (
    "GatewayStatus",
    "PaymentSession",
    "GatewayOutcome",
    "PaymentGateway",
    "MemoryGateway",
    "PaymentEventKind",
    "PaymentEvent",
    "PaymentTransaction",
    "PaymentService",
)
