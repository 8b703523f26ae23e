"""
Checkout — cart quote graph and the order placement saga.

    quote = await checkout.quote(buyer_id)
    order = await checkout.place_order(PlaceOrder(buyer_id, address_id, PaymentMethod.COD))
"""

from storefront.checkout.nodes import (
    CheckoutRejected,
    QuoteRequest,
    CheckoutPorts,
    CheckoutQuote,
    RequestNode,
    CartLinesNode,
    SnapshotNode,
    CouponNode,
    TotalsNode,
    QuoteNode,
)
from storefront.checkout._saga import placement_steps
from storefront.checkout._service import PlaceOrder, new_order_number, CheckoutService

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
    "placement_steps",
    "PlaceOrder",
    "new_order_number",
    "CheckoutService",
)
