"""
Checkout service — quote a cart, place an order.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

import structlog
from kungfu import Result, Ok, Error

from storefront import graph as G
from storefront import saga as S
from storefront.cart import CartService
from storefront.checkout._saga import placement_steps
from storefront.checkout.nodes import (
    CheckoutPorts,
    CheckoutQuote,
    CheckoutRejected,
    QuoteNode,
    QuoteRequest,
)
from storefront.collaborators import AddressBook
from storefront.config import Settings
from storefront.coupons import CouponService
from storefront.errors import CommerceError, Errors
from storefront.inventory import InventoryLedger
from storefront.orders import Order, OrderDraft, OrderService, PaymentMethod

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PlaceOrder:
    buyer_id: str
    shipping_address_id: str
    payment_method: PaymentMethod
    coupon_code: str | None = None
    notes: str | None = None


def new_order_number() -> str:
    """
    ORD-<epoch millis>-<6 hex>.

    Not retried: a collision fails the insert with ALREADY_EXISTS and the
    placement saga rolls back.
    """
    millis = time.time_ns() // 1_000_000
    return f"ORD-{millis}-{secrets.token_hex(3).upper()}"


class CheckoutService:
    def __init__(
        self,
        *,
        carts: CartService,
        coupons: CouponService,
        orders: OrderService,
        ledger: InventoryLedger,
        addresses: AddressBook,
        settings: Settings | None = None,
    ) -> None:
        self._carts = carts
        self._coupons = coupons
        self._orders = orders
        self._ledger = ledger
        self._addresses = addresses
        self._ports = CheckoutPorts(carts=carts, coupons=coupons, settings=settings or Settings())
        self._quote_graph = G.graph(QuoteNode)

    async def _quote(self, request: QuoteRequest) -> Result[CheckoutQuote, CommerceError]:
        try:
            node = await self._quote_graph(request, self._ports)
            return Ok(node.data)
        except CheckoutRejected as e:
            return Error(e.error)

    async def quote(
        self, buyer_id: str, coupon_code: str | None = None
    ) -> Result[CheckoutQuote, CommerceError]:
        """
        Price the buyer's cart without side effects.

        An unusable coupon prices at zero discount and reports why in
        ``coupon_message``.
        """
        return await self._quote(QuoteRequest(buyer_id=buyer_id, coupon_code=coupon_code))

    async def place_order(self, request: PlaceOrder) -> Result[Order, CommerceError]:
        """
        Turn the buyer's selected cart lines into an order.

        A coupon typed at checkout must be usable; one remembered on the cart
        is dropped silently if it no longer applies.
        """
        log = logger.bind(buyer_id=request.buyer_id)

        address = await self._addresses.get_address(request.shipping_address_id)
        if address is None or address.user_id != request.buyer_id:
            return Error(Errors.not_found("Address", request.shipping_address_id))

        match await self._quote(QuoteRequest(
            buyer_id=request.buyer_id,
            coupon_code=request.coupon_code,
            strict=request.coupon_code is not None,
        )):
            case Error(e):
                log.info("checkout_rejected", code=e.code)
                return Error(e)
            case Ok(quote):
                pass

        draft = OrderDraft(
            order_number=new_order_number(),
            buyer_id=request.buyer_id,
            items=quote.items,
            totals=quote.totals,
            shipping_address_id=request.shipping_address_id,
            payment_method=request.payment_method,
            coupon_code=quote.coupon_code,
            notes=request.notes,
        )
        steps = placement_steps(
            draft,
            quote.quantities,
            ledger=self._ledger,
            coupons=self._coupons,
            orders=self._orders,
        )

        match await S.run_sequence(steps):
            case Error(failure):
                log.warning(
                    "checkout_rolled_back",
                    code=failure.error.code,
                    step_failed=failure.failed_step,
                    compensators_run=failure.compensators_run,
                    rollback_complete=failure.rollback_complete,
                )
                return Error(failure.error)
            case Ok(done):
                order: Order = done.value[-1]

        match await self._carts.remove_ordered_items(
            request.buyer_id, [item.product_id for item in order.items]
        ):
            case Error(e):
                log.error("cart_cleanup_failed", order_id=order.id, code=e.code)

        self._orders.placed(order)
        log.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            total=str(order.total),
            status=order.status.value,
            coupon_code=order.coupon_code,
        )
        return Ok(order)


__all__ = ("PlaceOrder", "new_order_number", "CheckoutService")
