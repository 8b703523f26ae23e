"""
FastAPI application.

Every handler converts the request with ``to_domain``, calls one service,
and unwraps the Result: Ok becomes ``{message, result}``, Error becomes
``{message, code}`` with the status for its kind.

No ``from __future__ import annotations`` here: FastAPI resolves the
``Depends`` aliases defined inside ``create_app`` at definition time.
"""

from typing import Annotated, Any

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from kungfu import Result, Ok, Error
from pydantic import ValidationError

from storefront.api._auth import Authenticator
from storefront.api._schemas import (
    CancelIn,
    CouponVerdictOut,
    DeliverIn,
    Envelope,
    ListOrdersIn,
    OrderOut,
    OrderPageOut,
    PaymentSessionOut,
    PlaceOrderIn,
    QuoteOut,
    SellerStockIn,
    SellerStockPageOut,
    ShipIn,
    StartPaymentIn,
    ValidateCouponIn,
    WebhookIn,
)
from storefront.app import Storefront
from storefront.errors import CommerceError, Errors
from storefront.orders import Actor, Role

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    @classmethod
    def from_domain(cls, error: CommerceError) -> "ApiError":
        return cls(error.http_status, error.code, error.message)


def unwrap[T](result: Result[T, CommerceError]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise ApiError.from_domain(e)


def create_app(storefront: Storefront, authenticator: Authenticator) -> FastAPI:
    app = FastAPI(title="Storefront API")
    bearer = HTTPBearer(auto_error=False)

    # ═══════════════════════════════════════════════════════════════════════════
    # Errors
    # ═══════════════════════════════════════════════════════════════════════════

    @app.exception_handler(ApiError)
    async def api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code)
        return JSONResponse(status_code=exc.status, content={"message": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid {field}: {first.get('msg', 'bad value')}" if field else "Invalid request"
        return JSONResponse(status_code=400, content={"message": message, "code": "VALIDATION_ERROR"})

    # ═══════════════════════════════════════════════════════════════════════════
    # Auth
    # ═══════════════════════════════════════════════════════════════════════════

    async def current_actor(
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    ) -> Actor:
        if credentials is None:
            raise ApiError(401, "UNAUTHENTICATED", "Authentication required")
        actor = await authenticator.authenticate(credentials.credentials)
        if actor is None:
            raise ApiError(401, "INVALID_TOKEN", "Invalid or expired token")
        return actor

    CurrentActor = Annotated[Actor, Depends(current_actor)]

    def envelope(message: str, result: Any = None) -> Envelope:
        return Envelope(message=message, result=result)

    # ═══════════════════════════════════════════════════════════════════════════
    # Orders
    # ═══════════════════════════════════════════════════════════════════════════

    @app.post("/orders", status_code=201)
    async def create_order(body: PlaceOrderIn, actor: CurrentActor) -> Envelope:
        order = unwrap(await storefront.checkout.place_order(body.to_domain(actor)))
        return envelope("Order created successfully", OrderOut.from_domain(order))

    @app.get("/orders")
    async def list_orders(query: Annotated[ListOrdersIn, Query()], actor: CurrentActor) -> Envelope:
        page = unwrap(await storefront.orders.list_orders(query.to_domain(actor)))
        return envelope("Get orders successfully", OrderPageOut.from_domain(page))

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, actor: CurrentActor) -> Envelope:
        order = unwrap(await storefront.orders.get_order(order_id, actor))
        return envelope("Get order successfully", OrderOut.from_domain(order))

    @app.post("/orders/{order_id}/pay")
    async def pay_order(order_id: str, actor: CurrentActor) -> Envelope:
        order = unwrap(await storefront.orders.pay_order(order_id, actor))
        return envelope("Payment successful", OrderOut.from_domain(order))

    @app.post("/orders/{order_id}/ship")
    async def ship_order(order_id: str, body: ShipIn, actor: CurrentActor) -> Envelope:
        order = unwrap(await storefront.orders.ship_order(
            order_id,
            actor,
            body.tracking_number,
            carrier=body.carrier,
            estimated_delivery=body.estimated_delivery,
        ))
        return envelope("Order status updated", OrderOut.from_domain(order))

    @app.post("/orders/{order_id}/deliver")
    async def deliver_order(
        order_id: str, actor: CurrentActor, body: DeliverIn | None = None
    ) -> Envelope:
        notes = body.notes if body is not None else None
        order = unwrap(await storefront.orders.deliver_order(order_id, actor, notes))
        return envelope("Order status updated", OrderOut.from_domain(order))

    @app.post("/orders/{order_id}/cancel")
    async def cancel_order(
        order_id: str, actor: CurrentActor, body: CancelIn | None = None
    ) -> Envelope:
        reason = body.reason if body is not None else None
        order = unwrap(await storefront.orders.cancel_order(order_id, actor, reason))
        return envelope("Order cancelled", OrderOut.from_domain(order))

    # ═══════════════════════════════════════════════════════════════════════════
    # Payments
    # ═══════════════════════════════════════════════════════════════════════════

    @app.post("/orders/{order_id}/payment")
    async def start_payment(order_id: str, body: StartPaymentIn, actor: CurrentActor) -> Envelope:
        session = unwrap(await storefront.payments.start_payment(
            order_id, actor, body.return_url, body.cancel_url
        ))
        return envelope("Payment created", PaymentSessionOut.from_domain(session))

    @app.post("/orders/{order_id}/capture")
    async def capture_payment(order_id: str, actor: CurrentActor) -> Envelope:
        order = unwrap(await storefront.payments.capture_payment(order_id, actor))
        return envelope("Payment successful", OrderOut.from_domain(order))

    @app.post("/payments/webhook")
    async def payment_webhook(request: Request) -> Envelope:
        """Always acknowledged; processing problems are only logged."""
        try:
            event = WebhookIn.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("webhook_payload_invalid")
            return envelope("Webhook received")
        await storefront.payments.handle_event(event.to_domain())
        return envelope("Webhook received")

    # ═══════════════════════════════════════════════════════════════════════════
    # Inventory
    # ═══════════════════════════════════════════════════════════════════════════

    @app.get("/inventory/seller")
    async def seller_inventory(
        query: Annotated[SellerStockIn, Query()], actor: CurrentActor
    ) -> Envelope:
        if actor.role != Role.SELLER:
            raise ApiError.from_domain(Errors.unauthorized("Seller role required"))
        page = unwrap(await storefront.ledger.seller_inventory(
            actor.user_id, query.page, query.limit, query.sort, query.order.value
        ))
        return envelope("Get seller inventory successfully", SellerStockPageOut.from_domain(page))

    # ═══════════════════════════════════════════════════════════════════════════
    # Cart & Coupons
    # ═══════════════════════════════════════════════════════════════════════════

    @app.get("/cart/quote")
    async def cart_quote(actor: CurrentActor, coupon_code: str | None = None) -> Envelope:
        quote = unwrap(await storefront.checkout.quote(actor.user_id, coupon_code))
        return envelope("Get cart total successfully", QuoteOut.from_domain(quote))

    @app.post("/coupons/validate")
    async def validate_coupon(body: ValidateCouponIn, actor: CurrentActor) -> Envelope:
        lines = unwrap(await storefront.carts.selected_lines(actor.user_id))
        verdict = unwrap(await storefront.coupons.validate_coupon(
            body.code, [line.coupon_line() for line in lines]
        ))
        message = "Coupon is valid" if verdict.valid else verdict.message or "Coupon is not valid"
        return envelope(message, CouponVerdictOut.from_domain(verdict))

    return app


__all__ = ("ApiError", "unwrap", "create_app")
