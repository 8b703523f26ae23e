"""
HTTP schemas — pydantic models at the edge, converted with
``to_domain`` / ``from_domain`` so services never see request payloads.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from storefront.checkout import CheckoutQuote, PlaceOrder
from storefront.coupons import CouponVerdict
from storefront.inventory import SellerStock, SellerStockPage, StockSort
from storefront.orders import (
    Actor,
    Order,
    OrderItem,
    OrderPage,
    OrderQuery,
    OrderStatus,
    PaymentMethod,
    SortField,
    SortOrder,
)
from storefront.payments import PaymentEvent, PaymentEventKind, PaymentSession
from storefront.pricing import Totals


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════


class PlaceOrderIn(BaseModel):
    shipping_address_id: str = Field(min_length=1)
    payment_method: PaymentMethod
    coupon_code: str | None = None
    notes: str | None = Field(default=None, max_length=1000)

    def to_domain(self, actor: Actor) -> PlaceOrder:
        return PlaceOrder(
            buyer_id=actor.user_id,
            shipping_address_id=self.shipping_address_id,
            payment_method=self.payment_method,
            coupon_code=self.coupon_code or None,
            notes=self.notes,
        )


class ListOrdersIn(BaseModel):
    status: OrderStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    sort: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)
    as_seller: bool = False

    def to_domain(self, actor: Actor) -> OrderQuery:
        return OrderQuery(
            actor=actor,
            status=self.status,
            date_from=self.date_from,
            date_to=self.date_to,
            sort=self.sort,
            order=self.order,
            page=self.page,
            limit=self.limit,
            as_seller=self.as_seller,
        )


class SellerStockIn(BaseModel):
    sort: StockSort = StockSort.UPDATED_AT
    order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)


class ShipIn(BaseModel):
    tracking_number: str = Field(min_length=1)
    carrier: str | None = None
    estimated_delivery: datetime | None = None


class DeliverIn(BaseModel):
    notes: str | None = None


class CancelIn(BaseModel):
    reason: str | None = None


class StartPaymentIn(BaseModel):
    return_url: str = Field(min_length=1)
    cancel_url: str = Field(min_length=1)


class ValidateCouponIn(BaseModel):
    code: str = Field(min_length=1)


class WebhookResource(BaseModel):
    provider_order_id: str
    payment_id: str | None = None


class WebhookIn(BaseModel):
    event_type: PaymentEventKind
    resource: WebhookResource

    def to_domain(self) -> PaymentEvent:
        return PaymentEvent(
            kind=self.event_type,
            provider_order_id=self.resource.provider_order_id,
            payment_id=self.resource.payment_id,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════


class TotalsOut(BaseModel):
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    @classmethod
    def from_domain(cls, totals: Totals) -> TotalsOut:
        return cls(
            subtotal=totals.subtotal,
            shipping=totals.shipping,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
        )


class OrderItemOut(BaseModel):
    product_id: str
    product_name: str
    product_image: str | None
    quantity: int
    price: Decimal
    seller_id: str
    variant_id: str | None
    variant_attributes: dict[str, Any] | None

    @classmethod
    def from_domain(cls, item: OrderItem) -> OrderItemOut:
        return cls(
            product_id=item.product_id,
            product_name=item.product_name,
            product_image=item.product_image,
            quantity=item.quantity,
            price=item.unit_price,
            seller_id=item.seller_id,
            variant_id=item.variant_id,
            variant_attributes=item.variant_attributes,
        )


class OrderOut(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    items: list[OrderItemOut]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: str | None
    shipping_address_id: str
    payment_method: PaymentMethod
    payment_status: bool
    status: OrderStatus
    tracking_number: str | None
    carrier: str | None
    notes: str | None
    cancel_reason: str | None
    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None

    @classmethod
    def from_domain(cls, order: Order) -> OrderOut:
        t = order.totals
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            items=[OrderItemOut.from_domain(i) for i in order.items],
            subtotal=t.subtotal,
            shipping=t.shipping,
            tax=t.tax,
            discount=t.discount,
            total=t.total,
            coupon_code=order.coupon_code,
            shipping_address_id=order.shipping_address_id,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            status=order.status,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            notes=order.notes,
            cancel_reason=order.cancel_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            delivered_at=order.delivered_at,
        )


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderPageOut(BaseModel):
    orders: list[OrderOut]
    pagination: PaginationOut

    @classmethod
    def from_domain(cls, page: OrderPage) -> OrderPageOut:
        return cls(
            orders=[OrderOut.from_domain(o) for o in page.orders],
            pagination=PaginationOut(
                total=page.total,
                page=page.page,
                limit=page.limit,
                total_pages=page.total_pages,
            ),
        )


class SellerStockOut(BaseModel):
    product_id: str
    name: str
    price: Decimal
    image: str | None
    quantity: int
    reserved_quantity: int
    available: int
    sku: str | None
    location: str | None
    updated_at: datetime

    @classmethod
    def from_domain(cls, stock: SellerStock) -> SellerStockOut:
        inv = stock.inventory
        return cls(
            product_id=stock.product_id,
            name=stock.name,
            price=stock.price,
            image=stock.image,
            quantity=inv.quantity,
            reserved_quantity=inv.reserved_quantity,
            available=stock.available,
            sku=inv.sku,
            location=inv.location,
            updated_at=inv.updated_at,
        )


class SellerStockPageOut(BaseModel):
    items: list[SellerStockOut]
    pagination: PaginationOut

    @classmethod
    def from_domain(cls, page: SellerStockPage) -> SellerStockPageOut:
        return cls(
            items=[SellerStockOut.from_domain(s) for s in page.items],
            pagination=PaginationOut(
                total=page.total,
                page=page.page,
                limit=page.limit,
                total_pages=page.total_pages,
            ),
        )


class QuoteOut(BaseModel):
    items: list[OrderItemOut]
    totals: TotalsOut
    coupon_code: str | None
    coupon_message: str | None

    @classmethod
    def from_domain(cls, quote: CheckoutQuote) -> QuoteOut:
        return cls(
            items=[OrderItemOut.from_domain(i) for i in quote.items],
            totals=TotalsOut.from_domain(quote.totals),
            coupon_code=quote.coupon_code,
            coupon_message=quote.coupon_message,
        )


class CouponVerdictOut(BaseModel):
    valid: bool
    message: str | None
    code: str | None
    discount_amount: Decimal
    subtotal_after_discount: Decimal | None

    @classmethod
    def from_domain(cls, verdict: CouponVerdict) -> CouponVerdictOut:
        return cls(
            valid=verdict.valid,
            message=verdict.message,
            code=verdict.code,
            discount_amount=verdict.discount_amount,
            subtotal_after_discount=verdict.subtotal_after_discount,
        )


class PaymentSessionOut(BaseModel):
    approval_url: str
    provider_order_id: str

    @classmethod
    def from_domain(cls, session: PaymentSession) -> PaymentSessionOut:
        return cls(approval_url=session.approval_url, provider_order_id=session.provider_order_id)


class ErrorOut(BaseModel):
    message: str
    code: str


class Envelope(BaseModel):
    message: str
    result: Any = None


__all__ = (
    "PlaceOrderIn",
    "ListOrdersIn",
    "SellerStockIn",
    "ShipIn",
    "DeliverIn",
    "CancelIn",
    "StartPaymentIn",
    "ValidateCouponIn",
    "WebhookResource",
    "WebhookIn",
    "TotalsOut",
    "OrderItemOut",
    "OrderOut",
    "PaginationOut",
    "OrderPageOut",
    "SellerStockOut",
    "SellerStockPageOut",
    "QuoteOut",
    "CouponVerdictOut",
    "PaymentSessionOut",
    "ErrorOut",
    "Envelope",
)
