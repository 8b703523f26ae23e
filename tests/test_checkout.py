from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from storefront._types import utcnow
from storefront.cart import AddToCart
from storefront import graph as G
from storefront.checkout import (
    CheckoutPorts,
    CheckoutRejected,
    PlaceOrder,
    QuoteNode,
    QuoteRequest,
)
from storefront.collaborators import Product
from storefront.errors import ErrorKind
from storefront.inventory import InventoryUpdate
from storefront.notify import EventKind
from storefront.orders import OrderQuery, OrderStatus, PaymentMethod
from tests.conftest import BUYER, coupon_draft, err, fill_cart, ok

D = Decimal


def place(coupon_code: str | None = None, method: PaymentMethod = PaymentMethod.COD) -> PlaceOrder:
    return PlaceOrder(
        buyer_id="b1",
        shipping_address_id="addr-b1",
        payment_method=method,
        coupon_code=coupon_code,
    )


async def stock(store, product_id: str) -> int:
    return ok(await store.ledger.get_inventory(product_id)).quantity


async def usage(store, code: str = "SAVE10") -> int:
    return ok(await store.coupons.get_coupon(code)).usage_count


# ═══════════════════════════════════════════════════════════════════════════════
# Quote
# ═══════════════════════════════════════════════════════════════════════════════


async def test_quote_prices_the_selected_lines(store):
    await fill_cart(store)

    quote = ok(await store.checkout.quote("b1"))

    assert quote.totals.subtotal == D("40.00")
    assert quote.totals.shipping == D("5.00")
    assert quote.totals.tax == D("4.00")
    assert quote.totals.total == D("49.00")
    assert quote.quantities == {"p1": 2}


async def test_quote_reports_an_unusable_coupon_without_failing(store):
    await fill_cart(store)

    quote = ok(await store.checkout.quote("b1", "NOPE"))

    assert quote.coupon_code is None
    assert quote.coupon_message == "Coupon not found or inactive"
    assert quote.totals.total == D("49.00")


async def test_quote_graph_runs_on_its_own(store, settings):
    await fill_cart(store)
    ok(await store.coupons.create_coupon(coupon_draft()))
    ports = CheckoutPorts(carts=store.carts, coupons=store.coupons, settings=settings)

    quote = (await G.graph(QuoteNode)(QuoteRequest("b1", "save10"), ports)).data

    assert quote.coupon_code == "SAVE10"
    assert quote.totals.discount == D("4.00")


async def test_quote_graph_raises_rejections(store, settings):
    ports = CheckoutPorts(carts=store.carts, coupons=store.coupons, settings=settings)

    with pytest.raises(CheckoutRejected) as rejected:
        await G.graph(QuoteNode)(QuoteRequest("b1"), ports)

    assert rejected.value.error.kind == ErrorKind.EMPTY_CART


async def test_quote_of_an_empty_cart(store):
    e = err(await store.checkout.quote("b1"))

    assert e.kind == ErrorKind.EMPTY_CART


# ═══════════════════════════════════════════════════════════════════════════════
# Placement
# ═══════════════════════════════════════════════════════════════════════════════


async def test_cash_on_delivery_order_is_paid_at_once(store, notifier):
    await fill_cart(store)

    order = ok(await store.checkout.place_order(place()))

    assert order.status == OrderStatus.PAID
    assert order.payment_status
    assert order.total == D("49.00")
    assert order.totals.reconciles()
    assert order.order_number.startswith("ORD-")
    assert [(i.product_id, i.quantity, i.unit_price, i.seller_id) for i in order.items] == [
        ("p1", 2, D("20.00"), "s1")
    ]
    assert await stock(store, "p1") == 8
    assert ok(await store.carts.get_cart("b1")).lines == ()

    await store.dispatcher.drain()
    assert notifier.kinds() == [EventKind.ORDER_PLACED]
    assert notifier.events[0].recipients == ("b1", "s1")


async def test_provider_order_waits_for_payment(store):
    await fill_cart(store)

    order = ok(await store.checkout.place_order(place(method=PaymentMethod.PAYPAL)))

    assert order.status == OrderStatus.PENDING
    assert not order.payment_status
    assert order.paid_at is None


async def test_coupon_discount_and_redemption(store):
    ok(await store.coupons.create_coupon(coupon_draft()))
    await fill_cart(store)

    order = ok(await store.checkout.place_order(place("save10")))

    assert order.totals.discount == D("4.00")
    assert order.total == D("45.00")
    assert order.coupon_code == "SAVE10"
    assert await usage(store) == 1


async def test_coupon_remembered_on_the_cart_is_used(store):
    ok(await store.coupons.create_coupon(coupon_draft()))
    await fill_cart(store)
    ok(await store.carts.apply_coupon("b1", "SAVE10"))

    order = ok(await store.checkout.place_order(place()))

    assert order.total == D("45.00")
    assert await usage(store) == 1


async def test_stale_cart_coupon_is_dropped(store):
    now = utcnow()
    ok(await store.coupons.create_coupon(coupon_draft(
        "OLD", starts_at=now - timedelta(days=10), expires_at=now - timedelta(days=1)
    )))
    await fill_cart(store)
    ok(await store.carts.apply_coupon("b1", "OLD"))

    order = ok(await store.checkout.place_order(place()))

    assert order.coupon_code is None
    assert order.total == D("49.00")
    assert await usage(store, "OLD") == 0


async def test_typed_coupon_must_be_usable(store):
    await fill_cart(store)

    e = err(await store.checkout.place_order(place("NOPE")))

    assert e.kind == ErrorKind.VALIDATION
    assert e.code == "COUPON_NOT_FOUND"
    assert await stock(store, "p1") == 10


async def test_order_items_keep_the_price_they_were_added_at(store, catalog):
    await fill_cart(store, "b1", AddToCart("p2", 1, variant_id="red"))
    product = await catalog.get_product("p2")
    red = replace(product.variants["red"], price=D("99.00"))
    catalog.put(replace(product, price=D("99.00"), variants={"red": red}))

    order = ok(await store.checkout.place_order(place()))

    item = order.items[0]
    assert (item.unit_price, item.variant_id, item.variant_attributes) == (D("17.00"), "red", {"color": "red"})
    # Free-shipping product: no shipping charge.
    assert order.totals.shipping == D("0")
    assert order.total == D("18.70")


async def test_empty_cart_is_rejected(store):
    e = err(await store.checkout.place_order(place()))

    assert e.kind == ErrorKind.EMPTY_CART


async def test_address_must_belong_to_the_buyer(store):
    await fill_cart(store)

    e = err(await store.checkout.place_order(PlaceOrder(
        buyer_id="b1", shipping_address_id="addr-b2", payment_method=PaymentMethod.COD
    )))

    assert e.kind == ErrorKind.NOT_FOUND
    assert e.code == "ADDRESS_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════════
# Rollback
# ═══════════════════════════════════════════════════════════════════════════════


async def test_short_stock_rolls_back_everything(store):
    ok(await store.coupons.create_coupon(coupon_draft()))
    await fill_cart(store, "b1", AddToCart("p1", 2), AddToCart("p2", 2))
    ok(await store.ledger.update_inventory("p2", InventoryUpdate(quantity=1)))

    e = err(await store.checkout.place_order(place("SAVE10")))

    assert e.kind == ErrorKind.INSUFFICIENT_STOCK
    assert await stock(store, "p1") == 10
    assert await stock(store, "p2") == 1
    assert await usage(store) == 0
    assert len(ok(await store.carts.get_cart("b1")).lines) == 2
    assert ok(await store.orders.list_orders(OrderQuery(BUYER))).total == 0


async def test_rollback_gives_back_reserved_stock(store):
    ok(await store.ledger.reserve_inventory("p1", 4))
    await fill_cart(store, "b1", AddToCart("p1", 2), AddToCart("p2", 2))
    ok(await store.ledger.update_inventory("p2", InventoryUpdate(quantity=1)))

    e = err(await store.checkout.place_order(place()))

    assert e.kind == ErrorKind.INSUFFICIENT_STOCK
    inv = ok(await store.ledger.get_inventory("p1"))
    assert (inv.quantity, inv.reserved_quantity) == (10, 4)


async def test_failed_insert_gives_back_stock_and_coupon(store, monkeypatch):
    monkeypatch.setattr("storefront.checkout._service.new_order_number", lambda: "ORD-FIXED")
    ok(await store.coupons.create_coupon(coupon_draft()))

    await fill_cart(store)
    ok(await store.checkout.place_order(place("SAVE10")))
    await fill_cart(store)

    e = err(await store.checkout.place_order(place("SAVE10")))

    assert e.kind == ErrorKind.ALREADY_EXISTS
    assert await stock(store, "p1") == 8
    assert await usage(store) == 1


async def test_product_without_inventory_cannot_be_ordered(store, catalog):
    catalog.put(Product(id="p7", name="Kite", price=D("8.00"), seller_id="s2", stock=5))
    await fill_cart(store, "b1", AddToCart("p7", 1))

    e = err(await store.checkout.place_order(place()))

    assert e.code == "INVENTORY_NOT_FOUND"
