import asyncio
from decimal import Decimal

from kungfu import Ok

from storefront.cart import AddToCart
from storefront.checkout import PlaceOrder
from storefront.config import Settings
from storefront.errors import ErrorKind
from storefront.notify import EventKind
from storefront.orders import (
    Actor,
    OrderQuery,
    OrderService,
    OrderStatus,
    PaymentMethod,
    Role,
    SortField,
    SortOrder,
    can_transition,
    is_path,
)
from tests.conftest import (
    ADMIN,
    BUYER,
    OTHER_BUYER,
    OTHER_SELLER,
    SELLER,
    err,
    fill_cart,
    ok,
)

D = Decimal
S = OrderStatus


async def placed(store, buyer_id="b1", method=PaymentMethod.COD, *items):
    await fill_cart(store, buyer_id, *items)
    return ok(await store.checkout.place_order(PlaceOrder(
        buyer_id=buyer_id,
        shipping_address_id=f"addr-{buyer_id}",
        payment_method=method,
    )))


async def stock(store, product_id: str) -> int:
    return ok(await store.ledger.get_inventory(product_id)).quantity


# ═══════════════════════════════════════════════════════════════════════════════
# State machine
# ═══════════════════════════════════════════════════════════════════════════════


def test_edges():
    assert can_transition(S.PENDING, S.PAID)
    assert can_transition(S.PAID, S.CANCELLED)
    assert not can_transition(S.PENDING, S.SHIPPED)
    assert not can_transition(S.SHIPPED, S.CANCELLED)
    assert not can_transition(S.CANCELLED, S.PENDING)
    assert not can_transition(S.REFUNDED, S.PAID)


def test_is_path():
    assert is_path([S.PENDING, S.PAID, S.SHIPPED, S.DELIVERED, S.RETURNED, S.REFUNDED])
    assert not is_path([S.PAID, S.DELIVERED])


# ═══════════════════════════════════════════════════════════════════════════════
# Access
# ═══════════════════════════════════════════════════════════════════════════════


async def test_who_may_view_an_order(store):
    order = await placed(store)

    assert ok(await store.orders.get_order(order.id, BUYER)).id == order.id
    assert ok(await store.orders.get_order(order.id, SELLER)).id == order.id
    assert ok(await store.orders.get_order(order.id, ADMIN)).id == order.id

    e = err(await store.orders.get_order(order.id, OTHER_BUYER))
    assert e.kind == ErrorKind.UNAUTHORIZED
    assert e.message == "Unauthorized access to this order"
    assert err(await store.orders.get_order(order.id, OTHER_SELLER)).kind == ErrorKind.UNAUTHORIZED


async def test_unknown_order(store):
    e = err(await store.orders.get_order("missing", ADMIN))

    assert e.kind == ErrorKind.NOT_FOUND
    assert e.code == "ORDER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════════════════════


async def test_cannot_ship_an_unpaid_order(store):
    order = await placed(store, "b1", PaymentMethod.PAYPAL)

    e = err(await store.orders.ship_order(order.id, SELLER, "TRK-1"))

    assert e.kind == ErrorKind.CONFLICT
    assert e.code == "ORDER_NOT_PAID"
    assert e.message.endswith("Current status: PENDING")
    assert ok(await store.orders.get_order(order.id, BUYER)).status == S.PENDING


async def test_buyer_pays_a_pending_order(store):
    order = await placed(store, "b1", PaymentMethod.PAYPAL)

    paid = ok(await store.orders.pay_order(order.id, BUYER))

    assert paid.status == S.PAID
    assert paid.payment_status
    assert paid.paid_at is not None
    assert err(await store.orders.pay_order(order.id, BUYER)).code == "ORDER_NOT_PENDING"


async def test_seller_ships_a_paid_order(store, notifier):
    order = await placed(store)

    shipped = ok(await store.orders.ship_order(order.id, SELLER, " TRK-1 ", carrier="UPS"))

    assert shipped.status == S.SHIPPED
    assert (shipped.tracking_number, shipped.carrier) == ("TRK-1", "UPS")
    assert shipped.shipped_at is not None

    await store.dispatcher.drain()
    assert notifier.kinds() == [EventKind.ORDER_PLACED, EventKind.ORDER_SHIPPED]


async def test_only_the_items_seller_ships(store):
    order = await placed(store)

    assert err(await store.orders.ship_order(order.id, BUYER, "TRK-1")).kind == ErrorKind.UNAUTHORIZED
    assert err(await store.orders.ship_order(order.id, OTHER_SELLER, "TRK-1")).kind == ErrorKind.UNAUTHORIZED
    assert ok(await store.orders.get_order(order.id, BUYER)).status == S.PAID


async def test_tracking_number_is_required(store):
    order = await placed(store)

    e = err(await store.orders.ship_order(order.id, SELLER, "   "))

    assert e.code == "TRACKING_NUMBER_REQUIRED"


async def test_full_lifecycle_leaves_a_valid_history(store):
    order = await placed(store)

    ok(await store.orders.ship_order(order.id, SELLER, "TRK-1"))
    delivered = ok(await store.orders.deliver_order(order.id, BUYER, "Left at the door"))
    assert delivered.delivered_at is not None
    ok(await store.orders.mark_returned(order.id, SELLER))
    refunded = ok(await store.orders.mark_refunded(order.id, ADMIN))

    assert refunded.status == S.REFUNDED
    assert not refunded.payment_status
    statuses = [h.to_status for h in refunded.history]
    assert statuses == [S.PAID, S.SHIPPED, S.DELIVERED, S.RETURNED, S.REFUNDED]
    assert is_path(statuses)
    assert refunded.history[0].from_status is None
    assert [h.from_status for h in refunded.history[1:]] == statuses[:-1]


async def test_only_admins_mark_refunds(store):
    order = await placed(store)
    ok(await store.orders.ship_order(order.id, SELLER, "TRK-1"))
    ok(await store.orders.deliver_order(order.id, BUYER))
    ok(await store.orders.mark_returned(order.id, SELLER))

    assert err(await store.orders.mark_refunded(order.id, BUYER)).kind == ErrorKind.UNAUTHORIZED
    assert err(await store.orders.mark_refunded(order.id, SELLER)).kind == ErrorKind.UNAUTHORIZED


async def test_buyer_cancels_a_paid_order(store, notifier):
    order = await placed(store)

    cancelled = ok(await store.orders.cancel_order(order.id, BUYER))

    assert cancelled.status == S.CANCELLED
    assert cancelled.cancel_reason == "Cancelled by buyer"
    assert cancelled.cancelled_at is not None
    assert await stock(store, "p1") == 8

    e = err(await store.orders.cancel_order(order.id, BUYER))
    assert e.code == "ORDER_NOT_CANCELLABLE"

    await store.dispatcher.drain()
    assert EventKind.ORDER_CANCELLED in notifier.kinds()


async def test_shipped_orders_cannot_be_cancelled(store):
    order = await placed(store)
    ok(await store.orders.ship_order(order.id, SELLER, "TRK-1"))

    e = err(await store.orders.cancel_order(order.id, ADMIN, "Changed my mind"))

    assert e.kind == ErrorKind.CONFLICT
    assert e.message.startswith("Order must be in PENDING or PAID status")
    assert ok(await store.orders.get_order(order.id, ADMIN)).status == S.SHIPPED


async def test_cancel_can_return_stock(store, session_factory):
    order = await placed(store)
    orders = OrderService(
        session_factory, store.ledger, settings=Settings().with_restock_on_cancel()
    )

    cancelled = ok(await orders.cancel_order(order.id, SELLER, "Out of paint"))

    assert cancelled.cancel_reason == "Out of paint"
    assert await stock(store, "p1") == 10


async def test_racing_transitions_have_one_winner(store):
    order = await placed(store)

    results = await asyncio.gather(
        store.orders.ship_order(order.id, SELLER, "TRK-1"),
        store.orders.cancel_order(order.id, BUYER),
    )

    assert sum(isinstance(r, Ok) for r in results) == 1
    final = ok(await store.orders.get_order(order.id, ADMIN))
    assert final.status in (S.SHIPPED, S.CANCELLED)
    assert len(final.history) == 2


class VanishingOrders(OrderService):
    """Loses the row right after the status write."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.reads = 0

    async def _fetch(self, order_id):
        self.reads += 1
        if self.reads > 1:
            return None
        return await super()._fetch(order_id)


async def test_order_gone_after_transition_is_not_found(store, session_factory):
    order = await placed(store, "b1", PaymentMethod.PAYPAL)
    orders = VanishingOrders(session_factory, store.ledger)

    e = err(await orders.pay_order(order.id, BUYER))

    assert e.kind == ErrorKind.NOT_FOUND
    assert ok(await store.orders.get_order(order.id, BUYER)).status == S.PAID


async def test_system_actor_may_do_anything(store):
    order = await placed(store, "b1", PaymentMethod.PAYPAL)

    paid = ok(await store.orders.pay_order(order.id, Actor.system()))

    assert paid.history[-1].actor_id == Actor.system().user_id


# ═══════════════════════════════════════════════════════════════════════════════
# Listing
# ═══════════════════════════════════════════════════════════════════════════════


async def seed(store):
    first = await placed(store, "b1", PaymentMethod.COD, AddToCart("p1", 1))
    second = await placed(store, "b1", PaymentMethod.PAYPAL, AddToCart("p1", 3))
    third = await placed(store, "b1", PaymentMethod.COD, AddToCart("p2", 1))
    other = await placed(store, "b2", PaymentMethod.COD, AddToCart("p2", 2))
    return first, second, third, other


async def test_buyers_see_their_own_orders(store):
    first, second, third, other = await seed(store)

    page = ok(await store.orders.list_orders(OrderQuery(BUYER)))
    assert page.total == 3
    assert {o.id for o in page.orders} == {first.id, second.id, third.id}

    page = ok(await store.orders.list_orders(OrderQuery(OTHER_BUYER)))
    assert [o.id for o in page.orders] == [other.id]


async def test_sellers_see_orders_with_their_items(store):
    first, second, third, other = await seed(store)

    page = ok(await store.orders.list_orders(OrderQuery(SELLER, as_seller=True)))
    assert {o.id for o in page.orders} == {first.id, second.id}

    page = ok(await store.orders.list_orders(OrderQuery(OTHER_SELLER, as_seller=True)))
    assert {o.id for o in page.orders} == {third.id, other.id}

    assert ok(await store.orders.list_orders(OrderQuery(SELLER))).total == 0


async def test_admins_see_everything(store):
    await seed(store)

    assert ok(await store.orders.list_orders(OrderQuery(ADMIN))).total == 4


async def test_filters_sorting_and_pages(store):
    first, second, third, other = await seed(store)

    pending = ok(await store.orders.list_orders(OrderQuery(BUYER, status=S.PENDING)))
    assert [o.id for o in pending.orders] == [second.id]

    by_total = ok(await store.orders.list_orders(
        OrderQuery(ADMIN, sort=SortField.TOTAL, order=SortOrder.ASC)
    ))
    totals = [o.total for o in by_total.orders]
    assert totals == sorted(totals)

    page = ok(await store.orders.list_orders(OrderQuery(ADMIN, page=2, limit=3)))
    assert (len(page.orders), page.total, page.total_pages) == (1, 4, 2)


async def test_limit_is_clamped(store):
    await seed(store)

    page = ok(await store.orders.list_orders(OrderQuery(ADMIN, page=0, limit=1000)))

    assert (page.page, page.limit) == (1, 100)


async def test_seller_who_also_buys(store):
    order = await placed(store)
    dual = Actor("s1", Role.BUYER)

    assert ok(await store.orders.get_order(order.id, dual)).id == order.id
    assert ok(await store.orders.list_orders(OrderQuery(dual, as_seller=True))).total == 1
