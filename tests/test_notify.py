from storefront.cart import AddToCart
from storefront.checkout import PlaceOrder
from storefront.notify import (
    EventKind,
    LoggingNotifier,
    NotificationDispatcher,
    OrderEvent,
    RecordingNotifier,
)
from storefront.orders import OrderService, PaymentMethod
from tests.conftest import SELLER, fill_cart, ok


class BrokenNotifier:
    def __init__(self) -> None:
        self.attempts = 0

    async def notify(self, event: OrderEvent) -> None:
        self.attempts += 1
        raise ConnectionError("mail server down")


async def test_events_are_delivered_in_the_background():
    notifier = RecordingNotifier()
    dispatcher = NotificationDispatcher(notifier)

    dispatcher.emit(OrderEvent(EventKind.ORDER_SHIPPED, "o1", ("b1", "s1")))
    dispatcher.emit(OrderEvent(EventKind.ORDER_DELIVERED, "o1", ("b1",)))
    await dispatcher.drain()

    assert notifier.kinds() == [EventKind.ORDER_SHIPPED, EventKind.ORDER_DELIVERED]
    assert notifier.events[0].recipients == ("b1", "s1")


async def test_a_failing_notifier_is_contained():
    notifier = BrokenNotifier()
    dispatcher = NotificationDispatcher(notifier)

    dispatcher.emit(OrderEvent(EventKind.ORDER_PLACED, "o1"))
    await dispatcher.drain()

    assert notifier.attempts == 1


async def test_logging_notifier_accepts_events():
    dispatcher = NotificationDispatcher(LoggingNotifier())

    dispatcher.emit(OrderEvent(EventKind.COUPON_CREATED, "SAVE10", data={"value": "10"}))
    await dispatcher.drain()


async def test_a_broken_notifier_never_fails_the_transition(store, session_factory):
    await fill_cart(store, "b1", AddToCart("p1", 1))
    order = ok(await store.checkout.place_order(PlaceOrder("b1", "addr-b1", PaymentMethod.COD)))
    broken = BrokenNotifier()
    dispatcher = NotificationDispatcher(broken)
    orders = OrderService(session_factory, store.ledger, dispatcher)

    shipped = ok(await orders.ship_order(order.id, SELLER, "TRK-9"))
    await dispatcher.drain()

    assert shipped.tracking_number == "TRK-9"
    assert broken.attempts == 1
