"""
Composition root — wires every service over one session factory.

    session_factory, engine = await create_database(settings.database_url)
    storefront = Storefront.create(session_factory, catalog, addresses, gateway)
    ...
    await storefront.aclose()
    await engine.dispose()
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from storefront.cart import CartService
from storefront.checkout import CheckoutService
from storefront.collaborators import AddressBook, Catalog
from storefront.config import Settings
from storefront.coupons import CouponService
from storefront.db import SessionFactory
from storefront.idempotency import SQLAlchemyStore
from storefront.inventory import InventoryLedger
from storefront.notify import LoggingNotifier, NotificationDispatcher, Notifier
from storefront.orders import OrderService
from storefront.payments import PaymentGateway, PaymentService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Storefront:
    settings: Settings
    dispatcher: NotificationDispatcher
    ledger: InventoryLedger
    coupons: CouponService
    carts: CartService
    orders: OrderService
    checkout: CheckoutService
    payments: PaymentService

    @classmethod
    def create(
        cls,
        session_factory: SessionFactory,
        catalog: Catalog,
        addresses: AddressBook,
        gateway: PaymentGateway,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ) -> Storefront:
        settings = settings or Settings()
        dispatcher = NotificationDispatcher(notifier or LoggingNotifier())
        ledger = InventoryLedger(session_factory, settings.low_stock_threshold, catalog)
        coupons = CouponService(session_factory, dispatcher)
        carts = CartService(session_factory, catalog)
        orders = OrderService(session_factory, ledger, dispatcher, settings)
        checkout = CheckoutService(
            carts=carts,
            coupons=coupons,
            orders=orders,
            ledger=ledger,
            addresses=addresses,
            settings=settings,
        )
        payments = PaymentService(
            session_factory,
            gateway,
            orders,
            settings,
            SQLAlchemyStore(session_factory),
        )
        logger.debug("storefront_created", restock_on_cancel=settings.restock_on_cancel)
        return cls(
            settings=settings,
            dispatcher=dispatcher,
            ledger=ledger,
            coupons=coupons,
            carts=carts,
            orders=orders,
            checkout=checkout,
            payments=payments,
        )

    async def aclose(self) -> None:
        """Wait for queued notifications."""
        await self.dispatcher.drain()


__all__ = ("Storefront",)
