from datetime import timedelta
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from storefront._types import utcnow
from storefront.app import Storefront
from storefront.cart import AddToCart
from storefront.collaborators import (
    Address,
    MemoryAddressBook,
    MemoryCatalog,
    Product,
    Variant,
)
from storefront.config import Settings
from storefront.coupons import CouponDraft, CouponType
from storefront.db import create_database
from storefront.notify import RecordingNotifier
from storefront.orders import Actor, Role
from storefront.payments import MemoryGateway

BUYER = Actor("b1", Role.BUYER)
OTHER_BUYER = Actor("b2", Role.BUYER)
SELLER = Actor("s1", Role.SELLER)
OTHER_SELLER = Actor("s2", Role.SELLER)
ADMIN = Actor("a1", Role.ADMIN)


@pytest.fixture
async def session_factory(tmp_path):
    factory, engine = await create_database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    yield factory
    await engine.dispose()


@pytest.fixture
def catalog() -> MemoryCatalog:
    return MemoryCatalog([
        Product(id="p1", name="Mug", price=Decimal("20.00"), seller_id="s1", stock=10, category_id="kitchen"),
        Product(
            id="p2",
            name="Shirt",
            price=Decimal("15.50"),
            seller_id="s2",
            stock=10,
            category_id="apparel",
            free_shipping=True,
            variants={"red": Variant("red", {"color": "red"}, stock=3, price=Decimal("17.00"))},
        ),
        Product(id="p3", name="Lamp", price=Decimal("30.00"), seller_id="s1", stock=0, category_id="home"),
    ])


@pytest.fixture
def addresses() -> MemoryAddressBook:
    return MemoryAddressBook([Address("addr-b1", "b1"), Address("addr-b2", "b2")])


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
async def store(session_factory, catalog, addresses, gateway, notifier, settings):
    storefront = Storefront.create(session_factory, catalog, addresses, gateway, notifier, settings)
    for product_id in ("p1", "p2", "p3"):
        await storefront.ledger.create_inventory(product_id, 10)
    yield storefront
    await storefront.aclose()


def coupon_draft(code: str = "SAVE10", **overrides) -> CouponDraft:
    now = utcnow()
    fields = dict(
        code=code,
        type=CouponType.PERCENTAGE,
        value=Decimal("10"),
        starts_at=now - timedelta(days=1),
        expires_at=now + timedelta(days=30),
        min_purchase=Decimal("0"),
    )
    fields.update(overrides)
    return CouponDraft(**fields)


async def fill_cart(store: Storefront, user_id: str = "b1", *items: AddToCart) -> None:
    for item in items or (AddToCart("p1", 2),):
        result = await store.carts.add_to_cart(user_id, item)
        assert isinstance(result, Ok), result


def ok(result):
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(f"expected Ok, got Error({e!r})")


def err(result):
    match result:
        case Error(e):
            return e
        case Ok(value):
            pytest.fail(f"expected Error, got Ok({value!r})")
