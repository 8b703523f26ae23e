import asyncio
from decimal import Decimal

from kungfu import Error, Ok

from storefront.collaborators import Product
from storefront.errors import ErrorKind
from storefront.inventory import MAX_PAGE_SIZE, InventoryUpdate, StockSort
from tests.conftest import err, ok


async def test_create_and_read(store):
    inv = ok(await store.ledger.create_inventory("p9", 4, sku="SKU-9"))

    assert (inv.quantity, inv.reserved_quantity, inv.available) == (4, 0, 4)
    assert ok(await store.ledger.get_inventory("p9")).sku == "SKU-9"
    assert err(await store.ledger.create_inventory("p9", 1)).kind == ErrorKind.ALREADY_EXISTS


async def test_unknown_product(store):
    e = err(await store.ledger.get_inventory("ghost"))

    assert e.kind == ErrorKind.NOT_FOUND
    assert e.code == "INVENTORY_NOT_FOUND"
    assert err(await store.ledger.decrease_inventory("ghost", 1)).code == "INVENTORY_NOT_FOUND"


async def test_decrease_takes_stock(store):
    inv = ok(await store.ledger.decrease_inventory("p1", 3))

    assert inv.quantity == 7


async def test_decrease_beyond_on_hand_changes_nothing(store):
    e = err(await store.ledger.decrease_inventory("p1", 11))

    assert e.kind == ErrorKind.INSUFFICIENT_STOCK
    assert ok(await store.ledger.get_inventory("p1")).quantity == 10


async def test_quantity_must_be_positive(store):
    assert err(await store.ledger.decrease_inventory("p1", 0)).code == "INVALID_QUANTITY"
    assert err(await store.ledger.reserve_inventory("p1", -1)).code == "INVALID_QUANTITY"


async def test_concurrent_decreases_never_oversell(store):
    ok(await store.ledger.update_inventory("p1", InventoryUpdate(quantity=3)))

    results = await asyncio.gather(
        store.ledger.decrease_inventory("p1", 2),
        store.ledger.decrease_inventory("p1", 2),
    )

    assert sum(isinstance(r, Ok) for r in results) == 1
    assert [err(r).code for r in results if isinstance(r, Error)] == ["INSUFFICIENT_STOCK"]
    assert ok(await store.ledger.get_inventory("p1")).quantity == 1


async def test_reserve_and_release(store):
    inv = ok(await store.ledger.reserve_inventory("p1", 4))
    assert (inv.reserved_quantity, inv.available) == (4, 6)

    assert err(await store.ledger.reserve_inventory("p1", 7)).kind == ErrorKind.INSUFFICIENT_STOCK

    inv = ok(await store.ledger.release_reserved_inventory("p1", 10))
    assert inv.reserved_quantity == 0


async def test_decrease_consumes_reservation(store):
    ok(await store.ledger.reserve_inventory("p1", 4))

    inv = ok(await store.ledger.decrease_inventory("p1", 3))

    assert (inv.quantity, inv.reserved_quantity) == (7, 1)
    assert 0 <= inv.reserved_quantity <= inv.quantity


async def test_take_reports_released_reservation(store):
    ok(await store.ledger.reserve_inventory("p1", 4))

    first = ok(await store.ledger.take_stock("p1", 3))
    second = ok(await store.ledger.take_stock("p1", 3))

    assert (first.released, second.released) == (3, 1)
    assert (second.inventory.quantity, second.inventory.reserved_quantity) == (4, 0)


async def test_undo_take_restores_both_counters(store):
    ok(await store.ledger.reserve_inventory("p1", 4))
    take = ok(await store.ledger.take_stock("p1", 6))

    inv = ok(await store.ledger.undo_take(take))

    assert (inv.quantity, inv.reserved_quantity) == (10, 4)


async def test_update_keeps_reserved_within_quantity(store):
    e = err(await store.ledger.update_inventory("p1", InventoryUpdate(quantity=2, reserved_quantity=3)))
    assert e.kind == ErrorKind.VALIDATION

    inv = ok(await store.ledger.update_inventory("p1", InventoryUpdate(quantity=6, location="A-1")))
    assert (inv.quantity, inv.location) == (6, "A-1")


async def test_restock_adds_on_hand(store):
    ok(await store.ledger.decrease_inventory("p1", 5))

    assert ok(await store.ledger.restock("p1", 2)).quantity == 7


async def test_low_stock_lists_lowest_first(store):
    ok(await store.ledger.update_inventory("p2", InventoryUpdate(quantity=4)))
    ok(await store.ledger.update_inventory("p3", InventoryUpdate(quantity=1)))

    low = [inv.product_id async for inv in store.ledger.low_stock()]

    assert low == ["p3", "p2"]
    assert [inv.product_id async for inv in store.ledger.low_stock(1)] == ["p3"]


# ═══════════════════════════════════════════════════════════════════════════════
# Seller view
# ═══════════════════════════════════════════════════════════════════════════════


async def test_seller_inventory_joins_catalog(store):
    ok(await store.ledger.update_inventory("p3", InventoryUpdate(quantity=2)))
    ok(await store.ledger.reserve_inventory("p1", 3))

    page = ok(await store.ledger.seller_inventory("s1", sort=StockSort.QUANTITY, order="asc"))

    assert page.total == 2
    assert [(s.product_id, s.name, s.available) for s in page.items] == [
        ("p3", "Lamp", 2),
        ("p1", "Mug", 7),
    ]
    assert page.items[1].price == Decimal("20.00")


async def test_seller_inventory_pages(store):
    first = ok(await store.ledger.seller_inventory("s1", page=1, limit=1, sort=StockSort.QUANTITY))
    second = ok(await store.ledger.seller_inventory("s1", page=2, limit=1, sort=StockSort.QUANTITY))

    assert (first.total, first.total_pages) == (2, 2)
    assert {first.items[0].product_id, second.items[0].product_id} == {"p1", "p3"}
    assert ok(await store.ledger.seller_inventory("s1", limit=1000)).limit == MAX_PAGE_SIZE


async def test_seller_without_products_gets_an_empty_page(store):
    page = ok(await store.ledger.seller_inventory("nobody"))

    assert (page.items, page.total) == ([], 0)


async def test_seller_inventory_skips_products_without_stock_rows(store, catalog):
    catalog.put(Product(id="p8", name="Vase", price=Decimal("12.00"), seller_id="s2", stock=3))

    page = ok(await store.ledger.seller_inventory("s2"))

    assert [s.product_id for s in page.items] == ["p2"]
