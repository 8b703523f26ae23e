"""
Inventory — per-product stock ledger.

    ledger = InventoryLedger(session_factory, catalog=catalog)

    await ledger.create_inventory("p1", quantity=10)
    match await ledger.take_stock("p1", 2):
        case Ok(take):
            take.inventory.quantity  # 8
            await ledger.undo_take(take)  # back to 10, reservation included
        case Error(e):
            e.kind  # ErrorKind.INSUFFICIENT_STOCK / NOT_FOUND

    async for inv in ledger.low_stock():
        ...

    page = await ledger.seller_inventory("s1", sort=StockSort.QUANTITY, order="asc")
"""

from storefront.inventory._types import (
    Inventory,
    InventoryUpdate,
    SellerStock,
    SellerStockPage,
    StockSort,
    StockTake,
)
from storefront.inventory._ledger import MAX_PAGE_SIZE, InventoryLedger

__all__ = (
    "Inventory",
    "InventoryUpdate",
    "SellerStock",
    "SellerStockPage",
    "StockSort",
    "StockTake",
    "MAX_PAGE_SIZE",
    "InventoryLedger",
)
