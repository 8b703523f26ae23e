"""
Inventory types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from storefront._types import Money
from storefront.db import InventoryTable


@dataclass(frozen=True, slots=True)
class Inventory:
    """
    Stock for one product.

    Invariant: 0 <= reserved_quantity <= quantity.
    """

    product_id: str
    quantity: int
    reserved_quantity: int
    sku: str | None
    location: str | None
    last_restock_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def available(self) -> int:
        return self.quantity - self.reserved_quantity

    @classmethod
    def from_row(cls, row: InventoryTable) -> Inventory:
        return cls(
            product_id=row.product_id,
            quantity=row.quantity,
            reserved_quantity=row.reserved_quantity,
            sku=row.sku,
            location=row.location,
            last_restock_at=row.last_restock_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True, slots=True)
class StockTake:
    """
    Stock taken off hand by one decrease.

    released is the part of the reservation the take consumed; undoing the
    take gives back both counters.
    """

    inventory: Inventory
    quantity: int
    released: int


@dataclass(frozen=True, slots=True)
class SellerStock:
    """Inventory joined with the catalog entry it belongs to."""

    inventory: Inventory
    name: str
    price: Money
    image: str | None

    @property
    def product_id(self) -> str:
        return self.inventory.product_id

    @property
    def available(self) -> int:
        return self.inventory.available


@dataclass(frozen=True, slots=True)
class SellerStockPage:
    items: list[SellerStock] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


class StockSort(Enum):
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    QUANTITY = "quantity"
    RESERVED = "reserved_quantity"


@dataclass(frozen=True, slots=True)
class InventoryUpdate:
    """Seller edit; None leaves the field unchanged."""

    quantity: int | None = None
    reserved_quantity: int | None = None
    sku: str | None = None
    location: str | None = None


__all__ = (
    "Inventory",
    "StockTake",
    "SellerStock",
    "SellerStockPage",
    "StockSort",
    "InventoryUpdate",
)
