"""
Collaborators — catalog and address lookups owned by other services.

Only the read shapes the checkout needs are modelled here. The in-memory
implementations back tests and local runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from storefront._types import Money


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Variant:
    id: str
    attributes: dict[str, Any]
    stock: int
    price: Money | None = None


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Money
    seller_id: str
    stock: int
    category_id: str | None = None
    image: str | None = None
    free_shipping: bool = False
    is_active: bool = True
    variants: dict[str, Variant] = field(default_factory=dict)

    def price_for(self, variant_id: str | None) -> Money:
        variant = self.variants.get(variant_id) if variant_id else None
        if variant is not None and variant.price is not None:
            return variant.price
        return self.price

    def stock_for(self, variant_id: str | None) -> int:
        variant = self.variants.get(variant_id) if variant_id else None
        return variant.stock if variant is not None else self.stock


class Catalog(Protocol):
    async def get_product(self, product_id: str) -> Product | None: ...

    async def get_products(self, product_ids: list[str]) -> list[Product]: ...

    async def products_by_seller(self, seller_id: str) -> list[Product]: ...


class MemoryCatalog:
    def __init__(self, products: list[Product] | None = None) -> None:
        self._products: dict[str, Product] = {p.id: p for p in products or []}

    def put(self, product: Product) -> None:
        self._products[product.id] = product

    def remove(self, product_id: str) -> None:
        self._products.pop(product_id, None)

    async def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    async def get_products(self, product_ids: list[str]) -> list[Product]:
        return [self._products[pid] for pid in product_ids if pid in self._products]

    async def products_by_seller(self, seller_id: str) -> list[Product]:
        return [p for p in self._products.values() if p.seller_id == seller_id]


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Address:
    id: str
    user_id: str
    line1: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""


class AddressBook(Protocol):
    async def get_address(self, address_id: str) -> Address | None: ...


class MemoryAddressBook:
    def __init__(self, addresses: list[Address] | None = None) -> None:
        self._addresses: dict[str, Address] = {a.id: a for a in addresses or []}

    def put(self, address: Address) -> None:
        self._addresses[address.id] = address

    async def get_address(self, address_id: str) -> Address | None:
        return self._addresses.get(address_id)


__all__ = (
    "Variant",
    "Product",
    "Catalog",
    "MemoryCatalog",
    "Address",
    "AddressBook",
    "MemoryAddressBook",
)
