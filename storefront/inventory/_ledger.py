"""
Inventory ledger — the only writer of stock numbers.

Every mutation starts with one conditional UPDATE, so the check and the write
cannot be separated by a concurrent request. When no row matches, a follow-up
read tells a missing product from insufficient stock.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Literal

import structlog
from kungfu import Result, Ok, Error
from sqlalchemy import Update, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront._types import utcnow
from storefront.collaborators import Catalog
from storefront.db import InventoryTable, SessionFactory, guarded
from storefront.errors import CommerceError, Errors
from storefront.inventory._types import (
    Inventory,
    InventoryUpdate,
    SellerStock,
    SellerStockPage,
    StockSort,
    StockTake,
)

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


def _positive(quantity: int) -> Result[int, CommerceError]:
    if quantity <= 0:
        return Error(Errors.validation("Quantity must be positive", "INVALID_QUANTITY"))
    return Ok(quantity)


class InventoryLedger:
    def __init__(
        self,
        session_factory: SessionFactory,
        low_stock_threshold: int = 5,
        catalog: Catalog | None = None,
    ) -> None:
        self._session = session_factory
        self._low_stock_threshold = low_stock_threshold
        self._catalog = catalog

    # ═══════════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    async def _row(session: AsyncSession, product_id: str) -> InventoryTable | None:
        return (
            await session.execute(
                select(InventoryTable).where(InventoryTable.product_id == product_id)
            )
        ).scalar_one_or_none()

    @guarded("inventory.get")
    async def get_inventory(self, product_id: str) -> Result[Inventory, CommerceError]:
        async with self._session() as session:
            row = await self._row(session, product_id)
            if row is None:
                return Error(Errors.not_found("Inventory", product_id))
            return Ok(Inventory.from_row(row))

    @guarded("inventory.seller")
    async def seller_inventory(
        self,
        seller_id: str,
        page: int = 1,
        limit: int = 20,
        sort: StockSort = StockSort.UPDATED_AT,
        order: Literal["asc", "desc"] = "desc",
    ) -> Result[SellerStockPage, CommerceError]:
        """
        One seller's stock joined with product name, price and image.

        page is at least 1; limit is clamped to ``[1, 100]``. Ties are broken
        by product id so pages never overlap.
        """
        if self._catalog is None:
            raise RuntimeError("seller_inventory needs a catalog")
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        products = {p.id: p for p in await self._catalog.products_by_seller(seller_id)}
        if not products:
            return Ok(SellerStockPage(page=page, limit=limit))

        column = getattr(InventoryTable, sort.value)
        ordering = column.asc() if order == "asc" else column.desc()
        stmt = select(InventoryTable).where(InventoryTable.product_id.in_(list(products)))

        async with self._session() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            rows = (
                await session.execute(
                    stmt.order_by(ordering, InventoryTable.product_id.asc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars()
            items = [
                SellerStock(
                    inventory=Inventory.from_row(row),
                    name=products[row.product_id].name,
                    price=products[row.product_id].price,
                    image=products[row.product_id].image,
                )
                for row in rows
            ]

        return Ok(SellerStockPage(items=items, total=total, page=page, limit=limit))

    async def low_stock(self, threshold: int | None = None) -> AsyncIterator[Inventory]:
        """
        Lazily yield inventories with quantity <= threshold, lowest first.

            async for inv in ledger.low_stock(3):
                ...
        """
        limit = self._low_stock_threshold if threshold is None else threshold
        async with self._session() as session:
            rows = await session.stream_scalars(
                select(InventoryTable)
                .where(InventoryTable.quantity <= limit)
                .order_by(InventoryTable.quantity.asc(), InventoryTable.product_id.asc())
            )
            async for row in rows:
                yield Inventory.from_row(row)

    # ═══════════════════════════════════════════════════════════════════════════
    # Create / Update
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("inventory.create")
    async def create_inventory(
        self,
        product_id: str,
        quantity: int,
        sku: str | None = None,
        location: str | None = None,
    ) -> Result[Inventory, CommerceError]:
        if quantity < 0:
            return Error(Errors.validation("Quantity cannot be negative", "INVALID_QUANTITY"))

        now = utcnow()
        row = InventoryTable(
            product_id=product_id,
            quantity=quantity,
            reserved_quantity=0,
            sku=sku,
            location=location,
            last_restock_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            return Error(Errors.already_exists("Inventory", product_id))

        logger.info("inventory_created", product_id=product_id, quantity=quantity)
        return Ok(Inventory.from_row(row))

    @guarded("inventory.update")
    async def update_inventory(
        self, product_id: str, patch: InventoryUpdate
    ) -> Result[Inventory, CommerceError]:
        async with self._session() as session:
            row = await self._row(session, product_id)
            if row is None:
                return Error(Errors.not_found("Inventory", product_id))

            quantity = row.quantity if patch.quantity is None else patch.quantity
            reserved = (
                row.reserved_quantity
                if patch.reserved_quantity is None
                else patch.reserved_quantity
            )
            if quantity < 0 or reserved < 0 or reserved > quantity:
                return Error(Errors.validation(
                    "Reserved quantity must be between 0 and quantity",
                    "INVALID_QUANTITY",
                ))

            now = utcnow()
            if patch.quantity is not None:
                row.quantity = quantity
                row.last_restock_at = now
            row.reserved_quantity = reserved
            if patch.sku is not None:
                row.sku = patch.sku
            if patch.location is not None:
                row.location = patch.location
            row.updated_at = now

            await session.commit()
            return Ok(Inventory.from_row(row))

    # ═══════════════════════════════════════════════════════════════════════════
    # Conditional Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    async def _apply(
        self,
        product_id: str,
        stmt: Update,
        on_miss: CommerceError,
    ) -> Result[Inventory, CommerceError]:
        async with self._session() as session:
            result = await session.execute(stmt)
            row = await self._row(session, product_id)
            if row is None:
                await session.rollback()
                return Error(Errors.not_found("Inventory", product_id))
            if result.rowcount == 0:
                await session.rollback()
                return Error(on_miss)
            await session.commit()
            return Ok(Inventory.from_row(row))

    @guarded("inventory.take")
    async def take_stock(self, product_id: str, quantity: int) -> Result[StockTake, CommerceError]:
        """
        Take quantity off hand, releasing up to the same amount of reservation.

        The conditional UPDATE holds the row, so the reservation read after it
        is settled in the same transaction. Fails INSUFFICIENT_STOCK when
        quantity > on-hand.
        """
        match _positive(quantity):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        async with self._session() as session:
            result = await session.execute(
                update(InventoryTable)
                .where(
                    InventoryTable.product_id == product_id,
                    InventoryTable.quantity >= quantity,
                )
                .values(quantity=InventoryTable.quantity - quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            row = await self._row(session, product_id)
            if row is None:
                await session.rollback()
                return Error(Errors.not_found("Inventory", product_id))
            if result.rowcount == 0:
                await session.rollback()
                logger.info("inventory_decrease_rejected", product_id=product_id, quantity=quantity)
                return Error(Errors.insufficient_stock(product_id))

            released = min(quantity, row.reserved_quantity)
            row.reserved_quantity -= released
            await session.commit()
            take = StockTake(Inventory.from_row(row), quantity, released)

        logger.info(
            "inventory_decreased",
            product_id=product_id,
            quantity=quantity,
            released=released,
            remaining=take.inventory.quantity,
        )
        return Ok(take)

    async def decrease_inventory(
        self, product_id: str, quantity: int
    ) -> Result[Inventory, CommerceError]:
        """take_stock for callers that only need the new counters."""
        match await self.take_stock(product_id, quantity):
            case Ok(take):
                return Ok(take.inventory)
            case Error(e):
                return Error(e)

    @guarded("inventory.undo_take")
    async def undo_take(self, take: StockTake) -> Result[Inventory, CommerceError]:
        """Give back both counters a take changed, in one UPDATE."""
        product_id = take.inventory.product_id
        stmt = (
            update(InventoryTable)
            .where(InventoryTable.product_id == product_id)
            .values(
                quantity=InventoryTable.quantity + take.quantity,
                reserved_quantity=InventoryTable.reserved_quantity + take.released,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._apply(product_id, stmt, Errors.not_found("Inventory", product_id))
        match result:
            case Ok(inv):
                logger.info(
                    "inventory_take_undone",
                    product_id=product_id,
                    quantity=take.quantity,
                    released=take.released,
                    on_hand=inv.quantity,
                )
            case Error(e):
                logger.error("inventory_undo_failed", product_id=product_id, code=e.code)
        return result

    @guarded("inventory.reserve")
    async def reserve_inventory(
        self, product_id: str, quantity: int
    ) -> Result[Inventory, CommerceError]:
        """Hold quantity; fails INSUFFICIENT_STOCK when available < quantity."""
        match _positive(quantity):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        stmt = (
            update(InventoryTable)
            .where(
                InventoryTable.product_id == product_id,
                InventoryTable.quantity - InventoryTable.reserved_quantity >= quantity,
            )
            .values(
                reserved_quantity=InventoryTable.reserved_quantity + quantity,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._apply(product_id, stmt, Errors.insufficient_stock(product_id))

    @guarded("inventory.release")
    async def release_reserved_inventory(
        self, product_id: str, quantity: int
    ) -> Result[Inventory, CommerceError]:
        """Drop a hold; reserved floors at zero."""
        match _positive(quantity):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        stmt = (
            update(InventoryTable)
            .where(InventoryTable.product_id == product_id)
            .values(
                reserved_quantity=case(
                    (
                        InventoryTable.reserved_quantity > quantity,
                        InventoryTable.reserved_quantity - quantity,
                    ),
                    else_=0,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._apply(product_id, stmt, Errors.not_found("Inventory", product_id))

    @guarded("inventory.restock")
    async def restock(self, product_id: str, quantity: int) -> Result[Inventory, CommerceError]:
        """Return quantity to on-hand (checkout rollback, cancellation)."""
        match _positive(quantity):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        now = utcnow()
        stmt = (
            update(InventoryTable)
            .where(InventoryTable.product_id == product_id)
            .values(
                quantity=InventoryTable.quantity + quantity,
                last_restock_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._apply(product_id, stmt, Errors.not_found("Inventory", product_id))
        match result:
            case Ok(inv):
                logger.info("inventory_restocked", product_id=product_id, quantity=quantity, on_hand=inv.quantity)
            case Error(e):
                logger.error("inventory_restock_failed", product_id=product_id, code=e.code)
        return result


__all__ = ("InventoryLedger",)
