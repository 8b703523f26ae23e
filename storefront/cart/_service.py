"""
Cart service — one cart per user, lines keyed by (product, variant).

Reads never create rows: a user without a cart gets an empty view.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from kungfu import Result, Ok, Error
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront._types import ZERO, from_cents, money, to_cents, utcnow
from storefront.cart._types import AddToCart, CartLineView, CartView
from storefront.collaborators import Catalog, Product
from storefront.coupons import normalize_code
from storefront.db import CartItemTable, CartTable, SessionFactory, guarded
from storefront.errors import CommerceError, Errors

logger = structlog.get_logger(__name__)

UNAVAILABLE_NAME = "Product not available"


def _matches(item: CartItemTable, product_id: str, variant_id: str | None) -> bool:
    return item.product_id == product_id and item.variant_id == variant_id


class CartService:
    def __init__(self, session_factory: SessionFactory, catalog: Catalog) -> None:
        self._session = session_factory
        self._catalog = catalog

    # ═══════════════════════════════════════════════════════════════════════════
    # Enrichment
    # ═══════════════════════════════════════════════════════════════════════════

    async def _view(self, user_id: str, cart: CartTable | None) -> CartView:
        if cart is None:
            return CartView(user_id=user_id, lines=(), coupon_code=None, subtotal=ZERO)

        ids = list(dict.fromkeys(item.product_id for item in cart.items))
        products = {p.id: p for p in await self._catalog.get_products(ids)}
        lines = tuple(self._enrich(item, products.get(item.product_id)) for item in cart.items)
        subtotal = money(sum((line.line_total for line in lines if line.purchasable), ZERO))
        return CartView(
            user_id=user_id,
            lines=lines,
            coupon_code=cart.coupon_code,
            subtotal=subtotal,
        )

    @staticmethod
    def _enrich(item: CartItemTable, product: Product | None) -> CartLineView:
        price = from_cents(item.price_cents)
        available = product is not None and product.is_active
        return CartLineView(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            price=price,
            selected=item.selected,
            product_name=product.name if product else UNAVAILABLE_NAME,
            product_image=(product.image or "") if product else "",
            available=available,
            in_stock=available and product.stock_for(item.variant_id) >= item.quantity,
            current_price=product.price_for(item.variant_id) if product else price,
            product=product,
        )

    @staticmethod
    async def _load(session: AsyncSession, user_id: str) -> CartTable | None:
        return (
            await session.execute(select(CartTable).where(CartTable.user_id == user_id))
        ).scalar_one_or_none()

    async def _ensure(self, session: AsyncSession, user_id: str) -> CartTable:
        cart = await self._load(session, user_id)
        if cart is None:
            cart = CartTable(user_id=user_id, coupon_code=None, updated_at=utcnow(), items=[])
            session.add(cart)
        return cart

    # ═══════════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("cart.get")
    async def get_cart(self, user_id: str) -> Result[CartView, CommerceError]:
        async with self._session() as session:
            return Ok(await self._view(user_id, await self._load(session, user_id)))

    @guarded("cart.selected_lines")
    async def selected_lines(self, user_id: str) -> Result[tuple[CartLineView, ...], CommerceError]:
        """Selected, available, in-stock lines: what a checkout would buy."""
        async with self._session() as session:
            view = await self._view(user_id, await self._load(session, user_id))
        return Ok(view.purchasable)

    # ═══════════════════════════════════════════════════════════════════════════
    # Line Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("cart.add")
    async def add_to_cart(self, user_id: str, request: AddToCart) -> Result[CartView, CommerceError]:
        if request.quantity < 1:
            return Error(Errors.validation("Quantity must be at least 1", "INVALID_QUANTITY"))

        product = await self._catalog.get_product(request.product_id)
        if product is None or not product.is_active:
            return Error(Errors.not_found("Product", request.product_id))
        if request.variant_id is not None and request.variant_id not in product.variants:
            return Error(Errors.not_found("Variant", request.variant_id))

        async with self._session() as session:
            cart = await self._ensure(session, user_id)
            existing = next(
                (i for i in cart.items if _matches(i, request.product_id, request.variant_id)),
                None,
            )
            if existing is not None:
                existing.quantity += request.quantity
                existing.selected = True
            else:
                cart.items.append(CartItemTable(
                    product_id=request.product_id,
                    variant_id=request.variant_id,
                    quantity=request.quantity,
                    price_cents=to_cents(product.price_for(request.variant_id)),
                    selected=True,
                    added_at=utcnow(),
                ))
            cart.updated_at = utcnow()
            await session.commit()

            logger.debug(
                "cart_item_added",
                user_id=user_id,
                product_id=request.product_id,
                quantity=request.quantity,
            )
            return Ok(await self._view(user_id, cart))

    @guarded("cart.update")
    async def update_cart_item(
        self,
        user_id: str,
        product_id: str,
        *,
        variant_id: str | None = None,
        quantity: int | None = None,
        selected: bool | None = None,
    ) -> Result[CartView, CommerceError]:
        if quantity is not None and quantity < 1:
            return Error(Errors.validation("Quantity must be at least 1", "INVALID_QUANTITY"))

        async with self._session() as session:
            cart = await self._load(session, user_id)
            item = next(
                (i for i in cart.items if _matches(i, product_id, variant_id)),
                None,
            ) if cart is not None else None
            if cart is None or item is None:
                return Error(Errors.not_found("Cart item", product_id))

            if quantity is not None:
                item.quantity = quantity
            if selected is not None:
                item.selected = selected
            cart.updated_at = utcnow()
            await session.commit()
            return Ok(await self._view(user_id, cart))

    @guarded("cart.remove")
    async def remove_from_cart(
        self,
        user_id: str,
        product_id: str,
        variant_id: str | None = None,
    ) -> Result[CartView, CommerceError]:
        """Drop every line of a product, or only one variant when given."""
        async with self._session() as session:
            cart = await self._load(session, user_id)
            if cart is None:
                return Ok(await self._view(user_id, None))

            cart.items = [
                i for i in cart.items
                if not (i.product_id == product_id and (variant_id is None or i.variant_id == variant_id))
            ]
            cart.updated_at = utcnow()
            await session.commit()
            return Ok(await self._view(user_id, cart))

    @guarded("cart.clear")
    async def clear_cart(self, user_id: str) -> Result[CartView, CommerceError]:
        async with self._session() as session:
            cart = await self._load(session, user_id)
            if cart is not None:
                cart.items = []
                cart.coupon_code = None
                cart.updated_at = utcnow()
                await session.commit()
        return Ok(CartView(user_id=user_id, lines=(), coupon_code=None, subtotal=ZERO))

    @guarded("cart.remove_ordered")
    async def remove_ordered_items(
        self, user_id: str, product_ids: Iterable[str]
    ) -> Result[int, CommerceError]:
        """Remove purchased products from the cart. Returns lines removed."""
        ids = list(set(product_ids))
        if not ids:
            return Ok(0)
        async with self._session() as session:
            result = await session.execute(
                delete(CartItemTable).where(
                    CartItemTable.user_id == user_id,
                    CartItemTable.product_id.in_(ids),
                )
            )
            await session.commit()
        return Ok(result.rowcount)

    # ═══════════════════════════════════════════════════════════════════════════
    # Coupon
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("cart.apply_coupon")
    async def apply_coupon(self, user_id: str, code: str) -> Result[CartView, CommerceError]:
        """Remember a code on the cart. It is evaluated at quote/checkout time."""
        if not code.strip():
            return Error(Errors.validation("Coupon code is required", "INVALID_COUPON"))
        async with self._session() as session:
            cart = await self._ensure(session, user_id)
            cart.coupon_code = normalize_code(code)
            cart.updated_at = utcnow()
            await session.commit()
            return Ok(await self._view(user_id, cart))

    @guarded("cart.remove_coupon")
    async def remove_coupon(self, user_id: str) -> Result[CartView, CommerceError]:
        async with self._session() as session:
            cart = await self._load(session, user_id)
            if cart is None:
                return Ok(await self._view(user_id, None))
            cart.coupon_code = None
            cart.updated_at = utcnow()
            await session.commit()
            return Ok(await self._view(user_id, cart))


__all__ = ("CartService", "UNAVAILABLE_NAME")
