"""
Coupon service — storage and redemption around the pure rules.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog
from kungfu import Result, Ok, Error
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from storefront._types import Money, to_cents, utcnow
from storefront.coupons._rules import (
    as_draft,
    definition_problem,
    evaluate,
    normalize_code,
    normalized,
)
from storefront.coupons._types import (
    Coupon,
    CouponDraft,
    CouponLine,
    CouponPatch,
    CouponVerdict,
)
from storefront.db import CouponTable, SessionFactory, guarded
from storefront.errors import CommerceError, Errors
from storefront.notify import EventKind, NotificationDispatcher, OrderEvent

logger = structlog.get_logger(__name__)

_CLEARABLE = frozenset({"min_purchase", "max_discount", "usage_limit"})


def _cents_or_none(amount: Money | None) -> int | None:
    return to_cents(amount) if amount is not None else None


class CouponService:
    def __init__(
        self,
        session_factory: SessionFactory,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._session = session_factory
        self._dispatcher = dispatcher

    # ═══════════════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════════════

    async def find(self, code: str) -> Coupon | None:
        async with self._session() as session:
            row = await session.get(CouponTable, normalize_code(code))
            return Coupon.from_row(row) if row is not None else None

    @guarded("coupon.get")
    async def get_coupon(self, code: str) -> Result[Coupon, CommerceError]:
        coupon = await self.find(code)
        if coupon is None:
            return Error(Errors.not_found("Coupon", code))
        return Ok(coupon)

    @guarded("coupon.list")
    async def list_coupons(
        self,
        *,
        active_only: bool = False,
        now: datetime | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Result[tuple[list[Coupon], int], CommerceError]:
        """Newest first. Returns (coupons, total)."""
        page = max(page, 1)
        limit = max(limit, 1)
        stmt = select(CouponTable)
        if active_only:
            at = now or utcnow()
            stmt = stmt.where(
                CouponTable.is_active.is_(True),
                CouponTable.starts_at <= at,
                CouponTable.expires_at >= at,
            )
        async with self._session() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            rows = (
                await session.execute(
                    stmt.order_by(CouponTable.created_at.desc(), CouponTable.code)
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars()
            return Ok(([Coupon.from_row(r) for r in rows], total))

    @guarded("coupon.validate")
    async def validate_coupon(
        self,
        code: str,
        lines: Sequence[CouponLine],
        now: datetime | None = None,
    ) -> Result[CouponVerdict, CommerceError]:
        """
        Evaluate a coupon against cart lines.

        An unusable coupon is Ok(verdict) with valid=False; Error is
        reserved for storage failures.
        """
        coupon = await self.find(code)
        return Ok(evaluate(coupon, lines, now or utcnow()))

    # ═══════════════════════════════════════════════════════════════════════════
    # Admin writes
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("coupon.create")
    async def create_coupon(
        self, draft: CouponDraft, created_by: str | None = None
    ) -> Result[Coupon, CommerceError]:
        draft = normalized(draft)
        if (problem := definition_problem(draft)) is not None:
            return Error(Errors.validation(problem, "INVALID_COUPON"))

        row = CouponTable(
            code=draft.code,
            type=draft.type.value,
            value_cents=to_cents(draft.value),
            min_purchase_cents=_cents_or_none(draft.min_purchase),
            max_discount_cents=_cents_or_none(draft.max_discount),
            applicability=draft.applicability.value,
            product_ids=sorted(draft.product_ids),
            category_ids=sorted(draft.category_ids),
            usage_limit=draft.usage_limit,
            usage_count=0,
            starts_at=draft.starts_at,
            expires_at=draft.expires_at,
            is_active=draft.is_active,
            description=draft.description,
            created_at=utcnow(),
        )
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            return Error(Errors.already_exists("Coupon", draft.code))

        coupon = Coupon.from_row(row)
        logger.info("coupon_created", code=coupon.code, created_by=created_by)
        if self._dispatcher is not None:
            self._dispatcher.emit(OrderEvent(
                EventKind.COUPON_CREATED,
                coupon.code,
                data={"type": coupon.type.value, "value": str(coupon.value)},
            ))
        return Ok(coupon)

    @guarded("coupon.update")
    async def update_coupon(self, code: str, patch: CouponPatch) -> Result[Coupon, CommerceError]:
        if unknown := patch.clear - _CLEARABLE:
            return Error(Errors.validation(f"Cannot clear: {', '.join(sorted(unknown))}"))

        async with self._session() as session:
            row = await session.get(CouponTable, normalize_code(code))
            if row is None:
                return Error(Errors.not_found("Coupon", code))

            current = as_draft(Coupon.from_row(row))
            merged = CouponDraft(
                code=current.code,
                type=patch.type or current.type,
                value=patch.value if patch.value is not None else current.value,
                starts_at=patch.starts_at or current.starts_at,
                expires_at=patch.expires_at or current.expires_at,
                applicability=patch.applicability or current.applicability,
                min_purchase=None if "min_purchase" in patch.clear else (
                    patch.min_purchase if patch.min_purchase is not None else current.min_purchase
                ),
                max_discount=None if "max_discount" in patch.clear else (
                    patch.max_discount if patch.max_discount is not None else current.max_discount
                ),
                product_ids=patch.product_ids if patch.product_ids is not None else current.product_ids,
                category_ids=patch.category_ids if patch.category_ids is not None else current.category_ids,
                usage_limit=None if "usage_limit" in patch.clear else (
                    patch.usage_limit if patch.usage_limit is not None else current.usage_limit
                ),
                is_active=patch.is_active if patch.is_active is not None else current.is_active,
                description=patch.description if patch.description is not None else current.description,
            )
            if (problem := definition_problem(merged)) is not None:
                return Error(Errors.validation(problem, "INVALID_COUPON"))

            row.type = merged.type.value
            row.value_cents = to_cents(merged.value)
            row.starts_at = merged.starts_at
            row.expires_at = merged.expires_at
            row.applicability = merged.applicability.value
            row.min_purchase_cents = _cents_or_none(merged.min_purchase)
            row.max_discount_cents = _cents_or_none(merged.max_discount)
            row.product_ids = sorted(merged.product_ids)
            row.category_ids = sorted(merged.category_ids)
            row.usage_limit = merged.usage_limit
            row.is_active = merged.is_active
            row.description = merged.description
            await session.commit()
            return Ok(Coupon.from_row(row))

    @guarded("coupon.delete")
    async def delete_coupon(self, code: str) -> Result[None, CommerceError]:
        async with self._session() as session:
            result = await session.execute(
                delete(CouponTable).where(CouponTable.code == normalize_code(code))
            )
            await session.commit()
        if result.rowcount == 0:
            return Error(Errors.not_found("Coupon", code))
        return Ok(None)

    # ═══════════════════════════════════════════════════════════════════════════
    # Redemption
    # ═══════════════════════════════════════════════════════════════════════════

    @guarded("coupon.increment_usage")
    async def increment_usage_count(self, code: str) -> Result[str, CommerceError]:
        """
        Count one redemption.

        Conditional on usage_count < usage_limit, so concurrent checkouts
        can never push a coupon past its limit.
        """
        key = normalize_code(code)
        async with self._session() as session:
            result = await session.execute(
                update(CouponTable)
                .where(
                    CouponTable.code == key,
                    (CouponTable.usage_limit.is_(None))
                    | (CouponTable.usage_count < CouponTable.usage_limit),
                )
                .values(usage_count=CouponTable.usage_count + 1)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            if await self.find(key) is None:
                return Error(Errors.not_found("Coupon", key))
            return Error(Errors.conflict("COUPON_EXHAUSTED", "Coupon usage limit has been reached"))

        logger.info("coupon_redeemed", code=key)
        return Ok(key)

    @guarded("coupon.revert_usage")
    async def revert_usage(self, code: str) -> Result[None, CommerceError]:
        """Undo a redemption whose order was never created."""
        async with self._session() as session:
            await session.execute(
                update(CouponTable)
                .where(CouponTable.code == normalize_code(code), CouponTable.usage_count > 0)
                .values(usage_count=CouponTable.usage_count - 1)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        logger.info("coupon_redemption_reverted", code=code)
        return Ok(None)


__all__ = ("CouponService",)
