"""
Coupon types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from storefront._types import Money, ZERO, from_cents
from storefront.db import CouponTable


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Applicability(Enum):
    ALL_PRODUCTS = "all_products"
    SPECIFIC_PRODUCTS = "specific_products"
    SPECIFIC_CATEGORIES = "specific_categories"


@dataclass(frozen=True, slots=True)
class Coupon:
    """
    Discount rule.

    value: percent points for PERCENTAGE (10 == 10%), an amount for FIXED.
    """

    code: str
    type: CouponType
    value: Decimal
    applicability: Applicability
    starts_at: datetime
    expires_at: datetime
    min_purchase: Money | None = None
    max_discount: Money | None = None
    product_ids: frozenset[str] = frozenset()
    category_ids: frozenset[str] = frozenset()
    usage_limit: int | None = None
    usage_count: int = 0
    is_active: bool = True
    description: str | None = None

    @classmethod
    def from_row(cls, row: CouponTable) -> Coupon:
        return cls(
            code=row.code,
            type=CouponType(row.type),
            value=from_cents(row.value_cents),
            applicability=Applicability(row.applicability),
            starts_at=row.starts_at,
            expires_at=row.expires_at,
            min_purchase=from_cents(row.min_purchase_cents) if row.min_purchase_cents is not None else None,
            max_discount=from_cents(row.max_discount_cents) if row.max_discount_cents is not None else None,
            product_ids=frozenset(row.product_ids or ()),
            category_ids=frozenset(row.category_ids or ()),
            usage_limit=row.usage_limit,
            usage_count=row.usage_count,
            is_active=row.is_active,
            description=row.description,
        )


@dataclass(frozen=True, slots=True)
class CouponLine:
    """One cart line as the evaluator sees it: amount = unit price x quantity."""

    product_id: str
    category_id: str | None
    amount: Money


@dataclass(frozen=True, slots=True)
class CouponVerdict:
    """
    Outcome of evaluating a coupon against lines.

    code is the rejection reason (``COUPON_EXPIRED``...) when not valid.
    """

    valid: bool
    message: str | None = None
    code: str | None = None
    discount_amount: Money = ZERO
    subtotal_after_discount: Money | None = None

    @classmethod
    def rejected(cls, code: str, message: str) -> CouponVerdict:
        return cls(valid=False, message=message, code=code)


@dataclass(frozen=True, slots=True)
class CouponDraft:
    code: str
    type: CouponType
    value: Decimal
    starts_at: datetime
    expires_at: datetime
    applicability: Applicability = Applicability.ALL_PRODUCTS
    min_purchase: Money | None = None
    max_discount: Money | None = None
    product_ids: frozenset[str] = frozenset()
    category_ids: frozenset[str] = frozenset()
    usage_limit: int | None = None
    is_active: bool = True
    description: str | None = None


@dataclass(frozen=True, slots=True)
class CouponPatch:
    """
    Partial update. None leaves a field unchanged; names in ``clear``
    (min_purchase, max_discount, usage_limit) are reset to unset.
    """

    type: CouponType | None = None
    value: Decimal | None = None
    applicability: Applicability | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    min_purchase: Money | None = None
    max_discount: Money | None = None
    product_ids: frozenset[str] | None = None
    category_ids: frozenset[str] | None = None
    usage_limit: int | None = None
    is_active: bool | None = None
    description: str | None = None
    clear: frozenset[str] = field(default_factory=frozenset)


__all__ = (
    "CouponType",
    "Applicability",
    "Coupon",
    "CouponLine",
    "CouponVerdict",
    "CouponDraft",
    "CouponPatch",
)
