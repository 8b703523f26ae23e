"""
Coupon rules — pure evaluation, no storage.

Checks run in a fixed order and stop at the first failure:
active → window → usage limit → minimum purchase → applicability.

The discount is computed on the subtotal of the lines the coupon applies to
(every line for ALL_PRODUCTS). The minimum purchase is checked against the
whole subtotal.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from storefront._types import Money, ZERO, money
from storefront.coupons._types import (
    Applicability,
    Coupon,
    CouponDraft,
    CouponLine,
    CouponType,
    CouponVerdict,
)

MSG_NOT_FOUND = "Coupon not found or inactive"
MSG_WINDOW = "Coupon has expired or not yet active"
MSG_EXHAUSTED = "Coupon usage limit has been reached"
MSG_NOT_APPLICABLE = "Coupon is not applicable to the items in your cart"


def min_purchase_message(amount: Money) -> str:
    return f"Minimum purchase amount of ${amount:.2f} required"


# ═══════════════════════════════════════════════════════════════════════════════
# Applicability
# ═══════════════════════════════════════════════════════════════════════════════


def applies_to(coupon: Coupon, line: CouponLine) -> bool:
    match coupon.applicability:
        case Applicability.ALL_PRODUCTS:
            return True
        case Applicability.SPECIFIC_PRODUCTS:
            return line.product_id in coupon.product_ids
        case Applicability.SPECIFIC_CATEGORIES:
            return line.category_id is not None and line.category_id in coupon.category_ids


def applicable_subtotal(coupon: Coupon, lines: Sequence[CouponLine]) -> Money:
    return money(sum((l.amount for l in lines if applies_to(coupon, l)), ZERO))


# ═══════════════════════════════════════════════════════════════════════════════
# Discount
# ═══════════════════════════════════════════════════════════════════════════════


def discount_for(coupon: Coupon, base: Money) -> Money:
    """
    PERCENTAGE: base x value / 100, capped at max_discount.
    FIXED: value, capped at base.

    Never negative, never more than base.
    """
    if base <= ZERO:
        return ZERO

    match coupon.type:
        case CouponType.PERCENTAGE:
            amount = money(base * coupon.value / Decimal(100))
            if coupon.max_discount is not None:
                amount = min(amount, coupon.max_discount)
        case CouponType.FIXED:
            amount = money(coupon.value)

    return max(ZERO, min(amount, base))


# ═══════════════════════════════════════════════════════════════════════════════
# evaluate()
# ═══════════════════════════════════════════════════════════════════════════════


def evaluate(
    coupon: Coupon | None,
    lines: Sequence[CouponLine],
    now: datetime,
) -> CouponVerdict:
    """Run every check in order; valid verdicts carry the discount."""
    if coupon is None or not coupon.is_active:
        return CouponVerdict.rejected("COUPON_NOT_FOUND", MSG_NOT_FOUND)

    if now < coupon.starts_at or now > coupon.expires_at:
        return CouponVerdict.rejected("COUPON_EXPIRED", MSG_WINDOW)

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return CouponVerdict.rejected("COUPON_EXHAUSTED", MSG_EXHAUSTED)

    subtotal = money(sum((l.amount for l in lines), ZERO))
    if coupon.min_purchase is not None and subtotal < coupon.min_purchase:
        return CouponVerdict.rejected(
            "COUPON_MIN_PURCHASE", min_purchase_message(coupon.min_purchase)
        )

    if coupon.applicability != Applicability.ALL_PRODUCTS and not any(
        applies_to(coupon, l) for l in lines
    ):
        return CouponVerdict.rejected("COUPON_NOT_APPLICABLE", MSG_NOT_APPLICABLE)

    discount = discount_for(coupon, applicable_subtotal(coupon, lines))
    return CouponVerdict(
        valid=True,
        discount_amount=discount,
        subtotal_after_discount=subtotal - discount,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Definition checks
# ═══════════════════════════════════════════════════════════════════════════════


def normalize_code(code: str) -> str:
    return code.strip().upper()


def definition_problem(draft: CouponDraft) -> str | None:
    """Why a coupon definition is unusable, or None."""
    if not draft.code.strip():
        return "Coupon code is required"
    if draft.value <= 0:
        return "Coupon value must be positive"
    if draft.type == CouponType.PERCENTAGE and draft.value > 100:
        return "Percentage coupons cannot exceed 100"
    if draft.starts_at >= draft.expires_at:
        return "Coupon must start before it expires"
    if draft.min_purchase is not None and draft.min_purchase < 0:
        return "Minimum purchase cannot be negative"
    if draft.max_discount is not None and draft.max_discount <= 0:
        return "Maximum discount must be positive"
    if draft.usage_limit is not None and draft.usage_limit < 1:
        return "Usage limit must be at least 1"
    if draft.applicability == Applicability.SPECIFIC_PRODUCTS and not draft.product_ids:
        return "Product-specific coupons need product ids"
    if draft.applicability == Applicability.SPECIFIC_CATEGORIES and not draft.category_ids:
        return "Category-specific coupons need category ids"
    return None


def as_draft(coupon: Coupon) -> CouponDraft:
    return CouponDraft(
        code=coupon.code,
        type=coupon.type,
        value=coupon.value,
        starts_at=coupon.starts_at,
        expires_at=coupon.expires_at,
        applicability=coupon.applicability,
        min_purchase=coupon.min_purchase,
        max_discount=coupon.max_discount,
        product_ids=coupon.product_ids,
        category_ids=coupon.category_ids,
        usage_limit=coupon.usage_limit,
        is_active=coupon.is_active,
        description=coupon.description,
    )


def normalized(draft: CouponDraft) -> CouponDraft:
    return replace(draft, code=normalize_code(draft.code))


__all__ = (
    "MSG_NOT_FOUND",
    "MSG_WINDOW",
    "MSG_EXHAUSTED",
    "MSG_NOT_APPLICABLE",
    "min_purchase_message",
    "applies_to",
    "applicable_subtotal",
    "discount_for",
    "evaluate",
    "normalize_code",
    "definition_problem",
    "as_draft",
    "normalized",
)
