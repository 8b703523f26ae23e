"""
Coupons — discount rules, evaluation, redemption.

    verdict = evaluate(coupon, lines, now)        # pure
    await coupons.validate_coupon("SAVE10", lines)  # with lookup
    await coupons.increment_usage_count("SAVE10")   # once per placed order
"""

from storefront.coupons._types import (
    CouponType,
    Applicability,
    Coupon,
    CouponLine,
    CouponVerdict,
    CouponDraft,
    CouponPatch,
)
from storefront.coupons._rules import (
    applicable_subtotal,
    discount_for,
    evaluate,
    normalize_code,
)
from storefront.coupons._service import CouponService

__all__ = (
    "CouponType",
    "Applicability",
    "Coupon",
    "CouponLine",
    "CouponVerdict",
    "CouponDraft",
    "CouponPatch",
    "applicable_subtotal",
    "discount_for",
    "evaluate",
    "normalize_code",
    "CouponService",
)
