"""
Cart — per-user shopping cart with read-time catalog enrichment.
"""

from storefront.cart._types import AddToCart, CartLineView, CartView
from storefront.cart._service import CartService, UNAVAILABLE_NAME

__all__ = (
    "AddToCart",
    "CartLineView",
    "CartView",
    "CartService",
    "UNAVAILABLE_NAME",
)
