"""
Pricing — pure totals computation.
"""

from storefront.pricing._totals import PriceLine, Totals, shipping_for, compute_totals

__all__ = ("PriceLine", "Totals", "shipping_for", "compute_totals")
