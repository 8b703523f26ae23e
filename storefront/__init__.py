"""
storefront — marketplace checkout, pricing and order lifecycle.

    from storefront import saga as S          # Compensated multi-step writes
    from storefront import graph as G         # Checkout computation graph
    from storefront import idempotency as I   # At-most-once gateway calls

    from storefront.app import Storefront     # Wired services
"""

from storefront import saga
from storefront import graph
from storefront import idempotency
from storefront._types import Money, money
from storefront.errors import CommerceError, ErrorKind, Errors

__version__ = "0.1.0"

__all__ = (
    "saga",
    "graph",
    "idempotency",
    "Money",
    "money",
    "CommerceError",
    "ErrorKind",
    "Errors",
)
