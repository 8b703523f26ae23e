"""
Errors — typed failure values for every service boundary.

Services never raise business failures; they return
``Error(CommerceError(...))`` and the HTTP layer maps ``kind`` to a status.

    from storefront.errors import Errors

    return Error(Errors.not_found("Order", order_id))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# Error Kind — Taxonomy
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    INSUFFICIENT_STOCK = "insufficient_stock"
    ALREADY_EXISTS = "already_exists"
    EMPTY_CART = "empty_cart"
    EXTERNAL_FAILURE = "external_failure"


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.ALREADY_EXISTS: 400,
    ErrorKind.EMPTY_CART: 400,
    ErrorKind.EXTERNAL_FAILURE: 500,
}


# ═══════════════════════════════════════════════════════════════════════════════
# CommerceError — The One Error Value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CommerceError:
    """
    Business failure.

    code: stable machine string (``ORDER_NOT_PENDING``), safe to show clients.
    message: human readable, never contains internals.
    """

    kind: ErrorKind
    code: str
    message: str

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]


# ═══════════════════════════════════════════════════════════════════════════════
# Errors — Factories
# ═══════════════════════════════════════════════════════════════════════════════


class Errors:
    @staticmethod
    def validation(message: str, code: str = "VALIDATION_ERROR") -> CommerceError:
        return CommerceError(ErrorKind.VALIDATION, code, message)

    @staticmethod
    def not_found(entity: str, ident: object) -> CommerceError:
        return CommerceError(
            ErrorKind.NOT_FOUND,
            f"{entity.upper().replace(' ', '_')}_NOT_FOUND",
            f"{entity} not found: {ident}",
        )

    @staticmethod
    def unauthorized(message: str = "Not authorized to perform this action") -> CommerceError:
        return CommerceError(ErrorKind.UNAUTHORIZED, "UNAUTHORIZED", message)

    @staticmethod
    def conflict(code: str, message: str) -> CommerceError:
        return CommerceError(ErrorKind.CONFLICT, code, message)

    @staticmethod
    def insufficient_stock(product_id: str) -> CommerceError:
        return CommerceError(
            ErrorKind.INSUFFICIENT_STOCK,
            "INSUFFICIENT_STOCK",
            f"Not enough inventory for product {product_id}",
        )

    @staticmethod
    def already_exists(entity: str, ident: object) -> CommerceError:
        return CommerceError(
            ErrorKind.ALREADY_EXISTS,
            f"{entity.upper()}_EXISTS",
            f"{entity} already exists: {ident}",
        )

    @staticmethod
    def empty_cart() -> CommerceError:
        return CommerceError(
            ErrorKind.EMPTY_CART,
            "EMPTY_CART",
            "No selected items available for checkout",
        )

    @staticmethod
    def external(code: str = "EXTERNAL_FAILURE", message: str = "Upstream service failed") -> CommerceError:
        return CommerceError(ErrorKind.EXTERNAL_FAILURE, code, message)

    @staticmethod
    def storage() -> CommerceError:
        return CommerceError(
            ErrorKind.EXTERNAL_FAILURE, "STORAGE_ERROR", "Storage operation failed"
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("ErrorKind", "CommerceError", "Errors")
