"""
Configuration — immutable settings with fluent overrides.

    settings = Settings.from_env().with_tax_rate("0.08")

Environment variables use the ``STOREFRONT_`` prefix
(``STOREFRONT_DATABASE_URL``, ``STOREFRONT_TAX_RATE``, ...).
A ``.env`` file in the working directory is loaded first if present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv

from storefront._types import Money, money


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Runtime settings.

    Note: Immutable. Each with_* method returns new Settings.
    """

    database_url: str = "sqlite+aiosqlite:///storefront.db"
    flat_shipping: Money = Decimal("5.00")
    tax_rate: Decimal = Decimal("0.10")
    currency: str = "USD"
    low_stock_threshold: int = 5
    page_size: int = 10
    max_page_size: int = 100
    restock_on_cancel: bool = False
    gateway_timeout_seconds: float = 10.0
    payment_idempotency_ttl_seconds: int = 86400

    @property
    def payment_idempotency_ttl(self) -> timedelta:
        return timedelta(seconds=self.payment_idempotency_ttl_seconds)

    def with_database_url(self, url: str) -> Settings:
        return replace(self, database_url=url)

    def with_flat_shipping(self, amount: Decimal | str) -> Settings:
        return replace(self, flat_shipping=money(amount))

    def with_tax_rate(self, rate: Decimal | str) -> Settings:
        """
        Set tax rate as a fraction.

            .with_tax_rate("0.08")  # 8%
        """
        return replace(self, tax_rate=Decimal(rate))

    def with_low_stock_threshold(self, threshold: int) -> Settings:
        return replace(self, low_stock_threshold=threshold)

    def with_page_size(self, size: int, maximum: int | None = None) -> Settings:
        return replace(
            self,
            page_size=size,
            max_page_size=maximum if maximum is not None else self.max_page_size,
        )

    def with_restock_on_cancel(self, enabled: bool = True) -> Settings:
        """Return stock to the ledger when a PENDING/PAID order is cancelled."""
        return replace(self, restock_on_cancel=enabled)

    def with_gateway_timeout(self, *, seconds: float) -> Settings:
        return replace(self, gateway_timeout_seconds=seconds)

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> Settings:
        """Build settings from environment, falling back to defaults."""
        load_dotenv()
        defaults = cls()

        def env(name: str) -> str | None:
            return os.getenv(f"{prefix}{name}")

        def flag(name: str, default: bool) -> bool:
            raw = env(name)
            if raw is None:
                return default
            return raw.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            database_url=env("DATABASE_URL") or defaults.database_url,
            flat_shipping=money(env("FLAT_SHIPPING") or defaults.flat_shipping),
            tax_rate=Decimal(env("TAX_RATE") or defaults.tax_rate),
            currency=env("CURRENCY") or defaults.currency,
            low_stock_threshold=int(env("LOW_STOCK_THRESHOLD") or defaults.low_stock_threshold),
            page_size=int(env("PAGE_SIZE") or defaults.page_size),
            max_page_size=int(env("MAX_PAGE_SIZE") or defaults.max_page_size),
            restock_on_cancel=flag("RESTOCK_ON_CANCEL", defaults.restock_on_cancel),
            gateway_timeout_seconds=float(
                env("GATEWAY_TIMEOUT_SECONDS") or defaults.gateway_timeout_seconds
            ),
            payment_idempotency_ttl_seconds=int(
                env("PAYMENT_IDEMPOTENCY_TTL_SECONDS")
                or defaults.payment_idempotency_ttl_seconds
            ),
        )


__all__ = ("Settings",)
