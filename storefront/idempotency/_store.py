"""
Idempotency store — typed storage protocol.

All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront.idempotency._types import RecordState, IdempotencyRecord


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol — Typed, Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class Store[T](Protocol):
    """Idempotency store; T is the value type of completed records."""

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        """Get existing record. Returns Ok(None) if not found or expired."""
        ...

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]:
        """
        Atomically set pending state.

        Returns Ok(True) if set, Ok(False) if a live record exists.
        Must be atomic (compare-and-swap).
        """
        ...

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        ...

    async def delete(self, key: str) -> Result[bool, StoreError]:
        """Delete record. Returns Ok(True) if existed."""
        ...


type StoreAny = Store[Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore[T]:
    """
    In-memory idempotency store.

    Single process only: no shared lock, nothing survives restart.
    """

    def __init__(self) -> None:
        self._records: dict[str, IdempotencyRecord[T]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> IdempotencyRecord[T] | None:
        record = self._records.get(key)
        if record is not None and record.is_expired:
            del self._records[key]
            return None
        return record

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        async with self._lock:
            return Ok(self._live(key))

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if self._live(key) is not None:
                return Ok(False)

            now = utcnow()
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                created_at=now,
                expires_at=now + ttl if ttl else None,
            )
            return Ok(True)

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return Error(StoreError(f"No pending record for key: {key}"))

            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.COMPLETED,
                value=value,
                created_at=existing.created_at,
                expires_at=utcnow() + ttl if ttl else None,
            )
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "StoreError",
    "Store",
    "StoreAny",
    "MemoryStore",
)
