"""
SQLAlchemy integration — idempotency records in ``idempotency_records``.

Values are stored as JSON text, so operations wrapped with this store must
return JSON-serializable values (dicts, lists, strings, numbers).

    store = SQLAlchemyStore(session_factory)
    result = await I.run_idempotent("capture:PAY-1", capture, store, I.Policy())
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront.db import IdempotencyTable
from storefront.idempotency._types import IdempotencyRecord, RecordState
from storefront.idempotency._store import StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Status column values
# ═══════════════════════════════════════════════════════════════════════════════


class IdempotencyStatus:
    """Values of the ``state`` column."""

    PENDING = "pending"
    COMPLETED = "completed"


_TO_STATE = {
    IdempotencyStatus.PENDING: RecordState.PENDING,
    IdempotencyStatus.COMPLETED: RecordState.COMPLETED,
}


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    """Idempotency store over the shared database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Result[IdempotencyRecord[Any] | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(IdempotencyTable, key)
                if row is None:
                    return Ok(None)
                record = self._to_record(row)
                return Ok(None if record.is_expired else record)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to get: {key}", e))

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]:
        """Insert a pending row; the primary key makes this a compare-and-swap."""
        now = utcnow()
        try:
            async with self._session_factory() as session:
                existing = await session.get(IdempotencyTable, key)
                if existing is not None:
                    if not self._to_record(existing).is_expired:
                        return Ok(False)
                    await session.delete(existing)
                    await session.flush()

                session.add(IdempotencyTable(
                    key=key,
                    state=IdempotencyStatus.PENDING,
                    created_at=now,
                    expires_at=now + ttl if ttl else None,
                ))
                await session.commit()
                return Ok(True)
        except IntegrityError:
            return Ok(False)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to set pending: {key}", e))

    async def set_completed(
        self, key: str, value: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(IdempotencyTable, key)
                if row is None:
                    return Error(StoreError(f"Record not found: {key}"))

                row.state = IdempotencyStatus.COMPLETED
                row.value = json.dumps(value)
                row.expires_at = utcnow() + ttl if ttl else None
                await session.commit()
                return Ok(None)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to complete: {key}", e))

    async def delete(self, key: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(IdempotencyTable).where(IdempotencyTable.key == key)
                )
                await session.commit()
                return Ok(result.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to delete: {key}", e))

    @staticmethod
    def _to_record(row: IdempotencyTable) -> IdempotencyRecord[Any]:
        return IdempotencyRecord(
            key=row.key,
            state=_TO_STATE.get(row.state, RecordState.PENDING),
            value=json.loads(row.value) if row.value is not None else None,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )


__all__ = ("IdempotencyStatus", "SQLAlchemyStore")
