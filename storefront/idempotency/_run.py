"""
Idempotent execution — fetch record, route by state, execute at most once.

Routing:
    store error        → STORE_ERROR
    COMPLETED          → cached value (from_cache=True)
    PENDING + FAIL     → CONFLICT
    PENDING + WAIT     → poll until COMPLETED, gone or timeout
    no record/expired  → acquire slot, execute, keep the value or delete on failure
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, cast

import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import StoreError, StoreAny
from storefront.idempotency._policy import Policy, OnPending

logger = structlog.get_logger(__name__)

type Outcome[T, E] = Result[IdempotencyResult[T], IdempotencyError[E]]


def _store_error(err: StoreError) -> Error[Any]:
    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.STORE_ERROR,
        message=err.message,
        original_error=None,
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Cached Records
# ═══════════════════════════════════════════════════════════════════════════════


def _replay[T, E](record: IdempotencyRecord[T], key: str) -> Outcome[T, E] | None:
    """Replay a completed record, or None if still pending."""
    if record.state != RecordState.COMPLETED:
        return None
    return Ok(IdempotencyResult(value=cast(T, record.value), from_cache=True, key=key))


async def _wait_for_pending[T, E](
    key: str, store: StoreAny, policy: Policy
) -> Outcome[T, E]:
    timeout = policy.pending_wait_timeout.total_seconds()
    interval = policy.poll_interval.total_seconds()
    elapsed = 0.0

    while elapsed < timeout:
        await asyncio.sleep(interval)
        elapsed += interval

        match await store.get(key):
            case Error(err):
                return _store_error(err)
            case Ok(None):
                return Error(IdempotencyError(
                    kind=IdempotencyErrorKind.CONFLICT,
                    message="Pending record disappeared",
                ))
            case Ok(record):
                replay = _replay(record, key)
                if replay is not None:
                    return replay

    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.TIMEOUT,
        message="Timeout waiting for pending operation",
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Execute New
# ═══════════════════════════════════════════════════════════════════════════════


async def _execute[T, E](
    key: str,
    operation: LazyCoroResult[T, E],
    store: StoreAny,
    policy: Policy,
) -> Outcome[T, E]:
    match await store.set_pending(key, policy.result_ttl):
        case Error(err):
            return _store_error(err)
        case Ok(False):
            # Lost the race: replay if the winner already finished.
            match await store.get(key):
                case Ok(record) if record is not None and record.state == RecordState.COMPLETED:
                    return _replay(record, key)  # type: ignore[return-value]
                case _ if policy.conflict_strategy == OnPending.WAIT:
                    return await _wait_for_pending(key, store, policy)
                case _:
                    return Error(IdempotencyError(
                        kind=IdempotencyErrorKind.CONFLICT,
                        message=f"Concurrent execution for key: {key}",
                    ))
        case Ok(True):
            pass

    try:
        result = await operation
    except Exception as e:
        await store.delete(key)
        logger.exception("idempotent_operation_raised", key=key)
        return Error(IdempotencyError(
            kind=IdempotencyErrorKind.EXECUTION,
            message=str(e),
        ))

    match result:
        case Ok(value):
            match await store.set_completed(key, value, policy.result_ttl):
                case Error(err):
                    return _store_error(err)
                case Ok(_):
                    return Ok(IdempotencyResult(value=value, from_cache=False, key=key))
        case Error(err):
            await store.delete(key)
            return Error(IdempotencyError(
                kind=IdempotencyErrorKind.EXECUTION,
                message="Operation returned Error",
                original_error=err,
            ))


# ═══════════════════════════════════════════════════════════════════════════════
# run_idempotent() — Public Entry
# ═══════════════════════════════════════════════════════════════════════════════


async def run_idempotent[T, E](
    key: str,
    operation: LazyCoroResult[T, E],
    store: StoreAny,
    policy: Policy,
) -> Outcome[T, E]:
    """
    Run operation at most once per key.

    Example:
        result = await I.run_idempotent(
            f"capture:{provider_order_id}",
            L.catching_async(lambda: gateway.capture(...), on_error=str),
            store,
            I.Policy().with_ttl(hours=24),
        )
    """
    match await store.get(key):
        case Error(err):
            return _store_error(err)
        case Ok(None):
            return await _execute(key, operation, store, policy)
        case Ok(record):
            replay = _replay(record, key)
            if replay is not None:
                logger.info("idempotent_replay", key=key, state=record.state.name)
                return replay

    if policy.conflict_strategy == OnPending.FAIL:
        return Error(IdempotencyError(
            kind=IdempotencyErrorKind.CONFLICT,
            message=f"Pending conflict: {key}",
        ))
    return await _wait_for_pending(key, store, policy)


# ═══════════════════════════════════════════════════════════════════════════════
# Builder — fluent API
# ═══════════════════════════════════════════════════════════════════════════════

type KeyFn[K] = Callable[[K], str]


class Idempotent[K, T, E]:
    """
    Fluent idempotency builder.

    Example:
        capture = (
            I.idempotent(lambda order: self._capture(order.provider_order_id))
            .key(lambda order: f"capture:{order.provider_order_id}")
            .store(I.SQLAlchemyStore(session_factory))
            .policy(I.Policy().with_ttl(hours=24))
            .build()
        )

        result = await capture.run(order)
    """

    __slots__ = ("_operation", "_key_fn", "_store", "_policy")

    def __init__(
        self,
        operation: Callable[[K], LazyCoroResult[T, E]],
        key_fn: KeyFn[K] | None = None,
        store: StoreAny | None = None,
        policy: Policy | None = None,
    ) -> None:
        self._operation = operation
        self._key_fn = key_fn
        self._store = store
        self._policy = policy or Policy()

    def key(self, fn: KeyFn[K]) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, fn, self._store, self._policy)

    def store(self, s: StoreAny) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, self._key_fn, s, self._policy)

    def policy(self, p: Policy) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, self._key_fn, self._store, p)

    def build(self) -> IdempotentExecutor[K, T, E]:
        if self._key_fn is None:
            raise ValueError("key() is required")
        if self._store is None:
            raise ValueError("store() is required")
        return IdempotentExecutor(self._operation, self._key_fn, self._store, self._policy)


class IdempotentExecutor[K, T, E]:
    """Compiled idempotent executor."""

    __slots__ = ("operation", "key_fn", "store", "policy")

    def __init__(
        self,
        operation: Callable[[K], LazyCoroResult[T, E]],
        key_fn: KeyFn[K],
        store: StoreAny,
        policy: Policy,
    ) -> None:
        self.operation = operation
        self.key_fn = key_fn
        self.store = store
        self.policy = policy

    def run(self, input_val: K) -> LazyCoroResult[IdempotencyResult[T], IdempotencyError[E]]:
        key = self.key_fn(input_val)

        async def execute() -> Outcome[T, E]:
            return await run_idempotent(key, self.operation(input_val), self.store, self.policy)

        return LazyCoroResult(execute)

    async def invalidate(self, input_val: K) -> bool:
        match await self.store.delete(self.key_fn(input_val)):
            case Ok(deleted):
                return deleted
            case _:
                return False


def idempotent[K, T, E](
    operation: Callable[[K], LazyCoroResult[T, E]],
) -> Idempotent[K, T, E]:
    """Create idempotent wrapper for an operation."""
    return Idempotent(operation)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "run_idempotent",
    "Idempotent",
    "IdempotentExecutor",
    "idempotent",
)
