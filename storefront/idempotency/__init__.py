"""
Idempotency — run an operation at most once per key.

    from storefront import idempotency as I

    # Direct
    result = await I.run_idempotent(
        f"refund:{order_number}",
        refund_operation,
        I.SQLAlchemyStore(session_factory),
        I.Policy().with_ttl(hours=24),
    )

    # Builder
    capture = (
        I.idempotent(capture_operation)
        .key(lambda order: f"capture:{order.provider_order_id}")
        .store(I.MemoryStore())
        .policy(I.Policy().with_on_pending(I.WAIT))
        .build()
    )
    result = await capture.run(order)

    match result:
        case Ok(r) if r.from_cache:
            ...  # replayed, the gateway was not called again
"""

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import (
    Store,
    StoreAny,
    StoreError,
    MemoryStore,
)
from storefront.idempotency._policy import (
    OnPending,
    WAIT,
    FAIL,
    Policy,
)
from storefront.idempotency._sqlalchemy import (
    IdempotencyStatus,
    SQLAlchemyStore,
)
from storefront.idempotency._run import (
    run_idempotent,
    Idempotent,
    IdempotentExecutor,
    idempotent,
)

__all__ = (
    # Types
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
    # Store
    "Store",
    "StoreAny",
    "StoreError",
    "MemoryStore",
    "IdempotencyStatus",
    "SQLAlchemyStore",
    # Policy
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
    # Execution
    "run_idempotent",
    "Idempotent",
    "IdempotentExecutor",
    "idempotent",
)
