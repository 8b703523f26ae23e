"""
Idempotency types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from storefront._types import utcnow


# ═══════════════════════════════════════════════════════════════════════════════
# Record State — Operation Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    """
    State of an idempotency record.

    Lifecycle:
        PENDING → COMPLETED (success)
                → deleted (operation failed, so a retry runs it again)
        COMPLETED → expired after the policy TTL
    """

    PENDING = auto()
    COMPLETED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Record — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyRecord[T]:
    """
    A stored idempotency record.

    value is set only for COMPLETED.
    """

    key: str
    state: RecordState
    value: T | None
    created_at: datetime
    expires_at: datetime | None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return utcnow() > self.expires_at


# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyResult[T]:
    """
    Successful idempotency result with metadata.

    from_cache: True when the stored result was replayed instead of executed.
    """

    value: T
    from_cache: bool
    key: str


class IdempotencyErrorKind(Enum):
    CONFLICT = auto()  # Concurrent request with same key
    TIMEOUT = auto()  # Waiting for pending timed out
    STORE_ERROR = auto()  # Storage backend error
    EXECUTION = auto()  # Wrapped operation failed


@dataclass(frozen=True, slots=True)
class IdempotencyError[E]:
    """
    Idempotency operation error.

    original_error carries the wrapped operation's error (EXECUTION).
    """

    kind: IdempotencyErrorKind
    message: str
    original_error: E | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
)
