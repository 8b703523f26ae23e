"""
Idempotency policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto


# ═══════════════════════════════════════════════════════════════════════════════
# On Pending — Conflict Resolution Strategy
# ═══════════════════════════════════════════════════════════════════════════════


class OnPending(Enum):
    """
    What to do when a request arrives while another is pending.

    WAIT: Poll until the pending run finishes, return its result.
          Use when: Same client retrying after timeout.

    FAIL: Immediately return CONFLICT error.
          Use when: Independent concurrent requests should fail fast.
    """

    WAIT = auto()
    FAIL = auto()


WAIT = OnPending.WAIT
FAIL = OnPending.FAIL


# ═══════════════════════════════════════════════════════════════════════════════
# Policy — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Idempotency policy configuration.

    Example:
        policy = (
            Policy()
            .with_ttl(hours=24)
            .with_on_pending(WAIT)
            .with_wait_timeout(seconds=30)
        )

    Note: Immutable. Each method returns a new Policy.
    """

    result_ttl: timedelta | None = None
    conflict_strategy: OnPending = OnPending.WAIT
    pending_wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: timedelta = timedelta(milliseconds=100)

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Set TTL for completed records.

        After TTL, operation can be re-executed.

            .with_ttl(seconds=3600)
            .with_ttl(delta=settings.payment_idempotency_ttl)
        """
        if delta is not None:
            ttl_val: timedelta | None = delta
        else:
            total_seconds = (seconds or 0) + (minutes or 0) * 60 + (hours or 0) * 3600
            ttl_val = timedelta(seconds=total_seconds) if total_seconds > 0 else None
        return replace(self, result_ttl=ttl_val)

    def with_on_pending(self, strategy: OnPending) -> Policy:
        return replace(self, conflict_strategy=strategy)

    def with_wait_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        How long a WAIT caller polls before giving up with TIMEOUT.
        """
        timeout = delta if delta else timedelta(seconds=seconds or 30)
        return replace(self, pending_wait_timeout=timeout)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
)
