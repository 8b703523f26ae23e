"""
Saga types — steps, undo records, outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Compensator — Undo Action
# ═══════════════════════════════════════════════════════════════════════════════

type Compensator[T] = Callable[[T], Awaitable[object]]
"""
Receives what the action produced and undoes it.

May resolve to a Result; an Error counts as a failed compensation.
"""

# ═══════════════════════════════════════════════════════════════════════════════
# SagaStep — Single Step with Compensation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    One write of a multi-step operation.

    name: label used in logs when the step fails or is compensated,
    e.g. ``stock:p1`` or ``coupon:SAVE10``.
    """

    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None
    name: str = "step"


@dataclass(frozen=True, slots=True)
class Undo[T]:
    """A compensator bound to the value its step produced."""

    step: str
    value: T
    compensate: Compensator[T]

    async def __call__(self) -> object:
        return await self.compensate(self.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    """Every step succeeded; value holds their results in order."""

    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """
    A step failed and the recorded undos ran.

    step_failed is 1-based; failed_step is that step's name.
    rollback_complete is False when any undo raised or returned Error,
    which leaves partial writes behind.
    """

    error: E
    step_failed: int
    failed_step: str
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Compensator",
    "SagaStep",
    "Undo",
    "SagaResult",
    "SagaError",
)
