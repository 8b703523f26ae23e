"""
Saga step creation.
"""

from __future__ import annotations

from kungfu import LazyCoroResult

from storefront.saga._types import SagaStep, Compensator


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Args:
        action: The write to perform (LazyCoroResult)
        compensate: Undoes the write; receives the action's value
        name: Label for logs

    Example:
        from storefront import saga as S

        take = S.step(
            LazyCoroResult(lambda: ledger.take_stock(pid, 2)),
            compensate=ledger.undo_take,
            name=f"stock:{pid}",
        )
    """
    return SagaStep(action=action, compensate=compensate, name=name)


__all__ = ("step",)
