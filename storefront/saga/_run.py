"""
Saga execution with automatic rollback.

An undo counts as failed if it raises or resolves to ``Error``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from storefront.saga._types import SagaStep, SagaResult, SagaError, Undo

logger = structlog.get_logger(__name__)


async def rollback(undos: list[Undo[Any]]) -> tuple[int, int]:
    """Run undos newest first. Returns (run, failed)."""
    run = 0
    failed = 0

    for undo in reversed(undos):
        try:
            outcome = await undo()
        except Exception:
            failed += 1
            logger.exception("saga_compensation_raised", step=undo.step)
            continue

        match outcome:
            case Error(err):
                failed += 1
                logger.error("saga_compensation_failed", step=undo.step, error=str(err))
            case _:
                run += 1

    return run, failed


# ═══════════════════════════════════════════════════════════════════════════════
# run_sequence() — Execute a list of steps
# ═══════════════════════════════════════════════════════════════════════════════


async def run_sequence[T, E](
    steps: Sequence[SagaStep[T, E]],
) -> Result[SagaResult[list[T]], SagaError[E]]:
    """
    Execute steps in order, all-or-nothing.

    The first failure stops the sequence and every recorded undo runs in
    reverse. Steps after the failing one are never started.

    Example:
        steps = [take_stock(ledger, pid, qty) for pid, qty in quantities.items()]
        steps.append(insert_order(orders, draft))
        result = await S.run_sequence(steps)
    """
    undos: list[Undo[Any]] = []
    values: list[T] = []

    for index, saga_step in enumerate(steps, start=1):
        match await saga_step.action:
            case Ok(value):
                values.append(value)
                if saga_step.compensate is not None:
                    undos.append(Undo(saga_step.name, value, saga_step.compensate))
            case Error(e):
                logger.warning(
                    "saga_step_failed",
                    step=saga_step.name,
                    index=index,
                    rolling_back=len(undos),
                )
                run, failed = await rollback(undos)
                return Error(SagaError(
                    error=e,
                    step_failed=index,
                    failed_step=saga_step.name,
                    compensators_run=run,
                    compensators_failed=failed,
                ))

    return Ok(SagaResult(
        value=values,
        steps_executed=len(values),
        compensators_recorded=len(undos),
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("rollback", "run_sequence")
