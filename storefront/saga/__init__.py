"""
Saga — multi-step writes with compensation.

    from storefront import saga as S

    result = await S.run_sequence([
        S.step(take, compensate=undo_take, name="stock:p1"),
        S.step(insert, name="order:ORD-1"),
    ])
"""

from __future__ import annotations

from storefront.saga._types import (
    Compensator,
    SagaStep,
    SagaResult,
    SagaError,
    Undo,
)
from storefront.saga._step import step
from storefront.saga._run import run_sequence

__all__ = (
    "Compensator",
    "SagaStep",
    "SagaResult",
    "SagaError",
    "Undo",
    "step",
    "run_sequence",
)
