"""
Graph runner — sugar over nodnod.

Nodes are discovered from the target; inputs are injected by runtime type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


def _build_agent(target: type[Any]) -> EventLoopAgent:
    return EventLoopAgent.build({cast(type[Node[Any, Any]], target)})


async def _execute[T](
    target: type[T],
    agent: EventLoopAgent,
    inputs: tuple[object, ...],
) -> T:
    scope = Scope(detail=target.__name__)
    async with scope:
        for value in inputs:
            scope.push(Value(cast(type[Any], type(value)), value))

        run_method = cast(
            Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
            getattr(agent, "run"),
        )
        await run_method(scope, {})

        found = scope.get(target)
        if found is None:
            raise KeyError(f"{target.__name__} was not produced")
        return cast(T, found.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Compiled — Pre-built graph for repeated execution
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Compiled[T]:
    """
    Pre-compiled graph.

    Example:
        quote_graph = graph(QuoteNode)
        quote = await quote_graph(request, ports)

    Exceptions raised by nodes propagate unchanged.
    """

    _target: type[T]
    _agent: EventLoopAgent

    async def __call__(self, *inputs: object) -> T:
        return await _execute(self._target, self._agent, inputs)


def graph[T](target: type[T]) -> Compiled[T]:
    """Compile once at startup, execute many times."""
    return Compiled(_target=target, _agent=_build_agent(target))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("Compiled", "graph")
