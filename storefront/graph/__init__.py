"""
Graph — compose computations from small dependent nodes.

    from storefront import graph as G

    @G.node
    class SubtotalNode:
        def __init__(self, amount: Decimal) -> None:
            self.amount = amount

        @classmethod
        def __compose__(cls, lines: LinesNode) -> "SubtotalNode":
            return cls(sum(l.line_total for l in lines.lines))

    subtotal = G.graph(SubtotalNode)
    result = await subtotal(request)

Modules that define nodes must not use ``from __future__ import annotations``:
nodnod resolves dependencies from runtime type hints.
"""

from nodnod import scalar_node as node

from storefront.graph._run import Compiled, graph

__all__ = (
    "node",
    "Compiled",
    "graph",
)
