from dataclasses import dataclass
from decimal import Decimal

import pytest

from storefront import graph as G


@dataclass(frozen=True)
class Basket:
    prices: tuple[Decimal, ...]


@G.node
class SubtotalNode:
    def __init__(self, amount: Decimal) -> None:
        self.amount = amount

    @classmethod
    def __compose__(cls, basket: Basket) -> "SubtotalNode":
        if not basket.prices:
            raise ValueError("empty basket")
        return cls(sum(basket.prices, Decimal("0")))


@G.node
class DoubledNode:
    def __init__(self, amount: Decimal) -> None:
        self.amount = amount

    @classmethod
    async def __compose__(cls, subtotal: SubtotalNode) -> "DoubledNode":
        return cls(subtotal.amount * 2)


async def test_graph_resolves_dependencies():
    node = await G.graph(DoubledNode)(Basket((Decimal("1.50"), Decimal("2.00"))))

    assert node.amount == Decimal("7.00")


async def test_compiled_graph_runs_repeatedly():
    doubled = G.graph(DoubledNode)

    assert (await doubled(Basket((Decimal("1"),)))).amount == Decimal("2")
    assert (await doubled(Basket((Decimal("5"),)))).amount == Decimal("10")


async def test_node_failures_propagate():
    with pytest.raises(ValueError):
        await G.graph(DoubledNode)(Basket(()))
