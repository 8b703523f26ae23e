import asyncio
from datetime import timedelta

import pytest
from kungfu import Error, LazyCoroResult, Ok

from storefront import idempotency as I
from tests.conftest import err, ok


class Counter:
    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.calls = 0
        self.fail = fail
        self.delay = delay

    def op(self) -> LazyCoroResult[dict, str]:
        async def run():
            self.calls += 1
            if self.delay:
                await asyncio.sleep(self.delay)
            return Error("declined") if self.fail else Ok({"n": self.calls})

        return LazyCoroResult(run)


@pytest.fixture(params=["memory", "sqlalchemy"])
def idem_store(request, session_factory):
    if request.param == "memory":
        return I.MemoryStore()
    return I.SQLAlchemyStore(session_factory)


async def test_second_run_replays(idem_store):
    counter = Counter()
    policy = I.Policy().with_ttl(hours=1)

    first = ok(await I.run_idempotent("k", counter.op(), idem_store, policy))
    second = ok(await I.run_idempotent("k", counter.op(), idem_store, policy))

    assert (first.value, first.from_cache) == ({"n": 1}, False)
    assert (second.value, second.from_cache) == ({"n": 1}, True)
    assert counter.calls == 1


async def test_failures_are_not_kept_by_default(idem_store):
    failing = Counter(fail=True)

    e = err(await I.run_idempotent("k", failing.op(), idem_store, I.Policy()))
    assert e.kind == I.IdempotencyErrorKind.EXECUTION
    assert e.original_error == "declined"

    assert ok(await I.run_idempotent("k", Counter().op(), idem_store, I.Policy())).from_cache is False


async def test_expired_records_run_again():
    store = I.MemoryStore()
    counter = Counter()
    policy = I.Policy().with_ttl(delta=timedelta(milliseconds=10))

    ok(await I.run_idempotent("k", counter.op(), store, policy))
    await asyncio.sleep(0.05)
    again = ok(await I.run_idempotent("k", counter.op(), store, policy))

    assert again.from_cache is False
    assert counter.calls == 2


async def test_concurrent_caller_fails_fast_or_waits():
    store = I.MemoryStore()
    slow = Counter(delay=0.05)

    fail_fast = I.Policy().with_on_pending(I.FAIL)
    first, second = await asyncio.gather(
        I.run_idempotent("k", slow.op(), store, fail_fast),
        I.run_idempotent("k", slow.op(), store, fail_fast),
    )
    assert isinstance(first, Ok)
    assert err(second).kind == I.IdempotencyErrorKind.CONFLICT

    waiting = I.Policy().with_on_pending(I.WAIT)
    first, second = await asyncio.gather(
        I.run_idempotent("w", slow.op(), store, waiting),
        I.run_idempotent("w", slow.op(), store, waiting),
    )
    assert ok(second).from_cache
    assert ok(first).value == ok(second).value


async def test_waiting_gives_up_after_the_timeout():
    store = I.MemoryStore()
    slow = Counter(delay=0.5)
    impatient = I.Policy().with_on_pending(I.WAIT).with_wait_timeout(seconds=0.05)

    first, second = await asyncio.gather(
        I.run_idempotent("k", slow.op(), store, impatient),
        I.run_idempotent("k", slow.op(), store, impatient),
    )

    assert ok(first).value == {"n": 1}
    assert err(second).kind == I.IdempotencyErrorKind.TIMEOUT
    assert slow.calls == 1


async def test_builder(session_factory):
    calls: list[str] = []

    def capture(order_id: str) -> LazyCoroResult[str, str]:
        async def run():
            calls.append(order_id)
            return Ok(f"CAP-{order_id}")

        return LazyCoroResult(run)

    executor = (
        I.idempotent(capture)
        .key(lambda order_id: f"capture:{order_id}")
        .store(I.SQLAlchemyStore(session_factory))
        .policy(I.Policy().with_ttl(hours=24))
        .build()
    )

    assert ok(await executor.run("o1")).value == "CAP-o1"
    assert ok(await executor.run("o1")).from_cache
    assert await executor.invalidate("o1")
    assert ok(await executor.run("o1")).from_cache is False
    assert calls == ["o1", "o1"]


def test_builder_needs_key_and_store():
    with pytest.raises(ValueError):
        I.idempotent(lambda _: None).build()
    with pytest.raises(ValueError):
        I.idempotent(lambda _: None).key(str).build()
