import asyncio
import math
from datetime import timedelta

import pytest

from wireops.core import timeout as timeout_module
from wireops.core.cancellation import CancellationToken
from wireops.core.errors import ArgumentError, OperationCancelledError, OperationTimeoutError
from wireops.core.timeout import TimeBudget, guard


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(timeout_module.time, "monotonic", fake)
    return fake


def test_unbounded_budget_never_expires() -> None:
    budget = TimeBudget()

    assert budget.unbounded
    assert budget.remaining() == math.inf
    assert budget.remaining_seconds() is None
    budget.raise_if_expired()


def test_remaining_shrinks_and_clamps(clock: FakeClock) -> None:
    budget = TimeBudget(10)
    seen = []
    for _ in range(6):
        seen.append(budget.remaining())
        clock.now += 3

    assert seen == [10, 7, 4, 1, 0, 0]
    assert all(a >= b for a, b in zip(seen, seen[1:]))


def test_raise_if_expired_exactly_at_zero(clock: FakeClock) -> None:
    budget = TimeBudget(timedelta(seconds=2))

    clock.now = 101.5
    budget.raise_if_expired()
    assert not budget.expired

    clock.now = 102.0
    assert budget.remaining() == 0
    with pytest.raises(OperationTimeoutError):
        budget.raise_if_expired()


def test_zero_budget_is_expired_immediately() -> None:
    with pytest.raises(OperationTimeoutError):
        TimeBudget(0).raise_if_expired()


def test_negative_timeout_is_rejected() -> None:
    with pytest.raises(ArgumentError):
        TimeBudget(-1)


def test_coerce_keeps_existing_budget(clock: FakeClock) -> None:
    budget = TimeBudget(10)
    clock.now += 4

    assert TimeBudget.coerce(budget) is budget
    assert TimeBudget.coerce(budget).remaining() == 6
    assert TimeBudget.coerce(None).unbounded
    assert TimeBudget.coerce(3).remaining() == 3


def test_derive_never_restarts_the_clock(clock: FakeClock) -> None:
    budget = TimeBudget(10)
    clock.now += 4

    child = budget.derive()
    assert child.remaining() == 6

    clock.now += 4
    assert child.remaining() == 2
    assert budget.remaining() == 2


def test_derive_with_limit_takes_the_earlier_deadline(clock: FakeClock) -> None:
    budget = TimeBudget(10)

    assert budget.derive(3).remaining() == 3
    assert budget.derive(30).remaining() == 10
    assert TimeBudget().derive(5).remaining() == 5


@pytest.mark.asyncio()
async def test_guard_returns_result() -> None:
    async def step() -> int:
        await asyncio.sleep(0)
        return 42

    assert await guard(step(), TimeBudget(5), CancellationToken()) == 42


@pytest.mark.asyncio()
async def test_guard_propagates_errors() -> None:
    async def step() -> None:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        await guard(step(), TimeBudget(5))


@pytest.mark.asyncio()
async def test_guard_times_out() -> None:
    with pytest.raises(OperationTimeoutError):
        await guard(asyncio.sleep(10), TimeBudget(0.05))


@pytest.mark.asyncio()
async def test_guard_observes_cancellation() -> None:
    token = CancellationToken()
    started = asyncio.Event()
    abandoned = asyncio.Event()

    async def step() -> None:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            abandoned.set()
            raise

    task = asyncio.create_task(guard(step(), TimeBudget(), token))
    await started.wait()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await task
    await asyncio.wait_for(abandoned.wait(), 1)


@pytest.mark.asyncio()
async def test_guard_checks_signals_before_starting() -> None:
    ran = False

    async def step() -> None:
        nonlocal ran
        ran = True

    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelledError):
        await guard(step(), TimeBudget(5), token)

    with pytest.raises(OperationTimeoutError):
        await guard(step(), TimeBudget(0))

    assert not ran


@pytest.mark.asyncio()
async def test_budget_shrinks_across_sequential_steps() -> None:
    budget = TimeBudget(0.3)

    await guard(asyncio.sleep(0.2), budget)
    assert budget.remaining() < 0.15

    with pytest.raises(OperationTimeoutError):
        await guard(asyncio.sleep(0.2), budget)


def test_cancellation_token() -> None:
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()

    token.cancel()
    assert token.cancelled
    with pytest.raises(OperationCancelledError):
        token.raise_if_cancelled()
