# SPDX-License-Identifier: MIT

"""Sliding time budgets and guarded suspension points."""

from __future__ import annotations

import asyncio
import math
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Awaitable, TypeVar, Union

from .errors import ArgumentError, OperationCancelledError, OperationTimeoutError, WireOpsError

if TYPE_CHECKING:
    from .cancellation import CancellationToken

T = TypeVar("T")

Timeout = Union["TimeBudget", float, timedelta, None]


def _to_seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        value = value.total_seconds()
    if value < 0:
        msg = "Timeout must not be negative"
        raise ArgumentError(msg)
    return float(value)


class TimeBudget:
    """A deadline shared by every step of one call chain.

    The budget is fixed when it is created. Passing it down to a sub-step, or
    deriving a narrower budget from it, never restarts the clock, so time spent
    in one step is no longer available to the next.
    """

    __slots__ = ("_deadline", "_timeout")

    def __init__(self, timeout: float | timedelta | None = None) -> None:
        """Create a new TimeBudget.

        Args:
            timeout (float | timedelta | None, optional): The total duration in
                seconds, or None for no limit. Defaults to None.

        Raises:
            ArgumentError: If the timeout is negative.
        """
        if timeout is None:
            self._timeout: float | None = None
            self._deadline: float | None = None
        else:
            self._timeout = _to_seconds(timeout)
            self._deadline = time.monotonic() + self._timeout

    def __repr__(self) -> str:
        if self._deadline is None:
            return "<TimeBudget unbounded>"
        return f"<TimeBudget remaining={self.remaining():.3f}s of {self._timeout}s>"

    @classmethod
    def coerce(cls, timeout: Timeout) -> TimeBudget:
        """Turn a timeout argument into a budget.

        An existing budget is returned unchanged so that it keeps its deadline.

        Args:
            timeout (Timeout): A budget, a duration in seconds, a timedelta or None.

        Returns:
            TimeBudget: The budget to use.
        """
        if isinstance(timeout, TimeBudget):
            return timeout
        return cls(timeout)

    @property
    def timeout(self) -> float | None:
        """The original duration in seconds, None if unbounded."""
        return self._timeout

    @property
    def unbounded(self) -> bool:
        return self._deadline is None

    @property
    def expired(self) -> bool:
        return self.remaining() == 0

    def remaining(self) -> float:
        """Get the time left in seconds.

        Returns:
            float: The remaining seconds, never negative.
                ``math.inf`` for an unbounded budget.
        """
        if self._deadline is None:
            return math.inf
        return max(0.0, self._deadline - time.monotonic())

    def remaining_seconds(self) -> float | None:
        """Get the time left in the form ``asyncio.wait`` expects."""
        if self._deadline is None:
            return None
        return self.remaining()

    def raise_if_expired(self) -> None:
        """Raise if no time is left.

        Raises:
            OperationTimeoutError: If ``remaining()`` is zero.
        """
        if self.remaining() == 0:
            raise OperationTimeoutError

    def derive(self, limit: float | timedelta | None = None) -> TimeBudget:
        """Create a budget for a sub-step.

        Args:
            limit (float | timedelta | None, optional): An additional cap for the
                sub-step. Defaults to None, which keeps this budget's deadline.

        Returns:
            TimeBudget: A budget that never ends later than this one.
        """
        child = TimeBudget.__new__(TimeBudget)
        child._timeout = self._timeout
        child._deadline = self._deadline
        if limit is not None:
            capped = time.monotonic() + _to_seconds(limit)
            if child._deadline is None or capped < child._deadline:
                child._timeout = _to_seconds(limit)
                child._deadline = capped
        return child


async def guard(
    awaitable: Awaitable[T],
    timeout: TimeBudget,
    cancellation: CancellationToken | None = None,
) -> T:
    """Await a suspension point under a time budget and a cancellation token.

    Both signals are checked before anything is started. If either fires while
    ``awaitable`` is pending, it is cancelled and abandoned.

    Args:
        awaitable (Awaitable[T]): The step to run.
        timeout (TimeBudget): The budget of the surrounding call chain.
        cancellation (CancellationToken | None, optional): The caller's token.

    Raises:
        OperationCancelledError: If the token was cancelled.
        OperationTimeoutError: If the budget ran out.

    Returns:
        T: The result of ``awaitable``.
    """
    try:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        timeout.raise_if_expired()
    except WireOpsError:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise

    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if cancellation is not None:
        cancel_waiter = asyncio.ensure_future(cancellation.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout.remaining_seconds(),
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()

    if task in done:
        return task.result()
    if cancel_waiter is not None and cancel_waiter in done:
        raise OperationCancelledError
    raise OperationTimeoutError
