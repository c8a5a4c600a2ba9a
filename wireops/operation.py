# SPDX-License-Identifier: MIT

"""The contract every operation implements."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Generic, TypeVar

from .core.errors import ArgumentError
from .core.timeout import TimeBudget, Timeout, guard

if TYPE_CHECKING:
    from .binding import ConnectionSource, ReadBinding, WireConnection, WriteBinding
    from .core.cancellation import CancellationToken

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ExecutionState(Enum):
    NOT_STARTED = "not started"
    AWAITING_CONNECTION = "awaiting connection"
    PROTOCOL_SELECTED = "protocol selected"
    AWAITING_REPLY = "awaiting reply"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.NOT_STARTED: frozenset(
        {ExecutionState.AWAITING_CONNECTION, ExecutionState.PROTOCOL_SELECTED}
    ),
    ExecutionState.AWAITING_CONNECTION: frozenset({ExecutionState.PROTOCOL_SELECTED}),
    ExecutionState.PROTOCOL_SELECTED: frozenset(
        {ExecutionState.AWAITING_REPLY, ExecutionState.COMPLETED}
    ),
    ExecutionState.AWAITING_REPLY: frozenset({ExecutionState.COMPLETED}),
    ExecutionState.COMPLETED: frozenset(),
    ExecutionState.FAILED: frozenset(),
}


class Execution:
    """The state of one execution of an operation."""

    def __init__(self, operation: WireOperation[object]) -> None:
        self._operation = operation
        self.state = ExecutionState.NOT_STARTED

    def advance(self, state: ExecutionState) -> None:
        """Move to ``state``.

        Any state that is not final may move to ``FAILED``.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if state is not ExecutionState.FAILED and state not in _TRANSITIONS[self.state]:
            msg = f"Invalid execution state transition {self.state.name} -> {state.name}"
            raise RuntimeError(msg)
        logger.debug(
            "%s: %s -> %s",
            type(self._operation).__name__,
            self.state.value,
            state.value,
        )
        self.state = state

    async def track(self, awaitable: Awaitable[T]) -> T:
        """Await the body of the execution, ending in ``COMPLETED`` or ``FAILED``."""
        try:
            result = await awaitable
        except BaseException:
            self.advance(ExecutionState.FAILED)
            raise
        self.advance(ExecutionState.COMPLETED)
        return result


class WireOperation(ABC, Generic[T]):
    """An operation that can run against a connection or a binding.

    Operations are values: the same instance may be executed any number of
    times, against different connections. A single instance must not be
    executed concurrently.
    """

    @abstractmethod
    async def _execute(
        self,
        connection: WireConnection,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> T:
        """Run the operation on a connection.

        Implementations advance ``execution`` to ``PROTOCOL_SELECTED`` before
        any I/O.
        """

    @abstractmethod
    async def _get_connection_source(
        self,
        binding: ReadBinding | WriteBinding,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> ConnectionSource:
        """Borrow the connection source this kind of operation needs."""

    async def execute_on_connection(
        self,
        connection: WireConnection,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> T:
        """Run the operation on a connection that completed its handshake.

        Args:
            connection (WireConnection): The connection to use.
            timeout (Timeout, optional): The budget for the whole operation.
            cancellation (CancellationToken | None, optional): The caller's token.

        Raises:
            ArgumentError: If ``connection`` is None.

        Returns:
            T: The result of the operation.
        """
        if connection is None:
            msg = "connection must not be None"
            raise ArgumentError(msg)
        budget = TimeBudget.coerce(timeout)
        execution = Execution(self)
        return await execution.track(
            self._execute(connection, budget, cancellation, execution)
        )

    async def execute(
        self,
        binding: ReadBinding | WriteBinding,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> T:
        """Borrow a connection from ``binding`` and run the operation on it.

        The connection is given back before its source, on every exit path.

        Args:
            binding (ReadBinding | WriteBinding): Where to borrow the connection.
            timeout (Timeout, optional): The budget for the whole operation,
                including waiting for a connection.
            cancellation (CancellationToken | None, optional): The caller's token.

        Raises:
            ArgumentError: If ``binding`` is None.

        Returns:
            T: The result of the operation.
        """
        if binding is None:
            msg = "binding must not be None"
            raise ArgumentError(msg)
        budget = TimeBudget.coerce(timeout)
        execution = Execution(self)
        return await execution.track(
            self._execute_with_binding(binding, budget, cancellation, execution)
        )

    async def _execute_with_binding(
        self,
        binding: ReadBinding | WriteBinding,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> T:
        execution.advance(ExecutionState.AWAITING_CONNECTION)
        source = await guard(
            self._get_connection_source(binding, timeout, cancellation),
            timeout,
            cancellation,
        )
        async with source:
            connection = await guard(
                source.get_connection(timeout, cancellation), timeout, cancellation
            )
            async with connection:
                return await self._execute(connection, timeout, cancellation, execution)


class ReadOperation(WireOperation[T]):
    async def _get_connection_source(
        self,
        binding: ReadBinding | WriteBinding,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> ConnectionSource:
        return await binding.get_read_connection_source(timeout, cancellation)  # type: ignore[union-attr]


class WriteOperation(WireOperation[T]):
    async def _get_connection_source(
        self,
        binding: ReadBinding | WriteBinding,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> ConnectionSource:
        return await binding.get_write_connection_source(timeout, cancellation)  # type: ignore[union-attr]
