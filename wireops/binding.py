# SPDX-License-Identifier: MIT

"""Scoped access to connections.

Operations do not own connections. They borrow a connection source from a
binding and a connection from that source, and give both back when they are
done. Pools implement these protocols; :class:`SingleConnectionBinding`
serves one already opened connection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from .core.errors import ArgumentError, InvalidOperationError
from .core.interlocked import InterlockedValue

if TYPE_CHECKING:
    from types import TracebackType

    from .connection import Connection
    from .core.cancellation import CancellationToken
    from .core.timeout import TimeBudget, Timeout
    from .core.typings import Document
    from .description import ConnectionDescription
    from .options import ConnectionOptions

logger = logging.getLogger(__name__)


class WireConnection(Protocol):
    """What an operation needs from a connection."""

    @property
    def options(self) -> ConnectionOptions: ...

    @property
    def description(self) -> ConnectionDescription: ...

    async def command(
        self,
        database: str,
        command: Document,
        *,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
        codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
        check: bool = True,
    ) -> Document: ...

    async def send_message(
        self,
        opcode: int,
        body: bytes,
        *,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> None: ...


class ConnectionHandle(WireConnection, Protocol):
    """A borrowed connection, given back when its ``async with`` block exits."""

    async def __aenter__(self) -> ConnectionHandle: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


class ConnectionSource(Protocol):
    """A borrowed server to take connections from, given back like a handle."""

    async def get_connection(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> ConnectionHandle: ...

    async def __aenter__(self) -> ConnectionSource: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


class ReadBinding(Protocol):
    async def get_read_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> ConnectionSource: ...


class WriteBinding(Protocol):
    async def get_write_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> ConnectionSource: ...


class _Scoped:
    """Something that is released exactly once."""

    def __init__(self) -> None:
        self._released = InterlockedValue(0)

    @property
    def released(self) -> bool:
        return self._released.read() == 1

    def _raise_if_released(self) -> None:
        if self.released:
            msg = f"{type(self).__name__} was already released."
            raise InvalidOperationError(msg)

    def release(self) -> bool:
        """Release this handle.

        Returns:
            bool: True if this call released it, False if it was released before.
        """
        if not self._released.try_compare_and_set(0, 1):
            return False
        logger.debug("Released %r.", self)
        return True

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class _ConnectionHandle(_Scoped):
    def __init__(self, connection: Connection) -> None:
        super().__init__()
        self._connection = connection

    def __repr__(self) -> str:
        return f"<ConnectionHandle {self._connection!r}>"

    async def __aenter__(self) -> _ConnectionHandle:
        return self

    @property
    def options(self) -> ConnectionOptions:
        self._raise_if_released()
        return self._connection.options

    @property
    def description(self) -> ConnectionDescription:
        self._raise_if_released()
        return self._connection.description

    async def command(
        self,
        database: str,
        command: Document,
        *,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
        codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
        check: bool = True,
    ) -> Document:
        self._raise_if_released()
        return await self._connection.command(
            database,
            command,
            timeout=timeout,
            cancellation=cancellation,
            codec_options=codec_options,
            check=check,
        )

    async def send_message(
        self,
        opcode: int,
        body: bytes,
        *,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._raise_if_released()
        await self._connection.send_message(
            opcode, body, timeout=timeout, cancellation=cancellation
        )


class _SingleConnectionSource(_Scoped):
    def __init__(self, connection: Connection) -> None:
        super().__init__()
        self._connection = connection

    def __repr__(self) -> str:
        return f"<ConnectionSource {self._connection!r}>"

    async def __aenter__(self) -> _SingleConnectionSource:
        return self

    async def get_connection(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> _ConnectionHandle:
        self._raise_if_released()
        timeout.raise_if_expired()
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        return _ConnectionHandle(self._connection)


class SingleConnectionBinding:
    """Read and write binding that always hands out the same open connection."""

    def __init__(self, connection: Connection) -> None:
        """Create a new SingleConnectionBinding.

        Args:
            connection (Connection): An open connection that completed its handshake.

        Raises:
            ArgumentError: If ``connection`` is None.
        """
        if connection is None:
            msg = "connection must not be None"
            raise ArgumentError(msg)
        self._connection = connection

    async def get_read_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> _SingleConnectionSource:
        return _SingleConnectionSource(self._connection)

    async def get_write_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> _SingleConnectionSource:
        return _SingleConnectionSource(self._connection)
