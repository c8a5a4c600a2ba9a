# SPDX-License-Identifier: MIT

"""Connection to a MongoDB server."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from asyncio import StreamReader, StreamWriter
from typing import TYPE_CHECKING, Any, TypeVar

from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from .core.compressors import UNCOMPRESSIBLE_COMMANDS, pick_compressor
from .core.errors import (
    ArgumentError,
    ConnectionFailedError,
    NotReadyError,
    OperationCancelledError,
    OperationTimeoutError,
    ServerCommandError,
)
from .core.timeout import TimeBudget, Timeout, guard
from .core.typings import MessageOpCode
from .description import ConnectionId
from .handshake import HandshakeCoordinator
from .message import op_compressed, op_msg, op_query_command, pack_message, read_message, unpack_reply
from .options import ConnectionOptions

if TYPE_CHECKING:
    from types import TracebackType

    from .core.cancellation import CancellationToken
    from .core.compressors import Compressor
    from .core.models import MessageHeader, WireItem
    from .core.typings import Document
    from .description import ConnectionDescription, IsMasterResult
    from .handshake import Authenticator

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Connection:
    """Connection to a MongoDB server.

    Commands sent on one connection are answered in request order by the
    server, but callers must still not share a connection between concurrent
    operations.
    """

    def __init__(
        self,
        options: ConnectionOptions | str,
        *,
        authenticator: Authenticator | None = None,
    ) -> None:
        """Create a new Connection instance.

        Args:
            options (ConnectionOptions | str): The options, or a URI to parse them from.
            authenticator (Authenticator | None, optional): Authenticates the
                connection during the handshake. Required when the options carry
                credentials.

        Raises:
            ArgumentError: If credentials are configured without an authenticator.
        """
        if isinstance(options, str):
            options = ConnectionOptions.from_uri(options)
        if options.credentials is not None and authenticator is None:
            msg = "Credentials are configured but no authenticator was given"
            raise ArgumentError(msg)

        self._options = options
        self._authenticator = authenticator
        self._connection_id = ConnectionId()
        self.__reader: StreamReader | None = None
        self.__writer: StreamWriter | None = None
        self.__description: ConnectionDescription | None = None
        self._task: asyncio.Task[None] | None = None
        self._waiters: dict[int, asyncio.Future[WireItem]] = {}
        self._error: BaseException | None = None

        self.op_msg_enabled = False
        self.compressor: type[Compressor] | None = None

    def __repr__(self) -> str:
        return (
            f"<Connection {self._connection_id} to "
            f"{self._options.host}:{self._options.port}>"
        )

    async def __aenter__(self) -> Connection:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _fail_if_none(self, value: T | None) -> T:
        if value is None:
            raise NotReadyError
        return value

    @property
    def _reader(self) -> StreamReader:
        return self._fail_if_none(self.__reader)

    @property
    def _writer(self) -> StreamWriter:
        return self._fail_if_none(self.__writer)

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def connection_id(self) -> ConnectionId:
        """The process-local id of this connection."""
        return self._connection_id

    @property
    def description(self) -> ConnectionDescription:
        """The description produced by the handshake.

        Raises:
            NotReadyError: If the handshake has not completed.
        """
        return self._fail_if_none(self.__description)

    @property
    def is_open(self) -> bool:
        return self.__writer is not None and self._error is None

    def negotiate(self, is_master: IsMasterResult) -> None:
        """Adopt the wire protocol and compressor the server supports.

        Args:
            is_master (IsMasterResult): The server's capability summary.
        """
        self.op_msg_enabled = is_master.supports_op_msg
        if self._options.compressors is not None:
            self.compressor = pick_compressor(
                is_master.compression, self._options.compressors
            )
        logger.debug(
            "Connection %s: OP_MSG %s, compressor %s.",
            self._connection_id,
            "enabled" if self.op_msg_enabled else "disabled",
            self.compressor.name if self.compressor is not None else None,
        )

    async def open(
        self,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> ConnectionDescription:
        """Open the connection and run the handshake on it.

        Args:
            timeout (Timeout, optional): The budget for connecting and the handshake.
                Defaults to the ``connectTimeoutMS`` option.
            cancellation (CancellationToken | None, optional): The caller's token.

        Raises:
            ConnectionFailedError: If the server cannot be reached or the handshake fails.
                Also raised when the connection was lost during the handshake, even
                in a step whose own failure is ignored.

        Returns:
            ConnectionDescription: The description of the connection.
        """
        if timeout is None:
            timeout = self._options.connect_timeout
        budget = TimeBudget.coerce(timeout)

        try:
            self.__reader, self.__writer = await guard(
                asyncio.open_connection(self._options.host, self._options.port),
                budget,
                cancellation,
            )
        except OSError as e:
            msg = f"Could not connect to {self._options.host}:{self._options.port}: {e}"
            raise ConnectionFailedError(msg) from e

        self._task = asyncio.create_task(self._keep_reading())

        coordinator = HandshakeCoordinator(self._authenticator)
        try:
            description = await coordinator.initialize(self, budget, cancellation)
            # The best-effort step may have abandoned the stream.
            self._ensure_usable()
        except BaseException:
            await self.close()
            raise
        self.__description = description
        return description

    async def close(self) -> None:
        """Close the connection."""
        self._shutdown(ConnectionFailedError("Connection closed."))
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self.__writer is not None:
            with contextlib.suppress(OSError):
                await self.__writer.wait_closed()

    def _shutdown(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self.__writer is not None:
            self.__writer.close()
        for waiter in self._waiters.values():
            if not waiter.done():
                waiter.set_exception(self._error)
        self._waiters.clear()

    def _ensure_usable(self) -> None:
        if self._error is not None:
            msg = f"Connection {self._connection_id} is no longer usable."
            raise ConnectionFailedError(msg) from self._error
        self._fail_if_none(self.__writer)

    async def _keep_reading(self) -> None:
        try:
            while True:
                item = await read_message(self._reader)

                if waiter := self._waiters.pop(item.header.response_to, None):
                    if not waiter.done():
                        waiter.set_result(item)
        except (OSError, asyncio.IncompleteReadError, ConnectionFailedError) as e:
            error = ConnectionFailedError(f"Connection {self._connection_id} lost: {e}")
            error.__cause__ = e
            self._shutdown(error)

    async def _pack(
        self, opcode: int, body: bytes, *, compress: bool
    ) -> tuple[MessageHeader, bytes]:
        if compress and self.compressor is not None:
            logger.debug("  compressing with %s", self.compressor.name)
            body = await op_compressed(opcode, body, self.compressor)
            opcode = MessageOpCode.OP_COMPRESSED
        return pack_message(opcode, body)

    async def _write(self, header: MessageHeader, data: bytes) -> None:
        logger.debug("> %s", header)
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            msg = f"Connection {self._connection_id} failed while sending: {e}"
            raise ConnectionFailedError(msg) from e

    async def _send(self, opcode: int, body: bytes, *, compress: bool) -> None:
        header, data = await self._pack(opcode, body, compress=compress)
        await self._write(header, data)

    async def _send_and_wait(
        self, opcode: int, body: bytes, codec_options: CodecOptions, *, compress: bool
    ) -> Any:
        header, data = await self._pack(opcode, body, compress=compress)
        future: asyncio.Future[WireItem] = asyncio.get_running_loop().create_future()
        # Registered before writing, the reader task may see the reply first.
        self._waiters[header.request_id] = future
        try:
            await self._write(header, data)
            item = await future
        finally:
            self._waiters.pop(header.request_id, None)
        return await unpack_reply(item, codec_options)

    async def _guarded(
        self,
        awaitable: Any,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
    ) -> Any:
        try:
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            timeout.raise_if_expired()
        except (OperationTimeoutError, OperationCancelledError):
            awaitable.close()
            raise
        try:
            return await guard(awaitable, timeout, cancellation)
        except (OperationTimeoutError, OperationCancelledError) as e:
            # I/O was abandoned half way, the stream is no longer in sync.
            self._shutdown(e)
            raise

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
        """Run a command and wait for its reply.

        Uses OP_MSG once the server is known to support it and OP_QUERY on
        ``<database>.$cmd`` otherwise.

        Args:
            database (str): The database to run the command against.
            command (Document): The command, its first key is the command name.
            timeout (Timeout, optional): The budget for the round trip.
            cancellation (CancellationToken | None, optional): The caller's token.
            codec_options (CodecOptions, optional): Encoder and decoder settings.
            check (bool, optional): Raise if the reply is not ``ok``. Defaults to True.

        Raises:
            ConnectionFailedError: If the connection fails.
            ServerCommandError: If the server replies with ``ok: 0``.

        Returns:
            Document: The reply.
        """
        budget = TimeBudget.coerce(timeout)
        self._ensure_usable()

        name = next(iter(command))
        compress = name.lower() not in UNCOMPRESSIBLE_COMMANDS
        if self.op_msg_enabled:
            opcode = MessageOpCode.OP_MESSAGE
            body = op_msg({**command, "$db": database}, codec_options=codec_options)
        else:
            opcode = MessageOpCode.OP_QUERY
            body = op_query_command(database, command, codec_options)

        reply: Document = await self._guarded(
            self._send_and_wait(opcode, body, codec_options, compress=compress),
            budget,
            cancellation,
        )

        if check and reply.get("ok") != 1:
            raise ServerCommandError(reply)
        return reply

    async def send_message(
        self,
        opcode: int,
        body: bytes,
        *,
        timeout: Timeout = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """Send a message that gets no reply.

        Args:
            opcode (int): The opcode of the message.
            body (bytes): The encoded message body.
            timeout (Timeout, optional): The budget for sending.
            cancellation (CancellationToken | None, optional): The caller's token.

        Raises:
            ConnectionFailedError: If the connection fails.
        """
        budget = TimeBudget.coerce(timeout)
        self._ensure_usable()
        await self._guarded(self._send(opcode, body, compress=True), budget, cancellation)
