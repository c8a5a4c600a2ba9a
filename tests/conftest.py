from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from wireops.core.cancellation import CancellationToken
from wireops.core.errors import NotReadyError, ServerCommandError
from wireops.core.timeout import TimeBudget, guard
from wireops.description import (
    BuildInfoResult,
    ConnectionDescription,
    ConnectionId,
    IsMasterResult,
)
from wireops.options import ConnectionOptions

Document = dict[str, Any]


def make_description(
    version: str = "3.0.0",
    max_wire_version: int = 3,
    **is_master: Any,
) -> ConnectionDescription:
    return ConnectionDescription(
        connection_id=ConnectionId(),
        is_master=IsMasterResult.from_response(
            {"ok": 1, "ismaster": True, "maxWireVersion": max_wire_version, **is_master}
        ),
        build_info=BuildInfoResult.from_response({"ok": 1, "version": version}),
    )


async def wait_forever(_command: Document) -> Document:
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


class FakeConnection:
    """A connection that answers commands from a script instead of a server.

    ``replies`` maps a command name to a reply document, an exception to raise,
    or a callable (sync or async) taking the command.
    """

    def __init__(
        self,
        replies: dict[str, Any] | None = None,
        *,
        description: ConnectionDescription | None = None,
        options: ConnectionOptions | None = None,
    ) -> None:
        self.replies = replies or {}
        self.options = options or ConnectionOptions()
        self.connection_id = ConnectionId()
        self._description = description
        self.commands: list[tuple[str, Document]] = []
        self.messages: list[tuple[int, bytes]] = []
        self.events: list[str] = []
        self.negotiated: IsMasterResult | None = None

    @property
    def description(self) -> ConnectionDescription:
        if self._description is None:
            raise NotReadyError
        return self._description

    def negotiate(self, is_master: IsMasterResult) -> None:
        self.negotiated = is_master
        self.events.append("negotiate")

    async def _reply(self, command: Document) -> Document:
        name = next(iter(command))
        reply = self.replies.get(name, {"ok": 1})
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(command)
            if inspect.isawaitable(reply):
                reply = await reply
        return reply

    async def command(
        self,
        database: str,
        command: Document,
        *,
        timeout: Any = None,
        cancellation: CancellationToken | None = None,
        codec_options: CodecOptions = DEFAULT_CODEC_OPTIONS,
        check: bool = True,
    ) -> Document:
        self.commands.append((database, dict(command)))
        self.events.append(next(iter(command)))
        reply = await guard(self._reply(command), TimeBudget.coerce(timeout), cancellation)
        if check and reply.get("ok") != 1:
            raise ServerCommandError(reply)
        return reply

    async def send_message(
        self,
        opcode: int,
        body: bytes,
        *,
        timeout: Any = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        budget = TimeBudget.coerce(timeout)
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        budget.raise_if_expired()
        self.messages.append((opcode, body))
        self.events.append(f"opcode {opcode}")

    @property
    def command_names(self) -> list[str]:
        return [next(iter(command)) for _, command in self.commands]


class RecordingHandle:
    def __init__(self, events: list[str], connection: FakeConnection) -> None:
        self._events = events
        self._connection = connection

    async def __aenter__(self) -> RecordingHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._events.append("connection released")

    @property
    def options(self) -> ConnectionOptions:
        return self._connection.options

    @property
    def description(self) -> ConnectionDescription:
        return self._connection.description

    async def command(self, database: str, command: Document, **kwargs: Any) -> Document:
        return await self._connection.command(database, command, **kwargs)

    async def send_message(self, opcode: int, body: bytes, **kwargs: Any) -> None:
        await self._connection.send_message(opcode, body, **kwargs)


class RecordingSource:
    def __init__(
        self,
        events: list[str],
        connection: FakeConnection,
        get_connection: Callable[[], Any] | None = None,
    ) -> None:
        self._events = events
        self._connection = connection
        self._get_connection = get_connection

    async def __aenter__(self) -> RecordingSource:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._events.append("source released")

    async def get_connection(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> RecordingHandle:
        if self._get_connection is not None:
            await self._get_connection()
        self._events.append("connection acquired")
        return RecordingHandle(self._events, self._connection)


class RecordingBinding:
    """A binding that records when sources and connections come and go."""

    def __init__(
        self,
        connection: FakeConnection,
        get_connection: Callable[[], Any] | None = None,
    ) -> None:
        self.connection = connection
        self.events: list[str] = []
        self._get_connection = get_connection

    async def get_read_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> RecordingSource:
        self.events.append("read source acquired")
        return RecordingSource(self.events, self.connection, self._get_connection)

    async def get_write_connection_source(
        self, timeout: TimeBudget, cancellation: CancellationToken | None
    ) -> RecordingSource:
        self.events.append("write source acquired")
        return RecordingSource(self.events, self.connection, self._get_connection)
