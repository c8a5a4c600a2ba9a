# SPDX-License-Identifier: MIT

"""Deleting documents."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, ClassVar

from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from .core.errors import ArgumentError
from .core.models import CollectionNamespace, DeleteFlags
from .core.results import NOT_REQUESTED, WriteConcernResult, raise_for_last_error
from .core.typings import MessageOpCode
from .emulation import (
    OperationKind,
    WireProtocol,
    select_protocol,
    translate_last_error_reply,
    translate_write_command_reply,
)
from .message import op_delete
from .operation import ExecutionState, WriteOperation
from .write_concern import WriteConcern

if TYPE_CHECKING:
    from .binding import WireConnection
    from .core.cancellation import CancellationToken
    from .core.timeout import TimeBudget
    from .core.typings import Document
    from .operation import Execution


@dataclass(frozen=True)
class DeleteOperation(WriteOperation[WriteConcernResult]):
    """Delete the documents of a collection that match a filter.

    Servers that have write commands get a ``delete`` command when the write is
    acknowledged. Older servers, and unacknowledged writes, get a legacy
    OP_DELETE, followed by ``getLastError`` when acknowledged. The result has
    the same shape either way.

    Without a write concern of its own, the operation uses the default of the
    connection it runs on, taken from its ``w``, ``journal`` and ``wtimeoutMS``
    options.

    Example:
        >>> operation = DeleteOperation("db.coll", {"status": "old"}, multi=True)
        >>> result = await operation.execute(binding, timeout=5)
        >>> result.n
        3
    """

    kind: ClassVar[OperationKind] = OperationKind.DELETE

    namespace: CollectionNamespace
    filter: Document
    multi: bool = False
    write_concern: WriteConcern | None = None
    codec_options: CodecOptions = field(default=DEFAULT_CODEC_OPTIONS, repr=False)

    def __post_init__(self) -> None:
        if self.namespace is None:
            msg = "namespace must not be None"
            raise ArgumentError(msg)
        if isinstance(self.namespace, str):
            object.__setattr__(
                self, "namespace", CollectionNamespace.from_full_name(self.namespace)
            )
        if self.filter is None:
            msg = "filter must not be None"
            raise ArgumentError(msg)
        if not isinstance(self.filter, Mapping):
            msg = f"filter must be a document, got {type(self.filter).__name__}"
            raise ArgumentError(msg)

    def with_multi(self, multi: bool) -> DeleteOperation:
        return replace(self, multi=multi)

    def with_write_concern(self, write_concern: WriteConcern | None) -> DeleteOperation:
        return replace(self, write_concern=write_concern)

    def command(self, write_concern: WriteConcern) -> Document:
        """Get the ``delete`` command equivalent to this operation."""
        return {
            "delete": self.namespace.collection,
            "deletes": [{"q": self.filter, "limit": 0 if self.multi else 1}],
            "writeConcern": write_concern.document,
        }

    async def _execute(
        self,
        connection: WireConnection,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> WriteConcernResult:
        write_concern = self.write_concern
        if write_concern is None:
            write_concern = connection.options.write_concern
        protocol = select_protocol(self.kind, connection.description, write_concern)
        execution.advance(ExecutionState.PROTOCOL_SELECTED)

        if protocol is WireProtocol.COMMAND_EMULATION:
            return await self._execute_command(
                connection, write_concern, timeout, cancellation, execution
            )
        return await self._execute_opcode(
            connection, write_concern, timeout, cancellation, execution
        )

    async def _execute_command(
        self,
        connection: WireConnection,
        write_concern: WriteConcern,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> WriteConcernResult:
        execution.advance(ExecutionState.AWAITING_REPLY)
        reply = await connection.command(
            self.namespace.database,
            self.command(write_concern),
            timeout=timeout,
            cancellation=cancellation,
            codec_options=self.codec_options,
            check=False,
        )
        response = translate_write_command_reply(reply)
        raise_for_last_error(response)
        return WriteConcernResult.from_response(response)

    async def _execute_opcode(
        self,
        connection: WireConnection,
        write_concern: WriteConcern,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> WriteConcernResult:
        flags = DeleteFlags.none if self.multi else DeleteFlags.single_remove
        body = op_delete(self.namespace.full_name, self.filter, flags, self.codec_options)
        await connection.send_message(
            MessageOpCode.OP_DELETE, body, timeout=timeout, cancellation=cancellation
        )

        if not write_concern.acknowledged:
            return NOT_REQUESTED

        execution.advance(ExecutionState.AWAITING_REPLY)
        reply = await connection.command(
            self.namespace.database,
            {"getLastError": 1, **write_concern.document},
            timeout=timeout,
            cancellation=cancellation,
            codec_options=self.codec_options,
            check=False,
        )
        response = translate_last_error_reply(reply)
        raise_for_last_error(response)
        return WriteConcernResult.from_response(response)
