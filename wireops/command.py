# SPDX-License-Identifier: MIT

"""Running arbitrary commands."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bson.codec_options import DEFAULT_CODEC_OPTIONS, CodecOptions

from .core.errors import ArgumentError
from .core.typings import Document
from .operation import ExecutionState, ReadOperation

if TYPE_CHECKING:
    from .binding import WireConnection
    from .core.cancellation import CancellationToken
    from .core.timeout import TimeBudget
    from .operation import Execution


@dataclass(frozen=True)
class CommandOperation(ReadOperation[Document]):
    """Run a command document against a database and return its reply."""

    database: str
    command: Document
    codec_options: CodecOptions = field(default=DEFAULT_CODEC_OPTIONS, repr=False)

    def __post_init__(self) -> None:
        if not self.database:
            msg = "database must not be empty"
            raise ArgumentError(msg)
        if not isinstance(self.command, Mapping) or not self.command:
            msg = "command must be a non-empty document"
            raise ArgumentError(msg)

    async def _execute(
        self,
        connection: WireConnection,
        timeout: TimeBudget,
        cancellation: CancellationToken | None,
        execution: Execution,
    ) -> Document:
        execution.advance(ExecutionState.PROTOCOL_SELECTED)
        execution.advance(ExecutionState.AWAITING_REPLY)
        return await connection.command(
            self.database,
            dict(self.command),
            timeout=timeout,
            cancellation=cancellation,
            codec_options=self.codec_options,
        )
