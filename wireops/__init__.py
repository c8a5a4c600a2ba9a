# SPDX-License-Identifier: MIT

"""wireops - The asyncio operation core of a MongoDB driver."""

__all__ = (
    "CancellationToken",
    "CollectionNamespace",
    "CommandOperation",
    "Connection",
    "ConnectionDescription",
    "ConnectionId",
    "ConnectionOptions",
    "DeleteOperation",
    "HandshakeCoordinator",
    "InterlockedValue",
    "NOT_REQUESTED",
    "SingleConnectionBinding",
    "TimeBudget",
    "WriteConcern",
    "WriteConcernResult",
)

from .binding import SingleConnectionBinding
from .command import CommandOperation
from .connection import Connection
from .core.cancellation import CancellationToken
from .core.interlocked import InterlockedValue
from .core.models import CollectionNamespace
from .core.results import NOT_REQUESTED, WriteConcernResult
from .core.timeout import TimeBudget
from .delete import DeleteOperation
from .description import ConnectionDescription, ConnectionId
from .handshake import HandshakeCoordinator
from .options import ConnectionOptions
from .write_concern import WriteConcern
