# SPDX-License-Identifier: MIT

"""What a connection learned about its server during the handshake."""

from __future__ import annotations

import re
from types import MappingProxyType
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, NamedTuple

from .core.errors import ArgumentError
from .core.interlocked import InterlockedValue

if TYPE_CHECKING:
    from .core.typings import BuildInfoReply, Document, IsMasterReply

MAX_BSON_OBJECT_SIZE = 16 * 1024 * 1024
MAX_MESSAGE_SIZE_BYTES = 48_000_000
MAX_WRITE_BATCH_SIZE = 1000

# maxWireVersion of the first servers with write commands and with OP_MSG.
WRITE_COMMANDS_WIRE_VERSION = 2
OP_MSG_WIRE_VERSION = 6

_last_local_id = InterlockedValue(0)


def next_local_id() -> int:
    """Allocate a process-local connection id."""
    return _last_local_id.increment()


@dataclass(frozen=True)
class ConnectionId:
    """The identity of a physical connection.

    ``server_value`` is the id the server assigned, once it is known.
    """

    local_value: int = field(default_factory=next_local_id)
    server_value: int | None = None

    def __str__(self) -> str:
        if self.server_value is None:
            return f"{self.local_value}"
        return f"{self.local_value}/{self.server_value}"

    def with_server_value(self, server_value: int) -> ConnectionId:
        """Get a copy of this id that carries ``server_value``."""
        return replace(self, server_value=server_value)


class ServerVersion(NamedTuple):
    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, version: str) -> ServerVersion:
        """Parse a version string like ``"3.0.15"`` or ``"2.6.0-rc1"``.

        Raises:
            ArgumentError: If the string does not start with a version number.
        """
        match = re.match(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?", version)
        if match is None:
            msg = f"Invalid server version {version!r}"
            raise ArgumentError(msg)
        major, minor, patch = (int(part or 0) for part in match.groups())
        return cls(major, minor, patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class IsMasterResult:
    """The capability summary taken from a read-only copy of an ``isMaster`` reply."""

    response: Mapping[str, Any]

    @property
    def is_writable_primary(self) -> bool:
        return bool(
            self.response.get("ismaster", self.response.get("isWritablePrimary", False))
        )

    @property
    def is_replica_set_member(self) -> bool:
        return "setName" in self.response

    @property
    def set_name(self) -> str | None:
        return self.response.get("setName")

    @property
    def min_wire_version(self) -> int:
        return self.response.get("minWireVersion", 0)

    @property
    def max_wire_version(self) -> int:
        return self.response.get("maxWireVersion", 0)

    @property
    def max_bson_object_size(self) -> int:
        return self.response.get("maxBsonObjectSize", MAX_BSON_OBJECT_SIZE)

    @property
    def max_message_size_bytes(self) -> int:
        return self.response.get("maxMessageSizeBytes", MAX_MESSAGE_SIZE_BYTES)

    @property
    def max_write_batch_size(self) -> int:
        return self.response.get("maxWriteBatchSize", MAX_WRITE_BATCH_SIZE)

    @property
    def compression(self) -> list[str]:
        return list(self.response.get("compression", []))

    @property
    def sasl_supported_mechs(self) -> list[str]:
        return list(self.response.get("saslSupportedMechs", []))

    @property
    def supports_write_commands(self) -> bool:
        return self.max_wire_version >= WRITE_COMMANDS_WIRE_VERSION

    @property
    def supports_op_msg(self) -> bool:
        return self.max_wire_version >= OP_MSG_WIRE_VERSION

    @classmethod
    def from_response(cls, response: IsMasterReply | Document) -> IsMasterResult:
        return cls(response=MappingProxyType(dict(response)))


@dataclass(frozen=True)
class BuildInfoResult:
    """The version summary taken from a ``buildInfo`` reply."""

    response: Mapping[str, Any]
    server_version: ServerVersion

    @property
    def git_version(self) -> str | None:
        return self.response.get("gitVersion")

    @classmethod
    def from_response(cls, response: BuildInfoReply | Document) -> BuildInfoResult:
        """Parse a ``buildInfo`` reply.

        ``versionArray`` is preferred over the ``version`` string when present.

        Raises:
            ArgumentError: If the reply carries no usable version.
        """
        version_array = response.get("versionArray")
        if version_array:
            server_version = ServerVersion(*(list(version_array) + [0, 0])[:3])
        elif "version" in response:
            server_version = ServerVersion.parse(str(response["version"]))
        else:
            msg = "buildInfo reply has no version"
            raise ArgumentError(msg)
        return cls(
            response=MappingProxyType(dict(response)), server_version=server_version
        )


@dataclass(frozen=True)
class ConnectionDescription:
    """Immutable snapshot of a connection's identity and server capabilities.

    A refined connection id produces a new description; instances are never
    changed in place.
    """

    connection_id: ConnectionId
    is_master: IsMasterResult
    build_info: BuildInfoResult

    @property
    def server_version(self) -> ServerVersion:
        return self.build_info.server_version

    @property
    def max_wire_version(self) -> int:
        return self.is_master.max_wire_version

    def with_connection_id(self, connection_id: ConnectionId) -> ConnectionDescription:
        """Get a copy of this description with another connection id."""
        return replace(self, connection_id=connection_id)
