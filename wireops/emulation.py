# SPDX-License-Identifier: MIT

"""Choice between legacy write opcodes and the write commands that replace them.

All knowledge of which server versions need which wire form lives here.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .description import ServerVersion

if TYPE_CHECKING:
    from .core.typings import Document
    from .description import ConnectionDescription
    from .write_concern import WriteConcern

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    DELETE = "delete"
    INSERT = "insert"
    UPDATE = "update"


class WireProtocol(Enum):
    LEGACY_OPCODE = "legacy opcode"
    COMMAND_EMULATION = "command emulation"


# Write commands arrived in 2.6, the legacy write opcodes were deprecated with them.
WRITE_COMMANDS_SERVER_VERSION = ServerVersion(2, 6, 0)

EMULATION_THRESHOLDS: dict[OperationKind, ServerVersion] = {
    OperationKind.DELETE: WRITE_COMMANDS_SERVER_VERSION,
    OperationKind.INSERT: WRITE_COMMANDS_SERVER_VERSION,
    OperationKind.UPDATE: WRITE_COMMANDS_SERVER_VERSION,
}


def select_protocol(
    kind: OperationKind,
    description: ConnectionDescription,
    write_concern: WriteConcern,
) -> WireProtocol:
    """Pick the wire form of a write.

    Acknowledged writes to servers at or above the kind's threshold use the
    equivalent command. Everything else uses the legacy opcode, which is also
    the only form that can be sent without waiting for a reply.

    Args:
        kind (OperationKind): The kind of write.
        description (ConnectionDescription): The connection the write will use.
        write_concern (WriteConcern): The write concern of the write.

    Returns:
        WireProtocol: The wire form to use.
    """
    threshold = EMULATION_THRESHOLDS[kind]
    if description.server_version >= threshold and write_concern.acknowledged:
        protocol = WireProtocol.COMMAND_EMULATION
    else:
        protocol = WireProtocol.LEGACY_OPCODE

    logger.debug(
        "Using %s for %s on server %s.",
        protocol.value,
        kind.value,
        description.server_version,
    )
    return protocol


def _translate_command_failure(reply: Document) -> Document:
    response: Document = {
        "ok": 0,
        "err": reply.get("errmsg") or reply.get("$err") or "command failed",
        "n": 0,
    }
    if "code" in reply:
        response["code"] = reply["code"]
    return response


def translate_last_error_reply(reply: Document) -> Document:
    """Bring a ``getLastError`` reply into the shape write results expect.

    Successful replies already have it. A failed ``getLastError`` command is
    converted the same way a failed write command is.
    """
    if reply.get("ok") != 1:
        return _translate_command_failure(reply)
    return reply


def translate_write_command_reply(reply: Document) -> Document:
    """Convert a write command reply to the ``getLastError`` reply shape.

    Args:
        reply (Document): The reply of a write command.

    Returns:
        Document: The equivalent ``getLastError`` reply.
    """
    if reply.get("ok") != 1:
        return _translate_command_failure(reply)

    response: Document = {"ok": 1, "err": None, "n": reply.get("n", 0)}

    write_errors = reply.get("writeErrors")
    if write_errors:
        error = write_errors[0]
        response["err"] = error.get("errmsg", "")
        response["code"] = error.get("code", 8)
        if "errInfo" in error:
            response["errInfo"] = error["errInfo"]
        return response

    write_concern_error = reply.get("writeConcernError")
    if write_concern_error:
        response["err"] = write_concern_error.get("errmsg", "")
        response["code"] = write_concern_error.get("code", 64)
        if write_concern_error.get("errInfo", {}).get("wtimeout"):
            response["wtimeout"] = True

    return response
