# SPDX-License-Identifier: MIT
from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, TypedDict

Document = Dict[str, Any]


class IsMasterReply(TypedDict, total=False):
    ok: float
    ismaster: bool
    isWritablePrimary: bool
    secondary: bool
    setName: str
    msg: str
    maxBsonObjectSize: int
    maxMessageSizeBytes: int
    maxWriteBatchSize: int
    connectionId: int
    minWireVersion: int
    maxWireVersion: int
    readOnly: bool
    compression: list[str]
    saslSupportedMechs: list[str]


class BuildInfoReply(TypedDict, total=False):
    ok: float
    version: str
    versionArray: list[int]
    gitVersion: str


class GetLastErrorReply(TypedDict, total=False):
    ok: float
    err: str | None
    code: int
    n: int
    connectionId: int
    updatedExisting: bool
    upserted: Any
    wtimeout: bool


class MessageOpCode(IntEnum):
    OP_REPLY = 1
    OP_QUERY = 2004
    OP_DELETE = 2006
    OP_COMPRESSED = 2012
    OP_MESSAGE = 2013


class MessageSectionKind(IntEnum):
    BODY = 0
    DOCUMENT_SEQUENCE = 1
