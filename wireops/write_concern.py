# SPDX-License-Identifier: MIT

"""Write concerns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from .core.errors import ArgumentError
from .core.typings import Document

W = Union[int, str, None]


@dataclass(frozen=True)
class WriteConcern:
    """The acknowledgement a write asks of the server.

    ``w=0`` is unacknowledged: nothing is awaited after the write is sent.
    Anything else is acknowledged, optionally requiring journaling (``j``)
    or a replication timeout (``wtimeout``, in milliseconds).
    """

    ACKNOWLEDGED: ClassVar[WriteConcern]
    UNACKNOWLEDGED: ClassVar[WriteConcern]

    w: W = 1
    j: bool | None = None
    wtimeout: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.w, bool) or (isinstance(self.w, int) and self.w < 0):
            msg = f"Invalid w value {self.w!r}"
            raise ArgumentError(msg)
        if self.wtimeout is not None and self.wtimeout < 0:
            msg = "wtimeout must not be negative"
            raise ArgumentError(msg)
        if self.w == 0 and self.j:
            msg = "An unacknowledged write concern cannot request journaling"
            raise ArgumentError(msg)

    @property
    def acknowledged(self) -> bool:
        return self.w != 0

    @property
    def document(self) -> Document:
        """The ``writeConcern`` document sent with a command."""
        doc: Document = {}
        if self.w is not None:
            doc["w"] = self.w
        if self.j is not None:
            doc["j"] = self.j
        if self.wtimeout is not None:
            doc["wtimeout"] = self.wtimeout
        return doc


WriteConcern.ACKNOWLEDGED = WriteConcern()
WriteConcern.UNACKNOWLEDGED = WriteConcern(w=0)
