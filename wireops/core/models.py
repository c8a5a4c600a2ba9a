# SPDX-License-Identifier: MIT
"""Small value types shared by the wire codec and the operations."""
from __future__ import annotations

from enum import IntFlag
from typing import NamedTuple, TypeVar

from .errors import ArgumentError

T = TypeVar("T", bound="Flags")


class MessageHeader(NamedTuple):
    message_length: int
    request_id: int
    response_to: int
    opcode: int


class WireItem(NamedTuple):
    header: MessageHeader
    data: bytes


class Flags(IntFlag):
    """Flags for the OP_MSG Opcode."""

    checksum_present = 1 << 0
    more_to_come = 1 << 1
    exhaust_allowed = 1 << 16
    all = checksum_present | more_to_come | exhaust_allowed

    def verify(self: T) -> T:
        """Verify that only known flags are set.

        Args:
            self (T): The flags to verify.

        Raises:
            ValueError: If an unknown flag is set.

        Returns:
            T: The flags. Useful for chaining and inline usage.
        """
        # Bits 0-15 are required, parsers MUST error on an unknown one.
        # Unknown bits 16-31 are optional and ignored.
        if int(self) & ~int(Flags.all) & 0xFFFF:
            msg = "Unknown bit set in flags"
            raise ValueError(msg)
        return self


class ReplyFlags(IntFlag):
    """Response flags of the legacy OP_REPLY Opcode."""

    cursor_not_found = 1 << 0
    query_failure = 1 << 1
    shard_config_stale = 1 << 2
    await_capable = 1 << 3


class DeleteFlags(IntFlag):
    """Flags of the legacy OP_DELETE Opcode."""

    none = 0
    single_remove = 1 << 0


class CollectionNamespace(NamedTuple):
    """A ``database.collection`` pair."""

    database: str
    collection: str

    @classmethod
    def from_full_name(cls, full_name: str) -> CollectionNamespace:
        """Split a full namespace name.

        Args:
            full_name (str): A name like ``"db.coll"``.

        Raises:
            ArgumentError: If the name has no database or collection part.

        Returns:
            CollectionNamespace: The namespace.
        """
        database, sep, collection = full_name.partition(".")
        if not sep or not database or not collection:
            msg = f"Invalid collection namespace {full_name!r}"
            raise ArgumentError(msg)
        return cls(database, collection)

    @property
    def full_name(self) -> str:
        return f"{self.database}.{self.collection}"

    def __str__(self) -> str:
        return self.full_name
