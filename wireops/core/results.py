# SPDX-License-Identifier: MIT
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import InvalidOperationError, WriteConcernError

if TYPE_CHECKING:
    from .typings import Document

T = TypeVar("T", bound="Result")


@dataclass(frozen=True)
class Result:
    acknowledged: bool
    response: Document = field(default_factory=dict)

    @classmethod
    def from_response(cls: type[T], response: Document) -> T:
        return cls(acknowledged=True, response=dict(response))

    def _raise_if_unacknowledged(self, property_name: str) -> None:
        if not self.acknowledged:
            msg = (
                f"Cannot access {property_name} of an unacknowledged write, "
                "no server reply was requested."
            )
            raise InvalidOperationError(msg)


@dataclass(frozen=True)
class WriteConcernResult(Result):
    """The result of a write, shaped like a ``getLastError`` reply.

    Both the legacy opcodes and the write commands produce this.
    """

    @property
    def n(self) -> int:
        """The number of documents affected."""
        self._raise_if_unacknowledged("n")
        return self.response.get("n", 0)

    @property
    def updated_existing(self) -> bool:
        self._raise_if_unacknowledged("updated_existing")
        return bool(self.response.get("updatedExisting", False))

    @property
    def upserted(self) -> Any:
        self._raise_if_unacknowledged("upserted")
        return self.response.get("upserted")

    @property
    def last_error_message(self) -> str | None:
        self._raise_if_unacknowledged("last_error_message")
        return self.response.get("err")

    @property
    def has_last_error_message(self) -> bool:
        return self.last_error_message is not None


NOT_REQUESTED = WriteConcernResult(acknowledged=False)
"""Returned by unacknowledged writes instead of a server reply."""


def raise_for_last_error(response: Document) -> None:
    """Raise if a ``getLastError`` shaped reply reports a failed write.

    Args:
        response (Document): The reply to check.

    Raises:
        WriteConcernError: If ``err`` is set.
    """
    if response.get("err") is not None:
        raise WriteConcernError(response)
