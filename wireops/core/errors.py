# SPDX-License-Identifier: MIT

"""Errors raised by wireops."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .typings import Document


class WireOpsError(Exception):
    """Base class for all wireops errors."""


class ArgumentError(WireOpsError, ValueError):
    """Raised when an operation or value is constructed with invalid arguments."""


class NotReadyError(WireOpsError):
    """Exception raised when the connection is not ready."""

    msg = "Connection not established. Did you forget to call `open()`?"

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or self.msg)


class ConnectionFailedError(WireOpsError, ConnectionError):
    """Raised when the transport fails or the handshake cannot complete.

    The connection that raised it must not be used again.
    """


class AuthenticationError(ConnectionFailedError):
    """Raised when a connection could not be authenticated."""


class OperationTimeoutError(WireOpsError, TimeoutError):
    """Raised when the time budget of an operation is exhausted."""

    msg = "Operation timed out."

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or self.msg)


class OperationCancelledError(WireOpsError):
    """Raised when a cancellation token is observed at a suspension point."""

    msg = "Operation was cancelled."

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or self.msg)


class InvalidOperationError(WireOpsError):
    """Raised when a result is used in a way its write concern does not allow."""


class ServerCommandError(WireOpsError):
    """Exception raised when the server replies with a command failure."""

    def __init__(self, error: Document) -> None:
        """Create a new ServerCommandError instance.

        Args:
            error (Document): The error document.
        """
        self.error = error
        super().__init__(self.errmsg)

    @property
    def code(self) -> int | None:
        """The server error code, if the reply carried one."""
        return self.error.get("code")

    @property
    def errmsg(self) -> str:
        """The server error message."""
        return str(
            self.error.get("errmsg")
            or self.error.get("err")
            or self.error.get("$err")
            or "Unknown command error"
        )


class WriteConcernError(ServerCommandError):
    """Raised when a write fails or its write concern is not satisfied.

    ``error`` is always shaped like a ``getLastError`` reply, whichever
    wire protocol executed the write.
    """
