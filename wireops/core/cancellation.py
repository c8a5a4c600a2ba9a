# SPDX-License-Identifier: MIT

"""Caller-controlled cancellation."""

from __future__ import annotations

import asyncio

from .errors import OperationCancelledError


class CancellationToken:
    """A signal a caller sets to abandon the operations that observe it.

    Unlike ``Task.cancel()`` this is checked only at suspension points and
    surfaces as :class:`OperationCancelledError`. It must be used from the
    event loop thread.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise if cancellation was requested.

        Raises:
            OperationCancelledError: If ``cancel()`` was called.
        """
        if self.cancelled:
            raise OperationCancelledError

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()
