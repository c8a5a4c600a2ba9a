# SPDX-License-Identifier: MIT

"""A thread-safe integer cell for small pieces of shared state."""

from __future__ import annotations

import threading


class InterlockedValue:
    """Thread-safe holder of a single integer.

    Every method is atomic on its own. Nothing else is guaranteed: two calls
    made one after the other may observe writes from other threads in between,
    so callers that need several values to change together must not build that
    out of separate cells.

    Callers must not take any lock of their own around these methods.
    """

    __slots__ = ("_lock", "_value")

    def __init__(self, initial_value: int = 0) -> None:
        """Create a new InterlockedValue.

        Args:
            initial_value (int, optional): The starting value. Defaults to 0.
        """
        self._lock = threading.Lock()
        self._value = initial_value

    def __repr__(self) -> str:
        return f"<InterlockedValue {self._value}>"

    def read(self) -> int:
        """Read the current value without blocking."""
        # A single attribute load of an int is atomic.
        return self._value

    def try_set(self, new_value: int) -> bool:
        """Unconditionally store ``new_value``.

        Args:
            new_value (int): The value to store.

        Returns:
            bool: True if the stored value changed.
        """
        with self._lock:
            previous = self._value
            self._value = new_value
        return previous != new_value

    def try_compare_and_set(self, expected: int, new_value: int) -> bool:
        """Store ``new_value`` only if the current value is ``expected``.

        Args:
            expected (int): The value the caller believes is stored.
            new_value (int): The value to store.

        Returns:
            bool: True if the previous value equaled ``expected``.
        """
        with self._lock:
            if self._value != expected:
                return False
            self._value = new_value
        return True

    def increment(self) -> int:
        """Add one and return the new value."""
        while True:
            current = self.read()
            if self.try_compare_and_set(current, current + 1):
                return current + 1
