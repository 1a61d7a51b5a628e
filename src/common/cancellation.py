"""Run-scoped cancellation signal shared by the walker and materializer."""

from __future__ import annotations

import threading

from errors import OperationCancelledError


class CancellationToken:
    """Thin wrapper over ``threading.Event`` checked at every I/O boundary."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError once ``cancel`` has been called."""
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled")
