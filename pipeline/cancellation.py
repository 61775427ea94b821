"""Cooperative cancellation shared by the pipeline stages."""

from __future__ import annotations

import threading


class OperationCancelled(Exception):
    """Raised at a checkpoint after the run owner requested cancellation."""

    def __init__(self, message: str = "Operation canceled.") -> None:
        super().__init__(message)


class CancellationToken:
    """A one-shot cancellation flag.

    Backed by a ``threading.Event`` so that worker threads (the recognition
    engine callback) can observe it as well as asyncio code.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


# Token that is never cancelled, for callers outside a run controller.
NEVER = CancellationToken()
