"""Single-flight execution of workflow actions with cancellation."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from typing import Awaitable, Callable, Optional

from .cancellation import CancellationToken, OperationCancelled


logger = logging.getLogger(__name__)

Action = Callable[[CancellationToken], Awaitable[None]]

STATUS_READY = "Ready."
STATUS_WORKING = "Working..."
STATUS_DONE = "Done."
STATUS_CANCELED = "Canceled."


class InputError(ValueError):
    """A user-facing problem with the request (nothing selected, empty path)."""


class Outcome(str, Enum):
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunController:
    """Runs at most one action at a time for one workflow owner.

    Each run gets a fresh cancellation token. Cancellation ends the run with
    a "Canceled." status; any other error is logged and reduced to a short
    status message. In every case the controller is idle again afterwards
    and ``on_change`` is called so that callers can re-evaluate which actions
    are available.
    """

    def __init__(self, name: str, on_change: Optional[Callable[[], None]] = None) -> None:
        self.name = name
        self.on_change = on_change
        self.status = STATUS_READY
        self.last_error: Optional[BaseException] = None
        self._busy = False
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._busy

    def set_status(self, status: str) -> None:
        """Replace the status line and tell the listener."""

        self.status = status
        self.notify()

    async def run(self, action: Action) -> Outcome:
        if self._busy:
            logger.debug("[%s] busy; ignoring request", self.name)
            return Outcome.SKIPPED

        self._busy = True
        self.last_error = None
        self.status = STATUS_WORKING
        token = CancellationToken()
        self._token = token
        self.notify()

        outcome = Outcome.COMPLETED
        try:
            self._task = asyncio.ensure_future(action(token))
            await self._task
            if self.status == STATUS_WORKING:
                self.status = STATUS_DONE
        except OperationCancelled:
            outcome = self._canceled()
        except asyncio.CancelledError:
            if not token.cancelled:
                # Cancelled from outside (e.g. event loop shutdown); not ours to swallow.
                raise
            outcome = self._canceled()
        except InputError as exc:
            logger.warning("[%s] %s", self.name, exc)
            self.last_error = exc
            self.status = str(exc)
            outcome = Outcome.FAILED
        except Exception as exc:
            logger.exception("[%s] action failed", self.name)
            self.last_error = exc
            self.status = f"Error: {exc}"
            outcome = Outcome.FAILED
        finally:
            self._task = None
            self._busy = False
            self.notify()
        return outcome

    def cancel(self) -> None:
        """Request cancellation of the running action, if any."""

        if not self._busy or self._token is None:
            return
        logger.info("[%s] cancellation requested", self.name)
        self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _canceled(self) -> Outcome:
        logger.info("[%s] operation canceled", self.name)
        self.status = STATUS_CANCELED
        return Outcome.CANCELED

    def notify(self) -> None:
        """Call ``on_change`` so the UI re-reads state."""

        if self.on_change is not None:
            self.on_change()
