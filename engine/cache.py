"""Per-owner cache holding at most one loaded recognition session."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from .base import RecognitionSession


logger = logging.getLogger(__name__)

SessionFactory = Callable[[Path], RecognitionSession]


class SessionCache:
    """Keeps the last loaded session and rebuilds it when the model path changes."""

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._session: Optional[RecognitionSession] = None
        self._model_path: Optional[Path] = None

    @property
    def model_path(self) -> Optional[Path]:
        return self._model_path

    def get(self, model_path: Path) -> RecognitionSession:
        """Return the session for ``model_path``, replacing a session loaded from another model."""

        if self._session is not None and _same_path(self._model_path, model_path):
            return self._session

        self.invalidate()
        logger.debug("Creating recognition session for %s", model_path)
        self._session = self._factory(model_path)
        self._model_path = model_path
        return self._session

    def invalidate(self) -> None:
        """Close the cached session, if any; the next ``get`` loads a fresh one."""

        if self._session is not None:
            logger.debug("Closing recognition session for %s", self._model_path)
            self._session.close()
        self._session = None
        self._model_path = None

    close = invalidate


def _same_path(a: Optional[Path], b: Path) -> bool:
    return a is not None and str(a).casefold() == str(b).casefold()
