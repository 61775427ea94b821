"""Logging setup for the Whisper Transcriptor application."""

from __future__ import annotations

import logging
from typing import Callable

LOG_FORMAT = "%(levelname)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure application logging.

    Args:
        verbose: When True, sets the log level to DEBUG. Otherwise WARNING.
    """

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
    )
    # Per-request lines from the model download are noise even in verbose mode.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class CallbackHandler(logging.Handler):
    """Forwards formatted log lines to a callable (e.g. a UI log panel)."""

    def __init__(self, sink: Callable[[str], None], level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self._sink = sink
        self.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._sink(self.format(record))
        except Exception:
            self.handleError(record)
