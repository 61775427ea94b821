"""Stops recognition when the model starts repeating itself."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pipeline.cancellation import CancellationToken

from .base import RawSegment, RecognitionSession


logger = logging.getLogger(__name__)

MAX_REPEATS = 8
MIN_LENGTH = 8


def normalize(text: str) -> str:
    """Lowercase, collapse whitespace runs to one space and trim."""

    return " ".join(text.lower().split())


class LoopGuard:
    """Tracks consecutive identical segments.

    ``accept`` returns False once the same normalized text has been repeated
    ``MAX_REPEATS`` times in a row (the ninth occurrence) and is at least
    ``MIN_LENGTH`` characters long, so short fillers never trip it.
    """

    def __init__(self, max_repeats: int = MAX_REPEATS, min_length: int = MIN_LENGTH) -> None:
        self.max_repeats = max_repeats
        self.min_length = min_length
        self._last: Optional[str] = None
        self._repeats = 0

    @property
    def repeats(self) -> int:
        return self._repeats

    def accept(self, text: str) -> bool:
        norm = normalize(text)
        if self._last is not None and norm == self._last:
            self._repeats += 1
        else:
            self._repeats = 0
        self._last = norm

        return not (self._repeats >= self.max_repeats and len(norm) >= self.min_length)


async def recognize(
    session: RecognitionSession,
    wav_path: Path,
    language: str,
    token: CancellationToken,
) -> list[RawSegment]:
    """Drain a session into a list of non-empty segments sorted by start time."""

    language = language.strip() or "auto"
    guard = LoopGuard()
    segments: list[RawSegment] = []

    stream = session.stream(wav_path, language, token)
    try:
        async for raw in stream:
            text = raw.text.strip()
            if not text:
                continue
            if not guard.accept(text):
                logger.warning("Recognition looks stuck repeating %r; stopped after %d segments", text, len(segments))
                break
            segments.append(RawSegment(start=raw.start, end=raw.end, text=text))
            token.raise_if_cancelled()
    finally:
        await stream.aclose()

    segments.sort(key=lambda s: s.start)
    logger.info("Recognized %d segments", len(segments))
    return segments
