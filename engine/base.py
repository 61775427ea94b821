"""Base interfaces for recognition sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import AsyncIterator

from pipeline.cancellation import CancellationToken


@dataclass(frozen=True, slots=True)
class RawSegment:
    """One timed piece of text as produced by the engine."""

    start: timedelta
    end: timedelta
    text: str


class RecognitionSession(ABC):
    """A loaded speech-to-text model that can transcribe many files."""

    def __init__(self, model_path: Path) -> None:
        self.model_path = model_path

    @abstractmethod
    def stream(self, wav_path: Path, language: str, token: CancellationToken) -> AsyncIterator[RawSegment]:
        """Transcribe a WAV file, yielding segments in order as the engine produces them.

        Args:
            wav_path: Path to a 16kHz mono WAV file.
            language: Language code (e.g. "en") or "auto" to auto-detect.
            token: Checked while waiting for each segment.

        Raises:
            OperationCancelled: If ``token`` is cancelled before the stream ends.
        """

    def close(self) -> None:
        """Release the loaded model."""
