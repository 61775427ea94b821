"""Plain text transcript output."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from engine.base import RawSegment


PREVIEW_LIMIT = 4000


def join_transcript(segments: Iterable[RawSegment]) -> str:
    """Concatenate segment texts with single spaces."""

    return " ".join(segment.text.strip() for segment in segments if segment.text.strip()).strip()


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit] + "\n..."


def default_output_path(input_path: Path) -> Path:
    return input_path.with_suffix(".txt")


def write_text_file(output_path: Path, text: str) -> None:
    """Write transcript text to disk as UTF-8 without a byte-order mark.

    Args:
        output_path: Destination `.txt` path.
        text: Transcript content.
    """

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text, encoding="utf-8")
