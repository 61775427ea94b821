"""SRT and WebVTT writing and parsing, plus subtitle file I/O."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from .segments import Segment
from .timecode import ARROW, format_srt_time, format_vtt_time, parse_time_range


logger = logging.getLogger(__name__)

SUBTITLE_EXTENSIONS = {".srt", ".vtt"}
DEFAULT_BASE_NAME = "subtitles"

_BLOCK_SEPARATOR = re.compile(r"\n(?:[ \t]*\n)+")


class SubtitleError(ValueError):
    """Base error for subtitle file handling."""


class UnsupportedSubtitleError(SubtitleError):
    """Raised for files that are neither .srt nor .vtt."""


def write_srt(segments: Iterable[Segment]) -> str:
    """Serialize segments as SubRip text (1-based indices, comma milliseconds)."""

    parts: list[str] = []
    for index, segment in enumerate(segments, start=1):
        parts.append(
            f"{index}\n"
            f"{format_srt_time(segment.start)} {ARROW} {format_srt_time(segment.end)}\n"
            f"{segment.text.strip()}\n"
            "\n"
        )
    return "".join(parts)


def write_vtt(segments: Iterable[Segment]) -> str:
    """Serialize segments as WebVTT text (dot milliseconds, no cue identifiers)."""

    parts = ["WEBVTT\n\n"]
    for segment in segments:
        parts.append(
            f"{format_vtt_time(segment.start)} {ARROW} {format_vtt_time(segment.end)}\n"
            f"{segment.text.strip()}\n"
            "\n"
        )
    return "".join(parts)


def parse_srt(text: str) -> list[Segment]:
    """Parse SubRip text. Blocks without a valid time range are skipped."""

    result: list[Segment] = []
    for block in _BLOCK_SEPARATOR.split(_normalize_newlines(text)):
        block = block.strip("\n")
        if not block:
            continue
        lines = [line.rstrip() for line in block.split("\n")]
        if len(lines) < 2:
            continue

        # lines[0] is the cue index; it is not validated.
        times = parse_time_range(lines[1].strip())
        if times is None:
            logger.debug("Skipping SRT block with an invalid time line: %r", lines[1])
            continue

        start, end = times
        result.append(Segment(start=start, end=end, text="\n".join(lines[2:]).strip()))

    result.sort(key=lambda s: s.start)
    return result


def parse_vtt(text: str) -> list[Segment]:
    """Parse WebVTT text. Cue identifiers and cue settings are dropped."""

    lines = _normalize_newlines(text).split("\n")
    result: list[Segment] = []
    i = 0

    while i < len(lines) and not lines[i].strip():
        i += 1
    if i < len(lines) and lines[i].upper().startswith("WEBVTT"):
        i += 1

    while i < len(lines):
        while i < len(lines) and not lines[i].strip():
            i += 1
        if i >= len(lines):
            break

        time_line = lines[i].strip()
        if ARROW not in time_line:
            # Cue identifier; the timing line follows.
            i += 1
            if i >= len(lines):
                break
            time_line = lines[i].strip()

        times = parse_time_range(time_line)
        if times is None:
            logger.debug("Skipping VTT line without a valid time range: %r", time_line)
            i += 1
            continue

        i += 1
        text_lines: list[str] = []
        while i < len(lines) and lines[i].strip():
            text_lines.append(lines[i])
            i += 1

        start, end = times
        result.append(Segment(start=start, end=end, text="\n".join(text_lines).strip()))

    result.sort(key=lambda s: s.start)
    return result


def load_subtitles(path: Path | str | None) -> list[Segment]:
    """Read an .srt or .vtt file.

    Raises:
        ValueError: If no path is given.
        UnsupportedSubtitleError: If the extension is not .srt or .vtt.
    """

    if path is None or not str(path).strip():
        raise ValueError("Subtitle path is empty.")
    path = Path(path)

    suffix = path.suffix.lower()
    if suffix not in SUBTITLE_EXTENSIONS:
        raise UnsupportedSubtitleError(f"Only .srt and .vtt are supported, got {suffix or path.name!r}.")

    # utf-8-sig tolerates a BOM written by other tools.
    content = path.read_text(encoding="utf-8-sig")
    segments = parse_srt(content) if suffix == ".srt" else parse_vtt(content)
    logger.info("Loaded %d subtitles from %s", len(segments), path)
    return segments


def subtitle_base_name(media_path: Optional[Path]) -> str:
    if media_path is None or not media_path.stem:
        return DEFAULT_BASE_NAME
    return media_path.stem


def subtitle_paths(directory: Path, base_name: str) -> tuple[Path, Path]:
    return directory / f"{base_name}.srt", directory / f"{base_name}.vtt"


def save_subtitles(segments: Iterable[Segment], directory: Path, base_name: str) -> tuple[Path, Path]:
    """Write ``<base_name>.srt`` and ``<base_name>.vtt`` (UTF-8, no BOM) into ``directory``."""

    segments = list(segments)
    directory.mkdir(parents=True, exist_ok=True)
    srt_path, vtt_path = subtitle_paths(directory, base_name)
    _write_utf8(srt_path, write_srt(segments))
    _write_utf8(vtt_path, write_vtt(segments))
    logger.info("Saved subtitles: %s, %s", srt_path, vtt_path)
    return srt_path, vtt_path


def _write_utf8(path: Path, content: str) -> None:
    with path.open("w", encoding="utf-8", newline="\n") as fh:
        fh.write(content)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n")
