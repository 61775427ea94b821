"""Subtitle timestamps: ``HH:MM:SS,mmm`` (SRT) and ``HH:MM:SS.mmm`` (WebVTT)."""

from __future__ import annotations

from datetime import timedelta
import re
from typing import Optional


ARROW = "-->"

_MS = timedelta(milliseconds=1)
# Hours are not capped at 24; either separator is accepted on read.
_TIMESTAMP_RE = re.compile(r"^(\d+):(\d+):(\d+)(?:[.,](\d+))?$")


def format_timestamp(value: timedelta, separator: str) -> str:
    total_ms = max(0, value // _MS)
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1_000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{separator}{millis:03d}"


def format_srt_time(value: timedelta) -> str:
    return format_timestamp(value, ",")


def format_vtt_time(value: timedelta) -> str:
    return format_timestamp(value, ".")


def parse_timestamp(value: str) -> Optional[timedelta]:
    """Parse ``H:MM:SS[.,]fff``; short fractions are right-padded, long ones truncated.

    Returns None when the text is not a timestamp.
    """

    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        return None
    hours, minutes, seconds, fraction = match.groups()
    millis = int((fraction or "").ljust(3, "0")[:3])
    return timedelta(hours=int(hours), minutes=int(minutes), seconds=int(seconds), milliseconds=millis)


def parse_time_range(line: str) -> Optional[tuple[timedelta, timedelta]]:
    """Parse ``START --> END [cue settings]``; trailing settings are ignored."""

    if ARROW not in line:
        return None
    left, right = line.split(ARROW, 1)
    end_fields = right.split()
    if not end_fields:
        return None

    start = parse_timestamp(left)
    end = parse_timestamp(end_fields[0])
    if start is None or end is None:
        return None
    return start, end
