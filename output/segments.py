"""Timed text segments and the editable collection behind the subtitle editor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Iterator, Optional, Union

from .timecode import parse_timestamp


NUDGE_SMALL = timedelta(milliseconds=100)
NUDGE_LARGE = timedelta(milliseconds=500)

Position = Union[timedelta, float, int]


@dataclass(slots=True, eq=True)
class Segment:
    """A span of recognized or authored text."""

    start: timedelta
    end: timedelta
    text: str


def _clamp(value: timedelta) -> timedelta:
    return value if value >= timedelta(0) else timedelta(0)


def _parse_boundary(text: Optional[str], current: timedelta) -> timedelta:
    if text is None:
        return current
    parsed = parse_timestamp(text)
    return current if parsed is None else _clamp(parsed)


def _as_timedelta(position: Position) -> timedelta:
    if isinstance(position, timedelta):
        return position
    return timedelta(seconds=float(position))


class SegmentStore:
    """Ordered segments plus the current selection.

    The collection is kept sorted by start time (stable, so ties keep their
    discovery order) after every mutation.
    """

    def __init__(self, segments: Iterable[Segment] = ()) -> None:
        self._segments: list[Segment] = []
        self._selected: Optional[Segment] = None
        self.replace(segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __getitem__(self, index: int) -> Segment:
        return self._segments[index]

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    @property
    def selected(self) -> Optional[Segment]:
        return self._selected

    def replace(self, segments: Iterable[Segment]) -> None:
        """Discard the current content and take ``segments`` instead."""

        self._segments = sorted(segments, key=lambda s: s.start)
        self._selected = None

    def clear(self) -> None:
        self.replace(())

    def select(self, index: Optional[int]) -> Optional[Segment]:
        self._selected = None if index is None else self._segments[index]
        return self._selected

    def index_of_selected(self) -> Optional[int]:
        if self._selected is None:
            return None
        for i, segment in enumerate(self._segments):
            if segment is self._selected:
                return i
        return None

    def nudge_selected(self, delta: timedelta) -> bool:
        """Shift the selected segment by ``delta``, never below zero.

        Returns False (and does nothing) when nothing is selected.
        """

        segment = self._selected
        if segment is None:
            return False
        segment.start = _clamp(segment.start + delta)
        segment.end = _clamp(segment.end + delta)
        self._resort()
        return True

    def retime_selected(self, start: Optional[str] = None, end: Optional[str] = None) -> bool:
        """Set the selected segment's boundaries from ``HH:MM:SS.mmm`` text.

        A boundary whose text does not parse is left unchanged. An edit that
        would put the start after the end is rejected as a whole.
        """

        segment = self._selected
        if segment is None:
            return False

        new_start = _parse_boundary(start, segment.start)
        new_end = _parse_boundary(end, segment.end)
        if new_start > new_end:
            return False
        if (new_start, new_end) == (segment.start, segment.end):
            return False

        segment.start = new_start
        segment.end = new_end
        self._resort()
        return True

    def edit_selected_text(self, text: str) -> bool:
        if self._selected is None:
            return False
        self._selected.text = text
        return True

    def active_at(self, position: Position) -> Optional[Segment]:
        """Return the first segment with ``start <= position <= end``."""

        t = _as_timedelta(position)
        for segment in self._segments:
            if segment.start <= t <= segment.end:
                return segment
        return None

    def _resort(self) -> None:
        self._segments.sort(key=lambda s: s.start)
