from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from output.segments import Segment
from output.subtitles import (
    UnsupportedSubtitleError,
    load_subtitles,
    parse_srt,
    parse_vtt,
    save_subtitles,
    subtitle_base_name,
    write_srt,
    write_vtt,
)
from output.timecode import format_srt_time, format_vtt_time, parse_timestamp


def ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


def test_write_srt_single_segment() -> None:
    assert write_srt([Segment(ms(0), ms(500), "hi")]) == "1\n00:00:00,000 --> 00:00:00,500\nhi\n\n"


def test_write_vtt_header_and_dot_separator() -> None:
    text = write_vtt([Segment(ms(1000), ms(2500), "  hello ")])
    assert text == "WEBVTT\n\n00:00:01.000 --> 00:00:02.500\nhello\n\n"


def test_write_vtt_empty_is_header_only() -> None:
    assert write_vtt([]) == "WEBVTT\n\n"
    assert write_srt([]) == ""


def test_format_hours_are_not_capped() -> None:
    value = timedelta(hours=27, minutes=3, seconds=4, milliseconds=5)
    assert format_srt_time(value) == "27:03:04,005"
    assert format_vtt_time(value) == "27:03:04.005"


def test_format_floors_sub_millisecond() -> None:
    assert format_srt_time(timedelta(microseconds=1999)) == "00:00:00,001"


def test_parse_timestamp_pads_and_truncates_fraction() -> None:
    assert parse_timestamp("00:00:01.5") == ms(1500)
    assert parse_timestamp("00:00:01,25") == ms(1250)
    assert parse_timestamp("00:00:01.123456") == ms(1123)
    assert parse_timestamp("00:00:01") == ms(1000)
    assert parse_timestamp("not a time") is None


def test_parse_vtt_strips_cue_settings() -> None:
    segments = parse_vtt("WEBVTT\n\n00:00:01.000 --> 00:00:02.500 align:start\nhello\n")
    assert segments == [Segment(ms(1000), ms(2500), "hello")]


def test_parse_vtt_with_cue_identifier_and_multiline_text() -> None:
    text = "WEBVTT\n\nintro\n00:00:00.000 --> 00:00:01.000\nline one\nline two\n\n00:00:02.000 --> 00:00:03.000\nnext\n"
    segments = parse_vtt(text)
    assert [s.text for s in segments] == ["line one\nline two", "next"]


def test_parse_srt_accepts_dot_separator_and_crlf() -> None:
    text = "1\r\n00:00:01.000 --> 00:00:02,000\r\nhello\r\n\r\n2\r\n00:00:03,000 --> 00:00:04,000\r\nworld\r\n"
    segments = parse_srt(text)
    assert segments == [Segment(ms(1000), ms(2000), "hello"), Segment(ms(3000), ms(4000), "world")]


def test_parse_srt_skips_invalid_blocks() -> None:
    text = "1\nnonsense\nhello\n\n2\n00:00:03,000 --> 00:00:04,000\nworld\n\n3\n"
    assert parse_srt(text) == [Segment(ms(3000), ms(4000), "world")]


def test_parse_srt_tolerates_extra_blank_lines() -> None:
    text = "\n\n1\n00:00:01,000 --> 00:00:02,000\nhello\n\n\n\n2\n00:00:03,000 --> 00:00:04,000\nworld\n"
    assert [s.text for s in parse_srt(text)] == ["hello", "world"]


def test_parse_sorts_by_start() -> None:
    text = "1\n00:00:05,000 --> 00:00:06,000\nlater\n\n2\n00:00:01,000 --> 00:00:02,000\nearlier\n"
    assert [s.text for s in parse_srt(text)] == ["earlier", "later"]


def test_srt_and_vtt_round_trip() -> None:
    segments = [
        Segment(ms(0), ms(1234), "first"),
        Segment(ms(1234), timedelta(hours=25, milliseconds=7), "second\nwith two lines"),
        Segment(timedelta(hours=30), timedelta(hours=30, seconds=1), "third"),
    ]
    assert parse_srt(write_srt(segments)) == segments
    assert parse_vtt(write_vtt(segments)) == segments


def test_round_trip_trims_surrounding_whitespace() -> None:
    parsed = parse_srt(write_srt([Segment(ms(0), ms(10), "  padded  ")]))
    assert parsed[0].text == "padded"


def test_save_and_load_subtitles(tmp_path: Path) -> None:
    segments = [Segment(ms(0), ms(900), "héllo")]
    srt_path, vtt_path = save_subtitles(segments, tmp_path / "subs", "movie")

    assert srt_path == tmp_path / "subs" / "movie.srt"
    assert vtt_path == tmp_path / "subs" / "movie.vtt"
    assert not srt_path.read_bytes().startswith(b"\xef\xbb\xbf")
    assert b"\r\n" not in vtt_path.read_bytes()
    assert load_subtitles(srt_path) == segments
    assert load_subtitles(vtt_path) == segments


def test_load_subtitles_tolerates_bom(tmp_path: Path) -> None:
    path = tmp_path / "bom.srt"
    path.write_bytes(b"\xef\xbb\xbf1\n00:00:00,000 --> 00:00:01,000\nhi\n")
    assert load_subtitles(path) == [Segment(ms(0), ms(1000), "hi")]


def test_load_subtitles_rejects_other_extensions(tmp_path: Path) -> None:
    path = tmp_path / "captions.ass"
    path.write_text("whatever", encoding="utf-8")
    with pytest.raises(UnsupportedSubtitleError):
        load_subtitles(path)


def test_load_subtitles_rejects_empty_path() -> None:
    with pytest.raises(ValueError, match="empty"):
        load_subtitles("  ")


def test_subtitle_base_name() -> None:
    assert subtitle_base_name(Path("/videos/talk.mp4")) == "talk"
    assert subtitle_base_name(None) == "subtitles"
