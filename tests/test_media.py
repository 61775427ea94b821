from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

import media.audio as audio
from media.audio import (
    SILENCE_FILTER,
    FfmpegFailedError,
    SilentAudioError,
    Transcoder,
    UnsupportedMediaError,
    build_ffmpeg_args,
    is_supported_media,
    is_video,
    temp_wav_path,
)
from pipeline.cancellation import CancellationToken, OperationCancelled


class FakeProcess:
    def __init__(self, returncode: int, output: Path, size: int, hang: bool = False) -> None:
        self._returncode = returncode
        self._output = output
        self._size = size
        self._hang = hang
        self.returncode = None
        self.killed = False

    async def communicate(self) -> tuple[bytes, bytes]:
        if self._hang:
            await asyncio.sleep(3600)
        if self._size:
            self._output.write_bytes(b"\0" * self._size)
        self.returncode = self._returncode
        return b"", b"ffmpeg says hi"

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


class FakeFfmpeg:
    """Stands in for ``asyncio.create_subprocess_exec``; one result per call."""

    def __init__(self, results: list[tuple[int, int]], hang: bool = False) -> None:
        self.results = list(results)
        self.hang = hang
        self.calls: list[list[str]] = []
        self.processes: list[FakeProcess] = []

    async def __call__(self, program: str, *args: str, **kwargs) -> FakeProcess:
        self.calls.append(list(args))
        returncode, size = self.results.pop(0)
        process = FakeProcess(returncode, Path(args[-1]), size, hang=self.hang)
        self.processes.append(process)
        return process


@pytest.fixture
def fake_ffmpeg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(audio, "find_ffmpeg", lambda configured="ffmpeg": "ffmpeg")
    monkeypatch.setattr(audio.tempfile, "gettempdir", lambda: str(tmp_path))

    def install(results: list[tuple[int, int]], hang: bool = False) -> FakeFfmpeg:
        fake = FakeFfmpeg(results, hang=hang)
        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake)
        return fake

    return install


def _leftover_wavs(tmp_path: Path) -> list[Path]:
    return list(tmp_path.glob("whisper_transcriptor_*.wav"))


def test_is_supported_media() -> None:
    assert is_supported_media(Path("a.mp3"))
    assert is_supported_media(Path("a.MP4"))
    assert not is_supported_media(Path("a.txt"))
    assert is_video(Path("clip.mkv"))
    assert not is_video(Path("song.flac"))


def test_temp_wav_path_is_unique_and_not_created() -> None:
    first, second = temp_wav_path(), temp_wav_path()
    assert first != second
    assert first.suffix == ".wav"
    assert first.name.startswith("whisper_transcriptor_")
    assert not first.exists()


def test_build_ffmpeg_args_with_silence_filter() -> None:
    args = build_ffmpeg_args(Path("in.mp4"), Path("out.wav"), remove_silence=True, drop_video=True)
    assert args == [
        "-y", "-i", "in.mp4", "-vn", "-ac", "1", "-ar", "16000", "-c:a", "pcm_s16le",
        "-af", SILENCE_FILTER, "out.wav",
    ]


def test_build_ffmpeg_args_plain_audio() -> None:
    args = build_ffmpeg_args(Path("in.mp3"), Path("out.wav"), remove_silence=False, drop_video=False)
    assert "-vn" not in args
    assert "-af" not in args
    assert args[-1] == "out.wav"


def test_extract_rejects_unsupported_type(tmp_path: Path) -> None:
    with pytest.raises(UnsupportedMediaError):
        asyncio.run(Transcoder().extract(tmp_path / "notes.txt", remove_silence=False))


def test_extract_returns_wav(fake_ffmpeg, tmp_path: Path) -> None:
    fake = fake_ffmpeg([(0, 4096)])
    wav = asyncio.run(Transcoder().extract(tmp_path / "in.mp3", remove_silence=False, drop_video=False))
    assert wav.is_file()
    assert wav.parent == tmp_path
    assert len(fake.calls) == 1


def test_extract_retries_once_without_filter(fake_ffmpeg, tmp_path: Path) -> None:
    fake = fake_ffmpeg([(1, 0), (0, 4096)])
    wav = asyncio.run(Transcoder().extract(tmp_path / "in.mp3", remove_silence=True))
    assert wav.is_file()
    assert "-af" in fake.calls[0]
    assert "-af" not in fake.calls[1]
    assert _leftover_wavs(tmp_path) == [wav]


def test_extract_fails_without_retry_when_filter_off(fake_ffmpeg, tmp_path: Path) -> None:
    fake = fake_ffmpeg([(3, 0)])
    with pytest.raises(FfmpegFailedError) as info:
        asyncio.run(Transcoder().extract(tmp_path / "in.mp3", remove_silence=False))
    assert info.value.exit_code == 3
    assert len(fake.calls) == 1


def test_extract_fails_when_retry_fails(fake_ffmpeg, tmp_path: Path) -> None:
    fake_ffmpeg([(1, 0), (2, 0)])
    with pytest.raises(FfmpegFailedError) as info:
        asyncio.run(Transcoder().extract(tmp_path / "in.mp3", remove_silence=True))
    assert info.value.exit_code == 2
    assert _leftover_wavs(tmp_path) == []


def test_extract_rejects_near_empty_output(fake_ffmpeg, tmp_path: Path) -> None:
    fake_ffmpeg([(0, 44)])
    with pytest.raises(SilentAudioError):
        asyncio.run(Transcoder().extract(tmp_path / "in.mp4", remove_silence=False))
    assert _leftover_wavs(tmp_path) == []


def test_prepared_audio_removes_wav_afterwards(fake_ffmpeg, tmp_path: Path) -> None:
    fake_ffmpeg([(0, 4096)])

    async def run() -> Path:
        async with Transcoder().prepared_audio(tmp_path / "in.mp3", remove_silence=False) as wav:
            assert wav.is_file()
            return wav

    wav = asyncio.run(run())
    assert not wav.exists()


def test_cancelled_token_stops_before_ffmpeg(fake_ffmpeg, tmp_path: Path) -> None:
    fake = fake_ffmpeg([(0, 4096)])
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        asyncio.run(Transcoder().extract(tmp_path / "in.mp3", remove_silence=False, token=token))
    assert fake.calls == []


def test_task_cancellation_kills_ffmpeg(fake_ffmpeg, tmp_path: Path) -> None:
    fake = fake_ffmpeg([(0, 4096)], hang=True)

    async def run() -> None:
        task = asyncio.ensure_future(Transcoder().extract(tmp_path / "in.mp3", remove_silence=False))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert fake.processes[0].killed
    assert _leftover_wavs(tmp_path) == []
