"""Audio preparation via FFmpeg: any audio/video input to 16kHz mono WAV."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from pathlib import Path
import shutil
import tempfile
from typing import AsyncIterator, Optional
import uuid

from pipeline.cancellation import NEVER, CancellationToken


logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg", ".opus", ".wma"}
VIDEO_EXTENSIONS = {".mp4", ".mkv", ".mov", ".avi", ".webm", ".m4v", ".wmv", ".flv", ".ts"}
SUPPORTED_EXTENSIONS = AUDIO_EXTENSIONS | VIDEO_EXTENSIONS

SILENCE_FILTER = (
    "silenceremove=start_periods=1:start_duration=0.25:start_threshold=-50dB:"
    "stop_periods=-1:stop_duration=0.50:stop_threshold=-50dB"
)

# A WAV header alone is well under this; anything smaller has no usable audio.
MIN_WAV_BYTES = 1024


class MediaError(RuntimeError):
    """Base error for media handling failures."""


class UnsupportedMediaError(MediaError):
    """Raised when the input file type is not supported."""


class FfmpegNotFoundError(MediaError):
    """Raised when FFmpeg is not available on PATH."""


class FfmpegFailedError(MediaError):
    """Raised when an FFmpeg command fails."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class SilentAudioError(MediaError):
    """Raised when the converted WAV is too small to contain speech."""


def is_supported_media(path: Path) -> bool:
    """Return True if the file extension is supported."""

    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def is_video(path: Path) -> bool:
    """True when the extension is one of the known video containers."""

    return path.suffix.lower() in VIDEO_EXTENSIONS


def find_ffmpeg(configured: str = "ffmpeg") -> str:
    """Return the FFmpeg executable path (or raise if missing)."""

    ffmpeg = shutil.which(configured)
    if not ffmpeg:
        raise FfmpegNotFoundError(
            f"FFmpeg not found ({configured!r}). Install FFmpeg and ensure `ffmpeg` is available."
        )
    return ffmpeg


def build_ffmpeg_args(input_path: Path, output_wav: Path, remove_silence: bool, drop_video: bool) -> list[str]:
    """Return the FFmpeg arguments (without the executable) for a WAV conversion."""

    args = ["-y", "-i", str(input_path)]
    if drop_video:
        args.append("-vn")
    args += ["-ac", "1", "-ar", "16000", "-c:a", "pcm_s16le"]
    if remove_silence:
        args += ["-af", SILENCE_FILTER]
    args.append(str(output_wav))
    return args


def temp_wav_path() -> Path:
    """A unique, not yet created WAV path in the system temp directory."""

    return Path(tempfile.gettempdir()) / f"whisper_transcriptor_{uuid.uuid4().hex}.wav"


def remove_quietly(path: Path) -> None:
    """Delete a temporary file, logging instead of raising on failure."""

    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete temporary file: %s", path)


class Transcoder:
    """Runs FFmpeg to produce WAV input for the recognition engine."""

    def __init__(self, ffmpeg: str = "ffmpeg") -> None:
        self._ffmpeg = ffmpeg

    async def extract(
        self,
        input_path: Path,
        remove_silence: bool,
        token: CancellationToken = NEVER,
        drop_video: bool = True,
    ) -> Path:
        """Convert ``input_path`` into a temporary 16kHz mono WAV and return its path.

        When the silence filter makes FFmpeg fail, the conversion is retried
        once without it. The caller owns the returned file.

        Raises:
            UnsupportedMediaError: If input extension is not supported.
            FfmpegNotFoundError: If ffmpeg is not found.
            FfmpegFailedError: If ffmpeg exits non-zero or writes no file.
            SilentAudioError: If the WAV is too small to hold audio.
            OperationCancelled: If ``token`` is cancelled.
        """

        if not is_supported_media(input_path):
            raise UnsupportedMediaError(
                f"Unsupported input type: {input_path.suffix!r}. Supported: {sorted(SUPPORTED_EXTENSIONS)}"
            )

        ffmpeg = find_ffmpeg(self._ffmpeg)
        token.raise_if_cancelled()

        output_wav = temp_wav_path()
        try:
            exit_code = await self._run(ffmpeg, build_ffmpeg_args(input_path, output_wav, remove_silence, drop_video), token)
            if exit_code != 0 and remove_silence:
                logger.warning("Conversion with silence removal failed (exit code %d); retrying without the filter", exit_code)
                remove_quietly(output_wav)
                output_wav = temp_wav_path()
                exit_code = await self._run(ffmpeg, build_ffmpeg_args(input_path, output_wav, False, drop_video), token)

            if exit_code != 0:
                raise FfmpegFailedError(f"ffmpeg exited with code {exit_code}. See the log for details.", exit_code)
            if not output_wav.is_file():
                raise FfmpegFailedError("ffmpeg did not create the output WAV file.", exit_code)
            if output_wav.stat().st_size < MIN_WAV_BYTES:
                raise SilentAudioError(
                    "Converted WAV is too small (no audio track, or the result is silent)."
                )
            token.raise_if_cancelled()
        except BaseException:
            remove_quietly(output_wav)
            raise

        return output_wav

    @asynccontextmanager
    async def prepared_audio(
        self,
        input_path: Path,
        remove_silence: bool,
        token: CancellationToken = NEVER,
        drop_video: bool = True,
    ) -> AsyncIterator[Path]:
        """Prepare audio for transcription and clean up the temporary WAV afterwards."""

        wav_path = await self.extract(input_path, remove_silence, token, drop_video=drop_video)
        try:
            yield wav_path
        finally:
            remove_quietly(wav_path)

    async def _run(self, ffmpeg: str, args: list[str], token: CancellationToken) -> int:
        logger.info("Running: %s %s", ffmpeg, " ".join(args))
        process = await asyncio.create_subprocess_exec(
            ffmpeg,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            # Cancelled while waiting: do not leave ffmpeg running.
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        out = (stdout or b"").decode("utf-8", errors="replace").strip()
        err = (stderr or b"").decode("utf-8", errors="replace").strip()
        level = logging.DEBUG if process.returncode == 0 else logging.WARNING
        if out:
            logger.log(level, "ffmpeg stdout:\n%s", out)
        if err:
            logger.log(level, "ffmpeg stderr:\n%s", err)

        token.raise_if_cancelled()
        return process.returncode if process.returncode is not None else -1
