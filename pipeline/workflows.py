"""The audio transcription and video subtitle workflows.

Each workflow is an independent run owner: it has its own run controller,
its own recognition session cache and its own state, so the two can run
concurrently. Both share the model store, whose cache is safe to use from
several owners.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

from app.config import AppConfig, WorkflowConfig
from engine import SessionCache, create_session, recognize
from engine.base import RawSegment
from media.audio import Transcoder, is_video
from models.identity import ModelIdentity, ModelKind, Quantization
from models.provider import HuggingFaceProvider
from models.store import ModelStore
from output.segments import Segment, SegmentStore
from output.subtitles import load_subtitles, save_subtitles, subtitle_base_name
from output.text import default_output_path, join_transcript, preview, write_text_file

from .cancellation import CancellationToken
from .runner import STATUS_DONE, InputError, Outcome, RunController


logger = logging.getLogger(__name__)


class Player(Protocol):
    """Playback collaborator. The workflow issues commands and receives positions."""

    @property
    def is_playing(self) -> bool: ...

    def load(self, path: Path) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...


def create_model_store(config: AppConfig) -> ModelStore:
    return ModelStore(config.paths.models_dir(), HuggingFaceProvider(config.models.base_url))


class Workflow:
    """State and steps shared by both workflows."""

    def __init__(
        self,
        name: str,
        config: AppConfig,
        defaults: WorkflowConfig,
        store: ModelStore,
        transcoder: Transcoder,
        sessions: SessionCache,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.transcoder = transcoder
        self.sessions = sessions
        self.controller = RunController(name, on_change=on_change)
        self.model = ModelKind.parse(defaults.model)
        self.quantization = Quantization.parse(config.engine.quantization)
        self.language = defaults.language
        self.remove_silence = defaults.remove_silence

    @property
    def identity(self) -> ModelIdentity:
        return ModelIdentity(self.model, self.quantization)

    @property
    def model_path(self) -> Path:
        return self.store.model_path(self.identity)

    @property
    def busy(self) -> bool:
        return self.controller.busy

    @property
    def status(self) -> str:
        return self.controller.status

    @property
    def can_start(self) -> bool:
        return not self.busy

    def set_model(self, model: ModelKind | str) -> None:
        """Switch the model kind; the loaded session is released when it changes."""

        kind = model if isinstance(model, ModelKind) else ModelKind.parse(model)
        if kind is not self.model:
            self.model = kind
            # The next run loads the new file.
            self.sessions.invalidate()

    def set_quantization(self, quantization: Quantization | str) -> None:
        """Switch the quantization; the loaded session is released when it changes."""

        value = quantization if isinstance(quantization, Quantization) else Quantization.parse(quantization)
        if value is not self.quantization:
            self.quantization = value
            self.sessions.invalidate()

    def apply_settings(self, defaults: WorkflowConfig, quantization: Quantization | str) -> bool:
        """Take over saved settings.

        Returns False, leaving everything unchanged, while a run is in flight
        since that run still uses the loaded session.
        """

        if self.busy:
            logger.warning("[%s] busy; settings apply after the current run", self.controller.name)
            return False
        self.set_model(defaults.model)
        self.set_quantization(quantization)
        self.language = defaults.language
        self.remove_silence = defaults.remove_silence
        return True

    def cancel(self) -> None:
        """Request cancellation of the running action, if any."""

        self.controller.cancel()

    def close(self) -> None:
        """Cancel any run and release the loaded session."""

        self.controller.cancel()
        self.sessions.close()

    async def download_model(self) -> Outcome:
        return await self.controller.run(self._download_model)

    async def _download_model(self, token: CancellationToken) -> None:
        identity = self.identity
        if self.store.is_cached(identity):
            logger.info("Model already downloaded: %s", self.model_path)
            self.controller.set_status("Model already downloaded.")
            return
        self.controller.set_status(f"Downloading model {identity}...")
        await self.store.ensure_model(identity, token)
        self.controller.set_status("Model downloaded.")

    async def _recognize(self, wav_path: Path, token: CancellationToken) -> list[RawSegment]:
        model_path = self.model_path
        # Loading a model takes a while; keep the event loop responsive.
        session = await asyncio.to_thread(self.sessions.get, model_path)
        token.raise_if_cancelled()
        return await recognize(session, wav_path, self.language, token)


class AudioWorkflow(Workflow):
    """Audio file to plain-text transcript."""

    def __init__(
        self,
        config: AppConfig,
        store: ModelStore,
        transcoder: Transcoder,
        sessions: SessionCache,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__("audio", config, config.audio, store, transcoder, sessions, on_change)
        self.audio_path: Optional[Path] = None
        self.output_path: Optional[Path] = None
        self.last_output: Optional[Path] = None
        self.last_preview: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: Optional[ModelStore] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> "AudioWorkflow":
        return cls(
            config,
            store or create_model_store(config),
            Transcoder(config.paths.ffmpeg),
            SessionCache(lambda path: create_session(config.engine, path)),
            on_change,
        )

    @property
    def can_transcribe(self) -> bool:
        return not self.busy and self.audio_path is not None

    def set_audio_path(self, path: Optional[Path | str]) -> None:
        self.audio_path = Path(path).expanduser() if path and str(path).strip() else None
        if self.audio_path is not None and self.output_path is None:
            self.output_path = default_output_path(self.audio_path)

    def set_output_path(self, path: Optional[Path | str]) -> None:
        self.output_path = Path(path).expanduser() if path and str(path).strip() else None

    async def transcribe(self) -> Outcome:
        return await self.controller.run(self._transcribe)

    async def _transcribe(self, token: CancellationToken) -> None:
        if self.audio_path is None:
            raise InputError("No audio file selected.")
        audio_path = self.audio_path
        output_path = self.output_path or default_output_path(audio_path)

        self.controller.set_status("Preparing model...")
        await self.store.ensure_model(self.identity, token)

        self.controller.set_status("Converting audio (ffmpeg)...")
        async with self.transcoder.prepared_audio(
            audio_path, self.remove_silence, token, drop_video=is_video(audio_path)
        ) as wav_path:
            self.controller.set_status("Transcribing...")
            segments = await self._recognize(wav_path, token)

        text = join_transcript(segments)
        self.controller.set_status("Saving result...")
        token.raise_if_cancelled()
        write_text_file(output_path, text)
        token.raise_if_cancelled()

        self.last_output = output_path
        self.last_preview = preview(text)
        logger.info("Saved transcript: %s", output_path)
        self.controller.set_status(STATUS_DONE)


class VideoWorkflow(Workflow):
    """Video file to editable, time-aligned SRT/WebVTT subtitles."""

    def __init__(
        self,
        config: AppConfig,
        store: ModelStore,
        transcoder: Transcoder,
        sessions: SessionCache,
        player: Optional[Player] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__("video", config, config.video, store, transcoder, sessions, on_change)
        self.player = player
        self.segments = SegmentStore()
        self.subtitles_dir = config.paths.resolved_subtitles_dir()
        self.video_path: Optional[Path] = None
        self.saved_paths: tuple[Path, ...] = ()
        self.position_seconds = 0.0
        self.duration_seconds = 0.0
        self.active_text: Optional[str] = None
        self._user_seeking = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: Optional[ModelStore] = None,
        player: Optional[Player] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> "VideoWorkflow":
        return cls(
            config,
            store or create_model_store(config),
            Transcoder(config.paths.ffmpeg),
            SessionCache(lambda path: create_session(config.engine, path)),
            player,
            on_change,
        )

    @property
    def can_generate(self) -> bool:
        return not self.busy and self.video_path is not None

    @property
    def can_load(self) -> bool:
        return not self.busy

    @property
    def can_save(self) -> bool:
        return not self.busy and len(self.segments) > 0

    @property
    def can_nudge(self) -> bool:
        return not self.busy and self.segments.selected is not None

    def set_video_path(self, path: Optional[Path | str]) -> None:
        self.video_path = Path(path).expanduser() if path and str(path).strip() else None
        if self.video_path is None:
            return
        if self.player is not None:
            try:
                self.player.load(self.video_path)
                # Prime the player so duration and seeking become available.
                self.player.play()
                self.player.pause()
            except Exception as exc:
                logger.exception("Failed to load video %s", self.video_path)
                self.controller.set_status(f"Failed to load video: {exc}")
                return
        logger.info("Video selected: %s", self.video_path)
        self.controller.set_status("Video loaded.")

    async def generate_subtitles(self) -> Outcome:
        return await self.controller.run(self._generate_subtitles)

    async def _generate_subtitles(self, token: CancellationToken) -> None:
        if self.video_path is None:
            raise InputError("No video file selected.")
        video_path = self.video_path

        self.controller.set_status("Preparing model...")
        await self.store.ensure_model(self.identity, token)

        self.controller.set_status("Extracting audio (ffmpeg)...")
        async with self.transcoder.prepared_audio(video_path, self.remove_silence, token, drop_video=True) as wav_path:
            self.controller.set_status("Recognizing segments...")
            raw = await self._recognize(wav_path, token)

        self.segments.replace(Segment(start=s.start, end=s.end, text=s.text) for s in raw)
        self.update_active()

        self.controller.set_status("Saving subtitles...")
        self._save(token, video_path)
        self.controller.set_status(STATUS_DONE)

    async def load_subtitles(self, path: Optional[Path | str]) -> Outcome:
        async def action(token: CancellationToken) -> None:
            if path is None or not str(path).strip():
                raise InputError("Subtitle path is empty.")
            self.controller.set_status("Loading subtitles...")
            parsed = load_subtitles(Path(path).expanduser())
            token.raise_if_cancelled()
            self.segments.replace(parsed)
            self.update_active()
            self.controller.set_status(STATUS_DONE)

        return await self.controller.run(action)

    async def save_subtitles(self) -> Outcome:
        async def action(token: CancellationToken) -> None:
            self._save(token, self.video_path)
            self.controller.set_status(STATUS_DONE)

        return await self.controller.run(action)

    def _save(self, token: CancellationToken, media_path: Optional[Path]) -> None:
        token.raise_if_cancelled()
        self.saved_paths = save_subtitles(self.segments, self.subtitles_dir, subtitle_base_name(media_path))
        token.raise_if_cancelled()

    def select(self, index: Optional[int]) -> None:
        self.segments.select(index)
        self.controller.notify()

    def nudge_selected(self, delta: timedelta) -> bool:
        if not self.can_nudge:
            return False
        self.segments.nudge_selected(delta)
        self.update_active()
        return True

    def retime_selected(self, start: Optional[str] = None, end: Optional[str] = None) -> bool:
        if not self.can_nudge:
            return False
        changed = self.segments.retime_selected(start, end)
        self.update_active()
        return changed

    def edit_selected_text(self, text: str) -> bool:
        if not self.can_nudge:
            return False
        changed = self.segments.edit_selected_text(text.strip())
        self.update_active()
        return changed

    def update_active(self) -> Optional[Segment]:
        active = self.segments.active_at(self.position_seconds) if len(self.segments) else None
        self.active_text = active.text if active is not None else None
        return active

    # Playback reactions.

    def on_position(self, seconds: float) -> None:
        if self._user_seeking:
            return
        if seconds >= 0:
            self.position_seconds = seconds
        self.update_active()

    def on_duration(self, seconds: float) -> None:
        if seconds > 0:
            self.duration_seconds = seconds

    def begin_seek(self) -> None:
        self._user_seeking = True

    def end_seek(self, seconds: Optional[float] = None) -> None:
        self._user_seeking = False
        self.seek(self.position_seconds if seconds is None else seconds)

    def seek(self, seconds: float) -> None:
        seconds = max(0.0, seconds)
        if self.player is not None:
            self.player.seek(seconds)
        self.position_seconds = seconds
        self.update_active()

    def toggle_play_pause(self) -> None:
        if self.player is None:
            return
        if self.player.is_playing:
            self.player.pause()
        else:
            self.player.play()
