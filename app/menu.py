"""Interactive TUI menu for Whisper Transcriptor."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
import logging
from pathlib import Path
import platform
import shutil
from typing import Optional

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import Screen
from textual.widgets import Button, Checkbox, DataTable, Footer, Header, Input, Log, Static

from .config import AppConfig, WorkflowConfig, get_config_path, load_config, save_config
from .logging import CallbackHandler
from models.identity import ModelKind, Quantization
from output.timecode import format_vtt_time
from pipeline.workflows import AudioWorkflow, VideoWorkflow, create_model_store


def run_menu() -> None:
    """Run the interactive menu."""

    try:
        config = load_config()
    except ValueError:
        logging.getLogger(__name__).exception("Config error; using defaults")
        config = AppConfig()
    MenuApp(config).run()


def _format_bytes(value: float) -> str:
    """Format bytes in a human-readable form."""

    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(value)
    for unit in units:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def _system_stats(config: AppConfig) -> str:
    """Return a formatted snapshot of system stats."""

    try:
        import psutil  # type: ignore
    except ModuleNotFoundError:
        return "psutil is not installed. Install with `pip install -e .`."

    cpu = psutil.cpu_percent(interval=None)
    memory = psutil.virtual_memory()
    data_dir = config.paths.resolved_data_dir()
    disk_target = data_dir if data_dir.exists() else Path.cwd()
    disk = psutil.disk_usage(str(disk_target))
    ffmpeg_path = shutil.which(config.paths.ffmpeg)

    models_dir = config.paths.models_dir()
    models = sorted(models_dir.glob("ggml-*.bin")) if models_dir.is_dir() else []
    lines = [
        f"CPU usage: {cpu:.1f}%",
        f"RAM: {_format_bytes(memory.used)} / {_format_bytes(memory.total)} ({memory.percent:.1f}%)",
        f"Disk ({disk_target}): {_format_bytes(disk.free)} free / {_format_bytes(disk.total)} total",
        f"Python: {platform.python_version()}",
        f"FFmpeg: {'found' if ffmpeg_path else 'not found'}",
        f"Models ({models_dir}): {len(models)} downloaded",
    ]
    lines += [f"  {path.name} ({_format_bytes(path.stat().st_size)})" for path in models]
    return "\n".join(lines)


class MenuApp(App[None]):
    """Top-level Textual app. Owns both workflows so runs survive screen changes."""

    CSS = """
    Screen {
        align: center middle;
    }

    .title {
        text-style: bold;
        margin: 0 0 1 0;
    }

    #menu, #form, #panel {
        width: 96;
    }

    #message, #active {
        margin-top: 1;
    }

    #segments {
        height: 12;
    }

    #log {
        height: 8;
    }

    .error {
        color: red;
    }
    """

    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, config: AppConfig) -> None:
        super().__init__()
        self.config = config
        store = create_model_store(config)
        self.audio = AudioWorkflow.from_config(config, store=store, on_change=self._workflow_changed)
        self.video = VideoWorkflow.from_config(config, store=store, on_change=self._workflow_changed)
        self._log_lines: list[str] = []
        self._log_handler: Optional[CallbackHandler] = None

    def on_mount(self) -> None:
        """Attach logging to the log panels and start at the main menu."""

        loop = asyncio.get_running_loop()
        self._log_handler = CallbackHandler(lambda line: loop.call_soon_threadsafe(self._append_log, line))
        root = logging.getLogger()
        root.addHandler(self._log_handler)
        root.setLevel(logging.INFO)
        self.push_screen(MainMenuScreen())

    def on_unmount(self) -> None:
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
        self.audio.close()
        self.video.close()

    def apply_config(self, config: AppConfig) -> list[str]:
        """Hand saved settings to both workflows; returns the names of busy ones left unchanged."""

        self.config = config
        skipped = []
        for workflow, defaults in ((self.audio, config.audio), (self.video, config.video)):
            if not workflow.apply_settings(defaults, config.engine.quantization):
                skipped.append(workflow.controller.name)
        return skipped

    def _append_log(self, line: str) -> None:
        self._log_lines = (self._log_lines + [line])[-500:]
        for log in self.screen.query(Log):
            log.write_line(line)

    def _workflow_changed(self) -> None:
        refresh = getattr(self.screen, "refresh_state", None)
        if refresh is not None:
            refresh()


class MainMenuScreen(Screen):
    """Main menu screen with navigation options."""

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("Whisper Transcriptor", classes="title")
        with Vertical(id="menu"):
            yield Button("1) Transcribe audio", id="transcribe")
            yield Button("2) Video subtitles", id="subtitles")
            yield Button("3) Settings", id="settings")
            yield Button("4) System status", id="status")
            yield Button("5) Exit", id="exit")
        yield Footer()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "transcribe":
            self.app.push_screen(TranscribeScreen())
        elif button_id == "subtitles":
            self.app.push_screen(SubtitlesScreen())
        elif button_id == "settings":
            self.app.push_screen(SettingsScreen())
        elif button_id == "status":
            self.app.push_screen(StatusScreen())
        elif button_id == "exit":
            self.app.exit()


class _WorkflowScreen(Screen):
    """Shared helpers for screens that drive a workflow."""

    def _set_message(self, text: str, error: bool = False) -> None:
        message = self.query_one("#message", Static)
        message.update(text)
        message.remove_class("error")
        if error:
            message.add_class("error")

    def _apply_model(self, workflow, value: str) -> bool:
        if not value:
            return True
        try:
            workflow.set_model(value)
        except ValueError as exc:
            self._set_message(str(exc), error=True)
            return False
        return True

    def _fill_log(self) -> None:
        log = self.query_one("#log", Log)
        log.clear()
        for line in self.app._log_lines:
            log.write_line(line)


class TranscribeScreen(_WorkflowScreen):
    """Screen for transcribing an audio file to text."""

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("Transcribe audio", classes="title")
        with VerticalScroll(id="form"):
            yield Static("Input file (audio or video):")
            yield Input(placeholder="/path/to/audio.mp3", id="input_path")
            yield Static("Output .txt (optional):")
            yield Input(placeholder="Defaults to the input path with .txt", id="output_path")
            yield Static("Model / language:")
            with Horizontal():
                yield Input(id="model")
                yield Input(id="language")
            yield Checkbox("Remove silence", id="remove_silence")
            with Horizontal():
                yield Button("Transcribe", id="run", variant="primary")
                yield Button("Download model", id="download")
                yield Button("Cancel", id="cancel")
                yield Button("Back", id="back")
            yield Static("", id="message")
            yield Static("", id="preview")
            yield Log(id="log")
        yield Footer()

    def on_mount(self) -> None:
        audio = self.app.audio
        if audio.audio_path is not None:
            self.query_one("#input_path", Input).value = str(audio.audio_path)
        if audio.output_path is not None:
            self.query_one("#output_path", Input).value = str(audio.output_path)
        self.query_one("#model", Input).value = audio.model.value
        self.query_one("#language", Input).value = audio.language
        self.query_one("#remove_silence", Checkbox).value = audio.remove_silence
        self._fill_log()
        self.refresh_state()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "back":
            self.app.pop_screen()
        elif button_id == "cancel":
            self.app.audio.cancel()
        elif button_id == "download" and self._read_form(require_input=False):
            self.app.run_worker(self.app.audio.download_model(), exclusive=False)
        elif button_id == "run" and self._read_form(require_input=True):
            self.app.run_worker(self._transcribe(), exclusive=False)

    def _read_form(self, require_input: bool) -> bool:
        audio = self.app.audio
        if audio.busy:
            return False

        input_value = self.query_one("#input_path", Input).value.strip()
        if require_input:
            if not input_value:
                self._set_message("Enter an input file path.", error=True)
                return False
            if not Path(input_value).expanduser().exists():
                self._set_message(f"Input file does not exist: {input_value}", error=True)
                return False

        if not self._apply_model(audio, self.query_one("#model", Input).value.strip()):
            return False
        audio.language = self.query_one("#language", Input).value.strip()
        audio.remove_silence = self.query_one("#remove_silence", Checkbox).value
        audio.set_output_path(self.query_one("#output_path", Input).value.strip() or None)
        audio.set_audio_path(input_value or None)
        return True

    async def _transcribe(self) -> None:
        audio = self.app.audio
        await audio.transcribe()
        if audio.last_preview and self.is_attached:
            self.query_one("#preview", Static).update(audio.last_preview)

    def refresh_state(self) -> None:
        audio = self.app.audio
        self.query_one("#run", Button).disabled = audio.busy
        self.query_one("#download", Button).disabled = not audio.can_start
        self.query_one("#cancel", Button).disabled = not audio.busy
        error = audio.controller.last_error is not None and not audio.busy
        self._set_message(audio.status, error=error)


class SubtitlesScreen(_WorkflowScreen):
    """Screen for generating, loading, editing and saving video subtitles."""

    BINDINGS = [
        ("[", "nudge(-500)", "-500ms"),
        (",", "nudge(-100)", "-100ms"),
        (".", "nudge(100)", "+100ms"),
        ("]", "nudge(500)", "+500ms"),
    ]

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("Video subtitles", classes="title")
        with VerticalScroll(id="form"):
            yield Static("Video file:")
            with Horizontal():
                yield Input(placeholder="/path/to/video.mp4", id="video_path")
                yield Button("Open", id="open")
            yield Static("Model / language:")
            with Horizontal():
                yield Input(id="model")
                yield Input(id="language")
            yield Checkbox("Remove silence (shifts timings)", id="remove_silence")
            with Horizontal():
                yield Button("Generate", id="generate", variant="primary")
                yield Button("Save", id="save")
                yield Button("Cancel", id="cancel")
                yield Button("Back", id="back")
            with Horizontal():
                yield Input(placeholder="/path/to/subtitles.srt or .vtt", id="subtitle_path")
                yield Button("Load", id="load")
            yield DataTable(id="segments", cursor_type="row")
            with Horizontal():
                yield Button("-500ms", id="nudge_-500")
                yield Button("-100ms", id="nudge_-100")
                yield Button("+100ms", id="nudge_100")
                yield Button("+500ms", id="nudge_500")
            with Horizontal():
                yield Input(placeholder="Start HH:MM:SS.mmm", id="edit_start")
                yield Input(placeholder="End HH:MM:SS.mmm", id="edit_end")
            with Horizontal():
                yield Input(placeholder="Text of the selected subtitle", id="edit_text")
                yield Button("Apply edit", id="apply_edit")
            with Horizontal():
                yield Input(placeholder="Position in seconds", id="position")
                yield Button("Seek", id="seek")
            yield Static("", id="active")
            yield Static("", id="message")
            yield Log(id="log")
        yield Footer()

    def on_mount(self) -> None:
        video = self.app.video
        table = self.query_one("#segments", DataTable)
        table.add_columns("#", "Start", "End", "Text")
        if video.video_path is not None:
            self.query_one("#video_path", Input).value = str(video.video_path)
        self.query_one("#model", Input).value = video.model.value
        self.query_one("#language", Input).value = video.language
        self.query_one("#remove_silence", Checkbox).value = video.remove_silence
        self._fill_log()
        self._reload_table()
        self.refresh_state()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        video = self.app.video
        button_id = event.button.id or ""
        if button_id == "back":
            self.app.pop_screen()
        elif button_id == "cancel":
            video.cancel()
        elif button_id == "open":
            video.set_video_path(self.query_one("#video_path", Input).value.strip() or None)
        elif button_id == "generate" and self._read_form():
            self.app.run_worker(self._after(video.generate_subtitles()), exclusive=False)
        elif button_id == "load":
            path = self.query_one("#subtitle_path", Input).value.strip()
            self.app.run_worker(self._after(video.load_subtitles(path)), exclusive=False)
        elif button_id == "save":
            self.app.run_worker(self._after(video.save_subtitles()), exclusive=False)
        elif button_id.startswith("nudge_"):
            self.action_nudge(int(button_id.removeprefix("nudge_")))
        elif button_id == "seek":
            self._seek()
        elif button_id == "apply_edit":
            self._apply_edit()

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        video = self.app.video
        if 0 <= event.cursor_row < len(video.segments):
            video.select(event.cursor_row)
            self._show_selected()

    def action_nudge(self, millis: int) -> None:
        video = self.app.video
        if video.nudge_selected(timedelta(milliseconds=millis)):
            self._reload_table()
            self._show_selected()
            self.refresh_state()

    def _show_selected(self) -> None:
        segment = self.app.video.segments.selected
        self.query_one("#edit_start", Input).value = format_vtt_time(segment.start) if segment else ""
        self.query_one("#edit_end", Input).value = format_vtt_time(segment.end) if segment else ""
        self.query_one("#edit_text", Input).value = segment.text if segment else ""

    def _apply_edit(self) -> None:
        video = self.app.video
        if not video.can_nudge:
            return
        start = self.query_one("#edit_start", Input).value
        end = self.query_one("#edit_end", Input).value
        text = self.query_one("#edit_text", Input).value
        segment = video.segments.selected

        unchanged = (start.strip(), end.strip()) == (format_vtt_time(segment.start), format_vtt_time(segment.end))
        rejected = not video.retime_selected(start, end) and not unchanged
        if text.strip() != segment.text:
            video.edit_selected_text(text)

        self._reload_table()
        self._show_selected()
        self.refresh_state()
        if rejected:
            self._set_message("Times not applied: use HH:MM:SS.mmm with start <= end.", error=True)

    def _seek(self) -> None:
        value = self.query_one("#position", Input).value.strip()
        try:
            seconds = float(value)
        except ValueError:
            self._set_message(f"Not a number of seconds: {value!r}", error=True)
            return
        self.app.video.seek(seconds)
        self.refresh_state()

    def _read_form(self) -> bool:
        video = self.app.video
        if video.busy:
            return False
        path = self.query_one("#video_path", Input).value.strip()
        if path and (video.video_path is None or str(video.video_path) != path):
            video.set_video_path(path)
        if not self._apply_model(video, self.query_one("#model", Input).value.strip()):
            return False
        video.language = self.query_one("#language", Input).value.strip()
        video.remove_silence = self.query_one("#remove_silence", Checkbox).value
        return True

    async def _after(self, run) -> None:
        await run
        if self.is_attached:
            self._reload_table()
            self.refresh_state()

    def _reload_table(self) -> None:
        video = self.app.video
        table = self.query_one("#segments", DataTable)
        table.clear()
        for index, segment in enumerate(video.segments, start=1):
            table.add_row(str(index), format_vtt_time(segment.start), format_vtt_time(segment.end), segment.text)
        selected = video.segments.index_of_selected()
        if selected is not None:
            table.move_cursor(row=selected)

    def refresh_state(self) -> None:
        video = self.app.video
        self.query_one("#generate", Button).disabled = not video.can_generate
        self.query_one("#save", Button).disabled = not video.can_save
        self.query_one("#load", Button).disabled = not video.can_load
        self.query_one("#cancel", Button).disabled = not video.busy
        for millis in (-500, -100, 100, 500):
            self.query_one(f"#nudge_{millis}", Button).disabled = not video.can_nudge
        self.query_one("#apply_edit", Button).disabled = not video.can_nudge
        active = video.active_text or ""
        self.query_one("#active", Static).update(f"[{video.position_seconds:.2f}s] {active}")
        error = video.controller.last_error is not None and not video.busy
        self._set_message(video.status, error=error)


class SettingsScreen(Screen):
    """Screen for viewing and updating config values."""

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("Settings", classes="title")
        with VerticalScroll(id="form"):
            yield Static("", id="config_path")
            yield Static("Audio model / language:")
            with Horizontal():
                yield Input(id="audio_model")
                yield Input(id="audio_language")
            yield Checkbox("Remove silence for audio", id="audio_silence")
            yield Static("Video model / language:")
            with Horizontal():
                yield Input(id="video_model")
                yield Input(id="video_language")
            yield Checkbox("Remove silence for video", id="video_silence")
            yield Static("Quantization:")
            yield Input(id="quantization")
            yield Static("Data directory (models, subtitles):")
            yield Input(id="data_dir")
            with Horizontal():
                yield Button("Save", id="save")
                yield Button("Reset to defaults", id="reset")
                yield Button("Back", id="back")
            yield Static("", id="message")
        yield Footer()

    def on_show(self) -> None:
        self._show(self.app.config)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "back":
            self.app.pop_screen()
        elif button_id == "save":
            self._save()
        elif button_id == "reset":
            self._store(AppConfig(), "Reset to defaults")

    def _show(self, config: AppConfig) -> None:
        self.query_one("#config_path", Static).update(f"Config: {get_config_path()}")
        self.query_one("#audio_model", Input).value = config.audio.model
        self.query_one("#audio_language", Input).value = config.audio.language
        self.query_one("#audio_silence", Checkbox).value = config.audio.remove_silence
        self.query_one("#video_model", Input).value = config.video.model
        self.query_one("#video_language", Input).value = config.video.language
        self.query_one("#video_silence", Checkbox).value = config.video.remove_silence
        self.query_one("#quantization", Input).value = config.engine.quantization
        self.query_one("#data_dir", Input).value = str(config.paths.resolved_data_dir())

    def _save(self) -> None:
        current: AppConfig = self.app.config
        try:
            audio = WorkflowConfig(
                model=ModelKind.parse(self.query_one("#audio_model", Input).value).value,
                language=self.query_one("#audio_language", Input).value.strip(),
                remove_silence=self.query_one("#audio_silence", Checkbox).value,
            )
            video = WorkflowConfig(
                model=ModelKind.parse(self.query_one("#video_model", Input).value).value,
                language=self.query_one("#video_language", Input).value.strip(),
                remove_silence=self.query_one("#video_silence", Checkbox).value,
            )
            quantization = Quantization.parse(self.query_one("#quantization", Input).value)
        except ValueError as exc:
            self._set_message(f"Config error: {exc}", error=True)
            return

        data_dir_value = self.query_one("#data_dir", Input).value.strip()
        data_dir = Path(data_dir_value).expanduser() if data_dir_value else None
        if data_dir == current.paths.resolved_data_dir() and current.paths.data_dir is None:
            data_dir = None

        new_config = replace(
            current,
            engine=replace(current.engine, quantization=quantization.value),
            audio=audio,
            video=video,
            paths=replace(current.paths, data_dir=data_dir),
        )
        self._store(new_config, "Saved")

    def _store(self, config: AppConfig, label: str) -> None:
        try:
            path = save_config(config)
        except ValueError as exc:
            self._set_message(f"Config error: {exc}", error=True)
            return

        busy = self.app.apply_config(config)
        self._show(config)
        note = "data directory changes apply on restart"
        if busy:
            note = f"{', '.join(busy)} busy; its settings apply after the current run; {note}"
        self._set_message(f"{label}: {path} ({note})")

    def _set_message(self, text: str, error: bool = False) -> None:
        message = self.query_one("#message", Static)
        message.update(text)
        message.remove_class("error")
        if error:
            message.add_class("error")


class StatusScreen(Screen):
    """Screen for live system status."""

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("System status (live)", classes="title")
        with Vertical(id="panel"):
            yield Static("", id="stats")
            with Horizontal():
                yield Button("Refresh", id="refresh")
                yield Button("Back", id="back")
        yield Footer()

    def on_mount(self) -> None:
        try:
            import psutil  # type: ignore

            psutil.cpu_percent(interval=None)
        except ModuleNotFoundError:
            pass

        self._refresh()
        self.set_interval(1.0, self._refresh)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "back":
            self.app.pop_screen()
        elif event.button.id == "refresh":
            self._refresh()

    def _refresh(self) -> None:
        self.query_one("#stats", Static).update(_system_stats(self.app.config))
