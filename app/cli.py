"""CLI commands for Whisper Transcriptor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Optional

import typer

from .config import AppConfig, get_config_path, load_config
from .logging import configure_logging
from media.audio import MediaError
from models.identity import Quantization
from output.subtitles import SubtitleError, load_subtitles, save_subtitles
from pipeline.runner import InputError, Outcome
from pipeline.workflows import AudioWorkflow, VideoWorkflow, Workflow


EXIT_CANCELED = 130


def create_cli_app() -> typer.Typer:
    """Create the Typer CLI app (kept as a factory to avoid global state)."""

    app = typer.Typer(
        add_completion=False,
        help="Offline audio transcription and video subtitles using whisper.cpp.",
        no_args_is_help=True,
    )

    @app.command("transcribe")
    def transcribe(
        input_file: Path = typer.Argument(
            ...,
            exists=True,
            readable=True,
            dir_okay=False,
            help="Path to an audio or video file.",
        ),
        out: Optional[Path] = typer.Option(
            None,
            "--out",
            "-o",
            dir_okay=False,
            help="Output .txt path (defaults to the input path with a .txt extension).",
        ),
        model: Optional[str] = typer.Option(None, "--model", help="Model name, e.g. tiny, base.en, medium."),
        language: Optional[str] = typer.Option(None, "--language", "-l", help="Language code or 'auto'."),
        remove_silence: Optional[bool] = typer.Option(
            None,
            "--remove-silence/--keep-silence",
            help="Trim leading/trailing silence before recognition (default: on).",
        ),
        verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    ) -> None:
        """Transcribe an audio (or video) file to a plain-text .txt file."""

        configure_logging(verbose=verbose)
        config = _load_config_or_exit()

        workflow = AudioWorkflow.from_config(config)
        _apply_options(workflow, model, language, remove_silence)
        workflow.set_audio_path(input_file)
        workflow.set_output_path(out)

        _finish(workflow, _run(workflow, workflow.transcribe()))
        typer.echo(str(workflow.last_output))

    @app.command("subtitles")
    def subtitles(
        video_file: Path = typer.Argument(
            ...,
            exists=True,
            readable=True,
            dir_okay=False,
            help="Path to a video file.",
        ),
        out_dir: Optional[Path] = typer.Option(
            None,
            "--out-dir",
            "-o",
            file_okay=False,
            dir_okay=True,
            help="Directory for the .srt/.vtt files (defaults to the configured subtitles directory).",
        ),
        model: Optional[str] = typer.Option(None, "--model", help="Model name, e.g. medium.en."),
        language: Optional[str] = typer.Option(None, "--language", "-l", help="Language code or 'auto'."),
        remove_silence: Optional[bool] = typer.Option(
            None,
            "--remove-silence/--keep-silence",
            help="Trim silence first (default: off, so timings match the video).",
        ),
        verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    ) -> None:
        """Generate time-aligned SRT and WebVTT subtitles for a video."""

        configure_logging(verbose=verbose)
        config = _load_config_or_exit()

        workflow = VideoWorkflow.from_config(config)
        _apply_options(workflow, model, language, remove_silence)
        if out_dir is not None:
            workflow.subtitles_dir = out_dir
        workflow.set_video_path(video_file)

        _finish(workflow, _run(workflow, workflow.generate_subtitles()))
        for path in workflow.saved_paths:
            typer.echo(str(path))

    @app.command("download-model")
    def download_model(
        model: Optional[str] = typer.Option(None, "--model", help="Model name (defaults to the audio model in config)."),
        quantization: Optional[str] = typer.Option(
            None, "--quantization", "-q", help="q4_0, q4_1, q5_0, q5_1, q8_0 or noquantization."
        ),
        verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    ) -> None:
        """Download a model into the local cache (no-op when already present)."""

        configure_logging(verbose=verbose)
        config = _load_config_or_exit()

        workflow = AudioWorkflow.from_config(config)
        _apply_options(workflow, model, None, None)
        if quantization:
            try:
                workflow.quantization = Quantization.parse(quantization)
            except ValueError as exc:
                typer.secho(str(exc), fg=typer.colors.RED, err=True)
                raise typer.Exit(code=2) from exc

        _finish(workflow, _run(workflow, workflow.download_model()))
        typer.echo(f"{workflow.status} {workflow.model_path}")

    @app.command("convert")
    def convert(
        subtitle_file: Path = typer.Argument(
            ...,
            exists=True,
            readable=True,
            dir_okay=False,
            help="Path to an .srt or .vtt file.",
        ),
        out_dir: Optional[Path] = typer.Option(
            None,
            "--out-dir",
            "-o",
            file_okay=False,
            dir_okay=True,
            help="Output directory (defaults to the input file directory).",
        ),
    ) -> None:
        """Re-save a subtitle file as both .srt and .vtt."""

        try:
            segments = load_subtitles(subtitle_file)
            written = save_subtitles(segments, out_dir or subtitle_file.parent, subtitle_file.stem)
        except SubtitleError as exc:
            typer.secho(f"Subtitle error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=2) from exc
        except (UnicodeDecodeError, OSError) as exc:
            typer.secho(f"Cannot convert {subtitle_file}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=2) from exc

        for path in written:
            typer.echo(str(path))

    @app.command("menu")
    def menu() -> None:
        """Open the interactive terminal UI."""

        from .menu import run_menu

        run_menu()

    return app


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except ValueError as exc:
        typer.secho(f"Config error: {exc}", fg=typer.colors.RED, err=True)
        typer.secho(f"Config path: {get_config_path()}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc


def _apply_options(
    workflow: Workflow,
    model: Optional[str],
    language: Optional[str],
    remove_silence: Optional[bool],
) -> None:
    try:
        if model:
            workflow.set_model(model)
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    if language is not None:
        workflow.language = language.strip()
    if remove_silence is not None:
        workflow.remove_silence = remove_silence


def _run(workflow: Workflow, action: Awaitable[Outcome]) -> Outcome:
    async def main() -> Outcome:
        try:
            return await action
        finally:
            workflow.close()

    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        return Outcome.CANCELED


def _finish(workflow: Workflow, outcome: Outcome) -> None:
    """Map a workflow outcome onto the process exit code."""

    logger = logging.getLogger("whisper_transcriptor")
    logger.debug("%s finished: %s (%s)", workflow.controller.name, outcome.value, workflow.status)

    if outcome is Outcome.COMPLETED:
        return
    if outcome is Outcome.CANCELED:
        typer.secho("Canceled.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=EXIT_CANCELED)

    error = workflow.controller.last_error
    typer.secho(workflow.status, fg=typer.colors.RED, err=True)
    if isinstance(error, (InputError, MediaError, SubtitleError, ModuleNotFoundError)):
        raise typer.Exit(code=2)
    raise typer.Exit(code=1)


def main() -> None:
    """Console entry point."""

    create_cli_app()()


if __name__ == "__main__":
    main()
