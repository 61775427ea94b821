"""Configuration handling for Whisper Transcriptor.

Whisper Transcriptor loads an optional TOML file from OS-specific locations:

- Linux: ~/.config/whisper-transcriptor/config.toml
- Windows: %APPDATA%\\whisper-transcriptor\\config.toml

Models and generated subtitles live under a data directory which defaults to
``%APPDATA%\\WhisperTranscriptor`` on Windows and
``~/.local/share/whisper-transcriptor`` elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import platform
from typing import Any, Optional

try:  # Python 3.11+
    import tomllib  # type: ignore
except ModuleNotFoundError:  # Python 3.10
    import tomli as tomllib  # type: ignore

from models.identity import ModelKind, Quantization


DEFAULT_BASE_URL = "https://huggingface.co/sandrohanea/whisper.net/resolve/v3"
SUPPORTED_BACKENDS = {"whisper.cpp"}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Configuration for the recognition engine."""

    backend: str = "whisper.cpp"
    quantization: str = Quantization.Q5_0.value
    threads: int = 4


@dataclass(frozen=True, slots=True)
class WorkflowConfig:
    """Per-workflow defaults (model, language hint, silence trimming)."""

    model: str = ModelKind.TINY.value
    language: str = "en"
    remove_silence: bool = True


def _default_video() -> WorkflowConfig:
    # Subtitle timing must match the video track, so silence is kept.
    return WorkflowConfig(model=ModelKind.MEDIUM_EN.value, language="en", remove_silence=False)


@dataclass(frozen=True, slots=True)
class PathsConfig:
    """Filesystem locations and external tools."""

    data_dir: Optional[Path] = None
    subtitles_dir: Optional[Path] = None
    ffmpeg: str = "ffmpeg"

    def resolved_data_dir(self) -> Path:
        return self.data_dir or get_data_dir()

    def models_dir(self) -> Path:
        return self.resolved_data_dir() / "models"

    def resolved_subtitles_dir(self) -> Path:
        return self.subtitles_dir or self.resolved_data_dir() / "subs"


@dataclass(frozen=True, slots=True)
class ModelsConfig:
    """Where models are downloaded from."""

    base_url: str = DEFAULT_BASE_URL


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Top-level application configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    audio: WorkflowConfig = field(default_factory=WorkflowConfig)
    video: WorkflowConfig = field(default_factory=_default_video)
    paths: PathsConfig = field(default_factory=PathsConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)


def get_config_path() -> Path:
    """Return the default configuration file path for the current OS."""

    system = platform.system().lower()
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "whisper-transcriptor" / "config.toml"

        return Path.home() / "AppData" / "Roaming" / "whisper-transcriptor" / "config.toml"

    return Path.home() / ".config" / "whisper-transcriptor" / "config.toml"


def get_data_dir() -> Path:
    """Return the default per-user data directory (models, subtitles)."""

    system = platform.system().lower()
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "WhisperTranscriptor"
        return Path.home() / "AppData" / "Roaming" / "WhisperTranscriptor"

    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "whisper-transcriptor"
    return Path.home() / ".local" / "share" / "whisper-transcriptor"


def load_config(path: Path | None = None) -> AppConfig:
    """Load config from a TOML file, falling back to defaults if missing.

    Args:
        path: Optional explicit config path. When None, uses the OS default.

    Raises:
        ValueError: If the config contains unsupported values.
    """

    config_path = path or get_config_path()
    if not config_path.exists():
        return AppConfig()

    with config_path.open("rb") as f:
        raw = tomllib.load(f)

    engine_raw = _get_table(raw, "engine")
    paths_raw = _get_table(raw, "paths")
    models_raw = _get_table(raw, "models")

    backend = _get_str(engine_raw, "backend", default=EngineConfig().backend).lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(f"Unsupported engine backend: {backend!r}. Supported: {sorted(SUPPORTED_BACKENDS)}")

    quantization = Quantization.parse(
        _get_str(engine_raw, "quantization", default=EngineConfig().quantization)
    )
    threads = _get_int(engine_raw, "threads", default=EngineConfig().threads)
    if threads < 1:
        raise ValueError("Invalid config: threads must be at least 1.")

    engine = EngineConfig(backend=backend, quantization=quantization.value, threads=threads)
    audio = _load_workflow(raw, "audio", WorkflowConfig())
    video = _load_workflow(raw, "video", _default_video())

    data_dir = _get_path(paths_raw, "data_dir")
    subtitles_dir = _get_path(paths_raw, "subtitles_dir")
    paths = PathsConfig(
        data_dir=data_dir,
        subtitles_dir=subtitles_dir,
        ffmpeg=_get_str(paths_raw, "ffmpeg", default=PathsConfig().ffmpeg),
    )
    models = ModelsConfig(
        base_url=_get_str(models_raw, "base_url", default=ModelsConfig().base_url).rstrip("/")
    )
    return AppConfig(engine=engine, audio=audio, video=video, paths=paths, models=models)


def save_config(config: AppConfig, path: Path | None = None) -> Path:
    """Save configuration to a TOML file.

    Args:
        config: Configuration values to persist.
        path: Optional explicit config path. When None, uses the OS default.

    Returns:
        The path that was written.

    Raises:
        ValueError: If unsupported values are provided.
    """

    if config.engine.backend not in SUPPORTED_BACKENDS:
        raise ValueError(f"Unsupported engine backend: {config.engine.backend!r}")
    ModelKind.parse(config.audio.model)
    ModelKind.parse(config.video.model)
    Quantization.parse(config.engine.quantization)

    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    content = _to_toml(config)
    config_path.write_text(content, encoding="utf-8")
    return config_path


def _load_workflow(raw: dict[str, Any], key: str, defaults: WorkflowConfig) -> WorkflowConfig:
    """Internal helper to read an [audio] / [video] table."""

    table = _get_table(raw, key)
    model = ModelKind.parse(_get_str(table, "model", default=defaults.model))
    language = table.get("language", defaults.language)
    if not isinstance(language, str):
        raise ValueError(f"Invalid config: [{key}].language must be a string.")
    return WorkflowConfig(
        model=model.value,
        language=language.strip(),
        remove_silence=_get_bool(table, "remove_silence", default=defaults.remove_silence),
    )


def _get_table(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Internal helper to get a TOML table as a dict."""

    value = raw.get(key)
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise ValueError(f"Invalid config: [{key}] must be a table.")


def _get_str(raw: dict[str, Any], key: str, default: str) -> str:
    """Internal helper to get a TOML string with a default."""

    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError(f"Invalid config: {key} must be a non-empty string.")


def _get_bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ValueError(f"Invalid config: {key} must be true or false.")


def _get_int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ValueError(f"Invalid config: {key} must be an integer.")


def _get_path(raw: dict[str, Any], key: str) -> Optional[Path]:
    value = raw.get(key)
    if value is None:
        return None
    return Path(_get_str(raw, key, default="")).expanduser()


def _to_toml(config: AppConfig) -> str:
    """Serialize config data to TOML."""

    lines = [
        "[engine]",
        f'backend = "{config.engine.backend}"',
        f'quantization = "{config.engine.quantization}"',
        f"threads = {config.engine.threads}",
        "",
    ]
    for name, workflow in (("audio", config.audio), ("video", config.video)):
        lines += [
            f"[{name}]",
            f'model = "{workflow.model}"',
            f'language = "{workflow.language}"',
            f"remove_silence = {'true' if workflow.remove_silence else 'false'}",
            "",
        ]

    lines.append("[paths]")
    if config.paths.data_dir is not None:
        lines.append(f"data_dir = {_toml_str(str(config.paths.data_dir))}")
    if config.paths.subtitles_dir is not None:
        lines.append(f"subtitles_dir = {_toml_str(str(config.paths.subtitles_dir))}")
    lines.append(f"ffmpeg = {_toml_str(config.paths.ffmpeg)}")
    lines += [
        "",
        "[models]",
        f"base_url = {_toml_str(config.models.base_url)}",
    ]
    return "\n".join(lines) + "\n"


def _toml_str(value: str) -> str:
    # Literal strings keep Windows paths readable.
    if "'" not in value:
        return f"'{value}'"
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
