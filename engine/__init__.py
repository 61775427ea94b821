"""Recognition session factory, cache and exports."""

from __future__ import annotations

from pathlib import Path

from app.config import EngineConfig

from .base import RawSegment, RecognitionSession
from .cache import SessionCache
from .loop_guard import LoopGuard, recognize


def create_session(config: EngineConfig, model_path: Path) -> RecognitionSession:
    """Create a recognition session from configuration.

    This factory allows adding future engines without changing workflow logic.
    """

    backend = (config.backend or "").strip().lower()
    if backend in {"whisper.cpp", "whisper_cpp", "whispercpp", "ggml"}:
        from .whisper_cpp import WhisperCppSession

        return WhisperCppSession(model_path, threads=config.threads)
    raise ValueError(f"Unsupported engine backend: {config.backend!r}")


__all__ = [
    "LoopGuard",
    "RawSegment",
    "RecognitionSession",
    "SessionCache",
    "create_session",
    "recognize",
]
