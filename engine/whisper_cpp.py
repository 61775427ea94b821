"""whisper.cpp recognition session (GGML models via `pywhispercpp`)."""

from __future__ import annotations

import asyncio
from datetime import timedelta
import logging
from pathlib import Path
import threading
from typing import Any, AsyncIterator

from pipeline.cancellation import CancellationToken

from .base import RawSegment, RecognitionSession


logger = logging.getLogger(__name__)

_DONE = object()


class WhisperCppSession(RecognitionSession):
    """Recognition session backed by the `pywhispercpp` bindings."""

    def __init__(self, model_path: Path, threads: int = 4) -> None:
        """Load a GGML model file.

        Args:
            model_path: Path to a ``ggml-*.bin`` file.
            threads: Number of inference threads.
        """

        super().__init__(model_path)
        self._threads = threads
        # One transcription at a time per loaded model, including one that is
        # still aborting in a worker thread after its consumer went away.
        self._lock = threading.Lock()
        self._model = self._load_model()

    def _load_model(self):
        try:
            from pywhispercpp.model import Model
        except ModuleNotFoundError as exc:
            raise ModuleNotFoundError(
                "Missing dependency: pywhispercpp. Install with `pip install -e .`."
            ) from exc

        logger.info("Loading model: %s", self.model_path)
        try:
            return Model(str(self.model_path), n_threads=self._threads, print_progress=False, print_realtime=False)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to load Whisper model '{self.model_path}'. Delete the file to force a fresh download."
            ) from exc

    async def stream(self, wav_path: Path, language: str, token: CancellationToken) -> AsyncIterator[RawSegment]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        stopped = threading.Event()

        def on_segment(produced: Any) -> None:
            if stopped.is_set() or token.cancelled:
                return
            for segment in produced if isinstance(produced, (list, tuple)) else (produced,):
                loop.call_soon_threadsafe(queue.put_nowait, segment)

        def should_abort() -> bool:
            return stopped.is_set() or token.cancelled

        def run() -> list:
            with self._lock:
                return self._model.transcribe(
                    str(wav_path),
                    language=language,
                    new_segment_callback=on_segment,
                    abort_callback=should_abort,
                )

        future = loop.run_in_executor(None, run)
        future.add_done_callback(lambda _f: queue.put_nowait(_DONE))

        streamed = 0
        try:
            while True:
                token.raise_if_cancelled()
                item = await queue.get()
                if item is _DONE:
                    break
                streamed += 1
                yield _to_raw(item)

            token.raise_if_cancelled()
            segments = future.result()
            if streamed == 0:
                # Older bindings only return the full list.
                for item in segments or ():
                    yield _to_raw(item)
        finally:
            stopped.set()

    def close(self) -> None:
        self._model = None


def _to_raw(segment: Any) -> RawSegment:
    # whisper.cpp reports times in 10 ms units.
    return RawSegment(
        start=timedelta(milliseconds=int(segment.t0) * 10),
        end=timedelta(milliseconds=int(segment.t1) * 10),
        text=str(getattr(segment, "text", "") or ""),
    )
