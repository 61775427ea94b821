"""Local cache of GGML model files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import uuid

from pipeline.cancellation import NEVER, CancellationToken

from .identity import ModelIdentity
from .provider import ModelDownloadError, ModelProvider


logger = logging.getLogger(__name__)


class ModelStore:
    """Resolves model identities to files under ``models_dir``, downloading on first use."""

    def __init__(self, models_dir: Path, provider: ModelProvider) -> None:
        self.models_dir = models_dir
        self._provider = provider

    def model_path(self, identity: ModelIdentity) -> Path:
        """Where the model file for ``identity`` lives (whether or not it exists yet)."""

        return self.models_dir / identity.file_name

    def is_cached(self, identity: ModelIdentity) -> bool:
        """True when the model file is already on disk."""

        return self.model_path(identity).is_file()

    async def ensure_model(self, identity: ModelIdentity, token: CancellationToken = NEVER) -> Path:
        """Return the cached model path, downloading the file if it is missing.

        Repeat calls for a cached identity never touch the provider. The file
        only appears under its final name once the download has completed.

        Raises:
            ModelDownloadError: If the provider fails.
            OperationCancelled: If ``token`` is cancelled mid-download.
        """

        model_path = self.model_path(identity)
        logger.info("Checking model: %s", model_path)
        if model_path.is_file():
            logger.debug("Model already downloaded: %s", model_path)
            return model_path

        await self._download(identity, model_path, token)
        return model_path

    async def _download(self, identity: ModelIdentity, model_path: Path, token: CancellationToken) -> None:
        self.models_dir.mkdir(parents=True, exist_ok=True)
        token.raise_if_cancelled()

        # Unique per call so concurrent downloads of one identity never share a file.
        part_path = model_path.with_name(f"{model_path.name}.{uuid.uuid4().hex}.part")
        written = 0
        try:
            async with self._provider.open(identity) as chunks:
                with part_path.open("wb") as fh:
                    async for chunk in chunks:
                        token.raise_if_cancelled()
                        fh.write(chunk)
                        written += len(chunk)
                        token.raise_if_cancelled()
            if written == 0:
                raise ModelDownloadError(f"Model download for {identity} returned no data.")
            token.raise_if_cancelled()
            os.replace(part_path, model_path)
        finally:
            if part_path.exists():
                try:
                    part_path.unlink()
                except OSError:
                    logger.warning("Could not remove partial model file: %s", part_path)

        logger.info("Model downloaded: %s (%d bytes)", model_path, written)
