"""Remote model provider (HTTP download of GGML files)."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol

import httpx

from .identity import ModelIdentity


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ModelDownloadError(RuntimeError):
    """Raised when the provider cannot deliver a model file."""


class ModelProvider(Protocol):
    """Anything that can stream the bytes of a model file."""

    def open(self, identity: ModelIdentity) -> AsyncContextManager[AsyncIterator[bytes]]:
        """Async context manager yielding an async iterator of byte chunks."""


class HuggingFaceProvider:
    """Streams GGML models from a Hugging Face repository.

    Files are laid out as ``{base_url}/{quantization dir}/{remote name}.bin``,
    e.g. ``.../q5_0/ggml-medium.en.bin`` or ``.../classic/ggml-tiny.bin``.
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client

    def url_for(self, identity: ModelIdentity) -> str:
        return f"{self._base_url}/{identity.quantization.remote_dir}/{identity.kind.remote_name}.bin"

    @asynccontextmanager
    async def open(self, identity: ModelIdentity) -> AsyncIterator[AsyncIterator[bytes]]:
        url = self.url_for(identity)
        logger.info("Downloading model %s from %s", identity, url)

        client = self._client or httpx.AsyncClient(follow_redirects=True, timeout=httpx.Timeout(30.0, read=None))
        try:
            async with client.stream("GET", url) as response:
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    raise ModelDownloadError(
                        f"Model download failed for {identity}: HTTP {exc.response.status_code}"
                    ) from exc
                yield response.aiter_bytes(CHUNK_SIZE)
        except httpx.HTTPError as exc:
            raise ModelDownloadError(f"Model download failed for {identity}: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()
