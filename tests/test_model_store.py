from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import pytest

from models.identity import ModelIdentity, ModelKind, Quantization
from models.provider import HuggingFaceProvider, ModelDownloadError
from models.store import ModelStore
from pipeline.cancellation import CancellationToken, OperationCancelled


class FakeProvider:
    def __init__(
        self,
        chunks: list[bytes],
        fail_after: Optional[int] = None,
        on_chunk=None,
    ) -> None:
        self.chunks = chunks
        self.fail_after = fail_after
        self.on_chunk = on_chunk
        self.opened: list[ModelIdentity] = []

    @asynccontextmanager
    async def open(self, identity: ModelIdentity) -> AsyncIterator[AsyncIterator[bytes]]:
        self.opened.append(identity)

        async def produce() -> AsyncIterator[bytes]:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ModelDownloadError("connection reset")
                if self.on_chunk is not None:
                    self.on_chunk(i)
                yield chunk

        yield produce()


IDENTITY = ModelIdentity(ModelKind.MEDIUM_EN, Quantization.Q5_0)


def _files(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir()) if directory.exists() else []


def test_identity_file_name_is_stable() -> None:
    assert IDENTITY.file_name == "ggml-mediumen-q5_0.bin"
    assert ModelIdentity(ModelKind.parse("Large-V3"), Quantization.parse("classic")).file_name == (
        "ggml-largev3-noquantization.bin"
    )


def test_parse_rejects_unknown_names() -> None:
    with pytest.raises(ValueError):
        ModelKind.parse("huge")
    with pytest.raises(ValueError):
        Quantization.parse("q3_k")


def test_provider_url() -> None:
    provider = HuggingFaceProvider("https://example.test/models/")
    assert provider.url_for(IDENTITY) == "https://example.test/models/q5_0/ggml-medium.en.bin"
    tiny = ModelIdentity(ModelKind.TINY, Quantization.NONE)
    assert provider.url_for(tiny) == "https://example.test/models/classic/ggml-tiny.bin"


def test_ensure_model_downloads_once(tmp_path: Path) -> None:
    provider = FakeProvider([b"abc", b"def"])
    store = ModelStore(tmp_path / "models", provider)

    first = asyncio.run(store.ensure_model(IDENTITY))
    second = asyncio.run(store.ensure_model(IDENTITY))

    assert first == second == tmp_path / "models" / "ggml-mediumen-q5_0.bin"
    assert first.read_bytes() == b"abcdef"
    assert provider.opened == [IDENTITY]
    assert _files(tmp_path / "models") == ["ggml-mediumen-q5_0.bin"]


def test_provider_failure_leaves_no_file(tmp_path: Path) -> None:
    store = ModelStore(tmp_path, FakeProvider([b"abc", b"def"], fail_after=1))
    with pytest.raises(ModelDownloadError):
        asyncio.run(store.ensure_model(IDENTITY))
    assert _files(tmp_path) == []
    assert not store.is_cached(IDENTITY)


def test_empty_download_is_rejected(tmp_path: Path) -> None:
    store = ModelStore(tmp_path, FakeProvider([]))
    with pytest.raises(ModelDownloadError, match="no data"):
        asyncio.run(store.ensure_model(IDENTITY))
    assert _files(tmp_path) == []


def test_cancellation_mid_download_leaves_no_file(tmp_path: Path) -> None:
    token = CancellationToken()

    def cancel_on_second(index: int) -> None:
        if index == 1:
            token.cancel()

    store = ModelStore(tmp_path, FakeProvider([b"a", b"b", b"c"], on_chunk=cancel_on_second))
    with pytest.raises(OperationCancelled):
        asyncio.run(store.ensure_model(IDENTITY, token))
    assert _files(tmp_path) == []


def test_http_provider_streams_bytes(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/q5_0/ggml-medium.en.bin")
        return httpx.Response(200, content=b"ggml-bytes")

    async def run() -> Path:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = ModelStore(tmp_path, HuggingFaceProvider("https://example.test", client=client))
            return await store.ensure_model(IDENTITY)

    assert asyncio.run(run()).read_bytes() == b"ggml-bytes"


def test_http_provider_maps_status_errors(tmp_path: Path) -> None:
    async def run() -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with httpx.AsyncClient(transport=transport) as client:
            store = ModelStore(tmp_path, HuggingFaceProvider("https://example.test", client=client))
            await store.ensure_model(IDENTITY)

    with pytest.raises(ModelDownloadError, match="HTTP 404"):
        asyncio.run(run())
    assert _files(tmp_path) == []
