"""Model identities: which GGML file a (kind, quantization) pair maps to."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re


_NON_ALNUM = re.compile(r"[^a-z0-9_]")


def _squash(value: str) -> str:
    return _NON_ALNUM.sub("", value.strip().lower())


class ModelKind(str, Enum):
    """Whisper model sizes available as GGML files."""

    TINY = "tiny"
    TINY_EN = "tinyen"
    BASE = "base"
    BASE_EN = "baseen"
    SMALL = "small"
    SMALL_EN = "smallen"
    MEDIUM = "medium"
    MEDIUM_EN = "mediumen"
    LARGE_V1 = "largev1"
    LARGE_V2 = "largev2"
    LARGE_V3 = "largev3"
    LARGE_V3_TURBO = "largev3turbo"

    @classmethod
    def parse(cls, value: str) -> "ModelKind":
        """Parse a model name such as ``medium.en``, ``MediumEn`` or ``large-v3``."""

        key = _squash(value).replace("_", "")
        for kind in cls:
            if kind.value == key:
                return kind
        names = ", ".join(kind.value for kind in cls)
        raise ValueError(f"Unknown model: {value!r}. Available: {names}")

    @property
    def remote_name(self) -> str:
        """File stem used by upstream whisper.cpp model repositories."""

        return _REMOTE_NAMES[self]


_REMOTE_NAMES = {
    ModelKind.TINY: "ggml-tiny",
    ModelKind.TINY_EN: "ggml-tiny.en",
    ModelKind.BASE: "ggml-base",
    ModelKind.BASE_EN: "ggml-base.en",
    ModelKind.SMALL: "ggml-small",
    ModelKind.SMALL_EN: "ggml-small.en",
    ModelKind.MEDIUM: "ggml-medium",
    ModelKind.MEDIUM_EN: "ggml-medium.en",
    ModelKind.LARGE_V1: "ggml-large-v1",
    ModelKind.LARGE_V2: "ggml-large-v2",
    ModelKind.LARGE_V3: "ggml-large-v3",
    ModelKind.LARGE_V3_TURBO: "ggml-large-v3-turbo",
}


class Quantization(str, Enum):
    """Compression variants published for each model."""

    NONE = "noquantization"
    Q4_0 = "q4_0"
    Q4_1 = "q4_1"
    Q5_0 = "q5_0"
    Q5_1 = "q5_1"
    Q8_0 = "q8_0"

    @classmethod
    def parse(cls, value: str) -> "Quantization":
        key = _squash(value)
        if key in {"none", "classic", "f16"}:
            return cls.NONE
        for quantization in cls:
            if quantization.value == key:
                return quantization
        names = ", ".join(q.value for q in cls)
        raise ValueError(f"Unknown quantization: {value!r}. Available: {names}")

    @property
    def remote_dir(self) -> str:
        return "classic" if self is Quantization.NONE else self.value


@dataclass(frozen=True, slots=True)
class ModelIdentity:
    """Immutable descriptor of one downloadable model file."""

    kind: ModelKind
    quantization: Quantization = Quantization.Q5_0

    @property
    def file_name(self) -> str:
        return f"ggml-{self.kind.value}-{self.quantization.value}.bin".lower()

    def __str__(self) -> str:
        return f"{self.kind.value} ({self.quantization.value})"
