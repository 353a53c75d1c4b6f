"""Shared fakes implementing the decoder, provider and capture protocols."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from config import PipelineConfig
from utils.errors import FrameSamplingError, ProviderError, ProviderUnavailableError


def make_jpeg(color: tuple[int, int, int] = (0, 123, 255), size: tuple[int, int] = (32, 24)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


class FakeDecoder:
    """In-memory `VideoDecoder` over a clip of a given duration."""

    def __init__(
        self,
        duration: float = 2.0,
        fail_at: set[float] | None = None,
        audio: bytes | None = b"RIFF0000WAVEfmt ",
        image: bytes | None = None,
    ):
        self.duration = duration
        self.fail_at = fail_at or set()
        self.audio = audio
        self.image = image or make_jpeg()
        self.seeks: list[float] = []
        self.path: Path | None = None

    async def probe_duration(self) -> float:
        return self.duration

    async def frame_at(self, timestamp: float) -> bytes:
        self.seeks.append(timestamp)
        if timestamp in self.fail_at:
            raise FrameSamplingError(f"No frame decoded at {timestamp:.2f}s")
        return self.image

    async def extract_audio(self) -> bytes:
        if self.audio is None:
            raise RuntimeError("Audio extraction failed: no audio stream")
        return self.audio


class UndecodableDecoder(FakeDecoder):
    async def probe_duration(self) -> float:
        raise FrameSamplingError("Cannot read video: invalid data found when processing input")


class FakeProvider:
    """Stands in for `ProviderClient`; answers frames in call order."""

    def __init__(
        self,
        texts: list[str | Exception] | None = None,
        transcript: str | Exception = "",
        supports_transcription: bool = True,
        provider: str = "openai",
    ):
        self.texts = list(texts or [])
        self.transcript = transcript
        self.supports_transcription = supports_transcription
        self.provider = provider
        self.prompts: list[str] = []
        self.audio: list[bytes] = []

    def describe_frame(self, image_bytes: bytes, prompt: str, media_type: str = "image/jpeg") -> str:
        self.prompts.append(prompt)
        result = self.texts.pop(0) if self.texts else ""
        if isinstance(result, Exception):
            raise result
        return result

    def transcribe(self, audio_bytes: bytes, filename: str = "audio.wav") -> str:
        self.audio.append(audio_bytes)
        if not self.supports_transcription:
            raise ProviderUnavailableError(self.provider, "speech-to-text is not available")
        if isinstance(self.transcript, Exception):
            raise self.transcript
        return self.transcript


class FakeStream:
    def __init__(self, data: bytes = b"partial-recording", error: Exception | None = None):
        self.data = data
        self.error = error
        self.stopped = 0

    @property
    def active(self) -> bool:
        return self.stopped == 0

    def stop(self) -> bytes:
        self.stopped += 1
        if self.error is not None:
            raise self.error
        return self.data if self.stopped == 1 else b""


class FakeBackend:
    """Capture backend rejecting the constraint sets named in `reject`."""

    def __init__(self, reject: set[str] | None = None, stream: FakeStream | None = None):
        self.reject = reject or set()
        self.stream = stream or FakeStream()
        self.attempts: list[str] = []

    def acquire(self, constraints):
        self.attempts.append(constraints.name)
        if constraints.name in self.reject:
            raise PermissionError(f"{constraints.name} denied")
        return self.stream


def provider_failure(message: str = "HTTP 500") -> ProviderError:
    return ProviderError("openai", message)


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def jpeg() -> bytes:
    return make_jpeg()
