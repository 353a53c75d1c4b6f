"""Audio transcription for recorded sessions."""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from utils.errors import ProviderUnavailableError

if TYPE_CHECKING:
    from utils.logger import PipelineLogger
    from utils.providers import ProviderClient
    from .frame_sampler import VideoDecoder

_module_logger = logging.getLogger(__name__)

PLACEHOLDER_TRANSCRIPT = "Audio transcription not available"


@dataclass(frozen=True)
class Transcript:
    """Transcription result for one recording."""

    text: str
    available: bool = True  # False when `text` is the placeholder
    source: str = ""  # Provider that produced the text, or the reason it is missing

    @classmethod
    def placeholder(cls, reason: str) -> "Transcript":
        """Degraded transcript used when speech-to-text cannot run."""
        return cls(text=PLACEHOLDER_TRANSCRIPT, available=False, source=reason)

    @property
    def spoken_text(self) -> str:
        """Text usable for classification (empty when degraded)."""
        return self.text if self.available else ""

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        return {
            "text": self.text,
            "available": self.available,
            "source": self.source,
        }


class AudioTranscriber:
    """Extracts the audio track and converts speech to text.

    Never raises: every failure produces a placeholder transcript so
    classification can continue on visual text alone.
    """

    def __init__(
        self,
        provider: "ProviderClient | None",
        logger: "PipelineLogger | None" = None,
    ):
        """Initialize the transcriber.

        Args:
            provider: Provider client offering speech-to-text, or None to skip.
            logger: Optional PipelineLogger for styled output.
        """
        self.provider = provider
        self.logger = logger

    def _log_warning(self, message: str) -> None:
        """Log a degraded-transcription warning."""
        _module_logger.warning(message)
        if self.logger:
            self.logger.warning(message)

    async def transcribe(self, decoder: "VideoDecoder") -> Transcript:
        """Transcribe the audio track of a recording.

        Args:
            decoder: Decoder over the recording (used for audio extraction).

        Returns:
            Transcript, or a placeholder transcript on any failure.
        """
        if self.provider is None or not self.provider.supports_transcription:
            name = self.provider.provider if self.provider else "none"
            self._log_warning(f"Speech-to-text not available for provider '{name}'")
            return Transcript.placeholder(f"not available for {name}")

        if self.logger:
            self.logger.step("Extracting audio track...")
        try:
            audio = await decoder.extract_audio()
        except Exception as e:
            self._log_warning(f"Audio extraction failed (recording may have no audio track): {e}")
            return Transcript.placeholder("audio extraction failed")

        if self.logger:
            self.logger.info(f"Audio extracted: {len(audio) / 1024:.1f} KB")
            self.logger.step("Transcribing audio...")

        try:
            text = await asyncio.to_thread(self.provider.transcribe, audio)
        except ProviderUnavailableError as e:
            self._log_warning(f"Speech-to-text not available: {e.reason}")
            return Transcript.placeholder("provider unavailable")
        except Exception as e:
            self._log_warning(f"Transcription failed: {e}")
            return Transcript.placeholder("transcription failed")

        if self.logger:
            self.logger.info("Transcription: no speech detected" if not text else f"Transcription: {len(text)} chars")
        return Transcript(text=text, available=True, source=str(self.provider.provider))
