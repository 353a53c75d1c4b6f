"""Unified AI provider client with tagged dispatch and cost tracking."""

import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from config import AIProvider, PipelineConfig
from prompts.solution_prompts import (
    SOLUTION_SYSTEM_PROMPT,
    TRANSCRIPTION_HINT,
    generate_contextual_prompt,
)
from .errors import MissingAPIKeyError, ProviderError, ProviderUnavailableError
from .tracking import CostTracker

if TYPE_CHECKING:
    from analyzer.schema import ProcessedMetadata
    from .logger import PipelineLogger

_module_logger = logging.getLogger(__name__)

# Retry configuration for rate limit errors
MAX_RETRIES = 4
INITIAL_RETRY_DELAY = 2.0  # seconds
MAX_RETRY_DELAY = 60.0  # seconds

# Decoder emits 16 kHz mono 16-bit PCM behind a 44-byte WAV header
WAV_HEADER_BYTES = 44
WAV_BYTES_PER_SECOND = 16000 * 2


@dataclass
class ProviderResponse:
    """Standardized response from any provider."""

    text: str
    input_tokens: int
    output_tokens: int
    model: str


def _is_rate_limit(error: Exception) -> bool:
    """Check whether an SDK error looks like a 429 / quota error."""
    status = getattr(error, "status_code", None) or getattr(error, "code", None)
    if status == 429:
        return True
    error_str = str(error).lower()
    return "429" in error_str or "quota" in error_str or "rate limit" in error_str


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# Each backend wants the same text/image blocks in its own shape.
def _to_anthropic(blocks: list[dict]) -> list[dict]:
    return [
        {"type": "text", "text": b["text"]} if b["type"] == "text" else {
            "type": "image",
            "source": {"type": "base64", "media_type": b.get("media_type", "image/jpeg"), "data": _b64(b["data"])},
        }
        for b in blocks
    ]


def _to_openai(blocks: list[dict]) -> list[dict]:
    return [
        {"type": "text", "text": b["text"]} if b["type"] == "text" else {
            "type": "image_url",
            "image_url": {"url": f"data:{b.get('media_type', 'image/jpeg')};base64,{_b64(b['data'])}"},
        }
        for b in blocks
    ]


def _to_gemini(blocks: list[dict]) -> list[Any]:
    from google.genai import types

    return [
        types.Part.from_text(text=b["text"]) if b["type"] == "text"
        else types.Part.from_bytes(data=b["data"], mime_type=b.get("media_type", "image/jpeg"))
        for b in blocks
    ]


class ProviderClient:
    """Single interface over OpenAI, Gemini and Anthropic.

    The provider is a closed variant chosen by `PipelineConfig.provider`;
    every capability (`describe_frame`, `transcribe`, `test_connection`,
    `generate_code_solution`) dispatches through a table keyed by
    `AIProvider`, so each backend keeps an identical contract.

    Example:
        >>> client = ProviderClient(PipelineConfig.from_env(provider="gemini"))
        >>> text = client.describe_frame(jpeg_bytes, "Extract all text")
    """

    def __init__(
        self,
        config: PipelineConfig,
        cost_tracker: CostTracker | None = None,
        logger: "PipelineLogger | None" = None,
    ):
        """Initialize the provider client.

        Args:
            config: Pipeline configuration (provider, models, API keys).
            cost_tracker: Optional CostTracker for usage accounting.
            logger: Optional PipelineLogger for logging API calls.
        """
        self.config = config
        self.cost_tracker = cost_tracker or CostTracker()
        self.logger = logger

        # Lazy-loaded SDK clients
        self._clients: dict[AIProvider, Any] = {}

        self._generators: dict[AIProvider, Callable[..., ProviderResponse]] = {
            AIProvider.OPENAI: self._call_openai,
            AIProvider.GEMINI: self._call_gemini,
            AIProvider.ANTHROPIC: self._call_anthropic,
        }
        self._transcribers: dict[AIProvider, Callable[[bytes, str], str]] = {
            AIProvider.OPENAI: self._transcribe_openai,
            AIProvider.GEMINI: self._transcribe_gemini,
        }

    @property
    def provider(self) -> AIProvider:
        """The provider every call is routed to."""
        return self.config.provider

    @property
    def supports_transcription(self) -> bool:
        """Whether the selected provider offers speech-to-text."""
        return self.provider in self._transcribers and self.config.models.transcription is not None

    # =========================================================================
    # Capabilities
    # =========================================================================

    def describe_frame(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "image/jpeg",
    ) -> str:
        """Send one encoded frame with an instruction and return the text verbatim.

        Raises:
            ProviderError: If the remote call fails.
        """
        response = self.generate(
            system_prompt="You read screenshots of software precisely.",
            content=[
                {"type": "image", "data": image_bytes, "media_type": media_type},
                {"type": "text", "text": prompt},
            ],
            model=self.config.models.vision,
            max_tokens=1000,
            phase="vision",
        )
        return response.strip()

    def transcribe(self, audio_bytes: bytes, filename: str = "audio.wav") -> str:
        """Convert speech to text.

        Raises:
            ProviderUnavailableError: If the provider has no speech-to-text.
            ProviderError: If the remote call fails.
        """
        if not self.supports_transcription:
            raise ProviderUnavailableError(self.provider, "speech-to-text is not available")
        try:
            text = self._transcribers[self.provider](audio_bytes, filename)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(self.provider, f"transcription failed: {e}") from e

        seconds = max(0, len(audio_bytes) - WAV_HEADER_BYTES) / WAV_BYTES_PER_SECOND
        self.cost_tracker.add_audio(seconds, model=self.config.models.transcription or "")
        return text.strip()

    def test_connection(self) -> bool:
        """Make a minimal request to verify credentials. Never raises."""
        try:
            reply = self.generate(
                system_prompt="Reply with OK.",
                content=[{"type": "text", "text": "Test"}],
                model=self.config.models.chat,
                max_tokens=5,
                phase="connection_test",
            )
            return bool(reply)
        except Exception as e:
            _module_logger.warning(f"{self.provider} connection test failed: {e}")
            return False

    def generate_code_solution(self, metadata: "ProcessedMetadata") -> str:
        """Generate a code solution for a processed recording."""
        return self.generate(
            system_prompt=SOLUTION_SYSTEM_PROMPT,
            content=[{"type": "text", "text": generate_contextual_prompt(metadata)}],
            model=self.config.models.chat,
            max_tokens=self.config.max_tokens,
            phase="solution",
        ) or "No response generated"

    def generate(
        self,
        system_prompt: str,
        content: list[dict],
        model: str | None = None,
        max_tokens: int = 1000,
        phase: str | None = None,
    ) -> str:
        """Generate a response from the selected provider.

        Args:
            system_prompt: System prompt for the model.
            content: List of content blocks in unified format:
                - Text: {"type": "text", "text": "..."}
                - Image: {"type": "image", "data": b"...", "media_type": "image/jpeg"}
            model: Model name; defaults to the provider's chat model.
            max_tokens: Maximum tokens for response.
            phase: Optional phase name for cost tracking.

        Returns:
            Response text.

        Raises:
            ProviderError: If the call fails after retries.
        """
        model = model or self.config.models.chat
        call = self._generators[self.provider]

        retry_delay = INITIAL_RETRY_DELAY
        for attempt in range(MAX_RETRIES):
            try:
                response = call(model, system_prompt, content, max_tokens)
                break
            except ProviderError:
                raise
            except Exception as e:
                if _is_rate_limit(e) and attempt < MAX_RETRIES - 1:
                    _module_logger.warning(
                        f"Rate limit hit on {self.provider}, retrying in {retry_delay:.1f}s "
                        f"(attempt {attempt + 1}/{MAX_RETRIES})"
                    )
                    time.sleep(retry_delay)
                    retry_delay = min(retry_delay * 2, MAX_RETRY_DELAY)
                    continue
                raise ProviderError(self.provider, str(e)) from e

        self.cost_tracker.add_usage(
            response.input_tokens,
            response.output_tokens,
            model=model,
            phase=phase,
        )
        if self.logger:
            self.logger.api(model, response.input_tokens, response.output_tokens, console=False)

        return response.text or ""

    # =========================================================================
    # SDK clients
    # =========================================================================

    def _get_client(self, provider: AIProvider) -> Any:
        """Get or create the SDK client for a provider."""
        if provider not in self._clients:
            api_key = self.config.api_key_for(provider)
            if not api_key:
                raise MissingAPIKeyError(provider)

            if provider == AIProvider.OPENAI:
                from openai import OpenAI
                self._clients[provider] = OpenAI(api_key=api_key)
            elif provider == AIProvider.ANTHROPIC:
                from anthropic import Anthropic
                self._clients[provider] = Anthropic(api_key=api_key)
            else:
                from google import genai
                self._clients[provider] = genai.Client(api_key=api_key)
        return self._clients[provider]

    # =========================================================================
    # Generation backends
    # =========================================================================

    def _call_anthropic(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
    ) -> ProviderResponse:
        """Call Anthropic API."""
        client = self._get_client(AIProvider.ANTHROPIC)

        response = client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": _to_anthropic(content)}],
        )

        return ProviderResponse(
            text=response.content[0].text if response.content else "",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=model,
        )

    def _call_openai(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
    ) -> ProviderResponse:
        """Call OpenAI API."""
        client = self._get_client(AIProvider.OPENAI)

        response = client.chat.completions.create(
            model=model,
            max_completion_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _to_openai(content)},
            ],
        )

        return ProviderResponse(
            text=response.choices[0].message.content if response.choices else "",
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=model,
        )

    def _call_gemini(
        self,
        model: str,
        system_prompt: str,
        content: list[dict],
        max_tokens: int,
    ) -> ProviderResponse:
        """Call Gemini API using the google-genai package."""
        from google.genai import types

        client = self._get_client(AIProvider.GEMINI)

        response = client.models.generate_content(
            model=model,
            contents=_to_gemini(content),
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                max_output_tokens=max_tokens,
            ),
        )

        usage = response.usage_metadata
        return ProviderResponse(
            text=response.text or "",
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
            model=model,
        )

    # =========================================================================
    # Transcription backends
    # =========================================================================

    def _transcribe_openai(self, audio_bytes: bytes, filename: str) -> str:
        """Transcribe with the OpenAI speech-to-text endpoint."""
        client = self._get_client(AIProvider.OPENAI)

        audio_file = io.BytesIO(audio_bytes)
        audio_file.name = filename

        response = client.audio.transcriptions.create(
            model=self.config.models.transcription,
            file=audio_file,
            language="en",
            prompt=TRANSCRIPTION_HINT,
        )
        return response.text

    def _transcribe_gemini(self, audio_bytes: bytes, filename: str) -> str:
        """Transcribe by sending the audio inline to a Gemini model."""
        from google.genai import types

        client = self._get_client(AIProvider.GEMINI)

        response = client.models.generate_content(
            model=self.config.models.transcription,
            contents=[
                types.Part.from_bytes(data=audio_bytes, mime_type="audio/wav"),
                types.Part.from_text(text=f"Transcribe this recording verbatim. Context: {TRANSCRIPTION_HINT}"),
            ],
        )
        return response.text or ""

