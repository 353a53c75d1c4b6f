"""Configuration and settings for recording processing."""

import os
from dataclasses import dataclass, field, fields, replace as dataclass_replace
from enum import StrEnum

from dotenv import load_dotenv

from utils.errors import ConfigError


class AIProvider(StrEnum):
    """Remote AI backend used for vision, speech and code solutions."""
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class VisionStrategy(StrEnum):
    """How frames are turned into text."""
    OCR = "ocr"  # Local text recognition
    REMOTE = "remote"  # Vision-capable AI model


class SampleMode(StrEnum):
    """How frames are picked from the recorded video."""
    FIXED_COUNT = "fixed_count"  # One frame per key-frame fraction of the duration
    FIXED_CADENCE = "fixed_cadence"  # One frame every `cadence_seconds`


class CancellationPolicy(StrEnum):
    """What happens to captured data when a recording is cancelled."""
    DISCARD = "discard"
    DEGRADE = "degrade"


@dataclass(frozen=True)
class ProviderModels:
    """Model names used for each capability of a provider."""

    vision: str
    chat: str
    transcription: str | None  # None = provider has no speech-to-text


DEFAULT_MODELS: dict[AIProvider, ProviderModels] = {
    AIProvider.OPENAI: ProviderModels(
        vision="gpt-4o-mini",
        chat="gpt-4o-mini",
        transcription="whisper-1",
    ),
    AIProvider.GEMINI: ProviderModels(
        vision="gemini-2.0-flash",
        chat="gemini-2.0-flash",
        transcription="gemini-2.0-flash",
    ),
    AIProvider.ANTHROPIC: ProviderModels(
        vision="claude-sonnet-4-5-20250929",
        chat="claude-sonnet-4-5-20250929",
        transcription=None,
    ),
}


@dataclass(frozen=True)
class PipelineConfig:
    """Explicit configuration handed to the pipeline for one invocation.

    Nothing in the pipeline reads settings from the environment during a run;
    use `from_env()` once at the edge (CLI) and pass the result in.
    """

    provider: AIProvider = AIProvider.OPENAI
    vision_strategy: VisionStrategy = VisionStrategy.REMOTE

    # Frame sampling
    max_frames: int = 10  # Cap on frames sent to the visual analyzer
    sample_mode: SampleMode = SampleMode.FIXED_COUNT
    key_frame_fractions: tuple[float, ...] = (0.1, 0.5, 0.9)
    cadence_seconds: float = 2.0
    jpeg_quality: int = 3  # ffmpeg -q:v scale (2 = best, 31 = worst)
    max_image_dimension: int = 1280

    # Context
    palette_size: int = 6
    cancellation_policy: CancellationPolicy = CancellationPolicy.DISCARD

    # Model overrides (None = provider default)
    vision_model: str | None = None
    chat_model: str | None = None
    transcription_model: str | None = None
    max_tokens: int = 2000

    # API keys (loaded from .env file)
    openai_api_key: str = field(default="", repr=False)
    anthropic_api_key: str = field(default="", repr=False)
    google_api_key: str = field(default="", repr=False)

    def __post_init__(self):
        """Coerce string values into enums and validate ranges."""
        try:
            object.__setattr__(self, "provider", AIProvider(self.provider))
            object.__setattr__(self, "vision_strategy", VisionStrategy(self.vision_strategy))
            object.__setattr__(self, "sample_mode", SampleMode(self.sample_mode))
            object.__setattr__(self, "cancellation_policy", CancellationPolicy(self.cancellation_policy))
        except ValueError as e:
            raise ConfigError(str(e)) from e

        if self.max_frames < 1:
            raise ConfigError(f"max_frames must be at least 1, got {self.max_frames}")
        if self.cadence_seconds <= 0:
            raise ConfigError(f"cadence_seconds must be positive, got {self.cadence_seconds}")
        if not self.key_frame_fractions:
            raise ConfigError("key_frame_fractions must not be empty")
        for fraction in self.key_frame_fractions:
            if not 0.0 <= fraction < 1.0:
                raise ConfigError(f"key frame fraction out of range [0, 1): {fraction}")
        if not 2 <= self.jpeg_quality <= 31:
            raise ConfigError(f"jpeg_quality must be in [2, 31], got {self.jpeg_quality}")

    @property
    def models(self) -> ProviderModels:
        """Models for the selected provider with overrides applied."""
        defaults = DEFAULT_MODELS[self.provider]
        return ProviderModels(
            vision=self.vision_model or defaults.vision,
            chat=self.chat_model or defaults.chat,
            transcription=self.transcription_model or defaults.transcription,
        )

    def api_key_for(self, provider: AIProvider) -> str:
        """Get the configured API key for a provider (may be empty)."""
        return {
            AIProvider.OPENAI: self.openai_api_key,
            AIProvider.ANTHROPIC: self.anthropic_api_key,
            AIProvider.GEMINI: self.google_api_key,
        }[AIProvider(provider)]

    def replace(self, **kwargs) -> "PipelineConfig":
        """Return a copy with the given values replaced; unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        return dataclass_replace(self, **{k: v for k, v in kwargs.items() if k in known})

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """Build a config from the environment (and a `.env` file if present)."""
        load_dotenv()

        values: dict = {
            "openai_api_key": os.getenv("OPENAI_API_KEY", ""),
            "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", ""),
            "google_api_key": os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY", ""),
        }
        if provider := os.getenv("SCREENCONTEXT_PROVIDER"):
            values["provider"] = provider
        if strategy := os.getenv("SCREENCONTEXT_VISION_STRATEGY"):
            values["vision_strategy"] = strategy
        if sample_mode := os.getenv("SCREENCONTEXT_SAMPLE_MODE"):
            values["sample_mode"] = sample_mode
        if max_frames := os.getenv("SCREENCONTEXT_MAX_FRAMES"):
            try:
                values["max_frames"] = int(max_frames)
            except ValueError as e:
                raise ConfigError(f"SCREENCONTEXT_MAX_FRAMES is not an integer: {max_frames}") from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls().replace(**values)
