from __future__ import annotations

import pytest

import config as config_module
from config import AIProvider, CancellationPolicy, PipelineConfig, SampleMode, VisionStrategy
from utils.errors import ConfigError


def test_defaults() -> None:
    config = PipelineConfig()

    assert config.provider == AIProvider.OPENAI
    assert config.vision_strategy == VisionStrategy.REMOTE
    assert config.max_frames == 10
    assert config.sample_mode == SampleMode.FIXED_COUNT
    assert config.key_frame_fractions == (0.1, 0.5, 0.9)
    assert config.cancellation_policy == CancellationPolicy.DISCARD
    assert config.models.transcription == "whisper-1"


def test_strings_are_coerced_to_enums() -> None:
    config = PipelineConfig(provider="gemini", vision_strategy="ocr", sample_mode="fixed_cadence")

    assert config.provider is AIProvider.GEMINI
    assert config.vision_strategy is VisionStrategy.OCR
    assert config.sample_mode is SampleMode.FIXED_CADENCE


@pytest.mark.parametrize(
    "kwargs",
    [
        {"provider": "mistral"},
        {"max_frames": 0},
        {"cadence_seconds": 0},
        {"key_frame_fractions": ()},
        {"key_frame_fractions": (0.5, 1.0)},
        {"jpeg_quality": 1},
    ],
)
def test_invalid_values_raise(kwargs: dict) -> None:
    with pytest.raises(ConfigError):
        PipelineConfig(**kwargs)


def test_model_overrides_and_anthropic_has_no_speech() -> None:
    config = PipelineConfig(provider="anthropic", chat_model="claude-haiku-4-5")

    assert config.models.chat == "claude-haiku-4-5"
    assert config.models.transcription is None


def test_replace_ignores_unknown_keys() -> None:
    config = PipelineConfig().replace(max_frames=3, not_a_field=True)

    assert config.max_frames == 3


def test_api_keys_are_not_in_repr() -> None:
    assert "sk-secret" not in repr(PipelineConfig(openai_api_key="sk-secret"))


def test_from_env(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    monkeypatch.setenv("SCREENCONTEXT_PROVIDER", "gemini")
    monkeypatch.setenv("SCREENCONTEXT_MAX_FRAMES", "4")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    config = PipelineConfig.from_env(sample_mode="fixed_cadence", provider=None)

    assert config.provider == AIProvider.GEMINI
    assert config.max_frames == 4
    assert config.google_api_key == "g-key"
    assert config.sample_mode == SampleMode.FIXED_CADENCE


def test_from_env_rejects_bad_integer(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    monkeypatch.setenv("SCREENCONTEXT_MAX_FRAMES", "many")

    with pytest.raises(ConfigError):
        PipelineConfig.from_env()
