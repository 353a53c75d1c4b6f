"""Cost and time tracking for remote provider calls."""

import time
from dataclasses import dataclass, field
from typing import Any


# Model pricing per million tokens (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # Anthropic
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-haiku-4-5": (1.0, 5.0),
    # OpenAI
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.0),
    # Gemini
    "gemini-2.0-flash": (0.10, 0.40),
    "gemini-2.5-flash": (0.30, 2.50),
}

# Speech-to-text billed per audio minute
AUDIO_PRICING_PER_MINUTE: dict[str, float] = {
    "whisper-1": 0.006,
    "gpt-4o-mini-transcribe": 0.003,
}

# Unknown models are priced like the most expensive default
DEFAULT_PRICING = (3.0, 15.0)


def get_model_pricing(model: str) -> tuple[float, float]:
    """(input, output) dollars per million tokens for a model."""
    return MODEL_PRICING.get(model, DEFAULT_PRICING)


def format_duration(seconds: float) -> str:
    """Render seconds as '4.2s' or '3m 5s'."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes)}m {secs:.0f}s"


@dataclass
class UsageStats:
    """Accumulated usage for one model or one pipeline phase."""

    model: str = ""
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    audio_seconds: float = 0.0
    cost: float = 0.0

    def record(self, input_tokens: int, output_tokens: int, audio_seconds: float, cost: float) -> None:
        self.calls += 1
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.audio_seconds += audio_seconds
        self.cost += cost


@dataclass
class CostTracker:
    """Tracks spend across remote calls, per model and per phase.

    Phases used by the pipeline: 'vision', 'transcription', 'solution'
    and 'connection_test'.
    """

    by_model: dict[str, UsageStats] = field(default_factory=dict)
    by_phase: dict[str, UsageStats] = field(default_factory=dict)

    def _record(
        self,
        model: str,
        phase: str | None,
        cost: float,
        input_tokens: int = 0,
        output_tokens: int = 0,
        audio_seconds: float = 0.0,
    ) -> float:
        buckets = [self.by_model.setdefault(model, UsageStats(model=model))]
        if phase:
            buckets.append(self.by_phase.setdefault(phase, UsageStats(model=model)))
        for stats in buckets:
            stats.record(input_tokens, output_tokens, audio_seconds, cost)
        return cost

    def add_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        model: str,
        phase: str | None = None,
    ) -> float:
        """Record token usage from a text or vision call.

        Returns:
            The cost of this call in dollars.
        """
        input_price, output_price = get_model_pricing(model)
        cost = (input_tokens * input_price + output_tokens * output_price) / 1_000_000
        return self._record(model, phase, cost, input_tokens=input_tokens, output_tokens=output_tokens)

    def add_audio(self, seconds: float, model: str, phase: str | None = "transcription") -> float:
        """Record a speech-to-text call billed by audio length.

        Models billed per token (e.g. Gemini) fall back to zero audio cost.
        """
        cost = seconds / 60 * AUDIO_PRICING_PER_MINUTE.get(model, 0.0)
        return self._record(model, phase, cost, audio_seconds=seconds)

    @property
    def api_calls(self) -> int:
        return sum(stats.calls for stats in self.by_model.values())

    @property
    def total_cost(self) -> float:
        """Total spend in dollars."""
        return sum(stats.cost for stats in self.by_model.values())

    def get_summary(self) -> dict[str, str]:
        """Key/value summary for the CLI summary panel."""
        input_tokens = sum(s.input_tokens for s in self.by_model.values())
        output_tokens = sum(s.output_tokens for s in self.by_model.values())
        audio = sum(s.audio_seconds for s in self.by_model.values())
        return {
            "Models Used": ", ".join(self.by_model) or "None",
            "API Calls": str(self.api_calls),
            "Tokens": f"{input_tokens:,} in / {output_tokens:,} out",
            "Audio Transcribed": format_duration(audio),
            "Total Cost": f"${self.total_cost:.4f}",
        }

    def get_phase_summary(self) -> list[list[str]]:
        """Rows of (phase, model, calls, input, output, cost) for table display."""
        return [
            [
                phase,
                stats.model,
                str(stats.calls),
                f"{stats.input_tokens:,}",
                f"{stats.output_tokens:,}",
                f"${stats.cost:.4f}",
            ]
            for phase, stats in self.by_phase.items()
        ]


class Timer:
    """Wall-clock stopwatch, usable as a context manager."""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self._started: float | None = None
        self._stopped: float | None = None

    def start(self) -> "Timer":
        self._started = time.perf_counter()
        self._stopped = None
        return self

    def stop(self) -> float:
        """Freeze the timer and return the elapsed seconds."""
        self._stopped = time.perf_counter()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        """Seconds since start (0.0 if never started)."""
        if self._started is None:
            return 0.0
        return (self._stopped or time.perf_counter()) - self._started

    @property
    def elapsed_str(self) -> str:
        return format_duration(self.elapsed)

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *args: Any) -> None:
        self.stop()
