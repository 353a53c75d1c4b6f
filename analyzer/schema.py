"""Data models for processed recording metadata."""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml


# Progress callback: receives a running fraction in [0, 1]
ProgressCallback = Callable[[float], None]


class RequestType(StrEnum):
    """What the user is asking for, inferred from transcript and screen text."""
    CALCULATION = "calculation"
    BUG_FIX = "bug_fix"
    FEATURE_REQUEST = "feature_request"
    REFACTORING = "refactoring"
    QUESTION = "question"
    GENERAL = "general"


class UserEmotion(StrEnum):
    """Tone of the narration."""
    FRUSTRATED = "frustrated"
    EXCITED = "excited"
    CONFUSED = "confused"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class UiElement:
    """A UI element inferred from the text of one frame."""

    type: str  # button, error_message, form, ...
    text: str
    state: str  # clickable, visible, editable
    timestamp: float  # Capture offset of the frame in seconds

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        return {
            "type": self.type,
            "text": self.text,
            "state": self.state,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "UiElement":
        """Create from dictionary."""
        return cls(
            type=d["type"],
            text=d.get("text", ""),
            state=d.get("state", ""),
            timestamp=float(d.get("timestamp", 0.0)),
        )


@dataclass(frozen=True)
class ContextClassification:
    """Output of the context classifier. Pure data, no references to media."""

    intent_keywords: tuple[str, ...] = ()
    user_emotion: UserEmotion = UserEmotion.NEUTRAL
    request_type: RequestType = RequestType.GENERAL
    error_patterns: tuple[str, ...] = ()
    suggested_focus: tuple[str, ...] = ()
    detected_framework: str = "unknown"
    ui_elements: tuple[UiElement, ...] = ()
    detected_expressions: tuple[str, ...] = ()
    layout_analysis: str = "unknown"


@dataclass(frozen=True)
class UserContext:
    """What the user said and wants."""

    transcript: str = ""
    intent_keywords: tuple[str, ...] = ()
    user_emotion: str = UserEmotion.NEUTRAL.value
    request_type: str = RequestType.GENERAL.value

    def to_dict(self) -> dict:
        return {
            "transcript": self.transcript,
            "intent_keywords": list(self.intent_keywords),
            "user_emotion": str(self.user_emotion),
            "request_type": str(self.request_type),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "UserContext":
        return cls(
            transcript=d.get("transcript", ""),
            intent_keywords=tuple(d.get("intent_keywords", [])),
            user_emotion=d.get("user_emotion", UserEmotion.NEUTRAL.value),
            request_type=d.get("request_type", RequestType.GENERAL.value),
        )


@dataclass(frozen=True)
class VisualContext:
    """What was on screen."""

    frames_analyzed: int = 0
    ui_elements_detected: tuple[UiElement, ...] = ()
    color_palette: tuple[str, ...] = ()
    layout_analysis: str = "unknown"
    text_content: tuple[str, ...] = ()  # De-duplicated tokens, first-seen order

    def to_dict(self) -> dict:
        return {
            "frames_analyzed": self.frames_analyzed,
            "ui_elements_detected": [el.to_dict() for el in self.ui_elements_detected],
            "color_palette": list(self.color_palette),
            "layout_analysis": self.layout_analysis,
            "text_content": list(self.text_content),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "VisualContext":
        return cls(
            frames_analyzed=int(d.get("frames_analyzed", 0)),
            ui_elements_detected=tuple(UiElement.from_dict(el) for el in d.get("ui_elements_detected", [])),
            color_palette=tuple(d.get("color_palette", [])),
            layout_analysis=d.get("layout_analysis", "unknown"),
            text_content=tuple(d.get("text_content", [])),
        )


@dataclass(frozen=True)
class TechnicalContext:
    """Technology and problem hints for the code-solution step."""

    detected_framework: str = "unknown"
    error_patterns: tuple[str, ...] = ()
    suggested_focus: tuple[str, ...] = ()
    detected_expressions: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "detected_framework": self.detected_framework,
            "error_patterns": list(self.error_patterns),
            "suggested_focus": list(self.suggested_focus),
            "detected_expressions": list(self.detected_expressions),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TechnicalContext":
        return cls(
            detected_framework=d.get("detected_framework", "unknown"),
            error_patterns=tuple(d.get("error_patterns", [])),
            suggested_focus=tuple(d.get("suggested_focus", [])),
            detected_expressions=tuple(d.get("detected_expressions", [])),
        )


@dataclass(frozen=True)
class ProcessedMetadata:
    """Terminal, immutable result of processing one recording.

    This is the hand-off boundary to code-solution generation. It holds
    only derived text; no frame or audio bytes are reachable from it.
    """

    session_id: str
    timestamp: str  # ISO-8601 wall clock at the end of capture
    processing_duration_seconds: float
    media_duration_seconds: float
    user_context: UserContext = field(default_factory=UserContext)
    visual_context: VisualContext = field(default_factory=VisualContext)
    technical_context: TechnicalContext = field(default_factory=TechnicalContext)

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        return {
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "processing_duration_seconds": self.processing_duration_seconds,
            "media_duration_seconds": self.media_duration_seconds,
            "user_context": self.user_context.to_dict(),
            "visual_context": self.visual_context.to_dict(),
            "technical_context": self.technical_context.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ProcessedMetadata":
        """Create from dictionary."""
        return cls(
            session_id=d["session_id"],
            timestamp=d["timestamp"],
            processing_duration_seconds=float(d.get("processing_duration_seconds", 0.0)),
            media_duration_seconds=float(d.get("media_duration_seconds", 0.0)),
            user_context=UserContext.from_dict(d.get("user_context", {})),
            visual_context=VisualContext.from_dict(d.get("visual_context", {})),
            technical_context=TechnicalContext.from_dict(d.get("technical_context", {})),
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def to_yaml(self) -> str:
        """Serialize to YAML for human reading."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False, allow_unicode=True)

    def save(self, path: Path) -> Path:
        """Save metadata to file (YAML or JSON based on extension)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.suffix in (".yaml", ".yml"):
            path.write_text(self.to_yaml(), encoding="utf-8")
        else:
            path.write_text(self.to_json(), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "ProcessedMetadata":
        """Load metadata from a JSON or YAML file."""
        path = Path(path)
        content = path.read_text(encoding="utf-8")

        data: Any
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        else:
            data = json.loads(content)
        return cls.from_dict(data)
