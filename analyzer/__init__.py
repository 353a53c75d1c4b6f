"""Analysis module turning recordings into structured metadata."""

from .schema import (
    # Result types
    ProcessedMetadata,
    UserContext,
    VisualContext,
    TechnicalContext,
    UiElement,
    # Classification types
    ContextClassification,
    RequestType,
    UserEmotion,
    ProgressCallback,
)
from .classifier import classify
from .vision import VisualAnalyzer, EasyOcrEngine, OcrEngine
from .palette import extract_palette
from .assembler import MetadataAssembler
from .pipeline import RecordingPipeline, AgentExport

__all__ = [
    # Result types
    "ProcessedMetadata",
    "UserContext",
    "VisualContext",
    "TechnicalContext",
    "UiElement",
    # Classification types
    "ContextClassification",
    "RequestType",
    "UserEmotion",
    "ProgressCallback",
    # Stages
    "classify",
    "VisualAnalyzer",
    "EasyOcrEngine",
    "OcrEngine",
    "extract_palette",
    "MetadataAssembler",
    # Pipeline
    "RecordingPipeline",
    "AgentExport",
]
