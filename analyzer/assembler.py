"""Metadata assembly: merge stage outputs into one ProcessedMetadata."""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .classifier import extract_text_content
from .schema import (
    ContextClassification,
    ProcessedMetadata,
    TechnicalContext,
    UserContext,
    VisualContext,
)

if TYPE_CHECKING:
    from recorder.media import CapturedMedia
    from recorder.transcriber import Transcript
    from utils.logger import PipelineLogger

_module_logger = logging.getLogger(__name__)


class MetadataAssembler:
    """Builds the immutable result record and releases the source media."""

    def __init__(self, logger: "PipelineLogger | None" = None):
        self.logger = logger

    def assemble(
        self,
        *,
        transcript: "Transcript",
        observations: Sequence[str],
        classification: ContextClassification,
        color_palette: Sequence[str],
        processing_duration: float,
        media_duration: float,
        captured_at: datetime | None = None,
    ) -> ProcessedMetadata:
        """Merge transcript, observations and classification.

        Args:
            transcript: Transcript (placeholder text when degraded).
            observations: Vision observations actually analyzed.
            classification: Classifier output for the same inputs.
            color_palette: Hex colours of the frames.
            processing_duration: Wall-clock seconds spent in the pipeline.
            media_duration: Length of the recording in seconds.
            captured_at: End of capture; now if omitted.

        Returns:
            A fresh ProcessedMetadata with a new session id.
        """
        captured_at = captured_at or datetime.now(timezone.utc)

        metadata = ProcessedMetadata(
            session_id=str(uuid.uuid4()),
            timestamp=captured_at.isoformat(),
            processing_duration_seconds=round(processing_duration, 3),
            media_duration_seconds=round(media_duration, 3),
            user_context=UserContext(
                transcript=transcript.text or "",
                intent_keywords=classification.intent_keywords,
                user_emotion=classification.user_emotion.value,
                request_type=classification.request_type.value,
            ),
            visual_context=VisualContext(
                frames_analyzed=len(observations),
                ui_elements_detected=classification.ui_elements,
                color_palette=tuple(color_palette),
                layout_analysis=classification.layout_analysis,
                text_content=extract_text_content(observations),
            ),
            technical_context=TechnicalContext(
                detected_framework=classification.detected_framework,
                error_patterns=classification.error_patterns,
                suggested_focus=classification.suggested_focus,
                detected_expressions=classification.detected_expressions,
            ),
        )

        _module_logger.info(
            f"Assembled metadata {metadata.session_id}: "
            f"{metadata.user_context.request_type}, {len(observations)} frames"
        )
        return metadata

    def release(self, media: "CapturedMedia") -> None:
        """Release the recording and its transient files. Safe on every exit path."""
        media.release()
        _module_logger.debug(f"Released {media!r}")
        if self.logger:
            self.logger.info("Recording released from memory and disk")
