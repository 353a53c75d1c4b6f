"""Recording module for screen capture and media handling.

This module provides:
- CaptureNegotiator: Acquire a screen (+ audio) stream with fallbacks
- RecordingSession: Lifecycle state of one recording
- CapturedMedia: In-memory ownership of a recording with secure cleanup
- FrameSampler: Extract still frames from a recording using ffmpeg
- AudioTranscriber: Transcribe the audio track via the configured provider
"""

from .capture import (
    CaptureConstraints,
    CaptureNegotiator,
    FFmpegCaptureBackend,
    DEFAULT_CONSTRAINT_SETS,
)
from .session import RecordingSession, SessionStatus
from .media import CapturedMedia, secure_delete
from .frame_sampler import FFmpegDecoder, Frame, FrameSampler, VideoDecoder
from .transcriber import AudioTranscriber, Transcript, PLACEHOLDER_TRANSCRIPT

__all__ = [
    "CaptureConstraints",
    "CaptureNegotiator",
    "FFmpegCaptureBackend",
    "DEFAULT_CONSTRAINT_SETS",
    "RecordingSession",
    "SessionStatus",
    "CapturedMedia",
    "secure_delete",
    "FFmpegDecoder",
    "Frame",
    "FrameSampler",
    "VideoDecoder",
    "AudioTranscriber",
    "Transcript",
    "PLACEHOLDER_TRANSCRIPT",
]
