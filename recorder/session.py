"""Recording session lifecycle as a tagged state machine."""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import TYPE_CHECKING

from utils.errors import SessionStateError

if TYPE_CHECKING:
    from analyzer.schema import ProcessedMetadata


class SessionStatus(StrEnum):
    """State of one recording attempt."""
    IDLE = "Idle"
    RECORDING = "Recording"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    ERROR = "Error"


# Allowed transitions; ERROR is reachable from every state.
# Idle -> Processing covers recordings handed in as finished files.
_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {SessionStatus.RECORDING, SessionStatus.PROCESSING},
    SessionStatus.RECORDING: {SessionStatus.PROCESSING},
    SessionStatus.PROCESSING: {SessionStatus.COMPLETED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.ERROR: set(),
}


@dataclass
class RecordingSession:
    """One recording attempt. Ephemeral: never persisted.

    `status` is a single tagged state; `error_reason` is only set together
    with `SessionStatus.ERROR`.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.IDLE
    error_reason: str | None = None
    start_time: datetime | None = None
    metadata: "ProcessedMetadata | None" = None

    _started_at: float = field(default=0.0, init=False, repr=False)
    _stopped_at: float = field(default=0.0, init=False, repr=False)

    def _transition(self, target: SessionStatus) -> None:
        """Move to `target` or raise on an illegal transition."""
        if target not in _TRANSITIONS[self.status]:
            raise SessionStateError(f"Cannot go from {self.status} to {target}")
        self.status = target

    def start(self) -> "RecordingSession":
        """Idle -> Recording. Stamps the start time."""
        self._transition(SessionStatus.RECORDING)
        self.start_time = datetime.now(timezone.utc)
        self._started_at = time.time()
        return self

    def stop(self) -> "RecordingSession":
        """Recording -> Processing (Idle -> Processing for a finished file)."""
        self._transition(SessionStatus.PROCESSING)
        self._stopped_at = time.time()
        return self

    def complete(self, metadata: "ProcessedMetadata") -> "RecordingSession":
        """Processing -> Completed with the finished metadata."""
        self._transition(SessionStatus.COMPLETED)
        self.metadata = metadata
        return self

    def fail(self, reason: str) -> "RecordingSession":
        """Any state -> Error(reason)."""
        self.status = SessionStatus.ERROR
        self.error_reason = reason
        return self

    @property
    def is_recording(self) -> bool:
        """Check if recording is in progress."""
        return self.status == SessionStatus.RECORDING

    @property
    def is_finished(self) -> bool:
        """Completed or failed; the session can be discarded."""
        return self.status in (SessionStatus.COMPLETED, SessionStatus.ERROR)

    @property
    def duration(self) -> float:
        """Recording duration in seconds (live while recording)."""
        if not self._started_at:
            return 0.0
        end = self._stopped_at or time.time()
        return end - self._started_at

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        status: str | dict = (
            {"Error": self.error_reason or ""} if self.status == SessionStatus.ERROR else self.status.value
        )
        return {
            "id": self.id,
            "status": status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "duration": round(self.duration, 3) if self._started_at else None,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }
