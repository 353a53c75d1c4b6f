from __future__ import annotations

import pytest

from analyzer.schema import ProcessedMetadata
from recorder.session import RecordingSession, SessionStatus
from utils.errors import SessionStateError


def _metadata() -> ProcessedMetadata:
    return ProcessedMetadata(
        session_id="abc",
        timestamp="2024-01-01T00:00:00+00:00",
        processing_duration_seconds=1.5,
        media_duration_seconds=2.0,
    )


def test_full_lifecycle() -> None:
    session = RecordingSession()
    assert session.status == SessionStatus.IDLE

    session.start()
    assert session.is_recording
    assert session.start_time is not None

    session.stop()
    assert session.status == SessionStatus.PROCESSING

    session.complete(_metadata())
    assert session.status == SessionStatus.COMPLETED
    assert session.is_finished
    assert session.to_dict()["status"] == "Completed"
    assert session.to_dict()["metadata"]["session_id"] == "abc"


def test_finished_file_goes_straight_to_processing() -> None:
    session = RecordingSession().stop()

    assert session.status == SessionStatus.PROCESSING
    assert session.to_dict()["duration"] is None


def test_illegal_transitions_raise() -> None:
    session = RecordingSession()

    with pytest.raises(SessionStateError):
        session.complete(_metadata())

    session.start()
    with pytest.raises(SessionStateError):
        session.start()


def test_fail_from_any_state_renders_reason() -> None:
    session = RecordingSession().start()

    session.fail("Failed to start recording. Please check your permissions.")

    assert session.status == SessionStatus.ERROR
    assert session.is_finished
    assert session.to_dict()["status"] == {"Error": "Failed to start recording. Please check your permissions."}
    with pytest.raises(SessionStateError):
        session.stop()


def test_sessions_get_unique_ids() -> None:
    assert RecordingSession().id != RecordingSession().id
