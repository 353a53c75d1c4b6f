from __future__ import annotations

from pathlib import Path

import pytest

from recorder.media import CapturedMedia, secure_delete


def test_secure_delete_wipes_and_removes(tmp_path: Path) -> None:
    path = tmp_path / "clip.webm"
    path.write_bytes(b"secret video")

    secure_delete(path)

    assert not path.exists()


def test_secure_delete_ignores_missing_files(tmp_path: Path) -> None:
    secure_delete(tmp_path / "missing.webm")
    secure_delete(None)


def test_release_drops_bytes_and_temp_file() -> None:
    media = CapturedMedia(b"video-bytes", suffix=".webm")
    path = media.materialize()

    assert path.read_bytes() == b"video-bytes"
    assert path.suffix == ".webm"

    media.release()

    assert media.released
    assert not path.exists()
    assert media.path is None
    with pytest.raises(RuntimeError):
        _ = media.data
    # Idempotent
    media.release()


def test_context_manager_releases() -> None:
    with CapturedMedia(b"video-bytes") as media:
        path = media.materialize()
        assert media.materialize() == path

    assert media.released
    assert not path.exists()
    assert "released" in repr(media)


def test_empty_recording_is_rejected() -> None:
    with pytest.raises(ValueError):
        CapturedMedia(b"")
