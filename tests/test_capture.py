from __future__ import annotations

import io
import subprocess
from pathlib import Path

import pytest

from recorder import capture
from recorder.capture import (
    DEFAULT_CONSTRAINT_SETS,
    CaptureConstraints,
    CaptureNegotiator,
    FFmpegCaptureBackend,
    FFmpegCaptureStream,
)
from utils.errors import CaptureError

from conftest import FakeBackend


def test_first_constraint_set_wins() -> None:
    backend = FakeBackend()

    capture = CaptureNegotiator(backend).acquire()

    assert backend.attempts == ["screen+audio"]
    assert capture.constraints.name == "screen+audio"
    assert capture.has_audio is True


def test_falls_back_in_priority_order() -> None:
    backend = FakeBackend(reject={"screen+audio", "screen"})

    capture = CaptureNegotiator(backend).acquire()

    assert backend.attempts == ["screen+audio", "screen", "minimal"]
    assert capture.constraints.name == "minimal"
    assert capture.has_audio is False


def test_all_sets_failing_raises_capture_error() -> None:
    backend = FakeBackend(reject={c.name for c in DEFAULT_CONSTRAINT_SETS})

    with pytest.raises(CaptureError) as excinfo:
        CaptureNegotiator(backend).acquire()

    assert "permissions" in excinfo.value.reason
    assert len(excinfo.value.attempts) == 3
    assert excinfo.value.attempts[0] == "screen+audio: screen+audio denied"


def test_without_audio_skips_audio_sets() -> None:
    backend = FakeBackend()

    CaptureNegotiator(backend).acquire(with_audio=False)

    assert backend.attempts == ["screen"]


def test_negotiator_needs_constraint_sets() -> None:
    with pytest.raises(ValueError):
        CaptureNegotiator(FakeBackend(), constraint_sets=())


def test_linux_command_includes_audio_input_only_when_requested() -> None:
    backend = FFmpegCaptureBackend(screen_device=":1", audio_device="mic")
    backend.platform = "linux"
    output = Path("/tmp/out.mkv")

    with_audio = backend.build_command(DEFAULT_CONSTRAINT_SETS[0], output)
    without_audio = backend.build_command(CaptureConstraints("minimal", audio=False), output)

    assert with_audio[-1] == str(output)
    assert ["-f", "x11grab"] == with_audio[with_audio.index("x11grab") - 1: with_audio.index("x11grab") + 1]
    assert "-video_size" in with_audio and "1920x1080" in with_audio
    assert "pulse" in with_audio and "-c:a" in with_audio
    assert "pulse" not in without_audio and "-video_size" not in without_audio
    assert "-framerate" not in without_audio


def test_macos_command_uses_avfoundation_device_pair() -> None:
    backend = FFmpegCaptureBackend(screen_device="1", audio_device="0")
    backend.platform = "darwin"

    cmd = backend.build_command(CaptureConstraints("screen", audio=False), Path("out.mkv"))

    assert cmd[cmd.index("-i") + 1] == "1:none"


class HungProcess:
    """ffmpeg that ignores SIGINT, then exits on its own before SIGKILL lands."""

    pid = 4242

    def __init__(self):
        self.waits: list[float | None] = []

    def poll(self) -> int | None:
        return None

    def wait(self, timeout: float | None = None) -> int:
        self.waits.append(timeout)
        if timeout is not None:
            raise subprocess.TimeoutExpired("ffmpeg", timeout)
        return 0


def test_stop_wipes_recording_when_process_exits_before_kill(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    output = tmp_path / "rec.mkv"
    output.write_bytes(b"screen pixels")
    lookups = iter([100])

    def getpgid(pid: int) -> int:
        for group in lookups:
            return group
        raise ProcessLookupError(pid)

    monkeypatch.setattr(capture.os, "getpgid", getpgid)
    monkeypatch.setattr(capture.os, "killpg", lambda group, sig: None)
    stderr_log = io.BytesIO()
    process = HungProcess()
    stream = FFmpegCaptureStream(process, output, stderr_log)

    assert stream.stop() == b"screen pixels"
    assert not output.exists()
    assert stderr_log.closed
    assert process.waits == [5.0, None]
    assert stream.stop() == b""


def test_acquire_sends_ffmpeg_stderr_to_a_file(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    launched: dict = {}

    class Exited:
        pid = 1

        def __init__(self, cmd, stdout, stderr, preexec_fn):  # noqa: ANN001
            launched["stderr"] = stderr
            stderr.write(b"Permission denied")

        def poll(self) -> int:
            return 1

    monkeypatch.setattr(capture.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    monkeypatch.setattr(capture.subprocess, "Popen", Exited)
    monkeypatch.setattr(capture.tempfile, "tempdir", str(tmp_path))
    monkeypatch.setattr(FFmpegCaptureBackend, "STARTUP_GRACE", 0.0)

    with pytest.raises(PermissionError, match="Permission denied"):
        FFmpegCaptureBackend().acquire(CaptureConstraints("minimal", audio=False))

    assert launched["stderr"] is not subprocess.PIPE
    assert launched["stderr"].closed
    assert list(tmp_path.iterdir()) == []
