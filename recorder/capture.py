"""Screen + audio capture with fallback across constraint sets."""

import logging
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Protocol, TYPE_CHECKING

from utils.errors import CaptureError
from .media import secure_delete

if TYPE_CHECKING:
    from utils.logger import PipelineLogger

_module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureConstraints:
    """One set of capture constraints, tried as a unit."""

    name: str
    audio: bool
    width: int | None = None  # Resolution hint
    height: int | None = None
    frame_rate: int | None = None


# Strict priority order: richest first, minimal last
DEFAULT_CONSTRAINT_SETS: tuple[CaptureConstraints, ...] = (
    CaptureConstraints("screen+audio", audio=True, width=1920, height=1080, frame_rate=30),
    CaptureConstraints("screen", audio=False, width=1920, height=1080, frame_rate=30),
    CaptureConstraints("minimal", audio=False),
)


class MediaStream(Protocol):
    """A live capture. `stop()` releases every track and returns the recording."""

    @property
    def active(self) -> bool: ...

    def stop(self) -> bytes: ...


class CaptureBackend(Protocol):
    """Acquires a live stream for a constraint set or raises."""

    def acquire(self, constraints: CaptureConstraints) -> MediaStream: ...


class FFmpegCaptureStream:
    """A running ffmpeg screen recording writing into a private temp file."""

    def __init__(self, process: subprocess.Popen, output_path: Path, stderr_log: IO[bytes] | None = None):
        self._process = process
        self.output_path = output_path
        self._stderr_log = stderr_log
        self._start_time = time.time()
        self._running = True

    @property
    def active(self) -> bool:
        """Check if recording is in progress."""
        return self._running and self._process.poll() is None

    @property
    def duration(self) -> float:
        """Get current recording duration in seconds."""
        if not self._running:
            return 0.0
        return time.time() - self._start_time

    def stop(self) -> bytes:
        """Stop recording, read the recorded bytes and wipe the temp file.

        Safe to call more than once; later calls return b"".
        """
        if not self._running:
            return b""
        self._running = False

        try:
            self._terminate()
            return self.output_path.read_bytes() if self.output_path.exists() else b""
        finally:
            secure_delete(self.output_path)
            if self._stderr_log is not None:
                self._stderr_log.close()

    def _signal(self, sig: signal.Signals) -> None:
        try:
            os.killpg(os.getpgid(self._process.pid), sig)
        except ProcessLookupError:
            # Process already terminated
            pass

    def _terminate(self) -> None:
        """SIGINT so ffmpeg finalizes the file, SIGKILL if it hangs."""
        self._signal(signal.SIGINT)
        try:
            self._process.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            self._signal(signal.SIGKILL)
            self._process.wait()


class FFmpegCaptureBackend:
    """Captures the screen (and optionally the microphone) with ffmpeg.

    Uses avfoundation on macOS and x11grab + PulseAudio on Linux.
    """

    # Seconds to wait for ffmpeg to fail fast on denied permissions
    STARTUP_GRACE = 0.5

    def __init__(
        self,
        screen_device: str | None = None,
        audio_device: str | None = None,
    ):
        """Initialize the backend.

        Args:
            screen_device: avfoundation screen index / X11 display. Platform default if None.
            audio_device: avfoundation audio index / pulse source. Platform default if None.
        """
        self.platform = sys.platform
        if self.platform == "darwin":
            self.screen_device = screen_device or "1"
            self.audio_device = audio_device or "0"
        else:
            self.screen_device = screen_device or os.getenv("DISPLAY", ":0.0")
            self.audio_device = audio_device or "default"

    def build_command(self, constraints: CaptureConstraints, output_path: Path) -> list[str]:
        """Build the ffmpeg command line for a constraint set."""
        cmd = ["ffmpeg", "-nostdin", "-v", "error", "-y"]
        rate = ["-framerate", str(constraints.frame_rate)] if constraints.frame_rate else []

        if self.platform == "darwin":
            device = f"{self.screen_device}:{self.audio_device}" if constraints.audio else f"{self.screen_device}:none"
            cmd += ["-f", "avfoundation", "-capture_cursor", "1", *rate, "-i", device]
            if constraints.width and constraints.height:
                cmd += ["-vf", f"scale={constraints.width}:{constraints.height}:force_original_aspect_ratio=decrease"]
        else:
            size = []
            if constraints.width and constraints.height:
                size = ["-video_size", f"{constraints.width}x{constraints.height}"]
            cmd += ["-f", "x11grab", *rate, *size, "-i", self.screen_device]
            if constraints.audio:
                cmd += ["-f", "pulse", "-i", self.audio_device]

        cmd += ["-c:v", "libx264", "-preset", "ultrafast", "-pix_fmt", "yuv420p"]
        if constraints.audio:
            cmd += ["-c:a", "aac"]
        cmd.append(str(output_path))
        return cmd

    def acquire(self, constraints: CaptureConstraints) -> FFmpegCaptureStream:
        """Start recording with the given constraints.

        Raises:
            FileNotFoundError: If ffmpeg is not installed.
            PermissionError: If ffmpeg exits immediately (permission denied / device missing).
        """
        if shutil.which("ffmpeg") is None:
            raise FileNotFoundError("ffmpeg not found on system PATH")

        # Matroska stays readable when ffmpeg is interrupted
        fd, name = tempfile.mkstemp(prefix="screencontext_capture_", suffix=".mkv")
        os.close(fd)
        output_path = Path(name)

        # ffmpeg logs to a temp file; an undrained pipe would stall a long recording
        stderr_log = tempfile.TemporaryFile()
        process = subprocess.Popen(
            self.build_command(constraints, output_path),
            stdout=subprocess.DEVNULL,
            stderr=stderr_log,
            preexec_fn=os.setpgrp,  # Create new process group
        )

        time.sleep(self.STARTUP_GRACE)
        if process.poll() is not None:
            stderr_log.seek(0)
            stderr = stderr_log.read().decode(errors="replace").strip()
            stderr_log.close()
            secure_delete(output_path)
            raise PermissionError(f"capture rejected ({constraints.name}): {stderr or 'exited early'}")

        return FFmpegCaptureStream(process, output_path, stderr_log)


@dataclass
class NegotiatedCapture:
    """A live stream together with the constraint set that produced it."""

    stream: MediaStream
    constraints: CaptureConstraints

    @property
    def has_audio(self) -> bool:
        return self.constraints.audio


class CaptureNegotiator:
    """Acquires a screen (+ audio) stream, falling back across constraint sets."""

    def __init__(
        self,
        backend: CaptureBackend,
        constraint_sets: tuple[CaptureConstraints, ...] = DEFAULT_CONSTRAINT_SETS,
        logger: "PipelineLogger | None" = None,
    ):
        """Initialize the negotiator.

        Args:
            backend: Backend that acquires streams.
            constraint_sets: Constraint sets in strict priority order.
            logger: Optional PipelineLogger for styled output.
        """
        if not constraint_sets:
            raise ValueError("At least one constraint set is required")
        self.backend = backend
        self.constraint_sets = constraint_sets
        self.logger = logger

    def acquire(self, with_audio: bool = True) -> NegotiatedCapture:
        """Return the first stream any constraint set yields.

        Args:
            with_audio: If False, constraint sets requesting audio are skipped.

        Raises:
            CaptureError: If every constraint set fails.
        """
        attempts: list[str] = []
        candidates = [c for c in self.constraint_sets if with_audio or not c.audio]

        for constraints in candidates:
            try:
                stream = self.backend.acquire(constraints)
            except Exception as e:
                _module_logger.warning(f"Capture with '{constraints.name}' failed, trying next option: {e}")
                attempts.append(f"{constraints.name}: {e}")
                continue

            if self.logger:
                self.logger.success(f"Capturing screen ({constraints.name})")
            return NegotiatedCapture(stream=stream, constraints=constraints)

        _module_logger.error(f"All capture options failed: {attempts}")
        raise CaptureError("Failed to start recording. Please check your permissions.", attempts)
