"""Frame sampling from recorded video using ffmpeg."""

import asyncio
import base64
import json
import logging
import re
import shutil
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TYPE_CHECKING

from config import PipelineConfig, SampleMode
from utils.errors import FrameSamplingError

if TYPE_CHECKING:
    from utils.logger import PipelineLogger

# Configure module logger
_module_logger = logging.getLogger(__name__)

# Matches "time=00:01:02.50" in ffmpeg progress output
_FFMPEG_TIME = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


@dataclass(frozen=True)
class Frame:
    """An encoded still image sampled from the recording."""

    image: bytes  # JPEG bytes
    timestamp: float  # Capture offset in seconds
    index: int
    media_type: str = "image/jpeg"

    def to_base64(self) -> str:
        """Base64-encode the image."""
        return base64.b64encode(self.image).decode("ascii")

    def to_data_url(self) -> str:
        """Encode as a data URL."""
        return f"data:{self.media_type};base64,{self.to_base64()}"

    def save(self, output_dir: Path) -> Path:
        """Write the frame as frame_NNNN.jpg into a directory."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"frame_{self.index:04d}.jpg"
        path.write_bytes(self.image)
        return path

    def to_dict(self) -> dict:
        """Describe the frame without its image bytes."""
        return {
            "timestamp": self.timestamp,
            "index": self.index,
            "size": len(self.image),
        }


class VideoDecoder(Protocol):
    """Seekable decoder over one recording.

    Implementations are stateful and must serve one call at a time.
    """

    async def probe_duration(self) -> float: ...

    async def frame_at(self, timestamp: float) -> bytes: ...

    async def extract_audio(self) -> bytes: ...


async def _run(cmd: list[str]) -> tuple[int, bytes, bytes]:
    """Run a command without blocking the event loop."""
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return process.returncode or 0, stdout, stderr


class FFmpegDecoder:
    """`VideoDecoder` backed by the ffmpeg and ffprobe binaries."""

    def __init__(
        self,
        video_path: Path,
        jpeg_quality: int = 3,
        max_dimension: int = 1280,
    ):
        """Initialize the decoder.

        Args:
            video_path: Path to the (transient) video file.
            jpeg_quality: ffmpeg -q:v value for frame encoding (2 = best).
            max_dimension: Longest edge of extracted frames.
        """
        self.video_path = Path(video_path)
        self.jpeg_quality = jpeg_quality
        self.max_dimension = max_dimension
        self._duration: float | None = None
        self._lock = asyncio.Lock()

        # Verify ffmpeg is available
        if not self._check_ffmpeg():
            _module_logger.error("ffmpeg not found on system PATH")
            raise FrameSamplingError(
                "ffmpeg not found. Please install it:\n"
                "  macOS: brew install ffmpeg\n"
                "  Ubuntu: apt-get install ffmpeg\n"
            )

    @classmethod
    def from_config(cls, video_path: Path, config: PipelineConfig) -> "FFmpegDecoder":
        """Build a decoder using the frame settings of a pipeline config."""
        return cls(video_path, jpeg_quality=config.jpeg_quality, max_dimension=config.max_image_dimension)

    def _check_ffmpeg(self) -> bool:
        """Check if ffmpeg and ffprobe are available."""
        return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None

    async def probe_duration(self) -> float:
        """Get the duration of the video in seconds (cached)."""
        if self._duration is not None:
            return self._duration

        async with self._lock:
            cmd = [
                "ffprobe",
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "json",
                str(self.video_path),
            ]
            returncode, stdout, stderr = await _run(cmd)
            if returncode != 0:
                _module_logger.error(f"ffprobe failed with return code {returncode}: {stderr.decode(errors='replace')}")
                raise FrameSamplingError(f"Cannot read video: {stderr.decode(errors='replace').strip()}")

            duration = None
            try:
                raw = json.loads(stdout or b"{}").get("format", {}).get("duration")
                duration = float(raw) if raw not in (None, "N/A") else None
            except (ValueError, TypeError):
                duration = None

            # Browser recordings (WebM from MediaRecorder) often carry no duration header
            if duration is None:
                duration = await self._decode_duration()

        self._duration = duration
        return duration

    async def _decode_duration(self) -> float:
        """Measure duration by decoding the whole stream."""
        cmd = ["ffmpeg", "-nostdin", "-i", str(self.video_path), "-f", "null", "-"]
        returncode, _, stderr = await _run(cmd)
        matches = _FFMPEG_TIME.findall(stderr.decode(errors="replace"))
        if returncode != 0 or not matches:
            raise FrameSamplingError("Cannot determine video duration")
        hours, minutes, seconds = matches[-1]
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    async def frame_at(self, timestamp: float) -> bytes:
        """Seek to a timestamp and return the frame as JPEG bytes."""
        scale = (
            f"scale=w='min(iw,{self.max_dimension})':h='min(ih,{self.max_dimension})'"
            ":force_original_aspect_ratio=decrease"
        )
        cmd = [
            "ffmpeg",
            "-nostdin",
            "-v", "error",
            "-ss", f"{timestamp:.3f}",
            "-i", str(self.video_path),
            "-frames:v", "1",
            "-vf", scale,
            "-q:v", str(self.jpeg_quality),
            "-f", "image2pipe",
            "-vcodec", "mjpeg",
            "pipe:1",
        ]
        async with self._lock:
            returncode, stdout, stderr = await _run(cmd)
        if returncode != 0 or not stdout:
            raise FrameSamplingError(
                f"No frame decoded at {timestamp:.2f}s: {stderr.decode(errors='replace').strip()}"
            )
        return stdout

    async def extract_audio(self) -> bytes:
        """Re-encode the audio track as 16 kHz mono WAV bytes."""
        cmd = [
            "ffmpeg",
            "-nostdin",
            "-v", "error",
            "-i", str(self.video_path),
            "-vn",  # No video
            "-acodec", "pcm_s16le",  # PCM 16-bit
            "-ar", "16000",  # 16kHz sample rate (good for speech)
            "-ac", "1",  # Mono
            "-f", "wav",
            "pipe:1",
        ]
        async with self._lock:
            returncode, stdout, stderr = await _run(cmd)
        if returncode != 0 or not stdout:
            # Fails when the recording has no audio track
            raise RuntimeError(f"Audio extraction failed: {stderr.decode(errors='replace').strip()}")
        return stdout


class FrameSampler:
    """Extracts a small number of representative still frames from a recording."""

    def __init__(
        self,
        config: PipelineConfig,
        logger: "PipelineLogger | None" = None,
    ):
        """Initialize the frame sampler.

        Args:
            config: Pipeline configuration (sample mode, fractions, cadence).
            logger: Optional PipelineLogger for styled output.
        """
        self.config = config
        self.logger = logger

    def sample_times(self, duration: float) -> list[float]:
        """Compute the capture offsets for a video of the given duration.

        Times at or beyond the duration are skipped, never retried. At most
        `config.max_frames` times are returned; on long clips the cadence is
        widened so the samples still span the whole recording.
        """
        if duration <= 0:
            return []

        if self.config.sample_mode == SampleMode.FIXED_CADENCE:
            cadence = max(self.config.cadence_seconds, duration / self.config.max_frames)
            count = int(duration / cadence) + 1
            candidates = [i * cadence for i in range(count)]
        else:
            candidates = [fraction * duration for fraction in self.config.key_frame_fractions]

        times: list[float] = []
        for t in candidates:
            t = round(t, 3)
            if t >= duration or t in times:
                continue
            times.append(t)
        return times[: self.config.max_frames]

    async def iter_frames(self, decoder: VideoDecoder) -> AsyncIterator[Frame]:
        """Lazily yield frames in chronological order, one awaited seek at a time.

        Each call starts a fresh pass over the sample points.

        Raises:
            FrameSamplingError: If the video cannot be decoded at all.
        """
        duration = await decoder.probe_duration()
        times = self.sample_times(duration)
        if not times:
            raise FrameSamplingError(f"Video too short to sample (duration {duration:.2f}s)")

        index = 0
        for t in times:
            try:
                image = await decoder.frame_at(t)
            except FrameSamplingError as e:
                _module_logger.warning(f"Skipping frame at {t:.2f}s: {e.reason}")
                continue
            yield Frame(image=image, timestamp=t, index=index)
            index += 1

    async def sample(self, decoder: VideoDecoder) -> list[Frame]:
        """Collect the sampled frames.

        Raises:
            FrameSamplingError: If no frame could be decoded.
        """
        if self.logger:
            self.logger.step(f"Sampling frames ({self.config.sample_mode})...")

        frames = [frame async for frame in self.iter_frames(decoder)]
        if not frames:
            raise FrameSamplingError("Could not decode any frame from the recording")

        if self.logger:
            self.logger.info(f"Sampled {len(frames)} frames")
        return frames
