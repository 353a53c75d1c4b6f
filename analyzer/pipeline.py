"""Recording pipeline: raw video in, ProcessedMetadata out."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from config import CancellationPolicy, PipelineConfig
from prompts.solution_prompts import build_agent_instructions
from recorder.frame_sampler import FFmpegDecoder, Frame, FrameSampler, VideoDecoder
from recorder.media import CapturedMedia
from recorder.session import RecordingSession, SessionStatus
from recorder.transcriber import AudioTranscriber
from utils.errors import (
    CaptureError,
    PipelineBusyError,
    PipelineError,
    ProcessingCancelledError,
)
from utils.providers import ProviderClient
from utils.tracking import CostTracker, Timer

from .assembler import MetadataAssembler
from .classifier import classify
from .palette import extract_palette
from .schema import ProcessedMetadata, ProgressCallback
from .vision import OcrEngine, VisualAnalyzer

if TYPE_CHECKING:
    from recorder.capture import CaptureNegotiator
    from utils.logger import PipelineLogger

# Configure module logger
_module_logger = logging.getLogger(__name__)

DecoderFactory = Callable[[Path, PipelineConfig], VideoDecoder]


@dataclass(frozen=True)
class AgentExport:
    """Frames, transcript and instructions for an external coding agent."""

    frames: tuple[Frame, ...]
    transcript: str
    instructions: str

    def save(self, output_dir: Path) -> Path:
        """Write frames as JPEGs plus instructions.md and transcript.txt."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        for frame in self.frames:
            frame.save(output_dir)
        (output_dir / "instructions.md").write_text(self.instructions, encoding="utf-8")
        (output_dir / "transcript.txt").write_text(self.transcript, encoding="utf-8")
        return output_dir

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary with base64 data URLs for frames."""
        return {
            "frames": [frame.to_data_url() for frame in self.frames],
            "transcript": self.transcript,
            "instructions": self.instructions,
        }


class _ProgressReporter:
    """Clamps progress to [0, 1] and never lets it go backwards."""

    def __init__(self, callback: ProgressCallback | None):
        self.callback = callback
        self.value = 0.0

    def __call__(self, fraction: float) -> None:
        self.value = min(1.0, max(self.value, fraction))
        if self.callback:
            self.callback(self.value)


class RecordingPipeline:
    """Turns one screen recording into structured metadata.

    Stages run strictly in order: frame sampling, visual analysis,
    transcription, classification, assembly. The recording is released
    when the run ends, whether it succeeded or failed. One run at a time:
    a second call while a run is in flight raises `PipelineBusyError`.

    Example:
        >>> pipeline = RecordingPipeline(PipelineConfig.from_env())
        >>> metadata = asyncio.run(pipeline.process(Path("bug.webm").read_bytes()))
        >>> metadata.user_context.request_type
        'bug_fix'
    """

    # Progress reached at the end of each stage
    PROGRESS_LOADED = 0.1
    PROGRESS_SAMPLED = 0.2
    PROGRESS_ANALYZED = 0.6
    PROGRESS_TRANSCRIBED = 0.8
    PROGRESS_CLASSIFIED = 0.9

    def __init__(
        self,
        config: PipelineConfig,
        provider: ProviderClient | None = None,
        decoder_factory: DecoderFactory | None = None,
        ocr_engine: OcrEngine | None = None,
        logger: "PipelineLogger | None" = None,
        cost_tracker: CostTracker | None = None,
        verbose: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration, fixed for the lifetime of the pipeline.
            provider: Provider client; built from `config` if None.
            decoder_factory: Builds a decoder for a materialized recording (ffmpeg by default).
            ocr_engine: OCR engine for the local vision strategy.
            logger: Optional PipelineLogger for styled output.
            cost_tracker: Optional CostTracker shared with the provider client.
            verbose: Whether to show tqdm progress bars.
        """
        self.config = config
        self.logger = logger
        self.provider = provider or ProviderClient(config, cost_tracker=cost_tracker, logger=logger)
        self.decoder_factory = decoder_factory or FFmpegDecoder.from_config

        self.sampler = FrameSampler(config, logger=logger)
        self.vision = VisualAnalyzer(
            config, provider=self.provider, ocr_engine=ocr_engine, logger=logger, verbose=verbose
        )
        self.transcriber = AudioTranscriber(self.provider, logger=logger)
        self.assembler = MetadataAssembler(logger=logger)

        self.session: RecordingSession | None = None
        self._busy = False

    @property
    def busy(self) -> bool:
        """Whether a run is in flight."""
        return self._busy

    def _log_step(self, message: str) -> None:
        """Log step message using logger if available."""
        if self.logger:
            self.logger.step(message)

    def _log_success(self, message: str) -> None:
        """Log success message using logger if available."""
        if self.logger:
            self.logger.success(message)

    def _log_warning(self, message: str) -> None:
        """Log warning message using logger if available."""
        _module_logger.warning(message)
        if self.logger:
            self.logger.warning(message)

    @contextmanager
    def _exclusive(self):
        """Reject re-entrant runs."""
        if self._busy:
            raise PipelineBusyError("A recording is already being processed")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # =========================================================================
    # Entry points
    # =========================================================================

    async def process(
        self,
        raw_video: bytes,
        on_progress: ProgressCallback | None = None,
        suffix: str = ".webm",
    ) -> ProcessedMetadata:
        """Process a finished recording into metadata.

        Args:
            raw_video: Encoded video container bytes.
            on_progress: Called with a non-decreasing fraction; reaches 1.0 on success.
            suffix: Container extension hint for the decoder.

        Raises:
            PipelineBusyError: If another run is in flight.
            PipelineError: If the recording cannot be decoded.
        """
        with self._exclusive():
            return await self._process(raw_video, on_progress, suffix, RecordingSession())

    async def export_for_external_agent(
        self,
        raw_video: bytes,
        on_progress: ProgressCallback | None = None,
        suffix: str = ".webm",
    ) -> AgentExport:
        """Package frames, transcript and instructions instead of full metadata.

        Raises:
            PipelineBusyError: If another run is in flight.
            PipelineError: If the recording cannot be decoded.
        """
        with self._exclusive():
            report = _ProgressReporter(on_progress)
            media = self._take(raw_video, suffix)
            try:
                decoder = self.decoder_factory(media.materialize(), self.config)
                report(self.PROGRESS_LOADED)

                frames = (await self.sampler.sample(decoder))[: self.config.max_frames]
                report(0.4)

                transcript = await self.transcriber.transcribe(decoder)
                report(self.PROGRESS_TRANSCRIBED)
            except PipelineError:
                raise
            except Exception as e:
                raise PipelineError(f"Export failed: {e}") from e
            finally:
                self.assembler.release(media)

            bundle = AgentExport(
                frames=tuple(frames),
                transcript=transcript.text,
                instructions=build_agent_instructions(frames, transcript.spoken_text),
            )
            report(1.0)
            self._log_success(f"Exported {len(frames)} frames for external agent")
            return bundle

    async def record_and_process(
        self,
        negotiator: "CaptureNegotiator",
        stop_event: asyncio.Event,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
        with_audio: bool = True,
        suffix: str = ".mkv",
    ) -> ProcessedMetadata:
        """Record until `stop_event` is set, then process the recording.

        Setting `cancel_event` instead ends the recording as a cancellation:
        under `CancellationPolicy.DISCARD` the partial recording is dropped
        and `ProcessingCancelledError` is raised; under `DEGRADE` whatever
        was captured is processed.

        Raises:
            PipelineBusyError: If another run is in flight.
            CaptureError: If no capture constraint set could be acquired.
            ProcessingCancelledError: If cancelled under the discard policy.
        """
        with self._exclusive():
            session = RecordingSession()
            self.session = session
            try:
                capture = negotiator.acquire(with_audio=with_audio)
            except CaptureError as e:
                session.fail(e.reason)
                raise

            session.start()
            self._log_step(f"Recording ({capture.constraints.name}), waiting for stop signal...")
            try:
                await self._wait_for_stop(stop_event, cancel_event)
            finally:
                try:
                    raw_video = await asyncio.to_thread(capture.stream.stop)
                except Exception as e:
                    session.fail(f"Failed to stop recording: {e}")
                    raise CaptureError(f"Failed to stop recording: {e}") from e

            if cancel_event is not None and cancel_event.is_set():
                if self.config.cancellation_policy == CancellationPolicy.DISCARD or not raw_video:
                    raw_video = b""
                    session.fail("Recording cancelled")
                    raise ProcessingCancelledError("Recording cancelled; partial recording discarded")
                self._log_warning("Recording cancelled; processing the partial recording")

            if not raw_video:
                session.fail("Recording produced no data")
                raise CaptureError("Recording produced no data")

            return await self._process(raw_video, on_progress, suffix, session)

    # =========================================================================
    # Stages
    # =========================================================================

    async def _wait_for_stop(self, stop_event: asyncio.Event, cancel_event: asyncio.Event | None) -> None:
        """Suspend until either signal is set."""
        waiters = [asyncio.create_task(stop_event.wait())]
        if cancel_event is not None:
            waiters.append(asyncio.create_task(cancel_event.wait()))
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    def _take(self, raw_video: bytes, suffix: str) -> CapturedMedia:
        """Take ownership of the recording bytes."""
        try:
            return CapturedMedia(raw_video, suffix=suffix)
        except ValueError as e:
            raise PipelineError(str(e)) from e

    async def _process(
        self,
        raw_video: bytes,
        on_progress: ProgressCallback | None,
        suffix: str,
        session: RecordingSession,
    ) -> ProcessedMetadata:
        """Run every stage; the session ends Completed or Error(reason)."""
        self.session = session
        report = _ProgressReporter(on_progress)
        timer = Timer("process")
        timer.start()
        captured_at = datetime.now(timezone.utc)

        if session.status != SessionStatus.PROCESSING:
            session.stop()

        try:
            media = self._take(raw_video, suffix)
        except PipelineError as e:
            session.fail(e.reason)
            raise
        del raw_video

        try:
            metadata = await self._run_stages(media, report, timer, captured_at)
        except PipelineError as e:
            session.fail(e.reason)
            raise
        except Exception as e:
            _module_logger.exception("Pipeline failed")
            session.fail(str(e))
            raise PipelineError(f"Processing failed: {e}") from e
        finally:
            self.assembler.release(media)

        session.complete(metadata)
        report(1.0)
        self._log_success(f"Processed recording in {timer.elapsed_str}")
        return metadata

    async def _run_stages(
        self,
        media: CapturedMedia,
        report: _ProgressReporter,
        timer: Timer,
        captured_at: datetime,
    ) -> ProcessedMetadata:
        path = media.materialize()
        decoder = self.decoder_factory(path, self.config)
        report(self.PROGRESS_LOADED)

        frames = await self.sampler.sample(decoder)
        media_duration = await decoder.probe_duration()
        report(self.PROGRESS_SAMPLED)

        span = self.PROGRESS_ANALYZED - self.PROGRESS_SAMPLED
        observations = await self.vision.analyze(
            frames,
            on_progress=lambda fraction: report(self.PROGRESS_SAMPLED + span * fraction),
        )
        analyzed = frames[: len(observations)]
        report(self.PROGRESS_ANALYZED)

        transcript = await self.transcriber.transcribe(decoder)
        report(self.PROGRESS_TRANSCRIBED)

        self._log_step("Classifying context...")
        classification = classify(
            transcript.spoken_text,
            observations,
            [frame.timestamp for frame in analyzed],
        )
        palette = extract_palette(analyzed, self.config.palette_size)
        report(self.PROGRESS_CLASSIFIED)

        return self.assembler.assemble(
            transcript=transcript,
            observations=observations,
            classification=classification,
            color_palette=palette,
            processing_duration=timer.stop(),
            media_duration=media_duration,
            captured_at=captured_at,
        )
