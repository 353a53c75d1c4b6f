"""Visual analysis: turn sampled frames into text observations."""

import asyncio
import io
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TYPE_CHECKING

from tqdm import tqdm

from config import PipelineConfig, VisionStrategy
from prompts.solution_prompts import VISION_PROMPT
from utils.errors import ConfigError

if TYPE_CHECKING:
    from recorder.frame_sampler import Frame
    from utils.logger import PipelineLogger
    from utils.providers import ProviderClient
    from .schema import ProgressCallback

# Configure module logger
_module_logger = logging.getLogger(__name__)

# "12*7", "3 + 4": a candidate containing this wins over longer text
NUMERIC_EXPRESSION = re.compile(r"\d\s*[+\-*/=×÷]\s*\d")


@dataclass(frozen=True)
class OcrPass:
    """One recognition configuration tried on every frame."""

    name: str
    allowlist: str | None = None  # Restrict recognized characters
    paragraph: bool = False  # Merge boxes into lines of text


OCR_PASSES: tuple[OcrPass, ...] = (
    OcrPass("default"),
    OcrPass("paragraph", paragraph=True),
    OcrPass("math", allowlist="0123456789+-*/=.,()x "),
)


class OcrEngine(Protocol):
    """Local text recognition. Stateful: one call at a time."""

    def read_text(self, image: bytes, passes: Sequence[OcrPass]) -> list[str]: ...


class EasyOcrEngine:
    """`OcrEngine` backed by EasyOCR (install the `ocr` extra)."""

    def __init__(self, languages: list[str] | None = None, gpu: bool = False):
        """Initialize the engine. The EasyOCR model is loaded on first use.

        Args:
            languages: EasyOCR language codes (default: ['en']).
            gpu: Run recognition on the GPU.
        """
        self.languages = languages or ["en"]
        self.gpu = gpu
        self._reader: Any = None

    def _get_reader(self) -> Any:
        if self._reader is None:
            import easyocr

            _module_logger.info(f"Loading EasyOCR model ({', '.join(self.languages)})")
            self._reader = easyocr.Reader(self.languages, gpu=self.gpu)
        return self._reader

    def read_text(self, image: bytes, passes: Sequence[OcrPass]) -> list[str]:
        """Run every pass over one encoded image and return one candidate per pass."""
        import numpy as np
        from PIL import Image

        reader = self._get_reader()
        with Image.open(io.BytesIO(image)) as img:
            pixels = np.array(img.convert("RGB"))

        candidates = []
        for ocr_pass in passes:
            results = reader.readtext(
                pixels,
                detail=0,
                allowlist=ocr_pass.allowlist,
                paragraph=ocr_pass.paragraph,
            )
            candidates.append(" ".join(text.strip() for text in results if text.strip()))
        return candidates


def select_best_candidate(candidates: Sequence[str]) -> str:
    """Prefer text holding a numeric expression, else the longest non-empty text."""
    cleaned = [c.strip() for c in candidates if c and c.strip()]
    for candidate in cleaned:
        if NUMERIC_EXPRESSION.search(candidate):
            return candidate
    return max(cleaned, key=len, default="")


class VisualAnalyzer:
    """Produces one text observation per frame with a single strategy per batch.

    A frame that fails to analyze yields "" instead of aborting the batch,
    so the output always lines up 1:1 with the (capped) input frames.
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: "ProviderClient | None" = None,
        ocr_engine: OcrEngine | None = None,
        logger: "PipelineLogger | None" = None,
        verbose: bool = False,
    ):
        """Initialize the analyzer.

        Args:
            config: Pipeline configuration (strategy, frame cap).
            provider: Provider client, required for the remote strategy.
            ocr_engine: OCR engine for the local strategy (EasyOCR if None).
            logger: Optional PipelineLogger for styled output.
            verbose: Whether to show a tqdm progress bar.
        """
        self.config = config
        self.strategy = config.vision_strategy
        self.provider = provider
        self.logger = logger
        self.verbose = verbose

        if self.strategy == VisionStrategy.REMOTE and provider is None:
            raise ConfigError("Remote vision strategy requires a provider client")
        self.ocr_engine = ocr_engine
        if self.strategy == VisionStrategy.OCR and self.ocr_engine is None:
            self.ocr_engine = EasyOcrEngine()

    def _log_step(self, message: str) -> None:
        """Log step message using logger if available."""
        if self.logger:
            self.logger.step(message)

    def _log_info(self, message: str) -> None:
        """Log info message using logger if available."""
        if self.logger:
            self.logger.info(message)

    async def _read_ocr(self, frame: "Frame") -> str:
        candidates = await asyncio.to_thread(self.ocr_engine.read_text, frame.image, OCR_PASSES)
        return select_best_candidate(candidates)

    async def _read_remote(self, frame: "Frame") -> str:
        return await asyncio.to_thread(
            self.provider.describe_frame, frame.image, VISION_PROMPT, frame.media_type
        )

    async def analyze(
        self,
        frames: Sequence["Frame"],
        on_progress: "ProgressCallback | None" = None,
    ) -> list[str]:
        """Analyze frames one at a time, in order.

        Args:
            frames: Sampled frames; only the first `config.max_frames` are used.
            on_progress: Called with the fraction of frames done after each frame.

        Returns:
            Observations aligned with the analyzed frames ("" for failed frames).
        """
        batch = list(frames[: self.config.max_frames])
        if len(frames) > len(batch):
            self._log_info(f"Analyzing first {len(batch)} of {len(frames)} frames")
        self._log_step(f"Reading frames ({self.strategy})...")

        read = self._read_ocr if self.strategy == VisionStrategy.OCR else self._read_remote

        observations: list[str] = []
        frame_iterator = tqdm(batch, desc="Reading frames", unit="frame", disable=not self.verbose)
        for position, frame in enumerate(frame_iterator, start=1):
            try:
                text = await read(frame)
            except Exception as e:
                _module_logger.warning(f"Frame {frame.index} at {frame.timestamp:.2f}s failed: {e}")
                text = ""
            observations.append((text or "").strip())
            if self.logger:
                self.logger.frame(frame.index, frame.timestamp, observations[-1])
            frame_iterator.set_postfix({"chars": len(observations[-1])})
            if on_progress:
                on_progress(position / len(batch))

        readable = sum(1 for o in observations if o)
        self._log_info(f"Read text from {readable}/{len(batch)} frames")
        return observations
