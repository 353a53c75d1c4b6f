"""Dominant colour palette of the sampled frames."""

import io
import logging
from collections import Counter
from collections.abc import Sequence
from typing import TYPE_CHECKING

from PIL import Image

if TYPE_CHECKING:
    from recorder.frame_sampler import Frame

_module_logger = logging.getLogger(__name__)

DEFAULT_PALETTE: tuple[str, ...] = ("#ffffff", "#000000", "#007bff", "#28a745", "#dc3545", "#ffc107")

# Frames are shrunk before quantization
THUMBNAIL_SIZE = (160, 160)


def _frame_colors(image: bytes, size: int) -> Counter:
    """Pixel counts per quantized colour of one frame."""
    with Image.open(io.BytesIO(image)) as img:
        img = img.convert("RGB")
        img.thumbnail(THUMBNAIL_SIZE)
        quantized = img.quantize(colors=size)
        palette = quantized.getpalette() or []
        counts: Counter = Counter()
        for count, index in quantized.getcolors() or []:
            r, g, b = palette[index * 3: index * 3 + 3]
            counts[f"#{r:02x}{g:02x}{b:02x}"] += count
        return counts


def extract_palette(frames: Sequence["Frame"], size: int = 6) -> tuple[str, ...]:
    """Most frequent colours across all frames as hex strings.

    Falls back to `DEFAULT_PALETTE` when no frame can be decoded.
    """
    totals: Counter = Counter()
    for frame in frames:
        try:
            totals.update(_frame_colors(frame.image, size))
        except Exception as e:
            _module_logger.warning(f"Palette skipped frame {frame.index}: {e}")

    if not totals:
        return DEFAULT_PALETTE[:size]
    return tuple(color for color, _ in totals.most_common(size))
