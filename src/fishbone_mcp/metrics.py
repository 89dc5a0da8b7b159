"""
Text metrics for cause labels.

The layout engine never renders text.  It asks a ``TextMetrics`` adapter for
the rendered pixel width of a cause label and, when the adapter has no
answer, falls back to a character-count estimate:

    heuristic_width(text) = clamp(len(text) * 7 + 16, 120, 300)

Label height is derived from the width: text wraps at roughly
``width / 7`` characters per line and the label shows at most three lines
(14px each) plus 12px of padding.  Longer texts are clamped and ellipsized
by the renderer.

Adapters
--------
- ``StaticTextMetrics``  — a fixed id → width table (tests, replays).
- ``PillowTextMetrics``  — measures with the same fonts the renderer draws
  with, so measured widths match the raster output.

Measurements are kept in a ``MeasurementCache`` keyed by cause id.  The cache
is rebuilt wholesale on every measuring pass; a cause whose measurement is
missing simply uses the heuristic.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterable, Optional, Protocol

from PIL import ImageFont

from .models import Cause

logger = logging.getLogger(__name__)


APPROX_CHAR_WIDTH = 7
LABEL_TEXT_PADDING = 16
LABEL_MIN_WIDTH = 120
LABEL_MAX_WIDTH = 300

LINE_HEIGHT = 14
LABEL_VERTICAL_PADDING = 12
COLLAPSED_LINES = 3
MIN_CHARS_PER_LINE = 10

# Label box chrome around the text: 8px horizontal padding each side plus a
# 4px priority strip and a 1px border.
LABEL_CHROME_WIDTH = 8 * 2 + 4 + 1
LABEL_FONT_SIZE = 10


class MeasurementUnavailable(LookupError):
    """Raised by an adapter that cannot measure a label right now."""


class TextMetrics(Protocol):
    """Boundary contract with whatever can measure rendered labels."""

    def measure(self, cause_id: str, text: str) -> Optional[float]:
        """Return the rendered width of a cause label, or None if unknown."""
        ...


# --- Heuristics ---

def heuristic_width(text: str) -> float:
    """Estimate a label width from its character count."""
    estimate = len(text) * APPROX_CHAR_WIDTH + LABEL_TEXT_PADDING
    return float(min(max(estimate, LABEL_MIN_WIDTH), LABEL_MAX_WIDTH))


def chars_per_line(width: float) -> int:
    return max(MIN_CHARS_PER_LINE, math.floor(width / APPROX_CHAR_WIDTH))


def total_lines(text: str, width: float) -> int:
    return max(1, math.ceil(len(text) / chars_per_line(width)))


def needs_clamp(text: str, width: float) -> bool:
    """True when the label text wraps past the visible line count."""
    return total_lines(text, width) > COLLAPSED_LINES


def label_height(text: str, width: float) -> float:
    """Height of a label box of ``width`` holding ``text``."""
    lines = min(total_lines(text, width), COLLAPSED_LINES)
    return float(lines * LINE_HEIGHT + LABEL_VERTICAL_PADDING)


# --- Cache ---

class MeasurementCache:
    """Measured label widths keyed by cause id.

    Widths are capped at ``LABEL_MAX_WIDTH``; zero or negative readings are
    discarded.  ``width_for`` answers from the cache or the heuristic.
    """

    def __init__(self, widths: Optional[dict[str, float]] = None):
        self._widths: dict[str, float] = {}
        for cause_id, width in (widths or {}).items():
            self.set(cause_id, width)

    def __contains__(self, cause_id: str) -> bool:
        return cause_id in self._widths

    def __len__(self) -> int:
        return len(self._widths)

    def get(self, cause_id: str) -> Optional[float]:
        return self._widths.get(cause_id)

    @staticmethod
    def _usable(width: Optional[float]) -> Optional[float]:
        if width is None or not math.isfinite(width) or width <= 0:
            return None
        return float(min(math.ceil(width), LABEL_MAX_WIDTH))

    def set(self, cause_id: str, width: Optional[float]) -> bool:
        """Store a reading; returns False if it was rejected."""
        usable = self._usable(width)
        if usable is None:
            return False
        self._widths[cause_id] = usable
        return True

    def width_for(self, cause: Cause) -> float:
        measured = self._widths.get(cause.id)
        if measured is not None:
            return measured
        return heuristic_width(cause.text)

    def as_dict(self) -> dict[str, float]:
        return dict(self._widths)

    def rebuild(self, causes: Iterable[Cause], metrics: TextMetrics) -> int:
        """Replace the cache with fresh readings from ``metrics``.

        Causes the adapter cannot measure are left out and fall back to the
        heuristic.  Returns the number of labels measured.  Any other error
        from the adapter propagates and leaves the cache untouched.
        """
        widths: dict[str, float] = {}
        for cause in causes:
            try:
                width = metrics.measure(cause.id, cause.text)
            except MeasurementUnavailable:
                logger.debug(f"No measurement for cause {cause.id}, using heuristic")
                continue
            usable = self._usable(width)
            if usable is not None:
                widths[cause.id] = usable
        self._widths = widths
        return len(widths)


# --- Adapters ---

class StaticTextMetrics:
    """Answers from a fixed id → width table."""

    def __init__(self, widths: dict[str, float]):
        self.widths = dict(widths)

    def measure(self, cause_id: str, text: str) -> Optional[float]:
        return self.widths.get(cause_id)


def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return load_font(size)


def text_width(font: ImageFont.FreeTypeFont | ImageFont.ImageFont, text: str) -> float:
    bbox = font.getbbox(text)
    return float(bbox[2] - bbox[0])


class PillowTextMetrics:
    """Measures label boxes with the renderer's label font.

    The reported width is the single-line text width plus the label chrome,
    capped at ``LABEL_MAX_WIDTH`` (longer texts wrap inside the cap).
    """

    def __init__(self, font_size: int = LABEL_FONT_SIZE):
        self.font = load_font(font_size)

    def measure(self, cause_id: str, text: str) -> Optional[float]:
        if not text:
            raise MeasurementUnavailable(cause_id)
        width = text_width(self.font, text) + LABEL_CHROME_WIDTH
        return float(min(math.ceil(width), LABEL_MAX_WIDTH))
