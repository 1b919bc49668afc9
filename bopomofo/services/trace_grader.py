"""Explainable trace grading (no trained model).

A trace is graded by overlap between two rasters of the same square size:

- the reference mask: the symbol rendered in black, centred, then outlined
  with a wide stroke so strokes drawn slightly off the glyph still count
  (the tolerance band);
- the learner's ink: pixels in a broad red band, which accepts
  anti-aliased and device-varied reds rather than pure #ff0000 only.

Score formula::

    coverage      = hit / target_area          (0 if no target pixels)
    outside_ratio = out / ink_total            (0 if no ink)
    score         = clamp(round(coverage * 130 + 12 - outside_ratio * 18), 0, 100)
    passed        = score >= 60

The rule is fixed and auditable: the same mask and the same trace always
produce the same verdict. Different fonts can produce different masks, which
is a platform difference, not a grading defect.
"""
import base64
import binascii
import io
import logging
import os
from dataclasses import dataclass, asdict
from typing import Optional, Union
import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from bopomofo.constants import (
    TRACE_CANVAS_SIZE,
    TOLERANCE_BAND_WIDTH,
    GLYPH_FONT_SIZE,
    GLYPH_VERTICAL_OFFSET,
    MASK_MIN_ALPHA,
    MASK_MAX_CHANNEL,
    INK_MIN_RED,
    INK_MAX_GREEN_BLUE,
    COVERAGE_WEIGHT,
    BASELINE_POINTS,
    OUTSIDE_PENALTY,
    TRACE_PASS_SCORE,
)
from bopomofo.services.rounding import clamp, round_half_up

logger = logging.getLogger(__name__)

FONT_CANDIDATES = [
    # Windows
    "C:/Windows/Fonts/msjh.ttc",
    "C:/Windows/Fonts/msyh.ttc",
    # macOS
    "/System/Library/Fonts/PingFang.ttc",
    "/System/Library/Fonts/STHeiti Medium.ttc",
    "/Library/Fonts/Arial Unicode.ttf",
    # Linux
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/droid/DroidSansFallbackFull.ttf",
]
"""CJK-capable fonts probed when GLYPH_FONT_PATH is not set. Order matters: TC fonts first."""


@dataclass(frozen=True)
class TraceVerdict:
    """Grading result with the counts it was derived from."""
    score: int
    passed: bool
    coverage: float = 0.0
    outside_ratio: float = 0.0
    target_area: int = 0
    ink_total: int = 0
    hit: int = 0
    out: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


FAILED_VERDICT = TraceVerdict(score=0, passed=False)


def find_glyph_font_path(configured: str = "") -> Optional[str]:
    """Return the configured font path if it exists, else the first installed candidate."""
    if configured:
        if os.path.exists(configured):
            return configured
        logger.warning(f"GLYPH_FONT_PATH {configured} does not exist; probing system fonts")

    for path in FONT_CANDIDATES:
        if os.path.exists(path):
            return path
    return None


def load_glyph_font(configured: str = "", size: int = GLYPH_FONT_SIZE) -> ImageFont.FreeTypeFont:
    """
    Load the font used for reference glyphs.

    Falls back to Pillow's bundled default font (which lacks Bopomofo glyphs)
    when no CJK font is installed; grading then still runs but masks are not
    meaningful for the catalog symbols.
    """
    path = find_glyph_font_path(configured)
    if path:
        logger.info(f"Using glyph font: {path}")
        return ImageFont.truetype(path, size)

    logger.warning("No CJK font found; reference glyphs will use Pillow's default font")
    return ImageFont.load_default(size=size)


def target_pixels(mask_rgba: np.ndarray) -> np.ndarray:
    """Boolean map of mask pixels that are opaque and darker than near-white on any channel."""
    r, g, b, a = (mask_rgba[..., i].astype(np.int16) for i in range(4))
    dark = (r < MASK_MAX_CHANNEL) | (g < MASK_MAX_CHANNEL) | (b < MASK_MAX_CHANNEL)
    return (a > MASK_MIN_ALPHA) & dark


def ink_pixels(trace_rgba: np.ndarray) -> np.ndarray:
    """Boolean map of trace pixels that are visible and fall in the red ink band."""
    r, g, b, a = (trace_rgba[..., i].astype(np.int16) for i in range(4))
    return (a > 0) & (r > INK_MIN_RED) & (g < INK_MAX_GREEN_BLUE) & (b < INK_MAX_GREEN_BLUE)


def score_overlap(target: np.ndarray, ink: np.ndarray) -> TraceVerdict:
    """
    Apply the scoring rule to a target map and an ink map of the same shape.

    Args:
        target: Boolean array, True where the reference mask is target
        ink: Boolean array, True where the learner drew

    Returns:
        TraceVerdict with score, pass flag and the underlying counts
    """
    if target.shape != ink.shape:
        raise ValueError(f"Mask shape {target.shape} does not match trace shape {ink.shape}")

    target_area = int(target.sum())
    ink_total = int(ink.sum())
    hit = int((target & ink).sum())
    out = ink_total - hit

    coverage = hit / target_area if target_area else 0.0
    outside_ratio = out / ink_total if ink_total else 0.0

    raw = coverage * COVERAGE_WEIGHT + BASELINE_POINTS - outside_ratio * OUTSIDE_PENALTY
    score = clamp(round_half_up(raw), 0, 100)

    return TraceVerdict(
        score=score,
        passed=score >= TRACE_PASS_SCORE,
        coverage=coverage,
        outside_ratio=outside_ratio,
        target_area=target_area,
        ink_total=ink_total,
        hit=hit,
        out=out,
    )


def decode_trace_image(data: Union[str, bytes]) -> Image.Image:
    """
    Decode a PNG trace from raw bytes, base64 text, or a ``data:image/png;base64,`` URL.

    Raises:
        ValueError: If the data is not valid base64 or not a readable image
    """
    if isinstance(data, str):
        if data.startswith("data:"):
            _, _, data = data.partition(",")
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Trace is not valid base64: {e}") from e

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Trace is not a readable image: {e}") from e
    except Image.DecompressionBombError as e:
        raise ValueError(f"Trace is too large: {e}") from e

    return image


class TraceGrader:
    """
    Grades traces against rendered reference glyphs.

    Args:
        font: Font for reference glyphs (see ``load_glyph_font``)
        size: Side length of mask and trace rasters
        band_width: Tolerance band stroke width; half extends outside the glyph edge
    """

    def __init__(
        self,
        font: ImageFont.FreeTypeFont,
        size: int = TRACE_CANVAS_SIZE,
        band_width: int = TOLERANCE_BAND_WIDTH
    ):
        self.font = font
        self.size = size
        self.band_width = band_width

    def render_reference(self, symbol: str) -> Image.Image:
        """Render the glyph filled and outlined in black on white, centred on the canvas."""
        image = Image.new("RGBA", (self.size, self.size), (255, 255, 255, 255))
        draw = ImageDraw.Draw(image)
        draw.text(
            (self.size / 2, self.size / 2 + GLYPH_VERTICAL_OFFSET),
            symbol,
            font=self.font,
            fill=(0, 0, 0, 255),
            anchor="mm",
            stroke_width=self.band_width // 2,
            stroke_fill=(0, 0, 0, 255),
        )
        return image

    def reference_mask(self, symbol: str) -> np.ndarray:
        """Boolean target map for ``symbol``."""
        return target_pixels(np.asarray(self.render_reference(symbol)))

    def rasterize_trace(self, trace: Image.Image) -> np.ndarray:
        """Flatten a trace of any size and mode to an RGBA array at the canvas size."""
        trace = trace.convert("RGBA")
        if trace.size != (self.size, self.size):
            trace = trace.resize((self.size, self.size), Image.Resampling.BILINEAR)
        return np.asarray(trace)

    def grade(self, symbol: str, trace: Image.Image) -> TraceVerdict:
        """
        Grade a trace image for ``symbol``.

        Never raises: if either raster cannot be produced the verdict is
        score 0, not passed.
        """
        try:
            target = self.reference_mask(symbol)
            ink = ink_pixels(self.rasterize_trace(trace))
            verdict = score_overlap(target, ink)
        except Exception as e:
            logger.warning(f"Trace rasterization failed for {symbol!r}: {e}", extra={"symbol": symbol})
            return FAILED_VERDICT

        logger.debug(
            f"Trace graded for {symbol}: score={verdict.score} "
            f"coverage={verdict.coverage:.3f} outside={verdict.outside_ratio:.3f}",
            extra={"symbol": symbol}
        )
        return verdict

    def grade_encoded(self, symbol: str, data: Union[str, bytes]) -> TraceVerdict:
        """Decode a submitted PNG and grade it; undecodable input grades as 0."""
        try:
            trace = decode_trace_image(data)
        except Exception as e:
            logger.warning(f"Trace could not be decoded for {symbol!r}: {e}", extra={"symbol": symbol})
            return FAILED_VERDICT
        return self.grade(symbol, trace)
