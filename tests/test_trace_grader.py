"""Unit tests for the trace grader."""
import base64
import io
import struct
import zlib
import numpy as np
import pytest
from PIL import Image, ImageDraw, ImageFont
from bopomofo.services.rounding import round_half_up, clamp
from bopomofo.services.trace_grader import (
    TraceGrader,
    FAILED_VERDICT,
    target_pixels,
    ink_pixels,
    score_overlap,
    decode_trace_image,
)
from bopomofo.constants import TRACE_CANVAS_SIZE


def square_mask(size=TRACE_CANVAS_SIZE, start=100, stop=200):
    """Boolean target map with a filled square."""
    mask = np.zeros((size, size), dtype=bool)
    mask[start:stop, start:stop] = True
    return mask


def png_bytes(image):
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def png_header_only(width, height):
    """A minimal PNG whose header declares the given size; no pixels are decoded."""
    def chunk(tag, data):
        crc = zlib.crc32(tag + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", ihdr)
        + chunk(b"IDAT", zlib.compress(b""))
        + chunk(b"IEND", b"")
    )


class TestRounding:
    """Tests for half-up rounding used by scores and accuracy."""

    def test_half_rounds_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_negative_half_rounds_toward_positive(self):
        assert round_half_up(-0.5) == 0
        assert round_half_up(-5.5) == -5

    def test_below_half_rounds_down(self):
        assert round_half_up(12.49) == 12

    def test_clamp(self):
        assert clamp(-6, 0, 100) == 0
        assert clamp(142, 0, 100) == 100
        assert clamp(55, 0, 100) == 55


class TestPixelClasses:
    """Tests for mask and ink pixel classification."""

    def test_target_pixels(self):
        pixels = np.array([[
            (0, 0, 0, 255),        # black glyph
            (255, 255, 255, 255),  # white background
            (219, 255, 255, 255),  # one channel darker than near-white
            (0, 0, 0, 10),         # too transparent
            (0, 0, 0, 11),
        ]], dtype=np.uint8)

        assert target_pixels(pixels).tolist() == [[True, False, True, False, True]]

    def test_ink_pixels_accept_red_band(self):
        pixels = np.array([[
            (255, 0, 0, 255),      # pure red
            (200, 100, 100, 255),  # anti-aliased red
            (150, 0, 0, 255),      # red not above 150
            (255, 180, 0, 255),    # green too high
            (255, 0, 180, 255),    # blue too high
            (255, 0, 0, 0),        # invisible
            (255, 0, 0, 1),
        ]], dtype=np.uint8)

        assert ink_pixels(pixels).tolist() == [[True, True, False, False, False, False, True]]


class TestScoreOverlap:
    """Tests for the scoring rule."""

    def test_full_coverage_no_outside_scores_100(self):
        verdict = score_overlap(square_mask(), square_mask())
        assert verdict.score == 100
        assert verdict.passed is True
        assert verdict.coverage == 1.0
        assert verdict.outside_ratio == 0.0

    def test_no_ink_scores_baseline(self):
        """Zero ink means zero coverage and zero outside ratio: 12 points."""
        ink = np.zeros_like(square_mask())
        verdict = score_overlap(square_mask(), ink)
        assert verdict.score == 12
        assert verdict.passed is False
        assert verdict.ink_total == 0

    def test_all_ink_outside_clamps_to_zero(self):
        ink = np.zeros_like(square_mask())
        ink[0:50, 0:50] = True
        verdict = score_overlap(square_mask(), ink)
        # 0 * 130 + 12 - 1 * 18 = -6
        assert verdict.score == 0
        assert verdict.out == 2500
        assert verdict.hit == 0

    def test_empty_mask_has_zero_coverage(self):
        target = np.zeros((10, 10), dtype=bool)
        ink = np.ones((10, 10), dtype=bool)
        verdict = score_overlap(target, ink)
        assert verdict.coverage == 0.0
        assert verdict.score == 0

    def test_half_coverage_passes(self):
        ink = np.zeros_like(square_mask())
        ink[100:150, 100:200] = True
        verdict = score_overlap(square_mask(), ink)
        # 0.5 * 130 + 12 = 77
        assert verdict.score == 77
        assert verdict.passed is True

    def test_pass_threshold_is_60(self):
        target = np.zeros((1, 130), dtype=bool)
        target[0, :] = True

        ink = np.zeros_like(target)
        ink[0, :48] = True
        assert score_overlap(target, ink).score == 60
        assert score_overlap(target, ink).passed is True

        ink[0, 47] = False
        assert score_overlap(target, ink).score == 59
        assert score_overlap(target, ink).passed is False

    def test_outside_ink_is_penalized(self):
        target = np.zeros((1, 200), dtype=bool)
        target[0, :100] = True
        ink = np.ones_like(target)
        verdict = score_overlap(target, ink)
        # 1.0 * 130 + 12 - 0.5 * 18 = 133 -> 100
        assert verdict.score == 100
        assert verdict.outside_ratio == 0.5

        target = np.zeros((1, 400), dtype=bool)
        target[0, :100] = True
        ink = np.zeros_like(target)
        ink[0, 50:400] = True
        verdict = score_overlap(target, ink)
        # 0.5 * 130 + 12 - (300 / 350) * 18 = 61.57 -> 62
        assert verdict.score == 62

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            score_overlap(np.zeros((10, 10), dtype=bool), np.zeros((20, 20), dtype=bool))

    def test_deterministic(self):
        ink = np.zeros_like(square_mask())
        ink[90:160, 90:160] = True
        assert score_overlap(square_mask(), ink) == score_overlap(square_mask(), ink)


class TestDecodeTraceImage:
    """Tests for decoding submitted traces."""

    def test_decodes_data_url(self):
        image = Image.new("RGBA", (8, 8), (255, 0, 0, 255))
        data = "data:image/png;base64," + base64.b64encode(png_bytes(image)).decode("ascii")
        decoded = decode_trace_image(data)
        assert decoded.size == (8, 8)

    def test_decodes_bare_base64_and_bytes(self):
        image = Image.new("RGBA", (4, 6), (255, 0, 0, 255))
        raw = png_bytes(image)
        assert decode_trace_image(base64.b64encode(raw).decode("ascii")).size == (4, 6)
        assert decode_trace_image(raw).size == (4, 6)

    def test_invalid_base64_raises(self):
        with pytest.raises(ValueError):
            decode_trace_image("not base64!!")

    def test_non_image_raises(self):
        with pytest.raises(ValueError):
            decode_trace_image(base64.b64encode(b"hello world").decode("ascii"))

    def test_oversized_image_raises_value_error(self):
        """Pillow refuses to open huge images; that surfaces as ValueError too."""
        with pytest.raises(ValueError):
            decode_trace_image(png_header_only(20000, 20000))


class TestTraceGrader:
    """Tests for grading traces end to end."""

    @pytest.fixture
    def grader(self):
        return TraceGrader(font=ImageFont.load_default(size=220))

    def test_reference_is_square_rgba(self, grader):
        image = grader.render_reference("ㄅ")
        assert image.mode == "RGBA"
        assert image.size == (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE)

    def test_tolerance_band_widens_mask(self):
        """The outline stroke adds target pixels around the glyph edge."""
        font = ImageFont.load_default(size=220)
        narrow = TraceGrader(font=font, band_width=0).reference_mask("A")
        wide = TraceGrader(font=font, band_width=34).reference_mask("A")
        assert wide.sum() > narrow.sum()

    def test_trace_covering_mask_passes(self, grader, monkeypatch):
        monkeypatch.setattr(grader, "reference_mask", lambda symbol: square_mask())

        trace = Image.new("RGBA", (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE), (255, 255, 255, 0))
        ImageDraw.Draw(trace).rectangle([100, 100, 199, 199], fill=(230, 20, 20, 255))

        verdict = grader.grade("ㄅ", trace)
        assert verdict.score == 100
        assert verdict.passed is True

    def test_trace_is_resampled_to_canvas_size(self, grader, monkeypatch):
        """A high-DPI canvas is flattened to the grading size before scoring."""
        full = np.ones((TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE), dtype=bool)
        monkeypatch.setattr(grader, "reference_mask", lambda symbol: full)

        trace = Image.new("RGB", (640, 640), (255, 0, 0))
        verdict = grader.grade("ㄅ", trace)
        assert verdict.target_area == TRACE_CANVAS_SIZE * TRACE_CANVAS_SIZE
        assert verdict.score == 100

    def test_blank_trace_fails(self, grader, monkeypatch):
        monkeypatch.setattr(grader, "reference_mask", lambda symbol: square_mask())

        trace = Image.new("RGBA", (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE), (255, 255, 255, 0))
        verdict = grader.grade("ㄅ", trace)
        assert verdict.score == 12
        assert verdict.passed is False

    def test_mask_failure_grades_zero(self, grader, monkeypatch):
        def broken_mask(symbol):
            raise OSError("cannot render")

        monkeypatch.setattr(grader, "reference_mask", broken_mask)
        trace = Image.new("RGBA", (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE))
        assert grader.grade("ㄅ", trace) == FAILED_VERDICT

    def test_mask_size_mismatch_grades_zero(self, grader, monkeypatch):
        monkeypatch.setattr(grader, "reference_mask", lambda symbol: square_mask(size=50, start=0, stop=10))
        trace = Image.new("RGBA", (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE), (255, 0, 0, 255))
        assert grader.grade("ㄅ", trace) == FAILED_VERDICT

    def test_grade_encoded_rejects_garbage(self, grader):
        verdict = grader.grade_encoded("ㄅ", "data:image/png;base64,@@@@")
        assert verdict.score == 0
        assert verdict.passed is False

    def test_grade_encoded_oversized_image_grades_zero(self, grader):
        data = base64.b64encode(png_header_only(20000, 20000)).decode("ascii")
        verdict = grader.grade_encoded("ㄅ", data)
        assert verdict == FAILED_VERDICT

    def test_grade_encoded_reads_data_url(self, grader, monkeypatch):
        monkeypatch.setattr(grader, "reference_mask", lambda symbol: square_mask())

        trace = Image.new("RGBA", (TRACE_CANVAS_SIZE, TRACE_CANVAS_SIZE), (255, 255, 255, 0))
        ImageDraw.Draw(trace).rectangle([100, 100, 149, 199], fill=(255, 0, 0, 255))
        data = "data:image/png;base64," + base64.b64encode(png_bytes(trace)).decode("ascii")

        verdict = grader.grade_encoded("ㄅ", data)
        assert verdict.hit == 5000
        assert verdict.score == 77
