"""
Tests for the raster watermark compositor.

Run with: pytest tests/test_compositor.py -v
"""
import io
import math
from datetime import date

import pytest
from PIL import Image

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.compositor import burn_watermark, decode_image, watermark_metrics
from core.errors import UnsupportedImageError
from models import IdentityContext, Role

TODAY = date(2026, 3, 14)
IDENTITY = IdentityContext(user_id="u-42", role=Role.CLIENT, company_name="Acme Ltd")


def _png(size=(400, 300), color=(255, 255, 255), mode="RGB", fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def _burn(data: bytes, **kw) -> bytes:
    return burn_watermark(data, IDENTITY, "PRJ-1", today=TODAY, now_ms=1, **kw)


class TestBurnWatermark:

    def test_output_is_png_with_same_dimensions(self):
        out = _burn(_png((640, 480)))
        img = Image.open(io.BytesIO(out))
        assert img.format == "PNG"
        assert img.size == (640, 480)

    def test_pixels_are_changed(self):
        src = _png((400, 300))
        out = Image.open(io.BytesIO(_burn(src))).convert("RGB")
        orig = Image.open(io.BytesIO(src)).convert("RGB")
        assert out.tobytes() != orig.tobytes()

    def test_footer_bar_lightens_dark_image(self):
        out = Image.open(io.BytesIO(_burn(_png((400, 400), color=(0, 0, 0))))).convert("RGB")
        # white 90% bar across the bottom rows
        r, g, b = out.getpixel((2, 398))
        assert r > 200 and g > 200 and b > 200

    def test_input_buffer_is_not_mutated(self):
        src = bytearray(_png((200, 200)))
        before = bytes(src)
        _burn(src)
        assert bytes(src) == before

    def test_double_burn_is_still_valid(self):
        once = _burn(_png((300, 300)))
        twice = _burn(once)
        assert Image.open(io.BytesIO(twice)).size == (300, 300)

    def test_accepts_jpeg_and_palette_input(self):
        assert Image.open(io.BytesIO(_burn(_png((120, 90), fmt="JPEG")))).size == (120, 90)
        assert Image.open(io.BytesIO(_burn(_png((120, 90), mode="P", color=3)))).size == (120, 90)

    def test_tiny_image(self):
        assert Image.open(io.BytesIO(_burn(_png((1, 1))))).size == (1, 1)

    def test_internal_role_still_gets_burned(self):
        internal = IdentityContext(user_id="staff", role=Role.INTERNAL, company_name="TES")
        out = burn_watermark(_png((200, 200)), internal, "PRJ-1", today=TODAY, now_ms=1)
        assert Image.open(io.BytesIO(out)).size == (200, 200)


class TestDecodeFailsClosed:

    @pytest.mark.parametrize("payload", [b"", b"not an image", _png()[:40]])
    def test_garbage_raises(self, payload):
        with pytest.raises(UnsupportedImageError):
            decode_image(payload)

    def test_non_bytes_raises(self):
        with pytest.raises(UnsupportedImageError):
            decode_image("abc")

    def test_burn_propagates_decode_error(self):
        with pytest.raises(UnsupportedImageError):
            _burn(b"\x89PNG\r\n\x1a\nbroken")


class TestMetrics:

    def test_scale_with_width(self):
        m = watermark_metrics(1000, 1000)
        assert m.brand_font_px == 40
        assert m.caption_font_px == 30
        assert m.footer_height_px == 40
        assert m.footer_font_px == 14

    def test_minimums(self):
        m = watermark_metrics(10, 10)
        assert m.brand_font_px == 8
        assert m.caption_font_px == 6
        assert m.footer_height_px == 40
        assert m.footer_font_px == 10

    @pytest.mark.parametrize("width", [200, 257, 333, 640, 999, 1024, 1920, 2481, 4096, 5000, 7777, 8000])
    @pytest.mark.parametrize("aspect", [0.25, 0.75, 1.0, 1.6, 3.0])
    def test_proportional_to_width(self, width, aspect):
        height = max(1, round(width * aspect))
        m = watermark_metrics(width, height)
        assert m.brand_font_px == math.floor(width * 0.04)
        assert m.caption_font_px == math.floor(width * 0.03)
        assert m.caption_offset_px == m.brand_font_px
        assert m.footer_height_px == max(40, round(height * 0.04))
        # brand:caption stays 4:3 up to flooring
        assert abs(3 * m.brand_font_px - 4 * m.caption_font_px) < 4

    def test_grows_monotonically_with_width(self):
        sizes = [watermark_metrics(w, 1000) for w in range(200, 8001, 50)]
        for smaller, larger in zip(sizes, sizes[1:]):
            assert larger.brand_font_px >= smaller.brand_font_px
            assert larger.caption_font_px >= smaller.caption_font_px
            assert larger.footer_font_px >= smaller.footer_font_px
