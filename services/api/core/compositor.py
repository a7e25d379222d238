# services/api/core/compositor.py
"""
Server-side watermark burn-in.

burn_watermark() decodes a diagram, composites the identity watermark into
its pixels and returns a *new* PNG buffer. The caller's bytes are never
touched, and the result is never logged (only its size).
"""
from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from core.errors import EncodingError, UnsupportedImageError
from core.tiles import Size, grid_tile_size, plan_tiles
from core.watermark import (
    CAPTION_TEXT,
    DEFAULT_ORG,
    ROTATION_DEGREES,
    brand_line,
    fingerprint_line,
    footer_line,
)
from models import IdentityContext

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]

BRAND_RGBA = (255, 0, 0, round(0.15 * 255))
CAPTION_RGBA = (0, 0, 0, round(0.20 * 255))
FOOTER_BAR_RGBA = (255, 255, 255, round(0.9 * 255))
FOOTER_TEXT_RGBA = (0, 0, 0, 255)
FINGERPRINT_RGBA = (0, 0, 0, max(1, round(0.01 * 255)))

_BOLD_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "LiberationSans-Bold.ttf")
_REGULAR_FONTS = ("DejaVuSans.ttf", "Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf")
_MONO_FONTS = ("DejaVuSansMono.ttf", "Courier New.ttf", "cour.ttf", "LiberationMono-Regular.ttf")


@dataclass(frozen=True)
class WatermarkMetrics:
    """Pixel sizes for one image. Everything scales with image width."""
    brand_font_px: int
    caption_font_px: int
    caption_offset_px: int
    footer_height_px: int
    footer_font_px: int
    fingerprint_font_px: int = 5


def watermark_metrics(width: int, height: int) -> WatermarkMetrics:
    brand = max(8, math.floor(width * 0.04))
    return WatermarkMetrics(
        brand_font_px=brand,
        caption_font_px=max(6, math.floor(width * 0.03)),
        caption_offset_px=brand,
        footer_height_px=max(40, round(height * 0.04)),
        footer_font_px=max(10, math.floor(width * 0.014)),
    )


# ---------- fonts ------------------------------------------------------------

def _load_font(candidates: Iterable[str], size: int, font_path: Optional[str] = None) -> ImageFont.ImageFont:
    """
    First loadable TrueType font from `font_path` / `candidates`, else Pillow's
    bundled scalable font.
    """
    names = ([font_path] if font_path else []) + list(candidates)
    for name in names:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


# ---------- drawing helpers --------------------------------------------------

def _text_tile(text: str, font, fill: Tuple[int, int, int, int], stroke: int = 0) -> Image.Image:
    """Render `text` alone on a transparent tile, tightly cropped."""
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = probe.textbbox((0, 0), text, font=font, stroke_width=stroke)
    w = max(1, right - left)
    h = max(1, bottom - top)
    tile = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    ImageDraw.Draw(tile).text(
        (-left, -top), text, font=font, fill=fill,
        stroke_width=stroke, stroke_fill=fill if stroke else None,
    )
    return tile


def _rotate_offset(dx: float, dy: float, angle_ccw_deg: float) -> Tuple[float, float]:
    """Rotate an offset vector counter-clockwise on screen (y axis points down)."""
    t = math.radians(angle_ccw_deg)
    return dx * math.cos(t) + dy * math.sin(t), -dx * math.sin(t) + dy * math.cos(t)


def _diagonal_layer(
    size: Tuple[int, int],
    centers: Iterable[Tuple[float, float]],
    stamp: Image.Image,
    angle_ccw_deg: float,
) -> Image.Image:
    """
    One transparent layer with `stamp` rotated and centered on every point.

    Drawn on a padded canvas so stamps hanging off the edge are clipped
    instead of rejected by alpha_composite's non-negative dest rule.
    """
    rotated = stamp.rotate(angle_ccw_deg, resample=Image.Resampling.BICUBIC, expand=True)
    rw, rh = rotated.size
    pad_x, pad_y = rw, rh
    W, H = size
    padded = Image.new("RGBA", (W + 2 * pad_x, H + 2 * pad_y), (0, 0, 0, 0))
    for cx, cy in centers:
        dest = (int(round(cx - rw / 2)) + pad_x, int(round(cy - rh / 2)) + pad_y)
        if dest[0] < 0 or dest[1] < 0:
            continue
        padded.alpha_composite(rotated, dest=dest)
    return padded.crop((pad_x, pad_y, pad_x + W, pad_y + H))


def _fit_font(draw: ImageDraw.ImageDraw, text: str, candidates, size: int, max_w: int, font_path: Optional[str]):
    """Shrink the font until `text` fits in `max_w` pixels (min 6px)."""
    font = _load_font(candidates, size, font_path)
    while size > 6:
        l, _, r, _ = draw.textbbox((0, 0), text, font=font)
        if r - l <= max_w:
            break
        size -= 1
        font = _load_font(candidates, size, font_path)
    return font


# ---------- public API -------------------------------------------------------

def decode_image(image_bytes: BytesLike) -> Image.Image:
    """
    Decode untrusted bytes. Fails closed: anything Pillow can't fully load is
    rejected rather than patched up.
    """
    if not isinstance(image_bytes, (bytes, bytearray, memoryview)) or len(image_bytes) == 0:
        raise UnsupportedImageError("empty or non-binary image payload")
    try:
        img = Image.open(io.BytesIO(bytes(image_bytes)))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise UnsupportedImageError(f"cannot decode image: {e}") from e
    if img.width <= 0 or img.height <= 0:
        raise UnsupportedImageError("image has no pixels")
    return img


def burn_watermark(
    image_bytes: BytesLike,
    identity: IdentityContext,
    job_ref: str,
    *,
    org_name: str = DEFAULT_ORG,
    font_path: Optional[str] = None,
    today: Optional[date] = None,
    now_ms: Optional[int] = None,
) -> bytes:
    """
    Burn identity watermark into `image_bytes`, return new PNG bytes.

    Layers (composited in one pass onto an RGBA copy):
      1. brand line, bold red, alpha 0.15, rotated, one per tile
      2. caption line, black, alpha 0.20, under the brand line per tile
      3. footer bar, white alpha 0.9, full width, centered monospace text
      4. forensic fingerprint, alpha 0.01, ~5px, top-left

    Raises:
        UnsupportedImageError: input can't be decoded
        EncodingError: PNG re-encode failed
    """
    source = decode_image(image_bytes)
    W, H = source.size
    m = watermark_metrics(W, H)
    angle = -ROTATION_DEGREES  # screen convention -> PIL counter-clockwise

    base = source.convert("RGBA")

    # 1 + 2: diagonals
    canvas = Size(W, H)
    tiles = plan_tiles(canvas, grid_tile_size(canvas))

    brand_font = _load_font(_BOLD_FONTS, m.brand_font_px, font_path)
    caption_font = _load_font(_REGULAR_FONTS, m.caption_font_px, font_path)
    brand_stamp = _text_tile(brand_line(identity), brand_font, BRAND_RGBA, stroke=max(1, m.brand_font_px // 30))
    caption_stamp = _text_tile(CAPTION_TEXT, caption_font, CAPTION_RGBA)

    dx, dy = _rotate_offset(0, m.caption_offset_px, angle)
    brand_layer = _diagonal_layer((W, H), ((t.x, t.y) for t in tiles), brand_stamp, angle)
    caption_layer = _diagonal_layer((W, H), ((t.x + dx, t.y + dy) for t in tiles), caption_stamp, angle)

    # 3 + 4: footer bar and fingerprint
    chrome = Image.new("RGBA", (W, H), (0, 0, 0, 0))
    draw = ImageDraw.Draw(chrome)
    bar_top = max(0, H - m.footer_height_px)
    draw.rectangle([0, bar_top, W, H], fill=FOOTER_BAR_RGBA)

    footer = footer_line(job_ref, org_name=org_name, today=today)
    footer_font = _fit_font(draw, footer, _MONO_FONTS, m.footer_font_px, max(1, W - 10), font_path)
    draw.text(
        (W / 2, bar_top + (H - bar_top) / 2), footer,
        font=footer_font, fill=FOOTER_TEXT_RGBA, anchor="mm",
    )

    fp_font = _load_font(_REGULAR_FONTS, m.fingerprint_font_px, font_path)
    draw.text((10, 2), fingerprint_line(identity, now_ms), font=fp_font, fill=FINGERPRINT_RGBA)

    out = base
    for layer in (brand_layer, caption_layer, chrome):
        out = Image.alpha_composite(out, layer)

    buf = io.BytesIO()
    try:
        out.save(buf, format="PNG", optimize=False)
    except (OSError, ValueError) as e:
        raise EncodingError(f"PNG encode failed: {e}") from e

    data = buf.getvalue()
    # Size only. Never log the payload itself.
    logger.debug(f"watermark burned: {W}x{H} px, {len(data)} bytes out")
    return data
