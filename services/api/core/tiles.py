# services/api/core/tiles.py
"""
Tile planning and coordinate mapping for watermark overlays.

Two coordinate spaces are in play:
  - pixels      of the decoded raster (compositor) or the on-screen stage
  - PDF points  (1/72 inch) on the exported page, top-left origin (fpdf2)

plan_tiles() is shared by the raster compositor and both live renderers, so
the tiling is numerically identical wherever it is drawn.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

# Fixed grid used by the burn-in compositor and the canvas viewer.
GRID_ROWS = 4
GRID_COLS = 2


@dataclass(frozen=True)
class Size:
    w: float
    h: float

    def is_drawable(self) -> bool:
        return _positive(self.w) and _positive(self.h)


@dataclass(frozen=True)
class Tile:
    """Center point of one watermark repetition."""
    x: float
    y: float


def _positive(v: float) -> bool:
    try:
        return math.isfinite(v) and v > 0
    except TypeError:
        return False


def grid_tile_size(canvas: Size, rows: int = GRID_ROWS, cols: int = GRID_COLS) -> Size:
    """Tile size that splits `canvas` into a rows x cols grid."""
    if not canvas.is_drawable() or rows <= 0 or cols <= 0:
        return Size(0, 0)
    return Size(canvas.w / cols, canvas.h / rows)


def plan_tiles(canvas: Size, tile: Size) -> List[Tile]:
    """
    Centers of repeated tiles covering `canvas`.

    rows = ceil(h / tile_h), cols = ceil(w / tile_w); centers sit at
    ((col + 0.5) * tile_w, (row + 0.5) * tile_h). Adjacent centers are exactly
    one tile apart, so drawing each tile at `tile` size leaves no gaps.

    Degenerate sizes (0, negative, NaN, inf) return [].
    """
    if not canvas.is_drawable() or not tile.is_drawable():
        return []

    # Small epsilon so 1000 / (1000 / 3) doesn't round up to 4 columns.
    cols = max(1, math.ceil(canvas.w / tile.w - 1e-9))
    rows = max(1, math.ceil(canvas.h / tile.h - 1e-9))

    tiles: List[Tile] = []
    for row in range(rows):
        for col in range(cols):
            tiles.append(Tile(x=(col + 0.5) * tile.w, y=(row + 0.5) * tile.h))
    return tiles


# ---------- coordinate-space mapping -----------------------------------------

def pixels_to_points(px: float, scale: float = 0.5) -> float:
    """Raster pixels -> PDF points at a fixed embed scale (0.5 = 144 DPI)."""
    return px * scale


def fit_scale(image: Size, region: Size, preferred: float = 0.5) -> float:
    """
    Scale (px -> pt) for embedding `image` in `region`.

    Uses `preferred` unless the result would overflow the region, in which case
    it shrinks just enough to fit. Never enlarges past `preferred`.
    """
    if not image.is_drawable() or not region.is_drawable():
        return preferred
    return min(preferred, region.w / image.w, region.h / image.h)
