"""
Tests for tile planning and coordinate mapping.

Run with: pytest tests/test_tiles.py -v
"""
import math

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.tiles import (
    GRID_COLS,
    GRID_ROWS,
    Size,
    Tile,
    fit_scale,
    grid_tile_size,
    pixels_to_points,
    plan_tiles,
)


class TestPlanTiles:
    """Tile centers covering a canvas."""

    def test_fixed_grid_produces_rows_times_cols(self):
        canvas = Size(800, 400)
        tiles = plan_tiles(canvas, grid_tile_size(canvas))
        assert len(tiles) == GRID_ROWS * GRID_COLS
        assert tiles[0] == Tile(200, 50)
        assert tiles[-1] == Tile(600, 350)

    def test_adjacent_centers_are_one_tile_apart(self):
        tiles = plan_tiles(Size(1000, 600), Size(250, 200))
        xs = sorted({t.x for t in tiles})
        ys = sorted({t.y for t in tiles})
        assert [b - a for a, b in zip(xs, xs[1:])] == [250] * (len(xs) - 1)
        assert [b - a for a, b in zip(ys, ys[1:])] == [200] * (len(ys) - 1)

    def test_partial_tiles_round_up(self):
        tiles = plan_tiles(Size(1000, 100), Size(300, 100))
        assert len(tiles) == 4

    def test_exact_division_does_not_add_extra_column(self):
        tiles = plan_tiles(Size(1000, 100), Size(1000 / 3, 100))
        assert len(tiles) == 3

    def test_tile_larger_than_canvas_gives_one_tile(self):
        tiles = plan_tiles(Size(100, 100), Size(500, 500))
        assert tiles == [Tile(250, 250)]

    @pytest.mark.parametrize("canvas", [
        Size(0, 0), Size(0, 100), Size(100, -1), Size(float("nan"), 100), Size(float("inf"), 100),
    ])
    def test_degenerate_canvas_is_empty(self, canvas):
        assert plan_tiles(canvas, Size(10, 10)) == []

    def test_degenerate_tile_is_empty(self):
        assert plan_tiles(Size(100, 100), Size(0, 10)) == []
        assert grid_tile_size(Size(0, 0)) == Size(0, 0)

    def test_no_nan_values(self):
        tiles = plan_tiles(Size(333.3, 777.7), Size(41.1, 13.7))
        assert all(math.isfinite(t.x) and math.isfinite(t.y) for t in tiles)

    def test_deterministic(self):
        a = plan_tiles(Size(640, 480), Size(100, 70))
        b = plan_tiles(Size(640, 480), Size(100, 70))
        assert a == b


class TestCoordinateMapping:
    """Pixels -> points."""

    def test_pixels_to_points_default_scale(self):
        assert pixels_to_points(1000) == 500

    def test_fit_scale_keeps_preferred_when_it_fits(self):
        assert fit_scale(Size(800, 600), Size(495, 670)) == 0.5

    def test_fit_scale_shrinks_to_fit(self):
        scale = fit_scale(Size(2000, 600), Size(500, 700))
        assert scale == pytest.approx(0.25)

    def test_fit_scale_never_enlarges(self):
        assert fit_scale(Size(10, 10), Size(500, 500)) == 0.5
