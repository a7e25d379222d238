# services/api/core/live_renderer.py
"""
Live (on-screen) watermark overlays.

These are visual deterrents only: they describe what the viewer draws over
the displayed diagram and never produce exportable image bytes. The export
path burns its own watermark (core/compositor.py).

Two interchangeable strategies draw the same tiling:
  - SceneGraphRenderer: retained-canvas stage (Konva-style node tree)
  - SvgPatternRenderer: DOM overlay with a repeating SVG CSS background

The role rule (no diagonals for internal staff, footer for everyone) is
applied once in LiveWatermarkRenderer, never inside a strategy.
"""
from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol
from xml.sax.saxutils import escape

from core.tiles import Size, Tile, grid_tile_size, plan_tiles
from core.watermark import (
    DEFAULT_ORG,
    ROTATION_DEGREES,
    WatermarkSpec,
    should_show_diagonals,
    viewer_footer_line,
)
from models import IdentityContext

# Canvas viewer
CANVAS_OPACITY = 0.12
CANVAS_FOOTER_HEIGHT = 30
CANVAS_BRAND_TEXT = "{org} - PROPRIETARY SYSTEM\nUNAUTHORIZED USE PROHIBITED"

# DOM overlay: one SVG tile repeated by CSS
SVG_TILE = Size(520, 320)
SVG_OPACITY = 0.18

BLIND_OPACITY = 0.01
BLIND_TILE = Size(100, 100)


@dataclass
class OverlayCanvas:
    """
    Handle a strategy draws into. `nodes` is the retained scene graph,
    `css` holds DOM overlay styles; a strategy only fills what it uses.
    """
    width: float
    height: float
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    css: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"width": self.width, "height": self.height, "nodes": self.nodes, "css": self.css}


class Renderer(Protocol):
    mode: str

    def draw_overlay(self, canvas: OverlayCanvas, tiles: List[Tile], spec: WatermarkSpec) -> None:
        ...


class SceneGraphRenderer:
    """Retained-canvas strategy: one rotated group per tile."""

    mode = "canvas"

    def draw_overlay(self, canvas: OverlayCanvas, tiles: List[Tile], spec: WatermarkSpec) -> None:
        brand, sub = spec.lines[0], spec.lines[1]
        for i, t in enumerate(tiles):
            canvas.nodes.append({
                "type": "Group",
                "key": f"tile-{i}",
                "x": t.x,
                "y": t.y,
                "rotation": spec.rotation_degrees,
                "opacity": spec.opacity,
                "children": [
                    {"type": "Text", "text": brand, "fontSize": 16, "fontStyle": "bold",
                     "fill": "red", "align": "center", "offsetX": 150, "offsetY": 20},
                    {"type": "Text", "text": sub, "y": 40, "fontSize": 12,
                     "fill": "black", "align": "center", "offsetX": 50},
                ],
            })


class SvgPatternRenderer:
    """
    DOM/CSS strategy: tiles are produced by the browser repeating one SVG
    background of `spec.tile_size`; `tiles` only decides whether to emit it.
    """

    mode = "svg"

    def draw_overlay(self, canvas: OverlayCanvas, tiles: List[Tile], spec: WatermarkSpec) -> None:
        if not tiles:
            return
        w, h = int(spec.tile_size.w), int(spec.tile_size.h)
        texts = []
        y = -18
        styles = [
            ("22", "700", "#d10000", "Arial, sans-serif"),
            ("16", "700", "#111", "Arial, sans-serif"),
            ("12", "400", "#111", "monospace"),
        ]
        for line, (size, weight, fill, family) in zip(spec.lines, styles):
            texts.append(
                f'<text x="0" y="{y}" text-anchor="middle" font-family="{family}" '
                f'font-size="{size}" font-weight="{weight}" fill="{fill}">{escape(line)}</text>'
            )
            y += 28 if y < 0 else 24
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}">'
            f'<g opacity="{spec.opacity}" transform="translate({w // 2} {h // 2}) rotate({spec.rotation_degrees:g})">'
            + "".join(texts)
            + "</g></svg>"
        )
        canvas.css["diagonals"] = {
            "backgroundImage": f'url("data:image/svg+xml,{urllib.parse.quote(svg)}")',
            "backgroundRepeat": "repeat",
            "backgroundSize": f"{w}px {h}px",
            "opacity": spec.opacity,
        }


STRATEGIES: Dict[str, Renderer] = {
    SceneGraphRenderer.mode: SceneGraphRenderer(),
    SvgPatternRenderer.mode: SvgPatternRenderer(),
}


def get_strategy(mode: str) -> Renderer:
    try:
        return STRATEGIES[mode]
    except KeyError:
        raise ValueError(f"Unknown overlay mode: {mode!r} (use {', '.join(STRATEGIES)})")


class LiveWatermarkRenderer:
    """
    Builds the on-screen overlay for one viewing surface.

    The identity is read-only and provided once per viewing session.
    """

    def __init__(self, identity: IdentityContext, *, org_name: str = DEFAULT_ORG):
        self.identity = identity
        self.org_name = org_name

    def _spec_for(self, strategy: Renderer, view: Size) -> WatermarkSpec:
        show = should_show_diagonals(self.identity.role)
        if strategy.mode == SvgPatternRenderer.mode:
            return WatermarkSpec(
                lines=[
                    f"{self.org_name} - PROPRIETARY SYSTEM",
                    f"LICENSED TO: {self.identity.company_name.upper()}",
                    f"USER: {self.identity.user_id}",
                ],
                tile_size=SVG_TILE,
                rotation_degrees=ROTATION_DEGREES,
                opacity=SVG_OPACITY,
                show_diagonals=show,
            )
        return WatermarkSpec(
            lines=[
                CANVAS_BRAND_TEXT.format(org=self.org_name),
                f"For: {self.identity.company_name}",
            ],
            tile_size=grid_tile_size(view),
            rotation_degrees=ROTATION_DEGREES,
            opacity=CANVAS_OPACITY,
            show_diagonals=show,
        )

    def render(
        self,
        view: Size,
        strategy: Renderer,
        *,
        include_footer: bool = True,
        today: Optional[date] = None,
    ) -> OverlayCanvas:
        canvas = OverlayCanvas(width=view.w, height=view.h)
        if not view.is_drawable():
            return canvas

        spec = self._spec_for(strategy, view)
        if spec.show_diagonals:
            strategy.draw_overlay(canvas, plan_tiles(view, spec.tile_size), spec)

        if include_footer:
            self._draw_footer(canvas, strategy, today)

        if strategy.mode == SceneGraphRenderer.mode:
            self._draw_blind_layer(canvas)
        return canvas

    def _draw_footer(self, canvas: OverlayCanvas, strategy: Renderer, today: Optional[date]) -> None:
        text = viewer_footer_line(self.identity, org_name=self.org_name, today=today)
        if strategy.mode == SceneGraphRenderer.mode:
            canvas.nodes.append({
                "type": "Rect", "key": "footer-bar",
                "x": 0, "y": canvas.height - CANVAS_FOOTER_HEIGHT,
                "width": canvas.width, "height": CANVAS_FOOTER_HEIGHT,
                "fill": "rgba(255, 255, 255, 0.85)",
            })
            canvas.nodes.append({
                "type": "Text", "key": "footer-text", "text": text,
                "x": 10, "y": canvas.height - 20,
                "fontSize": 10, "fill": "#333", "fontFamily": "monospace",
            })
        else:
            canvas.css["footer"] = {"text": text, "position": "bottom", "background": "rgba(255,255,255,0.8)"}

    def _draw_blind_layer(self, canvas: OverlayCanvas) -> None:
        # Near-invisible user id, present in any screenshot of the stage.
        svg = (
            f"<svg xmlns='http://www.w3.org/2000/svg' version='1.1' "
            f"height='{int(BLIND_TILE.h)}px' width='{int(BLIND_TILE.w)}px'>"
            f"<text transform='translate(20, 100) rotate(-45)' fill='rgb(0,0,0)' font-size='12'>"
            f"{escape(self.identity.user_id)}</text></svg>"
        )
        canvas.css["blind"] = {
            "backgroundImage": f'url("data:image/svg+xml,{urllib.parse.quote(svg)}")',
            "opacity": BLIND_OPACITY,
        }
