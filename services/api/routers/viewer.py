# services/api/routers/viewer.py
from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status

from main import get_identity, get_settings_dep  # DI from main
from core.live_renderer import LiveWatermarkRenderer, get_strategy
from core.tiles import Size
from core.watermark import should_show_diagonals
from models import IdentityContext
from schemas import OverlayOut
from settings import Settings

router = APIRouter(prefix="/viewer", tags=["viewer"])

Identity = Annotated[IdentityContext, Depends(get_identity)]
Config = Annotated[Settings, Depends(get_settings_dep)]


@router.get("/overlay", response_model=OverlayOut, status_code=status.HTTP_200_OK)
async def get_overlay(
    identity: Identity,
    settings: Config,
    width: float = Query(..., ge=0, le=20000),
    height: float = Query(..., ge=0, le=20000),
    mode: Literal["canvas", "svg"] = "canvas",
    footer: bool = True,
):
    """
    Watermark overlay the viewer draws over a displayed diagram, sized to
    the viewport. Internal staff get the footer only.
    """
    renderer = LiveWatermarkRenderer(identity, org_name=settings.org_name)
    strategy = get_strategy(mode)
    canvas = renderer.render(Size(width, height), strategy, include_footer=footer)
    return OverlayOut(
        mode=mode,
        width=canvas.width,
        height=canvas.height,
        show_diagonals=should_show_diagonals(identity.role),
        nodes=canvas.nodes,
        css=canvas.css,
    )
