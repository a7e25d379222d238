# services/api/core/watermark.py
"""
Watermark policy and text.

Everything that decides *what* a watermark says, or *whether* diagonals are
drawn, lives here so the raster compositor, the PDF assembler and the live
renderers can't drift apart.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from models import IdentityContext, Role

from core.tiles import Size

DEFAULT_ORG = "TES"
ROTATION_DEGREES = -30.0
CAPTION_TEXT = "UNAUTHORIZED REPRODUCTION PROHIBITED"
UNKNOWN_REF = "REF-UNKNOWN"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def should_show_diagonals(role: Union[Role, str, None]) -> bool:
    """
    Diagonal tiling is suppressed for internal staff only.
    Footer/attribution is never subject to this check.
    """
    value = role.value if isinstance(role, Role) else str(role or "").strip().lower()
    return value != Role.INTERNAL.value


def today_iso(today: Optional[date] = None) -> str:
    d = today or datetime.now(timezone.utc).date()
    return d.isoformat()


def now_millis() -> int:
    return int(time.time() * 1000)


def job_ref_or_default(project_reference: Optional[str]) -> str:
    ref = (project_reference or "").strip()
    return ref or UNKNOWN_REF


# ---------- text builders ----------------------------------------------------

def brand_line(identity: IdentityContext) -> str:
    return f"LICENSED TO: {identity.company_name.upper()} - {identity.user_id}"


def footer_line(job_ref: str, *, org_name: str = DEFAULT_ORG, today: Optional[date] = None) -> str:
    return f"© {org_name} - PROPRIETARY SYSTEM | JOB: {job_ref} | {today_iso(today)}"


def fingerprint_line(identity: IdentityContext, now_ms: Optional[int] = None) -> str:
    return f"{identity.user_id}_{now_ms if now_ms is not None else now_millis()}"


def page_watermark_lines(
    identity: IdentityContext,
    job_ref: str,
    *,
    org_name: str = DEFAULT_ORG,
    today: Optional[date] = None,
) -> List[str]:
    """Three lines tiled over every exported PDF page (vector layer)."""
    return [
        f"{org_name} - PROPRIETARY SYSTEM",
        f"LICENSED TO: {identity.company_name.upper()}",
        f"REF: {job_ref} - {today_iso(today)} - {identity.user_label}",
    ]


def viewer_footer_line(identity: IdentityContext, *, org_name: str = DEFAULT_ORG, today: Optional[date] = None) -> str:
    return (
        f"© {org_name} - PROPRIETARY SURVEY & MANUFACTURING SYSTEM | "
        f"{identity.company_name.upper()} | {today_iso(today)}"
    )


# ---------- spec ------------------------------------------------------------

@dataclass(frozen=True)
class WatermarkSpec:
    """
    Derived per render; never cached across requests.
    """
    lines: List[str]
    tile_size: Size
    rotation_degrees: float = ROTATION_DEGREES
    opacity: float = 0.15
    footer_text: str = ""
    fingerprint: str = ""
    show_diagonals: bool = True


def build_watermark_spec(
    identity: IdentityContext,
    job_ref: str,
    *,
    tile_size: Size,
    org_name: str = DEFAULT_ORG,
    today: Optional[date] = None,
    now_ms: Optional[int] = None,
    opacity: float = 0.15,
) -> WatermarkSpec:
    return WatermarkSpec(
        lines=[brand_line(identity), CAPTION_TEXT],
        tile_size=tile_size,
        rotation_degrees=ROTATION_DEGREES,
        opacity=opacity,
        footer_text=footer_line(job_ref, org_name=org_name, today=today),
        fingerprint=fingerprint_line(identity, now_ms),
        show_diagonals=should_show_diagonals(identity.role),
    )


# ---------- diagram paths ----------------------------------------------------

def sanitize_asset_type(asset_type: str) -> str:
    """'Check Valve/DN50' -> 'check_valve_dn50'"""
    return _NON_ALNUM.sub("_", asset_type or "").lower()


def diagram_paths(asset_type: str, *, prefix: str = "templates", extensions: Optional[List[str]] = None) -> List[str]:
    """
    Candidate blob paths for an asset type's reference diagram, most likely first.
    """
    name = sanitize_asset_type(asset_type)
    exts = extensions or ["png"]
    base = f"{prefix.strip('/')}/{name}" if prefix else name
    return [f"{base}.{ext}" for ext in exts]
