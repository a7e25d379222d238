# services/api/core/report_pdf.py

from __future__ import annotations
import asyncio
import io
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple, Union

from fpdf import FPDF

from adapters.base import BlobStore
from core.compositor import burn_watermark, decode_image
from core.errors import BlobNotFoundError, BlobStoreError, DiagramUnavailableError, ExportError
from core.tiles import Size, fit_scale, pixels_to_points
from core.watermark import (
    DEFAULT_ORG,
    diagram_paths,
    job_ref_or_default,
    page_watermark_lines,
    sanitize_asset_type,
    today_iso,
)
from models import Asset, IdentityContext, Survey

logger = logging.getLogger(__name__)

IMAGE_SCALE = 0.5  # px -> pt

# Page geometry (pt, origin top-left)
MARGIN_X = 50.0
CONTENT_TOP = 110.0
CONTENT_BOTTOM_GAP = 60.0
PLACEHOLDER_BOX = (50.0, 200.0, 400.0, 200.0)  # x, y, w, h

PAGE_WM_SIZES = (18, 12, 9)
PAGE_WM_OFFSETS = (0, 18, 34)
PAGE_WM_OPACITIES = (0.12, 0.10, 0.08)
PAGE_WM_COLORS = ((209, 0, 0), (26, 26, 26), (26, 26, 26))
PAGE_WM_ANGLE = 30  # fpdf2 rotates counter-clockwise; same visual tilt as the raster layer


# ---------- per-asset diagram result ----------------------------------------

@dataclass(frozen=True)
class EmbeddedDiagram:
    png: bytes
    size: Size
    source_path: str


@dataclass(frozen=True)
class DiagramUnavailable:
    asset_type: str
    reason: str


DiagramResult = Union[EmbeddedDiagram, DiagramUnavailable]

# What a prefetch produced for one asset type: (path, bytes) or the error
_Fetched = Union[Tuple[str, bytes], DiagramUnavailableError]


# ---------- Public API -------------------------------------------------------

async def assemble_report(
    survey: Survey,
    assets: Sequence[Asset],
    identity: IdentityContext,
    blob_store: BlobStore,
    *,
    org_name: str = DEFAULT_ORG,
    bucket: str = "asset-diagrams",
    prefix: str = "templates",
    extensions: Optional[List[str]] = None,
    font_path: Optional[str] = None,
    max_parallel_fetches: int = 4,
    today: Optional[date] = None,
) -> bytes:
    """
    Build the watermarked survey PDF. Returns PDF bytes.

    One page per asset in the given order (or a single "(Empty)" page when
    there are none). Diagrams are fetched concurrently, then burned and
    embedded one at a time in asset order. A diagram that cannot be fetched
    or processed becomes a placeholder box on its page; it never fails the
    report.

    Args:
        survey:     survey row (read-only)
        assets:     asset rows, already in page order
        identity:   caller; drives every watermark layer
        blob_store: where reference diagrams live
        bucket, prefix, extensions: diagram lookup (see core.watermark.diagram_paths)
        font_path:  optional TTF for the raster watermark
        max_parallel_fetches: semaphore size for blob downloads
        today:      pinned date (tests)
    """
    job_ref = job_ref_or_default(survey.project_reference)
    report = _ReportBuilder(
        identity=identity,
        job_ref=job_ref,
        org_name=org_name,
        today=today,
        title=f"{org_name} Survey {job_ref}",
    )

    if not assets:
        report.add_empty_page(survey.site_name)
        logger.info(f"Survey {survey.id}: no assets, exported placeholder page")
        return report.build()

    fetched = await prefetch_diagrams(
        blob_store,
        [a.asset_type for a in assets],
        bucket=bucket,
        prefix=prefix,
        extensions=extensions,
        max_parallel=max_parallel_fetches,
    )

    unavailable = 0
    for asset in assets:
        result = await resolve_diagram(
            asset,
            fetched[sanitize_asset_type(asset.asset_type)],
            identity,
            job_ref,
            org_name=org_name,
            font_path=font_path,
            today=today,
        )
        if isinstance(result, DiagramUnavailable):
            unavailable += 1
        report.add_asset_page(survey, asset, result)

    logger.info(
        f"Survey {survey.id}: exported {len(assets)} page(s), "
        f"{unavailable} without diagram"
    )
    return report.build()


async def prefetch_diagrams(
    blob_store: BlobStore,
    asset_types: Sequence[str],
    *,
    bucket: str,
    prefix: str = "templates",
    extensions: Optional[List[str]] = None,
    max_parallel: int = 4,
) -> Dict[str, _Fetched]:
    """
    Download each distinct asset type's diagram once, at most `max_parallel`
    at a time. Keyed by sanitized asset type. Never raises.
    """
    sem = asyncio.Semaphore(max(1, max_parallel))
    keys: Dict[str, str] = {}
    for t in asset_types:
        keys.setdefault(sanitize_asset_type(t), t)

    async def _one(asset_type: str) -> _Fetched:
        async with sem:
            return await _fetch_first(
                blob_store,
                bucket,
                diagram_paths(asset_type, prefix=prefix, extensions=extensions),
                asset_type,
            )

    results = await asyncio.gather(*(_one(t) for t in keys.values()))
    return dict(zip(keys.keys(), results))


async def resolve_diagram(
    asset: Asset,
    fetched: _Fetched,
    identity: IdentityContext,
    job_ref: str,
    *,
    org_name: str = DEFAULT_ORG,
    font_path: Optional[str] = None,
    today: Optional[date] = None,
) -> DiagramResult:
    """Turn a prefetch outcome into something a page can render. Never raises."""
    if isinstance(fetched, DiagramUnavailableError):
        logger.warning(f"Asset {asset.asset_tag}: {fetched}")
        return DiagramUnavailable(asset.asset_type, fetched.reason)

    path, raw = fetched
    try:
        png = await asyncio.to_thread(
            burn_watermark,
            raw,
            identity,
            job_ref,
            org_name=org_name,
            font_path=font_path,
            today=today,
        )
        with decode_image(png) as img:
            size = Size(img.width, img.height)
    except ExportError as e:
        logger.warning(f"Asset {asset.asset_tag}: watermark failed for {path}: {e}")
        return DiagramUnavailable(asset.asset_type, str(e))
    except Exception as e:
        logger.exception(f"Asset {asset.asset_tag}: unexpected error processing {path}")
        return DiagramUnavailable(asset.asset_type, f"unexpected: {e}")

    return EmbeddedDiagram(png=png, size=size, source_path=path)


# ---------- Internals --------------------------------------------------------

async def _fetch_first(
    blob_store: BlobStore,
    bucket: str,
    paths: List[str],
    asset_type: str,
) -> _Fetched:
    """First path that exists wins. Missing objects fall through to the next candidate."""
    for path in paths:
        try:
            return path, await blob_store.download(bucket, path)
        except BlobNotFoundError:
            continue
        except BlobStoreError as e:
            return DiagramUnavailableError(asset_type, f"storage error: {e}")
        except Exception as e:
            logger.exception(f"Unexpected blob store failure for {bucket}/{path}")
            return DiagramUnavailableError(asset_type, f"storage error: {e}")
    return DiagramUnavailableError(asset_type, "no template found")


def _pdf_safe(text: str) -> str:
    """Core PDF fonts are latin-1 only."""
    return (text or "").encode("latin-1", "replace").decode("latin-1")


class _ReportBuilder:
    """
    Fixed-layout report, one A4 portrait page per asset (points, top-left origin):
      - Header: site, asset tag/type, location/qty
      - Diagram centered in the content region, or a red placeholder box
      - Footer with downloader attribution
      - Page-level diagonal text watermark (vector, low opacity)
    """

    def __init__(
        self,
        *,
        identity: IdentityContext,
        job_ref: str,
        org_name: str,
        today: Optional[date],
        title: str,
    ):
        self.identity = identity
        self.job_ref = job_ref
        self.org_name = org_name
        self.today = today

        self._pdf = FPDF(orientation="P", unit="pt", format="A4")
        self._pdf.set_auto_page_break(auto=False)
        self._pdf.set_margins(MARGIN_X, MARGIN_X, MARGIN_X)
        self._pdf.set_title(_pdf_safe(title))
        self._pdf.set_author(_pdf_safe(identity.user_label))
        self._pdf.set_creator(_pdf_safe(f"{org_name} Survey Export"))

        self.page_w = self._pdf.w
        self.page_h = self._pdf.h
        self._wm_lines = [
            _pdf_safe(l)
            for l in page_watermark_lines(identity, job_ref, org_name=org_name, today=today)
        ]

    # pages ---------------------------------------------------------------

    def add_empty_page(self, site_name: str):
        self._pdf.add_page()
        self._text(MARGIN_X, 50, f"Survey Report: {site_name} (Empty)", size=18, style="B")
        self._decorate_page()

    def add_asset_page(self, survey: Survey, asset: Asset, diagram: DiagramResult):
        self._pdf.add_page()

        self._text(MARGIN_X, 50, f"Survey Report: {survey.site_name}", size=18, style="B")
        self._text(MARGIN_X, 75, f"Asset Tag: {asset.asset_tag} ({asset.asset_type})", size=12)
        self._text(
            MARGIN_X, 95,
            f"Location: {asset.location_area or 'N/A'} | Qty: {asset.quantity}",
            size=12,
        )

        if isinstance(diagram, EmbeddedDiagram):
            try:
                self._draw_image(diagram)
            except Exception:
                logger.exception(f"Asset {asset.asset_tag}: embedding diagram failed")
                self._draw_placeholder(asset.asset_type)
        else:
            self._draw_placeholder(diagram.asset_type)

        self._decorate_page()

    # drawing -------------------------------------------------------------

    def _text(self, x: float, y: float, text: str, *, size: float, style: str = "",
              color: Tuple[int, int, int] = (0, 0, 0)):
        self._pdf.set_font("Helvetica", style, size)
        self._pdf.set_text_color(*color)
        self._pdf.text(x, y, _pdf_safe(text))

    def _draw_image(self, diagram: EmbeddedDiagram):
        region = Size(self.page_w - 2 * MARGIN_X, self.page_h - CONTENT_TOP - CONTENT_BOTTOM_GAP)
        scale = fit_scale(diagram.size, region, IMAGE_SCALE)
        w = pixels_to_points(diagram.size.w, scale)
        h = pixels_to_points(diagram.size.h, scale)
        x = (self.page_w - w) / 2
        self._pdf.image(io.BytesIO(diagram.png), x=x, y=CONTENT_TOP, w=w, h=h)

    def _draw_placeholder(self, asset_type: str):
        x, y, w, h = PLACEHOLDER_BOX
        self._pdf.set_draw_color(255, 0, 0)
        self._pdf.set_line_width(2)
        self._pdf.rect(x, y, w, h)
        self._text(x + 20, y + 100, "DIAGRAM UNAVAILABLE", size=20, style="B", color=(255, 0, 0))
        self._text(
            x + 20, y + 125,
            f"(System could not load template for: {asset_type})",
            size=10,
        )

    def _decorate_page(self):
        # Every role, every page: stripping the image must not strip attribution
        self._draw_page_watermark()
        footer = (
            f"{self.org_name} PROPERTY - DO NOT DISTRIBUTE - DOWNLOADED BY {self.identity.user_label}"
            f" | JOB: {self.job_ref} | {today_iso(self.today)}"
        )
        self._text(MARGIN_X, self.page_h - 30, footer, size=8, color=(128, 128, 128))

    def _draw_page_watermark(self):
        step_x = max(180, math.floor(self.page_w / 3))
        step_y = max(220, math.floor(self.page_h / 3))
        y = -step_y
        while y < self.page_h + step_y:
            x = -step_x
            while x < self.page_w + step_x:
                with self._pdf.rotation(PAGE_WM_ANGLE, x=x, y=y):
                    for line, size, dy, alpha, color in zip(
                        self._wm_lines, PAGE_WM_SIZES, PAGE_WM_OFFSETS,
                        PAGE_WM_OPACITIES, PAGE_WM_COLORS,
                    ):
                        with self._pdf.local_context(fill_opacity=alpha):
                            self._text(x, y + dy, line, size=size, style="B" if dy == 0 else "",
                                       color=color)
                x += step_x
            y += step_y

    def build(self) -> bytes:
        return bytes(self._pdf.output())
