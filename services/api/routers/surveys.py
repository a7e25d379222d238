# services/api/routers/surveys.py
from __future__ import annotations

import asyncio
import io
import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from main import get_blob_store, get_identity, get_settings_dep, get_store  # DI from main
from core.errors import NotFoundError, QueryError
from core.report_pdf import assemble_report
from core.watermark import job_ref_or_default
from models import IdentityContext
from models.converters import asset_from_row, survey_from_row
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/surveys", tags=["surveys"])

Storage = Annotated[object, Depends(get_store)]
Blobs = Annotated[object, Depends(get_blob_store)]
Identity = Annotated[IdentityContext, Depends(get_identity)]
Config = Annotated[Settings, Depends(get_settings_dep)]

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]")


def export_filename(org_name: str, project_reference: str | None) -> str:
    ref = _UNSAFE_FILENAME.sub("_", job_ref_or_default(project_reference))
    org = _UNSAFE_FILENAME.sub("_", org_name)
    return f"{org}_Survey_{ref}.pdf"


def _load_survey(storage, survey_id: str):
    row = storage.get_survey(survey_id)
    if row is None:
        raise NotFoundError(f"Survey {survey_id} not found")
    assets = [asset_from_row(r) for r in storage.list_assets(survey_id)]
    return survey_from_row(row), assets


@router.get("/{survey_id}/export")
async def export_survey(
    survey_id: str,
    identity: Identity,
    storage: Storage,
    blob_store: Blobs,
    settings: Config,
):
    """
    Download the survey as a watermarked PDF, one page per asset.

    401 no session, 403 license inactive, 404 unknown survey,
    500 store failure. Missing diagrams never fail the export.
    """
    try:
        survey, assets = await asyncio.to_thread(_load_survey, storage, survey_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Survey not found")
    except QueryError as e:
        logger.error(f"Export {survey_id}: query failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch assets")

    try:
        pdf_bytes = await assemble_report(
            survey,
            assets,
            identity,
            blob_store,
            org_name=settings.org_name,
            bucket=settings.diagram_bucket,
            prefix=settings.diagram_prefix,
            extensions=settings.get_diagram_extensions(),
            font_path=settings.font_path(),
            max_parallel_fetches=settings.max_parallel_fetches,
        )
    except Exception:
        logger.exception(f"Export {survey_id}: report assembly failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to build report")

    filename = export_filename(settings.org_name, survey.project_reference)
    logger.info(f"Export {survey_id} by {identity.user_id}: {len(pdf_bytes)} bytes, {len(assets)} asset(s)")

    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )
