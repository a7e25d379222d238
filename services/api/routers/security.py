# services/api/routers/security.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from main import get_optional_claims, get_store  # DI from main
from core.auth import resolve_identity
from core.errors import ExportError
from core.security_guard import ScreenshotGuard
from schemas import SecurityEventIn, SecurityEventOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/security", tags=["security"])


@router.post("/events", response_model=SecurityEventOut)
async def report_event(
    body: SecurityEventIn,
    claims: Optional[Dict[str, Any]] = Depends(get_optional_claims),
    storage=Depends(get_store),
):
    """
    Deterrence hook for the viewer. Never errors on the client: an
    anonymous caller or a failed audit write just yields success=false.
    """
    if claims is None:
        return SecurityEventOut(success=False)

    try:
        identity = resolve_identity(claims, storage, enforce_license=False)
    except ExportError as e:
        logger.warning(f"Security event dropped, identity unresolved: {e}")
        return SecurityEventOut(success=False)

    guard = ScreenshotGuard(storage)
    if body.event == "focus":
        resp = guard.handle_focus(bool(body.focused))
    else:
        resp = guard.handle_key(identity, key=body.key, meta=body.meta, shift=body.shift, path=body.path)

    # A detected attempt counts as handled only once it reached the audit log
    success = resp.logged if resp.detected else True
    return SecurityEventOut(success=success, **resp.to_dict())
