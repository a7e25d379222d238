# services/api/core/security_guard.py
"""
Best-effort screenshot deterrence.

Advisory telemetry, not a security boundary: every method here returns
normally, whatever the audit sink does.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from adapters.base import AuditSink
from models import IdentityContext

logger = logging.getLogger(__name__)

SCREENSHOT_ATTEMPT = "SCREENSHOT_ATTEMPT"

# macOS: Cmd+Shift+3 (full), +4 (region), +5 (capture bar)
_MAC_CAPTURE_KEYS = {"3", "4", "5"}

USER_WARNING = (
    "Security Watchdog:\n"
    "Unauthorised screen capture attempt detected and logged.\n"
    "This incident has been reported to the administrator."
)


def is_screenshot_combo(key: Optional[str], *, meta: bool = False, shift: bool = False) -> bool:
    if not key:
        return False
    if key == "PrintScreen":
        return True
    return meta and shift and key in _MAC_CAPTURE_KEYS


@dataclass
class GuardResponse:
    """What the client should do after an event."""
    detected: bool = False
    obscure: bool = False
    logged: bool = False
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "obscure": self.obscure,
            "logged": self.logged,
            "message": self.message,
        }


class ScreenshotGuard:
    def __init__(self, audit_sink: Optional[AuditSink]):
        self.audit_sink = audit_sink

    def report(self, identity: IdentityContext, action: str, metadata: Dict[str, Any]) -> bool:
        """Write one audit event. Never raises; returns whether it was stored."""
        if self.audit_sink is None:
            logger.warning(f"No audit sink configured, dropping {action} for {identity.user_id}")
            return False
        try:
            result = self.audit_sink.log_event(action, metadata, user_id=identity.user_id) or {}
        except Exception as e:
            logger.warning(f"Failed to write security log ({action}): {e}")
            return False
        if not result.get("success"):
            logger.warning(f"Audit sink rejected {action}: {result.get('error', 'unknown error')}")
            return False
        return True

    def handle_key(
        self,
        identity: IdentityContext,
        *,
        key: Optional[str],
        meta: bool = False,
        shift: bool = False,
        path: str = "",
    ) -> GuardResponse:
        if not is_screenshot_combo(key, meta=meta, shift=shift):
            return GuardResponse()

        logger.warning(f"Security Alert: screenshot attempt by {identity.user_id} on {path or '/'}")
        logged = self.report(
            identity,
            SCREENSHOT_ATTEMPT,
            {"path": path, "key": key, "role": identity.role.value},
        )
        return GuardResponse(detected=True, logged=logged, message=USER_WARNING)

    def handle_focus(self, focused: bool) -> GuardResponse:
        """Blur-on-focus-loss: obscure the page while the window is not focused."""
        return GuardResponse(obscure=not focused)
