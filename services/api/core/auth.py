# services/api/core/auth.py
"""
Session tokens and identity resolution.

A session is an HS256 JWT (`sub` = user id, optional `email`) carried either
as `Authorization: Bearer <token>` or in the session cookie. The caller's
role and company come from the `profiles` table, never from the token.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Tuple

import jwt

from adapters.base import SurveyStore
from core.errors import LicenseInactive, Unauthorized
from models import IdentityContext, Role
from models.converters import profile_from_row

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"


class TokenError(Exception):
    """Raised when a JWT token cannot be validated."""


def _now() -> int:
    return int(time.time())


def create_session_token(
    *,
    user_id: str,
    secret: str,
    email: Optional[str] = None,
    algorithm: str = "HS256",
    ttl: int = 3600,
) -> Tuple[str, int]:
    issued_at = _now()
    payload: Dict[str, object] = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + ttl,
        "typ": "access",
    }
    if email:
        payload["email"] = email
    token = jwt.encode(payload, secret, algorithm=algorithm)
    if isinstance(token, bytes):
        return token.decode("utf-8"), payload["exp"]
    return token, payload["exp"]


def decode_session_token(token: str, *, secret: str, algorithm: str = "HS256") -> Dict[str, object]:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as exc:
        raise TokenError(str(exc)) from exc
    if payload.get("typ") not in (None, "access"):
        raise TokenError("Invalid token type for access token")
    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload


def extract_token(authorization: Optional[str], cookie_value: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return cookie_value or None


def authenticate(token: Optional[str], *, secret: str, algorithm: str = "HS256") -> Dict[str, object]:
    """Claims for a valid session, else Unauthorized."""
    if not token:
        raise Unauthorized("No session")
    try:
        return decode_session_token(token, secret=secret, algorithm=algorithm)
    except TokenError as e:
        logger.info(f"Rejected session token: {e}")
        raise Unauthorized("Invalid session") from e


def resolve_identity(
    claims: Dict[str, object],
    store: SurveyStore,
    *,
    enforce_license: bool = True,
) -> IdentityContext:
    """
    Build the caller's IdentityContext from token claims + profile row.

    Missing company name falls back to "Unknown Company" and a missing
    profile to the client role; neither fails the request.

    Raises:
        LicenseInactive: profile exists but license is not active
        QueryError: profile lookup itself failed
    """
    user_id = str(claims["sub"])
    email = claims.get("email")

    row = store.get_profile(user_id)
    if row is None:
        logger.warning(f"No profile for user {user_id}, defaulting to client role")
        return IdentityContext(
            user_id=user_id,
            role=Role.CLIENT,
            company_name=UNKNOWN_COMPANY,
            email=str(email) if email else None,
        )

    profile = profile_from_row(row)
    if enforce_license and profile.license_status != "active":
        raise LicenseInactive(f"License {profile.license_status} for {user_id}")

    return IdentityContext(
        user_id=user_id,
        role=profile.role,
        company_name=profile.company_name or UNKNOWN_COMPANY,
        email=str(email) if email else profile.email,
    )
