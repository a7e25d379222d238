from __future__ import annotations

from typing import Any, Dict

from . import Asset, Profile, Role, Survey, SurveyStatus


def _bool_from_row(v: Any) -> bool:
    """
    Convert stored boolean-ish cells to Python bool.
    Accepts: TRUE/FALSE, 1/0, yes/no, y/n (case-insensitive).
    """
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    s = str(v).strip().upper()
    return s in ("TRUE", "1", "YES", "Y")


def _role_from_row(v: Any) -> Role:
    try:
        return Role(str(v or "").strip().lower())
    except ValueError:
        return Role.CLIENT


def _int_or(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def profile_from_row(row: Dict[str, Any]) -> Profile:
    return Profile(
        id=str(row.get("id", "")),
        role=_role_from_row(row.get("role")),
        company_name=(row.get("company_name") or None),
        license_status=(row.get("license_status") or "active"),
        email=(row.get("email") or None),
    )


def survey_from_row(row: Dict[str, Any]) -> Survey:
    try:
        status = SurveyStatus(row.get("status") or "in_progress")
    except ValueError:
        status = SurveyStatus.IN_PROGRESS

    return Survey(
        id=str(row.get("id", "")),
        client_name=row.get("client_name") or "",
        site_name=row.get("site_name") or "",
        site_address=row.get("site_address") or None,
        survey_date=(str(row["survey_date"]) if row.get("survey_date") else None),
        surveyor_name=row.get("surveyor_name") or "",
        project_reference=row.get("project_reference") or None,
        general_notes=row.get("general_notes") or None,
        status=status,
    )


def asset_from_row(row: Dict[str, Any]) -> Asset:
    """
    Convert a raw `assets` row into an Asset.

    Rows written by older clients can carry junk in the numeric columns; those
    fall back to defaults rather than failing the whole export.
    """
    level = _int_or(row.get("complexity_level"), 1)
    return Asset(
        id=str(row.get("id", "")),
        survey_id=str(row.get("survey_id", "")),
        asset_tag=str(row.get("asset_tag") or ""),
        asset_type=str(row.get("asset_type") or ""),
        quantity=_int_or(row.get("quantity"), 1),
        location_area=row.get("location_area") or None,
        service=row.get("service") or None,
        complexity_level=level if level in (1, 2) else 1,

        obstruction_present=_bool_from_row(row.get("obstruction_present")),
        obstruction_type=row.get("obstruction_type") or None,
        obstruction_offset_mm=row.get("obstruction_offset_mm"),
        obstruction_notes=row.get("obstruction_notes") or None,

        cap_end_required=_bool_from_row(row.get("cap_end_required")),
        cap_end_notes=row.get("cap_end_notes") or None,
    )
