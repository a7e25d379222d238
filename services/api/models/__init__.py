from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    ADMIN = "admin"
    INTERNAL = "internal"
    CLIENT = "client"
    MANUFACTURING = "manufacturing"


class SurveyStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    SYNCED = "synced"


class IdentityContext(BaseModel):
    """
    Who is looking at / exporting a document.

    Supplied per request by the auth layer and threaded explicitly through
    compositor, assembler and endpoint. Immutable for one export or one
    viewing session.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role = Role.CLIENT
    company_name: str = "Unknown Company"
    email: Optional[str] = None

    @property
    def user_label(self) -> str:
        return self.email or self.user_id


class Profile(BaseModel):
    """
    Domain model for a row of the `profiles` table.
    """
    id: str
    role: Role = Role.CLIENT
    company_name: Optional[str] = None
    license_status: str = "active"
    email: Optional[str] = None


class Survey(BaseModel):
    """
    Domain model for a row of the `surveys` table. Read-only during export.
    """
    id: str
    client_name: str = ""
    site_name: str = ""
    site_address: Optional[str] = None
    survey_date: Optional[str] = None  # YYYY-MM-DD
    surveyor_name: str = ""
    project_reference: Optional[str] = None
    general_notes: Optional[str] = None
    status: SurveyStatus = SurveyStatus.IN_PROGRESS


class Asset(BaseModel):
    """
    Domain model for a row of the `assets` table.
    One asset -> exactly one page of the exported report.
    """
    id: str
    survey_id: str
    asset_tag: str
    asset_type: str
    quantity: int = 1
    location_area: Optional[str] = None
    service: Optional[str] = None
    complexity_level: int = Field(1, ge=1, le=2)

    obstruction_present: bool = False
    obstruction_type: Optional[str] = None
    obstruction_offset_mm: Optional[Union[float, str]] = None
    obstruction_notes: Optional[str] = None

    cap_end_required: bool = False
    cap_end_notes: Optional[str] = None
