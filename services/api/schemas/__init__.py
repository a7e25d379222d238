"""
Pydantic schemas for API request/response validation.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ============ Security events ============


class SecurityEventIn(BaseModel):
    """A client-side deterrence event (key press or focus change)."""
    event: Literal["keydown", "focus"] = "keydown"
    key: Optional[str] = None
    meta: bool = False
    shift: bool = False
    focused: Optional[bool] = None
    path: str = Field("", max_length=2048, description="Route the user was on")

    @model_validator(mode="after")
    def check_focus(self):
        if self.event == "focus" and self.focused is None:
            raise ValueError("focus events require 'focused'")
        return self


class SecurityEventOut(BaseModel):
    success: bool
    detected: bool = False
    obscure: bool = False
    logged: bool = False
    message: Optional[str] = None


# ============ Viewer overlay ============


class OverlayOut(BaseModel):
    """Overlay description for the live viewer. Never contains image bytes."""
    mode: Literal["canvas", "svg"]
    width: float
    height: float
    show_diagonals: bool
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    css: Dict[str, Any] = Field(default_factory=dict)
