"""Pydantic schemas for the community onboarding wizard.

`WizardData` is the whole in-progress form: every step writes into the
same bag, and the bag is what gets persisted as a draft.  All fields have
defaults so an empty wizard is a valid (progress-free) `WizardData()`.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.validators import validate_email, validate_hex_color

DisasterType = Literal[
    "fire",
    "flood",
    "strong_winds",
    "earthquake",
    "tsunami",
    "snow",
    "pandemic",
    "solar_storm",
    "invasion",
]

InviteRole = Literal["member", "team_member", "admin"]


# ── Step inputs ─────────────────────────────────────────────

class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class RiskAssessment(BaseModel):
    type: DisasterType
    severity: Literal["low", "medium", "high"]
    description: str = ""
    recommended_actions: list[str] = []


class AIAnalysis(BaseModel):
    risks: list[RiskAssessment] = []
    regional_info: str = ""


class GroupInput(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    color: str = "#3B82F6"
    icon: str = "group"

    @field_validator("color")
    @classmethod
    def _color(cls, v: str) -> str:
        return validate_hex_color(v)


class InvitationInput(BaseModel):
    email: str
    role: InviteRole = "member"
    name: str | None = None
    group_name: str | None = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return validate_email(v)


class WizardData(BaseModel):
    # Step 1: Basic info
    community_name: str = ""
    description: str = ""
    location: str = ""
    meeting_point_name: str = ""
    meeting_point_address: str = ""
    meeting_point_lat: float | None = None
    meeting_point_lng: float | None = None

    # Step 2: Risk assessment
    selected_risks: list[DisasterType] = []
    ai_analysis: AIAnalysis | None = None
    # {hazard: {"enhanced_sections": {...}, "additional_supplies": [...], ...}}
    guide_customizations: dict[str, Any] | None = None

    # Step 3: Area definition
    region_polygon: list[LatLng] | None = None
    region_color: str = "#3B82F6"
    region_opacity: float = Field(default=0.3, ge=0, le=1)

    # Step 4: Groups
    groups: list[GroupInput] = []

    # Step 5: Invitations
    invitations: list[InvitationInput] = []

    # Post-completion promotion
    promo: dict[str, Any] | None = None

    @field_validator("region_color")
    @classmethod
    def _region_color(cls, v: str) -> str:
        return validate_hex_color(v)

    @field_validator("invitations")
    @classmethod
    def _unique_emails(cls, v: list[InvitationInput]) -> list[InvitationInput]:
        seen: set[str] = set()
        for inv in v:
            if inv.email in seen:
                raise ValueError(f"This email has already been added: {inv.email}")
            seen.add(inv.email)
        return v


class WizardDataPatch(BaseModel):
    """Partial update: only the fields that are sent are applied."""

    community_name: str | None = None
    description: str | None = None
    location: str | None = None
    meeting_point_name: str | None = None
    meeting_point_address: str | None = None
    meeting_point_lat: float | None = None
    meeting_point_lng: float | None = None
    selected_risks: list[DisasterType] | None = None
    ai_analysis: AIAnalysis | None = None
    guide_customizations: dict[str, Any] | None = None
    region_polygon: list[LatLng] | None = None
    region_color: str | None = None
    region_opacity: float | None = None
    groups: list[GroupInput] | None = None
    invitations: list[InvitationInput] | None = None


# ── Persisted shapes ────────────────────────────────────────

class WizardDraft(BaseModel):
    data: WizardData
    current_step: int = Field(ge=1)
    saved_at: datetime


class CompletionMarker(BaseModel):
    data: WizardData
    community_id: str | None = None
    saved_at: datetime


# ── Responses ───────────────────────────────────────────────

class StepOut(BaseModel):
    id: int
    name: str
    description: str
    optional: bool


class WizardView(BaseModel):
    phase: str
    current_step: int
    total_steps: int
    steps: list[StepOut]
    can_advance: bool
    advancing: bool = False
    data: WizardData
    pending_draft: WizardDraft | None = None
    community_id: str | None = None
    error: str | None = None


class AnalyzeRisksRequest(BaseModel):
    location: str | None = None
