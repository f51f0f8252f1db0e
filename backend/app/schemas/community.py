from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.validators import sanitize_string, validate_email, validate_hex_color
from app.schemas.wizard import LatLng

CommunityRole = Literal["admin", "team_member", "member"]


class CommunityOut(BaseModel):
    id: str
    name: str
    description: str | None
    location: str | None
    latitude: float | None
    longitude: float | None
    is_public: bool
    member_count: int
    meeting_point_name: str | None
    meeting_point_address: str | None
    meeting_point_lat: float | None
    meeting_point_lng: float | None
    region_polygon: list[dict] | None
    region_color: str
    region_opacity: float
    created_by: str
    created_at: datetime
    user_role: str | None = None

    model_config = {"from_attributes": True}


class CommunityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    location: str | None = None
    is_public: bool | None = None
    meeting_point_name: str | None = None
    meeting_point_address: str | None = None
    meeting_point_lat: float | None = Field(default=None, ge=-90, le=90)
    meeting_point_lng: float | None = Field(default=None, ge=-180, le=180)
    region_polygon: list[LatLng] | None = None
    region_color: str | None = None
    region_opacity: float | None = Field(default=None, ge=0, le=1)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        return sanitize_string(v, 255) if v is not None else v

    @field_validator("region_color")
    @classmethod
    def _color(cls, v: str | None) -> str | None:
        return validate_hex_color(v) if v is not None else v

    @field_validator("region_polygon")
    @classmethod
    def _polygon(cls, v: list[LatLng] | None) -> list[LatLng] | None:
        if v is not None and len(v) < 3:
            raise ValueError("A region needs at least 3 points")
        return v


class MemberOut(BaseModel):
    id: str
    user_id: str
    role: str
    joined_at: datetime
    email: str | None = None
    full_name: str | None = None


class MemberRoleUpdate(BaseModel):
    role: CommunityRole


class InvitationCreate(BaseModel):
    email: str
    role: CommunityRole = "member"
    name: str | None = None
    group_name: str | None = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return validate_email(v)


class InvitationOut(BaseModel):
    id: str
    community_id: str
    email: str
    name: str | None
    role: str
    group_name: str | None
    status: str
    invited_by: str
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
