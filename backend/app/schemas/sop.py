"""Pydantic schemas for SOP templates, activations and the live checklist."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

TaskStatus = Literal["pending", "in_progress", "completed", "skipped"]
TaskCategory = Literal["immediate", "communication", "logistics", "safety", "other"]


# ── Templates ────────────────────────────────────────────────

class TemplateTask(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    order: int = Field(ge=0)
    estimated_duration_minutes: int | None = Field(default=None, ge=0)
    category: TaskCategory = "other"


class SOPTemplateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    tasks: list[TemplateTask] = []


class SOPTemplateOut(BaseModel):
    id: str
    community_id: str
    guide_id: str
    name: str
    description: str | None
    tasks: list[dict]
    is_active: bool
    updated_at: datetime | None

    model_config = {"from_attributes": True}


# ── Activation ───────────────────────────────────────────────

class ActivateSOPRequest(BaseModel):
    template_id: str
    event_name: str | None = None
    event_date: date | None = None


class ActivatedSOPOut(BaseModel):
    id: str
    community_id: str
    template_id: str
    guide_id: str
    event_name: str
    event_date: date
    emergency_type: str
    status: str
    activated_at: datetime
    activated_by: str
    completed_at: datetime | None
    completed_by: str | None
    archived_at: datetime | None
    completion_notes: str | None

    model_config = {"from_attributes": True}


class CompleteSOPRequest(BaseModel):
    completion_notes: str | None = None


# ── Tasks ────────────────────────────────────────────────────

class SOPTaskOut(BaseModel):
    id: str
    activated_sop_id: str
    title: str
    description: str | None
    task_order: int
    estimated_duration_minutes: int | None
    category: str | None
    team_lead_id: str | None
    assigned_to_id: str | None
    status: str
    completed_at: datetime | None
    completed_by: str | None
    notes: str | None
    version: int

    model_config = {"from_attributes": True}


class Versioned(BaseModel):
    """Omit `expected_version` for last-writer-wins."""

    expected_version: int | None = None


class TaskStatusUpdate(Versioned):
    status: TaskStatus


class TaskAssignment(Versioned):
    user_id: str | None = None


class TaskNoteIn(Versioned):
    text: str = Field(min_length=1, max_length=5000)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Note cannot be empty")
        return v.strip()


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    estimated_duration_minutes: int | None = Field(default=None, ge=0)
    category: TaskCategory = "other"

    @field_validator("title")
    @classmethod
    def _strip(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Task title is required")
        return v.strip()


class TaskReorder(BaseModel):
    task_ids: list[str] = Field(min_length=1)


class ChecklistProgress(BaseModel):
    completed: int
    total: int
    percent: int


class ChecklistOut(BaseModel):
    sop: ActivatedSOPOut
    tasks: list[SOPTaskOut]
    progress: ChecklistProgress


class TaskActivityOut(BaseModel):
    id: str
    task_id: str
    action: str
    old_value: str | None
    new_value: str | None
    performed_by: str
    created_at: datetime

    model_config = {"from_attributes": True}
