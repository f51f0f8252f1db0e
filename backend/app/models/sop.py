"""Standard operating procedures: templates, activations, live tasks.

Lifecycle:
  SOPTemplate    one per guide, tasks held as a JSON list
  ActivatedSOP   active → completed | archived
  SOPTask        pending → in_progress → completed (or skipped)

Task rows carry a `version` counter bumped on every write so clients can
detect that someone else changed the task since they last fetched it.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class SOPTemplate(Base):
    __tablename__ = "sop_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    guide_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("community_guides.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # [{"title", "description", "order", "estimated_duration_minutes", "category"}]
    tasks: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[str | None] = mapped_column(String(36))
    updated_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ActivatedSOP(Base):
    __tablename__ = "activated_sops"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sop_templates.id"), nullable=False, index=True
    )
    guide_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("community_guides.id"), nullable=False
    )

    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    event_date: Mapped[date] = mapped_column(Date, default=date.today)
    emergency_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # active | completed | archived
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    activated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime)
    completion_notes: Mapped[str | None] = mapped_column(Text)

    activated_by: Mapped[str] = mapped_column(String(36), nullable=False)
    completed_by: Mapped[str | None] = mapped_column(String(36))
    archived_by: Mapped[str | None] = mapped_column(String(36))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SOPTask(Base):
    __tablename__ = "sop_tasks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    activated_sop_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("activated_sops.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    community_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Copied from the template at activation ───────────────
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    task_order: Mapped[int] = mapped_column(Integer, default=0)
    estimated_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    # immediate | communication | logistics | safety | other
    category: Mapped[str | None] = mapped_column(String(30))

    # ── Assignment ───────────────────────────────────────────
    team_lead_id: Mapped[str | None] = mapped_column(String(36))
    assigned_to_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── Progress ─────────────────────────────────────────────
    # pending | in_progress | completed | skipped
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_by: Mapped[str | None] = mapped_column(String(36))

    # Append-only, blank-line separated entries
    notes: Mapped[str | None] = mapped_column(Text)

    # Set to 1 on insert and incremented by every UPDATE; a flush against a
    # stale version matches no row and raises StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}


class SOPTaskActivity(Base):
    """Immutable audit trail of task changes."""

    __tablename__ = "sop_task_activity"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    task_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    activated_sop_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # status_change | assignment_change | team_lead_change | note_added |
    # task_added | task_deleted | reordered
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text)
    new_value: Mapped[str | None] = mapped_column(Text)
    performed_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
