"""SOP activation and live checklist operations.

Activation copies a template's task list into `SOPTask` rows for one
emergency event.  From then on the checklist is edited concurrently by
the response team:

    status cycle      pending → in_progress → completed → pending
                      skipped → pending
    completion        entering `completed` stamps completed_at/by;
                      returning to pending/in_progress clears them
    notes             append-only, entries separated by a blank line
    ordering          task_order is 1..n after any reorder

Every task write bumps `SOPTask.version` (the mapper's version column, so
the UPDATE only matches the version this session read).  Callers may also
pass the version they last saw as `expected_version`.  Either mismatch
raises ConflictError.
Every write also records a `SOPTaskActivity` row and queues a change
event (published by the router after commit).
"""

import logging
from datetime import date, datetime
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.middleware.exceptions import (
    BusinessLogicError,
    ConflictError,
    ResourceNotFoundError,
)
from app.models.community import CommunityMember
from app.models.guide import CommunityGuide
from app.models.profile import Profile
from app.models.sop import ActivatedSOP, SOPTask, SOPTemplate
from app.schemas.sop import (
    ActivatedSOPOut,
    ChecklistOut,
    ChecklistProgress,
    SOPTaskOut,
    TemplateTask,
)
from app.services.realtime import queue_change
from app.utils.activity import log_task_activity

logger = logging.getLogger(__name__)

TASK_STATUSES = ("pending", "in_progress", "completed", "skipped")

_NEXT_STATUS = {
    "pending": "in_progress",
    "in_progress": "completed",
    "completed": "pending",
    "skipped": "pending",
}

Clock = Callable[[], datetime]


def next_status(status: str) -> str:
    try:
        return _NEXT_STATUS[status]
    except KeyError:
        raise BusinessLogicError(f"Unknown task status: {status}") from None


def default_event_name(guide_name: str, on: date) -> str:
    """e.g. "Flood Emergency - 3 Mar 2025"."""
    return f"{guide_name} - {on.day} {on.strftime('%b %Y')}"


def format_note(text: str, author: str, at: datetime) -> str:
    return f"{text}\n{at.strftime('%d/%m/%Y, %H:%M:%S')} - {author}"


def append_note(existing: str | None, entry: str) -> str:
    return f"{existing}\n\n{entry}" if existing else entry


# ── Lookups ──────────────────────────────────────────────────

async def get_sop(db: AsyncSession, community_id: str, sop_id: str) -> ActivatedSOP:
    result = await db.execute(
        select(ActivatedSOP).where(
            ActivatedSOP.id == sop_id,
            ActivatedSOP.community_id == community_id,
        )
    )
    sop = result.scalar_one_or_none()
    if not sop:
        raise ResourceNotFoundError("SOP", sop_id)
    return sop


async def get_task(db: AsyncSession, sop_id: str, task_id: str) -> SOPTask:
    result = await db.execute(
        select(SOPTask).where(SOPTask.id == task_id, SOPTask.activated_sop_id == sop_id)
    )
    task = result.scalar_one_or_none()
    if not task:
        raise ResourceNotFoundError("Task", task_id)
    return task


async def list_tasks(db: AsyncSession, sop_id: str) -> list[SOPTask]:
    result = await db.execute(
        select(SOPTask)
        .where(SOPTask.activated_sop_id == sop_id)
        .order_by(SOPTask.task_order, SOPTask.created_at)
    )
    return list(result.scalars().all())


async def load_checklist(db: AsyncSession, sop_id: str) -> ChecklistOut:
    """Full snapshot of one activated SOP: header, ordered tasks, progress."""
    sop = await db.get(ActivatedSOP, sop_id, populate_existing=True)
    if not sop:
        raise ResourceNotFoundError("SOP", sop_id)
    result = await db.execute(
        select(SOPTask)
        .where(SOPTask.activated_sop_id == sop_id)
        .order_by(SOPTask.task_order, SOPTask.created_at)
        .execution_options(populate_existing=True)
    )
    tasks = list(result.scalars().all())
    completed = sum(1 for t in tasks if t.status == "completed")
    total = len(tasks)
    return ChecklistOut(
        sop=ActivatedSOPOut.model_validate(sop),
        tasks=[SOPTaskOut.model_validate(t) for t in tasks],
        progress=ChecklistProgress(
            completed=completed,
            total=total,
            percent=round(completed * 100 / total) if total else 0,
        ),
    )


def _require_active(sop: ActivatedSOP) -> None:
    if sop.status != "active":
        raise BusinessLogicError(f"SOP is {sop.status}; only active SOPs can be changed")


def _check_version(task: SOPTask, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != task.version:
        raise ConflictError(
            f"Task was changed by someone else (version {task.version}, "
            f"you had {expected_version}). Refresh and try again.",
            error_code="TASK_VERSION_CONFLICT",
            details={"task_id": task.id, "current_version": task.version},
        )


async def _flush_task(db: AsyncSession, task_id: str | None = None) -> None:
    """Flush task writes; a row whose version moved underneath us is a conflict."""
    try:
        await db.flush()
    except StaleDataError:
        raise ConflictError(
            "Task was changed by someone else. Refresh and try again.",
            error_code="TASK_VERSION_CONFLICT",
            details={"task_id": task_id} if task_id else None,
        ) from None


async def _require_member(db: AsyncSession, community_id: str, user_id: str) -> None:
    result = await db.execute(
        select(CommunityMember.id).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise BusinessLogicError("Assignee must be a member of this community")


# ── Templates ────────────────────────────────────────────────

async def save_template(
    db: AsyncSession,
    user: Profile,
    guide: CommunityGuide,
    name: str,
    description: str | None,
    tasks: list[TemplateTask],
) -> SOPTemplate:
    """Create or replace the SOP template attached to a guide."""
    result = await db.execute(select(SOPTemplate).where(SOPTemplate.guide_id == guide.id))
    template = result.scalar_one_or_none()
    payload = [t.model_dump() for t in sorted(tasks, key=lambda t: t.order)]
    if template is None:
        template = SOPTemplate(
            community_id=guide.community_id,
            guide_id=guide.id,
            name=name,
            description=description,
            tasks=payload,
            created_by=user.id,
            updated_by=user.id,
        )
        db.add(template)
    else:
        template.name = name
        template.description = description
        template.tasks = payload
        template.updated_by = user.id
    await db.flush()
    return template


# ── Activation / SOP lifecycle ───────────────────────────────

async def activate_sop(
    db: AsyncSession,
    user: Profile,
    community_id: str,
    template_id: str,
    event_name: str | None = None,
    event_date: date | None = None,
) -> ActivatedSOP:
    result = await db.execute(
        select(SOPTemplate).where(
            SOPTemplate.id == template_id,
            SOPTemplate.community_id == community_id,
        )
    )
    template = result.scalar_one_or_none()
    if not template:
        raise ResourceNotFoundError("SOP template", template_id)
    if not template.tasks:
        raise BusinessLogicError("This SOP template has no tasks to activate")

    guide = await db.get(CommunityGuide, template.guide_id)
    if not guide:
        raise ResourceNotFoundError("Guide", template.guide_id)

    event_date = event_date or date.today()
    if event_name is None:
        event_name = default_event_name(guide.name, event_date)
    event_name = event_name.strip()
    if not event_name:
        raise BusinessLogicError("Event name is required")

    sop = ActivatedSOP(
        community_id=community_id,
        template_id=template.id,
        guide_id=guide.id,
        event_name=event_name,
        event_date=event_date,
        emergency_type=guide.guide_type,
        status="active",
        activated_by=user.id,
    )
    db.add(sop)
    await db.flush()

    ordered = sorted(enumerate(template.tasks), key=lambda it: (it[1].get("order", it[0]), it[0]))
    for index, item in ordered:
        db.add(
            SOPTask(
                activated_sop_id=sop.id,
                community_id=community_id,
                title=item["title"],
                description=item.get("description"),
                task_order=item.get("order", index + 1),
                estimated_duration_minutes=item.get("estimated_duration_minutes"),
                category=item.get("category") or "other",
                status="pending",
            )
        )
    await db.flush()

    queue_change(db, "activated_sops", sop.id, sop.id, "insert")
    logger.info(
        "Activated SOP %s (%s) with %d tasks for community %s",
        sop.id, event_name, len(template.tasks), community_id,
    )
    return sop


async def complete_sop(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    completion_notes: str | None = None,
    now: Clock = datetime.utcnow,
) -> ActivatedSOP:
    _require_active(sop)
    sop.status = "completed"
    sop.completed_at = now()
    sop.completed_by = user.id
    sop.completion_notes = completion_notes
    await db.flush()
    queue_change(db, "activated_sops", sop.id, sop.id, "update")
    return sop


async def archive_sop(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    now: Clock = datetime.utcnow,
) -> ActivatedSOP:
    if sop.status == "archived":
        raise BusinessLogicError("SOP is already archived")
    sop.status = "archived"
    sop.archived_at = now()
    sop.archived_by = user.id
    await db.flush()
    queue_change(db, "activated_sops", sop.id, sop.id, "update")
    return sop


# ── Task edits ───────────────────────────────────────────────

async def set_status(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    status: str,
    expected_version: int | None = None,
    now: Clock = datetime.utcnow,
) -> SOPTask:
    if status not in TASK_STATUSES:
        raise BusinessLogicError(f"Unknown task status: {status}")
    _require_active(sop)
    _check_version(task, expected_version)

    old = task.status
    task.status = status
    if status == "completed":
        task.completed_at = now()
        task.completed_by = user.id
    elif status in ("pending", "in_progress"):
        task.completed_at = None
        task.completed_by = None

    log_task_activity(db, user, task, action="status_change", old_value=old, new_value=status)
    await _flush_task(db, task.id)
    return task


async def cycle_status(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    expected_version: int | None = None,
    now: Clock = datetime.utcnow,
) -> SOPTask:
    return await set_status(
        db, user, sop, task, next_status(task.status), expected_version, now=now
    )


async def assign_task(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    assignee_id: str | None,
    expected_version: int | None = None,
) -> SOPTask:
    _require_active(sop)
    _check_version(task, expected_version)
    if assignee_id is not None:
        await _require_member(db, sop.community_id, assignee_id)

    old = task.assigned_to_id
    task.assigned_to_id = assignee_id
    log_task_activity(
        db, user, task, action="assignment_change", old_value=old, new_value=assignee_id
    )
    await _flush_task(db, task.id)
    return task


async def set_team_lead(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    lead_id: str | None,
    expected_version: int | None = None,
) -> SOPTask:
    _require_active(sop)
    _check_version(task, expected_version)
    if lead_id is not None:
        await _require_member(db, sop.community_id, lead_id)

    old = task.team_lead_id
    task.team_lead_id = lead_id
    log_task_activity(
        db, user, task, action="team_lead_change", old_value=old, new_value=lead_id
    )
    await _flush_task(db, task.id)
    return task


async def add_note(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    text: str,
    expected_version: int | None = None,
    now: Clock = datetime.now,
) -> SOPTask:
    text = text.strip()
    if not text:
        raise BusinessLogicError("Note cannot be empty")
    _require_active(sop)
    _check_version(task, expected_version)

    task.notes = append_note(task.notes, format_note(text, user.display_name, now()))
    log_task_activity(db, user, task, action="note_added", new_value=text)
    await _flush_task(db, task.id)
    return task


async def add_task(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    title: str,
    description: str | None = None,
    estimated_duration_minutes: int | None = None,
    category: str = "other",
) -> SOPTask:
    _require_active(sop)
    title = title.strip()
    if not title:
        raise BusinessLogicError("Task title is required")

    max_order = await db.scalar(
        select(func.max(SOPTask.task_order)).where(SOPTask.activated_sop_id == sop.id)
    )
    task = SOPTask(
        activated_sop_id=sop.id,
        community_id=sop.community_id,
        title=title,
        description=description,
        estimated_duration_minutes=estimated_duration_minutes,
        category=category,
        task_order=(max_order or 0) + 1,
        status="pending",
    )
    db.add(task)
    await db.flush()
    log_task_activity(db, user, task, action="task_added", new_value=title, change="insert")
    return task


async def delete_task(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task: SOPTask,
    expected_version: int | None = None,
) -> None:
    _require_active(sop)
    _check_version(task, expected_version)
    log_task_activity(db, user, task, action="task_deleted", old_value=task.title, change="delete")
    await db.delete(task)
    await _flush_task(db, task.id)


async def reorder_tasks(
    db: AsyncSession,
    user: Profile,
    sop: ActivatedSOP,
    task_ids: list[str],
) -> list[SOPTask]:
    """Apply a full ordering; tasks are renumbered 1..n."""
    _require_active(sop)
    tasks = await list_tasks(db, sop.id)
    by_id = {t.id: t for t in tasks}
    if len(task_ids) != len(set(task_ids)) or set(task_ids) != set(by_id):
        raise BusinessLogicError("Reorder must list every task of this SOP exactly once")

    for position, task_id in enumerate(task_ids, start=1):
        task = by_id[task_id]
        if task.task_order == position:
            continue
        old = task.task_order
        task.task_order = position
        log_task_activity(
            db, user, task, action="reordered", old_value=str(old), new_value=str(position)
        )
    await _flush_task(db)
    return [by_id[i] for i in task_ids]
