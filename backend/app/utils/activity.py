"""Lightweight helper for recording SOP task activity.

Usage:
    log_task_activity(
        db, user, task,
        action="status_change", old_value="pending", new_value="in_progress",
    )

The row is added to the current session and committed with the
enclosing transaction: no extra flush is performed.  The matching
change event is queued alongside it so viewers refetch after commit.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile
from app.models.sop import SOPTask, SOPTaskActivity
from app.services.realtime import queue_change


def log_task_activity(
    db: AsyncSession,
    user: Profile,
    task: SOPTask,
    *,
    action: str,
    old_value: str | None = None,
    new_value: str | None = None,
    change: str = "update",
) -> None:
    """Append an activity entry and queue a change for the task's SOP."""
    db.add(
        SOPTaskActivity(
            task_id=task.id,
            activated_sop_id=task.activated_sop_id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            performed_by=user.id,
        )
    )
    queue_change(db, "sop_tasks", task.activated_sop_id, task.id, change)
