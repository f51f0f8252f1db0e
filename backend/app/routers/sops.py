"""Activated SOPs: the live response checklist.

Endpoints (under /api/communities):
  GET    /{cid}/sops                              → list activations
  POST   /{cid}/sops                              → activate a template
  GET    /{cid}/sops/{sop_id}                     → checklist snapshot
  GET    /{cid}/sops/{sop_id}/activity            → task audit trail
  POST   /{cid}/sops/{sop_id}/complete | /archive
  POST   /{cid}/sops/{sop_id}/tasks               → add task
  PUT    /{cid}/sops/{sop_id}/tasks/order         → reorder (full list)
  PATCH  /{cid}/sops/{sop_id}/tasks/{tid}/status  → set status
  POST   /{cid}/sops/{sop_id}/tasks/{tid}/cycle   → next status
  PUT    /{cid}/sops/{sop_id}/tasks/{tid}/assignee
  PUT    /{cid}/sops/{sop_id}/tasks/{tid}/team-lead
  POST   /{cid}/sops/{sop_id}/tasks/{tid}/notes
  DELETE /{cid}/sops/{sop_id}/tasks/{tid}

Websocket (under /api/sops):
  /{sop_id}/live?token=...  → full snapshot on connect and after every change

Team members and admins edit any task; plain members may change status
and add notes on tasks assigned to them.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.deps import require_community_role
from app.auth.jwt import decode_token
from app.auth.permissions import ANY_MEMBER, SUPER_ADMIN, TEAM, role_allows
from app.database import get_db, get_session_factory
from app.models.community import CommunityMember
from app.models.profile import Profile
from app.models.sop import ActivatedSOP, SOPTask, SOPTaskActivity
from app.schemas.sop import (
    ActivatedSOPOut,
    ActivateSOPRequest,
    ChecklistOut,
    CompleteSOPRequest,
    SOPTaskOut,
    TaskActivityOut,
    TaskAssignment,
    TaskCreate,
    TaskNoteIn,
    TaskReorder,
    TaskStatusUpdate,
    Versioned,
)
from app.services import sop as sop_service
from app.services.realtime import LiveChecklist, commit_and_publish, get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter()
live_router = APIRouter()


def _is_team(user: Profile) -> bool:
    member = getattr(user, "_membership", None)
    return user.role == SUPER_ADMIN or role_allows(member.role if member else None, TEAM)


def _require_task_access(user: Profile, task: SOPTask) -> None:
    if _is_team(user) or task.assigned_to_id == user.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Only the response team or the assignee can change this task",
    )


# ── Activations ──────────────────────────────────────────────

@router.get("/{community_id}/sops", response_model=list[ActivatedSOPOut])
async def list_sops(
    community_id: str,
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    stmt = select(ActivatedSOP).where(ActivatedSOP.community_id == community_id)
    if status_filter:
        stmt = stmt.where(ActivatedSOP.status == status_filter)
    result = await db.execute(stmt.order_by(ActivatedSOP.activated_at.desc()))
    return [ActivatedSOPOut.model_validate(s) for s in result.scalars().all()]


@router.post("/{community_id}/sops", response_model=ChecklistOut, status_code=status.HTTP_201_CREATED)
async def activate_sop(
    community_id: str,
    body: ActivateSOPRequest,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.activate_sop(
        db, user, community_id, body.template_id, body.event_name, body.event_date
    )
    await commit_and_publish(db)
    return await sop_service.load_checklist(db, sop.id)


@router.get("/{community_id}/sops/{sop_id}", response_model=ChecklistOut)
async def get_checklist(
    community_id: str,
    sop_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    await sop_service.get_sop(db, community_id, sop_id)
    return await sop_service.load_checklist(db, sop_id)


@router.get("/{community_id}/sops/{sop_id}/activity", response_model=list[TaskActivityOut])
async def get_activity(
    community_id: str,
    sop_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    await sop_service.get_sop(db, community_id, sop_id)
    result = await db.execute(
        select(SOPTaskActivity)
        .where(SOPTaskActivity.activated_sop_id == sop_id)
        .order_by(SOPTaskActivity.created_at.desc())
        .limit(limit)
    )
    return [TaskActivityOut.model_validate(a) for a in result.scalars().all()]


@router.post("/{community_id}/sops/{sop_id}/complete", response_model=ActivatedSOPOut)
async def complete_sop(
    community_id: str,
    sop_id: str,
    body: CompleteSOPRequest,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    await sop_service.complete_sop(db, user, sop, body.completion_notes)
    await commit_and_publish(db)
    return ActivatedSOPOut.model_validate(sop)


@router.post("/{community_id}/sops/{sop_id}/archive", response_model=ActivatedSOPOut)
async def archive_sop(
    community_id: str,
    sop_id: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    await sop_service.archive_sop(db, user, sop)
    await commit_and_publish(db)
    return ActivatedSOPOut.model_validate(sop)


# ── Tasks ────────────────────────────────────────────────────

@router.post(
    "/{community_id}/sops/{sop_id}/tasks",
    response_model=SOPTaskOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_task(
    community_id: str,
    sop_id: str,
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.add_task(
        db, user, sop, body.title, body.description, body.estimated_duration_minutes, body.category
    )
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.put("/{community_id}/sops/{sop_id}/tasks/order", response_model=list[SOPTaskOut])
async def reorder_tasks(
    community_id: str,
    sop_id: str,
    body: TaskReorder,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    tasks = await sop_service.reorder_tasks(db, user, sop, body.task_ids)
    await commit_and_publish(db)
    return [SOPTaskOut.model_validate(t) for t in tasks]


@router.patch("/{community_id}/sops/{sop_id}/tasks/{task_id}/status", response_model=SOPTaskOut)
async def set_task_status(
    community_id: str,
    sop_id: str,
    task_id: str,
    body: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    _require_task_access(user, task)
    await sop_service.set_status(db, user, sop, task, body.status, body.expected_version)
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.post("/{community_id}/sops/{sop_id}/tasks/{task_id}/cycle", response_model=SOPTaskOut)
async def cycle_task_status(
    community_id: str,
    sop_id: str,
    task_id: str,
    body: Versioned,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    _require_task_access(user, task)
    await sop_service.cycle_status(db, user, sop, task, body.expected_version)
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.put("/{community_id}/sops/{sop_id}/tasks/{task_id}/assignee", response_model=SOPTaskOut)
async def assign_task(
    community_id: str,
    sop_id: str,
    task_id: str,
    body: TaskAssignment,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    await sop_service.assign_task(db, user, sop, task, body.user_id, body.expected_version)
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.put("/{community_id}/sops/{sop_id}/tasks/{task_id}/team-lead", response_model=SOPTaskOut)
async def set_team_lead(
    community_id: str,
    sop_id: str,
    task_id: str,
    body: TaskAssignment,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    await sop_service.set_team_lead(db, user, sop, task, body.user_id, body.expected_version)
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.post("/{community_id}/sops/{sop_id}/tasks/{task_id}/notes", response_model=SOPTaskOut)
async def add_note(
    community_id: str,
    sop_id: str,
    task_id: str,
    body: TaskNoteIn,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    _require_task_access(user, task)
    await sop_service.add_note(db, user, sop, task, body.text, body.expected_version)
    await commit_and_publish(db)
    return SOPTaskOut.model_validate(task)


@router.delete(
    "/{community_id}/sops/{sop_id}/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_task(
    community_id: str,
    sop_id: str,
    task_id: str,
    expected_version: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    sop = await sop_service.get_sop(db, community_id, sop_id)
    task = await sop_service.get_task(db, sop_id, task_id)
    await sop_service.delete_task(db, user, sop, task, expected_version)
    await commit_and_publish(db)


# ── Live checklist ───────────────────────────────────────────

async def _authorize_viewer(
    session_factory: async_sessionmaker[AsyncSession], token: str, sop_id: str
) -> bool:
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        return False
    async with session_factory() as db:
        user = await db.get(Profile, user_id)
        sop = await db.get(ActivatedSOP, sop_id)
        if not user or not user.is_active or not sop:
            return False
        if user.role == SUPER_ADMIN:
            return True
        member = await db.scalar(
            select(CommunityMember.id).where(
                CommunityMember.community_id == sop.community_id,
                CommunityMember.user_id == user.id,
            )
        )
        return member is not None


@live_router.websocket("/{sop_id}/live")
async def live_checklist(
    websocket: WebSocket,
    sop_id: str,
    token: str = Query(...),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    if not await _authorize_viewer(session_factory, token, sop_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    async def fetch() -> dict:
        async with session_factory() as db:
            checklist = await sop_service.load_checklist(db, sop_id)
            return checklist.model_dump(mode="json")

    async def push(snapshot: dict) -> None:
        await websocket.send_json({"type": "snapshot", "data": snapshot})

    live = LiveChecklist(get_change_feed(), sop_id, fetch, push)
    runner = asyncio.create_task(live.run())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live checklist viewer for %s disconnected", sop_id)
    finally:
        runner.cancel()
        live.close()
