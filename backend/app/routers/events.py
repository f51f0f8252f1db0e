"""Community events: create with invitees in one transaction, notify after."""

import asyncio
import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_community_role
from app.auth.permissions import ANY_MEMBER, TEAM
from app.database import get_db
from app.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from app.models.community import CommunityMember
from app.models.event import CommunityEvent, EventInvite
from app.models.profile import Profile
from app.services import membership
from app.services.notifications import event_email, send_email

logger = logging.getLogger(__name__)


# ── Schemas ──────────────────────────────────────────────────

class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    event_type: Literal["meeting", "training", "drill", "social", "other"] = "meeting"
    start_time: datetime
    end_time: datetime | None = None
    location_name: str | None = None
    is_online: bool = False
    meeting_url: str | None = None
    visibility: Literal["all", "specific"] = "all"
    invitee_ids: list[str] = []
    notify: bool = True

    @model_validator(mode="after")
    def _check(self) -> "EventCreate":
        if self.end_time and self.end_time < self.start_time:
            raise ValueError("End time must be after start time")
        if self.is_online and not self.meeting_url:
            raise ValueError("Online events need a meeting link")
        if self.visibility == "specific" and not self.invitee_ids:
            raise ValueError("Select at least one member to invite")
        return self


class EventOut(BaseModel):
    id: str
    community_id: str
    title: str
    description: str | None
    event_type: str
    start_time: datetime
    end_time: datetime | None
    location_name: str | None
    is_online: bool
    meeting_url: str | None
    visibility: str
    created_by: str
    invite_count: int = 0

    model_config = {"from_attributes": True}


class RSVPUpdate(BaseModel):
    rsvp_status: Literal["going", "maybe", "declined"]


# ── Routes ───────────────────────────────────────────────────

router = APIRouter()


@router.get("/{community_id}/events", response_model=list[EventOut])
async def list_events(
    community_id: str,
    upcoming: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    stmt = select(CommunityEvent).where(CommunityEvent.community_id == community_id)
    if upcoming:
        stmt = stmt.where(CommunityEvent.start_time >= datetime.utcnow())
    result = await db.execute(stmt.order_by(CommunityEvent.start_time))
    return [EventOut.model_validate(e) for e in result.scalars().all()]


@router.post("/{community_id}/events", response_model=EventOut, status_code=status.HTTP_201_CREATED)
async def create_event(
    community_id: str,
    body: EventCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*TEAM)),
):
    community = await membership.get_community(db, community_id)

    members = await db.execute(
        select(CommunityMember.user_id).where(CommunityMember.community_id == community_id)
    )
    member_ids = {row[0] for row in members.all()}
    if body.visibility == "specific":
        unknown = set(body.invitee_ids) - member_ids
        if unknown:
            raise BusinessLogicError("Invitees must be members of this community")
        invitee_ids = set(body.invitee_ids)
    else:
        invitee_ids = member_ids
    invitee_ids.discard(user.id)

    event = CommunityEvent(
        community_id=community_id,
        created_by=user.id,
        **body.model_dump(exclude={"invitee_ids", "notify"}),
    )
    db.add(event)
    await db.flush()
    db.add(EventInvite(event_id=event.id, user_id=user.id, rsvp_status="going"))
    for uid in sorted(invitee_ids):
        db.add(EventInvite(event_id=event.id, user_id=uid))
    await db.commit()

    if body.notify and invitee_ids:
        result = await db.execute(select(Profile).where(Profile.id.in_(invitee_ids)))
        when = event.start_time.strftime("%A %d %B %Y, %H:%M")
        where = event.meeting_url if event.is_online else event.location_name
        subject, html = event_email(community.name, event.title, when, where)
        sent = await asyncio.gather(
            *(send_email(p.email, subject, html) for p in result.scalars().all())
        )
        logger.info("Event %s: %d of %d notifications sent", event.id, sum(sent), len(sent))

    out = EventOut.model_validate(event)
    out.invite_count = len(invitee_ids) + 1
    return out


@router.post("/{community_id}/events/{event_id}/rsvp", status_code=status.HTTP_204_NO_CONTENT)
async def rsvp(
    community_id: str,
    event_id: str,
    body: RSVPUpdate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    result = await db.execute(
        select(EventInvite)
        .join(CommunityEvent, CommunityEvent.id == EventInvite.event_id)
        .where(
            EventInvite.event_id == event_id,
            EventInvite.user_id == user.id,
            CommunityEvent.community_id == community_id,
        )
    )
    invite = result.scalar_one_or_none()
    if not invite:
        raise ResourceNotFoundError("Event invite", event_id)
    invite.rsvp_status = body.rsvp_status
    await db.flush()
