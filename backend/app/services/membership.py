"""Community membership, invitations and community deletion.

Admin invariant: a community always keeps at least one admin.  Removing
or demoting the last admin (including leaving as the last admin) is
rejected inside the same transaction that would have written it.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    BusinessLogicError,
    ConflictError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from app.models.alert import Alert
from app.models.community import (
    Community,
    CommunityGroup,
    CommunityInvitation,
    CommunityMapPoint,
    CommunityMember,
)
from app.models.event import CommunityEvent, EventInvite
from app.models.guide import CommunityGuide
from app.models.profile import Profile
from app.models.sop import ActivatedSOP, SOPTask, SOPTaskActivity, SOPTemplate
from app.services.community_setup import invitation_expiry, new_invitation_token

logger = logging.getLogger(__name__)

COMMUNITY_ROLES = ("admin", "team_member", "member")


async def get_community(db: AsyncSession, community_id: str) -> Community:
    community = await db.get(Community, community_id)
    if not community:
        raise ResourceNotFoundError("Community", community_id)
    return community


async def get_membership(
    db: AsyncSession, community_id: str, user_id: str
) -> CommunityMember | None:
    result = await db.execute(
        select(CommunityMember).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def _admin_count(db: AsyncSession, community_id: str) -> int:
    return await db.scalar(
        select(func.count(CommunityMember.id)).where(
            CommunityMember.community_id == community_id,
            CommunityMember.role == "admin",
        )
    ) or 0


async def _refresh_member_count(db: AsyncSession, community_id: str) -> None:
    count = await db.scalar(
        select(func.count(CommunityMember.id)).where(
            CommunityMember.community_id == community_id
        )
    )
    await db.execute(
        update(Community).where(Community.id == community_id).values(member_count=count or 0)
    )


async def _lock_admins(db: AsyncSession, community_id: str) -> list[str]:
    """Lock the community's admin rows until the transaction ends.

    Two admins demoting or removing each other serialise here, so the
    second one counts after the first has written.
    """
    result = await db.execute(
        select(CommunityMember.id)
        .where(
            CommunityMember.community_id == community_id,
            CommunityMember.role == "admin",
        )
        .order_by(CommunityMember.id)
        .with_for_update()
    )
    return list(result.scalars().all())


async def _guard_last_admin(db: AsyncSession, member: CommunityMember) -> None:
    if member.role != "admin":
        return
    await _lock_admins(db, member.community_id)
    if await _admin_count(db, member.community_id) <= 1:
        raise BusinessLogicError(
            "A community must keep at least one admin. Promote someone else first.",
            error_code="LAST_ADMIN",
        )


# ── Members ──────────────────────────────────────────────────

async def add_member(
    db: AsyncSession, community_id: str, user_id: str, role: str = "member"
) -> CommunityMember:
    if role not in COMMUNITY_ROLES:
        raise BusinessLogicError(f"Unknown role: {role}")
    existing = await get_membership(db, community_id, user_id)
    if existing:
        return existing
    member = CommunityMember(community_id=community_id, user_id=user_id, role=role)
    db.add(member)
    await db.flush()
    await _refresh_member_count(db, community_id)
    return member


async def join_community(db: AsyncSession, user: Profile, community: Community) -> CommunityMember:
    if not community.is_public:
        raise PermissionDeniedError("This community is invite-only")
    if await get_membership(db, community.id, user.id):
        raise ConflictError("You are already a member of this community")
    return await add_member(db, community.id, user.id, "member")


async def change_role(
    db: AsyncSession, community_id: str, user_id: str, role: str
) -> CommunityMember:
    if role not in COMMUNITY_ROLES:
        raise BusinessLogicError(f"Unknown role: {role}")
    member = await get_membership(db, community_id, user_id)
    if not member:
        raise ResourceNotFoundError("Member", user_id)
    if member.role == role:
        return member
    if role != "admin":
        await _guard_last_admin(db, member)
    member.role = role
    await db.flush()
    return member


async def remove_member(db: AsyncSession, community_id: str, user_id: str) -> None:
    member = await get_membership(db, community_id, user_id)
    if not member:
        raise ResourceNotFoundError("Member", user_id)
    await _guard_last_admin(db, member)
    await db.delete(member)
    await db.flush()
    await _refresh_member_count(db, community_id)


# ── Invitations ──────────────────────────────────────────────

async def create_invitation(
    db: AsyncSession,
    inviter: Profile,
    community_id: str,
    email: str,
    role: str = "member",
    name: str | None = None,
    group_name: str | None = None,
) -> CommunityInvitation:
    duplicate = await db.scalar(
        select(CommunityInvitation.id).where(
            CommunityInvitation.community_id == community_id,
            CommunityInvitation.email == email,
            CommunityInvitation.status == "pending",
        )
    )
    if duplicate:
        raise ConflictError(f"An invitation is already pending for {email}")

    already_member = await db.scalar(
        select(CommunityMember.id)
        .join(Profile, Profile.id == CommunityMember.user_id)
        .where(CommunityMember.community_id == community_id, Profile.email == email)
    )
    if already_member:
        raise ConflictError(f"{email} is already a member of this community")

    invitation = CommunityInvitation(
        community_id=community_id,
        email=email,
        name=name,
        role=role,
        group_name=group_name,
        token=new_invitation_token(),
        status="pending",
        invited_by=inviter.id,
        expires_at=invitation_expiry(),
    )
    db.add(invitation)
    await db.flush()
    return invitation


async def revoke_invitation(
    db: AsyncSession, community_id: str, invitation_id: str
) -> CommunityInvitation:
    invitation = await db.get(CommunityInvitation, invitation_id)
    if not invitation or invitation.community_id != community_id:
        raise ResourceNotFoundError("Invitation", invitation_id)
    if invitation.status != "pending":
        raise BusinessLogicError(f"Invitation is already {invitation.status}")
    invitation.status = "revoked"
    await db.flush()
    return invitation


async def accept_invitation(
    db: AsyncSession, user: Profile, token: str, now: datetime | None = None
) -> CommunityMember:
    now = now or datetime.utcnow()
    result = await db.execute(
        select(CommunityInvitation).where(CommunityInvitation.token == token)
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise ResourceNotFoundError("Invitation", "token")
    if invitation.status != "pending":
        raise BusinessLogicError(f"This invitation has been {invitation.status}")
    if invitation.expires_at <= now:
        raise BusinessLogicError("This invitation has expired", error_code="INVITATION_EXPIRED")
    if invitation.email != user.email.lower():
        raise PermissionDeniedError("This invitation was sent to a different e-mail address")

    member = await get_membership(db, invitation.community_id, user.id)
    if member is None:
        member = await add_member(db, invitation.community_id, user.id, invitation.role)
    invitation.status = "accepted"
    invitation.accepted_at = now
    await db.flush()
    return member


async def expire_invitations(db: AsyncSession, now: datetime | None = None) -> int:
    """Mark every overdue pending invitation as expired."""
    result = await db.execute(
        update(CommunityInvitation)
        .where(
            CommunityInvitation.status == "pending",
            CommunityInvitation.expires_at <= (now or datetime.utcnow()),
        )
        .values(status="expired")
    )
    return result.rowcount or 0


# ── Deletion ─────────────────────────────────────────────────

async def delete_community(db: AsyncSession, user: Profile, community: Community) -> None:
    """Creator-only.  Removes every row scoped to the community."""
    if community.created_by != user.id:
        raise PermissionDeniedError("Only the community creator can delete it")

    cid = community.id
    sop_ids = select(ActivatedSOP.id).where(ActivatedSOP.community_id == cid)
    event_ids = select(CommunityEvent.id).where(CommunityEvent.community_id == cid)

    await db.execute(delete(SOPTaskActivity).where(SOPTaskActivity.activated_sop_id.in_(sop_ids)))
    await db.execute(delete(SOPTask).where(SOPTask.community_id == cid))
    await db.execute(delete(ActivatedSOP).where(ActivatedSOP.community_id == cid))
    await db.execute(delete(SOPTemplate).where(SOPTemplate.community_id == cid))
    await db.execute(delete(CommunityGuide).where(CommunityGuide.community_id == cid))
    await db.execute(delete(EventInvite).where(EventInvite.event_id.in_(event_ids)))
    await db.execute(delete(CommunityEvent).where(CommunityEvent.community_id == cid))
    await db.execute(delete(Alert).where(Alert.community_id == cid))
    for model in (CommunityInvitation, CommunityMapPoint, CommunityGroup, CommunityMember):
        await db.execute(delete(model).where(model.community_id == cid))
    await db.delete(community)
    await db.flush()
    logger.info("Community %s deleted by %s", cid, user.id)
