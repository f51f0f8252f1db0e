"""Invitations: admins invite by e-mail, invitees accept with the token."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user, require_community_role
from app.auth.permissions import ADMIN
from app.database import get_db
from app.models.community import CommunityInvitation
from app.models.profile import Profile
from app.schemas.community import InvitationCreate, InvitationOut, MemberOut
from app.services import membership
from app.services.community_setup import send_invitation_emails

router = APIRouter()


@router.get("/communities/{community_id}/invitations", response_model=list[InvitationOut])
async def list_invitations(
    community_id: str,
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ADMIN)),
):
    stmt = select(CommunityInvitation).where(CommunityInvitation.community_id == community_id)
    if status_filter:
        stmt = stmt.where(CommunityInvitation.status == status_filter)
    result = await db.execute(stmt.order_by(CommunityInvitation.created_at.desc()))
    return [InvitationOut.model_validate(i) for i in result.scalars().all()]


@router.post(
    "/communities/{community_id}/invitations",
    response_model=InvitationOut,
    status_code=201,
)
async def create_invitation(
    community_id: str,
    body: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ADMIN)),
):
    community = await membership.get_community(db, community_id)
    invitation = await membership.create_invitation(
        db, user, community_id, body.email, body.role, body.name, body.group_name
    )
    await db.commit()
    await send_invitation_emails(community, [invitation], user)
    return InvitationOut.model_validate(invitation)


@router.delete(
    "/communities/{community_id}/invitations/{invitation_id}",
    response_model=InvitationOut,
)
async def revoke_invitation(
    community_id: str,
    invitation_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ADMIN)),
):
    invitation = await membership.revoke_invitation(db, community_id, invitation_id)
    return InvitationOut.model_validate(invitation)


@router.post("/invitations/{token}/accept", response_model=MemberOut)
async def accept_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    member = await membership.accept_invitation(db, user, token)
    return MemberOut(
        id=member.id,
        user_id=member.user_id,
        role=member.role,
        joined_at=member.joined_at,
        email=user.email,
        full_name=user.full_name,
    )
