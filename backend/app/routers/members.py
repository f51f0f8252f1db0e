"""Community member management (admins only, except listing)."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_community_role
from app.auth.permissions import ADMIN, ANY_MEMBER
from app.database import get_db
from app.models.community import CommunityMember
from app.models.profile import Profile
from app.schemas.community import MemberOut, MemberRoleUpdate
from app.services import membership

router = APIRouter()


@router.get("/{community_id}/members", response_model=list[MemberOut])
async def list_members(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    result = await db.execute(
        select(CommunityMember, Profile)
        .join(Profile, Profile.id == CommunityMember.user_id)
        .where(CommunityMember.community_id == community_id)
        .order_by(CommunityMember.joined_at)
    )
    return [
        MemberOut(
            id=m.id,
            user_id=m.user_id,
            role=m.role,
            joined_at=m.joined_at,
            email=p.email,
            full_name=p.full_name,
        )
        for m, p in result.all()
    ]


@router.patch("/{community_id}/members/{user_id}", response_model=MemberOut)
async def change_member_role(
    community_id: str,
    user_id: str,
    body: MemberRoleUpdate,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ADMIN)),
):
    member = await membership.change_role(db, community_id, user_id, body.role)
    return MemberOut(
        id=member.id, user_id=member.user_id, role=member.role, joined_at=member.joined_at
    )


@router.delete("/{community_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    community_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ADMIN)),
):
    await membership.remove_member(db, community_id, user_id)
