"""Community routes: discovery, membership of the caller, settings, deletion."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user, require_community_role
from app.auth.permissions import ADMIN, SUPER_ADMIN
from app.database import get_db
from app.models.community import Community, CommunityMember
from app.models.profile import Profile
from app.schemas.community import CommunityOut, CommunityUpdate, MemberOut
from app.services import membership
from app.utils.cache import invalidate_cache

router = APIRouter()


def _out(community: Community, role: str | None) -> CommunityOut:
    out = CommunityOut.model_validate(community)
    out.user_role = role
    return out


@router.get("/", response_model=list[CommunityOut])
async def list_communities(
    search: str | None = Query(None, max_length=100),
    mine: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Communities the caller belongs to, plus public ones to discover."""
    result = await db.execute(
        select(CommunityMember.community_id, CommunityMember.role).where(
            CommunityMember.user_id == user.id
        )
    )
    roles = {cid: role for cid, role in result.all()}

    stmt = select(Community)
    if mine:
        stmt = stmt.where(Community.id.in_(list(roles)))
    else:
        stmt = stmt.where(or_(Community.id.in_(list(roles)), Community.is_public.is_(True)))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Community.name.ilike(pattern),
                Community.description.ilike(pattern),
                Community.location.ilike(pattern),
            )
        )
    result = await db.execute(stmt.order_by(Community.name))
    return [_out(c, roles.get(c.id)) for c in result.scalars().all()]


@router.get("/{community_id}", response_model=CommunityOut)
async def get_community(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    community = await membership.get_community(db, community_id)
    member = await membership.get_membership(db, community_id, user.id)
    if not community.is_public and not member and user.role != SUPER_ADMIN:
        raise HTTPException(status_code=404, detail="Community not found")
    return _out(community, member.role if member else None)


@router.patch("/{community_id}", response_model=CommunityOut)
async def update_community(
    community_id: str,
    body: CommunityUpdate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ADMIN)),
):
    community = await membership.get_community(db, community_id)
    updates = body.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(community, key, value)

    await db.flush()
    await db.refresh(community)
    await invalidate_cache("communities:*")
    membership_row = getattr(user, "_membership", None)
    return _out(community, membership_row.role if membership_row else None)


@router.post("/{community_id}/join", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def join_community(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    community = await membership.get_community(db, community_id)
    member = await membership.join_community(db, user, community)
    return MemberOut(
        id=member.id,
        user_id=member.user_id,
        role=member.role,
        joined_at=member.joined_at,
        email=user.email,
        full_name=user.full_name,
    )


@router.post("/{community_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_community(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    await membership.remove_member(db, community_id, user.id)


@router.delete("/{community_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_community(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    community = await membership.get_community(db, community_id)
    await membership.delete_community(db, user, community)
    await invalidate_cache("communities:*")
    await invalidate_cache("guides:*")
