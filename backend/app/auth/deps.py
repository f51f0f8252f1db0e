"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user            → decode JWT, load profile from DB, return Profile
  require_super_admin         → platform admins only
  require_community_role(...) → caller must hold one of the roles in the
                                community named by the `community_id`
                                path parameter
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.auth.permissions import SUPER_ADMIN, role_allows
from app.database import get_db
from app.models.community import Community, CommunityMember
from app.models.profile import Profile

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Decode the JWT and load the profile it names.

    Also stashes the decoded payload on the profile as `_token_payload`.
    """
    payload = decode_token(token) if token else {}
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(Profile).where(Profile.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    user._token_payload = payload  # type: ignore[attr-defined]
    return user


async def require_super_admin(
    user: Profile = Depends(get_current_user),
) -> Profile:
    if user.role != SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin access required",
        )
    return user


# ── Community role-based access control ─────────────────────

def require_community_role(*roles: str):
    """Dependency factory: restrict to members holding one of `roles`.

    Usage:
        @router.post("/{community_id}/alerts")
        async def send(user: Profile = Depends(require_community_role("admin"))):
            ...

    The caller's membership is stashed on the profile as `_membership`
    (None for super admins who are not members).
    """
    async def _check(
        community_id: str,
        user: Profile = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> Profile:
        community = await db.get(Community, community_id)
        if not community:
            raise HTTPException(status_code=404, detail="Community not found")

        result = await db.execute(
            select(CommunityMember).where(
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user.id,
            )
        )
        membership = result.scalar_one_or_none()
        user._membership = membership  # type: ignore[attr-defined]

        if user.role == SUPER_ADMIN:
            return user
        if not role_allows(membership.role if membership else None, roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires community role: {', '.join(roles)}",
            )
        return user

    return _check
