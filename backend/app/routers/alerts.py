"""Community alerts: admins broadcast over app, e-mail and SMS."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_community_role
from app.auth.permissions import ADMIN, ANY_MEMBER
from app.database import get_db
from app.models.alert import Alert
from app.models.profile import Profile
from app.schemas.alert import AlertCreate, AlertOut
from app.services import membership
from app.services.alerts import create_alert, deliver_alert

router = APIRouter()


@router.get("/{community_id}/alerts", response_model=list[AlertOut])
async def list_alerts(
    community_id: str,
    active_only: bool = Query(True),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    stmt = select(Alert).where(Alert.community_id == community_id)
    if active_only:
        stmt = stmt.where(Alert.is_active.is_(True))
    result = await db.execute(stmt.order_by(Alert.created_at.desc()).limit(limit))
    return [AlertOut.model_validate(a) for a in result.scalars().all()]


@router.post("/{community_id}/alerts", response_model=AlertOut, status_code=status.HTTP_201_CREATED)
async def send_alert(
    community_id: str,
    body: AlertCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ADMIN)),
):
    community = await membership.get_community(db, community_id)
    alert, recipients = await create_alert(db, user, community, body)
    await db.commit()

    await deliver_alert(db, alert, community, recipients)
    return AlertOut.model_validate(alert)
