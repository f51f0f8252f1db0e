"""Turn a finished onboarding wizard into a community.

`create_community_from_wizard` writes everything inside the caller's
transaction; nothing is committed here.  Invitation e-mails are sent by
`send_invitation_emails` only after the caller has committed, and each
failure is logged and skipped.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import BusinessLogicError
from app.models.community import (
    Community,
    CommunityGroup,
    CommunityInvitation,
    CommunityMapPoint,
    CommunityMember,
)
from app.models.guide import CommunityGuide
from app.models.profile import Profile
from app.schemas.wizard import WizardData
from app.services.guide_templates import build_guide
from app.services.notifications import invitation_email, send_email

logger = logging.getLogger(__name__)

MEETING_POINT_COLOR = "#22C55E"


def new_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def invitation_expiry(now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(days=settings.invitation_expiry_days)


async def create_community_from_wizard(
    db: AsyncSession,
    user: Profile,
    data: WizardData,
) -> tuple[Community, list[CommunityInvitation]]:
    if not data.community_name.strip():
        raise BusinessLogicError("Community name is required")

    community = Community(
        name=data.community_name.strip(),
        description=data.description or None,
        location=data.location or None,
        latitude=data.meeting_point_lat,
        longitude=data.meeting_point_lng,
        is_public=True,
        member_count=1,
        meeting_point_name=data.meeting_point_name or None,
        meeting_point_address=data.meeting_point_address or None,
        meeting_point_lat=data.meeting_point_lat,
        meeting_point_lng=data.meeting_point_lng,
        region_polygon=(
            [p.model_dump() for p in data.region_polygon] if data.region_polygon else None
        ),
        region_color=data.region_color,
        region_opacity=data.region_opacity,
        settings=(
            {"ai_analysis": data.ai_analysis.model_dump()} if data.ai_analysis else None
        ),
        created_by=user.id,
    )
    db.add(community)
    await db.flush()

    db.add(CommunityMember(community_id=community.id, user_id=user.id, role="admin"))

    if data.meeting_point_lat is not None and data.meeting_point_lng is not None:
        db.add(
            CommunityMapPoint(
                community_id=community.id,
                name=data.meeting_point_name or "Meeting Point",
                description="Community emergency meeting point",
                point_type="meeting_point",
                icon="location_on",
                color=MEETING_POINT_COLOR,
                address=data.meeting_point_address or None,
                lat=data.meeting_point_lat,
                lng=data.meeting_point_lng,
                created_by=user.id,
            )
        )

    for group in data.groups:
        db.add(
            CommunityGroup(
                community_id=community.id,
                name=group.name,
                description=group.description or None,
                color=group.color,
                icon=group.icon,
                created_by=user.id,
            )
        )

    customizations = data.guide_customizations or {}
    risk_levels = {}
    if data.ai_analysis:
        risk_levels = {r.type: r.severity for r in data.ai_analysis.risks}
    for order, hazard in enumerate(data.selected_risks):
        guide = build_guide(hazard, customizations.get(hazard))
        if guide is None:
            logger.warning("No guide template for hazard %s", hazard)
            continue
        db.add(
            CommunityGuide(
                community_id=community.id,
                risk_level=risk_levels.get(hazard),
                display_order=order,
                created_by=user.id,
                **guide,
            )
        )

    invitations = []
    for inv in data.invitations:
        invitation = CommunityInvitation(
            community_id=community.id,
            email=inv.email,
            name=inv.name,
            role=inv.role,
            group_name=inv.group_name,
            token=new_invitation_token(),
            status="pending",
            invited_by=user.id,
            expires_at=invitation_expiry(),
        )
        db.add(invitation)
        invitations.append(invitation)

    await db.flush()
    logger.info(
        "Created community %s (%s): %d guides, %d groups, %d invitations",
        community.id,
        community.name,
        len(data.selected_risks),
        len(data.groups),
        len(invitations),
    )
    return community, invitations


async def send_invitation_emails(
    community: Community,
    invitations: list[CommunityInvitation],
    inviter: Profile,
) -> int:
    """Returns how many e-mails were accepted by the provider."""
    if not invitations:
        return 0

    async def _send(inv: CommunityInvitation) -> bool:
        subject, html = invitation_email(community.name, inviter.display_name, inv.role, inv.token)
        return await send_email(inv.email, subject, html)

    results = await asyncio.gather(*(_send(inv) for inv in invitations))
    sent = sum(1 for ok in results if ok)
    if sent < len(invitations):
        logger.warning(
            "Community %s: %d of %d invitation e-mails not sent",
            community.id, len(invitations) - sent, len(invitations),
        )
    return sent
