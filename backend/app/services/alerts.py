"""Community alerts: recipient resolution, history record, delivery.

    admin     community admins
    team      admins and team members
    members   everyone in the community
    specific  the listed user ids (non-members are ignored)

The alert row is written and committed first; e-mail and SMS go out
afterwards and only the delivery counters are updated.  A provider
outage therefore never loses the alert itself.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import BusinessLogicError
from app.models.alert import Alert
from app.models.community import Community, CommunityMember
from app.models.profile import Profile
from app.schemas.alert import AlertCreate
from app.services.notifications import alert_email, send_email, send_sms

logger = logging.getLogger(__name__)

RECIPIENT_ROLES: dict[str, tuple[str, ...] | None] = {
    "admin": ("admin",),
    "team": ("admin", "team_member"),
    "members": None,
}

SMS_LIMIT = 320


async def resolve_recipients(
    db: AsyncSession,
    community_id: str,
    recipient_group: str,
    specific_ids: list[str] | None = None,
) -> list[Profile]:
    stmt = (
        select(Profile)
        .join(CommunityMember, CommunityMember.user_id == Profile.id)
        .where(CommunityMember.community_id == community_id)
    )
    if recipient_group == "specific":
        stmt = stmt.where(Profile.id.in_(specific_ids or []))
    else:
        roles = RECIPIENT_ROLES.get(recipient_group, ())
        if roles is not None:
            stmt = stmt.where(CommunityMember.role.in_(roles))
    result = await db.execute(stmt.order_by(Profile.email))
    return list(result.scalars().unique().all())


def format_alert_sms(community_name: str, level: str, title: str, message: str) -> str:
    text = f"[{level.upper()}] {community_name}: {title} - {message}"
    if len(text) > SMS_LIMIT:
        text = text[: SMS_LIMIT - 3] + "..."
    return text


async def create_alert(
    db: AsyncSession,
    sender: Profile,
    community: Community,
    body: AlertCreate,
) -> tuple[Alert, list[Profile]]:
    recipients = await resolve_recipients(
        db, community.id, body.recipient_group, body.specific_member_ids
    )
    if not recipients:
        raise BusinessLogicError("No recipients found for the selected group")

    alert = Alert(
        community_id=community.id,
        author_id=sender.id,
        title=body.title.strip(),
        content=body.message.strip(),
        level=body.level,
        is_public=False,
        is_active=body.send_app,
        recipient_group=body.recipient_group,
        recipient_ids=[p.id for p in recipients],
        recipient_count=len(recipients),
        sent_via_email=body.send_email,
        sent_via_sms=body.send_sms,
        sent_via_app=body.send_app,
    )
    db.add(alert)
    await db.flush()
    return alert, recipients


async def deliver_alert(
    db: AsyncSession,
    alert: Alert,
    community: Community,
    recipients: list[Profile],
) -> Alert:
    """Send e-mail/SMS for an already committed alert and record counts."""
    errors: list[str] = []
    emails_sent = 0
    sms_sent = 0

    if alert.sent_via_email:
        subject, html = alert_email(community.name, alert.title, alert.content, alert.level)
        for profile in recipients:
            if not profile.email:
                continue
            if await send_email(profile.email, subject, html):
                emails_sent += 1
            else:
                errors.append(f"email:{profile.email}")

    if alert.sent_via_sms:
        text = format_alert_sms(community.name, alert.level, alert.title, alert.content)
        for profile in recipients:
            if not profile.phone:
                continue
            if await send_sms(profile.phone, text):
                sms_sent += 1
            else:
                errors.append(f"sms:{profile.phone}")

    alert.emails_sent = emails_sent
    alert.sms_sent = sms_sent
    alert.delivery_errors = errors or None
    await db.flush()

    logger.info(
        "Alert %s delivered: %d e-mails, %d SMS, %d failures",
        alert.id, emails_sent, sms_sent, len(errors),
    )
    return alert
