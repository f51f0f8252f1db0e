"""Outbound e-mail and SMS.

E-mail goes out through an HTTP mail API (`settings.email_api_url`),
SMS through Twilio.  Both are best-effort: each send returns True/False
and logs failures instead of raising, so a flaky provider never rolls
back the write that triggered the message.

With no provider configured (local dev, tests) sends are logged and
reported as not delivered.
"""

import asyncio
import logging

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


async def send_email(
    to: str,
    subject: str,
    html: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    if not settings.email_api_url:
        logger.info("E-mail not configured; skipping message to %s (%s)", to, subject)
        return False

    payload = {"from": settings.email_from, "to": [to], "subject": subject, "html": html}
    headers = {"Authorization": f"Bearer {settings.email_api_key}"}
    try:
        async with httpx.AsyncClient(timeout=15.0, transport=transport) as client:
            resp = await client.post(settings.email_api_url, json=payload, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("E-mail to %s failed: %s", to, e)
        return False
    return True


def _send_sms_sync(to: str, body: str) -> None:
    from twilio.rest import Client

    client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
    client.messages.create(body=body, from_=settings.twilio_from_number, to=to)


async def send_sms(to: str, body: str) -> bool:
    if not settings.twilio_account_sid:
        logger.info("SMS not configured; skipping message to %s", to)
        return False

    from twilio.base.exceptions import TwilioException

    try:
        # The Twilio client is synchronous
        await asyncio.to_thread(_send_sms_sync, to, body)
    except TwilioException as e:
        logger.warning("SMS to %s failed: %s", to, e)
        return False
    return True


# ── Message bodies ───────────────────────────────────────────

def invitation_email(community_name: str, inviter: str, role: str, token: str) -> tuple[str, str]:
    link = f"{settings.public_base_url.rstrip('/')}/invite/{token}"
    subject = f"You're invited to join {community_name}"
    html = (
        f"<p>{inviter} has invited you to join <strong>{community_name}</strong> "
        f"as a {role.replace('_', ' ')}.</p>"
        f'<p><a href="{link}">Accept invitation</a></p>'
        f"<p>This invitation expires in {settings.invitation_expiry_days} days.</p>"
    )
    return subject, html


def alert_email(community_name: str, title: str, message: str, level: str) -> tuple[str, str]:
    subject = f"[{level.upper()}] {community_name}: {title}"
    html = f"<h2>{title}</h2><p>{message}</p><p>Sent by {community_name}</p>"
    return subject, html


def event_email(community_name: str, title: str, when: str, where: str | None) -> tuple[str, str]:
    subject = f"{community_name}: {title}"
    html = f"<h2>{title}</h2><p>{when}</p>"
    if where:
        html += f"<p>{where}</p>"
    return subject, html
