"""Guide template merging and community creation from a finished wizard."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import BusinessLogicError
from app.models.community import CommunityInvitation, CommunityMapPoint
from app.models.guide import CommunityGuide
from app.schemas.wizard import WizardData
from app.services.community_setup import (
    create_community_from_wizard,
    invitation_expiry,
    new_invitation_token,
    send_invitation_emails,
)
from app.services.guide_templates import GUIDE_TEMPLATES, PHASES, build_guide, get_template
from app.services.notifications import invitation_email


@pytest.mark.unit
class TestGuideTemplates:
    def test_every_hazard_has_a_template(self):
        assert set(GUIDE_TEMPLATES) == {
            "fire", "flood", "strong_winds", "earthquake", "tsunami",
            "snow", "pandemic", "solar_storm", "invasion",
        }
        for hazard, template in GUIDE_TEMPLATES.items():
            assert set(template["sections"]) == set(PHASES), hazard
            assert template["emergency_contacts"], hazard

    def test_unknown_hazard(self):
        assert get_template("volcano") is None
        assert build_guide("volcano") is None

    def test_plain_template_copy(self):
        guide = build_guide("flood")
        template = get_template("flood")
        assert guide["guide_type"] == "flood"
        assert guide["template_id"] == template["id"]
        assert guide["sections"] == template["sections"]
        assert guide["supplies"] == template["supplies"]
        assert guide["custom_notes"] is None

    def test_customization_appends_and_replaces(self):
        template = get_template("fire")
        extra = {"id": "x", "title": "Check the gully", "content": "Gorse burns fast", "icon": "warning"}
        contacts = [{"name": "Local fire brigade", "number": "04 000 0000"}]
        guide = build_guide(
            "fire",
            {
                "enhanced_sections": {"before": [extra]},
                "additional_supplies": ["Garden hose"],
                "emergency_contacts": contacts,
                "custom_notes": "Town belt is high risk",
                "local_resources": ["Aro Park hall"],
            },
        )
        assert guide["sections"]["before"][-1] == extra
        assert len(guide["sections"]["before"]) == len(template["sections"]["before"]) + 1
        assert guide["sections"]["during"] == template["sections"]["during"]
        assert guide["supplies"][-1] == "Garden hose"
        assert guide["emergency_contacts"] == contacts
        assert guide["custom_notes"] == "Town belt is high risk"
        assert guide["local_resources"] == ["Aro Park hall"]

    def test_empty_contacts_keep_template_contacts(self):
        guide = build_guide("snow", {"emergency_contacts": []})
        assert guide["emergency_contacts"] == get_template("snow")["emergency_contacts"]

    def test_merging_does_not_mutate_template(self):
        before = list(get_template("flood")["sections"]["before"])
        build_guide("flood", {"enhanced_sections": {"before": [{"id": "x"}]}})
        assert get_template("flood")["sections"]["before"] == before


@pytest.mark.unit
class TestInvitationHelpers:
    def test_tokens_are_unique_and_url_safe(self):
        tokens = {new_invitation_token() for _ in range(20)}
        assert len(tokens) == 20
        assert all("/" not in t and "+" not in t for t in tokens)

    def test_expiry_is_seven_days(self):
        now = datetime(2025, 3, 3, 12, 0)
        assert invitation_expiry(now) == now + timedelta(days=7)

    def test_invitation_email_contains_accept_link(self):
        subject, html = invitation_email("Aro Valley", "Alice", "team_member", "tok123")
        assert "Aro Valley" in subject
        assert "/invite/tok123" in html


@pytest.mark.unit
@pytest.mark.asyncio
class TestCreateCommunity:
    async def test_creates_everything_in_one_transaction(self, db_session: AsyncSession, admin_user):
        data = WizardData.model_validate({
            "community_name": "  Aro Valley ",
            "meeting_point_name": "Hall",
            "meeting_point_lat": -41.295,
            "meeting_point_lng": 174.77,
            "selected_risks": ["flood", "earthquake"],
            "ai_analysis": {"risks": [{"type": "flood", "severity": "high"}]},
            "guide_customizations": {"flood": {"custom_notes": "Stream"}},
            "groups": [{"name": "Wardens"}],
            "invitations": [{"email": "bob@example.com"}, {"email": "cat@example.com", "role": "admin"}],
        })
        community, invitations = await create_community_from_wizard(db_session, admin_user, data)
        await db_session.commit()

        assert community.name == "Aro Valley"
        assert community.settings["ai_analysis"]["risks"][0]["type"] == "flood"
        assert [i.role for i in invitations] == ["member", "admin"]
        assert all(i.expires_at > datetime.utcnow() for i in invitations)

        guides = (await db_session.execute(
            select(CommunityGuide)
            .where(CommunityGuide.community_id == community.id)
            .order_by(CommunityGuide.display_order)
        )).scalars().all()
        assert [(g.guide_type, g.risk_level) for g in guides] == [("flood", "high"), ("earthquake", None)]
        assert guides[0].custom_notes == "Stream"

        point = (await db_session.execute(
            select(CommunityMapPoint).where(CommunityMapPoint.community_id == community.id)
        )).scalar_one()
        assert point.color == "#22C55E"

    async def test_no_meeting_point_without_coordinates(self, db_session: AsyncSession, admin_user):
        data = WizardData(community_name="Hillside", selected_risks=["snow"])
        community, _ = await create_community_from_wizard(db_session, admin_user, data)
        points = (await db_session.execute(
            select(CommunityMapPoint).where(CommunityMapPoint.community_id == community.id)
        )).scalars().all()
        assert points == []

    async def test_name_required(self, db_session: AsyncSession, admin_user):
        with pytest.raises(BusinessLogicError):
            await create_community_from_wizard(db_session, admin_user, WizardData())

    async def test_invitation_emails_are_best_effort(self, db_session: AsyncSession, admin_user, monkeypatch):
        data = WizardData(
            community_name="Aro Valley",
            invitations=[{"email": "bob@example.com"}, {"email": "cat@example.com"}],
        )
        community, invitations = await create_community_from_wizard(db_session, admin_user, data)
        sent_to = []

        async def fake_send(to, subject, html, **kwargs):
            sent_to.append(to)
            return to == "bob@example.com"

        monkeypatch.setattr("app.services.community_setup.send_email", fake_send)
        sent = await send_invitation_emails(community, invitations, admin_user)

        assert sent == 1
        assert sorted(sent_to) == ["bob@example.com", "cat@example.com"]
        rows = (await db_session.execute(select(CommunityInvitation))).scalars().all()
        assert len(rows) == 2
