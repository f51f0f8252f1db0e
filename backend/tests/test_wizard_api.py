"""Wizard endpoint tests: the full onboarding flow over HTTP."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.community import (
    Community,
    CommunityGroup,
    CommunityInvitation,
    CommunityMapPoint,
    CommunityMember,
)
from app.models.guide import CommunityGuide
from app.wizard.store import completion_key, draft_key

BASIC_INFO = {
    "community_name": "Aro Valley",
    "location": "Wellington",
    "meeting_point_name": "Community Hall",
    "meeting_point_address": "48 Aro St",
    "meeting_point_lat": -41.295,
    "meeting_point_lng": 174.77,
}
POLYGON = [
    {"lat": -41.29, "lng": 174.76},
    {"lat": -41.29, "lng": 174.78},
    {"lat": -41.30, "lng": 174.78},
]
ANALYSIS = {
    "risks": [
        {"type": "flood", "severity": "high", "description": "Stream", "recommended_actions": []},
        {"type": "earthquake", "severity": "medium"},
    ],
    "regional_info": "Steep valley",
}


async def walk_to_last_step(client: AsyncClient, headers: dict) -> dict:
    await client.get("/api/wizard/", headers=headers)
    await client.patch("/api/wizard/data", headers=headers, json=BASIC_INFO)
    await client.post("/api/wizard/advance", headers=headers)
    await client.patch("/api/wizard/data", headers=headers, json={"selected_risks": ["flood"]})
    await client.post("/api/wizard/advance", headers=headers)
    await client.patch("/api/wizard/data", headers=headers, json={"region_polygon": POLYGON})
    await client.post("/api/wizard/advance", headers=headers)
    await client.patch(
        "/api/wizard/data",
        headers=headers,
        json={"groups": [{"name": "Street captains", "color": "#F97316"}]},
    )
    await client.post("/api/wizard/advance", headers=headers)
    resp = await client.patch(
        "/api/wizard/data",
        headers=headers,
        json={"invitations": [{"email": "Bob@Example.com", "role": "team_member"}]},
    )
    return resp.json()


@pytest.mark.api
@pytest.mark.asyncio
class TestWizardFlow:
    async def test_requires_auth(self, client: AsyncClient):
        resp = await client.get("/api/wizard/")
        assert resp.status_code == 401

    async def test_initial_view(self, client: AsyncClient, auth_headers):
        resp = await client.get("/api/wizard/", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["phase"] == "active"
        assert data["current_step"] == 1
        assert data["total_steps"] == 5
        assert [s["name"] for s in data["steps"]][:2] == ["Basic Info", "Risk Assessment"]
        assert data["can_advance"] is False

    async def test_cannot_advance_incomplete_step(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/wizard/advance", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "WIZARD_TRANSITION"

    async def test_invalid_patch_rejected(self, client: AsyncClient, auth_headers):
        resp = await client.patch(
            "/api/wizard/data", headers=auth_headers, json={"selected_risks": ["volcano"]}
        )
        assert resp.status_code == 422

    async def test_walk_forward_and_back(self, client: AsyncClient, auth_headers):
        view = await walk_to_last_step(client, auth_headers)
        assert view["current_step"] == 5
        assert view["data"]["invitations"][0]["email"] == "bob@example.com"

        resp = await client.post("/api/wizard/retreat", headers=auth_headers)
        assert resp.json()["current_step"] == 4

    async def test_reload_then_resume(self, client: AsyncClient, auth_headers, wizard_registry):
        await client.get("/api/wizard/", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json=BASIC_INFO)
        await client.post("/api/wizard/advance", headers=auth_headers)

        resp = await client.delete("/api/wizard/session", headers=auth_headers)
        assert resp.status_code == 204
        assert len(wizard_registry) == 0

        view = (await client.get("/api/wizard/", headers=auth_headers)).json()
        assert view["phase"] == "awaiting_resume"
        assert view["pending_draft"]["current_step"] == 2

        view = (await client.post("/api/wizard/resume", headers=auth_headers)).json()
        assert view["phase"] == "active"
        assert view["current_step"] == 2
        assert view["data"]["community_name"] == "Aro Valley"

    async def test_reload_then_discard(self, client: AsyncClient, auth_headers, draft_store, admin_user):
        await client.get("/api/wizard/", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json=BASIC_INFO)
        await client.delete("/api/wizard/session", headers=auth_headers)
        await client.get("/api/wizard/", headers=auth_headers)

        view = (await client.post("/api/wizard/discard", headers=auth_headers)).json()
        assert view["current_step"] == 1
        assert view["data"]["community_name"] == ""
        assert await draft_store.load(draft_key(admin_user.id)) is None


@pytest.mark.api
@pytest.mark.asyncio
class TestRiskAnalysis:
    async def test_analysis_preselects_hazards(self, client: AsyncClient, auth_headers, ai_responses):
        ai_responses["/analyze-risks"] = ANALYSIS
        await client.get("/api/wizard/", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json=BASIC_INFO)

        resp = await client.post("/api/wizard/analyze-risks", headers=auth_headers, json={})
        assert resp.status_code == 200
        data = resp.json()
        assert data["error"] is None
        assert data["data"]["selected_risks"] == ["flood", "earthquake"]
        assert data["data"]["ai_analysis"]["regional_info"] == "Steep valley"

    async def test_analysis_failure_is_soft(self, client: AsyncClient, auth_headers):
        await client.get("/api/wizard/", headers=auth_headers)
        resp = await client.post("/api/wizard/analyze-risks", headers=auth_headers, json={})
        assert resp.status_code == 200
        data = resp.json()
        assert "unavailable" in data["error"]
        assert data["data"]["selected_risks"] == []

    async def test_guide_customization_runs_when_leaving_risk_step(
        self, client: AsyncClient, auth_headers, ai_responses, ai_calls
    ):
        ai_responses["/customize-guides"] = {
            "customizations": {"flood": {"custom_notes": "Aro stream rises fast"}}
        }
        await client.get("/api/wizard/", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json=BASIC_INFO)
        await client.post("/api/wizard/advance", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json={"selected_risks": ["flood"]})

        view = (await client.post("/api/wizard/advance", headers=auth_headers)).json()
        assert view["current_step"] == 3
        assert view["data"]["guide_customizations"]["flood"]["custom_notes"] == "Aro stream rises fast"
        assert "/customize-guides" in ai_calls


@pytest.mark.api
@pytest.mark.asyncio
class TestWizardFinish:
    async def test_finish_creates_community(
        self, client: AsyncClient, auth_headers, admin_user, db_session: AsyncSession, draft_store
    ):
        await walk_to_last_step(client, auth_headers)
        resp = await client.post("/api/wizard/finish", headers=auth_headers)
        assert resp.status_code == 200
        view = resp.json()
        assert view["phase"] == "showing_completion"
        community_id = view["community_id"]
        assert community_id

        community = await db_session.get(Community, community_id)
        assert community.name == "Aro Valley"
        assert community.member_count == 1
        assert len(community.region_polygon) == 3

        member = (await db_session.execute(
            select(CommunityMember).where(CommunityMember.community_id == community_id)
        )).scalar_one()
        assert member.user_id == admin_user.id
        assert member.role == "admin"

        point = (await db_session.execute(
            select(CommunityMapPoint).where(CommunityMapPoint.community_id == community_id)
        )).scalar_one()
        assert point.point_type == "meeting_point"

        guides = (await db_session.execute(
            select(CommunityGuide).where(CommunityGuide.community_id == community_id)
        )).scalars().all()
        assert [g.guide_type for g in guides] == ["flood"]

        groups = (await db_session.execute(
            select(CommunityGroup).where(CommunityGroup.community_id == community_id)
        )).scalars().all()
        assert [g.name for g in groups] == ["Street captains"]

        invitation = (await db_session.execute(
            select(CommunityInvitation).where(CommunityInvitation.community_id == community_id)
        )).scalar_one()
        assert invitation.email == "bob@example.com"
        assert invitation.status == "pending"

        assert await draft_store.load(draft_key(admin_user.id)) is None
        marker = await draft_store.load(completion_key(admin_user.id))
        assert marker["community_id"] == community_id

    async def test_finish_only_on_last_step(self, client: AsyncClient, auth_headers):
        await client.get("/api/wizard/", headers=auth_headers)
        await client.patch("/api/wizard/data", headers=auth_headers, json=BASIC_INFO)
        resp = await client.post("/api/wizard/finish", headers=auth_headers)
        assert resp.status_code == 409

    async def test_completion_survives_reload_and_dismiss(
        self, client: AsyncClient, auth_headers, draft_store, admin_user
    ):
        await walk_to_last_step(client, auth_headers)
        await client.post("/api/wizard/finish", headers=auth_headers)
        await client.delete("/api/wizard/session", headers=auth_headers)

        view = (await client.get("/api/wizard/", headers=auth_headers)).json()
        assert view["phase"] == "showing_completion"

        view = (await client.post("/api/wizard/dismiss", headers=auth_headers)).json()
        assert view["phase"] == "idle"
        assert draft_store.keys() == []

    async def test_promo_has_join_link_and_qr(self, client: AsyncClient, auth_headers, ai_responses):
        ai_responses["/generate-promo"] = {"headline": "Get ready, Aro Valley", "body": "Join us"}
        await walk_to_last_step(client, auth_headers)
        view = (await client.post("/api/wizard/finish", headers=auth_headers)).json()

        resp = await client.post("/api/wizard/promo", headers=auth_headers)
        assert resp.status_code == 200
        promo = resp.json()["data"]["promo"]
        assert promo["join_link"].endswith(f"/join/{view['community_id']}")
        assert promo["qr_svg"].lstrip().startswith("<svg")
        assert promo["headline"] == "Get ready, Aro Valley"

    async def test_promo_before_completion_rejected(self, client: AsyncClient, auth_headers):
        await client.get("/api/wizard/", headers=auth_headers)
        resp = await client.post("/api/wizard/promo", headers=auth_headers)
        assert resp.status_code == 409
