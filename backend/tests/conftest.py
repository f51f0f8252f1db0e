"""Pytest configuration and fixtures for Civil Defence tests.

Every test gets its own in-memory SQLite database, an in-memory wizard
draft store and an AI client backed by `httpx.MockTransport`, so no
Postgres, Redis or network access is needed.
"""

import os

# Must be set before app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("WIZARD_STORE", "memory")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("EMAIL_API_URL", "")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")

import fnmatch
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_access_token
from app.database import Base, get_db, get_session_factory
from app.main import app
from app.models.community import Community, CommunityMember
from app.models.profile import Profile
from app.services.ai import AIServiceClient, get_ai_client
from app.wizard.registry import WizardSessionRegistry, customize_guides_hook, get_wizard_registry
from app.wizard.steps import RISK_ASSESSMENT
from app.wizard.store import MemoryDraftStore


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and assertions (separate from request sessions)."""
    async with session_factory() as session:
        yield session


# ── AI service ───────────────────────────────────────────────────

@pytest.fixture
def ai_responses() -> dict:
    """Path → JSON body.  Paths not listed answer 503."""
    return {}


@pytest.fixture
def ai_calls() -> list:
    return []


@pytest.fixture
def ai_client(ai_responses, ai_calls) -> AIServiceClient:
    def handler(request: httpx.Request) -> httpx.Response:
        ai_calls.append(request.url.path)
        body = ai_responses.get(request.url.path)
        if body is None:
            return httpx.Response(503, json={"detail": "unavailable"})
        return httpx.Response(200, json=body)

    return AIServiceClient("http://ai.test", transport=httpx.MockTransport(handler))


# ── Wizard ───────────────────────────────────────────────────────

@pytest.fixture
def draft_store() -> MemoryDraftStore:
    return MemoryDraftStore()


@pytest.fixture
def wizard_registry(draft_store, ai_client) -> WizardSessionRegistry:
    return WizardSessionRegistry(
        draft_store,
        hooks_factory=lambda: {RISK_ASSESSMENT: customize_guides_hook(ai_client)},
    )


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, wizard_registry, ai_client) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, wizard store and AI service overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_wizard_registry] = lambda: wizard_registry
    app.dependency_overrides[get_ai_client] = lambda: ai_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: await make_user("a@example.com", phone=..., role=...)."""

    async def _make(email: str, full_name: str | None = None, **fields) -> Profile:
        user = Profile(email=email, full_name=full_name or email.split("@")[0].title(), **fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def add_member(db_session: AsyncSession):
    async def _add(community: Community, user: Profile, role: str = "member") -> CommunityMember:
        member = CommunityMember(community_id=community.id, user_id=user.id, role=role)
        db_session.add(member)
        community.member_count = (community.member_count or 0) + 1
        await db_session.commit()
        return member

    return _add


@pytest_asyncio.fixture
async def admin_user(make_user) -> Profile:
    return await make_user("admin@example.com", "Alice Admin", phone="+6421000001")


@pytest_asyncio.fixture
async def community(db_session: AsyncSession, admin_user: Profile, add_member) -> Community:
    """A public community whose only member is `admin_user` (as admin)."""
    community = Community(
        name="Aro Valley",
        location="Wellington",
        is_public=True,
        member_count=0,
        created_by=admin_user.id,
    )
    db_session.add(community)
    await db_session.commit()
    await add_member(community, admin_user, "admin")
    return community


def auth_headers_for(user: Profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture
def auth_headers(admin_user: Profile) -> dict:
    return auth_headers_for(admin_user)


# ── Redis stand-in ───────────────────────────────────────────────

class FakeRedis:
    """Just the redis.asyncio calls the app makes, backed by a dict."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "cache: Redis cache tests")
    config.addinivalue_line("markers", "auth: Authentication and authorization tests")
