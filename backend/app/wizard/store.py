"""Durable draft storage port and its implementations.

The wizard only ever needs three operations on a key/value store:

    load(key)            → dict | None
    save(key, payload)   → None   (overwrite)
    delete(key)          → None   (missing key is not an error)

Implementations:
  MemoryDraftStore    process-local dict (tests, single-process dev)
  RedisDraftStore     redis.asyncio with a TTL (default in production)
  DatabaseDraftStore  `wizard_drafts` table, own session per call

Stores raise on failure.  Deciding that a failed read means "no draft"
and a failed write is dropped is the controller's job, not the store's.
"""

import json
from typing import Awaitable, Callable, Protocol

import redis.asyncio as redis
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.wizard_draft import WizardDraftRow


class DraftStore(Protocol):
    async def load(self, key: str) -> dict | None: ...

    async def save(self, key: str, payload: dict) -> None: ...

    async def delete(self, key: str) -> None: ...


def draft_key(user_id: str) -> str:
    return f"wizard:{user_id}:draft"


def completion_key(user_id: str) -> str:
    return f"wizard:{user_id}:completed"


class MemoryDraftStore:
    """Values are stored as JSON text so callers never share mutable state."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    async def load(self, key: str) -> dict | None:
        raw = self._items.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, payload: dict) -> None:
        self._items[key] = json.dumps(payload)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class RedisDraftStore:
    def __init__(
        self,
        client_factory: Callable[[], Awaitable[redis.Redis]],
        ttl_seconds: int | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._ttl = ttl_seconds

    async def load(self, key: str) -> dict | None:
        client = await self._client_factory()
        raw = await client.get(key)
        return json.loads(raw) if raw else None

    async def save(self, key: str, payload: dict) -> None:
        client = await self._client_factory()
        await client.set(key, json.dumps(payload), ex=self._ttl)

    async def delete(self, key: str) -> None:
        client = await self._client_factory()
        await client.delete(key)


class DatabaseDraftStore:
    """Each call runs in its own short transaction, independent of the
    request session, so a rolled-back request never loses a draft."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, key: str) -> dict | None:
        async with self._session_factory() as session:
            row = await session.get(WizardDraftRow, key)
            return dict(row.payload) if row else None

    async def save(self, key: str, payload: dict) -> None:
        async with self._session_factory() as session:
            row = await session.get(WizardDraftRow, key)
            if row:
                row.payload = payload
            else:
                session.add(WizardDraftRow(key=key, payload=payload))
            await session.commit()

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(WizardDraftRow).where(WizardDraftRow.key == key))
            await session.commit()
