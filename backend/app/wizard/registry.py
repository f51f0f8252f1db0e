"""Process-local registry of live wizard controllers, one per user.

A controller holds the in-memory half of a wizard session (the browser
tab, in effect).  Dropping it from the registry is equivalent to a page
reload: the next request mounts a fresh controller from durable storage.
"""

import asyncio
import logging
from typing import Callable

from app.config import settings
from app.database import async_session
from app.services.ai import AIServiceClient, get_ai_client
from app.utils.cache import get_redis
from app.wizard.controller import StepHook, WizardController
from app.wizard.steps import RISK_ASSESSMENT
from app.wizard.store import DatabaseDraftStore, DraftStore, MemoryDraftStore, RedisDraftStore

logger = logging.getLogger("civildefence.wizard")


def build_draft_store(kind: str | None = None) -> DraftStore:
    kind = kind or settings.wizard_store
    if kind == "redis":
        return RedisDraftStore(get_redis, ttl_seconds=settings.wizard_draft_ttl_days * 86400)
    if kind == "database":
        return DatabaseDraftStore(async_session)
    if kind == "memory":
        return MemoryDraftStore()
    raise ValueError(f"Unknown wizard store: {kind!r}")


def customize_guides_hook(ai: AIServiceClient) -> StepHook:
    """Leaving Risk Assessment: ask the AI service to localise guides."""

    async def _hook(data):
        if not data.selected_risks:
            return None
        result = await ai.customize_guides(
            location=data.location or data.meeting_point_address,
            latitude=data.meeting_point_lat,
            longitude=data.meeting_point_lng,
            selected_risks=list(data.selected_risks),
            ai_analysis=data.ai_analysis.model_dump() if data.ai_analysis else None,
        )
        if result is None:
            return None
        return {"guide_customizations": result}

    return _hook


class WizardSessionRegistry:
    def __init__(
        self,
        store: DraftStore,
        hooks_factory: Callable[[], dict[int, StepHook]] | None = None,
    ) -> None:
        self.store = store
        self._hooks_factory = hooks_factory or (lambda: {})
        self._sessions: dict[str, WizardController] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, user_id: str) -> WizardController:
        """Return the user's controller, mounting a new one if needed."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            controller = self._sessions.get(user_id)
            if controller is None or not controller.mounted:
                controller = WizardController(
                    self.store, user_id, hooks=self._hooks_factory()
                )
                await controller.mount()
                self._sessions[user_id] = controller
            return controller

    def drop(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


_registry: WizardSessionRegistry | None = None


def get_wizard_registry() -> WizardSessionRegistry:
    """FastAPI dependency: lazily built from settings."""
    global _registry
    if _registry is None:
        ai = get_ai_client()
        _registry = WizardSessionRegistry(
            build_draft_store(),
            hooks_factory=lambda: {RISK_ASSESSMENT: customize_guides_hook(ai)},
        )
        logger.info("Wizard registry using %s draft store", settings.wizard_store)
    return _registry
