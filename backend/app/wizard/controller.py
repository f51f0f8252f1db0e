"""Wizard flow controller: sequencing, draft persistence, completion.

One controller per user session.  It owns the live `WizardState`, applies
the pure transitions from app.wizard.state, and performs the storage side
effects around them:

  Draft persistence
    - mount: completion marker first, then draft; an empty or unreadable
      draft is deleted and the wizard starts fresh.
    - autosave after every edit / step change while ACTIVE, only when the
      form has progress.  Nothing is deleted mid-session.
    - storage errors are logged and swallowed: a failed read means "no
      draft", a failed write is dropped.

  Completion handshake (finish)
    1. delete draft   2. write completion marker   3. SUBMITTING
    4. await submit(data)
    5. success → SHOWING_COMPLETION (marker updated with community id)
    6. failure → delete marker, restore draft from memory, back to ACTIVE

  Step hooks
    `advance()` may run an async hook for the step being left (AI guide
    customization after Risk Assessment).  A failing hook is logged and
    ignored.  If the user retreats while the hook is in flight, the
    advance is abandoned when the hook returns.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from app.schemas.wizard import CompletionMarker, WizardData, WizardDraft
from app.wizard import state as transitions
from app.wizard.state import WizardPhase, WizardState, WizardTransitionError
from app.wizard.steps import has_progress
from app.wizard.store import DraftStore, completion_key, draft_key

logger = logging.getLogger("civildefence.wizard")

# Called with the form data when leaving a step; returns field changes
StepHook = Callable[[WizardData], Awaitable[dict[str, Any] | None]]
# The remote creation call; returns the new community id
SubmitFn = Callable[[WizardData], Awaitable[str | None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardController:
    def __init__(
        self,
        store: DraftStore,
        user_id: str,
        *,
        hooks: dict[int, StepHook] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._draft_key = draft_key(user_id)
        self._completion_key = completion_key(user_id)
        self._hooks = hooks or {}
        self._clock = clock
        self._state = WizardState()
        # Bumped by every navigation; an in-flight advance compares it
        # to detect that the user moved in the meantime.
        self._nav_seq = 0
        self.advancing = False

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def mounted(self) -> bool:
        return self._state.phase is not WizardPhase.IDLE

    # ── Storage helpers (never raise) ───────────────────────

    async def _load(self, key: str) -> dict | None:
        try:
            return await self._store.load(key)
        except Exception:
            logger.exception("Failed to load wizard state %s", key)
            return None

    async def _save(self, key: str, payload: dict) -> bool:
        try:
            await self._store.save(key, payload)
            return True
        except Exception:
            logger.exception("Failed to save wizard state %s", key)
            return False

    async def _delete(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception:
            logger.exception("Failed to delete wizard state %s", key)

    async def _read_draft(self) -> WizardDraft | None:
        payload = await self._load(self._draft_key)
        if payload is None:
            return None
        try:
            return WizardDraft.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding unreadable wizard draft %s", self._draft_key)
            await self._delete(self._draft_key)
            return None

    async def _read_marker(self) -> CompletionMarker | None:
        payload = await self._load(self._completion_key)
        if payload is None:
            return None
        try:
            return CompletionMarker.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding unreadable completion marker %s", self._completion_key)
            await self._delete(self._completion_key)
            return None

    def _draft_payload(self) -> dict:
        return WizardDraft(
            data=self._state.data,
            current_step=self._state.current_step,
            saved_at=self._clock(),
        ).model_dump(mode="json")

    def _marker_payload(self) -> dict:
        return CompletionMarker(
            data=self._state.data,
            community_id=self._state.community_id,
            saved_at=self._clock(),
        ).model_dump(mode="json")

    async def _autosave(self) -> None:
        if self._state.phase is not WizardPhase.ACTIVE:
            return
        if has_progress(self._state.data):
            await self._save(self._draft_key, self._draft_payload())

    # ── Lifecycle ───────────────────────────────────────────

    async def mount(self) -> WizardState:
        marker = await self._read_marker()
        draft = None if marker else await self._read_draft()
        self._state = transitions.mount(self._state, draft, marker)
        if marker is None and draft is not None and not has_progress(draft.data):
            await self._delete(self._draft_key)
        logger.info("Wizard mounted for %s in phase %s", self._draft_key, self._state.phase.value)
        return self._state

    async def resume(self) -> WizardState:
        self._state = transitions.resume(self._state)
        self._nav_seq += 1
        await self._autosave()
        return self._state

    async def discard_and_start_fresh(self) -> WizardState:
        self._state = transitions.discard(self._state)
        self._nav_seq += 1
        await self._delete(self._draft_key)
        return self._state

    # ── Editing and navigation ──────────────────────────────

    async def update(self, changes: dict[str, Any]) -> WizardState:
        self._state = transitions.edit(self._state, changes)
        await self._autosave()
        return self._state

    async def advance(self) -> WizardState:
        # Validate before running any hook
        transitions.advance(self._state)

        changes = None
        hook = self._hooks.get(self._state.current_step)
        if hook is not None:
            seq = self._nav_seq
            self.advancing = True
            try:
                changes = await hook(self._state.data)
            except Exception:
                logger.warning(
                    "Step %d hook failed; continuing without it",
                    self._state.current_step,
                    exc_info=True,
                )
                changes = None
            finally:
                self.advancing = False

            if seq != self._nav_seq or self._state.phase is not WizardPhase.ACTIVE:
                logger.info("Advance abandoned: wizard moved while step hook ran")
                return self._state

        # The live state only changes once the edit and the advance both succeed
        next_state = transitions.edit(self._state, changes) if changes else self._state
        self._state = transitions.advance(next_state)
        self._nav_seq += 1
        await self._autosave()
        return self._state

    async def retreat(self) -> WizardState:
        self._state = transitions.retreat(self._state)
        self._nav_seq += 1
        await self._autosave()
        return self._state

    # ── Completion handshake ────────────────────────────────

    async def finish(self, submit: SubmitFn) -> WizardState:
        # Enter SUBMITTING before the first await so a second finish() is rejected
        self._state = transitions.begin_submit(self._state)

        await self._delete(self._draft_key)
        await self._save(self._completion_key, self._marker_payload())

        try:
            community_id = await submit(self._state.data)
        except Exception as exc:
            logger.error("Community creation failed: %s", exc, exc_info=True)
            await self._delete(self._completion_key)
            self._state = transitions.submit_failed(
                self._state, "Failed to create community. Please try again."
            )
            await self._save(self._draft_key, self._draft_payload())
            return self._state

        self._state = transitions.submit_succeeded(self._state, community_id)
        await self._save(self._completion_key, self._marker_payload())
        logger.info("Wizard completed: community %s", community_id)
        return self._state

    async def set_promo(self, promo: dict[str, Any]) -> WizardState:
        self._state = transitions.set_promo(self._state, promo)
        await self._save(self._completion_key, self._marker_payload())
        return self._state

    async def dismiss_completion(self) -> WizardState:
        self._state = transitions.dismiss_completion(self._state)
        await self._delete(self._completion_key)
        return self._state


__all__ = ["WizardController", "WizardTransitionError", "StepHook", "SubmitFn"]
