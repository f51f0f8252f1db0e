"""Wizard controller: draft persistence, completion handshake, step hooks."""

import asyncio
from datetime import datetime, timezone

import pytest

from app.schemas.wizard import WizardData
from app.wizard.controller import WizardController
from app.wizard.state import WizardPhase, WizardTransitionError
from app.wizard.steps import RISK_ASSESSMENT, TOTAL_STEPS
from app.wizard.store import MemoryDraftStore, completion_key, draft_key

USER = "user-1"
NOW = datetime(2025, 3, 3, 9, 30, tzinfo=timezone.utc)

FILLED = {
    "community_name": "Aro Valley",
    "meeting_point_name": "Community Hall",
    "meeting_point_lat": -41.295,
    "meeting_point_lng": 174.77,
    "selected_risks": ["flood"],
    "region_polygon": [
        {"lat": -41.29, "lng": 174.76},
        {"lat": -41.29, "lng": 174.78},
        {"lat": -41.30, "lng": 174.78},
    ],
}


class BrokenStore(MemoryDraftStore):
    """Every operation fails, like an unreachable Redis."""

    async def load(self, key):
        raise ConnectionError("store down")

    async def save(self, key, payload):
        raise ConnectionError("store down")

    async def delete(self, key):
        raise ConnectionError("store down")


class YieldingStore(MemoryDraftStore):
    """Suspends on every call, like a networked store."""

    async def load(self, key):
        await asyncio.sleep(0)
        return await super().load(key)

    async def save(self, key, payload):
        await asyncio.sleep(0)
        await super().save(key, payload)

    async def delete(self, key):
        await asyncio.sleep(0)
        await super().delete(key)


def controller_for(store, **kwargs) -> WizardController:
    return WizardController(store, USER, clock=lambda: NOW, **kwargs)


async def at_last_step(store, **kwargs) -> WizardController:
    controller = controller_for(store, **kwargs)
    await controller.mount()
    await controller.update(FILLED)
    for _ in range(TOTAL_STEPS - 1):
        await controller.advance()
    return controller


@pytest.mark.unit
@pytest.mark.asyncio
class TestDraftPersistence:
    async def test_fresh_mount_is_active_and_writes_nothing(self):
        store = MemoryDraftStore()
        state = await controller_for(store).mount()
        assert state.phase is WizardPhase.ACTIVE
        assert store.keys() == []

    async def test_edit_autosaves_draft(self):
        store = MemoryDraftStore()
        controller = controller_for(store)
        await controller.mount()
        await controller.update({"community_name": "Aro Valley"})

        saved = await store.load(draft_key(USER))
        assert saved["data"]["community_name"] == "Aro Valley"
        assert saved["current_step"] == 1

    async def test_edit_without_progress_does_not_save(self):
        store = MemoryDraftStore()
        controller = controller_for(store)
        await controller.mount()
        await controller.update({"community_name": "  "})
        assert store.keys() == []

    async def test_step_change_is_saved(self):
        store = MemoryDraftStore()
        controller = controller_for(store)
        await controller.mount()
        await controller.update(FILLED)
        await controller.advance()
        assert (await store.load(draft_key(USER)))["current_step"] == 2

    async def test_reload_offers_resume(self):
        store = MemoryDraftStore()
        first = controller_for(store)
        await first.mount()
        await first.update(FILLED)
        await first.advance()

        second = controller_for(store)
        state = await second.mount()
        assert state.phase is WizardPhase.AWAITING_RESUME
        assert state.pending_draft.current_step == 2

        state = await second.resume()
        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == 2
        assert state.data.community_name == "Aro Valley"

    async def test_discard_deletes_draft(self):
        store = MemoryDraftStore()
        first = controller_for(store)
        await first.mount()
        await first.update(FILLED)

        second = controller_for(store)
        await second.mount()
        state = await second.discard_and_start_fresh()
        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == 1
        assert await store.load(draft_key(USER)) is None

    async def test_progress_free_draft_deleted_on_mount(self):
        store = MemoryDraftStore()
        await store.save(
            draft_key(USER),
            {"data": {}, "current_step": 3, "saved_at": NOW.isoformat()},
        )
        state = await controller_for(store).mount()
        assert state.phase is WizardPhase.ACTIVE
        assert await store.load(draft_key(USER)) is None

    async def test_unreadable_draft_deleted_on_mount(self):
        store = MemoryDraftStore()
        await store.save(draft_key(USER), {"data": "garbage"})
        state = await controller_for(store).mount()
        assert state.phase is WizardPhase.ACTIVE
        assert await store.load(draft_key(USER)) is None

    async def test_storage_failures_are_not_fatal(self):
        controller = controller_for(BrokenStore())
        state = await controller.mount()
        assert state.phase is WizardPhase.ACTIVE

        state = await controller.update(FILLED)
        assert state.data.community_name == "Aro Valley"
        state = await controller.advance()
        assert state.current_step == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestCompletionHandshake:
    async def test_success_writes_marker_and_clears_draft(self):
        store = MemoryDraftStore()
        controller = await at_last_step(store)
        seen = {}

        async def submit(data: WizardData) -> str:
            # The draft is already gone and the marker written while submitting
            seen["draft"] = await store.load(draft_key(USER))
            seen["marker"] = await store.load(completion_key(USER))
            seen["phase"] = controller.state.phase
            return "community-1"

        state = await controller.finish(submit)

        assert seen["draft"] is None
        assert seen["marker"] is not None
        assert seen["phase"] is WizardPhase.SUBMITTING
        assert state.phase is WizardPhase.SHOWING_COMPLETION
        assert state.community_id == "community-1"
        marker = await store.load(completion_key(USER))
        assert marker["community_id"] == "community-1"
        assert await store.load(draft_key(USER)) is None

    async def test_failure_restores_draft_and_removes_marker(self):
        store = MemoryDraftStore()
        controller = await at_last_step(store)

        async def submit(data: WizardData) -> str:
            raise RuntimeError("database unavailable")

        state = await controller.finish(submit)

        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == TOTAL_STEPS
        assert state.error == "Failed to create community. Please try again."
        assert state.data.community_name == "Aro Valley"
        assert await store.load(completion_key(USER)) is None
        draft = await store.load(draft_key(USER))
        assert draft["current_step"] == TOTAL_STEPS

    async def test_reload_after_completion_shows_completion(self):
        store = MemoryDraftStore()
        controller = await at_last_step(store)

        async def submit(data: WizardData) -> str:
            return "community-1"

        await controller.finish(submit)

        state = await controller_for(store).mount()
        assert state.phase is WizardPhase.SHOWING_COMPLETION
        assert state.community_id == "community-1"

    async def test_reload_while_submit_in_flight_shows_completion(self):
        store = MemoryDraftStore()
        controller = await at_last_step(store)
        started = asyncio.Event()
        release = asyncio.Event()

        async def submit(data: WizardData) -> str:
            started.set()
            await release.wait()
            return "community-1"

        pending = asyncio.create_task(controller.finish(submit))
        await started.wait()

        # Page torn down mid-call: a fresh controller mounts from storage
        state = await controller_for(store).mount()
        assert state.phase is WizardPhase.SHOWING_COMPLETION
        assert state.data.community_name == "Aro Valley"
        assert state.data.selected_risks == ["flood"]
        assert state.community_id is None
        assert state.pending_draft is None
        assert await store.load(draft_key(USER)) is None

        release.set()
        assert (await pending).community_id == "community-1"

    async def test_double_finish_submits_once(self):
        controller = await at_last_step(YieldingStore())
        calls = []

        async def submit(data: WizardData) -> str:
            calls.append(data.community_name)
            return "community-1"

        first, second = await asyncio.gather(
            controller.finish(submit), controller.finish(submit), return_exceptions=True
        )

        assert calls == ["Aro Valley"]
        assert first.phase is WizardPhase.SHOWING_COMPLETION
        assert isinstance(second, WizardTransitionError)

    async def test_dismiss_clears_marker(self):
        store = MemoryDraftStore()
        controller = await at_last_step(store)

        async def submit(data: WizardData) -> str:
            return "community-1"

        await controller.finish(submit)
        await controller.set_promo({"headline": "Join"})
        assert (await store.load(completion_key(USER)))["data"]["promo"] == {"headline": "Join"}

        state = await controller.dismiss_completion()
        assert state.phase is WizardPhase.IDLE
        assert store.keys() == []

    async def test_finish_before_last_step_rejected(self):
        store = MemoryDraftStore()
        controller = controller_for(store)
        await controller.mount()
        await controller.update(FILLED)

        async def submit(data: WizardData) -> str:
            raise AssertionError("must not be called")

        with pytest.raises(WizardTransitionError):
            await controller.finish(submit)
        assert await store.load(draft_key(USER)) is not None


@pytest.mark.unit
@pytest.mark.asyncio
class TestStepHooks:
    async def test_hook_changes_are_merged(self):
        store = MemoryDraftStore()

        async def hook(data: WizardData):
            return {"guide_customizations": {"flood": {"custom_notes": "Stream floods"}}}

        controller = controller_for(store, hooks={RISK_ASSESSMENT: hook})
        await controller.mount()
        await controller.update(FILLED)
        await controller.advance()
        state = await controller.advance()

        assert state.current_step == 3
        assert state.data.guide_customizations == {"flood": {"custom_notes": "Stream floods"}}

    async def test_failing_hook_does_not_block_advance(self):
        async def hook(data: WizardData):
            raise RuntimeError("AI down")

        controller = controller_for(MemoryDraftStore(), hooks={RISK_ASSESSMENT: hook})
        await controller.mount()
        await controller.update(FILLED)
        await controller.advance()
        state = await controller.advance()

        assert state.current_step == 3
        assert state.data.guide_customizations is None
        assert controller.advancing is False

    async def test_hook_not_run_for_invalid_step(self):
        calls = []

        async def hook(data: WizardData):
            calls.append(data)
            return None

        controller = controller_for(MemoryDraftStore(), hooks={RISK_ASSESSMENT: hook})
        await controller.mount()
        await controller.update({**FILLED, "selected_risks": []})
        await controller.advance()
        with pytest.raises(WizardTransitionError):
            await controller.advance()
        assert calls == []

    async def test_retreat_during_hook_abandons_advance(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def hook(data: WizardData):
            started.set()
            await release.wait()
            return {"guide_customizations": {"flood": {}}}

        controller = controller_for(MemoryDraftStore(), hooks={RISK_ASSESSMENT: hook})
        await controller.mount()
        await controller.update(FILLED)
        await controller.advance()

        pending = asyncio.create_task(controller.advance())
        await started.wait()
        assert controller.advancing is True

        await controller.retreat()
        release.set()
        state = await pending

        assert state.current_step == 1
        assert state.data.guide_customizations is None
        assert controller.advancing is False

    async def test_hook_changes_that_break_the_step_are_not_applied(self):
        async def hook(data: WizardData):
            return {"selected_risks": []}

        store = MemoryDraftStore()
        controller = controller_for(store, hooks={RISK_ASSESSMENT: hook})
        await controller.mount()
        await controller.update(FILLED)
        await controller.advance()

        with pytest.raises(WizardTransitionError):
            await controller.advance()

        assert controller.state.current_step == RISK_ASSESSMENT
        assert controller.state.data.selected_risks == ["flood"]
        assert (await store.load(draft_key(USER)))["data"]["selected_risks"] == ["flood"]
