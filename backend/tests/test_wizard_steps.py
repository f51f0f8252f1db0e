"""Wizard step table and the pure phase transitions."""

from datetime import datetime, timezone

import pytest

from app.schemas.wizard import CompletionMarker, WizardData, WizardDraft
from app.wizard import state as transitions
from app.wizard.state import WizardPhase, WizardState, WizardTransitionError
from app.wizard.steps import (
    BASIC_INFO,
    DEFINE_AREA,
    INVITE_MEMBERS,
    RISK_ASSESSMENT,
    SETUP_GROUPS,
    TOTAL_STEPS,
    can_advance,
    get_step,
    has_progress,
)

SAVED_AT = datetime(2025, 3, 3, 9, 30, tzinfo=timezone.utc)

SQUARE = [
    {"lat": -41.29, "lng": 174.76},
    {"lat": -41.29, "lng": 174.78},
    {"lat": -41.30, "lng": 174.78},
]


def complete_data(**overrides) -> WizardData:
    fields = {
        "community_name": "Aro Valley",
        "meeting_point_name": "Community Hall",
        "meeting_point_lat": -41.295,
        "meeting_point_lng": 174.77,
        "selected_risks": ["flood", "earthquake"],
        "region_polygon": SQUARE,
    }
    fields.update(overrides)
    return WizardData.model_validate(fields)


@pytest.mark.unit
class TestStepValidity:
    def test_five_steps_last_two_optional(self):
        assert TOTAL_STEPS == 5
        assert [get_step(i).optional for i in range(1, 6)] == [False, False, False, True, True]
        assert (BASIC_INFO, RISK_ASSESSMENT, DEFINE_AREA, SETUP_GROUPS, INVITE_MEMBERS) == (1, 2, 3, 4, 5)

    def test_get_step_out_of_range(self):
        with pytest.raises(ValueError):
            get_step(0)
        with pytest.raises(ValueError):
            get_step(6)

    def test_basic_info_needs_name_and_meeting_point_coordinates(self):
        assert can_advance(BASIC_INFO, complete_data())
        assert not can_advance(BASIC_INFO, complete_data(community_name="   "))
        assert not can_advance(BASIC_INFO, complete_data(meeting_point_name=""))
        assert not can_advance(BASIC_INFO, complete_data(meeting_point_lat=None))

    def test_risk_assessment_needs_a_hazard(self):
        assert can_advance(RISK_ASSESSMENT, complete_data())
        assert not can_advance(RISK_ASSESSMENT, complete_data(selected_risks=[]))

    def test_area_needs_three_points(self):
        assert can_advance(DEFINE_AREA, complete_data())
        assert not can_advance(DEFINE_AREA, complete_data(region_polygon=SQUARE[:2]))
        assert not can_advance(DEFINE_AREA, complete_data(region_polygon=None))

    def test_optional_steps_always_pass(self):
        empty = WizardData()
        assert can_advance(SETUP_GROUPS, empty)
        assert can_advance(INVITE_MEMBERS, empty)

    def test_out_of_range_step_cannot_advance(self):
        assert not can_advance(0, complete_data())
        assert not can_advance(6, complete_data())

    def test_has_progress(self):
        assert not has_progress(WizardData())
        assert not has_progress(WizardData(community_name="  "))
        assert has_progress(WizardData(community_name="A"))
        assert has_progress(WizardData(meeting_point_address="1 Aro St"))
        assert has_progress(WizardData(selected_risks=["fire"]))
        assert has_progress(WizardData(invitations=[{"email": "x@example.com"}]))

    def test_duplicate_invitation_emails_rejected(self):
        with pytest.raises(ValueError, match="already been added"):
            WizardData(invitations=[{"email": "A@example.com"}, {"email": "a@example.com"}])


@pytest.mark.unit
class TestWizardTransitions:
    def test_mount_without_storage_starts_active(self):
        state = transitions.mount(WizardState(), None, None)
        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == 1

    def test_mount_with_draft_awaits_resume(self):
        draft = WizardDraft(data=complete_data(), current_step=3, saved_at=SAVED_AT)
        state = transitions.mount(WizardState(), draft, None)
        assert state.phase is WizardPhase.AWAITING_RESUME
        assert state.pending_draft == draft

    def test_mount_ignores_progress_free_draft(self):
        draft = WizardDraft(data=WizardData(), current_step=2, saved_at=SAVED_AT)
        assert transitions.mount(WizardState(), draft, None).phase is WizardPhase.ACTIVE

    def test_completion_marker_wins_over_draft(self):
        draft = WizardDraft(data=complete_data(), current_step=2, saved_at=SAVED_AT)
        marker = CompletionMarker(data=complete_data(), community_id="c-1", saved_at=SAVED_AT)
        state = transitions.mount(WizardState(), draft, marker)
        assert state.phase is WizardPhase.SHOWING_COMPLETION
        assert state.community_id == "c-1"
        assert state.current_step == TOTAL_STEPS

    def test_mount_twice_rejected(self):
        state = transitions.mount(WizardState(), None, None)
        with pytest.raises(WizardTransitionError):
            transitions.mount(state, None, None)

    def test_resume_restores_step_and_data(self):
        draft = WizardDraft(data=complete_data(), current_step=3, saved_at=SAVED_AT)
        state = transitions.resume(transitions.mount(WizardState(), draft, None))
        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == 3
        assert state.data.community_name == "Aro Valley"
        assert state.pending_draft is None

    def test_resume_clamps_step(self):
        draft = WizardDraft(data=complete_data(), current_step=9, saved_at=SAVED_AT)
        state = transitions.resume(transitions.mount(WizardState(), draft, None))
        assert state.current_step == TOTAL_STEPS

    def test_discard_starts_fresh(self):
        draft = WizardDraft(data=complete_data(), current_step=3, saved_at=SAVED_AT)
        state = transitions.discard(transitions.mount(WizardState(), draft, None))
        assert state.phase is WizardPhase.ACTIVE
        assert state.current_step == 1
        assert not has_progress(state.data)

    def test_resume_only_while_awaiting(self):
        with pytest.raises(WizardTransitionError):
            transitions.resume(WizardState(phase=WizardPhase.ACTIVE))

    def test_edit_merges_and_revalidates(self):
        state = WizardState(phase=WizardPhase.ACTIVE, data=WizardData(community_name="A"))
        state = transitions.edit(state, {"description": "Hill suburb"})
        assert state.data.community_name == "A"
        assert state.data.description == "Hill suburb"
        with pytest.raises(ValueError):
            transitions.edit(state, {"region_color": "blue"})

    def test_advance_requires_valid_step(self):
        state = WizardState(phase=WizardPhase.ACTIVE)
        with pytest.raises(WizardTransitionError, match="Step 1 is incomplete"):
            transitions.advance(state)
        state = transitions.advance(WizardState(phase=WizardPhase.ACTIVE, data=complete_data()))
        assert state.current_step == 2

    def test_no_advance_past_last_step(self):
        state = WizardState(phase=WizardPhase.ACTIVE, current_step=TOTAL_STEPS, data=complete_data())
        with pytest.raises(WizardTransitionError, match="last step"):
            transitions.advance(state)

    def test_retreat_bounds(self):
        with pytest.raises(WizardTransitionError):
            transitions.retreat(WizardState(phase=WizardPhase.ACTIVE))
        state = transitions.retreat(WizardState(phase=WizardPhase.ACTIVE, current_step=4))
        assert state.current_step == 3

    def test_submit_only_from_last_step(self):
        state = WizardState(phase=WizardPhase.ACTIVE, current_step=3, data=complete_data())
        with pytest.raises(WizardTransitionError):
            transitions.begin_submit(state)

    def test_submit_success_and_failure(self):
        active = WizardState(phase=WizardPhase.ACTIVE, current_step=TOTAL_STEPS, data=complete_data())
        submitting = transitions.begin_submit(active)
        assert submitting.phase is WizardPhase.SUBMITTING

        done = transitions.submit_succeeded(submitting, "c-9")
        assert done.phase is WizardPhase.SHOWING_COMPLETION
        assert done.community_id == "c-9"

        failed = transitions.submit_failed(submitting, "boom")
        assert failed.phase is WizardPhase.ACTIVE
        assert failed.current_step == TOTAL_STEPS
        assert failed.error == "boom"
        assert failed.data == active.data

    def test_no_edits_while_submitting(self):
        submitting = WizardState(phase=WizardPhase.SUBMITTING)
        with pytest.raises(WizardTransitionError):
            transitions.edit(submitting, {"community_name": "B"})
        with pytest.raises(WizardTransitionError):
            transitions.retreat(submitting)

    def test_dismiss_completion_returns_to_idle(self):
        done = WizardState(phase=WizardPhase.SHOWING_COMPLETION, community_id="c-1")
        promo = transitions.set_promo(done, {"headline": "Join us"})
        assert promo.data.promo == {"headline": "Join us"}
        assert transitions.dismiss_completion(promo) == WizardState()
