"""Wizard phases and the pure transitions between them.

    IDLE ──mount──► AWAITING_RESUME ──resume/discard──► ACTIVE(step)
      │                                                  │  ▲
      ├──mount (completion marker) ──► SHOWING_COMPLETION │  │ submit_failed
      └──mount (nothing saved) ───────────────────────►  │  │
                                                ACTIVE ──begin_submit──► SUBMITTING
                                        SUBMITTING ──submit_succeeded──► SHOWING_COMPLETION
                                SHOWING_COMPLETION ──dismiss_completion──► IDLE

Every function takes a `WizardState` and returns a new one; none touch
storage or the network.  The controller in app.wizard.controller performs
the side effects around them.
"""

import enum
from dataclasses import dataclass, field, replace
from typing import Any

from app.middleware.exceptions import ConflictError
from app.schemas.wizard import CompletionMarker, WizardData, WizardDraft
from app.wizard.steps import TOTAL_STEPS, can_advance, has_progress


class WizardPhase(str, enum.Enum):
    IDLE = "idle"
    AWAITING_RESUME = "awaiting_resume"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SHOWING_COMPLETION = "showing_completion"


class WizardTransitionError(ConflictError):
    def __init__(self, message: str):
        super().__init__(message, error_code="WIZARD_TRANSITION")


@dataclass(frozen=True)
class WizardState:
    phase: WizardPhase = WizardPhase.IDLE
    current_step: int = 1
    data: WizardData = field(default_factory=WizardData)
    pending_draft: WizardDraft | None = None
    community_id: str | None = None
    error: str | None = None


def _require(state: WizardState, *phases: WizardPhase) -> None:
    if state.phase not in phases:
        allowed = ", ".join(p.value for p in phases)
        raise WizardTransitionError(
            f"Not allowed while {state.phase.value} (requires {allowed})"
        )


def mount(
    state: WizardState,
    draft: WizardDraft | None,
    marker: CompletionMarker | None,
) -> WizardState:
    """Initial phase from whatever durable storage held.

    A completion marker wins over a draft.  A draft without progress is
    ignored (the controller deletes it).
    """
    _require(state, WizardPhase.IDLE)
    if marker is not None:
        return WizardState(
            phase=WizardPhase.SHOWING_COMPLETION,
            current_step=TOTAL_STEPS,
            data=marker.data,
            community_id=marker.community_id,
        )
    if draft is not None and has_progress(draft.data):
        return WizardState(phase=WizardPhase.AWAITING_RESUME, pending_draft=draft)
    return WizardState(phase=WizardPhase.ACTIVE)


def resume(state: WizardState) -> WizardState:
    _require(state, WizardPhase.AWAITING_RESUME)
    draft = state.pending_draft
    step = min(max(draft.current_step, 1), TOTAL_STEPS)
    return WizardState(phase=WizardPhase.ACTIVE, current_step=step, data=draft.data)


def discard(state: WizardState) -> WizardState:
    _require(state, WizardPhase.AWAITING_RESUME)
    return WizardState(phase=WizardPhase.ACTIVE)


def edit(state: WizardState, changes: dict[str, Any]) -> WizardState:
    """Merge field changes into the form data (re-validated as a whole)."""
    _require(state, WizardPhase.ACTIVE)
    merged = {**state.data.model_dump(), **changes}
    return replace(state, data=WizardData.model_validate(merged), error=None)


def advance(state: WizardState) -> WizardState:
    _require(state, WizardPhase.ACTIVE)
    if state.current_step >= TOTAL_STEPS:
        raise WizardTransitionError("Already on the last step; use finish")
    if not can_advance(state.current_step, state.data):
        raise WizardTransitionError(
            f"Step {state.current_step} is incomplete"
        )
    return replace(state, current_step=state.current_step + 1, error=None)


def retreat(state: WizardState) -> WizardState:
    _require(state, WizardPhase.ACTIVE)
    if state.current_step <= 1:
        raise WizardTransitionError("Already on the first step")
    return replace(state, current_step=state.current_step - 1, error=None)


def begin_submit(state: WizardState) -> WizardState:
    _require(state, WizardPhase.ACTIVE)
    if state.current_step != TOTAL_STEPS:
        raise WizardTransitionError("Finish is only available on the last step")
    if not can_advance(state.current_step, state.data):
        raise WizardTransitionError(
            f"Step {state.current_step} is incomplete"
        )
    return replace(state, phase=WizardPhase.SUBMITTING, error=None)


def submit_succeeded(state: WizardState, community_id: str | None) -> WizardState:
    _require(state, WizardPhase.SUBMITTING)
    return replace(
        state, phase=WizardPhase.SHOWING_COMPLETION, community_id=community_id
    )


def submit_failed(state: WizardState, message: str) -> WizardState:
    _require(state, WizardPhase.SUBMITTING)
    return replace(state, phase=WizardPhase.ACTIVE, error=message)


def set_promo(state: WizardState, promo: dict[str, Any]) -> WizardState:
    _require(state, WizardPhase.SHOWING_COMPLETION)
    return replace(state, data=state.data.model_copy(update={"promo": promo}))


def dismiss_completion(state: WizardState) -> WizardState:
    _require(state, WizardPhase.SHOWING_COMPLETION)
    return WizardState()
