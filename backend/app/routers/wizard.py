"""Community onboarding wizard: 5 steps with draft save/resume.

Endpoints:
  GET    /api/wizard/               → mount (or return) the caller's wizard
  PATCH  /api/wizard/data           → edit form fields (autosaved)
  POST   /api/wizard/advance        → next step (runs the step's AI hook)
  POST   /api/wizard/retreat        → previous step
  POST   /api/wizard/resume         → continue the saved draft
  POST   /api/wizard/discard        → drop the saved draft, start fresh
  POST   /api/wizard/analyze-risks  → AI hazard analysis for step 2
  POST   /api/wizard/finish         → create the community
  POST   /api/wizard/promo          → promotional copy + join QR code
  POST   /api/wizard/dismiss        → leave the completion screen
  DELETE /api/wizard/session        → forget the live session (page reload)

Design:
  - Form data lives in the controller and the draft store, not in
    community tables, until finish.
  - Creation failures are reported in the view's `error` with the draft
    restored; they are not HTTP errors.
"""

import logging

from fastapi import APIRouter, Depends, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user
from app.database import get_db
from app.models.profile import Profile
from app.schemas.wizard import (
    AIAnalysis,
    AnalyzeRisksRequest,
    StepOut,
    WizardData,
    WizardDataPatch,
    WizardView,
)
from app.services.ai import AIServiceClient, get_ai_client
from app.services.community_setup import create_community_from_wizard, send_invitation_emails
from app.services.promo import build_promo
from app.utils.cache import invalidate_cache
from app.wizard.controller import WizardController
from app.wizard.registry import WizardSessionRegistry, get_wizard_registry
from app.wizard.state import WizardPhase, WizardTransitionError
from app.wizard.steps import STEPS, TOTAL_STEPS, can_advance

logger = logging.getLogger(__name__)

router = APIRouter()

_STEPS_OUT = [
    StepOut(id=s.id, name=s.name, description=s.description, optional=s.optional)
    for s in STEPS
]


# ── Helpers ──────────────────────────────────────────────────

def _view(controller: WizardController, error: str | None = None) -> WizardView:
    state = controller.state
    return WizardView(
        phase=state.phase.value,
        current_step=state.current_step,
        total_steps=TOTAL_STEPS,
        steps=_STEPS_OUT,
        can_advance=(
            state.phase is WizardPhase.ACTIVE
            and can_advance(state.current_step, state.data)
        ),
        advancing=controller.advancing,
        data=state.data,
        pending_draft=state.pending_draft,
        community_id=state.community_id,
        error=error or state.error,
    )


async def _controller(
    user: Profile = Depends(get_current_user),
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
) -> WizardController:
    return await registry.get(user.id)


# ── Routes ───────────────────────────────────────────────────

@router.get("/", response_model=WizardView)
async def get_wizard(controller: WizardController = Depends(_controller)):
    return _view(controller)


@router.patch("/data", response_model=WizardView)
async def update_data(
    body: WizardDataPatch,
    controller: WizardController = Depends(_controller),
):
    await controller.update(body.model_dump(exclude_unset=True))
    return _view(controller)


@router.post("/advance", response_model=WizardView)
async def advance(controller: WizardController = Depends(_controller)):
    await controller.advance()
    return _view(controller)


@router.post("/retreat", response_model=WizardView)
async def retreat(controller: WizardController = Depends(_controller)):
    await controller.retreat()
    return _view(controller)


@router.post("/resume", response_model=WizardView)
async def resume(controller: WizardController = Depends(_controller)):
    await controller.resume()
    return _view(controller)


@router.post("/discard", response_model=WizardView)
async def discard(controller: WizardController = Depends(_controller)):
    await controller.discard_and_start_fresh()
    return _view(controller)


@router.post("/analyze-risks", response_model=WizardView)
async def analyze_risks(
    body: AnalyzeRisksRequest,
    controller: WizardController = Depends(_controller),
    ai: AIServiceClient = Depends(get_ai_client),
):
    """Ask the AI service which hazards apply; pre-selects every hazard found."""
    data: WizardData = controller.state.data
    if controller.state.phase is not WizardPhase.ACTIVE:
        raise WizardTransitionError("Risk analysis is only available while editing")

    result = await ai.analyze_risks(
        location=body.location or data.location or data.meeting_point_address,
        latitude=data.meeting_point_lat,
        longitude=data.meeting_point_lng,
    )
    analysis = None
    if result is not None:
        try:
            analysis = AIAnalysis.model_validate(result)
        except ValidationError:
            logger.warning("AI risk analysis returned an unexpected shape")
    if analysis is None:
        return _view(
            controller,
            error="Risk analysis is unavailable right now. Select hazards manually.",
        )

    selected = list(dict.fromkeys(r.type for r in analysis.risks))
    await controller.update(
        {"ai_analysis": analysis.model_dump(), "selected_risks": selected}
    )
    return _view(controller)


@router.post("/finish", response_model=WizardView)
async def finish(
    controller: WizardController = Depends(_controller),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    created = []

    async def _submit(data: WizardData) -> str:
        try:
            community, invitations = await create_community_from_wizard(db, user, data)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        created.append((community, invitations))
        return community.id

    await controller.finish(_submit)

    if created:
        community, invitations = created[0]
        await invalidate_cache("communities:*")
        await send_invitation_emails(community, invitations, user)
    return _view(controller)


@router.post("/promo", response_model=WizardView)
async def generate_promo(
    controller: WizardController = Depends(_controller),
    ai: AIServiceClient = Depends(get_ai_client),
):
    state = controller.state
    if state.phase is not WizardPhase.SHOWING_COMPLETION or not state.community_id:
        raise WizardTransitionError("Promotion is available once the community exists")
    promo = await build_promo(ai, state.community_id, state.data)
    await controller.set_promo(promo)
    return _view(controller)


@router.post("/dismiss", response_model=WizardView)
async def dismiss(controller: WizardController = Depends(_controller)):
    await controller.dismiss_completion()
    return _view(controller)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def drop_session(
    user: Profile = Depends(get_current_user),
    registry: WizardSessionRegistry = Depends(get_wizard_registry),
):
    registry.drop(user.id)
