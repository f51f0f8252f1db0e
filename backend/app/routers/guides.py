"""Community guides and their SOP templates."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_community_role
from app.auth.permissions import ADMIN, ANY_MEMBER
from app.database import get_db
from app.models.guide import CommunityGuide
from app.models.profile import Profile
from app.models.sop import SOPTemplate
from app.schemas.sop import SOPTemplateIn, SOPTemplateOut
from app.services.sop import save_template
from app.utils.cache import cached, invalidate_cache


# ── Schemas ──────────────────────────────────────────────────

class GuideOut(BaseModel):
    id: str
    community_id: str
    name: str
    description: str | None
    icon: str | None
    color: str | None
    guide_type: str
    template_id: str | None
    risk_level: str | None
    sections: dict
    supplies: list
    emergency_contacts: list
    custom_notes: str | None
    local_resources: list | None
    is_active: bool
    display_order: int
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class GuideUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    risk_level: str | None = Field(default=None, pattern="^(low|medium|high)$")
    sections: dict | None = None
    supplies: list[str] | None = None
    emergency_contacts: list[dict] | None = None
    custom_notes: str | None = None
    local_resources: list[str] | None = None
    is_active: bool | None = None
    display_order: int | None = None


class GuideWithTemplate(BaseModel):
    guide: GuideUpdate = GuideUpdate()
    template: SOPTemplateIn


class GuideTemplateOut(BaseModel):
    guide: GuideOut
    template: SOPTemplateOut


# ── Routes ───────────────────────────────────────────────────

router = APIRouter()


async def _get_guide(db: AsyncSession, community_id: str, guide_id: str) -> CommunityGuide:
    result = await db.execute(
        select(CommunityGuide).where(
            CommunityGuide.id == guide_id,
            CommunityGuide.community_id == community_id,
        )
    )
    guide = result.scalar_one_or_none()
    if not guide:
        raise HTTPException(status_code=404, detail="Guide not found")
    return guide


@router.get("/{community_id}/guides", response_model=list[GuideOut])
@cached(ttl=300, prefix="guides")
async def list_guides(
    community_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    """List guides in display order (cached 5 minutes)."""
    result = await db.execute(
        select(CommunityGuide)
        .where(CommunityGuide.community_id == community_id)
        .order_by(CommunityGuide.display_order, CommunityGuide.name)
    )
    return [GuideOut.model_validate(g) for g in result.scalars().all()]


@router.get("/{community_id}/guides/{guide_id}", response_model=GuideOut)
async def get_guide(
    community_id: str,
    guide_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    return GuideOut.model_validate(await _get_guide(db, community_id, guide_id))


@router.patch("/{community_id}/guides/{guide_id}", response_model=GuideOut)
async def update_guide(
    community_id: str,
    guide_id: str,
    body: GuideUpdate,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ADMIN)),
):
    guide = await _get_guide(db, community_id, guide_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(guide, key, value)

    await db.flush()
    await db.refresh(guide)
    await invalidate_cache("guides:*")
    return GuideOut.model_validate(guide)


@router.get("/{community_id}/guides/{guide_id}/sop-template", response_model=SOPTemplateOut)
async def get_sop_template(
    community_id: str,
    guide_id: str,
    db: AsyncSession = Depends(get_db),
    _user: Profile = Depends(require_community_role(*ANY_MEMBER)),
):
    await _get_guide(db, community_id, guide_id)
    result = await db.execute(select(SOPTemplate).where(SOPTemplate.guide_id == guide_id))
    template = result.scalar_one_or_none()
    if not template:
        raise HTTPException(status_code=404, detail="This guide has no SOP template yet")
    return SOPTemplateOut.model_validate(template)


@router.put("/{community_id}/guides/{guide_id}/sop-template", response_model=GuideTemplateOut)
async def save_guide_with_template(
    community_id: str,
    guide_id: str,
    body: GuideWithTemplate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_community_role(*ADMIN)),
):
    """Save guide edits and its SOP template together (one transaction)."""
    guide = await _get_guide(db, community_id, guide_id)
    for key, value in body.guide.model_dump(exclude_unset=True).items():
        setattr(guide, key, value)

    template = await save_template(
        db,
        user,
        guide,
        name=body.template.name,
        description=body.template.description,
        tasks=body.template.tasks,
    )
    await db.flush()
    await db.refresh(guide)
    await db.refresh(template)
    await invalidate_cache("guides:*")
    return GuideTemplateOut(
        guide=GuideOut.model_validate(guide),
        template=SOPTemplateOut.model_validate(template),
    )
