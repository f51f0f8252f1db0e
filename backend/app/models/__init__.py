"""Aggregate model imports for Alembic auto-detection."""

from app.models.profile import Profile  # noqa: F401

# Communities
from app.models.community import (  # noqa: F401
    Community,
    CommunityGroup,
    CommunityInvitation,
    CommunityMapPoint,
    CommunityMember,
)
from app.models.event import CommunityEvent, EventInvite  # noqa: F401
from app.models.alert import Alert  # noqa: F401

# Guides / SOPs
from app.models.guide import CommunityGuide  # noqa: F401
from app.models.sop import ActivatedSOP, SOPTask, SOPTaskActivity, SOPTemplate  # noqa: F401

# Onboarding wizard
from app.models.wizard_draft import WizardDraftRow  # noqa: F401
