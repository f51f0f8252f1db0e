"""Static step table for the community onboarding wizard.

Steps:
  1  Basic Info        name + meeting point with known coordinates
  2  Risk Assessment   at least one hazard selected
  3  Define Area       region polygon with at least 3 points
  4  Setup Groups      optional
  5  Invite Members    optional

The post-creation promotion screen is not a numbered step; it is the
SHOWING_COMPLETION phase (see app.wizard.state).
"""

from dataclasses import dataclass
from typing import Callable

from app.schemas.wizard import WizardData


def _basic_info_valid(data: WizardData) -> bool:
    return (
        data.community_name.strip() != ""
        and data.meeting_point_name.strip() != ""
        and data.meeting_point_lat is not None
        and data.meeting_point_lng is not None
    )


def _risks_valid(data: WizardData) -> bool:
    return len(data.selected_risks) > 0


def _area_valid(data: WizardData) -> bool:
    return data.region_polygon is not None and len(data.region_polygon) >= 3


def _always(data: WizardData) -> bool:
    return True


@dataclass(frozen=True)
class Step:
    id: int
    name: str
    description: str
    is_valid: Callable[[WizardData], bool]
    optional: bool = False


STEPS: tuple[Step, ...] = (
    Step(1, "Basic Info", "Community name and meeting point", _basic_info_valid),
    Step(2, "Risk Assessment", "AI-powered regional analysis", _risks_valid),
    Step(3, "Define Area", "Map your community boundaries", _area_valid),
    Step(4, "Setup Groups", "Organize your members", _always, optional=True),
    Step(5, "Invite Members", "Invite people to join", _always, optional=True),
)

TOTAL_STEPS = len(STEPS)

# Step ids by name, for hooks and tests
BASIC_INFO, RISK_ASSESSMENT, DEFINE_AREA, SETUP_GROUPS, INVITE_MEMBERS = (
    s.id for s in STEPS
)


def get_step(step: int) -> Step:
    if not 1 <= step <= TOTAL_STEPS:
        raise ValueError(f"Step out of range: {step} (1..{TOTAL_STEPS})")
    return STEPS[step - 1]


def can_advance(step: int, data: WizardData) -> bool:
    """Whether the form on `step` is complete enough to move on."""
    if not 1 <= step <= TOTAL_STEPS:
        return False
    return get_step(step).is_valid(data)


def has_progress(data: WizardData) -> bool:
    """A draft is worth keeping only if the user has entered something."""
    return (
        data.community_name.strip() != ""
        or data.meeting_point_name.strip() != ""
        or data.meeting_point_address.strip() != ""
        or len(data.selected_risks) > 0
        or (data.region_polygon is not None and len(data.region_polygon) > 0)
        or len(data.groups) > 0
        or len(data.invitations) > 0
    )
