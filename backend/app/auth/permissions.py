"""Community role permissions.

Roles, from most to least privileged:
  admin        manage the community, members, guides and SOP templates
  team_member  run activated SOPs, create events
  member       read access, edit notes on tasks assigned to them

Profiles with the platform role `super_admin` pass every community check.
"""

from __future__ import annotations

SUPER_ADMIN = "super_admin"

ADMIN = ("admin",)
TEAM = ("admin", "team_member")
ANY_MEMBER = ("admin", "team_member", "member")


def role_allows(role: str | None, allowed: tuple[str, ...]) -> bool:
    return role is not None and role in allowed
