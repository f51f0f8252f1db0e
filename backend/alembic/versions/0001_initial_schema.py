"""Initial schema: profiles, communities, guides, SOPs, alerts, wizard drafts.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _id():
    return sa.Column("id", sa.String(36), primary_key=True)


def _community_fk():
    return sa.Column(
        "community_id", sa.String(36),
        sa.ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )


def upgrade() -> None:
    # ── People / communities ─────────────────────────────────

    op.create_table(
        "profiles",
        _id(),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(255)),
        sa.Column("phone", sa.String(20)),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("notification_preferences", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "communities",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("location", sa.String(255)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("is_public", sa.Boolean(), server_default=sa.true()),
        sa.Column("member_count", sa.Integer(), server_default="0"),
        sa.Column("meeting_point_name", sa.String(255)),
        sa.Column("meeting_point_address", sa.String(500)),
        sa.Column("meeting_point_lat", sa.Float()),
        sa.Column("meeting_point_lng", sa.Float()),
        sa.Column("region_polygon", sa.JSON(), nullable=True),
        sa.Column("region_color", sa.String(9), server_default="#3B82F6"),
        sa.Column("region_opacity", sa.Float(), server_default="0.3"),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "community_members",
        _id(),
        _community_fk(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False, index=True),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("joined_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("community_id", "user_id"),
    )

    op.create_table(
        "community_groups",
        _id(),
        _community_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("color", sa.String(9)),
        sa.Column("icon", sa.String(50)),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "community_map_points",
        _id(),
        _community_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("point_type", sa.String(30), server_default="other"),
        sa.Column("icon", sa.String(50)),
        sa.Column("color", sa.String(9)),
        sa.Column("address", sa.String(500)),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "community_invitations",
        _id(),
        _community_fk(),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("name", sa.String(255)),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("group_name", sa.String(255)),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("invited_by", sa.String(36), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("accepted_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Events / alerts ──────────────────────────────────────

    op.create_table(
        "community_events",
        _id(),
        _community_fk(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("event_type", sa.String(20), server_default="meeting"),
        sa.Column("start_time", sa.DateTime(), nullable=False, index=True),
        sa.Column("end_time", sa.DateTime()),
        sa.Column("location_name", sa.String(255)),
        sa.Column("is_online", sa.Boolean(), server_default=sa.false()),
        sa.Column("meeting_url", sa.String(500)),
        sa.Column("visibility", sa.String(20), server_default="all"),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "event_invites",
        _id(),
        sa.Column(
            "event_id", sa.String(36),
            sa.ForeignKey("community_events.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("rsvp_status", sa.String(20), server_default="invited"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id"),
    )

    op.create_table(
        "alerts",
        _id(),
        _community_fk(),
        sa.Column("author_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("level", sa.String(10), server_default="info"),
        sa.Column("is_public", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("recipient_group", sa.String(20), nullable=False),
        sa.Column("recipient_ids", sa.JSON(), nullable=True),
        sa.Column("recipient_count", sa.Integer(), server_default="0"),
        sa.Column("sent_via_email", sa.Boolean(), server_default=sa.false()),
        sa.Column("sent_via_sms", sa.Boolean(), server_default=sa.false()),
        sa.Column("sent_via_app", sa.Boolean(), server_default=sa.false()),
        sa.Column("emails_sent", sa.Integer(), server_default="0"),
        sa.Column("sms_sent", sa.Integer(), server_default="0"),
        sa.Column("delivery_errors", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), index=True),
    )

    # ── Guides / SOPs ────────────────────────────────────────

    op.create_table(
        "community_guides",
        _id(),
        _community_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("icon", sa.String(50)),
        sa.Column("color", sa.String(100)),
        sa.Column("guide_type", sa.String(30), nullable=False),
        sa.Column("template_id", sa.String(50)),
        sa.Column("risk_level", sa.String(10)),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("supplies", sa.JSON(), nullable=False),
        sa.Column("emergency_contacts", sa.JSON(), nullable=False),
        sa.Column("custom_notes", sa.Text()),
        sa.Column("local_resources", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), server_default="0"),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "sop_templates",
        _id(),
        _community_fk(),
        sa.Column(
            "guide_id", sa.String(36),
            sa.ForeignKey("community_guides.id", ondelete="CASCADE"),
            nullable=False, unique=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("tasks", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("updated_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "activated_sops",
        _id(),
        _community_fk(),
        sa.Column("template_id", sa.String(36), sa.ForeignKey("sop_templates.id"), nullable=False, index=True),
        sa.Column("guide_id", sa.String(36), sa.ForeignKey("community_guides.id"), nullable=False),
        sa.Column("event_name", sa.String(255), nullable=False),
        sa.Column("event_date", sa.Date(), server_default=sa.func.current_date()),
        sa.Column("emergency_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), server_default="active", index=True),
        sa.Column("activated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("archived_at", sa.DateTime()),
        sa.Column("completion_notes", sa.Text()),
        sa.Column("activated_by", sa.String(36), nullable=False),
        sa.Column("completed_by", sa.String(36)),
        sa.Column("archived_by", sa.String(36)),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "sop_tasks",
        _id(),
        sa.Column(
            "activated_sop_id", sa.String(36),
            sa.ForeignKey("activated_sops.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("community_id", sa.String(36), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("task_order", sa.Integer(), server_default="0"),
        sa.Column("estimated_duration_minutes", sa.Integer()),
        sa.Column("category", sa.String(30)),
        sa.Column("team_lead_id", sa.String(36)),
        sa.Column("assigned_to_id", sa.String(36), index=True),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("completed_by", sa.String(36)),
        sa.Column("notes", sa.Text()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "sop_task_activity",
        _id(),
        sa.Column("task_id", sa.String(36), nullable=False, index=True),
        sa.Column("activated_sop_id", sa.String(36), nullable=False, index=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("old_value", sa.Text()),
        sa.Column("new_value", sa.Text()),
        sa.Column("performed_by", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
    )

    # ── Onboarding wizard ────────────────────────────────────

    op.create_table(
        "wizard_drafts",
        sa.Column("key", sa.String(120), primary_key=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in (
        "wizard_drafts",
        "sop_task_activity",
        "sop_tasks",
        "activated_sops",
        "sop_templates",
        "community_guides",
        "alerts",
        "event_invites",
        "community_events",
        "community_invitations",
        "community_map_points",
        "community_groups",
        "community_members",
        "communities",
        "profiles",
    ):
        op.drop_table(table)
