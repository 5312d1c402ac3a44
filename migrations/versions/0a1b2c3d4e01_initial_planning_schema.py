"""initial_planning_schema

Team members, OKR hierarchy, capacity planning, check-ins, tasks and
import bookkeeping tables.

Revision ID: 0a1b2c3d4e01
Revises:
Create Date: 2025-01-06 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e01"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def _member_fk(nullable=False, ondelete="CASCADE"):
    return sa.Column(
        "team_member_id", sa.Integer(),
        sa.ForeignKey("team_members.id", ondelete=ondelete), nullable=nullable,
    )


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    def create(name, *columns):
        if name not in existing_tables:
            op.create_table(name, *columns)

    create(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("password", sa.String(length=200), nullable=False),
        _ts("created_at"),
    )
    create(
        "team_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True, unique=True),
        sa.Column("role", sa.String(length=100), nullable=True),
        sa.Column("team", sa.String(length=100), nullable=True),
        sa.Column("weekly_hours", sa.Float(), nullable=False, server_default="40"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    create(
        "time_off",
        sa.Column("id", sa.Integer(), primary_key=True),
        _member_fk(),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        _ts("created_at"),
    )
    create(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quarter", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("progress", sa.Float(), nullable=True),
        sa.Column("owner_id", sa.Integer(),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("team", sa.String(length=100), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    create(
        "goal_assignees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("goal_id", sa.Integer(),
                  sa.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.UniqueConstraint("goal_id", "team_member_id", name="uq_goal_assignee"),
    )
    create(
        "key_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("goal_id", sa.Integer(),
                  sa.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Integer(),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("metric", sa.String(length=200), nullable=True),
        sa.Column("current_value", sa.Float(), nullable=True),
        sa.Column("target_value", sa.Float(), nullable=True),
        sa.Column("progress", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("assigned_quarter", sa.String(length=20), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    create(
        "key_result_assignees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key_result_id", sa.Integer(),
                  sa.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.UniqueConstraint("key_result_id", "team_member_id", name="uq_kr_assignee"),
    )
    create(
        "key_result_updates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key_result_id", sa.Integer(),
                  sa.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=False),
        sa.Column("previous_status", sa.String(length=20), nullable=True),
        sa.Column("new_status", sa.String(length=20), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("link", sa.String(length=1000), nullable=True),
        sa.Column("updated_by", sa.Integer(),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
    )
    create(
        "initiatives",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("key_result_id", sa.Integer(),
                  sa.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=True),
        sa.Column("parent_goal_id", sa.Integer(),
                  sa.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("project_priority", sa.String(length=10), nullable=True),
        sa.Column("team", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("owner_id", sa.Integer(),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.Column("progress", sa.Float(), nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("current_value", sa.Float(), nullable=True),
        sa.Column("assigned_quarter", sa.String(length=20), nullable=True),
        sa.Column("tracker_url", sa.String(length=1000), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    create(
        "initiative_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("role", sa.String(length=20), nullable=True),
        sa.Column("allocation_percentage", sa.Float(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("initiative_id", "team_member_id", name="uq_initiative_assignment"),
    )
    create(
        "initiative_updates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False),
        sa.Column("previous_status", sa.String(length=20), nullable=True),
        sa.Column("new_status", sa.String(length=20), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("link", sa.String(length=1000), nullable=True),
        sa.Column("updated_by", sa.Integer(),
                  sa.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
    )
    create(
        "initiative_time_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("hours_worked", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("initiative_id", "team_member_id", "week_start",
                            name="uq_initiative_time_entry"),
    )
    create(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("priority", sa.String(length=20), nullable=True),
        sa.Column("effort_estimate", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("parent_goal_id", sa.Integer(),
                  sa.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    create(
        "task_assignees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(),
                  sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("source", sa.String(length=20), nullable=True),
        sa.UniqueConstraint("task_id", "team_member_id", name="uq_task_assignee"),
    )
    create(
        "resolved_assignees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(),
                  sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("resolution_source", sa.String(length=20), nullable=True),
        _ts("created_at"),
    )
    create(
        "task_time_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(),
                  sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        _member_fk(),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("hours_worked", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("task_id", "team_member_id", "week_start", name="uq_task_time_entry"),
    )
    create(
        "allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        _member_fk(),
        sa.Column("goal_id", sa.Integer(),
                  sa.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("task_id", sa.Integer(),
                  sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("allocation_percentage", sa.Float(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("calculated_hours", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=True),
        _ts("created_at"),
    )
    create(
        "weekly_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        _member_fk(),
        sa.Column("initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("allocation_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("team_member_id", "initiative_id", "week_start",
                            name="uq_weekly_allocation"),
    )
    create(
        "weekly_checkins",
        sa.Column("id", sa.Integer(), primary_key=True),
        _member_fk(),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("total_allocation_pct", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("mood", sa.String(length=20), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("team_member_id", "week_start", name="uq_weekly_checkin"),
    )
    create(
        "weekly_checkin_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("checkin_id", sa.Integer(),
                  sa.ForeignKey("weekly_checkins.id", ondelete="CASCADE"), nullable=False),
        sa.Column("initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="SET NULL"), nullable=True),
        sa.Column("key_result_id", sa.Integer(),
                  sa.ForeignKey("key_results.id", ondelete="SET NULL"), nullable=True),
        sa.Column("time_allocation_pct", sa.Float(), nullable=True),
        sa.Column("progress_contribution_pct", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    create(
        "duplicate_matches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source_type", sa.String(length=30), nullable=False),
        sa.Column("source_title", sa.String(length=500), nullable=False),
        sa.Column("matched_initiative_id", sa.Integer(),
                  sa.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=True),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        _ts("created_at"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    create(
        "pmo_export_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("start_week", sa.Date(), nullable=False),
        sa.Column("end_week", sa.Date(), nullable=False),
        sa.Column("include_months", sa.Text(), nullable=True),
        _ts("created_at"),
    )


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    # children before parents
    for name in (
        "pmo_export_config", "duplicate_matches", "weekly_checkin_items", "weekly_checkins",
        "weekly_allocations", "allocations", "task_time_entries", "resolved_assignees",
        "task_assignees", "tasks", "initiative_time_entries", "initiative_updates",
        "initiative_assignments", "initiatives", "key_result_updates", "key_result_assignees",
        "key_results", "goal_assignees", "goals", "time_off", "team_members", "users",
    ):
        if name in existing_tables:
            op.drop_table(name)
