"""add_daily_survey_tables

Creates the Daily Site Survey tables:
  - survey_tracking  — last day each engineer addressed the survey, per project
  - daily_surveys    — submitted surveys; a pending row is the same-day claim

Tables created conditionally (IF NOT EXISTS semantics) so the migration can
run against databases that already received them via db.create_all().

Revision ID: 5e1f0c2a9b7d
Revises:
Create Date: 2026-10-19 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1f0c2a9b7d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Survey tracking ───────────────────────────────────────────────────
    if "survey_tracking" not in existing:
        op.create_table(
            "survey_tracking",
            sa.Column("id", sa.String(length=300), nullable=False,
                      comment='Composite key "{user_id}_{project_id}"'),
            sa.Column("user_id", sa.String(length=128), nullable=False),
            sa.Column("project_id", sa.String(length=128), nullable=False),
            sa.Column("last_survey_date", sa.DateTime(timezone=True), nullable=True,
                      comment="Server-assigned instant of the last submit or skip (UTC)"),
            sa.Column("skipped", sa.Boolean(), nullable=False, server_default=sa.false(),
                      comment="True when the last addressing action was a dismissal"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "project_id", name="uq_survey_tracking_user_project"),
        )
        op.create_index("ix_survey_tracking_user_id", "survey_tracking", ["user_id"])
        op.create_index("ix_survey_tracking_project_id", "survey_tracking", ["project_id"])

    # ── Daily surveys ─────────────────────────────────────────────────────
    if "daily_surveys" not in existing:
        op.create_table(
            "daily_surveys",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.String(length=128), nullable=False),
            sa.Column("user_id", sa.String(length=128), nullable=True),
            sa.Column("survey_date", sa.Date(), nullable=False,
                      comment="Local calendar date the survey covers"),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False,
                      comment="Submission instant reported by the engineer's device"),
            sa.Column("engineer_name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("site_status", sa.String(length=20), nullable=False),
            sa.Column("site_closed_reason", sa.String(length=100), nullable=True),
            sa.Column("site_closed_reason_other", sa.Text(), nullable=True),
            sa.Column("task_updates", sa.JSON(), nullable=False,
                      comment="task_id → {status, delay_reason?, delay_reason_other?}"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("updates_processed", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "project_id", "survey_date",
                                name="uq_daily_surveys_user_project_date"),
            sa.CheckConstraint("site_status IN ('normal','delayed','closed')",
                               name="ck_daily_surveys_site_status"),
            sa.CheckConstraint("status IN ('pending','submitted')",
                               name="ck_daily_surveys_status"),
        )
        op.create_index("ix_daily_surveys_project_id", "daily_surveys", ["project_id"])
        op.create_index("ix_daily_surveys_user_id", "daily_surveys", ["user_id"])


def downgrade():
    op.drop_index("ix_daily_surveys_user_id", table_name="daily_surveys")
    op.drop_index("ix_daily_surveys_project_id", table_name="daily_surveys")
    op.drop_table("daily_surveys")
    op.drop_index("ix_survey_tracking_project_id", table_name="survey_tracking")
    op.drop_index("ix_survey_tracking_user_id", table_name="survey_tracking")
    op.drop_table("survey_tracking")
