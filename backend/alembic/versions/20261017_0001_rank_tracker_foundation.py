"""rank tracker keywords, observations, settings and task executions

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""
from alembic import op
import sqlalchemy as sa


revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tracked_keywords",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("keyword", sa.Text(), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=True),
        sa.Column("search_engine", sa.String(length=50), nullable=False, server_default="google.com"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_position", sa.Integer(), nullable=True),
        sa.Column("best_position", sa.Integer(), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tracked_keywords_created_at", "tracked_keywords", ["created_at"])
    op.create_index("ix_tracked_keywords_active_last_checked_at", "tracked_keywords", ["active", "last_checked_at"])

    op.create_table(
        "keyword_rank_observations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("keyword_id", sa.Integer(), sa.ForeignKey("tracked_keywords.id", ondelete="CASCADE"), nullable=False),
        sa.Column("checked_date", sa.Date(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("url_found", sa.Text(), nullable=False, server_default=""),
    )
    op.create_index("ix_keyword_rank_observations_checked_date", "keyword_rank_observations", ["checked_date"])
    op.create_index(
        "ix_keyword_rank_observations_keyword_id_checked_date",
        "keyword_rank_observations",
        ["keyword_id", "checked_date"],
    )

    op.create_table(
        "tracker_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("provider", sa.String(length=20), nullable=False, server_default="none"),
        sa.Column("encrypted_api_key", sa.Text(), nullable=True),
        sa.Column("custom_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("location", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("language", sa.String(length=20), nullable=False, server_default="en"),
        sa.Column("daily_limit", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("batch_size", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("daily_limit >= 1", name="ck_tracker_settings_daily_limit_positive"),
        sa.CheckConstraint("batch_size >= 1 AND batch_size <= 500", name="ck_tracker_settings_batch_size_range"),
    )

    op.create_table(
        "task_executions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("task_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("trigger", sa.String(length=20), nullable=False, server_default="beat"),
        sa.Column("result_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_task_executions_task_name", "task_executions", ["task_name"])
    op.create_index("ix_task_executions_started_at", "task_executions", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_task_executions_started_at", table_name="task_executions")
    op.drop_index("ix_task_executions_task_name", table_name="task_executions")
    op.drop_table("task_executions")

    op.drop_table("tracker_settings")

    op.drop_index("ix_keyword_rank_observations_keyword_id_checked_date", table_name="keyword_rank_observations")
    op.drop_index("ix_keyword_rank_observations_checked_date", table_name="keyword_rank_observations")
    op.drop_table("keyword_rank_observations")

    op.drop_index("ix_tracked_keywords_active_last_checked_at", table_name="tracked_keywords")
    op.drop_index("ix_tracked_keywords_created_at", table_name="tracked_keywords")
    op.drop_table("tracked_keywords")
