"""create fitleague core schema

Revision ID: 3c7e1f0a9b42
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c7e1f0a9b42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "ranking_categories",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order"),
    )

    op.create_table(
        "ranking_leagues",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["ranking_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("category_id", "level", name="uq_ranking_leagues_category_level"),
    )
    op.create_index(op.f("ix_ranking_leagues_category_id"), "ranking_leagues", ["category_id"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("league_id", sa.Uuid(), nullable=True),
        sa.Column("weekly_scores", sa.JSON(), nullable=False),
        sa.Column("current_week_score", sa.Integer(), nullable=False),
        sa.Column("coins", sa.Integer(), nullable=False),
        sa.Column("push_token", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["league_id"], ["ranking_leagues.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_league_id"), "users", ["league_id"], unique=False)

    op.create_table(
        "activities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("sport_type", sa.String(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_date_user_timezone", sa.String(), nullable=False),
        sa.Column("start_date_epoch_ms", sa.BigInteger(), nullable=False),
        sa.Column("end_date_epoch_ms", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at_user_timezone", sa.String(), nullable=False),
        sa.Column("created_at_epoch_ms", sa.BigInteger(), nullable=False),
        sa.Column("week_in_user_timezone", sa.Integer(), nullable=False),
        sa.Column("year_in_user_timezone", sa.Integer(), nullable=False),
        sa.Column("average_heartrate", sa.Float(), nullable=True),
        sa.Column("max_heartrate", sa.Float(), nullable=True),
        sa.Column("distance", sa.Float(), nullable=False),
        sa.Column("elapsed_time", sa.Integer(), nullable=False),
        sa.Column("moving_time", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("effort_factor", sa.Float(), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.Column("invalid_reason", _enum("invalidreason", "OVERLAP", "WEEK_MISMATCH", "LOW_HEART_RATE"), nullable=True),
        sa.Column("invalid_message", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_activities_external_id"), "activities", ["external_id"], unique=True)
    op.create_index(op.f("ix_activities_user_id"), "activities", ["user_id"], unique=False)
    op.create_index(op.f("ix_activities_start_date_epoch_ms"), "activities", ["start_date_epoch_ms"], unique=False)
    op.create_index(op.f("ix_activities_is_valid"), "activities", ["is_valid"], unique=False)
    op.create_index(
        "ix_activities_user_week",
        "activities",
        ["user_id", "year_in_user_timezone", "week_in_user_timezone"],
        unique=False,
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", _enum("badgetype", "DISCIPLINE", "DISTANCE", "TIME", "MISSION", "RANKING"), nullable=False),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("sport_types", sa.JSON(), nullable=False),
        sa.Column("prerequisites", sa.JSON(), nullable=False),
        sa.Column("available_from", sa.Date(), nullable=True),
        sa.Column("available_until", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_badges_type"), "badges", ["type"], unique=False)

    op.create_table(
        "user_badges",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("badge_id", sa.Uuid(), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["badge_id"], ["badges.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )
    op.create_index(op.f("ix_user_badges_user_id"), "user_badges", ["user_id"], unique=False)

    op.create_table(
        "missions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("goal_type", _enum("goaltype", "DISTANCE", "FREQUENCY", "DURATION"), nullable=False),
        sa.Column("goal_value", sa.Float(), nullable=False),
        sa.Column("sport_types", sa.JSON(), nullable=False),
        sa.Column("initial_day", sa.Date(), nullable=False),
        sa.Column("end_day", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_missions_end_day"), "missions", ["end_day"], unique=False)
    op.create_index(op.f("ix_missions_is_active"), "missions", ["is_active"], unique=False)

    op.create_table(
        "mission_attempts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("mission_id", sa.Uuid(), nullable=False),
        sa.Column("status", _enum("attemptstatus", "ACTIVE", "ACHIEVED", "NOT_ACHIEVED"), nullable=False),
        sa.Column("progress", sa.Float(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_date_user_timezone", sa.String(), nullable=False),
        sa.Column("end_date_user_timezone", sa.String(), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("achieved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["mission_id"], ["missions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "mission_id", name="uq_mission_attempts_user_mission"),
    )
    op.create_index(op.f("ix_mission_attempts_user_id"), "mission_attempts", ["user_id"], unique=False)
    op.create_index(op.f("ix_mission_attempts_mission_id"), "mission_attempts", ["mission_id"], unique=False)
    op.create_index(op.f("ix_mission_attempts_status"), "mission_attempts", ["status"], unique=False)

    op.create_table(
        "mission_progress",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("activity_id", sa.Uuid(), nullable=False),
        sa.Column("mission_attempt_id", sa.Uuid(), nullable=False),
        sa.Column("progress_made", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["activity_id"], ["activities.id"]),
        sa.ForeignKeyConstraint(["mission_attempt_id"], ["mission_attempts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("activity_id", "mission_attempt_id", name="uq_mission_progress_activity_attempt"),
    )
    op.create_index(op.f("ix_mission_progress_activity_id"), "mission_progress", ["activity_id"], unique=False)
    op.create_index(op.f("ix_mission_progress_mission_attempt_id"), "mission_progress", ["mission_attempt_id"], unique=False)

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", _enum("cointransactiontype", "WEEKLY_POINTS", "REWARD_REDEMPTION", "ADJUSTMENT"), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at_epoch_ms", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "type", "reference", name="uq_coin_transactions_user_type_reference"),
    )
    op.create_index(op.f("ix_coin_transactions_user_id"), "coin_transactions", ["user_id"], unique=False)

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("importance", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at_user_timezone", sa.String(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("status", _enum("deliverystatus", "QUEUED", "SENT", "FAILED", "SKIPPED"), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_notifications_user_id"), "user_notifications", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_notifications_status"), "user_notifications", ["status"], unique=False)

    op.create_table(
        "evaluation_tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("task_type", _enum("tasktype", "ACTIVITY_BADGES", "MISSION_BADGES", "RANKING_BADGES"), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("ref_id", sa.Uuid(), nullable=False),
        sa.Column("status", _enum("taskstatus", "QUEUED", "DONE", "FAILED"), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_evaluation_tasks_user_id"), "evaluation_tasks", ["user_id"], unique=False)
    op.create_index(op.f("ix_evaluation_tasks_status"), "evaluation_tasks", ["status"], unique=False)


def downgrade() -> None:
    for table in (
        "evaluation_tasks",
        "user_notifications",
        "coin_transactions",
        "mission_progress",
        "mission_attempts",
        "missions",
        "user_badges",
        "badges",
        "activities",
        "users",
        "ranking_leagues",
        "ranking_categories",
    ):
        op.drop_table(table)
