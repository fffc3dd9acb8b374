"""create advisor context tables

Revision ID: 5b1f0c7d9a3e
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5b1f0c7d9a3e"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create profile, goal, conversation, context and notification tables."""
    op.create_table(
        "student_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("preferred_name", sa.String(100), nullable=True),
        sa.Column("grade", sa.String(20), nullable=True),
        sa.Column("high_school_name", sa.String(255), nullable=True),
        sa.Column("gpa_unweighted", sa.Float(), nullable=True),
        sa.Column("gpa_weighted", sa.Float(), nullable=True),
        sa.Column("sat_total", sa.Integer(), nullable=True),
        sa.Column("act_composite", sa.Integer(), nullable=True),
        sa.Column("target_schools", sa.JSON(), nullable=True),
        sa.Column("activities", sa.JSON(), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("target_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_goals_student_id"), "goals", ["student_id"])

    op.create_table(
        "goal_tasks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("goal_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_goal_tasks_goal_id"), "goal_tasks", ["goal_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(32), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("summary_for_user", sa.JSON(), nullable=True),
        sa.Column("summary_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_conversations_student_id"), "conversations", ["student_id"]
    )
    op.create_index(
        "ix_conversations_student_id_last_message_at",
        "conversations",
        ["student_id", "last_message_at"],
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parsed_intents", sa.JSON(), nullable=True),
        sa.Column("widget_type", sa.String(50), nullable=True),
        sa.Column("widget_data", sa.JSON(), nullable=True),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_messages_conversation_id"), "messages", ["conversation_id"]
    )

    op.create_table(
        "student_contexts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("quick_context", sa.Text(), nullable=True),
        sa.Column("recent_sessions", sa.Text(), nullable=True),
        sa.Column("student_understanding", sa.Text(), nullable=True),
        sa.Column("open_commitments", sa.Text(), nullable=True),
        sa.Column("generated_objectives", sa.Text(), nullable=True),
        sa.Column(
            "objectives_generated_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("upcoming_deadlines", sa.JSON(), nullable=True),
        sa.Column("advisor_preferences", sa.Text(), nullable=True),
        sa.Column("accountability_level", sa.String(20), nullable=False),
        sa.Column("total_conversations", sa.Integer(), nullable=False),
        sa.Column("total_messages", sa.Integer(), nullable=False),
        sa.Column("last_conversation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "master_summary_updated_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_student_contexts_student_id"),
        "student_contexts",
        ["student_id"],
        unique=True,
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("urgency", sa.String(20), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("mobile_message", sa.Text(), nullable=True),
        sa.Column("email_subject", sa.String(255), nullable=True),
        sa.Column("email_body", sa.Text(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["student_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_notifications_student_id"), "notifications", ["student_id"]
    )


def downgrade() -> None:
    """Drop advisor context tables."""
    op.drop_index(op.f("ix_notifications_student_id"), table_name="notifications")
    op.drop_table("notifications")
    op.drop_index(
        op.f("ix_student_contexts_student_id"), table_name="student_contexts"
    )
    op.drop_table("student_contexts")
    op.drop_index(op.f("ix_messages_conversation_id"), table_name="messages")
    op.drop_table("messages")
    op.drop_index(
        "ix_conversations_student_id_last_message_at", table_name="conversations"
    )
    op.drop_index(op.f("ix_conversations_student_id"), table_name="conversations")
    op.drop_table("conversations")
    op.drop_index(op.f("ix_goal_tasks_goal_id"), table_name="goal_tasks")
    op.drop_table("goal_tasks")
    op.drop_index(op.f("ix_goals_student_id"), table_name="goals")
    op.drop_table("goals")
    op.drop_table("student_profiles")
