"""Create users, tasks and council tables

Revision ID: 5a1c0e7d3b92
Revises:
Create Date: 2026-10-17 10:12:41.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5a1c0e7d3b92'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the Entity Store schema."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("device_details", sa.Text, nullable=True),
        sa.Column("avatar", sa.Text, nullable=True),
        sa.Column("custom_tags", postgresql.JSONB, nullable=True, server_default="[]"),
    )
    op.create_index("ix_users_name", "users", ["name"])
    op.create_index("ix_users_points_desc", "users", ["points"])

    # --- tasks ---
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="WEEKLY"),
        sa.Column("category", sa.String(20), nullable=False, server_default="OTHER"),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("is_group_task", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tasks_created_at", "tasks", ["created_at"])

    op.create_table(
        "task_completions",
        sa.Column(
            "task_id", sa.String(64),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )

    # --- questions ---
    op.create_table(
        "questions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("is_interest_check", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("dropped", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("admin_approved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("majority_approved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("penalty_applied", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_questions_created_at", "questions", ["created_at"])

    op.create_table(
        "question_votes",
        sa.Column(
            "question_id", sa.String(64),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("vote_type", sa.String(4), nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "solutions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "question_id", sa.String(64),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("is_best_answer", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_solutions_question", "solutions", ["question_id", "position"])

    op.create_table(
        "solution_votes",
        sa.Column(
            "solution_id", sa.String(64),
            sa.ForeignKey("solutions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )


def downgrade() -> None:
    """Drop the Entity Store schema."""
    op.drop_table("solution_votes")
    op.drop_index("ix_solutions_question", table_name="solutions")
    op.drop_table("solutions")
    op.drop_table("question_votes")
    op.drop_index("ix_questions_created_at", table_name="questions")
    op.drop_table("questions")
    op.drop_table("task_completions")
    op.drop_index("ix_tasks_created_at", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_users_points_desc", table_name="users")
    op.drop_index("ix_users_name", table_name="users")
    op.drop_table("users")
