"""
squad.database.models — SQLAlchemy 2.0 Data Models
===================================================

Relational layout of the Entity Store.  The store is only ever read and
written a whole collection at a time; the child tables below are the
normalised form of the nested lists carried by each entity.

Tables:
- users             — Members (role, points, profile)
- tasks             — Admin-defined missions with a fixed reward pool
- task_completions  — Ordered claim list per task
- questions         — Council questions (interest check → solution phase)
- question_votes    — One up/down vote per user per question
- solutions         — Proposed answers, ordered per question
- solution_votes    — Votes on solutions
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Squad ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    """Membership state of a user."""
    PENDING = "PENDING"
    BOY = "BOY"
    ADMIN = "ADMIN"
    REJECTED = "REJECTED"


class TaskType(enum.StrEnum):
    WEEKLY = "WEEKLY"
    LONG_TERM = "LONG_TERM"
    SUB_GOAL = "SUB_GOAL"


class TaskCategory(enum.StrEnum):
    STUDY = "STUDY"
    FITNESS = "FITNESS"
    CODING = "CODING"
    OTHER = "OTHER"


class VoteDirection(enum.StrEnum):
    UP = "UP"
    DOWN = "DOWN"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.PENDING.value)
    points: Mapped[int] = mapped_column(Integer, default=0)
    # Denormalised copy of the derived level for ad-hoc SQL reads only.
    level: Mapped[int] = mapped_column(Integer, default=1)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    device_details: Mapped[str | None] = mapped_column(Text, default=None)
    avatar: Mapped[str | None] = mapped_column(Text, default=None)
    custom_tags: Mapped[list | None] = mapped_column(JSONB, default=list)

    __table_args__ = (
        Index("ix_users_name", "name"),
        Index("ix_users_points_desc", "points"),
    )

    def __repr__(self) -> str:
        return f"<UserRow id={self.id} name={self.name!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
class TaskRow(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=TaskType.WEEKLY.value)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskCategory.OTHER.value
    )
    created_by: Mapped[str | None] = mapped_column(String(64), default=None)
    is_group_task: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    completions: Mapped[list[TaskCompletion]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskCompletion.position",
    )

    __table_args__ = (
        Index("ix_tasks_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TaskRow id={self.id} title={self.title!r} pts={self.points}>"


class TaskCompletion(Base):
    __tablename__ = "task_completions"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    task: Mapped[TaskRow] = relationship(back_populates="completions")

    def __repr__(self) -> str:
        return f"<TaskCompletion task={self.task_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Council — questions, votes, solutions
# ---------------------------------------------------------------------------
class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_interest_check: Mapped[bool] = mapped_column(Boolean, default=True)
    dropped: Mapped[bool] = mapped_column(Boolean, default=False)
    admin_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    majority_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    penalty_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    votes: Mapped[list[QuestionVote]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionVote.position",
    )
    solutions: Mapped[list[SolutionRow]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="SolutionRow.position",
    )

    __table_args__ = (
        Index("ix_questions_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<QuestionRow id={self.id} dropped={self.dropped}>"


class QuestionVote(Base):
    """Primary key on (question, user) keeps up/down votes mutually exclusive."""
    __tablename__ = "question_votes"

    question_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vote_type: Mapped[str] = mapped_column(String(4), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    question: Mapped[QuestionRow] = relationship(back_populates="votes")

    def __repr__(self) -> str:
        return f"<QuestionVote q={self.question_id} user={self.user_id} {self.vote_type}>"


class SolutionRow(Base):
    __tablename__ = "solutions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_best_answer: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    question: Mapped[QuestionRow] = relationship(back_populates="solutions")
    votes: Mapped[list[SolutionVote]] = relationship(
        back_populates="solution",
        cascade="all, delete-orphan",
        order_by="SolutionVote.position",
    )

    __table_args__ = (
        Index("ix_solutions_question", "question_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<SolutionRow id={self.id} q={self.question_id}>"


class SolutionVote(Base):
    __tablename__ = "solution_votes"

    solution_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("solutions.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    solution: Mapped[SolutionRow] = relationship(back_populates="votes")

    def __repr__(self) -> str:
        return f"<SolutionVote s={self.solution_id} user={self.user_id}>"
