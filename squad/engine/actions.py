"""
squad.engine.actions — Action Envelopes
========================================

Every user intent is normalised into one of the frozen action dataclasses
below before it reaches the ledger.  The acting user is not part of the
action: it comes from the session context that submits it.

:class:`ActionContext` carries the two impure inputs the ledger needs —
the current time and an id factory — so the transforms themselves stay
deterministic under test.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from squad.database.models import TaskCategory, TaskType, VoteDirection

__all__ = [
    "Action",
    "ActionContext",
    "AddSolution",
    "ApproveQuestion",
    "ApproveUser",
    "ClaimTask",
    "CreateTask",
    "Login",
    "MarkBestAnswer",
    "PostQuestion",
    "RejectUser",
    "UpdateProfile",
    "VoteQuestion",
    "VoteSolution",
]


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class ActionContext:
    """Clock and id source injected into every ledger transform."""

    now: datetime = field(default_factory=_utcnow)
    new_id: Callable[[], str] = _new_id


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Login:
    name: str
    device_details: str = ""


@dataclass(frozen=True, slots=True)
class ApproveUser:
    user_id: str


@dataclass(frozen=True, slots=True)
class RejectUser:
    user_id: str


@dataclass(frozen=True, slots=True)
class UpdateProfile:
    """``None`` leaves a field unchanged; an empty tuple clears the tags."""

    avatar: str | None = None
    custom_tags: tuple[str, ...] | None = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CreateTask:
    title: str
    points: int
    description: str = ""
    type: TaskType = TaskType.WEEKLY
    category: TaskCategory = TaskCategory.OTHER
    is_group_task: bool = False
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ClaimTask:
    task_id: str


# ---------------------------------------------------------------------------
# Council
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PostQuestion:
    title: str
    content: str


@dataclass(frozen=True, slots=True)
class VoteQuestion:
    question_id: str
    direction: VoteDirection


@dataclass(frozen=True, slots=True)
class ApproveQuestion:
    question_id: str


@dataclass(frozen=True, slots=True)
class AddSolution:
    question_id: str
    content: str


@dataclass(frozen=True, slots=True)
class VoteSolution:
    question_id: str
    solution_id: str


@dataclass(frozen=True, slots=True)
class MarkBestAnswer:
    question_id: str
    solution_id: str


Action = (
    Login
    | ApproveUser
    | RejectUser
    | UpdateProfile
    | CreateTask
    | ClaimTask
    | PostQuestion
    | VoteQuestion
    | ApproveQuestion
    | AddSolution
    | VoteSolution
    | MarkBestAnswer
)
