"""
squad.engine.snapshot — Value Objects & Snapshot
=================================================

The entities every session holds in memory.  All of them are frozen
dataclasses: the ledger never mutates in place, it builds new values with
:func:`dataclasses.replace` and hands back a new :class:`Snapshot`.

Derived fields are properties computed from canonical fields on every
read.  ``User.level`` in particular has no setter — the value that
arrives over the wire or from the database is ignored.

The ``to_wire`` / ``from_wire`` helpers speak the camelCase JSON format
used by the Entity Store API.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from squad.constants import level_for_points
from squad.database.models import Role, TaskCategory, TaskType

__all__ = [
    "Question",
    "Snapshot",
    "Solution",
    "Task",
    "User",
    "parse_timestamp",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def parse_timestamp(value: Any) -> datetime | None:
    """Coerce an ISO string or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _unique(ids: Any) -> tuple[str, ...]:
    """Order-preserving de-duplication of an id sequence."""
    return tuple(dict.fromkeys(str(i) for i in ids or ()))


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    role: Role = Role.PENDING
    points: int = 0
    joined_at: datetime | None = None
    device_details: str = ""
    avatar: str | None = None
    custom_tags: tuple[str, ...] = ()

    @property
    def level(self) -> int:
        """Always derived from points; see :func:`level_for_points`."""
        return level_for_points(self.points)

    @property
    def is_active_member(self) -> bool:
        return self.role in (Role.BOY, Role.ADMIN)

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "points": self.points,
            "level": self.level,
            "joinedAt": _format_timestamp(self.joined_at),
            "deviceDetails": self.device_details,
            "avatar": self.avatar,
            "customTags": list(self.custom_tags),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> User:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            role=Role(data.get("role", Role.PENDING)),
            points=max(int(data.get("points") or 0), 0),
            joined_at=parse_timestamp(data.get("joinedAt")),
            device_details=data.get("deviceDetails") or "",
            avatar=data.get("avatar"),
            custom_tags=tuple(data.get("customTags") or ()),
        )


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    points: int
    description: str = ""
    type: TaskType = TaskType.WEEKLY
    category: TaskCategory = TaskCategory.OTHER
    created_by: str = ""
    is_group_task: bool = False
    # Insertion order matters: it is the order rewards were redistributed in.
    completed_by: tuple[str, ...] = ()
    created_at: datetime | None = None
    expires_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "points": self.points,
            "type": self.type.value,
            "category": self.category.value,
            "createdBy": self.created_by,
            "isGroupTask": self.is_group_task,
            "completedBy": list(self.completed_by),
            "createdAt": _format_timestamp(self.created_at),
            "expiresAt": _format_timestamp(self.expires_at),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=str(data["id"]),
            title=data["title"],
            description=data.get("description") or "",
            points=int(data["points"]),
            type=TaskType(data.get("type", TaskType.WEEKLY)),
            category=TaskCategory(data.get("category", TaskCategory.OTHER)),
            created_by=str(data.get("createdBy") or ""),
            is_group_task=bool(data.get("isGroupTask", False)),
            completed_by=_unique(data.get("completedBy")),
            created_at=parse_timestamp(data.get("createdAt")),
            expires_at=parse_timestamp(data.get("expiresAt")),
        )


# ---------------------------------------------------------------------------
# Council: Solution + Question
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Solution:
    id: str
    author_id: str
    content: str
    votes: tuple[str, ...] = ()
    is_best_answer: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "authorId": self.author_id,
            "content": self.content,
            "votes": list(self.votes),
            "isBestAnswer": self.is_best_answer,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Solution:
        return cls(
            id=str(data["id"]),
            author_id=str(data["authorId"]),
            content=data.get("content") or "",
            votes=_unique(data.get("votes")),
            is_best_answer=bool(data.get("isBestAnswer", False)),
        )


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    author_id: str
    title: str
    content: str
    is_interest_check: bool = True
    upvotes: tuple[str, ...] = ()
    downvotes: tuple[str, ...] = ()
    dropped: bool = False
    solutions: tuple[Solution, ...] = ()
    created_at: datetime | None = None
    admin_approved: bool = False
    majority_approved: bool = False
    penalty_applied: bool = False

    def has_voted(self, user_id: str) -> bool:
        return user_id in self.upvotes or user_id in self.downvotes

    def solution(self, solution_id: str) -> Solution | None:
        return next((s for s in self.solutions if s.id == solution_id), None)

    @property
    def best_answer(self) -> Solution | None:
        return next((s for s in self.solutions if s.is_best_answer), None)

    @property
    def accepts_solutions(self) -> bool:
        return not self.dropped and not self.is_interest_check

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "authorId": self.author_id,
            "title": self.title,
            "content": self.content,
            "isInterestCheck": self.is_interest_check,
            "upvotes": list(self.upvotes),
            "downvotes": list(self.downvotes),
            "dropped": self.dropped,
            "solutions": [s.to_wire() for s in self.solutions],
            "createdAt": _format_timestamp(self.created_at),
            "adminApproved": self.admin_approved,
            "majorityApproved": self.majority_approved,
            "penaltyApplied": self.penalty_applied,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Question:
        dropped = bool(data.get("dropped", False))
        upvotes = _unique(data.get("upvotes"))
        return cls(
            id=str(data["id"]),
            author_id=str(data["authorId"]),
            title=data["title"],
            content=data.get("content") or "",
            # A dropped question is never in its voting phase.
            is_interest_check=bool(data.get("isInterestCheck", True)) and not dropped,
            upvotes=upvotes,
            downvotes=tuple(u for u in _unique(data.get("downvotes")) if u not in upvotes),
            dropped=dropped,
            solutions=tuple(Solution.from_wire(s) for s in data.get("solutions") or ()),
            created_at=parse_timestamp(data.get("createdAt")),
            admin_approved=bool(data.get("adminApproved", False)),
            majority_approved=bool(data.get("majorityApproved", False)),
            penalty_applied=bool(data.get("penaltyApplied", dropped)),
        )


# ---------------------------------------------------------------------------
# Snapshot — one session's working copy of every collection
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Snapshot:
    users: tuple[User, ...] = field(default_factory=tuple)
    tasks: tuple[Task, ...] = field(default_factory=tuple)
    questions: tuple[Question, ...] = field(default_factory=tuple)

    # -- lookups ------------------------------------------------------------
    def user(self, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        return next((u for u in self.users if u.id == user_id), None)

    def user_by_name(self, name: str) -> User | None:
        """Case-insensitive lookup on the trimmed *name*."""
        key = name.strip().casefold()
        return next((u for u in self.users if u.name.strip().casefold() == key), None)

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    # -- copy-on-write updates ------------------------------------------------
    def with_user(self, user: User) -> Snapshot:
        """Replace the user with ``user.id``, or append it if absent."""
        if self.user(user.id) is None:
            return replace(self, users=(*self.users, user))
        return replace(
            self, users=tuple(user if u.id == user.id else u for u in self.users)
        )

    def with_task(self, task: Task) -> Snapshot:
        return replace(
            self, tasks=tuple(task if t.id == task.id else t for t in self.tasks)
        )

    def with_question(self, question: Question) -> Snapshot:
        return replace(
            self,
            questions=tuple(
                question if q.id == question.id else q for q in self.questions
            ),
        )

    def with_points(self, deltas: dict[str, int]) -> Snapshot:
        """Apply all point *deltas* in one pass, flooring each user at 0."""
        if not deltas:
            return self
        return replace(
            self,
            users=tuple(
                replace(u, points=max(0, u.points + deltas[u.id]))
                if u.id in deltas else u
                for u in self.users
            ),
        )

    def to_wire(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "users": [u.to_wire() for u in self.users],
            "tasks": [t.to_wire() for t in self.tasks],
            "questions": [q.to_wire() for q in self.questions],
        }
