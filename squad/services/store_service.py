"""
squad.services.store_service — Entity Store over SQLAlchemy
============================================================

Server side of the central store.  Every collection is read whole and
written whole; there are no per-field updates.

Replace semantics
-----------------
``replace_*`` upserts every record in the payload by id.  Records that are
absent from the payload are left untouched; nothing is ever deleted at the
top level.  The nested lists of each written record (task completions,
question votes, solutions, solution votes) are re-synced to exactly what
the payload carries, in payload order.

A single :class:`threading.Lock` per collection serializes replaces inside
the API process.  Two sessions that replace the same collection from
different snapshots still overwrite each other: last writer wins.

All functions here are synchronous; async callers go through
:class:`SqlEntityStore`, which bridges with :func:`run_db`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from squad.database.engine import get_session, run_db
from squad.database.models import (
    QuestionRow,
    QuestionVote,
    Role,
    SolutionRow,
    SolutionVote,
    TaskCategory,
    TaskCompletion,
    TaskRow,
    TaskType,
    UserRow,
    VoteDirection,
)
from squad.engine.errors import SyncFailure
from squad.engine.ledger import Collection
from squad.engine.snapshot import Question, Solution, Task, User, parse_timestamp

logger = logging.getLogger(__name__)

_LOCKS: dict[Collection, threading.Lock] = {
    Collection.USERS: threading.Lock(),
    Collection.TASKS: threading.Lock(),
    Collection.QUESTIONS: threading.Lock(),
}


# ---------------------------------------------------------------------------
# Protocol shared by the SQL and HTTP stores
# ---------------------------------------------------------------------------
class EntityStore(Protocol):
    """Whole-collection get/replace, as seen by a client session."""

    async def get_users(self) -> list[User]: ...

    async def replace_users(self, users: Iterable[User]) -> None: ...

    async def get_tasks(self) -> list[Task]: ...

    async def replace_tasks(self, tasks: Iterable[Task]) -> None: ...

    async def get_questions(self) -> list[Question]: ...

    async def replace_questions(self, questions: Iterable[Question]) -> None: ...


# ---------------------------------------------------------------------------
# Row ↔ value-object mapping
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(UTC)


def user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        role=Role(row.role),
        points=max(row.points or 0, 0),
        joined_at=parse_timestamp(row.joined_at),
        device_details=row.device_details or "",
        avatar=row.avatar,
        custom_tags=tuple(row.custom_tags or ()),
    )


def task_from_row(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        title=row.title,
        points=row.points,
        description=row.description or "",
        type=TaskType(row.type),
        category=TaskCategory(row.category),
        created_by=row.created_by or "",
        is_group_task=bool(row.is_group_task),
        completed_by=tuple(c.user_id for c in row.completions),
        created_at=parse_timestamp(row.created_at),
        expires_at=parse_timestamp(row.expires_at),
    )


def question_from_row(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        author_id=row.author_id,
        title=row.title,
        content=row.content or "",
        is_interest_check=bool(row.is_interest_check) and not row.dropped,
        upvotes=tuple(v.user_id for v in row.votes if v.vote_type == VoteDirection.UP),
        downvotes=tuple(v.user_id for v in row.votes if v.vote_type == VoteDirection.DOWN),
        dropped=bool(row.dropped),
        solutions=tuple(
            Solution(
                id=s.id,
                author_id=s.author_id,
                content=s.content or "",
                votes=tuple(v.user_id for v in s.votes),
                is_best_answer=bool(s.is_best_answer),
            )
            for s in row.solutions
        ),
        created_at=parse_timestamp(row.created_at),
        admin_approved=bool(row.admin_approved),
        majority_approved=bool(row.majority_approved),
        penalty_applied=bool(row.penalty_applied),
    )


def _get_or_add(session: Session, model, record_id: str):
    row = session.get(model, record_id)
    if row is None:
        row = model(id=record_id)
        session.add(row)
    return row


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def get_users(engine: Engine) -> list[User]:
    """All users in join order."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(UserRow).order_by(UserRow.joined_at, UserRow.id)
        ).all()
        return [user_from_row(r) for r in rows]


def replace_users(engine: Engine, users: Iterable[User]) -> int:
    """Upsert every user in *users*; return how many were written."""
    count = 0
    with _LOCKS[Collection.USERS], get_session(engine) as session:
        for user in users:
            row = _get_or_add(session, UserRow, user.id)
            row.name = user.name
            row.role = user.role.value
            row.points = max(user.points, 0)
            row.level = user.level
            row.joined_at = user.joined_at or row.joined_at or _now()
            row.device_details = user.device_details
            row.avatar = user.avatar
            row.custom_tags = list(user.custom_tags)
            count += 1
    logger.debug("Replaced %d users", count)
    return count


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
def get_tasks(engine: Engine) -> list[Task]:
    """All tasks, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(TaskRow)
            .options(selectinload(TaskRow.completions))
            .order_by(TaskRow.created_at.desc(), TaskRow.id)
        ).all()
        return [task_from_row(r) for r in rows]


def _sync_completions(row: TaskRow, user_ids: tuple[str, ...]) -> None:
    existing = {c.user_id: c for c in row.completions}
    row.completions = [existing.get(uid) or TaskCompletion(user_id=uid) for uid in user_ids]
    for position, completion in enumerate(row.completions):
        completion.position = position


def replace_tasks(engine: Engine, tasks: Iterable[Task]) -> int:
    """Upsert every task in *tasks* and re-sync each one's completion list."""
    count = 0
    with _LOCKS[Collection.TASKS], get_session(engine) as session:
        for task in tasks:
            row = _get_or_add(session, TaskRow, task.id)
            row.title = task.title
            row.description = task.description
            row.points = task.points
            row.type = task.type.value
            row.category = task.category.value
            row.created_by = task.created_by
            row.is_group_task = task.is_group_task
            row.created_at = task.created_at or row.created_at or _now()
            row.expires_at = task.expires_at
            _sync_completions(row, task.completed_by)
            count += 1
    logger.debug("Replaced %d tasks", count)
    return count


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
def get_questions(engine: Engine) -> list[Question]:
    """All questions, newest first, with votes and solutions in order."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(QuestionRow)
            .options(
                selectinload(QuestionRow.votes),
                selectinload(QuestionRow.solutions).selectinload(SolutionRow.votes),
            )
            .order_by(QuestionRow.created_at.desc(), QuestionRow.id)
        ).all()
        return [question_from_row(r) for r in rows]


def _sync_question_votes(row: QuestionRow, question: Question) -> None:
    existing = {v.user_id: v for v in row.votes}
    ballots = [(uid, VoteDirection.UP) for uid in question.upvotes]
    ballots += [(uid, VoteDirection.DOWN) for uid in question.downvotes]
    row.votes = [existing.get(uid) or QuestionVote(user_id=uid) for uid, _ in ballots]
    for position, (vote, (_, direction)) in enumerate(zip(row.votes, ballots)):
        vote.vote_type = direction.value
        vote.position = position


def _sync_solutions(row: QuestionRow, question: Question) -> None:
    existing = {s.id: s for s in row.solutions}
    synced = []
    for position, solution in enumerate(question.solutions):
        srow = existing.get(solution.id) or SolutionRow(id=solution.id)
        srow.author_id = solution.author_id
        srow.content = solution.content
        srow.is_best_answer = solution.is_best_answer
        srow.position = position
        voters = {v.user_id: v for v in srow.votes}
        srow.votes = [voters.get(uid) or SolutionVote(user_id=uid) for uid in solution.votes]
        for vpos, vote in enumerate(srow.votes):
            vote.position = vpos
        synced.append(srow)
    row.solutions = synced


def replace_questions(engine: Engine, questions: Iterable[Question]) -> int:
    """Upsert every question in *questions*, re-syncing votes and solutions."""
    count = 0
    with _LOCKS[Collection.QUESTIONS], get_session(engine) as session:
        for question in questions:
            row = _get_or_add(session, QuestionRow, question.id)
            row.author_id = question.author_id
            row.title = question.title
            row.content = question.content
            row.is_interest_check = question.is_interest_check and not question.dropped
            row.dropped = question.dropped
            row.admin_approved = question.admin_approved
            row.majority_approved = question.majority_approved
            row.penalty_applied = question.penalty_applied
            row.created_at = question.created_at or row.created_at or _now()
            _sync_question_votes(row, question)
            _sync_solutions(row, question)
            count += 1
    logger.debug("Replaced %d questions", count)
    return count


# ---------------------------------------------------------------------------
# Async adapter
# ---------------------------------------------------------------------------
class SqlEntityStore:
    """:class:`EntityStore` backed directly by the database.

    Used by in-process sessions (tests, the headless runner with a local
    database).  Database errors surface as :class:`SyncFailure`.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def _call(self, operation: str, func, *args):
        try:
            return await run_db(func, self.engine, *args)
        except SQLAlchemyError as exc:
            raise SyncFailure(operation, exc) from exc

    async def get_users(self) -> list[User]:
        return await self._call("get_users", get_users)

    async def replace_users(self, users: Iterable[User]) -> None:
        await self._call("replace_users", replace_users, list(users))

    async def get_tasks(self) -> list[Task]:
        return await self._call("get_tasks", get_tasks)

    async def replace_tasks(self, tasks: Iterable[Task]) -> None:
        await self._call("replace_tasks", replace_tasks, list(tasks))

    async def get_questions(self) -> list[Question]:
        return await self._call("get_questions", get_questions)

    async def replace_questions(self, questions: Iterable[Question]) -> None:
        await self._call("replace_questions", replace_questions, list(questions))
