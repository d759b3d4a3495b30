"""
squad.engine.ledger — Ledger Engine
====================================

Pure, synchronous transforms ``(snapshot, action) → snapshot'``.
No store I/O, no clock reads, no global state: the caller supplies the
acting user's id and an :class:`~squad.engine.actions.ActionContext`, and
is responsible for persisting every collection named in
:attr:`LedgerResult.touched`.

Missing entities and repeated votes/claims are not errors; they return
:attr:`Outcome.NO_OP` with the input snapshot unchanged.

Level is never written: it is a property of :class:`User` derived from
points, so every user whose points change is re-levelled implicitly.
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from squad.constants import (
    BEST_ANSWER_BONUS,
    DROP_MIN_DOWNVOTES,
    DROP_PENALTY,
    MAX_AVATAR_BYTES,
    MAX_CUSTOM_TAGS,
    MAX_TAG_LENGTH,
    QUESTION_APPROVAL_BONUS,
)
from squad.database.models import Role, VoteDirection
from squad.engine.actions import (
    Action,
    ActionContext,
    AddSolution,
    ApproveQuestion,
    ApproveUser,
    ClaimTask,
    CreateTask,
    Login,
    MarkBestAnswer,
    PostQuestion,
    RejectUser,
    UpdateProfile,
    VoteQuestion,
    VoteSolution,
)
from squad.engine.errors import AccessDenied, InvalidInput
from squad.engine.snapshot import Question, Snapshot, Solution, Task, User

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class Outcome(enum.StrEnum):
    APPLIED = "applied"
    NO_OP = "no_op"


class Collection(enum.StrEnum):
    """Entity Store collections; persistence is always whole-collection."""
    USERS = "users"
    TASKS = "tasks"
    QUESTIONS = "questions"


class LoginStatus(enum.StrEnum):
    PENDING = "pending"
    ACTIVE = "active"


@dataclass(frozen=True, slots=True)
class LedgerResult:
    """Output of one transform."""

    snapshot: Snapshot
    outcome: Outcome = Outcome.APPLIED
    touched: frozenset[Collection] = frozenset()

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED


@dataclass(frozen=True, slots=True)
class LoginResult(LedgerResult):
    user: User | None = None
    status: LoginStatus = LoginStatus.PENDING


def _no_op(snapshot: Snapshot) -> LedgerResult:
    return LedgerResult(snapshot, Outcome.NO_OP)


def _applied(before: Snapshot, after: Snapshot) -> LedgerResult:
    """Build an APPLIED result, naming every collection that changed."""
    touched = {
        name
        for name, old, new in (
            (Collection.USERS, before.users, after.users),
            (Collection.TASKS, before.tasks, after.tasks),
            (Collection.QUESTIONS, before.questions, after.questions),
        )
        if old is not new
    }
    return LedgerResult(after, Outcome.APPLIED, frozenset(touched))


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
def login(
    snapshot: Snapshot,
    name: str,
    device_details: str,
    ctx: ActionContext | None = None,
) -> LoginResult:
    """Resolve a login attempt by (trimmed, case-insensitive) name.

    Raises
    ------
    InvalidInput
        If *name* is blank.
    AccessDenied
        If the matching user has been REJECTED.  Nothing is created or
        mutated in that case.
    """
    ctx = ctx or ActionContext()
    candidate = name.strip()
    if not candidate:
        raise InvalidInput("Name must not be blank.")

    existing = snapshot.user_by_name(candidate)
    if existing is not None:
        if existing.role == Role.REJECTED:
            raise AccessDenied(candidate)
        status = LoginStatus.PENDING if existing.role == Role.PENDING else LoginStatus.ACTIVE
        return LoginResult(
            snapshot, Outcome.NO_OP, frozenset(), user=existing, status=status
        )

    user = User(
        id=ctx.new_id(),
        name=candidate,
        role=Role.PENDING,
        points=0,
        joined_at=ctx.now,
        device_details=device_details,
    )
    logger.info("New recruit %r registered (pending approval)", candidate)
    return LoginResult(
        replace(snapshot, users=(*snapshot.users, user)),
        Outcome.APPLIED,
        frozenset({Collection.USERS}),
        user=user,
        status=LoginStatus.PENDING,
    )


def _set_role(snapshot: Snapshot, user_id: str, role: Role) -> LedgerResult:
    # ADMIN is seeded, never granted or revoked through membership actions.
    user = snapshot.user(user_id)
    if user is None or user.role == role or user.role == Role.ADMIN:
        return _no_op(snapshot)
    return _applied(snapshot, snapshot.with_user(replace(user, role=role)))


def approve_user(snapshot: Snapshot, user_id: str) -> LedgerResult:
    return _set_role(snapshot, user_id, Role.BOY)


def reject_user(snapshot: Snapshot, user_id: str) -> LedgerResult:
    return _set_role(snapshot, user_id, Role.REJECTED)


def _avatar_size(avatar: str) -> int:
    """Decoded byte size of a data-URL avatar (raw length otherwise)."""
    if avatar.startswith("data:") and "," in avatar:
        payload = avatar.split(",", 1)[1]
        try:
            return len(base64.b64decode(payload, validate=False))
        except (binascii.Error, ValueError):
            return len(payload)
    return len(avatar.encode("utf-8"))


def normalize_tags(tags: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Trim and upper-case tags, enforcing count and length limits."""
    cleaned = tuple(t.strip().upper() for t in tags if t and t.strip())
    if len(cleaned) > MAX_CUSTOM_TAGS:
        raise InvalidInput(f"Max {MAX_CUSTOM_TAGS} tags allowed.")
    for tag in cleaned:
        if len(tag) > MAX_TAG_LENGTH:
            raise InvalidInput(f"Tag too long (max {MAX_TAG_LENGTH} chars): {tag!r}")
    return cleaned


def update_profile(
    snapshot: Snapshot, user_id: str, avatar: str | None, custom_tags: Any
) -> LedgerResult:
    user = snapshot.user(user_id)
    if user is None:
        return _no_op(snapshot)

    changes: dict[str, Any] = {}
    if avatar is not None:
        if _avatar_size(avatar) > MAX_AVATAR_BYTES:
            raise InvalidInput("Image too large (max 2 MB).")
        changes["avatar"] = avatar
    if custom_tags is not None:
        changes["custom_tags"] = normalize_tags(custom_tags)

    updated = replace(user, **changes)
    if updated == user:
        return _no_op(snapshot)
    return _applied(snapshot, snapshot.with_user(updated))


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
def create_task(
    snapshot: Snapshot, creator_id: str, action: CreateTask, ctx: ActionContext
) -> LedgerResult:
    title = action.title.strip()
    if not title:
        raise InvalidInput("Task title must not be blank.")
    if action.points <= 0:
        raise InvalidInput("Task points must be positive.")

    task = Task(
        id=ctx.new_id(),
        title=title,
        description=action.description,
        points=action.points,
        type=action.type,
        category=action.category,
        created_by=creator_id,
        is_group_task=action.is_group_task,
        completed_by=(),
        created_at=ctx.now,
        expires_at=action.expires_at,
    )
    # Newest first, matching the store's read order.
    return _applied(snapshot, replace(snapshot, tasks=(task, *snapshot.tasks)))


def group_shares(pool: int, prior_count: int) -> tuple[int, int]:
    """Return ``(new_share, old_share)`` for a group task claim.

    *prior_count* is the number of completers **before** the claim.  With
    no prior completers the old share is irrelevant and reported as 0.
    """
    new_share = pool // (prior_count + 1)
    old_share = pool // prior_count if prior_count else 0
    return new_share, old_share


def claim_task(snapshot: Snapshot, claimant_id: str, task_id: str) -> LedgerResult:
    """Record a claim and pay out (or redistribute) the task's reward.

    Non-group tasks pay the full pool.  Group tasks split the pool evenly
    among all completers: the claimant receives the new share and each
    prior completer is adjusted by ``new_share - old_share``.  All point
    changes land in the same snapshot transform.
    """
    task = snapshot.task(task_id)
    if task is None or snapshot.user(claimant_id) is None:
        return _no_op(snapshot)
    if claimant_id in task.completed_by:
        return _no_op(snapshot)

    prior = task.completed_by
    deltas: dict[str, int] = {}
    if task.is_group_task:
        new_share, old_share = group_shares(task.points, len(prior))
        for uid in prior:
            deltas[uid] = new_share - old_share
        # The claimant is never in ``prior``; assign rather than add.
        deltas[claimant_id] = new_share
    else:
        deltas[claimant_id] = task.points

    updated = replace(task, completed_by=(*prior, claimant_id))
    after = snapshot.with_task(updated).with_points(deltas)
    logger.debug(
        "Task %s claimed by %s (group=%s, deltas=%s)",
        task_id, claimant_id, task.is_group_task, deltas,
    )
    return _applied(snapshot, after)


# ---------------------------------------------------------------------------
# Council
# ---------------------------------------------------------------------------
def post_question(
    snapshot: Snapshot,
    author_id: str,
    title: str,
    content: str,
    ctx: ActionContext,
) -> LedgerResult:
    author = snapshot.user(author_id)
    if author is None:
        return _no_op(snapshot)
    if not title.strip() or not content.strip():
        raise InvalidInput("Question title and content are required.")

    question = Question(
        id=ctx.new_id(),
        author_id=author_id,
        title=title.strip(),
        content=content.strip(),
        # Admin questions skip the vote and open for solutions directly.
        is_interest_check=author.role != Role.ADMIN,
        created_at=ctx.now,
    )
    return _applied(snapshot, replace(snapshot, questions=(question, *snapshot.questions)))


def evaluate_drop(snapshot: Snapshot, question_id: str) -> Snapshot:
    """Apply the drop rule to one question.  Idempotent.

    The author is charged only on the transition into ``dropped``; the
    ``penalty_applied`` marker makes re-evaluation of an already dropped
    question a no-op.
    """
    question = snapshot.question(question_id)
    if question is None or question.penalty_applied:
        return snapshot

    downs, ups = len(question.downvotes), len(question.upvotes)
    if not question.dropped and not (downs >= DROP_MIN_DOWNVOTES and downs > ups):
        return snapshot

    updated = replace(
        question, dropped=True, is_interest_check=False, penalty_applied=True
    )
    logger.info(
        "Question %s dropped (%d down / %d up); author %s penalised",
        question_id, downs, ups, question.author_id,
    )
    return snapshot.with_question(updated).with_points(
        {question.author_id: -DROP_PENALTY}
    )


def evaluate_majority(snapshot: Snapshot, question_id: str) -> Snapshot:
    """Graduate a question once half of the BOY members have upvoted it."""
    question = snapshot.question(question_id)
    if question is None or question.dropped or question.majority_approved:
        return snapshot
    if not question.is_interest_check:
        return snapshot

    members = sum(1 for u in snapshot.users if u.role == Role.BOY)
    if members == 0 or 2 * len(question.upvotes) < members:
        return snapshot

    updated = replace(question, majority_approved=True, is_interest_check=False)
    return snapshot.with_question(updated).with_points(
        {question.author_id: QUESTION_APPROVAL_BONUS}
    )


def vote_question(
    snapshot: Snapshot, voter_id: str, question_id: str, direction: VoteDirection
) -> LedgerResult:
    question = snapshot.question(question_id)
    if question is None or question.dropped or question.has_voted(voter_id):
        return _no_op(snapshot)

    if direction == VoteDirection.UP:
        question = replace(question, upvotes=(*question.upvotes, voter_id))
    else:
        question = replace(question, downvotes=(*question.downvotes, voter_id))

    after = evaluate_drop(snapshot.with_question(question), question_id)
    if direction == VoteDirection.UP:
        after = evaluate_majority(after, question_id)
    return _applied(snapshot, after)


def approve_question(snapshot: Snapshot, question_id: str) -> LedgerResult:
    question = snapshot.question(question_id)
    if question is None or question.dropped or question.admin_approved:
        return _no_op(snapshot)

    updated = replace(question, admin_approved=True, is_interest_check=False)
    after = snapshot.with_question(updated).with_points(
        {question.author_id: QUESTION_APPROVAL_BONUS}
    )
    return _applied(snapshot, after)


def add_solution(
    snapshot: Snapshot,
    author_id: str,
    question_id: str,
    content: str,
    ctx: ActionContext,
) -> LedgerResult:
    if not content.strip():
        raise InvalidInput("Solution content is required.")
    question = snapshot.question(question_id)
    if question is None or not question.accepts_solutions:
        return _no_op(snapshot)

    solution = Solution(id=ctx.new_id(), author_id=author_id, content=content.strip())
    updated = replace(question, solutions=(*question.solutions, solution))
    return _applied(snapshot, snapshot.with_question(updated))


def vote_solution(
    snapshot: Snapshot, voter_id: str, question_id: str, solution_id: str
) -> LedgerResult:
    """One solution vote per user per question, across all its solutions."""
    question = snapshot.question(question_id)
    if question is None or question.dropped:
        return _no_op(snapshot)
    if question.solution(solution_id) is None:
        return _no_op(snapshot)
    if any(voter_id in s.votes for s in question.solutions):
        return _no_op(snapshot)

    updated = replace(
        question,
        solutions=tuple(
            replace(s, votes=(*s.votes, voter_id)) if s.id == solution_id else s
            for s in question.solutions
        ),
    )
    return _applied(snapshot, snapshot.with_question(updated))


def mark_best_answer(
    snapshot: Snapshot, question_id: str, solution_id: str
) -> LedgerResult:
    question = snapshot.question(question_id)
    if question is None or question.best_answer is not None:
        return _no_op(snapshot)
    solution = question.solution(solution_id)
    if solution is None:
        return _no_op(snapshot)

    updated = replace(
        question,
        solutions=tuple(
            replace(s, is_best_answer=True) if s.id == solution_id else s
            for s in question.solutions
        ),
    )
    after = snapshot.with_question(updated).with_points(
        {solution.author_id: BEST_ANSWER_BONUS}
    )
    return _applied(snapshot, after)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
_Handler = Callable[[Snapshot, Any, str, ActionContext], LedgerResult]

_HANDLERS: dict[type, _Handler] = {
    Login: lambda s, a, _actor, ctx: login(s, a.name, a.device_details, ctx),
    ApproveUser: lambda s, a, _actor, _ctx: approve_user(s, a.user_id),
    RejectUser: lambda s, a, _actor, _ctx: reject_user(s, a.user_id),
    UpdateProfile: lambda s, a, actor, _ctx: update_profile(
        s, actor, a.avatar, a.custom_tags
    ),
    CreateTask: lambda s, a, actor, ctx: create_task(s, actor, a, ctx),
    ClaimTask: lambda s, a, actor, _ctx: claim_task(s, actor, a.task_id),
    PostQuestion: lambda s, a, actor, ctx: post_question(s, actor, a.title, a.content, ctx),
    VoteQuestion: lambda s, a, actor, _ctx: vote_question(
        s, actor, a.question_id, VoteDirection(a.direction)
    ),
    ApproveQuestion: lambda s, a, _actor, _ctx: approve_question(s, a.question_id),
    AddSolution: lambda s, a, actor, ctx: add_solution(
        s, actor, a.question_id, a.content, ctx
    ),
    VoteSolution: lambda s, a, actor, _ctx: vote_solution(
        s, actor, a.question_id, a.solution_id
    ),
    MarkBestAnswer: lambda s, a, _actor, _ctx: mark_best_answer(
        s, a.question_id, a.solution_id
    ),
}


def apply(
    snapshot: Snapshot,
    action: Action,
    actor_id: str,
    ctx: ActionContext | None = None,
) -> LedgerResult:
    """Run *action* on behalf of *actor_id* against *snapshot*.

    Authorization is not checked here; see :mod:`squad.engine.gate`.
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unsupported action: {type(action).__name__}")
    return handler(snapshot, action, actor_id, ctx or ActionContext())
