"""
squad.engine.gate — Session States & Role Gate
===============================================

Finite session lifecycle::

    LOADING     → LOGIN_FORM | PENDING | ACTIVE
    LOGIN_FORM  → PENDING | ACTIVE          (login)
    PENDING     → ACTIVE | LOGGED_OUT       (sync loop, cancel)
    ACTIVE      → LOGGED_OUT                (logout, rejection)
    LOGGED_OUT  → PENDING | ACTIVE          (login again)

Only an ACTIVE session may submit ledger actions.  Admin-only actions
additionally require the acting user's *current* role (as seen in the
session's snapshot) to be ADMIN.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace

from squad.database.models import Role
from squad.engine.actions import (
    Action,
    ApproveQuestion,
    ApproveUser,
    CreateTask,
    Login,
    MarkBestAnswer,
    RejectUser,
)
from squad.engine.errors import PermissionDenied
from squad.engine.snapshot import Snapshot, User

__all__ = [
    "ADMIN_ACTIONS",
    "SessionContext",
    "SessionState",
    "authorize",
    "can_view_admin_console",
]


class SessionState(enum.StrEnum):
    LOADING = "loading"
    LOGIN_FORM = "login_form"
    PENDING = "pending"
    ACTIVE = "active"
    LOGGED_OUT = "logged_out"


ADMIN_ACTIONS: frozenset[type] = frozenset({
    CreateTask,
    ApproveUser,
    RejectUser,
    MarkBestAnswer,
    ApproveQuestion,
})

# Allowed transitions; anything else is a programming error.
_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.LOADING: frozenset({
        SessionState.LOGIN_FORM, SessionState.PENDING, SessionState.ACTIVE,
    }),
    SessionState.LOGIN_FORM: frozenset({SessionState.PENDING, SessionState.ACTIVE}),
    SessionState.PENDING: frozenset({SessionState.ACTIVE, SessionState.LOGGED_OUT}),
    SessionState.ACTIVE: frozenset({SessionState.LOGGED_OUT}),
    SessionState.LOGGED_OUT: frozenset({SessionState.PENDING, SessionState.ACTIVE}),
}


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Who this session is and where it sits in the lifecycle.

    Passed explicitly to every action handler in place of ambient
    "current user" state.
    """

    state: SessionState = SessionState.LOADING
    user_id: str | None = None

    def transition(self, state: SessionState, user_id: str | None = None) -> SessionContext:
        if state not in _TRANSITIONS[self.state]:
            raise PermissionDenied(f"Illegal session transition {self.state} → {state}")
        if state == SessionState.LOGGED_OUT:
            user_id = None
        elif user_id is None:
            user_id = self.user_id
        return replace(self, state=state, user_id=user_id)

    @property
    def can_login(self) -> bool:
        return self.state in (SessionState.LOGIN_FORM, SessionState.LOGGED_OUT)

    def actor(self, snapshot: Snapshot) -> User | None:
        return snapshot.user(self.user_id)


def authorize(context: SessionContext, snapshot: Snapshot, action: Action) -> User | None:
    """Check that *context* may submit *action*; return the acting user.

    Login is the only action accepted outside an ACTIVE session (it returns
    ``None`` as there is no actor yet).

    Raises
    ------
    PermissionDenied
        If the session state or the actor's role forbids the action.
    """
    if isinstance(action, Login):
        if not context.can_login:
            raise PermissionDenied(f"Cannot log in from state {context.state}")
        return None

    if context.state != SessionState.ACTIVE:
        raise PermissionDenied(f"No ledger actions allowed while {context.state}")

    actor = context.actor(snapshot)
    if actor is None or not actor.is_active_member:
        raise PermissionDenied("Session user is not an active member")
    if type(action) in ADMIN_ACTIONS and actor.role != Role.ADMIN:
        raise PermissionDenied(f"{type(action).__name__} requires ADMIN")
    return actor


def can_view_admin_console(context: SessionContext, snapshot: Snapshot) -> bool:
    if context.state != SessionState.ACTIVE:
        return False
    actor = context.actor(snapshot)
    return actor is not None and actor.role == Role.ADMIN
