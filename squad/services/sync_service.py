"""
squad.services.sync_service — Sync Loop & Client Session
=========================================================

One :class:`ClientSession` per connected member.  It holds a local
:class:`~squad.engine.snapshot.Snapshot`, feeds user intents through the
gate and the ledger, and keeps the snapshot loosely in step with the
Entity Store:

* **load** — fetch all three collections concurrently; leave LOADING only
  once that succeeds.
* **poll** — every ``poll_interval`` seconds re-fetch *users only*, replace
  the local copy wholesale when it differs, then promote a PENDING session
  whose user was approved or log out a session whose user was rejected.
* **submit** — authorize, apply the ledger transform, update the local
  snapshot optimistically, then replace every touched collection in the
  store (tasks, then users, then questions).

Replaces carry the whole collection.  Two sessions writing the same
collection from different snapshots silently overwrite each other; the
later write wins and the earlier session's change is lost.  There is no
version check and no merge beyond "remote replaces local".

Store failures are logged, passed to the ``on_alert`` callback and leave
local state as it was; the next interval retries.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from squad.constants import DEFAULT_POLL_INTERVAL
from squad.database.models import Role
from squad.engine import ledger
from squad.engine.actions import Action, ActionContext, Login
from squad.engine.errors import AccessDenied, SyncFailure
from squad.engine.gate import SessionContext, SessionState, authorize
from squad.engine.ledger import Collection, LedgerResult, LoginResult, LoginStatus
from squad.engine.snapshot import Snapshot, User
from squad.services.store_service import EntityStore

logger = logging.getLogger(__name__)

AlertCallback = Callable[[str], None]

REJECTED_ALERT = "CONNECTION TERMINATED: ACCESS DENIED BY ADMIN."

# Persist order for a multi-collection transform.
_PERSIST_ORDER = (Collection.TASKS, Collection.USERS, Collection.QUESTIONS)


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------
def merge(
    local: Snapshot,
    remote: Snapshot,
    collections: Iterable[Collection],
) -> tuple[Snapshot, frozenset[Collection]]:
    """Last-writer-wins merge of *remote* into *local*.

    Each collection named in *collections* is replaced wholesale when the
    remote copy differs; others are kept.  Returns the merged snapshot (the
    *local* object itself when nothing changed) and the set of collections
    that were replaced.
    """
    changes = {}
    for collection in collections:
        remote_records = getattr(remote, collection.value)
        if getattr(local, collection.value) != remote_records:
            changes[collection.value] = remote_records
    if not changes:
        return local, frozenset()
    return replace(local, **changes), frozenset(Collection(name) for name in changes)


def _log_alert(message: str) -> None:
    logger.warning("ALERT: %s", message)


# ---------------------------------------------------------------------------
# Client session
# ---------------------------------------------------------------------------
class ClientSession:
    """A member's view of the shared state plus its sync loop.

    Parameters
    ----------
    store:
        Any :class:`~squad.services.store_service.EntityStore`.
    poll_interval:
        Seconds between users polls.
    on_alert:
        Synchronous callback receiving user-facing messages (access denied,
        sync failures).  Defaults to a log line.
    ctx_factory:
        Builds the :class:`ActionContext` for each ledger call; tests pass a
        deterministic clock and id source.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_alert: AlertCallback | None = None,
        ctx_factory: Callable[[], ActionContext] = ActionContext,
    ) -> None:
        self.store = store
        self.poll_interval = poll_interval
        self._on_alert = on_alert or _log_alert
        self._ctx_factory = ctx_factory
        self._snapshot = Snapshot()
        self._context = SessionContext()
        self._locks = {collection: asyncio.Lock() for collection in Collection}
        self._task: asyncio.Task | None = None

    # -- read-only views ------------------------------------------------------
    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def state(self) -> SessionState:
        return self._context.state

    @property
    def current_user(self) -> User | None:
        return self._context.actor(self._snapshot)

    # -- alerts ---------------------------------------------------------------
    def _alert(self, message: str) -> None:
        self._on_alert(message)

    def _report(self, exc: SyncFailure) -> None:
        logger.warning("%s", exc)
        self._alert(f"Sync failure: {exc}")

    # -- lifecycle ------------------------------------------------------------
    async def load(self) -> Snapshot:
        """Fetch every collection and leave LOADING.

        Raises
        ------
        SyncFailure
            If any fetch fails.  The session stays in LOADING.
        """
        try:
            users, tasks, questions = await asyncio.gather(
                self.store.get_users(),
                self.store.get_tasks(),
                self.store.get_questions(),
            )
        except SyncFailure as exc:
            self._report(exc)
            raise

        self._snapshot = Snapshot(tuple(users), tuple(tasks), tuple(questions))
        if self._context.state == SessionState.LOADING:
            self._context = self._context.transition(SessionState.LOGIN_FORM)
        logger.info(
            "Loaded %d users, %d tasks, %d questions",
            len(users), len(tasks), len(questions),
        )
        return self._snapshot

    async def login(self, name: str, device_details: str = "") -> LoginResult | None:
        """Log in (or register) as *name*.

        Users are re-fetched first so the name lookup sees recent sign-ups.
        Returns ``None`` when the attempt was refused (blacklisted name) or
        could not reach the store; the reason goes to ``on_alert``.

        Raises
        ------
        PermissionDenied
            If the session is not on the login form.
        InvalidInput
            If *name* is blank.
        """
        authorize(self._context, self._snapshot, Login(name, device_details))

        try:
            users = await self.store.get_users()
        except SyncFailure as exc:
            self._report(exc)
            return None
        self._snapshot, _ = merge(
            self._snapshot, Snapshot(users=tuple(users)), (Collection.USERS,)
        )

        try:
            result = ledger.login(self._snapshot, name, device_details, self._ctx_factory())
        except AccessDenied as exc:
            logger.info("Refused login for blacklisted name %r", exc.name)
            self._alert(str(exc))
            return None

        if result.applied:
            try:
                await self._persist(result)
            except SyncFailure as exc:
                self._report(exc)
                return None
            self._snapshot = result.snapshot

        target = (
            SessionState.ACTIVE if result.status == LoginStatus.ACTIVE
            else SessionState.PENDING
        )
        self._context = self._context.transition(target, result.user.id)
        logger.info("Session for %r is %s", result.user.name, target)
        return result

    def cancel_pending(self) -> None:
        """Leave the pending screen; the session forgets its user."""
        if self._context.state == SessionState.PENDING:
            self._context = self._context.transition(SessionState.LOGGED_OUT)

    def logout(self) -> None:
        if self._context.state in (SessionState.PENDING, SessionState.ACTIVE):
            self._context = self._context.transition(SessionState.LOGGED_OUT)

    # -- writes ---------------------------------------------------------------
    async def submit(self, action: Action) -> LedgerResult:
        """Authorize and apply *action*, then persist what it touched.

        The local snapshot keeps the optimistic result even if persisting
        fails; the failure is reported and the next poll reconciles users.

        Raises
        ------
        PermissionDenied
            If the gate refuses the action.
        InvalidInput
            If the action carries malformed input.
        """
        if isinstance(action, Login):
            raise TypeError("Use ClientSession.login() for Login actions")

        actor = authorize(self._context, self._snapshot, action)
        result = ledger.apply(self._snapshot, action, actor.id, self._ctx_factory())
        if not result.applied:
            logger.debug("%s by %s was a no-op", type(action).__name__, actor.id)
            return result

        self._snapshot = result.snapshot
        try:
            await self._persist(result)
        except SyncFailure as exc:
            self._report(exc)
        return result

    async def _persist(self, result: LedgerResult) -> None:
        """Replace every collection in ``result.touched`` with its new value.

        The records written are the ones the transform produced, so a poll
        landing in between cannot swap in an older copy.
        """
        for collection in _PERSIST_ORDER:
            if collection not in result.touched:
                continue
            records = getattr(result.snapshot, collection.value)
            replace_all = getattr(self.store, f"replace_{collection.value}")
            async with self._locks[collection]:
                await replace_all(records)

    # -- polling --------------------------------------------------------------
    async def poll_once(self) -> bool:
        """Run one poll cycle; return True if local users changed.

        A failed fetch is reported and leaves the snapshot untouched.
        """
        async with self._locks[Collection.USERS]:
            try:
                users = await self.store.get_users()
            except SyncFailure as exc:
                self._report(exc)
                return False
            self._snapshot, changed = merge(
                self._snapshot, Snapshot(users=tuple(users)), (Collection.USERS,)
            )

        self._check_membership()
        return bool(changed)

    def _check_membership(self) -> None:
        """Promote an approved pending session; eject a rejected one."""
        state = self._context.state
        if state not in (SessionState.PENDING, SessionState.ACTIVE):
            return
        me = self._snapshot.user(self._context.user_id)
        if me is None:
            return

        if me.role == Role.REJECTED:
            logger.info("User %r was rejected; ending session", me.name)
            self._context = self._context.transition(SessionState.LOGGED_OUT)
            self._alert(REJECTED_ALERT)
        elif state == SessionState.PENDING and me.is_active_member:
            logger.info("User %r approved; session active", me.name)
            self._context = self._context.transition(SessionState.ACTIVE)

    async def run(self) -> None:
        """Load (retrying until it succeeds), then poll forever."""
        while True:
            try:
                if self._context.state == SessionState.LOADING:
                    await self.load()
                else:
                    await self.poll_once()
            except SyncFailure:
                # Already reported by load(); retry next interval.
                pass
            except Exception:
                logger.exception("Sync loop error")
            await asyncio.sleep(self.poll_interval)

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start the background sync task."""
        if self._task is not None:
            return
        loop = loop or asyncio.get_running_loop()
        self._task = loop.create_task(self.run(), name="squad-sync")

    def stop(self) -> None:
        """Cancel the sync task."""
        if self._task:
            self._task.cancel()
            self._task = None
