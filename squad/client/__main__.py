"""
squad.client.__main__ — Headless session for ``python -m squad.client``
========================================================================

Wiring:
1. Load .env and config.yaml.
2. Point an :class:`HttpEntityStore` at the API (``SQUAD_API_URL`` wins
   over ``api_url`` in config).
3. Load the shared state, retrying every poll interval until it works.
4. Log in by name and keep polling until the session ends (rejection)
   or the process is interrupted.

Run with::

    python -m squad.client "Billy Butcher"
"""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import sys

from dotenv import load_dotenv

from squad.config import load_config
from squad.engine.errors import SyncFailure
from squad.engine.gate import SessionState, can_view_admin_console
from squad.engine.views import blacklisted, leaderboard, level_progress, pending_recruits
from squad.services.store_client import HttpEntityStore
from squad.services.sync_service import ClientSession

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("squad")


def _device_details() -> str:
    return f"{platform.system()} {platform.release()} / Python {platform.python_version()}"


def _show_standings(session: ClientSession) -> None:
    for rank, user in enumerate(leaderboard(session.snapshot), start=1):
        progress = level_progress(user)
        logger.info(
            "#%d %-16s LVL %d  %5d pts  (%.0f%% to next)",
            rank, user.name, progress.level, progress.points, progress.progress * 100,
        )
    if can_view_admin_console(session.context, session.snapshot):
        recruits = pending_recruits(session.snapshot)
        logger.info(
            "Admin console: %d pending recruit(s) %s, %d blacklisted",
            len(recruits), [u.name for u in recruits], len(blacklisted(session.snapshot)),
        )


async def _serve(session: ClientSession, name: str, community: str) -> None:
    while session.state == SessionState.LOADING:
        try:
            await session.load()
        except SyncFailure:
            await asyncio.sleep(session.poll_interval)

    if await session.login(name, _device_details()) is None:
        return

    if session.state == SessionState.PENDING:
        logger.info("Awaiting admin approval for %r…", name)
    else:
        _show_standings(session)

    session.start()
    try:
        while session.state in (SessionState.PENDING, SessionState.ACTIVE):
            was_pending = session.state == SessionState.PENDING
            await asyncio.sleep(session.poll_interval)
            if was_pending and session.state == SessionState.ACTIVE:
                logger.info(
                    "Access granted. Welcome to %s, %s.", community, session.current_user.name
                )
                _show_standings(session)
    finally:
        session.stop()


async def _main(name: str) -> None:
    cfg = load_config()
    store = HttpEntityStore(
        os.getenv("SQUAD_API_URL") or cfg.api_url,
        timeout=cfg.request_timeout_seconds,
    )
    session = ClientSession(store, poll_interval=cfg.poll_interval_seconds)
    try:
        await _serve(session, name, cfg.community_name)
    finally:
        await store.aclose()


def main() -> None:
    """Bootstrap and run one client session."""
    load_dotenv()

    if len(sys.argv) < 2 or not sys.argv[1].strip():
        logger.critical("Usage: python -m squad.client <name>")
        sys.exit(1)

    try:
        asyncio.run(_main(sys.argv[1]))
    except KeyboardInterrupt:
        logger.info("Session closed.")


if __name__ == "__main__":
    main()
