"""
squad.database.engine — Database Connection & Async Helper
===========================================================

The Entity Store API and client sessions are driven by ``asyncio``;
SQLAlchemy + psycopg2 is synchronous.  Store functions are therefore
written as plain synchronous functions that open their own session, and
async callers reach them through :func:`run_db`, which ships the call to
a worker thread so the event loop stays free.

Usage::

    from squad.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine, admin_name="The Admin")

    # Inside a coroutine:
    users = await run_db(store_service.get_users, engine)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from squad.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    The pool is sized for a handful of concurrent sessions replacing whole
    collections:
    * ``pool_size=5`` / ``max_overflow=10``
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, admin_name: str | None = None) -> None:
    """Create all tables and, if *admin_name* is given, seed the bootstrap ADMIN.

    Safe to call on every startup.  In production the schema is managed by
    Alembic (``alembic upgrade head``); ``create_all`` is kept for dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    if admin_name:
        from squad.database.seed import seed_admin

        seed_admin(engine, admin_name)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on error."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    ::

        users = await run_db(get_users, engine)

    Under the hood this is :func:`asyncio.to_thread`.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
