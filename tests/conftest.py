"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB

from squad.database.models import Base, Role
from squad.engine.actions import ActionContext
from squad.engine.snapshot import Snapshot, User

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Squad tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` behind ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Domain factories
# ---------------------------------------------------------------------------
BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def make_ctx(prefix: str = "id"):
    """Deterministic ActionContext factory: ids ``prefix-1``, ``prefix-2``…,
    clock advancing one minute per call."""
    ids = count(1)

    def factory() -> ActionContext:
        n = next(ids)
        return ActionContext(
            now=BASE_TIME + timedelta(minutes=n),
            new_id=lambda: f"{prefix}-{next(ids)}",
        )

    return factory


def make_user(
    user_id: str,
    role: Role = Role.BOY,
    points: int = 0,
    name: str | None = None,
    minutes: int = 0,
) -> User:
    return User(
        id=user_id,
        name=name or user_id.capitalize(),
        role=role,
        points=points,
        joined_at=BASE_TIME + timedelta(minutes=minutes),
        device_details="pytest",
    )


@pytest.fixture
def crew() -> Snapshot:
    """One admin, three active members, one recruit awaiting approval."""
    return Snapshot(users=(
        make_user("admin", Role.ADMIN, name="Butcher", minutes=0),
        make_user("hughie", points=100, minutes=1),
        make_user("annie", points=2500, minutes=2),
        make_user("frenchie", points=0, minutes=3),
        make_user("kimiko", Role.PENDING, minutes=4),
    ))
