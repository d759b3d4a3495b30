"""
squad.database.seed — Bootstrap Admin Seeder
=============================================

ADMIN is not reachable by promotion; the one admin account is seeded here
on first startup.  Idempotent: if any ADMIN exists, nothing is written.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from squad.database.engine import get_session
from squad.database.models import Role, UserRow

logger = logging.getLogger(__name__)


def seed_admin(engine: Engine, name: str) -> bool:
    """Insert the bootstrap ADMIN named *name* unless an admin already exists.

    Also skips when *name* is already taken by any user (case-insensitive),
    so names stay unique.  Returns True if a row was inserted.
    """
    name = name.strip()
    with get_session(engine) as session:
        existing = session.scalar(
            select(func.count()).select_from(UserRow).where(UserRow.role == Role.ADMIN.value)
        )
        if existing:
            logger.debug("Admin already present — skipping seed")
            return False

        taken = session.scalar(
            select(func.count()).select_from(UserRow).where(
                func.lower(func.trim(UserRow.name)) == name.lower()
            )
        )
        if taken:
            logger.warning("Name %r already registered — admin not seeded", name)
            return False

        session.add(UserRow(
            id=uuid.uuid4().hex,
            name=name,
            role=Role.ADMIN.value,
            points=0,
            level=1,
            joined_at=datetime.now(UTC),
            device_details="bootstrap",
            custom_tags=[],
        ))
    logger.info("Seeded bootstrap admin %r", name)
    return True
