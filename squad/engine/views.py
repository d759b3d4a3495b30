"""
squad.engine.views — Derived Read Models
=========================================

Pure projections of a :class:`~squad.engine.snapshot.Snapshot` for the
dashboard and admin console.  Nothing here is stored.
"""

from __future__ import annotations

from dataclasses import dataclass

from squad.constants import MAX_LEVEL, points_for_next_level
from squad.database.models import Role
from squad.engine.snapshot import Snapshot, User


@dataclass(frozen=True, slots=True)
class LevelProgress:
    level: int
    points: int
    next_level_points: int
    progress: float  # 0.0 – 1.0 (1.0 at the level cap)


def level_progress(user: User) -> LevelProgress:
    threshold = points_for_next_level(user.level)
    if user.level >= MAX_LEVEL:
        progress = 1.0
    else:
        progress = min(user.points / threshold, 1.0)
    return LevelProgress(
        level=user.level,
        points=user.points,
        next_level_points=threshold,
        progress=progress,
    )


def leaderboard(snapshot: Snapshot) -> list[User]:
    """Active members (BOY/ADMIN) ordered by points, highest first."""
    members = [u for u in snapshot.users if u.is_active_member]
    return sorted(members, key=lambda u: (-u.points, u.name.casefold()))


def pending_recruits(snapshot: Snapshot) -> list[User]:
    return [u for u in snapshot.users if u.role == Role.PENDING]


def blacklisted(snapshot: Snapshot) -> list[User]:
    return [u for u in snapshot.users if u.role == Role.REJECTED]
