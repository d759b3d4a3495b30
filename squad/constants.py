"""
squad.constants — Shared Constants & Helpers
=============================================

Single source of truth for the leveling formula and the fixed gameplay
numbers (penalties, bonuses, profile limits).  Import from here instead of
duplicating values in the ledger, views, and API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Leveling
# ---------------------------------------------------------------------------
POINTS_PER_LEVEL = 1000
MAX_LEVEL = 10

# ---------------------------------------------------------------------------
# Council rules
# ---------------------------------------------------------------------------
DROP_MIN_DOWNVOTES = 2
DROP_PENALTY = 5
BEST_ANSWER_BONUS = 10
QUESTION_APPROVAL_BONUS = 5  # Admin approval and majority approval alike

# ---------------------------------------------------------------------------
# Profile limits
# ---------------------------------------------------------------------------
MAX_CUSTOM_TAGS = 3
MAX_TAG_LENGTH = 10
MAX_AVATAR_BYTES = 2 * 1024 * 1024

# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------
DEFAULT_POLL_INTERVAL = 4.0


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
def level_for_points(points: int) -> int:
    """Level reached with *points*.

    ::

        level = min(MAX_LEVEL, points // POINTS_PER_LEVEL + 1)

    Negative inputs are treated as zero.
    """
    return min(MAX_LEVEL, max(points, 0) // POINTS_PER_LEVEL + 1)


def points_for_next_level(level: int) -> int:
    """Points threshold at which *level* rolls over to the next one."""
    return level * POINTS_PER_LEVEL
