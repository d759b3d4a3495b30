"""
squad.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import Engine

from squad.config import SquadConfig, load_config
from squad.database.engine import create_db_engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> SquadConfig:
    return load_config()

