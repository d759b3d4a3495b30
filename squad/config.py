"""
squad.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for the soft settings shared by the API process and
client sessions (community identity, poll cadence, store URL, AI models).
Secrets such as ``DATABASE_URL`` and ``GEMINI_API_KEY`` stay in ``.env``.

Usage::

    from squad.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "The Boys"
    print(cfg.poll_interval_seconds)  # 4.0
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SquadConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    admin_name: str  # Name of the bootstrap ADMIN seeded on first start

    # Entity Store
    api_url: str
    api_port: int

    # Sync loop
    poll_interval_seconds: float = 4.0
    request_timeout_seconds: float = 10.0

    # Generative AI
    chat_model: str = "gemini-3-pro-preview"
    image_model: str = "gemini-3-pro-image-preview"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SquadConfig:
    """Read *path* and return a :class:`SquadConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return SquadConfig(
        community_name=raw["community_name"],
        admin_name=raw["admin_name"],
        api_url=str(raw["api_url"]).rstrip("/"),
        api_port=int(raw["api_port"]),
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 4.0)),
        request_timeout_seconds=float(raw.get("request_timeout_seconds", 10.0)),
        chat_model=raw.get("chat_model", "gemini-3-pro-preview"),
        image_model=raw.get("image_model", "gemini-3-pro-image-preview"),
    )
