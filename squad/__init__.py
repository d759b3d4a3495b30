"""
Squad — Shared-State Gamification Tracker
==========================================
Members earn points for completed tasks, vote on council questions, and
climb ten experience levels.  Every connected participant keeps a local
working copy of the shared state, mutates it optimistically, and
reconciles with the central store by periodic full-collection polling.

Package layout::

    squad/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level formula + gameplay constants
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (users, tasks, council)
    │   └── seed.py        # Bootstrap admin seeder
    ├── engine/
    │   ├── snapshot.py    # Value objects + Snapshot + wire codec
    │   ├── actions.py     # Action envelopes + ActionContext
    │   ├── ledger.py      # (snapshot, action) → snapshot'
    │   ├── gate.py        # Session states + role authorization
    │   ├── views.py       # Leaderboard / recruits / progress
    │   └── errors.py      # Error taxonomy
    ├── services/
    │   ├── store_service.py  # Entity Store over SQLAlchemy
    │   ├── store_client.py   # Entity Store over HTTP
    │   ├── sync_service.py   # Sync loop (ClientSession + merge)
    │   └── ai_service.py     # Gemini chat / image collaborator
    ├── api/
    │   ├── main.py        # FastAPI app
    │   └── routes/        # Entity Store endpoints
    └── client/
        └── __main__.py    # Headless session runner
"""

__version__ = "0.1.0"
