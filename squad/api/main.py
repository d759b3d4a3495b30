"""
squad.api.main — FastAPI application entry point
=================================================

Serves the Entity Store to client sessions.

Run with::

    uvicorn squad.api.main:app --reload --port 5000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from squad import __version__  # noqa: E402
from squad.api.deps import get_config, get_engine  # noqa: E402
from squad.api.routes.store import router as store_router  # noqa: E402
from squad.config import SquadConfig  # noqa: E402
from squad.database.engine import init_db  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and seed the admin."""
    engine = get_engine()
    init_db(engine, admin_name=get_config().admin_name)
    logger.info("Squad API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Squad API shutting down")


app = FastAPI(
    title="Squad Entity Store API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(store_router, prefix="/api")


@app.get("/api/health")
def health(cfg: SquadConfig = Depends(get_config)):
    return {"status": "ok", "community": cfg.community_name}


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    cfg = get_config()
    uvicorn.run(app, host=os.getenv("SQUAD_API_HOST", "0.0.0.0"), port=cfg.api_port)


if __name__ == "__main__":
    main()
