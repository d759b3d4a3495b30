"""
squad.services.store_client — Entity Store over HTTP
=====================================================

Client-side :class:`~squad.services.store_service.EntityStore` talking to
the FastAPI endpoints in :mod:`squad.api.routes.store` with ``httpx``.

Every transport error, non-2xx response and undecodable body is raised as
:class:`~squad.engine.errors.SyncFailure`; the sync loop decides what to
tell the user.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

import httpx

from squad.engine.errors import SyncFailure
from squad.engine.snapshot import Question, Task, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpEntityStore:
    """Async HTTP store client.

    Parameters
    ----------
    base_url:
        Root of the API, e.g. ``http://localhost:8000`` (no ``/api``).
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-built :class:`httpx.AsyncClient` (tests inject one
        with a ``MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        try:
            resp = await self._client.request(method, f"/api{path}", json=payload)
            resp.raise_for_status()
            return resp.json() if resp.content else None
        except httpx.HTTPStatusError as exc:
            raise SyncFailure(
                f"{method} {path} (HTTP {exc.response.status_code})", exc
            ) from exc
        except httpx.HTTPError as exc:
            raise SyncFailure(f"{method} {path}", exc) from exc
        except ValueError as exc:
            raise SyncFailure(f"{method} {path} (malformed JSON)", exc) from exc

    async def _fetch(self, path: str, from_wire: Callable[[dict], T]) -> list[T]:
        """GET a collection and decode each record; bad records fail the whole fetch."""
        data = await self._request("GET", path)
        try:
            return [from_wire(item) for item in data or ()]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SyncFailure(f"GET {path} (malformed record)", exc) from exc

    # -- users ----------------------------------------------------------------
    async def get_users(self) -> list[User]:
        return await self._fetch("/users", User.from_wire)

    async def replace_users(self, users: Iterable[User]) -> None:
        payload = [u.to_wire() for u in users]
        await self._request("POST", "/users/batch", payload)
        logger.debug("Pushed %d users", len(payload))

    # -- tasks ----------------------------------------------------------------
    async def get_tasks(self) -> list[Task]:
        return await self._fetch("/tasks", Task.from_wire)

    async def replace_tasks(self, tasks: Iterable[Task]) -> None:
        payload = [t.to_wire() for t in tasks]
        await self._request("POST", "/tasks", payload)
        logger.debug("Pushed %d tasks", len(payload))

    # -- questions ------------------------------------------------------------
    async def get_questions(self) -> list[Question]:
        return await self._fetch("/questions", Question.from_wire)

    async def replace_questions(self, questions: Iterable[Question]) -> None:
        payload = [q.to_wire() for q in questions]
        await self._request("POST", "/questions", payload)
        logger.debug("Pushed %d questions", len(payload))
