"""
tests/test_store_client.py — HTTP Entity Store Client Tests
============================================================
Uses ``httpx.MockTransport`` in place of a running API.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import make_user
from squad.engine.errors import SyncFailure
from squad.engine.snapshot import Task
from squad.services.store_client import HttpEntityStore
from squad.services.sync_service import ClientSession


def _run(coro):
    return asyncio.run(coro)


def _store(handler) -> HttpEntityStore:
    client = httpx.AsyncClient(
        base_url="http://squad.test", transport=httpx.MockTransport(handler)
    )
    return HttpEntityStore("http://squad.test", client=client)


class TestHttpEntityStore:
    def test_get_users_decodes_wire_format(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/users"
            return httpx.Response(200, json=[{
                "id": "1", "name": "Annie", "role": "BOY", "points": 1200,
                "level": 1, "joinedAt": "2026-01-01T00:00:00Z",
            }])

        [user] = _run(_store(handler).get_users())
        assert user.name == "Annie"
        assert user.level == 2

    def test_replace_users_posts_batch(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        _run(_store(handler).replace_users([make_user("a", points=10)]))
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/users/batch"
        assert seen["body"][0]["id"] == "a"
        assert seen["body"][0]["points"] == 10

    def test_replace_tasks_sends_whole_list(self):
        seen: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        tasks = [Task(id="t1", title="A", points=1), Task(id="t2", title="B", points=2)]
        _run(_store(handler).replace_tasks(tasks))
        assert [t["id"] for t in seen[0]] == ["t1", "t2"]

    def test_server_error_is_sync_failure(self):
        store = _store(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(SyncFailure) as exc_info:
            _run(store.get_tasks())
        assert "500" in str(exc_info.value)

    def test_transport_error_is_sync_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SyncFailure):
            _run(_store(handler).get_questions())

    def test_malformed_json_is_sync_failure(self):
        store = _store(lambda request: httpx.Response(200, content=b"<html>oops"))
        with pytest.raises(SyncFailure) as exc_info:
            _run(store.get_users())
        assert "malformed JSON" in str(exc_info.value)

    def test_record_missing_fields_is_sync_failure(self):
        store = _store(lambda request: httpx.Response(200, json=[{"name": "No Id"}]))
        with pytest.raises(SyncFailure) as exc_info:
            _run(store.get_users())
        assert "malformed record" in str(exc_info.value)

    def test_unknown_enum_value_is_sync_failure(self):
        store = _store(lambda request: httpx.Response(200, json=[{
            "id": "t1", "title": "A", "points": 1, "type": "DAILY",
        }]))
        with pytest.raises(SyncFailure):
            _run(store.get_tasks())

    def test_bad_poll_payload_reaches_alert(self):
        alerts: list[str] = []
        session = ClientSession(
            _store(lambda request: httpx.Response(200, json=[{"bogus": True}])),
            poll_interval=0.01,
            on_alert=alerts.append,
        )
        assert _run(session.poll_once()) is False
        assert len(alerts) == 1
