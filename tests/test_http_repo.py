# tests/test_http_repo.py

from __future__ import annotations

import json as jsonlib
from typing import Any

import pytest
import requests

from taskdeck.core.errors import NotFoundError, RemoteError
from taskdeck.repositories.http_repo import HttpCategoryRepo, HttpClient, HttpTaskRepo
from taskdeck.tasks.task_models import Priority, TaskDraft

from .fakes import make_task


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else jsonlib.dumps(payload).encode()
        self.text = self.content.decode()

    def json(self) -> Any:
        return self._payload


class FakeSession:
    """Stands in for requests.Session: scripted responses, recorded requests."""

    def __init__(self) -> None:
        self.responses: list[FakeResponse | Exception] = []
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def close(self) -> None:
        self.closed = True


def _record(task_id: str, title: str, order: int, **extra: Any) -> dict[str, Any]:
    rec = {
        "id": task_id,
        "title": title,
        "description": "",
        "category": "Work",
        "priority": "Medium",
        "due_date": None,
        "completed": False,
        "created_at": "2026-01-01T00:00:00Z",
        "order": order,
        "task_count": 123,
    }
    rec.update(extra)
    return rec


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def client(session: FakeSession) -> HttpClient:
    return HttpClient("http://backend.test/api/", token="secret", timeout=3.0, session=session)


@pytest.mark.asyncio
async def test_list_sorts_by_order_and_sends_auth(client: HttpClient, session: FakeSession) -> None:
    session.responses.append(FakeResponse(200, {"data": [_record("2", "B", 1), _record("1", "A", 0)]}))

    tasks = await HttpTaskRepo(client).list()

    assert [t.id for t in tasks] == ["1", "2"]
    req = session.requests[0]
    assert req["method"] == "GET"
    assert req["url"] == "http://backend.test/api/tasks"
    assert req["headers"]["Authorization"] == "Bearer secret"
    assert req["timeout"] == 3.0


@pytest.mark.asyncio
async def test_create_and_update_payloads(client: HttpClient, session: FakeSession) -> None:
    repo = HttpTaskRepo(client)
    session.responses.append(FakeResponse(201, _record("9", "New", 4, priority="High")))
    session.responses.append(FakeResponse(200, _record("9", "New", 4, completed=True)))

    created = await repo.create(TaskDraft(title="New", category="Work", priority=Priority.HIGH))
    updated = await repo.update("9", {"completed": True, "priority": Priority.LOW})

    assert created.id == "9" and created.priority == Priority.HIGH
    assert updated.completed is True
    assert session.requests[0]["json"]["priority"] == "High"
    assert session.requests[1]["method"] == "PATCH"
    assert session.requests[1]["url"].endswith("/tasks/9")
    assert session.requests[1]["json"] == {"completed": True, "priority": "Low"}


@pytest.mark.asyncio
async def test_status_codes_map_to_errors(client: HttpClient, session: FakeSession) -> None:
    repo = HttpTaskRepo(client)
    session.responses.append(FakeResponse(404, {"error": "nope"}))
    session.responses.append(FakeResponse(500, {"error": "boom"}))
    session.responses.append(requests.ConnectionError("refused"))

    with pytest.raises(NotFoundError):
        await repo.update("1", {"title": "x"})
    with pytest.raises(RemoteError):
        await repo.delete("1")
    with pytest.raises(RemoteError):
        await repo.list()


@pytest.mark.asyncio
async def test_delete_and_reorder(client: HttpClient, session: FakeSession) -> None:
    repo = HttpTaskRepo(client)
    session.responses.append(FakeResponse(204))
    session.responses.append(FakeResponse(200, [_record("b", "B", 0), _record("a", "A", 1)]))

    assert await repo.delete("a") is True
    saved = await repo.reorder([make_task("b", "B", 0), make_task("a", "A", 1)])

    assert [t.id for t in saved] == ["b", "a"]
    assert session.requests[1]["method"] == "PUT"
    assert session.requests[1]["json"] == [{"id": "b", "order": 0}, {"id": "a", "order": 1}]


@pytest.mark.asyncio
async def test_category_list_ignores_task_count(client: HttpClient, session: FakeSession) -> None:
    session.responses.append(FakeResponse(200, [{"id": 1, "name": "Work", "color": "#fff", "task_count": 8}]))

    cats = await HttpCategoryRepo(client).list()

    assert [(c.name, c.task_count) for c in cats] == [("Work", 0)]


def test_close_closes_session(client: HttpClient, session: FakeSession) -> None:
    client.close()
    assert session.closed
