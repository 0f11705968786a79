# src/taskdeck/repositories/http_repo.py

from __future__ import annotations

"""
JSON/REST repositories.

Endpoints (relative to base_url):
  GET    /tasks[?category=..|?q=..]   -> [task, ...] ordered by "order"
  POST   /tasks                       -> task
  PATCH  /tasks/{id}                  -> task
  DELETE /tasks/{id}                  -> {"deleted": true}
  PUT    /tasks/order                 -> [task, ...]
  GET/POST /categories, PATCH/DELETE /categories/{id}

requests is blocking, so every call is pushed to a worker thread.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import requests

from ..core.errors import NotFoundError, RemoteError
from ..tasks.task_models import (
    Category,
    Task,
    TaskDraft,
    category_from_record,
    draft_to_record,
    task_from_record,
)

logger = logging.getLogger(__name__)


class HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = float(timeout)
        self._session = session or requests.Session()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if json is not None:
            headers["Content-Type"] = "application/json"

        url = f"{self._base_url}{path}"
        try:
            r = self._session.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise RemoteError(f"{method} {path} failed: {e}") from e

        if r.status_code == 404:
            raise NotFoundError(f"{method} {path} -> 404")
        if r.status_code >= 400:
            raise RemoteError(f"{method} {path} -> {r.status_code} {r.text}")
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise RemoteError(f"{method} {path} returned invalid JSON") from e

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        logger.debug("HTTP %s %s", method, path)
        return await asyncio.to_thread(self.request, method, path, json=json, params=params)

    def close(self) -> None:
        self._session.close()


def _items(payload: Any) -> list[dict[str, Any]]:
    # Accept both a bare list and {"data": [...]}.
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        raise RemoteError("expected a list of records")
    return [p for p in payload if isinstance(p, dict)]


def _item(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict) or "id" not in payload:
        raise RemoteError("expected a record with an id")
    return payload


class HttpTaskRepo:
    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def _fetch(self, params: dict[str, Any] | None = None) -> list[Task]:
        payload = await self._client.call("GET", "/tasks", params=params)
        tasks = [task_from_record(r) for r in _items(payload)]
        return sorted(tasks, key=lambda t: t.order)

    async def list(self) -> list[Task]:
        return await self._fetch()

    async def list_by_category(self, category: str) -> list[Task]:
        return await self._fetch({"category": category})

    async def search(self, query: str) -> list[Task]:
        return await self._fetch({"q": query})

    async def create(self, draft: TaskDraft) -> Task:
        payload = await self._client.call("POST", "/tasks", json=draft_to_record(draft))
        return task_from_record(_item(payload))

    async def update(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        body = {k: (str(v) if k == "priority" else v) for k, v in changes.items()}
        payload = await self._client.call("PATCH", f"/tasks/{task_id}", json=body)
        return task_from_record(_item(payload))

    async def delete(self, task_id: str) -> bool:
        payload = await self._client.call("DELETE", f"/tasks/{task_id}")
        if isinstance(payload, dict):
            return bool(payload.get("deleted", True))
        return True

    async def reorder(self, tasks: list[Task]) -> list[Task]:
        body = [{"id": t.id, "order": i} for i, t in enumerate(tasks)]
        payload = await self._client.call("PUT", "/tasks/order", json=body)
        return sorted((task_from_record(r) for r in _items(payload)), key=lambda t: t.order)


class HttpCategoryRepo:
    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def list(self) -> list[Category]:
        payload = await self._client.call("GET", "/categories")
        return [category_from_record(r) for r in _items(payload)]

    async def create(self, name: str, color: str | None = None) -> Category:
        body: dict[str, Any] = {"name": name}
        if color:
            body["color"] = color
        payload = await self._client.call("POST", "/categories", json=body)
        return category_from_record(_item(payload))

    async def update(
        self,
        category_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
    ) -> Category:
        body = {k: v for k, v in (("name", name), ("color", color)) if v is not None}
        payload = await self._client.call("PATCH", f"/categories/{category_id}", json=body)
        return category_from_record(_item(payload))

    async def delete(self, category_id: str) -> bool:
        payload = await self._client.call("DELETE", f"/categories/{category_id}")
        if isinstance(payload, dict):
            return bool(payload.get("deleted", True))
        return True
