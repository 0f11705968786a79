# src/taskdeck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The SyncEngine depends on these Protocols instead of concrete backends.
A single repository implementation is chosen in the composition root
(cli/bootstrap.py); tests inject in-memory fakes.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from ..tasks.task_models import Category, Task, TaskDraft


class NoticeKind(StrEnum):
    SUCCESS = "success"
    INFO = "info"
    CELEBRATE = "celebrate"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notice:
    """User-facing signal emitted by the engine (a toast, in a GUI)."""

    kind: NoticeKind
    text: str
    task_id: str | None = None


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


class TaskRepo(Protocol):
    """Remote task store. Every call may raise RemoteError / NotFoundError."""

    async def list(self) -> list[Task]: ...
    async def create(self, draft: TaskDraft) -> Task: ...
    async def update(self, task_id: str, changes: Mapping[str, Any]) -> Task: ...
    async def delete(self, task_id: str) -> bool: ...
    async def reorder(self, tasks: list[Task]) -> list[Task]: ...

    # Server-side queries
    async def list_by_category(self, category: str) -> list[Task]: ...
    async def search(self, query: str) -> list[Task]: ...


class CategoryRepo(Protocol):
    """Remote category store. task_count on returned records is not authoritative."""

    async def list(self) -> list[Category]: ...
    async def create(self, name: str, color: str | None = None) -> Category: ...
    async def update(
            self,
            category_id: str,
            *,
            name: str | None = None,
            color: str | None = None,
    ) -> Category: ...
    async def delete(self, category_id: str) -> bool: ...
