# src/taskdeck/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from ..core.errors import DuplicateTaskError, TaskNotFoundError
from .task_models import Task

logger = logging.getLogger(__name__)


class TaskStore:
    """
    In-memory ordered task collection for one session.

    Invariants after every public call:
    - no duplicate ids
    - task.order == list position (dense 0..n-1)

    The store never talks to a repository; the SyncEngine and the
    ReorderCoordinator are the only writers.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: list[Task] = []
        self.replace_all(tasks)

    # ---- low-level helpers ----

    def _renormalize(self) -> None:
        self._tasks = [t if t.order == i else replace(t, order=i) for i, t in enumerate(self._tasks)]

    def _find(self, task_id: str) -> int:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        raise TaskNotFoundError(task_id)

    # ---- reads ----

    def all(self) -> list[Task]:
        return list(self._tasks)

    def snapshot(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self._tasks)

    # ---- writes ----

    def insert(self, task: Task, index: int | None = None) -> Task:
        if task.id in self:
            raise DuplicateTaskError(task.id)
        if index is None:
            self._tasks.append(task)
        else:
            pos = max(0, min(int(index), len(self._tasks)))
            self._tasks.insert(pos, task)
        self._renormalize()
        return self._tasks[self._find(task.id)]

    def replace(self, task_id: str, task: Task) -> Task:
        """
        Swap the entry for task_id with task, keeping its position.

        The new record may carry a different id (placeholder -> server id),
        as long as it does not collide with another entry.
        """
        pos = self._find(task_id)
        if task.id != task_id and task.id in self:
            raise DuplicateTaskError(task.id)
        self._tasks[pos] = task if task.order == pos else replace(task, order=pos)
        return self._tasks[pos]

    def remove(self, task_id: str) -> tuple[int, Task]:
        pos = self._find(task_id)
        task = self._tasks.pop(pos)
        self._renormalize()
        return pos, task

    def replace_all(self, tasks: Iterable[Task]) -> None:
        items = list(tasks)
        seen: set[str] = set()
        for t in items:
            if t.id in seen:
                raise DuplicateTaskError(t.id)
            seen.add(t.id)
        self._tasks = items
        self._renormalize()
        logger.debug("TaskStore replaced total=%d", len(items))
