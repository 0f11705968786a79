# src/taskdeck/tasks/reorder.py

from __future__ import annotations

"""
Reorder coordinator.

A drag-and-drop move becomes a renumbered task list that is applied to the
store in one step and persisted with a single bulk call.

Failure policy: no field-level rollback. A failed bulk call leaves it unclear
which rows were written, so the whole collection is reloaded from the
repository instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import replace

from ..core.ports import NoticeKind
from .filter_view import map_visible_move
from .sync_engine import SyncEngine, SyncResult, is_placeholder
from .task_models import Task

logger = logging.getLogger(__name__)

REORDER_KEY = "__reorder__"


def move_item(tasks: Sequence[Task], source: int, destination: int | None) -> list[Task]:
    """Remove the item at source and insert it at destination (None: no-op)."""
    items = list(tasks)
    if destination is None:
        return items
    if not 0 <= source < len(items):
        raise IndexError(f"source index out of range: {source}")
    moved = items.pop(source)
    items.insert(max(0, min(int(destination), len(items))), moved)
    return items


def renumber(tasks: Sequence[Task]) -> list[Task]:
    return [t if t.order == i else replace(t, order=i) for i, t in enumerate(tasks)]


def merge_order(intent: Sequence[str], live: Sequence[Task]) -> list[Task]:
    """
    Lay the live tasks out in the order named by intent.

    Ids in intent that are no longer live are skipped; live tasks the intent
    does not name keep their current slot. Field values always come from live.
    """
    by_id = {t.id: t for t in live}
    wanted = [task_id for task_id in dict.fromkeys(intent) if task_id in by_id]
    named = set(wanted)
    picks = iter(wanted)
    return [by_id[next(picks)] if t.id in named else t for t in live]


class ReorderCoordinator:
    def __init__(self, engine: SyncEngine) -> None:
        self._engine = engine

    def move(self, source: int, destination: int | None) -> asyncio.Future[SyncResult]:
        """Move within the full (unfiltered) list."""
        current = self._engine.store.all()
        return self.reorder(move_item(current, source, destination))

    def move_visible(self, source: int, destination: int | None) -> asyncio.Future[SyncResult]:
        """Move within the currently filtered view; hidden tasks keep their places."""
        full_source, full_destination = map_visible_move(
            self._engine.store.all(),
            self._engine.visible_tasks(),
            source,
            destination,
        )
        return self.move(full_source, full_destination)

    def reorder(self, tasks: Sequence[Task]) -> asyncio.Future[SyncResult]:
        """
        Apply the order of tasks optimistically and persist it in bulk.

        Only the id sequence is kept. It is laid over the live store when the
        move actually starts, so a move queued behind another one never
        replays an old copy of the list.
        """
        return self._enqueue([t.id for t in tasks], force=False)

    def _enqueue(self, intent: list[str], *, force: bool) -> asyncio.Future[SyncResult]:
        return self._engine.run_serialized(
            REORDER_KEY,
            "reorder",
            lambda: self._begin(intent, force),
        )

    def _begin(self, intent: list[str], force: bool) -> Awaitable[SyncResult] | SyncResult:
        engine = self._engine
        live = engine.store.all()
        desired = renumber(merge_order([engine.resolve(i) for i in intent], live))
        if not force and [t.id for t in desired] == [t.id for t in live]:
            return SyncResult(ok=True, operation="reorder", task_id=None, tasks=tuple(live))

        engine.store.replace_all(desired)
        engine.refresh()

        # Unsaved tasks cannot be addressed remotely yet. Persist again once
        # each of their creates has settled.
        placeholders = [t.id for t in desired if is_placeholder(t.id)]
        for placeholder_id in placeholders:
            engine.run_serialized(
                placeholder_id,
                "reorder",
                lambda pid=placeholder_id: self._after_create(pid),
            )

        logger.debug("reorder applied total=%d unsaved=%d", len(desired), len(placeholders))
        return self._settle([t for t in desired if not is_placeholder(t.id)])

    def _after_create(self, placeholder_id: str) -> SyncResult:
        engine = self._engine
        task_id = engine.resolve(placeholder_id)
        if task_id != placeholder_id and task_id in engine.store:
            self._enqueue([t.id for t in engine.store.all()], force=True)
        return SyncResult(ok=True, operation="reorder", task_id=task_id)

    async def _settle(self, persisted_tasks: list[Task]) -> SyncResult:
        engine = self._engine
        try:
            persisted = await engine.task_repo.reorder(persisted_tasks)
        except Exception as e:
            if engine.closed:
                return SyncResult(ok=False, operation="reorder", task_id=None, error=e, stale=True)
            logger.warning("reorder failed, reloading from repository: %s", e)
            engine.signal(NoticeKind.ERROR, "Failed to save task order")
            await engine.reload()
            return SyncResult(
                ok=False,
                operation="reorder",
                task_id=None,
                tasks=tuple(engine.store.all()),
                error=e,
            )

        # Store already reflects the new order.
        logger.info("Task order saved total=%d", len(persisted))
        return SyncResult(ok=True, operation="reorder", task_id=None, tasks=tuple(engine.store.all()))
