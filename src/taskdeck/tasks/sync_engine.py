# src/taskdeck/tasks/sync_engine.py

from __future__ import annotations

"""
Sync engine.

Owns the session's TaskStore and drives every mutation through:
- synchronous validation (ValidationError / TaskNotFoundError, nothing applied),
- an optimistic apply to the store (visible immediately),
- an async repository call,
- commit (store takes the server record) or rollback (store takes the snapshot).

Mutations on the same task id are serialized: a second one is queued and only
applied after the first settles, so a rollback can never clobber a newer
optimistic state. Mutations on different ids settle in any order.

Aggregates (category counts, completion stats) are recomputed after every
transition and subscribers are notified.
"""

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from ..core.errors import RemoteError, TaskNotFoundError, ValidationError
from ..core.ports import CategoryRepo, Notice, NoticeKind, Notifier, TaskRepo
from . import aggregates
from .filter_view import filter_tasks
from .task_models import (
    EDITABLE_FIELDS,
    IMMUTABLE_FIELDS,
    Category,
    CompletionStats,
    Priority,
    SyncState,
    Task,
    TaskDraft,
    normalize_due_date,
    utc_now_iso,
    validate_title,
)
from .task_store import TaskStore

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "local-"

Listener = Callable[[], None]


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Outcome of one mutation, resolved once the repository call settles."""

    ok: bool
    operation: str
    task_id: str | None
    task: Task | None = None
    tasks: tuple[Task, ...] = ()
    error: Exception | None = None
    # True when the session was closed before the result arrived.
    stale: bool = False


Settle = Awaitable[SyncResult]
Begin = Callable[[], "Settle | SyncResult"]


@dataclass(slots=True)
class _Mutation:
    key: str
    operation: str
    begin: Begin
    future: asyncio.Future[SyncResult] = field(repr=False)


def is_placeholder(task_id: str) -> bool:
    return task_id.startswith(PLACEHOLDER_PREFIX)


class SyncEngine:
    def __init__(
        self,
        task_repo: TaskRepo,
        category_repo: CategoryRepo,
        *,
        default_category: str = "Work",
        notifier: Notifier | None = None,
        store: TaskStore | None = None,
        history_limit: int = 256,
    ) -> None:
        self.task_repo = task_repo
        self.category_repo = category_repo
        self.default_category = default_category
        self.store = store if store is not None else TaskStore()
        self._notifier = notifier

        self._categories: list[Category] = []
        self._counts: dict[str, int] = {}
        self._stats = CompletionStats(completed=0, total=0)

        self._search: str | None = None
        self._selected_category: str | None = None

        self._states: dict[str, SyncState] = {}
        self._aliases: dict[str, str] = {}  # placeholder id -> server id
        # Bounds _states (terminal entries only) and _aliases.
        self._history_limit = max(1, int(history_limit))
        self._busy: set[str] = set()
        self._queues: dict[str, deque[_Mutation]] = {}
        self._inflight: set[asyncio.Task[None]] = set()
        self._listeners: list[Listener] = []
        self._closed = False

        self.refresh()

    # ---- presentation surface ----

    def visible_tasks(self) -> list[Task]:
        return filter_tasks(self.store.all(), self._search, self._selected_category)

    def category_counts(self) -> dict[str, int]:
        return dict(self._counts)

    def categories(self) -> list[Category]:
        return aggregates.with_counts(self._categories, self._counts)

    def completion_stats(self) -> CompletionStats:
        return self._stats

    @property
    def search_text(self) -> str | None:
        return self._search

    @property
    def selected_category(self) -> str | None:
        return self._selected_category

    def set_search(self, text: str | None) -> None:
        self._search = text or None
        self._emit_change()

    def set_category(self, name: str | None) -> None:
        self._selected_category = name or None
        self._emit_change()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every recompute. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def state_of(self, task_id: str) -> SyncState:
        return self._states.get(self.resolve(task_id), SyncState.IDLE)

    @property
    def pending_count(self) -> int:
        return len(self._busy) + sum(len(q) for q in self._queues.values())

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- loading ----

    async def load(self) -> None:
        """Fetch tasks and categories and replace the working copy wholesale."""
        tasks, categories = await asyncio.gather(self.task_repo.list(), self.category_repo.list())
        if self._closed:
            logger.debug("load() finished after close; ignoring result")
            return
        self.store.replace_all(sorted(tasks, key=lambda t: t.order))
        self._categories = list(categories)
        self.refresh()
        logger.info("Loaded tasks=%d categories=%d", len(self.store), len(self._categories))

    async def reload(self) -> bool:
        try:
            await self.load()
            return True
        except Exception:
            logger.exception("Reload from repository failed")
            self.signal(NoticeKind.ERROR, "Failed to load tasks")
            return False

    async def reload_categories(self) -> None:
        categories = await self.category_repo.list()
        if self._closed:
            return
        self._categories = list(categories)
        self.refresh()

    # ---- mutations ----

    def create(self, draft: TaskDraft) -> asyncio.Future[SyncResult]:
        clean = TaskDraft(
            title=validate_title(draft.title),
            description=str(draft.description or ""),
            category=(draft.category or "").strip() or self.default_category,
            priority=Priority.parse(draft.priority),
            due_date=normalize_due_date(draft.due_date),
        )
        placeholder_id = f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex[:12]}"
        return self.run_serialized(
            placeholder_id,
            "create",
            lambda: self._begin_create(placeholder_id, clean),
        )

    def update(self, task_id: str, changes: Mapping[str, Any]) -> asyncio.Future[SyncResult]:
        clean = self._validate_changes(changes)
        key = self._require(task_id)
        if not clean:
            # Nothing to change: settle immediately without a round-trip.
            return self._resolved(SyncResult(ok=True, operation="update", task_id=key, task=self.store.get(key)))
        return self.run_serialized(key, "update", lambda: self._begin_update(key, clean, "update"))

    def toggle_complete(self, task_id: str) -> asyncio.Future[SyncResult]:
        key = self._require(task_id)
        # The flip is computed at apply time, against whatever is current then.
        return self.run_serialized(key, "toggle", lambda: self._begin_update(key, None, "toggle"))

    def delete(self, task_id: str) -> asyncio.Future[SyncResult]:
        key = self._require(task_id)
        return self.run_serialized(key, "delete", lambda: self._begin_delete(key))

    # ---- create ----

    def _begin_create(self, placeholder_id: str, draft: TaskDraft) -> Settle:
        placeholder = Task(
            id=placeholder_id,
            title=draft.title,
            description=draft.description,
            category=draft.category or self.default_category,
            priority=Priority.parse(draft.priority),
            due_date=draft.due_date,
            completed=False,
            created_at=utc_now_iso(),
            order=len(self.store),
        )
        self.store.insert(placeholder)
        self._set_state(placeholder_id, SyncState.PENDING)
        self.refresh()
        logger.debug("create applied placeholder=%s", placeholder_id)
        return self._settle_create(placeholder_id, draft)

    async def _settle_create(self, placeholder_id: str, draft: TaskDraft) -> SyncResult:
        try:
            saved = await self.task_repo.create(draft)
        except Exception as e:
            if self._closed:
                return self._stale("create", placeholder_id, error=e)
            self._log_remote_failure("create", placeholder_id, e)
            if placeholder_id in self.store:
                self.store.remove(placeholder_id)
            self._set_state(placeholder_id, SyncState.ROLLED_BACK)
            self.refresh()
            self.signal(NoticeKind.ERROR, "Failed to create task", placeholder_id)
            return SyncResult(ok=False, operation="create", task_id=placeholder_id, error=e)

        if self._closed:
            return self._stale("create", placeholder_id, task=saved)

        committed = self._commit_record(placeholder_id, saved, insert_if_missing=True)
        self._remember_alias(placeholder_id, saved.id)
        self._states.pop(placeholder_id, None)
        self._set_state(saved.id, SyncState.COMMITTED)
        self.refresh()
        self.signal(NoticeKind.SUCCESS, "Task created successfully!", saved.id)
        logger.info("Task created id=%s (placeholder=%s)", saved.id, placeholder_id)
        return SyncResult(ok=True, operation="create", task_id=saved.id, task=committed)

    # ---- update / toggle ----

    def _begin_update(self, task_id: str, changes: dict[str, Any] | None, operation: str) -> Settle | SyncResult:
        tid = self.resolve(task_id)
        before = self.store.get(tid)
        if before is None:
            return self._fail_missing(operation, tid)

        if changes is None:
            changes = {"completed": not before.completed}

        self.store.replace(tid, replace(before, **changes))
        self._set_state(tid, SyncState.PENDING)
        self.refresh()
        logger.debug("%s applied task_id=%s fields=%s", operation, tid, sorted(changes))
        return self._settle_update(tid, before, changes, operation)

    async def _settle_update(
        self,
        task_id: str,
        before: Task,
        changes: dict[str, Any],
        operation: str,
    ) -> SyncResult:
        try:
            saved = await self.task_repo.update(task_id, changes)
        except Exception as e:
            if self._closed:
                return self._stale(operation, task_id, error=e)
            self._log_remote_failure(operation, task_id, e)
            if task_id in self.store:
                self.store.replace(task_id, before)
            else:
                logger.warning("rollback skipped, task %s no longer in store", task_id)
            self._set_state(task_id, SyncState.ROLLED_BACK)
            self.refresh()
            self.signal(NoticeKind.ERROR, "Failed to update task", task_id)
            return SyncResult(ok=False, operation=operation, task_id=task_id, task=before, error=e)

        if self._closed:
            return self._stale(operation, task_id, task=saved)

        committed = self._commit_record(task_id, saved, insert_if_missing=False)
        self._set_state(task_id, SyncState.COMMITTED)
        self.refresh()

        if operation == "toggle":
            if saved.completed:
                self.signal(NoticeKind.CELEBRATE, "Task completed! Great job!", task_id)
            else:
                self.signal(NoticeKind.INFO, "Task marked as incomplete", task_id)
        else:
            self.signal(NoticeKind.SUCCESS, "Task updated successfully!", task_id)
        return SyncResult(ok=True, operation=operation, task_id=task_id, task=committed)

    # ---- delete ----

    def _begin_delete(self, task_id: str) -> Settle | SyncResult:
        tid = self.resolve(task_id)
        if tid not in self.store:
            return self._fail_missing("delete", tid)
        index, before = self.store.remove(tid)
        self._set_state(tid, SyncState.PENDING)
        self.refresh()
        logger.debug("delete applied task_id=%s index=%d", tid, index)
        return self._settle_delete(tid, index, before)

    async def _settle_delete(self, task_id: str, index: int, before: Task) -> SyncResult:
        error: Exception | None = None
        try:
            removed = await self.task_repo.delete(task_id)
            if not removed:
                error = RemoteError(f"backend did not delete task {task_id}")
        except Exception as e:
            error = e

        if self._closed:
            return self._stale("delete", task_id, error=error)

        if error is not None:
            self._log_remote_failure("delete", task_id, error)
            if task_id not in self.store:
                self.store.insert(before, index)
            self._set_state(task_id, SyncState.ROLLED_BACK)
            self.refresh()
            self.signal(NoticeKind.ERROR, "Failed to delete task", task_id)
            return SyncResult(ok=False, operation="delete", task_id=task_id, task=before, error=error)

        self._set_state(task_id, SyncState.COMMITTED)
        self.refresh()
        self.signal(NoticeKind.SUCCESS, "Task deleted successfully!", task_id)
        return SyncResult(ok=True, operation="delete", task_id=task_id, task=before)

    # ---- serialization queue (also used by ReorderCoordinator) ----

    def run_serialized(self, key: str, operation: str, begin: Begin) -> asyncio.Future[SyncResult]:
        """
        Run `begin` now if nothing is pending under `key`, otherwise queue it.

        `begin` performs the optimistic apply synchronously and returns either
        an awaitable that settles the mutation or an immediate SyncResult.
        """
        loop = asyncio.get_running_loop()
        mutation = _Mutation(key=key, operation=operation, begin=begin, future=loop.create_future())
        if key in self._busy:
            self._queues.setdefault(key, deque()).append(mutation)
            logger.debug("%s queued behind pending mutation key=%s", operation, key)
        else:
            self._start(mutation)
        return mutation.future

    def _start(self, mutation: _Mutation) -> None:
        self._busy.add(mutation.key)
        try:
            outcome = mutation.begin()
        except Exception as e:
            logger.exception("%s could not be applied key=%s", mutation.operation, mutation.key)
            self.signal(NoticeKind.ERROR, f"Failed to {mutation.operation} task", mutation.key)
            outcome = SyncResult(ok=False, operation=mutation.operation, task_id=mutation.key, error=e)

        if isinstance(outcome, SyncResult):
            self._finish(mutation, outcome)
            return

        runner = asyncio.ensure_future(self._run(mutation, outcome))
        self._inflight.add(runner)
        runner.add_done_callback(self._inflight.discard)

    async def _run(self, mutation: _Mutation, settle: Settle) -> None:
        try:
            result = await settle
        except Exception as e:
            # Settle coroutines handle repository errors; this is a bug guard.
            logger.exception("%s settle crashed key=%s", mutation.operation, mutation.key)
            result = SyncResult(ok=False, operation=mutation.operation, task_id=mutation.key, error=e)
        self._finish(mutation, result)

    def _finish(self, mutation: _Mutation, result: SyncResult) -> None:
        if not mutation.future.done():
            mutation.future.set_result(result)

        key = mutation.key
        self._busy.discard(key)
        queue = self._queues.pop(key, None)

        # A committed create hands its queue over to the server id.
        if queue and result.ok and result.task_id and result.task_id != key:
            for m in queue:
                m.key = result.task_id
            key = result.task_id

        if not queue:
            return
        nxt = queue.popleft()
        if queue:
            self._queues[key] = queue
        self._start(nxt)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait until no mutation is in flight. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._inflight:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            if remaining == 0.0:
                return False
            await asyncio.wait(set(self._inflight), timeout=remaining)
        return True

    def close(self) -> None:
        """Tear the session down; results arriving later are ignored."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        logger.info("SyncEngine closed (pending=%d)", self.pending_count)

    # ---- helpers shared with ReorderCoordinator ----

    def resolve(self, task_id: str) -> str:
        """Map a committed placeholder id to its server id."""
        return self._aliases.get(task_id, task_id)

    def refresh(self) -> None:
        """Recompute aggregates from the store, then notify subscribers."""
        tasks = self.store.all()
        self._counts = aggregates.category_counts(tasks, (c.name for c in self._categories))
        self._stats = aggregates.completion_stats(tasks)
        self._emit_change()

    def signal(self, kind: NoticeKind, text: str, task_id: str | None = None) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(Notice(kind=kind, text=text, task_id=task_id))
        except Exception:
            logger.exception("Notifier failed for %s notice", kind.value)

    # ---- internals ----

    def _emit_change(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Change listener failed")

    def _set_state(self, task_id: str, state: SyncState) -> None:
        # Re-insert so dict order follows recency.
        self._states.pop(task_id, None)
        self._states[task_id] = state
        excess = len(self._states) - self._history_limit
        if excess <= 0:
            return
        settled = [
            tid for tid, s in self._states.items() if s != SyncState.PENDING and tid not in self._busy
        ]
        for tid in settled[:excess]:
            del self._states[tid]

    def _remember_alias(self, placeholder_id: str, server_id: str) -> None:
        self._aliases[placeholder_id] = server_id
        while len(self._aliases) > self._history_limit:
            del self._aliases[next(iter(self._aliases))]

    def _require(self, task_id: str) -> str:
        key = self.resolve(task_id)
        if key not in self.store and key not in self._busy:
            raise TaskNotFoundError(key)
        return key

    def _validate_changes(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        clean: dict[str, Any] = {}
        for name, value in changes.items():
            if name in IMMUTABLE_FIELDS:
                raise ValidationError(f"field {name!r} cannot be updated")
            if name not in EDITABLE_FIELDS:
                raise ValidationError(f"unknown task field {name!r}")
            if name == "title":
                value = validate_title(value)
            elif name == "description":
                value = str(value or "")
            elif name == "category":
                value = str(value or "").strip()
                if not value:
                    raise ValidationError("category is required")
            elif name == "priority":
                value = Priority.parse(value)
            elif name == "due_date":
                value = normalize_due_date(value)
            elif name == "completed":
                value = bool(value)
            clean[name] = value
        return clean

    def _commit_record(self, task_id: str, saved: Task, *, insert_if_missing: bool) -> Task | None:
        if task_id in self.store:
            return self.store.replace(task_id, saved)
        if saved.id in self.store:
            return self.store.replace(saved.id, saved)
        if insert_if_missing:
            logger.warning("commit target %s vanished from store; appending %s", task_id, saved.id)
            return self.store.insert(saved)
        logger.warning("commit skipped, task %s no longer in store", task_id)
        return None

    def _fail_missing(self, operation: str, task_id: str) -> SyncResult:
        err = TaskNotFoundError(task_id)
        logger.warning("%s skipped: %s", operation, err)
        self.signal(NoticeKind.ERROR, f"Failed to {operation} task", task_id)
        return SyncResult(ok=False, operation=operation, task_id=task_id, error=err)

    def _stale(
        self,
        operation: str,
        task_id: str,
        *,
        task: Task | None = None,
        error: Exception | None = None,
    ) -> SyncResult:
        logger.debug("%s result for %s arrived after close; ignored", operation, task_id)
        return SyncResult(ok=error is None, operation=operation, task_id=task_id, task=task, error=error, stale=True)

    @staticmethod
    def _log_remote_failure(operation: str, task_id: str, error: Exception) -> None:
        if isinstance(error, RemoteError):
            logger.warning("%s failed task_id=%s: %s", operation, task_id, error)
        else:
            logger.error("%s failed task_id=%s", operation, task_id, exc_info=error)

    @staticmethod
    def _resolved(result: SyncResult) -> asyncio.Future[SyncResult]:
        fut: asyncio.Future[SyncResult] = asyncio.get_running_loop().create_future()
        fut.set_result(result)
        return fut
