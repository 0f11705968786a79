# src/taskdeck/repositories/sqlite_repo.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..core.errors import NotFoundError, RemoteError, ValidationError
from ..tasks.task_models import (
    DEFAULT_CATEGORY_COLOR,
    Category,
    Priority,
    Task,
    TaskDraft,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Work", "#5B47E0"),
    ("Personal", "#10B981"),
    ("Shopping", "#F59E0B"),
    ("Health", "#EF4444"),
)


class SqliteDatabase:
    """
    SQLite file standing in for the remote record store.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each call opens its own SQLite connection, so repository methods can
      run in worker threads (asyncio.to_thread)
    """

    def __init__(self, db_path: str | Path = "taskdeck.sqlite3", *, seed_categories: bool = True) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        if seed_categories:
            self._seed_categories()
        logger.info("SqliteDatabase ready db=%s", self._db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self.connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT 'Work',
                    priority TEXT NOT NULL DEFAULT 'Medium',
                    due_date TEXT,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    color TEXT NOT NULL DEFAULT '#6B7280',
                    task_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("SqliteDatabase migration: added column tasks.%s", name)

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("category", "TEXT NOT NULL DEFAULT 'Work'")
            add_col("priority", "TEXT NOT NULL DEFAULT 'Medium'")
            add_col("due_date", "TEXT")
            add_col("completed", "INTEGER NOT NULL DEFAULT 0")
            add_col("sort_order", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_order ON tasks(sort_order)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_category ON tasks(category)")
            conn.commit()
        finally:
            conn.close()

    def _seed_categories(self) -> None:
        conn = self.connect()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM categories").fetchone()
            if int(n) > 0:
                return
            conn.executemany("INSERT INTO categories(name, color) VALUES (?, ?)", DEFAULT_CATEGORIES)
            conn.commit()
            logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
        finally:
            conn.close()


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=str(row["id"]),
        title=str(row["title"] or ""),
        description=str(row["description"] or ""),
        category=str(row["category"] or ""),
        priority=Priority.from_record(row["priority"]),
        due_date=row["due_date"] or None,
        completed=bool(row["completed"]),
        created_at=str(row["created_at"] or ""),
        order=int(row["sort_order"] or 0),
    )


def _row_to_category(row: sqlite3.Row) -> Category:
    # task_count column exists for compatibility but is never read back.
    return Category(
        id=str(row["id"]),
        name=str(row["name"] or ""),
        color=str(row["color"] or DEFAULT_CATEGORY_COLOR),
    )


def _int_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise NotFoundError(f"no such record: {raw}") from e


class SqliteTaskRepo:
    """TaskRepo over SqliteDatabase. Blocking work runs via asyncio.to_thread."""

    _COLUMNS = {
        "title": "title",
        "description": "description",
        "category": "category",
        "priority": "priority",
        "due_date": "due_date",
        "completed": "completed",
    }

    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    # ---- sync implementations ----

    def _select(self, where: str = "", params: Iterable[Any] = ()) -> list[Task]:
        conn = self._db.connect()
        try:
            cur = conn.execute(
                f"SELECT * FROM tasks {where} ORDER BY sort_order ASC, id ASC",
                tuple(params),
            )
            return [_row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _get(self, conn: sqlite3.Connection, task_id: int) -> Task:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"task not found: {task_id}")
        return _row_to_task(row)

    def _create_sync(self, draft: TaskDraft) -> Task:
        title = (draft.title or "").strip()
        if not title:
            raise RemoteError("title is required")
        priority = Priority.from_record(str(draft.priority) if draft.priority else None)

        conn = self._db.connect()
        try:
            (next_order,) = conn.execute("SELECT COALESCE(MAX(sort_order) + 1, 0) FROM tasks").fetchone()
            cur = conn.execute(
                """
                INSERT INTO tasks(title, description, category, priority, due_date, completed, created_at, sort_order)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    title,
                    draft.description or "",
                    draft.category or "Work",
                    priority.value,
                    draft.due_date,
                    utc_now_iso(),
                    int(next_order),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RemoteError("SQLite did not return lastrowid for tasks insert")
            task = self._get(conn, int(rowid))
            logger.debug("Task row added id=%s order=%s", task.id, task.order)
            return task
        finally:
            conn.close()

    def _update_sync(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        tid = _int_id(task_id)
        fields: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            col = self._COLUMNS.get(name)
            if col is None:
                raise RemoteError(f"field {name!r} is not updatable")
            if name == "completed":
                value = 1 if value else 0
            elif name == "priority":
                value = str(value)
            fields.append(f"{col} = ?")
            params.append(value)

        conn = self._db.connect()
        try:
            if fields:
                cur = conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", (*params, tid))
                if cur.rowcount == 0:
                    raise NotFoundError(f"task not found: {task_id}")
                conn.commit()
            return self._get(conn, tid)
        finally:
            conn.close()

    @staticmethod
    def _compact(conn: sqlite3.Connection, leading: list[int] | None = None) -> None:
        """Rewrite sort_order as 0..n-1: `leading` ids first, the rest in their current order."""
        rows = [r[0] for r in conn.execute("SELECT id FROM tasks ORDER BY sort_order ASC, id ASC")]
        head = leading or []
        missing = set(head) - set(rows)
        if missing:
            raise NotFoundError(f"task not found: {min(missing)}")
        named = set(head)
        ordered = head + [tid for tid in rows if tid not in named]
        conn.executemany(
            "UPDATE tasks SET sort_order = ? WHERE id = ?",
            [(position, tid) for position, tid in enumerate(ordered)],
        )

    def _delete_sync(self, task_id: str) -> bool:
        tid = _int_id(task_id)
        conn = self._db.connect()
        try:
            with conn:
                cur = conn.execute("DELETE FROM tasks WHERE id = ?", (tid,))
                if cur.rowcount == 0:
                    raise NotFoundError(f"task not found: {task_id}")
                self._compact(conn)
            return True
        finally:
            conn.close()

    def _reorder_sync(self, tasks: list[Task]) -> list[Task]:
        ids = list(dict.fromkeys(_int_id(t.id) for t in tasks))
        conn = self._db.connect()
        try:
            # One transaction: either every row gets its new position or none does.
            with conn:
                self._compact(conn, ids)
        finally:
            conn.close()
        return self._select()

    # ---- TaskRepo ----

    async def list(self) -> list[Task]:
        return await asyncio.to_thread(self._select)

    async def list_by_category(self, category: str) -> list[Task]:
        return await asyncio.to_thread(self._select, "WHERE category = ?", (category,))

    async def search(self, query: str) -> list[Task]:
        like = f"%{query}%"
        return await asyncio.to_thread(
            self._select,
            "WHERE title LIKE ? OR description LIKE ?",
            (like, like),
        )

    async def create(self, draft: TaskDraft) -> Task:
        return await asyncio.to_thread(self._create_sync, draft)

    async def update(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        return await asyncio.to_thread(self._update_sync, task_id, dict(changes))

    async def delete(self, task_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, task_id)

    async def reorder(self, tasks: list[Task]) -> list[Task]:
        return await asyncio.to_thread(self._reorder_sync, list(tasks))


class SqliteCategoryRepo:
    def __init__(self, db: SqliteDatabase) -> None:
        self._db = db

    def _list_sync(self) -> list[Category]:
        conn = self._db.connect()
        try:
            rows = conn.execute("SELECT * FROM categories ORDER BY id ASC").fetchall()
            return [_row_to_category(r) for r in rows]
        finally:
            conn.close()

    def _get(self, conn: sqlite3.Connection, category_id: int) -> Category:
        row = conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"category not found: {category_id}")
        return _row_to_category(row)

    def _create_sync(self, name: str, color: str | None) -> Category:
        name = (name or "").strip()
        if not name:
            raise ValidationError("category name is required")
        conn = self._db.connect()
        try:
            try:
                cur = conn.execute(
                    "INSERT INTO categories(name, color) VALUES (?, ?)",
                    (name, color or DEFAULT_CATEGORY_COLOR),
                )
            except sqlite3.IntegrityError as e:
                raise RemoteError(f"category already exists: {name}") from e
            conn.commit()
            if cur.lastrowid is None:
                raise RemoteError("SQLite did not return lastrowid for categories insert")
            return self._get(conn, int(cur.lastrowid))
        finally:
            conn.close()

    def _update_sync(self, category_id: str, name: str | None, color: str | None) -> Category:
        cid = _int_id(category_id)
        fields: list[str] = []
        params: list[Any] = []
        if name is not None:
            fields.append("name = ?")
            params.append(name.strip())
        if color is not None:
            fields.append("color = ?")
            params.append(color)

        conn = self._db.connect()
        try:
            if fields:
                cur = conn.execute(f"UPDATE categories SET {', '.join(fields)} WHERE id = ?", (*params, cid))
                if cur.rowcount == 0:
                    raise NotFoundError(f"category not found: {category_id}")
                conn.commit()
            return self._get(conn, cid)
        finally:
            conn.close()

    def _delete_sync(self, category_id: str) -> bool:
        cid = _int_id(category_id)
        conn = self._db.connect()
        try:
            cur = conn.execute("DELETE FROM categories WHERE id = ?", (cid,))
            conn.commit()
            if cur.rowcount == 0:
                raise NotFoundError(f"category not found: {category_id}")
            return True
        finally:
            conn.close()

    async def list(self) -> list[Category]:
        return await asyncio.to_thread(self._list_sync)

    async def create(self, name: str, color: str | None = None) -> Category:
        return await asyncio.to_thread(self._create_sync, name, color)

    async def update(
        self,
        category_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
    ) -> Category:
        return await asyncio.to_thread(self._update_sync, category_id, name, color)

    async def delete(self, category_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, category_id)
