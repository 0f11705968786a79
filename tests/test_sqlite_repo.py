# tests/test_sqlite_repo.py

from __future__ import annotations

from pathlib import Path

import pytest

from taskdeck.core.errors import NotFoundError, RemoteError
from taskdeck.repositories.sqlite_repo import SqliteCategoryRepo, SqliteDatabase, SqliteTaskRepo
from taskdeck.tasks.reorder import ReorderCoordinator
from taskdeck.tasks.sync_engine import SyncEngine
from taskdeck.tasks.task_models import Priority, TaskDraft


@pytest.fixture()
def db(tmp_path: Path) -> SqliteDatabase:
    return SqliteDatabase(tmp_path / "taskdeck.sqlite3")


@pytest.mark.asyncio
async def test_task_crud_round_trip(db: SqliteDatabase) -> None:
    repo = SqliteTaskRepo(db)

    a = await repo.create(TaskDraft(title="Write report", category="Work", priority=Priority.HIGH))
    b = await repo.create(TaskDraft(title="Buy milk", category="Shopping", due_date="2026-05-01"))
    assert (a.order, b.order) == (0, 1)
    assert a.created_at
    assert a.priority == Priority.HIGH

    updated = await repo.update(a.id, {"completed": True, "title": "Write final report"})
    assert updated.completed is True
    assert updated.title == "Write final report"
    assert updated.created_at == a.created_at

    assert [t.id for t in await repo.list()] == [a.id, b.id]
    assert [t.id for t in await repo.list_by_category("Shopping")] == [b.id]
    assert [t.id for t in await repo.search("MILK")] == [b.id]

    assert await repo.delete(a.id) is True
    assert [t.id for t in await repo.list()] == [b.id]


@pytest.mark.asyncio
async def test_missing_ids_raise_not_found(db: SqliteDatabase) -> None:
    repo = SqliteTaskRepo(db)

    with pytest.raises(NotFoundError):
        await repo.update("999", {"title": "x"})
    with pytest.raises(NotFoundError):
        await repo.delete("999")
    with pytest.raises(NotFoundError):
        await repo.delete("local-abc")
    with pytest.raises(RemoteError):
        await repo.create(TaskDraft(title=""))


@pytest.mark.asyncio
async def test_reorder_is_all_or_nothing(db: SqliteDatabase) -> None:
    repo = SqliteTaskRepo(db)
    a = await repo.create(TaskDraft(title="A"))
    b = await repo.create(TaskDraft(title="B"))
    c = await repo.create(TaskDraft(title="C"))

    saved = await repo.reorder([b, c, a])
    assert [(t.title, t.order) for t in saved] == [("B", 0), ("C", 1), ("A", 2)]

    await repo.delete(c.id)
    with pytest.raises(NotFoundError):
        await repo.reorder([a, c, b])
    # Nothing from the failed batch was written.
    assert [t.title for t in await repo.list()] == ["B", "A"]


@pytest.mark.asyncio
async def test_categories_are_seeded_and_manageable(db: SqliteDatabase) -> None:
    repo = SqliteCategoryRepo(db)

    names = [c.name for c in await repo.list()]
    assert names == ["Work", "Personal", "Shopping", "Health"]

    gym = await repo.create("Gym", "#123456")
    assert gym.color == "#123456"
    with pytest.raises(RemoteError):
        await repo.create("Gym")

    renamed = await repo.update(gym.id, name="Fitness")
    assert renamed.name == "Fitness"
    assert await repo.delete(gym.id) is True
    with pytest.raises(NotFoundError):
        await repo.delete(gym.id)


def test_schema_is_reopened_without_reseeding(tmp_path: Path) -> None:
    path = tmp_path / "db.sqlite3"
    SqliteDatabase(path)
    db2 = SqliteDatabase(path)

    conn = db2.connect()
    try:
        (n,) = conn.execute("SELECT COUNT(*) FROM categories").fetchone()
    finally:
        conn.close()
    assert n == 4


@pytest.mark.asyncio
async def test_engine_over_sqlite_end_to_end(db: SqliteDatabase) -> None:
    engine = SyncEngine(SqliteTaskRepo(db), SqliteCategoryRepo(db))
    coordinator = ReorderCoordinator(engine)
    await engine.load()

    r1 = await engine.create(TaskDraft(title="Gym session", category="Health"))
    r2 = await engine.create(TaskDraft(title="Pay rent", category="Personal"))
    await engine.toggle_complete(r2.task_id)
    await coordinator.move(1, 0)

    assert engine.category_counts()["Health"] == 1
    assert engine.category_counts()["Personal"] == 0

    fresh = SyncEngine(SqliteTaskRepo(db), SqliteCategoryRepo(db))
    await fresh.load()
    assert [t.id for t in fresh.store.all()] == [r2.task_id, r1.task_id]
    assert fresh.store.get(r2.task_id).completed is True
    assert fresh.completion_stats().completed == 1


@pytest.mark.asyncio
async def test_delete_and_partial_reorder_keep_sort_order_dense(db: SqliteDatabase) -> None:
    repo = SqliteTaskRepo(db)
    a = await repo.create(TaskDraft(title="A"))
    b = await repo.create(TaskDraft(title="B"))
    c = await repo.create(TaskDraft(title="C"))
    d = await repo.create(TaskDraft(title="D"))

    await repo.delete(b.id)
    assert [(t.title, t.order) for t in await repo.list()] == [("A", 0), ("C", 1), ("D", 2)]

    # Rows left out of the batch follow the named ones in their previous order.
    saved = await repo.reorder([d, a])
    assert [(t.title, t.order) for t in saved] == [("D", 0), ("A", 1), ("C", 2)]
    assert c.id in [t.id for t in saved]
