# tests/test_reorder.py

from __future__ import annotations

import pytest

from taskdeck.core.ports import NoticeKind
from taskdeck.tasks.reorder import ReorderCoordinator, merge_order, move_item, renumber
from taskdeck.tasks.sync_engine import SyncEngine
from taskdeck.tasks.task_models import TaskDraft

from .fakes import FakeCategoryRepo, FakeTaskRepo, RecordingNotifier, make_task


def _abc() -> list:
    return [make_task("a", "A", 0), make_task("b", "B", 1), make_task("c", "C", 2)]


def test_move_item_and_renumber() -> None:
    moved = renumber(move_item(_abc(), 0, 2))
    assert [(t.title, t.order) for t in moved] == [("B", 0), ("C", 1), ("A", 2)]


def test_move_without_destination_is_noop() -> None:
    assert [t.id for t in move_item(_abc(), 1, None)] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_reorder_applies_optimistically_and_persists_once() -> None:
    repo = FakeTaskRepo(_abc())
    engine = SyncEngine(repo, FakeCategoryRepo(), notifier=RecordingNotifier())
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    gate = repo.hold("reorder")

    fut = coordinator.move(0, 2)

    assert [(t.title, t.order) for t in engine.store.all()] == [("B", 0), ("C", 1), ("A", 2)]

    gate.set()
    result = await fut

    assert result.ok
    assert repo.ops().count("reorder") == 1
    assert [arg for op, arg in repo.calls if op == "reorder"] == [["b", "c", "a"]]
    assert [(t.title, t.order) for t in sorted(repo.rows.values(), key=lambda t: t.order)] == [
        ("B", 0),
        ("C", 1),
        ("A", 2),
    ]


@pytest.mark.asyncio
async def test_reorder_failure_reloads_whole_collection() -> None:
    repo = FakeTaskRepo(_abc())
    notifier = RecordingNotifier()
    engine = SyncEngine(repo, FakeCategoryRepo(), notifier=notifier)
    coordinator = ReorderCoordinator(engine)
    await engine.load()

    # Simulate server-side drift that only a reload can reveal.
    repo.rows["c"] = make_task("c", "C (renamed elsewhere)", 2)
    repo.fail("reorder")

    result = await coordinator.move(2, 0)

    assert not result.ok
    assert [t.title for t in engine.store.all()] == ["A", "B", "C (renamed elsewhere)"]
    assert [t.order for t in engine.store.all()] == [0, 1, 2]
    assert repo.ops().count("list") == 2
    assert notifier.kinds() == [NoticeKind.ERROR]


@pytest.mark.asyncio
async def test_move_visible_keeps_hidden_tasks() -> None:
    repo = FakeTaskRepo(
        [
            make_task("1", "w1", 0, category="Work"),
            make_task("2", "h1", 1, category="Home"),
            make_task("3", "w2", 2, category="Work"),
        ]
    )
    engine = SyncEngine(repo, FakeCategoryRepo())
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    engine.set_category("Work")

    await coordinator.move_visible(1, 0)

    assert [t.id for t in engine.store.all()] == ["3", "1", "2"]
    assert [t.id for t in engine.visible_tasks()] == ["3", "1"]


@pytest.mark.asyncio
async def test_same_order_does_not_call_backend() -> None:
    repo = FakeTaskRepo(_abc())
    engine = SyncEngine(repo, FakeCategoryRepo())
    coordinator = ReorderCoordinator(engine)
    await engine.load()

    result = await coordinator.move(1, 1)

    assert result.ok
    assert "reorder" not in repo.ops()


def _mixed() -> list:
    return [
        make_task("a", "A", 0, category="Work"),
        make_task("b", "B", 1, category="Work"),
        make_task("c", "C", 2, category="Home"),
    ]


def _queue_second_move(repo: FakeTaskRepo, coordinator: ReorderCoordinator):
    """Start move #1 with its remote call held, then queue move #2 behind it."""
    gate = repo.hold("reorder")
    first = coordinator.move(0, 2)  # a, b, c -> b, c, a
    second = coordinator.move(0, 1)  # b, c, a -> c, b, a
    return gate, first, second


def test_merge_order_skips_gone_ids_and_keeps_new_tasks_in_place() -> None:
    live = [make_task("b", "B", 0), make_task("n", "New", 1), make_task("a", "A", 2)]
    merged = merge_order(["a", "gone", "b"], live)
    assert [t.id for t in merged] == ["a", "n", "b"]
    assert merged[0] is live[2]


@pytest.mark.asyncio
async def test_queued_move_keeps_task_created_in_between() -> None:
    repo = FakeTaskRepo(_mixed())
    notifier = RecordingNotifier()
    engine = SyncEngine(repo, FakeCategoryRepo(), notifier=notifier)
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    gate, first, second = _queue_second_move(repo, coordinator)

    created = await engine.create(TaskDraft(title="New", category="Home"))
    gate.set()
    await first
    await second

    assert [t.id for t in engine.store.all()] == ["c", "b", "a", created.task_id]
    assert [t.order for t in engine.store.all()] == [0, 1, 2, 3]
    assert engine.category_counts()["Home"] == 2
    assert [arg for op, arg in repo.calls if op == "reorder"] == [["b", "c", "a"], ["c", "b", "a", "101"]]
    assert NoticeKind.ERROR not in notifier.kinds()


@pytest.mark.asyncio
async def test_queued_move_keeps_toggle_and_update_committed_in_between() -> None:
    repo = FakeTaskRepo(_mixed())
    engine = SyncEngine(repo, FakeCategoryRepo())
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    gate, first, second = _queue_second_move(repo, coordinator)

    await engine.toggle_complete("c")
    await engine.update("a", {"title": "A renamed", "category": "Personal"})
    gate.set()
    await first
    await second

    store = engine.store
    assert [t.id for t in store.all()] == ["c", "b", "a"]
    assert store.get("c").completed is True
    assert store.get("a").title == "A renamed"
    assert engine.category_counts() == {"Work": 1, "Personal": 1, "Home": 0}
    assert repo.rows["c"].completed is True


@pytest.mark.asyncio
async def test_queued_move_does_not_bring_back_deleted_task() -> None:
    repo = FakeTaskRepo(_mixed())
    notifier = RecordingNotifier()
    engine = SyncEngine(repo, FakeCategoryRepo(), notifier=notifier)
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    gate = repo.hold("reorder")
    delete_gate = repo.hold("delete")
    first = coordinator.move(0, 2)  # a, b, c -> b, c, a
    second = coordinator.move(2, 0)  # b, c, a -> a, b, c
    deleted = engine.delete("b")

    gate.set()
    await first
    result = await second
    delete_gate.set()
    assert (await deleted).ok

    assert result.ok
    assert [t.id for t in engine.store.all()] == ["a", "c"]
    assert engine.category_counts() == {"Work": 1, "Personal": 0, "Home": 1}
    assert [arg for op, arg in repo.calls if op == "reorder"][-1] == ["a", "c"]
    assert repo.ops().count("list") == 1
    assert NoticeKind.ERROR not in notifier.kinds()


@pytest.mark.asyncio
async def test_move_of_unsaved_task_is_persisted_after_its_create() -> None:
    repo = FakeTaskRepo(_mixed())
    notifier = RecordingNotifier()
    engine = SyncEngine(repo, FakeCategoryRepo(), notifier=notifier)
    coordinator = ReorderCoordinator(engine)
    await engine.load()
    create_gate = repo.hold("create")

    created = engine.create(TaskDraft(title="New", category="Home"))
    placeholder_id = engine.store.all()[-1].id
    result = await coordinator.move(3, 0)

    assert result.ok
    assert [t.id for t in engine.store.all()] == [placeholder_id, "a", "b", "c"]
    # The unsaved task is left out of the bulk call.
    assert [arg for op, arg in repo.calls if op == "reorder"] == [["a", "b", "c"]]

    create_gate.set()
    saved = await created
    assert await engine.drain(1.0)

    assert [t.id for t in engine.store.all()] == [saved.task_id, "a", "b", "c"]
    assert [arg for op, arg in repo.calls if op == "reorder"][-1] == [saved.task_id, "a", "b", "c"]
    assert repo.rows[saved.task_id].order == 0
    assert engine.category_counts()["Home"] == 2
    assert repo.ops().count("list") == 1
    assert NoticeKind.ERROR not in notifier.kinds()
