# tests/test_filter_and_aggregates.py

from __future__ import annotations

from taskdeck.tasks.aggregates import category_counts, completion_stats, with_counts
from taskdeck.tasks.filter_view import filter_tasks, map_visible_move
from taskdeck.tasks.task_models import Category

from .fakes import make_task

TASKS = [
    make_task("1", "Monthly Report", 0, category="Work"),
    make_task("2", "Groceries", 1, category="Home", description="milk, eggs"),
    make_task("3", "Email boss", 2, category="Work", description="attach the REPORT"),
    make_task("4", "Report taxes", 3, category="Personal", completed=True),
    make_task("5", "Stand-up", 4, category="Work", completed=True),
]


def test_filter_by_text_and_category() -> None:
    out = filter_tasks(TASKS, "report", "Work")
    assert [t.id for t in out] == ["1", "3"]


def test_filter_text_only_is_case_insensitive_over_title_and_description() -> None:
    assert [t.id for t in filter_tasks(TASKS, "REPORT", None)] == ["1", "3", "4"]
    assert [t.id for t in filter_tasks(TASKS, "Eggs", None)] == ["2"]


def test_empty_filters_match_everything_in_order() -> None:
    assert filter_tasks(TASKS, "", None) == TASKS
    assert filter_tasks(TASKS, None, None) == TASKS


def test_category_match_is_exact() -> None:
    assert filter_tasks(TASKS, None, "work") == []
    assert [t.id for t in filter_tasks(TASKS, None, "Home")] == ["2"]


def test_category_counts_only_active_known_categories() -> None:
    counts = category_counts(TASKS, ["Work", "Home", "Personal", "Shopping"])
    assert counts == {"Work": 2, "Home": 1, "Personal": 0, "Shopping": 0}


def test_completion_stats() -> None:
    stats = completion_stats(TASKS)
    assert (stats.completed, stats.total, stats.percent) == (2, 5, 40)
    assert completion_stats([]).percent == 0


def test_with_counts_overwrites_backend_values() -> None:
    cats = [Category(id="1", name="Work", task_count=50), Category(id="2", name="Gym", task_count=7)]
    out = with_counts(cats, {"Work": 2})
    assert [(c.name, c.task_count) for c in out] == [("Work", 2), ("Gym", 0)]


def test_map_visible_move_keeps_hidden_tasks_in_place() -> None:
    visible = filter_tasks(TASKS, None, "Work")  # ids 1, 3, 5 at full positions 0, 2, 4

    # Drag "1" below "3": lands right after "3" in the full list.
    assert map_visible_move(TASKS, visible, 0, 1) == (0, 2)
    # Drag "5" to the top: lands right before "1".
    assert map_visible_move(TASKS, visible, 2, 0) == (4, 0)
    # No destination: nothing moves.
    assert map_visible_move(TASKS, visible, 1, None) == (2, None)
