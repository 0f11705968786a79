# src/taskdeck/tasks/filter_view.py

from __future__ import annotations

from collections.abc import Sequence

from .task_models import Task


def matches(task: Task, search_text: str | None, selected_category: str | None) -> bool:
    if selected_category is not None and task.category != selected_category:
        return False
    if not search_text:
        return True
    needle = search_text.lower()
    return needle in task.title.lower() or needle in task.description.lower()


def filter_tasks(
    tasks: Sequence[Task],
    search_text: str | None = None,
    selected_category: str | None = None,
) -> list[Task]:
    """
    Project tasks onto the subset matching search text and category.

    Search is a case-insensitive substring match over title OR description;
    an empty search matches everything. Category is exact; None matches all.
    Input order is preserved.
    """
    return [t for t in tasks if matches(t, search_text, selected_category)]


def map_visible_move(
    all_tasks: Sequence[Task],
    visible: Sequence[Task],
    source: int,
    destination: int | None,
) -> tuple[int, int | None]:
    """
    Translate a drag inside a filtered view into full-list indices.

    The dragged task lands next to the visible task currently at
    `destination` (after it when moving down, before it when moving up), so
    hidden tasks keep their relative positions.
    """
    if not 0 <= source < len(visible):
        raise IndexError(f"source index out of range: {source}")

    ids = [t.id for t in all_tasks]
    full_source = ids.index(visible[source].id)
    if destination is None:
        return full_source, None

    destination = max(0, min(int(destination), len(visible) - 1))
    if destination == source:
        return full_source, full_source

    target_id = visible[destination].id
    remaining = [i for i in ids if i != visible[source].id]
    target_pos = remaining.index(target_id)
    if destination > source:
        return full_source, target_pos + 1
    return full_source, target_pos
