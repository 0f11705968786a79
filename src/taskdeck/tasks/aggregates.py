# src/taskdeck/tasks/aggregates.py

from __future__ import annotations

"""
Aggregate index: counts derived from the task list.

Always recomputed from scratch; backend-reported counts are never used.
"""

from collections.abc import Iterable
from dataclasses import replace

from .task_models import Category, CompletionStats, Task


def category_counts(tasks: Iterable[Task], category_names: Iterable[str]) -> dict[str, int]:
    """Incomplete tasks per known category name (unknown names are ignored)."""
    counts = {name: 0 for name in category_names}
    for t in tasks:
        if not t.completed and t.category in counts:
            counts[t.category] += 1
    return counts


def completion_stats(tasks: Iterable[Task]) -> CompletionStats:
    completed = 0
    total = 0
    for t in tasks:
        total += 1
        if t.completed:
            completed += 1
    return CompletionStats(completed=completed, total=total)


def with_counts(categories: Iterable[Category], counts: dict[str, int]) -> list[Category]:
    return [replace(c, task_count=counts.get(c.name, 0)) for c in categories]
