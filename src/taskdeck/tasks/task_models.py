# src/taskdeck/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError

DEFAULT_CATEGORY_COLOR = "#6B7280"

# Fields a caller may change through SyncEngine.update().
EDITABLE_FIELDS = frozenset({"title", "description", "category", "priority", "due_date", "completed"})
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "order"})


class Priority(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def parse(cls, raw: str | Priority | None) -> Priority:
        """Strict parse for user input (case-insensitive)."""
        if raw is None:
            return cls.MEDIUM
        if isinstance(raw, Priority):
            return raw
        value = str(raw).strip().lower()
        for p in cls:
            if p.value.lower() == value:
                return p
        raise ValidationError(f"unknown priority: {raw!r}")

    @classmethod
    def from_record(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls.parse(raw)
        except ValidationError:
            return cls.MEDIUM


class SyncState(StrEnum):
    """Per-task lifecycle of a mutation inside the SyncEngine."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class DueStatus(StrEnum):
    NONE = "none"
    UPCOMING = "upcoming"
    TODAY = "today"
    OVERDUE = "overdue"


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str
    category: str
    priority: Priority
    due_date: str | None
    completed: bool
    created_at: str
    order: int


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    # Derived. Values read from a backend are overwritten locally.
    task_count: int = 0


@dataclass(frozen=True, slots=True)
class TaskDraft:
    title: str
    description: str = ""
    category: str | None = None
    priority: Priority | str | None = None
    due_date: str | None = None


@dataclass(frozen=True, slots=True)
class CompletionStats:
    completed: int
    total: int

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.completed * 100 / self.total)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_due_date(raw: str | date | None) -> str | None:
    """Accept None/""/date/ISO string; return an ISO date string or None."""
    if raw is None:
        return None
    if isinstance(raw, date):
        return raw.isoformat()
    s = str(raw).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10]).isoformat()
    except ValueError as e:
        raise ValidationError(f"invalid due date {raw!r}, use YYYY-MM-DD") from e


def validate_title(raw: Any) -> str:
    title = str(raw or "").strip()
    if not title:
        raise ValidationError("title is required")
    return title


# ---- record mapping (backend <-> Task/Category) ----


def task_from_record(rec: dict[str, Any]) -> Task:
    due = rec.get("due_date") or None
    return Task(
        id=str(rec["id"]),
        title=str(rec.get("title") or ""),
        description=str(rec.get("description") or ""),
        category=str(rec.get("category") or ""),
        priority=Priority.from_record(rec.get("priority")),
        due_date=str(due) if due else None,
        completed=bool(rec.get("completed") or False),
        created_at=str(rec.get("created_at") or utc_now_iso()),
        order=int(rec.get("order") or 0),
    )


def draft_to_record(draft: TaskDraft) -> dict[str, Any]:
    priority = draft.priority.value if isinstance(draft.priority, Priority) else draft.priority
    return {
        "title": draft.title,
        "description": draft.description,
        "category": draft.category,
        "priority": priority,
        "due_date": draft.due_date,
    }


def category_from_record(rec: dict[str, Any]) -> Category:
    # task_count is deliberately not read: it is recomputed from the task list.
    return Category(
        id=str(rec["id"]),
        name=str(rec.get("name") or ""),
        color=str(rec.get("color") or DEFAULT_CATEGORY_COLOR),
    )


# ---- due dates ----


def due_status(task: Task, today: date | None = None) -> DueStatus:
    if not task.due_date:
        return DueStatus.NONE
    today = today or date.today()
    try:
        due = date.fromisoformat(task.due_date[:10])
    except ValueError:
        return DueStatus.NONE
    if due == today:
        return DueStatus.TODAY
    if due < today:
        return DueStatus.OVERDUE
    return DueStatus.UPCOMING


def due_label(task: Task, today: date | None = None) -> str:
    """Short human label: "", "Today", "Overdue - Mar 5", "Mar 5"."""
    if not task.due_date:
        return ""
    try:
        due = date.fromisoformat(task.due_date[:10])
    except ValueError:
        return task.due_date
    short = f"{due.strftime('%b')} {due.day}"
    status = due_status(task, today)
    if status == DueStatus.TODAY:
        return "Today"
    if status == DueStatus.OVERDUE:
        return f"Overdue - {short}"
    return short
