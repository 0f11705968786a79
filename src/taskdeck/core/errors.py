# src/taskdeck/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the engine, the repositories and the CLI.

- ValidationError: rejected input, raised before anything is applied.
- TaskNotFoundError / DuplicateTaskError: local TaskStore lookups.
- RemoteError / NotFoundError: failures reported by a repository backend.
"""


class TaskdeckError(Exception):
    """Base class for all taskdeck errors."""


class ValidationError(TaskdeckError, ValueError):
    pass


class TaskNotFoundError(TaskdeckError, KeyError):
    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"task not found: {self.task_id}"


class DuplicateTaskError(TaskdeckError, ValueError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"duplicate task id: {task_id}")
        self.task_id = task_id


class RemoteError(TaskdeckError):
    """A repository call failed (backend rejected it or transport broke)."""


class NotFoundError(RemoteError):
    """The backend does not know the requested record id."""
