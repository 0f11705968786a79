# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdeck.tasks.sync_engine import SyncEngine

from .fakes import FakeCategoryRepo, FakeTaskRepo, RecordingNotifier, make_task


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskdeck-test",
        log_level="DEBUG",
        backend="sqlite",
        data_dir=tmp_path,
        db_path=tmp_path / "taskdeck.sqlite3",
        api_url="http://backend.test",
        api_token=None,
        api_timeout_seconds=1.0,
        default_category="Work",
        shutdown_timeout_seconds=1.0,
    )


@pytest.fixture()
def task_repo() -> FakeTaskRepo:
    return FakeTaskRepo(
        [
            make_task("1", "Write report", 0, category="Work", description="Quarterly numbers"),
            make_task("2", "Buy groceries", 1, category="Home"),
            make_task("3", "Review REPORT draft", 2, category="Work"),
            make_task("4", "Call mom", 3, category="Personal", completed=True),
        ]
    )


@pytest.fixture()
def category_repo() -> FakeCategoryRepo:
    return FakeCategoryRepo()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def engine(task_repo: FakeTaskRepo, category_repo: FakeCategoryRepo, notifier: RecordingNotifier) -> SyncEngine:
    """Engine wired with fakes; tests call `await engine.load()` first."""
    return SyncEngine(task_repo, category_repo, default_category="Work", notifier=notifier)
