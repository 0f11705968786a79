# src/taskdeck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks ONE repository backend (sqlite or http) behind the TaskRepo/CategoryRepo ports,
- wires the SyncEngine and ReorderCoordinator into AppState.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import get_settings
from ..core.ports import CategoryRepo, Notifier, TaskRepo
from ..core.state import AppState
from ..repositories.http_repo import HttpCategoryRepo, HttpClient, HttpTaskRepo
from ..repositories.sqlite_repo import SqliteCategoryRepo, SqliteDatabase, SqliteTaskRepo
from ..tasks.reorder import ReorderCoordinator
from ..tasks.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)


def build_repositories(settings) -> tuple[TaskRepo, CategoryRepo, list]:
    """Return (task_repo, category_repo, closers) for settings.backend."""
    backend = str(getattr(settings, "backend", "sqlite")).lower()

    if backend == "http":
        client = HttpClient(
            settings.api_url,
            token=getattr(settings, "api_token", None),
            timeout=float(getattr(settings, "api_timeout_seconds", 10.0)),
        )
        logger.info("Using HTTP backend url=%s", settings.api_url)
        return HttpTaskRepo(client), HttpCategoryRepo(client), [client.close]

    _ensure_local_dirs(settings)
    db = SqliteDatabase(settings.db_path)
    logger.info("Using SQLite backend db=%s", db.path)
    return SqliteTaskRepo(db), SqliteCategoryRepo(db), []


def create_app(*, settings=None, notifier: Notifier | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    task_repo, category_repo, closers = build_repositories(settings)
    engine = SyncEngine(
        task_repo,
        category_repo,
        default_category=getattr(settings, "default_category", "Work"),
        notifier=notifier,
    )
    return AppState(
        settings=settings,
        engine=engine,
        reorder=ReorderCoordinator(engine),
        closers=list(closers),
    )
