# src/taskdeck/core/state.py

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..tasks.reorder import ReorderCoordinator
from ..tasks.sync_engine import SyncEngine


@dataclass
class AppState:
    # Settings object (config.Settings or a SimpleNamespace in tests).
    settings: Any

    engine: SyncEngine
    reorder: ReorderCoordinator

    # Resource cleanups run on shutdown (HTTP session, ...).
    closers: list[Callable[[], None]] = field(default_factory=list)
