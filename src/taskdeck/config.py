# src/taskdeck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- The composition root accepts an injected settings object (tests use SimpleNamespace).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDECK"

BACKENDS = ("sqlite", "http")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Backend selection ----
    backend: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- HTTP backend ----
    api_url: str
    api_token: str | None
    api_timeout_seconds: float

    # ---- Behaviour ----
    default_category: str
    shutdown_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskdeck").strip() or "taskdeck"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        backend = _env(_k("BACKEND"), "sqlite").strip().lower()
        if backend not in BACKENDS:
            backend = "sqlite"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdeck"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskdeck.sqlite3")

        api_url = _env(_k("API_URL"), "http://127.0.0.1:8000").strip()
        api_token = _env_optional(_k("API_TOKEN"))
        api_timeout_seconds = max(0.5, _env_float(_k("API_TIMEOUT_SECONDS"), 10.0))

        default_category = _env(_k("DEFAULT_CATEGORY"), "Work").strip() or "Work"
        shutdown_timeout_seconds = max(0.0, _env_float(_k("SHUTDOWN_TIMEOUT_SECONDS"), 5.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            backend=backend,
            data_dir=data_dir,
            db_path=db_path,
            api_url=api_url,
            api_token=api_token,
            api_timeout_seconds=api_timeout_seconds,
            default_category=default_category,
            shutdown_timeout_seconds=shutdown_timeout_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load .env (without overriding real env vars) once and return the shared Settings."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
