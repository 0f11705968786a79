# src/taskdeck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the task list, then runs the
console REPL until /exit. On the way out, in-flight syncs get a bounded
grace period before the engine is closed.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_app
from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    timeout = float(getattr(state.settings, "shutdown_timeout_seconds", 5.0))
    try:
        drained = await state.engine.drain(timeout=timeout)
        if not drained:
            logger.warning("Shutdown with %d mutation(s) still pending.", state.engine.pending_count)
    except Exception:
        logger.exception("Failed to drain pending mutations.")

    state.engine.close()

    for close in state.closers:
        try:
            close()
        except Exception:
            logger.debug("Resource close failed.", exc_info=True)


async def run(state: AppState) -> None:
    if not await state.engine.reload():
        print("Could not load tasks from the backend; starting with an empty list.")
    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (backend=%s)...", settings.app_name, settings.backend)

    state = create_app(settings=settings, notifier=ConsoleNotifier())
    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
