# src/taskdeck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..cli.commands import render_visible
from ..core.ports import Notice, NoticeKind
from ..core.state import AppState

logger = logging.getLogger(__name__)

_NOTICE_PREFIX = {
    NoticeKind.SUCCESS: "[ok]",
    NoticeKind.INFO: "[info]",
    NoticeKind.CELEBRATE: "[done!]",
    NoticeKind.ERROR: "[error]",
}


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%H:%M:%S")


class ConsoleNotifier:
    """Notifier port for the console: prints one line per notice."""

    def notify(self, notice: Notice) -> None:
        print(f"[{_ts_local()}] {_NOTICE_PREFIX.get(notice.kind, '')} {notice.text}", flush=True)


async def _read_line(prompt: str) -> str:
    # input() blocks; keep it off the loop so pending syncs keep settling.
    return await asyncio.to_thread(input, prompt)


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(state.settings, "app_name", "taskdeck"))
    print(f"[{app_name}] Type /help for commands, /exit to quit.\n")
    print(render_visible(state))

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await _read_line("> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit", "/q"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            # Bare text is a shortcut for /add.
            user_input = f"/add {user_input}"

        try:
            reply = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply:
            print(reply)

    logger.info("Console connector finished.")
