# src/taskdeck/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from typing import cast

from ..core.errors import TaskdeckError
from ..core.state import AppState
from ..tasks.sync_engine import SyncState
from ..tasks.task_models import Priority, Task, TaskDraft, due_label

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

# /edit field names accepted on the command line -> task field.
EDIT_FIELDS = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "cat": "category",
    "category": "category",
    "prio": "priority",
    "priority": "priority",
    "due": "due_date",
    "due_date": "due_date",
}


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                out = cast(CommandHandler3, handler)(state, args, emit)
            else:
                out = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(out):
                out = await out
        except TaskdeckError as e:
            # Validation / not-found: nothing was applied, tell the user why.
            return f"Error: {e}"
        return cast(str, out)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def render_task(position: int, task: Task, state_marker: str = "") -> str:
    box = "[x]" if task.completed else "[ ]"
    meta = [task.category, task.priority.value]
    due = due_label(task)
    if due:
        meta.append(due)
    line = f"{position:>3}. {box} {task.title}{state_marker}  ({', '.join(meta)})"
    if task.description:
        line += f"\n       {task.description}"
    return line


def render_visible(state: AppState) -> str:
    engine = state.engine
    tasks = engine.visible_tasks()
    if not tasks:
        if engine.search_text or engine.selected_category:
            return "No tasks found. Try adjusting your search or category filter."
        return "No tasks yet. Add one with /add <title>."
    lines = []
    for i, t in enumerate(tasks, start=1):
        marker = " *" if engine.state_of(t.id) == SyncState.PENDING else ""
        lines.append(render_task(i, t, marker))
    return "\n".join(lines)


def _visible_at(state: AppState, raw: str) -> Task:
    try:
        n = int(raw)
    except ValueError as e:
        raise _UsageError(f"not a task number: {raw}") from e
    tasks = state.engine.visible_tasks()
    if not 1 <= n <= len(tasks):
        raise _UsageError(f"no task #{n} in the current list")
    return tasks[n - 1]


class _UsageError(TaskdeckError):
    pass


def parse_add_args(args: list[str]) -> TaskDraft:
    """
    /add Buy milk #Shopping !high @2026-01-31 -- description text

    #name -> category, !level -> priority, @date -> due date; words after "--"
    form the description.
    """
    title_words: list[str] = []
    desc_words: list[str] = []
    category = None
    priority = None
    due = None
    in_desc = False
    for word in args:
        if in_desc:
            desc_words.append(word)
        elif word == "--":
            in_desc = True
        elif word.startswith("#") and len(word) > 1:
            category = word[1:]
        elif word.startswith("!") and len(word) > 1:
            priority = Priority.parse(word[1:])
        elif word.startswith("@") and len(word) > 1:
            due = word[1:]
        else:
            title_words.append(word)
    return TaskDraft(
        title=" ".join(title_words),
        description=" ".join(desc_words),
        category=category,
        priority=priority,
        due_date=due,
    )


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str]) -> str:
    return render_visible(state)


def cmd_add(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /add <title> [#category] [!high|!medium|!low] [@YYYY-MM-DD] [-- description]"
    draft = parse_add_args(args)
    state.engine.create(draft)
    return f'Adding "{draft.title.strip()}"...'


def cmd_edit(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /edit <n> field=value ... (fields: title, desc, cat, prio, due)"
    task = _visible_at(state, args[0])
    changes: dict[str, str] = {}
    for pair in args[1:]:
        name, sep, value = pair.partition("=")
        field_name = EDIT_FIELDS.get(name.lower())
        if not sep or field_name is None:
            return f"Bad field assignment: {pair}"
        changes[field_name] = value
    state.engine.update(task.id, changes)
    return f'Updating "{task.title}"...'


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n>"
    task = _visible_at(state, args[0])
    state.engine.toggle_complete(task.id)
    return ""


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <n>"
    task = _visible_at(state, args[0])
    state.engine.delete(task.id)
    return f'Deleting "{task.title}"...'


def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /move <from> <to>"
    source = _visible_at(state, args[0])
    target = _visible_at(state, args[1])
    visible_ids = [t.id for t in state.engine.visible_tasks()]
    state.reorder.move_visible(visible_ids.index(source.id), visible_ids.index(target.id))
    return render_visible(state)


def cmd_search(state: AppState, args: list[str]) -> str:
    state.engine.set_search(" ".join(args) if args else None)
    return render_visible(state)


def cmd_cat(state: AppState, args: list[str]) -> str:
    state.engine.set_category(" ".join(args) if args else None)
    return render_visible(state)


def cmd_cats(state: AppState, args: list[str]) -> str:
    cats = state.engine.categories()
    if not cats:
        return "No categories."
    selected = state.engine.selected_category
    lines = ["Categories:"]
    for c in cats:
        mark = ">" if c.name == selected else " "
        lines.append(f" {mark} {c.name:<16} {c.task_count:>3} active")
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.engine.completion_stats()
    return f"Completed {stats.completed}/{stats.total} ({stats.percent}%)"


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("Reloading from backend...")
    ok = await state.engine.reload()
    return render_visible(state) if ok else "Reload failed; keeping the current list."


async def cmd_newcat(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /newcat <name> [#RRGGBB]"
    color = args[1] if len(args) > 1 else None
    try:
        created = await state.engine.category_repo.create(args[0], color)
        await state.engine.reload_categories()
    except TaskdeckError as e:
        logger.warning("Category create failed: %s", e)
        return f"Failed to create category: {e}"
    return f'Category "{created.name}" created.'


registry.register("help", cmd_help, "Show this help.", aliases=["h", "?"])
registry.register("list", cmd_list, "Show the current (filtered) task list.", aliases=["ls"])
registry.register("add", cmd_add, "Add a task: /add <title> [#cat] [!prio] [@date] [-- desc]")
registry.register("edit", cmd_edit, "Edit a task: /edit <n> title=... desc=... cat=... prio=... due=...")
registry.register("done", cmd_done, "Toggle completion of task <n>.", aliases=["toggle"])
registry.register("rm", cmd_rm, "Delete task <n>.", aliases=["del", "delete"])
registry.register("move", cmd_move, "Move task <from> to position <to>.", aliases=["mv"])
registry.register("search", cmd_search, "Filter by text (no args: clear).", aliases=["find"])
registry.register("cat", cmd_cat, "Filter by category (no args: all).")
registry.register("cats", cmd_cats, "List categories with active task counts.")
registry.register("stats", cmd_stats, "Show completion progress.")
registry.register("reload", cmd_reload, "Reload everything from the backend.")
registry.register("newcat", cmd_newcat, "Create a category: /newcat <name> [#RRGGBB]")
