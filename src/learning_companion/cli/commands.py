# src/learning_companion/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from pathlib import Path
from typing import cast

from ..core.state import AppState
from ..errors import FormatError, InvalidTokenError, ValidationError
from ..stats.streaks import summarize
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

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

    def handle(
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
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _local_ts(task: Task) -> str:
    if task.completed_at is None:
        return ""
    return task.completed_at.astimezone().strftime("%Y-%m-%d %H:%M")


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    line = f"[{mark}] {task.id[:8]}  {task.category.value:<6}  {task.title}"
    if task.due_date is not None:
        line += f"  (due {task.due_date.isoformat()})"
    if task.completed:
        line += f"  (done {_local_ts(task)})"
    return line


def resolve_task(state: AppState, prefix: str) -> Task | str:
    """Find a task by id or unique id prefix; returns an error text otherwise."""
    prefix = prefix.strip()
    if not prefix:
        return "Task id is required."
    matches = [t for t in state.sync.tasks if t.id.startswith(prefix)]
    if not matches:
        return f"No task with id {prefix}."
    if len(matches) > 1:
        return f"Id prefix {prefix} is ambiguous ({len(matches)} tasks)."
    return matches[0]


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    sync = state.sync
    backend = str(getattr(state.settings, "remote_backend", "sqlite"))
    sharing = "ON" if state.share_tokens is not None else "OFF (set LC_SHARE_SECRET)"
    return (
        "Status:\n"
        f"  User: {sync.owner_id}\n"
        f"  Backend: {backend} ({'online' if sync.online else 'offline'})\n"
        f"  Pending sync ops: {len(sync.queue)}\n"
        f"  Sharing: {sharing}"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.sync.tasks
    if args:
        wanted = args[0].lower()
        tasks = [t for t in tasks if t.category.value == wanted]
    if not tasks:
        return "No tasks yet. Add one with /add daily <title>."
    return "\n".join(format_task(t) for t in tasks)


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add daily Read 10 pages
    /add weekly Review flashcards
    """
    if len(args) < 2:
        return "Usage: /add <daily|weekly> <title>"
    try:
        task = state.sync.add(" ".join(args[1:]), args[0])
    except ValidationError as e:
        return str(e)
    return f"Added: {format_task(task)}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    found = resolve_task(state, args[0])
    if isinstance(found, str):
        return found
    task = state.sync.toggle(found.id)
    if task is None:
        return f"No task with id {args[0]}."
    return ("Completed: " if task.completed else "Reopened: ") + format_task(task)


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <id>"
    found = resolve_task(state, args[0])
    if isinstance(found, str):
        return found
    state.sync.remove(found.id)
    return f"Removed: {found.title}"


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = summarize(state.sync.tasks)
    days = "day" if stats.streak == 1 else "days"
    lines = [
        "Progress:",
        f"  Current streak: {stats.streak} {days}",
        f"  Total: {stats.total}  Done: {stats.completed}  Rate: {stats.rate}%",
        "  Last 7 days:",
    ]
    for d in stats.week:
        lines.append(f"    {d.label} {d.day.isoformat()}  {'#' * d.count} {d.count}")
    return "\n".join(lines)


def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    pending = len(state.sync.queue)
    if pending == 0:
        state.sync.drain_queue()
        return "Nothing to sync."
    if emit:
        emit(f"[SYNC] Replaying {pending} pending op(s)...")
    if state.sync.drain_queue():
        return f"Synced {pending} op(s)."
    return f"Sync halted; {len(state.sync.queue)} op(s) still pending. Will retry later."


def _default_backup_path(state: AppState) -> Path:
    owner = (state.sync.owner_id or "user").split("@")[0]
    data_dir = Path(getattr(state.settings, "data_dir", "."))
    return data_dir / f"learning-companion-{owner}.json"


def cmd_export(state: AppState, args: list[str]) -> str:
    path = Path(args[0]).expanduser() if args else _default_backup_path(state)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(state.sync.export_snapshot(), "utf-8")
    except OSError as e:
        logger.exception("Backup export failed path=%s", path)
        return f"Export failed: {e}"
    return f"Backup written to {path} ({len(state.sync.tasks)} tasks)."


def cmd_import(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    try:
        raw = path.read_text("utf-8")
    except OSError as e:
        return f"Failed to read file: {e}"
    try:
        tasks = state.sync.import_snapshot(raw)
    except FormatError as e:
        return f"Invalid backup: {e}"
    return f"Backup restored! {len(tasks)} tasks."


def cmd_share(state: AppState, args: list[str]) -> str:
    tokens = state.share_tokens
    if tokens is None:
        return "Sharing is not configured. Set LC_SHARE_SECRET in your .env."
    owner = state.sync.owner_id
    if not owner:
        return "No user loaded."
    if not state.sync.tasks:
        return "No tasks to share yet! Add some first."
    url = tokens.share_url(tokens.issue(owner))
    return f"Share link (expires in {tokens.expires_in_text()}):\n  {url}"


def cmd_verify(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /verify <token>"
    tokens = state.share_tokens
    if tokens is None:
        return "Sharing is not configured. Set LC_SHARE_SECRET in your .env."
    try:
        owner = tokens.verify(args[0])
    except InvalidTokenError:
        return "Link invalid or expired."
    return f"Valid share link for user {owner}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, backend and pending sync ops.")
registry.register("list", cmd_list, help_text="List tasks: /list [daily|weekly].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <daily|weekly> <title>.")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.", aliases=["toggle"])
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <id>.", aliases=["del"])
registry.register("stats", cmd_stats, help_text="Show streak, completion rate and last 7 days.")
registry.register("sync", cmd_sync, help_text="Replay pending remote writes now.")
registry.register("export", cmd_export, help_text="Write a JSON backup: /export [path].")
registry.register("import", cmd_import, help_text="Restore a JSON backup: /import <path>.")
registry.register("share", cmd_share, help_text="Create a read-only share link (30 days).")
registry.register("verify", cmd_verify, help_text="Check a share token: /verify <token>.")
