# src/learning_companion/tasks/task_codec.py

"""
Task <-> row conversion and the JSON snapshot/backup format.

One row shape is used everywhere a task leaves the process (remote table,
local cache, backup files):

    {"id", "user_id", "title", "category", "completed", "completed_at",
     "created_at", "notes", "due_date"}

Backups written by the older web client used camelCase keys and "type" for the
category; those are accepted on decode.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any

from ..errors import FormatError
from .task_models import QueueOp, RetryEntry, Task, TaskCategory

_ALIASES: dict[str, tuple[str, ...]] = {
    "user_id": ("user_id", "userId", "owner_id"),
    "category": ("category", "type"),
    "completed_at": ("completed_at", "completedAt"),
    "created_at": ("created_at", "createdAt"),
    "due_date": ("due_date", "dueDate"),
}


def _pick(row: dict[str, Any], key: str) -> Any:
    for name in _ALIASES.get(key, (key,)):
        if name in row:
            return row[name]
    return None


def format_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    # Fixed width keeps the text column sortable.
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(raw: Any, *, field_name: str) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        raise FormatError(f"{field_name} must be an ISO-8601 timestamp")
    try:
        ts = datetime.fromisoformat(raw.strip())
    except ValueError as e:
        raise FormatError(f"{field_name} is not a valid timestamp: {raw!r}") from e
    # Naive timestamps are taken as UTC.
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise FormatError("due_date must be a YYYY-MM-DD string")
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError as e:
        raise FormatError(f"due_date is not a valid date: {raw!r}") from e


def task_to_row(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "user_id": task.owner_id,
        "title": task.title,
        "category": task.category.value,
        "completed": task.completed,
        "completed_at": format_ts(task.completed_at) if task.completed_at is not None else None,
        "created_at": format_ts(task.created_at),
        "notes": task.notes,
        "due_date": task.due_date.isoformat() if task.due_date is not None else None,
    }


def task_from_row(
    row: Any,
    *,
    owner_id: str | None = None,
    fallback_created_at: datetime | None = None,
) -> Task:
    """
    Strictly decode one record.

    owner_id, when given, overrides whatever owner the record carries.
    Raises FormatError on anything that is not task-shaped or that breaks the
    "completed_at iff completed" invariant.
    """
    if not isinstance(row, dict):
        raise FormatError("task record must be an object")

    task_id = row.get("id")
    if isinstance(task_id, int) and not isinstance(task_id, bool):
        task_id = str(task_id)
    if not isinstance(task_id, str) or not task_id.strip():
        raise FormatError("task record has no id")

    title = row.get("title")
    if not isinstance(title, str) or not title.strip():
        raise FormatError(f"task {task_id}: title must be a non-empty string")

    category_raw = _pick(row, "category")
    category = TaskCategory.parse(category_raw if isinstance(category_raw, str) else None)
    if category is None:
        raise FormatError(f"task {task_id}: unknown category {category_raw!r}")

    completed = row.get("completed", False)
    if not isinstance(completed, bool):
        raise FormatError(f"task {task_id}: completed must be a boolean")

    completed_raw = _pick(row, "completed_at")
    completed_at = None
    if completed_raw is not None:
        completed_at = parse_ts(completed_raw, field_name="completed_at")
    if completed != (completed_at is not None):
        raise FormatError(f"task {task_id}: completed_at must be set exactly when completed")

    created_raw = _pick(row, "created_at")
    if created_raw is None:
        if fallback_created_at is None:
            raise FormatError(f"task {task_id}: created_at is missing")
        created_at = fallback_created_at
    else:
        created_at = parse_ts(created_raw, field_name="created_at")

    owner = owner_id
    if owner is None:
        owner = _pick(row, "user_id")
        if not isinstance(owner, str) or not owner:
            raise FormatError(f"task {task_id}: user_id is missing")

    notes = row.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise FormatError(f"task {task_id}: notes must be a string")

    return Task(
        id=task_id.strip(),
        owner_id=owner,
        title=title.strip(),
        category=category,
        created_at=created_at,
        completed=completed,
        completed_at=completed_at,
        notes=notes or None,
        due_date=_parse_date(_pick(row, "due_date")),
    )


def encode_tasks(tasks: Iterable[Task], *, indent: int | None = 2) -> str:
    return json.dumps([task_to_row(t) for t in tasks], ensure_ascii=False, indent=indent)


def decode_tasks(
    raw: str,
    *,
    owner_id: str | None = None,
    fallback_created_at: datetime | None = None,
) -> list[Task]:
    """
    Decode a snapshot/backup. All-or-nothing: one bad record fails the whole call.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FormatError(f"backup is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise FormatError("backup must be a JSON array of tasks")

    tasks = [
        task_from_row(row, owner_id=owner_id, fallback_created_at=fallback_created_at)
        for row in data
    ]

    seen: set[str] = set()
    for t in tasks:
        if t.id in seen:
            raise FormatError(f"duplicate task id {t.id}")
        seen.add(t.id)
    return tasks


def entry_to_dict(entry: RetryEntry) -> dict[str, Any]:
    return {
        "op": entry.op.value,
        "target_id": entry.target_id,
        "payload": entry.payload,
        "enqueued_at": entry.enqueued_at,
    }


def entry_from_dict(raw: Any) -> RetryEntry:
    if not isinstance(raw, dict):
        raise FormatError("queue entry must be an object")
    try:
        op = QueueOp(raw.get("op"))
    except ValueError as e:
        raise FormatError(f"unknown queue op {raw.get('op')!r}") from e
    target_id = raw.get("target_id")
    if not isinstance(target_id, str) or not target_id:
        raise FormatError("queue entry has no target_id")
    payload = raw.get("payload") or {}
    if not isinstance(payload, dict):
        raise FormatError("queue entry payload must be an object")
    enqueued_at = raw.get("enqueued_at") or 0.0
    if not isinstance(enqueued_at, (int, float)):
        raise FormatError("queue entry enqueued_at must be a number")
    return RetryEntry(op=op, target_id=target_id, payload=payload, enqueued_at=float(enqueued_at))
