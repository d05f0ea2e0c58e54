# src/learning_companion/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class TaskCategory(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"

    @classmethod
    def parse(cls, raw: str | None) -> TaskCategory | None:
        if not raw:
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class QueueOp(StrEnum):
    """Kind of remote write waiting in the retry queue."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeKind(StrEnum):
    """Kind of row-level change delivered by a live channel."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True)
class Task:
    id: str
    owner_id: str
    title: str
    category: TaskCategory
    created_at: datetime

    completed: bool = False
    # Set iff completed is True.
    completed_at: datetime | None = None

    notes: str | None = None
    due_date: date | None = None


@dataclass(slots=True)
class RetryEntry:
    """
    A remote write that has not been confirmed yet.

    payload uses the remote row shape (see task_codec.task_to_row):
    - insert: the full row
    - update: only the changed columns
    - delete: empty
    """

    op: QueueOp
    target_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    enqueued_at: float = 0.0


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """
    Row-level notification from a live channel.

    insert/update carry the new record; delete carries only the prior id.
    """

    kind: ChangeKind
    task: Task | None = None
    old_id: str | None = None

    @property
    def task_id(self) -> str | None:
        if self.task is not None:
            return self.task.id
        return self.old_id
