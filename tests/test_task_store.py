# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from learning_companion.errors import NetworkError
from learning_companion.tasks.task_cache import JsonFileCache, MemoryCache
from learning_companion.tasks.task_channel import ChangeHub
from learning_companion.tasks.task_models import ChangeEvent, ChangeKind, QueueOp, Task, TaskCategory
from learning_companion.tasks.task_store import SqliteTaskCollection
from learning_companion.tasks.task_sync import TaskSync

from .conftest import OWNER
from .fakes import FakeClock


def _task(task_id: str, *, owner: str = OWNER, hour: int = 9, **kw) -> Task:
    return Task(
        id=task_id,
        owner_id=owner,
        title=kw.pop("title", f"task {task_id}"),
        category=kw.pop("category", TaskCategory.DAILY),
        created_at=datetime(2026, 3, 1, hour, 0, tzinfo=UTC),
        **kw,
    )


def test_insert_and_list_newest_first(tmp_path: Path) -> None:
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3")
    store.insert_task(_task("a", hour=8))
    store.insert_task(_task("b", hour=10, notes="chapter 3", due_date=date(2026, 3, 20)))
    store.insert_task(_task("other", owner="user-2"))

    tasks = store.list_tasks(OWNER)

    assert [t.id for t in tasks] == ["b", "a"]
    assert tasks[0].notes == "chapter 3"
    assert tasks[0].due_date == date(2026, 3, 20)
    assert store.count_tasks() == 3


def test_update_touches_only_given_columns(tmp_path: Path) -> None:
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3")
    store.insert_task(_task("a", title="Read"))
    done_at = datetime(2026, 3, 2, 7, 30, tzinfo=UTC)

    store.update_task("a", {"completed": True, "completed_at": done_at.isoformat(), "user_id": "hijack"})

    [task] = store.list_tasks(OWNER)
    assert task.completed
    assert task.completed_at == done_at
    assert task.title == "Read"


def test_update_and_delete_of_unknown_id_are_noops(tmp_path: Path) -> None:
    hub = ChangeHub()
    events: list[ChangeEvent] = []
    hub.subscribe(OWNER, events.append)
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3", hub=hub)

    store.update_task("missing", {"title": "x"})
    store.delete_task("missing")

    assert events == []


def test_upsert_inserts_then_overwrites(tmp_path: Path) -> None:
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3")
    store.upsert_task(_task("a", title="First"))
    store.upsert_task(_task("a", title="Second", category=TaskCategory.WEEKLY))

    [task] = store.list_tasks(OWNER)
    assert task.title == "Second"
    assert task.category is TaskCategory.WEEKLY


def test_writes_are_published_to_hub(tmp_path: Path) -> None:
    hub = ChangeHub()
    events: list[ChangeEvent] = []
    other: list[ChangeEvent] = []
    hub.subscribe(OWNER, events.append)
    hub.subscribe("user-2", other.append)
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3", hub=hub)

    store.insert_task(_task("a"))
    store.update_task("a", {"title": "renamed"})
    store.upsert_task(_task("b"))
    store.upsert_task(_task("b", title="again"))
    store.delete_task("a")

    assert [(e.kind, e.task_id) for e in events] == [
        (ChangeKind.INSERT, "a"),
        (ChangeKind.UPDATE, "a"),
        (ChangeKind.INSERT, "b"),
        (ChangeKind.UPDATE, "b"),
        (ChangeKind.DELETE, "a"),
    ]
    assert events[1].task is not None and events[1].task.title == "renamed"
    assert other == []


def test_broken_listener_does_not_block_others(tmp_path: Path) -> None:
    hub = ChangeHub()
    seen: list[ChangeEvent] = []

    def boom(_event: ChangeEvent) -> None:
        raise RuntimeError("listener bug")

    hub.subscribe(OWNER, boom)
    hub.subscribe(OWNER, seen.append)
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3", hub=hub)

    store.insert_task(_task("a"))

    assert len(seen) == 1


def test_duplicate_insert_is_a_network_error(tmp_path: Path) -> None:
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3")
    store.insert_task(_task("a"))

    with pytest.raises(NetworkError):
        store.insert_task(_task("a"))


def test_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute(
        """
        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'daily',
            completed INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO tasks VALUES ('old', ?, 'Legacy', 'weekly', 0, NULL, '2026-01-01T00:00:00+00:00')",
        (OWNER,),
    )
    conn.commit()
    conn.close()

    store = SqliteTaskCollection(db)
    [task] = store.list_tasks(OWNER)

    assert task.title == "Legacy"
    assert task.notes is None and task.due_date is None


def test_two_clients_stay_in_sync(tmp_path: Path) -> None:
    hub = ChangeHub()
    store = SqliteTaskCollection(tmp_path / "tasks.sqlite3", hub=hub)
    clock = FakeClock()

    phone = TaskSync(store, MemoryCache(), hub, clock=clock)
    laptop = TaskSync(store, JsonFileCache(tmp_path / "laptop-cache.json"), hub, clock=clock)
    phone.load(OWNER)
    laptop.load(OWNER)
    laptop_updates: list[list[Task]] = []
    phone.subscribe(OWNER, lambda _tasks: None)
    laptop.subscribe(OWNER, laptop_updates.append)

    task = phone.add("Read 10 pages", "daily")
    assert [t.id for t in phone.tasks] == [task.id]
    assert [t.id for t in laptop.tasks] == [task.id]

    laptop.toggle(task.id)
    assert phone.get(task.id) is not None and phone.get(task.id).completed

    phone.remove(task.id)
    assert laptop.tasks == []
    assert len(laptop_updates) == 3


class FlakySqliteCollection(SqliteTaskCollection):
    """SQLite collection whose writes can be made to fail: all of them (`down`) or per op name."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.down = False
        self.failing_ops: set[str] = set()

    def _guard(self, op: str) -> None:
        if self.down or op in self.failing_ops:
            raise NetworkError(f"{op} unreachable")

    def insert_task(self, task: Task) -> None:
        self._guard("insert")
        super().insert_task(task)

    def update_task(self, task_id: str, fields: dict) -> None:
        self._guard("update")
        super().update_task(task_id, fields)

    def delete_task(self, task_id: str) -> None:
        self._guard("delete")
        super().delete_task(task_id)

    def upsert_task(self, task: Task) -> None:
        self._guard("insert")
        super().upsert_task(task)


def _two_clients(tmp_path: Path) -> tuple[FlakySqliteCollection, TaskSync, TaskSync]:
    hub = ChangeHub()
    store = FlakySqliteCollection(tmp_path / "tasks.sqlite3", hub=hub)
    clock = FakeClock()
    phone = TaskSync(store, MemoryCache(), hub, clock=clock)
    laptop = TaskSync(store, MemoryCache(), hub, clock=clock)
    for client in (phone, laptop):
        client.load(OWNER)
        client.subscribe(OWNER, lambda _tasks: None)
    return store, phone, laptop


def test_partial_replay_does_not_resurrect_deleted_task(tmp_path: Path) -> None:
    store, phone, laptop = _two_clients(tmp_path)
    store.down = True
    task = phone.add("Temporary", "daily")
    phone.remove(task.id)
    assert phone.tasks == []

    store.down = False
    store.failing_ops = {"delete"}
    assert phone.drain_queue() is False

    assert [t.id for t in laptop.tasks] == [task.id]
    assert phone.tasks == []
    assert [e.op for e in phone.queue] == [QueueOp.DELETE]

    store.failing_ops = set()
    assert phone.drain_queue() is True
    assert phone.tasks == []
    assert laptop.tasks == []
    assert store.list_tasks(OWNER) == []


def test_partial_replay_keeps_newer_local_toggle(tmp_path: Path) -> None:
    store, phone, laptop = _two_clients(tmp_path)
    store.down = True
    task = phone.add("Read", "daily")
    phone.toggle(task.id)

    store.down = False
    store.failing_ops = {"update"}
    assert phone.drain_queue() is False

    local = phone.get(task.id)
    assert local is not None and local.completed and local.completed_at is not None
    remote_view = laptop.get(task.id)
    assert remote_view is not None and not remote_view.completed

    store.failing_ops = set()
    assert phone.drain_queue() is True
    remote_view = laptop.get(task.id)
    assert remote_view is not None and remote_view.completed
