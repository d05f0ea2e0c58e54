# src/learning_companion/tasks/task_sync.py

from __future__ import annotations

"""
Task synchronization.

Keeps the in-memory task list of one owner consistent with a remote collection.

Contract ("apply immediately, reconcile later"):
- every mutation is applied to local state first and is visible to the caller
  as soon as the method returns;
- the remote write is attempted next; if it fails with NetworkError (or we are
  offline, or older writes are still queued) it is appended to the retry queue
  instead. Nothing is rolled back;
- drain_queue() replays the queue strictly in order and stops at the first
  failure, leaving the rest untouched;
- live change events from other clients go through one reducer (apply_change),
  last writer wins per task id.

Local state and the queue are mirrored to a key-value cache after every change,
so load() can fall back to them when the remote is unreachable.
"""

import json
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any

from ..core.ports import ChangeChannel, KeyValueCache, RemoteTaskCollection, Subscription, TasksCallback
from ..errors import FormatError, NetworkError, ValidationError
from .task_cache import queue_key, snapshot_key
from .task_codec import (
    decode_tasks,
    encode_tasks,
    entry_from_dict,
    entry_to_dict,
    format_ts,
    task_from_row,
    task_to_row,
)
from .task_models import ChangeEvent, ChangeKind, QueueOp, RetryEntry, Task, TaskCategory

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ---- reducer ----


def _reduce_insert(tasks: list[Task], event: ChangeEvent) -> list[Task]:
    task = event.task
    if task is None:
        return tasks
    # Our own writes come back as echoes: replace in place instead of duplicating.
    if any(t.id == task.id for t in tasks):
        return [task if t.id == task.id else t for t in tasks]
    return [task, *tasks]


def _reduce_update(tasks: list[Task], event: ChangeEvent) -> list[Task]:
    task = event.task
    if task is None:
        return tasks
    return [task if t.id == task.id else t for t in tasks]


def _reduce_delete(tasks: list[Task], event: ChangeEvent) -> list[Task]:
    task_id = event.task_id
    if task_id is None:
        return tasks
    return [t for t in tasks if t.id != task_id]


_REDUCERS: dict[ChangeKind, Callable[[list[Task], ChangeEvent], list[Task]]] = {
    ChangeKind.INSERT: _reduce_insert,
    ChangeKind.UPDATE: _reduce_update,
    ChangeKind.DELETE: _reduce_delete,
}


def apply_change(tasks: list[Task], event: ChangeEvent) -> list[Task]:
    """Return a new list with one change event applied. The input list is not modified."""
    return _REDUCERS[event.kind](tasks, event)


def _default_clock() -> datetime:
    return datetime.now(UTC)


def _new_task_id() -> str:
    return uuid.uuid4().hex


class TaskSync:
    def __init__(
        self,
        collection: RemoteTaskCollection,
        cache: KeyValueCache,
        channel: ChangeChannel | None = None,
        *,
        queue_max: int = 500,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._collection = collection
        self._cache = cache
        self._channel = channel
        self._queue_max = max(1, int(queue_max))
        self._clock = clock or _default_clock
        self._new_id = id_factory or _new_task_id

        # Re-entrant: an in-process channel delivers echoes while we are still inside a write.
        self._lock = threading.RLock()
        # One replay at a time keeps the queue strictly FIFO on the remote.
        self._drain_lock = threading.Lock()
        self._in_flight: RetryEntry | None = None
        self._owner_id: str | None = None
        self._tasks: list[Task] = []
        self._queue: list[RetryEntry] = []
        self._online = True

    # ---- read-only views ----

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def tasks(self) -> list[Task]:
        with self._lock:
            return list(self._tasks)

    @property
    def queue(self) -> list[RetryEntry]:
        with self._lock:
            return list(self._queue)

    @property
    def online(self) -> bool:
        return self._online

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            return self._find(task_id)

    # ---- internals ----

    def _find(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def _require_owner(self) -> str:
        if self._owner_id is None:
            raise RuntimeError("No user loaded. Call load(owner_id) first.")
        return self._owner_id

    def _persist(self) -> None:
        """Mirror tasks + queue into the cache (best-effort: a cache failure never blocks the UI)."""
        owner = self._owner_id
        if owner is None:
            return
        try:
            self._cache.set(snapshot_key(owner), encode_tasks(self._tasks, indent=None))
            self._cache.set(queue_key(owner), json.dumps([entry_to_dict(e) for e in self._queue]))
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to write local cache owner=%s", owner)

    def _restore_snapshot(self, owner_id: str) -> list[Task]:
        raw = self._cache.get(snapshot_key(owner_id))
        if raw is None:
            logger.info("No cached snapshot for owner=%s", owner_id)
            return []
        try:
            tasks = decode_tasks(raw, owner_id=owner_id)
        except FormatError:
            logger.exception("Cached snapshot is unreadable owner=%s; starting empty.", owner_id)
            return []
        logger.info("Loaded %d task(s) from cache owner=%s", len(tasks), owner_id)
        return tasks

    def _restore_queue(self, owner_id: str) -> list[RetryEntry]:
        raw = self._cache.get(queue_key(owner_id))
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Retry queue blob is unreadable owner=%s; discarding it.", owner_id)
            return []
        if not isinstance(items, list):
            logger.warning("Retry queue blob is not a list owner=%s; discarding it.", owner_id)
            return []

        out: list[RetryEntry] = []
        for item in items:
            try:
                out.append(entry_from_dict(item))
            except FormatError as e:
                logger.warning("Discarding unreadable queue entry owner=%s: %s", owner_id, e)
        if out:
            logger.info("Restored %d queued op(s) owner=%s", len(out), owner_id)
        return out[-self._queue_max :]

    def _pending_as_event(self, tasks: list[Task], entry: RetryEntry) -> ChangeEvent | None:
        """Translate a not-yet-confirmed write into the change it will cause remotely."""
        if entry.op is QueueOp.DELETE:
            return ChangeEvent(kind=ChangeKind.DELETE, old_id=entry.target_id)
        if entry.op is QueueOp.INSERT:
            return ChangeEvent(kind=ChangeKind.INSERT, task=task_from_row(entry.payload, owner_id=self._owner_id))

        current = next((t for t in tasks if t.id == entry.target_id), None)
        if current is None:
            return None
        merged = {**task_to_row(current), **entry.payload}
        return ChangeEvent(kind=ChangeKind.UPDATE, task=task_from_row(merged, owner_id=self._owner_id))

    def _overlay_pending(self, tasks: list[Task]) -> list[Task]:
        for entry in self._queue:
            try:
                event = self._pending_as_event(tasks, entry)
            except FormatError:
                logger.warning("Queued %s for %s cannot be applied locally", entry.op.value, entry.target_id)
                continue
            if event is not None:
                tasks = apply_change(tasks, event)
        return tasks

    def _compact_queue(self) -> None:
        """
        Fold queued writes per task id without changing what the replay does:
        an update is merged into the latest insert/update of the same id, and a
        delete makes earlier updates of that id moot. The entry being replayed
        right now is never touched.
        """
        out: list[RetryEntry] = []
        latest: dict[str, RetryEntry] = {}
        for entry in self._queue:
            prev = latest.get(entry.target_id)
            if (
                entry.op is QueueOp.UPDATE
                and prev is not None
                and prev is not self._in_flight
                and prev.op in (QueueOp.INSERT, QueueOp.UPDATE)
            ):
                prev.payload = {**prev.payload, **entry.payload}
                continue
            if entry.op is QueueOp.DELETE:
                out = [
                    e
                    for e in out
                    if e is self._in_flight or e.target_id != entry.target_id or e.op is not QueueOp.UPDATE
                ]
            out.append(entry)
            latest[entry.target_id] = entry

        if len(out) < len(self._queue):
            logger.info("Retry queue compacted %d -> %d", len(self._queue), len(out))
        self._queue = out

    def _enqueue(self, entry: RetryEntry) -> None:
        if not entry.enqueued_at:
            entry.enqueued_at = time.time()
        self._queue.append(entry)

        if len(self._queue) > self._queue_max:
            self._compact_queue()
        while len(self._queue) > self._queue_max:
            idx = 1 if self._queue[0] is self._in_flight else 0
            dropped = self._queue.pop(idx)
            logger.warning(
                "Retry queue full (%d); dropping oldest %s for %s",
                self._queue_max,
                dropped.op.value,
                dropped.target_id,
            )
        logger.info("Queued %s for %s (queue=%d)", entry.op.value, entry.target_id, len(self._queue))

    def _forget(self, entry: RetryEntry) -> None:
        for i, e in enumerate(self._queue):
            if e is entry:
                del self._queue[i]
                return

    def _send(self, entry: RetryEntry, *, idempotent: bool) -> None:
        if entry.op is QueueOp.INSERT:
            task = task_from_row(entry.payload, owner_id=self._owner_id)
            if idempotent:
                self._collection.upsert_task(task)
            else:
                self._collection.insert_task(task)
        elif entry.op is QueueOp.UPDATE:
            self._collection.update_task(entry.target_id, dict(entry.payload))
        else:
            self._collection.delete_task(entry.target_id)

    def _write_remote(self, entry: RetryEntry, *, idempotent: bool = False) -> None:
        # Remote order must equal local order: never overtake queued writes.
        if self._queue or not self._online:
            self._enqueue(entry)
            return
        try:
            self._send(entry, idempotent=idempotent)
        except NetworkError as e:
            logger.warning("Remote %s failed for %s: %s", entry.op.value, entry.target_id, e)
            self._online = False
            self._enqueue(entry)

    # ---- public API ----

    def load(self, owner_id: str) -> list[Task]:
        """
        Fetch all tasks of `owner_id` (newest first).

        On NetworkError fall back to the cached snapshot (empty if none).
        Writes still waiting in the persisted queue are re-applied on top of
        the remote list so that optimistic changes survive a restart.
        """
        if not owner_id:
            raise ValidationError("owner_id is required")

        with self._lock:
            self._owner_id = owner_id
            self._queue = self._restore_queue(owner_id)

            try:
                tasks = self._collection.list_tasks(owner_id)
            except NetworkError as e:
                logger.warning("Remote load failed owner=%s: %s; using cached snapshot", owner_id, e)
                self._online = False
                tasks = self._restore_snapshot(owner_id)
            else:
                self._online = True
                tasks = self._overlay_pending(tasks)
                logger.info("Loaded %d task(s) from remote owner=%s", len(tasks), owner_id)

            self._tasks = tasks
            self._persist()
            return list(self._tasks)

    def subscribe(self, owner_id: str, on_change: TasksCallback) -> Subscription:
        """
        Listen for remote changes of `owner_id`.

        Each event is folded into local state through apply_change() and
        `on_change` receives the resulting list. Call unsubscribe() on the
        returned handle to stop.
        """
        if self._channel is None:
            raise RuntimeError("No live change channel is configured.")

        def _listener(event: ChangeEvent) -> None:
            with self._lock:
                if self._owner_id != owner_id:
                    logger.debug("Ignoring %s event for inactive owner=%s", event.kind.value, owner_id)
                    return
                # Writes still queued are newer than anything the remote reports.
                self._tasks = self._overlay_pending(apply_change(self._tasks, event))
                self._persist()
                snapshot = list(self._tasks)
            on_change(snapshot)

        sub = self._channel.subscribe(owner_id, _listener)
        logger.info("Subscribed to live changes owner=%s", owner_id)
        return sub

    def add(
        self,
        title: str,
        category: TaskCategory | str,
        *,
        notes: str | None = None,
        due_date: date | None = None,
    ) -> Task:
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError("Task title must not be empty.")
        cat = category if isinstance(category, TaskCategory) else TaskCategory.parse(category)
        if cat is None:
            raise ValidationError(f"Unknown category {category!r}; use 'daily' or 'weekly'.")

        with self._lock:
            owner = self._require_owner()
            task = Task(
                id=self._new_id(),
                owner_id=owner,
                title=clean_title,
                category=cat,
                created_at=self._clock(),
                notes=(notes or "").strip() or None,
                due_date=due_date,
            )
            self._tasks = apply_change(self._tasks, ChangeEvent(kind=ChangeKind.INSERT, task=task))
            self._persist()
            logger.debug("Task added locally id=%s category=%s", task.id, cat.value)

            self._write_remote(RetryEntry(op=QueueOp.INSERT, target_id=task.id, payload=task_to_row(task)))
            self._persist()
            return task

    def toggle(self, task_id: str) -> Task | None:
        """Flip completion of a local task. Unknown ids are a silent no-op (returns None)."""
        with self._lock:
            current = self._find(task_id)
            if current is None:
                logger.debug("toggle: unknown task id=%s", task_id)
                return None

            if current.completed:
                updated = replace(current, completed=False, completed_at=None)
            else:
                updated = replace(current, completed=True, completed_at=self._clock())

            self._tasks = apply_change(self._tasks, ChangeEvent(kind=ChangeKind.UPDATE, task=updated))
            self._persist()

            fields: dict[str, Any] = {
                "completed": updated.completed,
                "completed_at": format_ts(updated.completed_at) if updated.completed_at else None,
            }
            self._write_remote(RetryEntry(op=QueueOp.UPDATE, target_id=task_id, payload=fields))
            self._persist()
            return updated

    def remove(self, task_id: str) -> None:
        with self._lock:
            self._require_owner()
            self._tasks = apply_change(self._tasks, ChangeEvent(kind=ChangeKind.DELETE, old_id=task_id))
            self._persist()
            self._write_remote(RetryEntry(op=QueueOp.DELETE, target_id=task_id))
            self._persist()

    def drain_queue(self) -> bool:
        """
        Replay queued writes in enqueue order.

        Returns True when the queue is empty afterwards. On the first
        NetworkError replay stops and the failing entry plus everything after
        it stays queued. Entries whose payload cannot be decoded are dropped.

        The state lock is released around each remote call, so local
        mutations made meanwhile return at once and are queued behind.
        """
        with self._drain_lock:
            with self._lock:
                total = len(self._queue)
            if total:
                logger.info("Replaying %d queued op(s)", total)

            replayed = 0
            while True:
                with self._lock:
                    if not self._queue:
                        self._online = True
                        if replayed:
                            self._persist()
                        break
                    entry = self._queue[0]
                    self._in_flight = entry

                try:
                    # Replayed inserts may already have landed before the failure was seen.
                    self._send(entry, idempotent=True)
                except FormatError as e:
                    logger.warning("Dropping unreadable queued %s for %s: %s", entry.op.value, entry.target_id, e)
                except NetworkError as e:
                    with self._lock:
                        self._in_flight = None
                        self._online = False
                        logger.warning(
                            "Replay halted at %s for %s: %s (%d left)",
                            entry.op.value,
                            entry.target_id,
                            e,
                            len(self._queue),
                        )
                        self._persist()
                    return False

                with self._lock:
                    self._in_flight = None
                    self._forget(entry)
                    replayed += 1
                    self._persist()

            if replayed:
                logger.info("Retry queue drained (%d op(s))", replayed)
            return True

    def export_snapshot(self) -> str:
        with self._lock:
            return encode_tasks(self._tasks)

    def import_snapshot(self, raw: str) -> list[Task]:
        """
        Replace local state with a backup and upsert every record remotely.

        Decoding is all-or-nothing: FormatError leaves state untouched.
        Records are re-owned to the loaded owner.
        """
        with self._lock:
            owner = self._require_owner()
            tasks = decode_tasks(raw, owner_id=owner, fallback_created_at=self._clock())

            self._tasks = list(tasks)
            self._persist()
            logger.info("Imported %d task(s) owner=%s", len(tasks), owner)

            for t in tasks:
                self._write_remote(
                    RetryEntry(op=QueueOp.INSERT, target_id=t.id, payload=task_to_row(t)),
                    idempotent=True,
                )
            self._persist()
            return list(self._tasks)
