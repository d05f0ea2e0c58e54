# src/learning_companion/tasks/task_channel.py

from __future__ import annotations

"""
Live change channels.

- ChangeHub: in-process pub/sub. Writers (SqliteTaskCollection) publish,
  subscribers scoped to an owner receive events on the publisher's thread.
- PollingChangeChannel: for collections without push support. A background
  thread re-reads the owner's rows every interval and emits the difference.
"""

import logging
import threading
from dataclasses import dataclass, field

from ..core.ports import ChangeListener, RemoteTaskCollection
from ..errors import NetworkError
from .task_models import ChangeEvent, ChangeKind, Task

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class HubSubscription:
    hub: ChangeHub
    owner_id: str
    listener: ChangeListener
    active: bool = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.hub._remove(self)


@dataclass(slots=True)
class ChangeHub:
    _subs: list[HubSubscription] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def subscribe(self, owner_id: str, listener: ChangeListener) -> HubSubscription:
        sub = HubSubscription(hub=self, owner_id=owner_id, listener=listener)
        with self._lock:
            self._subs.append(sub)
        logger.debug("ChangeHub subscribe owner=%s total=%d", owner_id, len(self._subs))
        return sub

    def _remove(self, sub: HubSubscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)
        logger.debug("ChangeHub unsubscribe owner=%s", sub.owner_id)

    def publish(self, owner_id: str, event: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subs if s.owner_id == owner_id and s.active]
        for sub in targets:
            try:
                sub.listener(event)
            except Exception:
                # Keep delivering to the remaining listeners.
                logger.exception("Change listener failed owner=%s kind=%s", owner_id, event.kind.value)


def diff_snapshots(before: dict[str, Task], after: list[Task]) -> list[ChangeEvent]:
    """
    Events that turn `before` into `after`.

    Inserts are emitted oldest first so that prepending them reproduces
    newest-first order.
    """
    events: list[ChangeEvent] = []
    after_ids = {t.id for t in after}

    for task in reversed(after):
        prev = before.get(task.id)
        if prev is None:
            events.append(ChangeEvent(kind=ChangeKind.INSERT, task=task))
        elif prev != task:
            events.append(ChangeEvent(kind=ChangeKind.UPDATE, task=task))

    for task_id in before:
        if task_id not in after_ids:
            events.append(ChangeEvent(kind=ChangeKind.DELETE, old_id=task_id))
    return events


class PollingSubscription:
    def __init__(
        self,
        collection: RemoteTaskCollection,
        owner_id: str,
        listener: ChangeListener,
        interval_seconds: float,
    ) -> None:
        self._collection = collection
        self._owner_id = owner_id
        self._listener = listener
        self._interval = max(0.05, float(interval_seconds))
        self._stop = threading.Event()
        self._known: dict[str, Task] | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"lc-poll-{owner_id}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def poll_once(self) -> list[ChangeEvent]:
        """Fetch once and deliver the difference. The first poll only records a baseline."""
        try:
            rows = self._collection.list_tasks(self._owner_id)
        except NetworkError as e:
            logger.info("Polling channel fetch failed owner=%s: %s", self._owner_id, e)
            return []

        if self._known is None:
            self._known = {t.id: t for t in rows}
            return []

        events = diff_snapshots(self._known, rows)
        self._known = {t.id: t for t in rows}
        for event in events:
            if self._stop.is_set():
                break
            try:
                self._listener(event)
            except Exception:
                logger.exception("Change listener failed owner=%s kind=%s", self._owner_id, event.kind.value)
        return events

    def _run(self) -> None:
        logger.info("Polling channel started owner=%s interval=%.1fs", self._owner_id, self._interval)
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self._interval)
        logger.info("Polling channel stopped owner=%s", self._owner_id)

    def unsubscribe(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=5.0)


class PollingChangeChannel:
    def __init__(self, collection: RemoteTaskCollection, *, interval_seconds: float = 5.0) -> None:
        self._collection = collection
        self._interval = interval_seconds

    def subscribe(self, owner_id: str, listener: ChangeListener) -> PollingSubscription:
        sub = PollingSubscription(self._collection, owner_id, listener, self._interval)
        sub.start()
        return sub
