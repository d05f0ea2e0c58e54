# src/learning_companion/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync component, the web app and the CLI depend on Protocols instead of
concrete implementations. This keeps the remote backend, the live channel and
the identity provider swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import Any, Protocol

from ..tasks.task_models import ChangeEvent, Task

ChangeListener = Callable[[ChangeEvent], None]
TasksCallback = Callable[[list[Task]], None]


class RemoteTaskCollection(Protocol):
    """
    Relational task table keyed by task id.

    Every method may raise NetworkError; nothing else is expected to escape.
    """

    def list_tasks(self, owner_id: str) -> list[Task]: ...
    def insert_task(self, task: Task) -> None: ...
    def update_task(self, task_id: str, fields: dict[str, Any]) -> None: ...
    def delete_task(self, task_id: str) -> None: ...
    def upsert_task(self, task: Task) -> None: ...


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class ChangeChannel(Protocol):
    """Live channel delivering row-level changes for one owner."""

    def subscribe(self, owner_id: str, listener: ChangeListener) -> Subscription: ...


class KeyValueCache(Protocol):
    """Flat key-value slot store for offline snapshots."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class IdentityProvider(Protocol):
    """
    External identity provider.

    Client side: who is signed in and which bearer token they hold.
    Server side: resolve a bearer access token to a user id (None if rejected).
    """

    def get_current_user(self) -> str | None: ...
    def get_access_token(self) -> str | None: ...
    def user_for_access_token(self, access_token: str) -> str | None: ...
