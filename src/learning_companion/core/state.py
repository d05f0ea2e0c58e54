# src/learning_companion/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .ports import IdentityProvider, RemoteTaskCollection

if TYPE_CHECKING:
    from ..share.share_token import ShareTokenService
    from ..tasks.task_sync import TaskSync


@dataclass
class AppState:
    """
    Everything the front ends (console, HTTP) need, wired once in bootstrap.

    share_tokens is None when no LC_SHARE_SECRET is configured; sharing is
    then unavailable but the tracker still works.
    """

    settings: Any
    sync: TaskSync
    collection: RemoteTaskCollection
    identity: IdentityProvider
    share_tokens: ShareTokenService | None = None

