# src/learning_companion/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (remote collection, live
  channel, cache, identity, share tokens).
"""

from __future__ import annotations

import logging
from datetime import timedelta

from ..auth.identity import LocalIdentityProvider, SupabaseIdentityProvider
from ..config import get_settings
from ..core.ports import ChangeChannel, IdentityProvider, RemoteTaskCollection
from ..core.state import AppState
from ..errors import NetworkError
from ..share.share_token import ShareTokenService
from ..tasks.rest_collection import RestTaskCollection
from ..tasks.task_cache import JsonFileCache
from ..tasks.task_channel import ChangeHub, PollingChangeChannel
from ..tasks.task_store import SqliteTaskCollection
from ..tasks.task_sync import TaskSync

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.cache_path.parent.mkdir(parents=True, exist_ok=True)


def _build_backend(settings) -> tuple[RemoteTaskCollection, ChangeChannel, IdentityProvider]:
    backend = str(getattr(settings, "remote_backend", "sqlite")).lower()

    if backend == "rest":
        rest = RestTaskCollection(
            settings.supabase_url,
            settings.supabase_key or "",
            access_token=settings.access_token,
            timeout_seconds=settings.http_timeout_seconds,
        )
        identity = SupabaseIdentityProvider(
            settings.supabase_url,
            settings.supabase_key or "",
            access_token=settings.access_token,
            timeout_seconds=settings.http_timeout_seconds,
        )
        channel = PollingChangeChannel(rest, interval_seconds=settings.poll_interval_seconds)
        logger.info("Remote backend: REST %s", settings.supabase_url)
        return rest, channel, identity

    if backend != "sqlite":
        logger.warning("Unknown LC_REMOTE_BACKEND=%r; using sqlite", backend)

    hub = ChangeHub()
    store = SqliteTaskCollection(settings.tasks_db_path, hub=hub)
    identity = LocalIdentityProvider(settings.user_id, settings.access_token)
    logger.info("Remote backend: SQLite %s", settings.tasks_db_path)
    return store, hub, identity


def _build_share_tokens(settings) -> ShareTokenService | None:
    try:
        return ShareTokenService(
            settings.share_secret,
            ttl=timedelta(days=settings.share_ttl_days),
            base_url=settings.public_base_url,
        )
    except ValueError as e:
        logger.warning("Sharing disabled: %s", e)
        return None


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    collection, channel, identity = _build_backend(settings)
    sync = TaskSync(
        collection,
        JsonFileCache(settings.cache_path),
        channel,
        queue_max=settings.retry_queue_max,
    )

    return AppState(
        settings=settings,
        sync=sync,
        collection=collection,
        identity=identity,
        share_tokens=_build_share_tokens(settings),
    )


def resolve_owner(state: AppState) -> str:
    """Signed-in user, falling back to the configured local user id."""
    try:
        user_id = state.identity.get_current_user()
    except NetworkError:
        logger.exception("Identity provider lookup failed; using configured user id.")
        user_id = None
    return user_id or state.settings.user_id
