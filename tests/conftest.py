# tests/conftest.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from learning_companion.core.state import AppState
from learning_companion.share.share_token import ShareTokenService
from learning_companion.tasks.task_cache import MemoryCache
from learning_companion.tasks.task_sync import TaskSync

from .fakes import FakeChannel, FakeClock, FakeIdentity, FakeRemoteCollection

OWNER = "user-1"
ACCESS_TOKEN = "access-token-user-1"
SHARE_SECRET = "test-share-secret-0123456789abcdef0123456789"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="learning-companion-test",
        remote_backend="sqlite",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        cache_path=tmp_path / "cache.json",
        user_id=OWNER,
        access_token=ACCESS_TOKEN,
        share_secret=SHARE_SECRET,
        share_ttl_days=30,
        public_base_url="https://companion.example",
        retry_queue_max=50,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def remote() -> FakeRemoteCollection:
    return FakeRemoteCollection()


@pytest.fixture()
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture()
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def sync(remote: FakeRemoteCollection, cache: MemoryCache, channel: FakeChannel, clock: FakeClock) -> TaskSync:
    """TaskSync over in-memory fakes, already loaded for OWNER."""
    s = TaskSync(remote, cache, channel, queue_max=50, clock=clock)
    s.load(OWNER)
    return s


@pytest.fixture()
def share_tokens(clock: FakeClock) -> ShareTokenService:
    return ShareTokenService(
        SHARE_SECRET,
        ttl=timedelta(days=30),
        base_url="https://companion.example",
        clock=clock,
    )


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    sync: TaskSync,
    remote: FakeRemoteCollection,
    share_tokens: ShareTokenService,
) -> AppState:
    """AppState wired with deterministic fakes."""
    return AppState(
        settings=settings,
        sync=sync,
        collection=remote,
        identity=FakeIdentity({ACCESS_TOKEN: OWNER}),
        share_tokens=share_tokens,
    )
