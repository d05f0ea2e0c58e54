# tests/test_retry_loop.py

from __future__ import annotations

import asyncio
import contextlib

import pytest

from learning_companion.tasks.retry_loop import run_retry_loop, start_retry_loop_in_background
from learning_companion.tasks.task_sync import TaskSync

from .fakes import FakeRemoteCollection


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_retry_loop_drains_queue_when_remote_recovers(
    sync: TaskSync, remote: FakeRemoteCollection
) -> None:
    remote.fail = True
    task = sync.add("Read", "daily")
    assert len(sync.queue) == 1

    t = asyncio.create_task(run_retry_loop(sync, interval_seconds=0.01, max_interval_seconds=0.02))
    try:
        await asyncio.sleep(0.05)
        assert len(sync.queue) == 1

        remote.fail = False
        await _wait_until(lambda: not sync.queue)
        assert task.id in remote.rows
        assert sync.online
    finally:
        t.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await t


@pytest.mark.asyncio
async def test_retry_loop_idles_on_empty_queue(sync: TaskSync, remote: FakeRemoteCollection) -> None:
    t = asyncio.create_task(run_retry_loop(sync, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    t.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await t

    assert remote.calls == []


def test_background_runner_starts_and_stops(sync: TaskSync, remote: FakeRemoteCollection) -> None:
    remote.fail = True
    sync.add("Read", "daily")
    remote.fail = False

    runner = start_retry_loop_in_background(sync, interval_seconds=0.01)
    assert runner is not None
    try:
        for _ in range(200):
            if not sync.queue:
                break
            runner.thread.join(timeout=0.01)
        assert sync.queue == []
    finally:
        runner.stop()
        runner.join(timeout=2.0)

    assert not runner.thread.is_alive()
