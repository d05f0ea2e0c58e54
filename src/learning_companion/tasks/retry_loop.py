# src/learning_companion/tasks/retry_loop.py

from __future__ import annotations

"""
Background retry loop.

A small polling loop that replays the sync retry queue once connectivity is
back. Connectivity is not checked separately: a replay attempt that succeeds
is the signal.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from .task_sync import TaskSync

logger = logging.getLogger(__name__)


async def run_retry_loop(
        sync: TaskSync,
        *,
        interval_seconds: float = 15.0,
        max_interval_seconds: float = 300.0,
) -> None:
    """
    Every interval_seconds:
    - skip if the queue is empty
    - otherwise drain_queue() (in a worker thread, it does blocking I/O)
    - on a halted replay, back off (doubling, capped at max_interval_seconds)
    - on success, return to the base interval

    To stop the loop, cancel the coroutine/task.
    """
    base_s = max(0.01, float(interval_seconds))
    cap_s = max(base_s, float(max_interval_seconds))
    sleep_s = base_s

    while True:
        if sync.queue:
            try:
                drained = await asyncio.to_thread(sync.drain_queue)
            except Exception:
                logger.exception("drain_queue crashed")
                drained = False

            if drained:
                logger.info("Retry loop: queue drained")
                sleep_s = base_s
            else:
                sleep_s = min(cap_s, sleep_s * 2)
                logger.info("Retry loop: replay halted, next attempt in %.1fs", sleep_s)
        else:
            sleep_s = base_s

        await asyncio.sleep(sleep_s)


@dataclass(slots=True)
class RetryLoopRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except RuntimeError:
            logger.debug("Retry loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_retry_loop_in_background(sync: TaskSync, *, interval_seconds: float) -> RetryLoopRunner | None:
    """
    Start the retry loop in a background thread with its own event loop
    (the console REPL blocks the main thread on input()).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        task = loop.create_task(run_retry_loop(sync, interval_seconds=interval_seconds))

        holder["loop"] = loop
        holder["task"] = task
        ready.set()

        try:
            with contextlib.suppress(asyncio.CancelledError):
                loop.run_until_complete(task)
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="lc-retry-loop", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Retry loop thread did not initialize properly.")
        return None

    logger.info("Retry loop started (interval=%.1fs).", interval_seconds)
    return RetryLoopRunner(thread=t, loop=loop, task=task)
