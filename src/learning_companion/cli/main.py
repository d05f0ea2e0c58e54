# src/learning_companion/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the user's tasks, then starts:
- live change subscription + background retry loop,
- the HTTP share endpoints in a background thread (optional),
- console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, resolve_owner
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.ports import Subscription
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..tasks.retry_loop import RetryLoopRunner, start_retry_loop_in_background
from ..tasks.task_models import Task
from ..web.app import WebServerRunner, start_web_in_background

logger = logging.getLogger(__name__)


def _shutdown(
    state: AppState,
    subscription: Subscription | None,
    retry_runner: RetryLoopRunner | None,
    web_runner: WebServerRunner | None,
) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if subscription is not None:
        try:
            subscription.unsubscribe()
        except Exception:
            logger.debug("Unsubscribe failed.", exc_info=True)

    if retry_runner is not None:
        retry_runner.stop()
        retry_runner.join(timeout=5.0)

    if web_runner is not None:
        try:
            web_runner.stop()
            web_runner.join(timeout=5.0)
        except Exception:
            logger.debug("HTTP server shutdown failed.", exc_info=True)

    # Last chance to flush optimistic writes.
    try:
        if state.sync.queue and not state.sync.drain_queue():
            logger.info("%d op(s) still pending; they will be replayed on next start.", len(state.sync.queue))
    except Exception:
        logger.exception("Final queue drain failed.")

    close = getattr(state.collection, "close", None)
    if callable(close):
        try:
            close()
        except Exception:
            logger.debug("Collection close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    owner_id = resolve_owner(state)
    tasks = state.sync.load(owner_id)
    logger.info("User %s: %d task(s), %d pending op(s)", owner_id, len(tasks), len(state.sync.queue))

    def _on_change(current: list[Task]) -> None:
        logger.debug("Live update: %d task(s)", len(current))

    subscription: Subscription | None = None
    try:
        subscription = state.sync.subscribe(owner_id, _on_change)
    except RuntimeError:
        logger.warning("Live updates unavailable.", exc_info=True)

    retry_runner = start_retry_loop_in_background(
        state.sync, interval_seconds=settings.retry_interval_seconds
    )

    web_runner: WebServerRunner | None = None
    if settings.web_enabled:
        web_runner = start_web_in_background(state, host=settings.web_host, port=settings.web_port)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    # The console keeps the default SIGINT so Ctrl+C still breaks out of input().
    try:
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background services only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        _shutdown(state, subscription, retry_runner, web_runner)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
