# src/learning_companion/web/app.py

from __future__ import annotations

"""
HTTP endpoints for share links.

- POST /share-token?access_token=...  -> {shareUrl, expiresIn, message}
- POST /verify-share-token {token}    -> {userId}
- GET  /share?token=...               -> read-only progress view (tasks + stats)

Verification failures are reported as "invalid or expired" without saying which.
"""

import logging
import threading
from dataclasses import asdict

from flask import Flask, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from ..core.state import AppState
from ..errors import InvalidTokenError, NetworkError
from ..stats.streaks import summarize
from ..tasks.task_codec import task_to_row

logger = logging.getLogger(__name__)

INVALID_LINK = "Invalid or expired share link. Please request a new one."


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_app(state: AppState) -> Flask:
    app = Flask("learning_companion")

    @app.post("/share-token")
    def issue_share_token():
        access_token = (request.args.get("access_token") or "").strip()
        if not access_token:
            logger.info("Share token request without access token")
            return _error("Unauthorized - No token provided", 401)

        try:
            user_id = state.identity.user_for_access_token(access_token)
        except NetworkError:
            logger.exception("Identity provider unavailable")
            return _error("Identity provider unavailable", 503)

        if not user_id:
            return _error("Unauthorized - Invalid token", 401)

        tokens = state.share_tokens
        if tokens is None:
            logger.error("Share token requested but LC_SHARE_SECRET is not configured")
            return _error("Sharing is not configured", 503)

        share_url = tokens.share_url(tokens.issue(user_id))
        expires_in = tokens.expires_in_text()
        return jsonify(
            {
                "shareUrl": share_url,
                "expiresIn": expires_in,
                "message": f"Share link created! Expires in {expires_in}.",
            }
        )

    @app.post("/verify-share-token")
    def verify_share_token():
        body = request.get_json(silent=True)
        token = body.get("token") if isinstance(body, dict) else None
        if not token or not isinstance(token, str):
            return _error("No token provided", 400)

        tokens = state.share_tokens
        if tokens is None:
            return _error(INVALID_LINK, 401)
        try:
            user_id = tokens.verify(token)
        except InvalidTokenError:
            return _error(INVALID_LINK, 401)
        return jsonify({"userId": user_id})

    @app.get("/share")
    def shared_progress():
        token = (request.args.get("token") or "").strip()
        if not token:
            return _error("Invalid share link. Missing token parameter.", 400)

        tokens = state.share_tokens
        if tokens is None:
            return _error(INVALID_LINK, 401)
        try:
            user_id = tokens.verify(token)
        except InvalidTokenError:
            return _error(INVALID_LINK, 401)

        try:
            tasks = state.collection.list_tasks(user_id)
        except NetworkError:
            logger.exception("Failed to load shared tasks owner=%s", user_id)
            return _error("Failed to load progress", 503)

        stats = summarize(tasks)
        return jsonify(
            {
                "userId": user_id,
                "tasks": [task_to_row(t) for t in tasks],
                "stats": {
                    "total": stats.total,
                    "completed": stats.completed,
                    "completionRate": stats.rate,
                    "streak": stats.streak,
                    "week": [
                        {**asdict(d), "day": d.day.isoformat()} for d in stats.week
                    ],
                },
            }
        )

    return app


class WebServerRunner:
    """Werkzeug server in a background thread (the console REPL owns the main thread)."""

    def __init__(self, server: BaseWSGIServer) -> None:
        self._server = server
        self._thread = threading.Thread(target=server.serve_forever, name="lc-web", daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout=timeout)


def start_web_in_background(state: AppState, *, host: str, port: int) -> WebServerRunner:
    server = make_server(host, port, create_app(state), threaded=True)
    runner = WebServerRunner(server)
    runner.start()
    logger.info("HTTP server listening on http://%s:%s", host, runner.port)
    return runner
