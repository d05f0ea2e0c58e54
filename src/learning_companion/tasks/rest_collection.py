# src/learning_companion/tasks/rest_collection.py

from __future__ import annotations

"""
Remote task collection over a PostgREST endpoint (Supabase `tasks` table).

Every transport problem and every non-2xx response surfaces as NetworkError,
which the sync layer turns into a queued retry. The client is created lazily
so that no credentials are needed at import time.
"""

import logging
from typing import Any

import httpx

from ..errors import FormatError, NetworkError
from .task_codec import task_from_row, task_to_row
from .task_models import Task

logger = logging.getLogger(__name__)

TABLE = "tasks"


def _make_timeout(timeout_s: float) -> httpx.Timeout:
    connect_s = min(5.0, timeout_s)
    return httpx.Timeout(connect=connect_s, read=timeout_s, write=timeout_s, pool=connect_s)


class RestTaskCollection:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url.strip():
            raise RuntimeError("Remote URL is not set. Set LC_SUPABASE_URL in your .env.")
        if not api_key or not api_key.strip():
            raise RuntimeError("Remote API key is not set. Set LC_SUPABASE_KEY in your .env.")

        self._base_url = base_url.rstrip("/") + "/rest/v1"
        self._api_key = api_key
        self._access_token = access_token
        self._timeout = _make_timeout(float(timeout_seconds))
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        headers = {
            "apikey": self._api_key,
            # Row-level security evaluates the user's JWT; fall back to the API key for service use.
            "Authorization": f"Bearer {self._access_token or self._api_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _request(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self._get_client().request(method, f"/{TABLE}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} /{TABLE} failed: {e.__class__.__name__}: {e}") from e

        if resp.status_code >= 400:
            detail = resp.text[:200]
            raise NetworkError(f"{method} /{TABLE} -> HTTP {resp.status_code}: {detail}")
        return resp

    # ---- RemoteTaskCollection ----

    def list_tasks(self, owner_id: str) -> list[Task]:
        resp = self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{owner_id}", "order": "created_at.desc"},
        )
        try:
            rows = resp.json()
        except ValueError as e:
            raise NetworkError(f"GET /{TABLE} returned invalid JSON") from e
        if not isinstance(rows, list):
            raise NetworkError(f"GET /{TABLE} returned {type(rows).__name__}, expected a list")

        out: list[Task] = []
        for row in rows:
            try:
                out.append(task_from_row(row))
            except FormatError:
                logger.exception("Skipping malformed remote row: %r", row)
        return out

    def insert_task(self, task: Task) -> None:
        self._request("POST", json=task_to_row(task), prefer="return=minimal")
        logger.debug("Remote insert id=%s", task.id)

    def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        self._request("PATCH", params={"id": f"eq.{task_id}"}, json=fields, prefer="return=minimal")
        logger.debug("Remote update id=%s cols=%s", task_id, sorted(fields))

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", params={"id": f"eq.{task_id}"}, prefer="return=minimal")
        logger.debug("Remote delete id=%s", task_id)

    def upsert_task(self, task: Task) -> None:
        self._request(
            "POST",
            params={"on_conflict": "id"},
            json=task_to_row(task),
            prefer="resolution=merge-duplicates,return=minimal",
        )
        logger.debug("Remote upsert id=%s", task.id)
