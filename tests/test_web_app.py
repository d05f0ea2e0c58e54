# tests/test_web_app.py

from __future__ import annotations

from dataclasses import replace

import pytest
from flask.testing import FlaskClient

from learning_companion.core.state import AppState
from learning_companion.share.share_token import ShareTokenService
from learning_companion.tasks.task_sync import TaskSync
from learning_companion.web.app import INVALID_LINK, create_app

from .conftest import ACCESS_TOKEN, OWNER
from .fakes import FakeClock, FakeIdentity, FakeRemoteCollection


@pytest.fixture()
def client(state: AppState) -> FlaskClient:
    app = create_app(state)
    app.config["TESTING"] = True
    return app.test_client()


def _token_from_url(url: str) -> str:
    return url.split("token=", 1)[1]


def test_share_token_requires_access_token(client: FlaskClient) -> None:
    resp = client.post("/share-token")
    assert resp.status_code == 401
    assert "error" in resp.get_json()


def test_share_token_rejects_unknown_access_token(client: FlaskClient) -> None:
    resp = client.post("/share-token", query_string={"access_token": "not-a-session"})
    assert resp.status_code == 401


def test_share_token_issues_verifiable_link(client: FlaskClient, share_tokens: ShareTokenService) -> None:
    resp = client.post("/share-token", query_string={"access_token": ACCESS_TOKEN})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["expiresIn"] == "30 days"
    assert "30 days" in body["message"]
    assert body["shareUrl"].startswith("https://companion.example/share?token=")
    assert share_tokens.verify(_token_from_url(body["shareUrl"])) == OWNER


def test_share_token_reports_identity_outage(state: AppState) -> None:
    state.identity = FakeIdentity({ACCESS_TOKEN: OWNER}, fail=True)
    client = create_app(state).test_client()

    resp = client.post("/share-token", query_string={"access_token": ACCESS_TOKEN})
    assert resp.status_code == 503


def test_share_token_unavailable_without_secret(state: AppState) -> None:
    client = create_app(replace(state, share_tokens=None)).test_client()

    resp = client.post("/share-token", query_string={"access_token": ACCESS_TOKEN})
    assert resp.status_code == 503


def test_verify_returns_owner(client: FlaskClient, share_tokens: ShareTokenService) -> None:
    token = share_tokens.issue(OWNER)

    resp = client.post("/verify-share-token", json={"token": token})

    assert resp.status_code == 200
    assert resp.get_json() == {"userId": OWNER}


@pytest.mark.parametrize("body", [{}, {"token": ""}, {"token": 42}, ["token"]])
def test_verify_requires_token(client: FlaskClient, body: object) -> None:
    resp = client.post("/verify-share-token", json=body)
    assert resp.status_code == 400


def test_verify_without_json_body_is_400(client: FlaskClient) -> None:
    resp = client.post("/verify-share-token", data="token=abc", content_type="text/plain")
    assert resp.status_code == 400


def test_verify_rejects_garbage(client: FlaskClient) -> None:
    resp = client.post("/verify-share-token", json={"token": "garbage"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": INVALID_LINK}


def test_verify_rejects_expired_token(client: FlaskClient, share_tokens: ShareTokenService, clock: FakeClock) -> None:
    token = share_tokens.issue(OWNER)
    clock.advance(days=31)

    resp = client.post("/verify-share-token", json={"token": token})

    assert resp.status_code == 401
    assert resp.get_json() == {"error": INVALID_LINK}


def test_shared_view_lists_tasks_and_stats(
    client: FlaskClient, sync: TaskSync, share_tokens: ShareTokenService
) -> None:
    task = sync.add("Read 10 pages", "daily")
    sync.toggle(task.id)
    sync.add("Flashcards", "weekly")

    resp = client.get("/share", query_string={"token": share_tokens.issue(OWNER)})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["userId"] == OWNER
    assert {t["title"] for t in body["tasks"]} == {"Read 10 pages", "Flashcards"}
    assert body["stats"]["total"] == 2
    assert body["stats"]["completed"] == 1
    assert body["stats"]["completionRate"] == 50
    assert len(body["stats"]["week"]) == 7
    assert set(body["stats"]["week"][0]) == {"day", "label", "count"}


def test_shared_view_requires_token(client: FlaskClient) -> None:
    assert client.get("/share").status_code == 400


def test_shared_view_rejects_invalid_token(client: FlaskClient) -> None:
    assert client.get("/share", query_string={"token": "garbage"}).status_code == 401


def test_shared_view_reports_remote_outage(
    client: FlaskClient, remote: FakeRemoteCollection, share_tokens: ShareTokenService
) -> None:
    token = share_tokens.issue(OWNER)
    remote.fail = True

    assert client.get("/share", query_string={"token": token}).status_code == 503
