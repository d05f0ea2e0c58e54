# src/learning_companion/auth/identity.py

from __future__ import annotations

"""
Identity provider adapters.

Authentication itself is delegated: these classes only answer "who is signed
in here" (client side) and "whose access token is this" (server side).
"""

import hmac
import logging

import httpx

from ..errors import NetworkError

logger = logging.getLogger(__name__)


class LocalIdentityProvider:
    """
    Single configured user (local runs, tests).

    With no access token configured, every bearer token is rejected.
    """

    def __init__(self, user_id: str, access_token: str | None = None) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self._user_id = user_id
        self._access_token = access_token

    def get_current_user(self) -> str | None:
        return self._user_id

    def get_access_token(self) -> str | None:
        return self._access_token

    def user_for_access_token(self, access_token: str) -> str | None:
        if not self._access_token or not access_token:
            return None
        if hmac.compare_digest(access_token.encode("utf-8"), self._access_token.encode("utf-8")):
            return self._user_id
        return None


class SupabaseIdentityProvider:
    """Resolves access tokens with GET {base_url}/auth/v1/user."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        user_id: str | None = None,
        access_token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url.strip():
            raise RuntimeError("Identity URL is not set. Set LC_SUPABASE_URL in your .env.")
        if not api_key or not api_key.strip():
            raise RuntimeError("Identity API key is not set. Set LC_SUPABASE_KEY in your .env.")
        self._url = base_url.rstrip("/") + "/auth/v1/user"
        self._api_key = api_key
        self._user_id = user_id
        self._access_token = access_token
        self._timeout = float(timeout_seconds)
        self._transport = transport

    def get_current_user(self) -> str | None:
        if self._user_id is None and self._access_token:
            self._user_id = self.user_for_access_token(self._access_token)
        return self._user_id

    def get_access_token(self) -> str | None:
        return self._access_token

    def user_for_access_token(self, access_token: str) -> str | None:
        if not access_token:
            return None
        headers = {"apikey": self._api_key, "Authorization": f"Bearer {access_token}"}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.get(self._url, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"identity provider unreachable: {e.__class__.__name__}: {e}") from e

        if resp.status_code in (401, 403):
            logger.info("Access token rejected by identity provider (HTTP %s)", resp.status_code)
            return None
        if resp.status_code >= 400:
            raise NetworkError(f"identity provider -> HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError("identity provider returned invalid JSON") from e
        user_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(user_id, str) or not user_id:
            logger.warning("Identity provider response has no user id")
            return None
        return user_id
