# src/learning_companion/share/share_token.py

from __future__ import annotations

"""
Share tokens: a signed, expiring bearer capability for one owner's read-only view.

Token = HS256 JWS with claims {userId, iat, exp}. There is no revocation list;
a leaked link stays valid until exp. The signing key is process configuration
(LC_SHARE_SECRET) and is never compiled into the code.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

from jose import JWTError, jwt

from ..errors import InvalidTokenError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_TTL = timedelta(days=30)


def _default_clock() -> datetime:
    return datetime.now(UTC)


class ShareTokenService:
    def __init__(
        self,
        secret: str | None,
        *,
        ttl: timedelta = DEFAULT_TTL,
        base_url: str = "http://localhost:3000",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret or not secret.strip():
            raise ValueError("Share secret is not set. Set LC_SHARE_SECRET in your .env.")
        if len(secret) < 32:
            logger.warning("LC_SHARE_SECRET is shorter than 32 characters; use a longer random value.")
        self._secret = secret
        self._ttl = ttl
        self._base_url = base_url.rstrip("/")
        self._clock = clock or _default_clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def expires_in_text(self) -> str:
        days = self._ttl.days
        if days >= 1 and self._ttl == timedelta(days=days):
            return f"{days} day" if days == 1 else f"{days} days"
        return f"{int(self._ttl.total_seconds())} seconds"

    def issue(self, owner_id: str) -> str:
        if not owner_id:
            raise ValueError("owner_id is required")
        issued_at = self._clock()
        claims = {
            "userId": owner_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        token = jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        logger.info("Share token issued owner=%s ttl=%s", owner_id, self.expires_in_text())
        return token

    def verify(self, token: str) -> str:
        """
        Return the owner id of a valid, unexpired token.

        Raises InvalidTokenError otherwise; the cause is only logged.
        """
        if not token or not isinstance(token, str):
            logger.debug("Share token rejected: empty")
            raise InvalidTokenError()

        try:
            # Expiry is checked below against our own clock (strict: now < exp).
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as e:
            logger.debug("Share token rejected: %s", e)
            raise InvalidTokenError() from e

        owner_id = claims.get("userId")
        exp = claims.get("exp")
        if not isinstance(owner_id, str) or not owner_id:
            logger.debug("Share token rejected: missing userId claim")
            raise InvalidTokenError()
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            logger.debug("Share token rejected: missing exp claim")
            raise InvalidTokenError()

        if self._clock().timestamp() >= float(exp):
            logger.debug("Share token rejected: expired owner=%s", owner_id)
            raise InvalidTokenError()
        return owner_id

    def share_url(self, token: str) -> str:
        return f"{self._base_url}/share?{urlencode({'token': token})}"
