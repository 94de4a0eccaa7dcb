"""Twitch app-access credential cache used to authorize IGDB requests."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

import config
from catalog.errors import UpstreamAuthError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = 3600.0


@dataclass(frozen=True)
class Credential:
    """A bearer token with its absolute expiry and refresh instants."""

    token: str
    expires_at: float
    refresh_at: float

    def is_fresh(self, now: float) -> bool:
        return bool(self.token) and now < self.refresh_at and now < self.expires_at


class CredentialCache:
    """Lazily obtain and cache a Twitch client-credentials token.

    The cached :class:`Credential` is the single source of truth and is read
    fresh on every call. Refreshes run under a lock so that concurrent callers
    waiting on an expired token share one exchange instead of each issuing
    their own; once the lock is released the waiters find the new credential.
    """

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_url: str | None = None,
        max_attempts: int = 3,
        initial_backoff: float = 0.5,
        refresh_margin: float | None = None,
        timeout: float | None = None,
        request_factory: Callable[..., Any] | None = None,
        opener: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        env = env if env is not None else os.environ
        self._client_id = (
            client_id
            or env.get("TWITCH_CLIENT_ID")
            or env.get("IGDB_CLIENT_ID")
            or config.TWITCH_CLIENT_ID
            or ""
        ).strip()
        self._client_secret = (
            client_secret
            or env.get("TWITCH_CLIENT_SECRET")
            or env.get("IGDB_CLIENT_SECRET")
            or config.TWITCH_CLIENT_SECRET
            or ""
        ).strip()
        self._token_url = token_url or config.TWITCH_TOKEN_URL
        self._max_attempts = max(1, int(max_attempts))
        self._initial_backoff = initial_backoff if initial_backoff > 0 else 0.5
        self._refresh_margin = (
            config.TOKEN_REFRESH_MARGIN_SECONDS
            if refresh_margin is None
            else max(0.0, refresh_margin)
        )
        self._timeout = timeout or config.IGDB_REQUEST_TIMEOUT_SECONDS
        self._request_factory = request_factory or Request
        self._opener = opener or urlopen
        self._sleep = sleep or time.sleep
        self._clock = clock or time.time
        self._credential: Credential | None = None
        self._refresh_lock = threading.Lock()
        self.exchange_count = 0

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def invalidate(self) -> None:
        """Forget the cached token so the next call performs an exchange."""

        self._credential = None

    def get_auth_headers(self) -> dict[str, str]:
        token = self.get_access_token()
        return {
            "Client-ID": self._client_id,
            "Authorization": f"Bearer {token}",
        }

    def get_access_token(self) -> str:
        credential = self._credential
        if credential is not None and credential.is_fresh(self._clock()):
            return credential.token

        with self._refresh_lock:
            credential = self._credential
            if credential is not None and credential.is_fresh(self._clock()):
                return credential.token
            self._credential = self._refresh()
            return self._credential.token

    def _refresh(self) -> Credential:
        if not self._client_id or not self._client_secret:
            raise UpstreamAuthError("missing twitch client credentials")

        last_error: Exception | None = None
        for attempt in range(self._max_attempts):
            if attempt > 0:
                delay = self._initial_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Retrying twitch token exchange in %.1fs (attempt %s/%s)",
                    delay,
                    attempt + 1,
                    self._max_attempts,
                )
                self._sleep(delay)
            try:
                token, lifetime = self._exchange()
            except (HTTPError, URLError, OSError, ValueError) as exc:
                last_error = exc
                logger.error("Error getting twitch token: %s", _describe_error(exc))
                continue
            now = self._clock()
            margin = min(self._refresh_margin, lifetime / 2)
            logger.info("Twitch access token received")
            return Credential(
                token=token,
                expires_at=now + lifetime,
                refresh_at=now + lifetime - margin,
            )

        raise UpstreamAuthError(
            f"failed to obtain twitch token after {self._max_attempts} attempts: "
            f"{_describe_error(last_error)}"
        ) from last_error

    def _exchange(self) -> tuple[str, float]:
        self.exchange_count += 1
        payload = urlencode(
            {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
            }
        ).encode("utf-8")
        request = self._request_factory(self._token_url, data=payload, method="POST")
        request.add_header("Content-Type", "application/x-www-form-urlencoded")

        with self._opener(request, timeout=self._timeout) as response:
            body = response.read()
        data = json.loads(body.decode("utf-8")) if body else {}

        token = data.get("access_token") if isinstance(data, Mapping) else None
        if not token:
            raise ValueError("missing access token in twitch response")
        try:
            lifetime = float(data.get("expires_in"))
        except (TypeError, ValueError):
            lifetime = DEFAULT_TOKEN_LIFETIME
        if lifetime <= 0:
            lifetime = DEFAULT_TOKEN_LIFETIME
        return str(token), lifetime


def _describe_error(error: Exception | None) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, HTTPError):
        try:
            body = error.read().decode("utf-8", errors="replace").strip()
        except (OSError, AttributeError):
            body = ""
        return f"{error.code} {body or error.reason}".strip()
    return str(error)


__all__ = ["Credential", "CredentialCache"]
