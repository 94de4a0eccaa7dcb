"""HTTP transport for compiled IGDB queries with rate-limit backoff."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from urllib.error import HTTPError
from urllib.request import Request, urlopen

import config
from catalog.auth import CredentialCache
from catalog.errors import UpstreamError, UpstreamRateLimited, UpstreamTimeout
from catalog.query import CompiledQuery

logger = logging.getLogger(__name__)


class CatalogTransport:
    """POST compiled queries to IGDB, retrying only on HTTP 429.

    Every attempt asks the credential cache for headers again so that a token
    refreshed in the middle of a retry sequence is used by later attempts.
    """

    def __init__(
        self,
        credentials: CredentialCache,
        *,
        base_url: str | None = None,
        user_agent: str | None = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        max_retry_after: float | None = None,
        timeout: float | None = None,
        request_factory: Callable[..., Any] | None = None,
        opener: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._credentials = credentials
        self._base_url = (base_url or config.IGDB_BASE_URL).rstrip("/")
        self._user_agent = (user_agent or config.IGDB_USER_AGENT).strip()
        self._max_retries = max(0, int(max_retries))
        self._backoff_base = backoff_base if backoff_base > 0 else 1.0
        self._timeout = timeout or config.IGDB_REQUEST_TIMEOUT_SECONDS
        self._max_retry_after = (
            config.RETRY_AFTER_MAX_SECONDS if max_retry_after is None else max_retry_after
        )
        self._request_factory = request_factory or Request
        self._opener = opener or urlopen
        self._sleep = sleep or time.sleep

    @property
    def credentials(self) -> CredentialCache:
        return self._credentials

    def execute(
        self,
        query: CompiledQuery,
        *,
        timeout: float | None = None,
        retry_timeouts: bool = False,
    ) -> list[dict[str, Any]]:
        """Return the records IGDB sends back for ``query``."""

        payload = self._post(query, timeout=timeout, retry_timeouts=retry_timeouts)
        if payload is None:
            return []
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            raise UpstreamError(
                f"unexpected IGDB payload for /{query.endpoint}", body=payload
            )
        return [item for item in payload if isinstance(item, dict)]

    def count(
        self,
        query: CompiledQuery,
        *,
        timeout: float | None = None,
        retry_timeouts: bool = False,
    ) -> int:
        """Return the ``count`` value of a ``/count`` endpoint response."""

        payload = self._post(query, timeout=timeout, retry_timeouts=retry_timeouts)
        if isinstance(payload, dict):
            count_value = payload.get("count")
        elif isinstance(payload, list) and payload and isinstance(payload[0], dict):
            count_value = payload[0].get("count")
        else:
            count_value = None
        if count_value is None:
            return 0
        try:
            return int(count_value)
        except (TypeError, ValueError):
            raise UpstreamError("invalid count payload from IGDB", body=payload)

    def _post(
        self,
        query: CompiledQuery,
        *,
        timeout: float | None,
        retry_timeouts: bool,
    ) -> Any:
        url = f"{self._base_url}/{query.endpoint}"
        data = query.body.encode("utf-8")
        wait_timeout = timeout or self._timeout

        for attempt in range(self._max_retries + 1):
            headers = self._credentials.get_auth_headers()
            request = self._request_factory(url, data=data, method="POST")
            self._apply_headers(request, headers)
            retries_left = attempt < self._max_retries
            try:
                with self._opener(request, timeout=wait_timeout) as response:
                    body = response.read()
            except HTTPError as exc:
                error_body = _read_error_body(exc)
                if exc.code == 429:
                    if retries_left:
                        delay = self._retry_delay(attempt + 1, exc)
                        logger.warning(
                            "IGDB rate limit on /%s, retrying in %.1fs (retry %s/%s)",
                            query.endpoint,
                            delay,
                            attempt + 1,
                            self._max_retries,
                        )
                        self._sleep(delay)
                        continue
                    raise UpstreamRateLimited(
                        "IGDB rate limit exceeded", status=429, body=error_body
                    ) from exc
                if exc.code == 401:
                    self._credentials.invalidate()
                logger.error(
                    "IGDB request failed: %s %s | query=%s", exc.code, error_body, query
                )
                raise UpstreamError(
                    f"IGDB request failed: {exc.code}", status=exc.code, body=error_body
                ) from exc
            except OSError as exc:
                if not _is_timeout(exc):
                    logger.error("IGDB request failed: %s | query=%s", exc, query)
                    raise UpstreamError(f"failed to query IGDB: {exc}") from exc
                if retry_timeouts and retries_left:
                    delay = self._retry_delay(attempt + 1)
                    logger.warning(
                        "IGDB request to /%s timed out, retrying in %.1fs",
                        query.endpoint,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                raise UpstreamTimeout(
                    f"IGDB request to /{query.endpoint} timed out after {wait_timeout}s",
                    status=504,
                ) from exc
            return _decode_json(body)
        return []

    def _apply_headers(self, request: Any, auth_headers: dict[str, str]) -> None:
        for name, value in auth_headers.items():
            request.add_header(name, value)
        request.add_header("Accept", "application/json")
        request.add_header("User-Agent", self._user_agent)

    def _retry_delay(self, retry_number: int, error: HTTPError | None = None) -> float:
        delay = self._backoff_base * (2 ** (retry_number - 1))
        headers = getattr(error, "headers", None)
        if headers is not None:
            value = headers.get("Retry-After")
            if value:
                try:
                    retry_after = min(float(value), self._max_retry_after)
                    delay = max(delay, retry_after)
                except (TypeError, ValueError):
                    pass
        return delay


def _is_timeout(error: BaseException) -> bool:
    if isinstance(error, TimeoutError):
        return True
    return isinstance(getattr(error, "reason", None), TimeoutError)


def _read_error_body(error: HTTPError) -> Any:
    try:
        raw = error.read()
    except (OSError, AttributeError):
        raw = b""
    if not raw:
        return str(error.reason or "")
    text = raw.decode("utf-8", errors="replace").strip()
    try:
        return json.loads(text)
    except ValueError:
        return text


def _decode_json(body: bytes) -> Any:
    try:
        text = body.decode("utf-8") if body else ""
    except UnicodeDecodeError as exc:
        raise UpstreamError("invalid response encoding from IGDB") from exc
    if not text:
        return []
    try:
        return json.loads(text)
    except ValueError as exc:
        raise UpstreamError("invalid JSON response from IGDB", body=text) from exc


__all__ = ["CatalogTransport"]
