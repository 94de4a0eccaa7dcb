"""Exceptions raised by the catalog engine."""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base class for catalog engine failures."""


class UpstreamAuthError(CatalogError):
    """The Twitch credential exchange failed after all retries."""


class UpstreamError(CatalogError):
    """IGDB answered with a non-success status or an unusable payload."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def detail(self) -> str:
        """Return the most useful upstream-provided explanation."""

        body = self.body
        if isinstance(body, dict):
            for key in ("message", "cause", "title", "details"):
                value = body.get(key)
                if value:
                    return str(value)
        if isinstance(body, list) and body and isinstance(body[0], dict):
            for key in ("cause", "title", "message"):
                value = body[0].get(key)
                if value:
                    return str(value)
        if isinstance(body, str) and body.strip():
            return body.strip()
        return str(self)


class UpstreamRateLimited(UpstreamError):
    """IGDB kept answering 429 after the retry budget was spent."""


class UpstreamTimeout(UpstreamError):
    """An IGDB request did not complete within its timeout."""


class NotFound(CatalogError):
    """A single-record lookup matched no games."""


__all__ = [
    "CatalogError",
    "NotFound",
    "UpstreamAuthError",
    "UpstreamError",
    "UpstreamRateLimited",
    "UpstreamTimeout",
]
