"""Structured game search filters."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from helpers import (
    _coerce_rating,
    _normalize_lookup_name,
    _parse_id_list,
    _to_epoch_seconds,
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500

SORT_CLAUSES: dict[str, str] = {
    "rating-desc": "rating desc",
    "rating-asc": "rating asc",
    "name-asc": "name asc",
    "name-desc": "name desc",
    "release-desc": "first_release_date desc",
    "release-asc": "first_release_date asc",
}
DEFAULT_SORT_CLAUSE = "first_release_date desc"

PEGI_TIERS: tuple[int, ...] = (3, 7, 12, 16, 18)

FACET_KINDS: tuple[str, ...] = ("genres", "platforms", "engines")


def resolve_page_size(value: Any, *, default: int = DEFAULT_PAGE_SIZE) -> int:
    """Return a sanitized page size respecting the upstream 500 row cap."""

    try:
        size = int(value)
    except (TypeError, ValueError):
        return default
    if size <= 0:
        return default
    return min(size, MAX_PAGE_SIZE)


def _parse_age_ratings(value: Any) -> tuple[int, ...]:
    return tuple(tier for tier in _parse_id_list(value) if tier in PEGI_TIERS)


@dataclass(frozen=True)
class FilterCriteria:
    """Immutable description of one catalog search request.

    Facet id sets are conjunctive: a game must carry every listed id. Release
    dates are kept as epoch seconds; any value accepted by
    :func:`pandas.to_datetime` may be passed in and is converted on creation.
    """

    search: str | None = None
    rating_min: float | None = None
    rating_max: float | None = None
    genres: tuple[int, ...] = field(default_factory=tuple)
    platforms: tuple[int, ...] = field(default_factory=tuple)
    engines: tuple[int, ...] = field(default_factory=tuple)
    release_date_min: Any = None
    release_date_max: Any = None
    age_ratings: tuple[int, ...] = field(default_factory=tuple)
    sort_by: str | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        search = _normalize_lookup_name(self.search)
        object.__setattr__(self, "search", search or None)
        object.__setattr__(self, "rating_min", _coerce_rating(self.rating_min))
        object.__setattr__(self, "rating_max", _coerce_rating(self.rating_max))
        for kind in FACET_KINDS:
            object.__setattr__(self, kind, tuple(_parse_id_list(getattr(self, kind))))
        object.__setattr__(
            self, "release_date_min", _to_epoch_seconds(self.release_date_min)
        )
        object.__setattr__(
            self, "release_date_max", _to_epoch_seconds(self.release_date_max)
        )
        object.__setattr__(self, "age_ratings", _parse_age_ratings(self.age_ratings))
        sort_by = _normalize_lookup_name(self.sort_by)
        object.__setattr__(self, "sort_by", sort_by or None)
        object.__setattr__(self, "limit", resolve_page_size(self.limit))
        try:
            offset = max(0, int(self.offset))
        except (TypeError, ValueError):
            offset = 0
        object.__setattr__(self, "offset", offset)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "FilterCriteria":
        """Build criteria from request-style parameters (``ratingMin`` etc.)."""

        def pick(*names: str) -> Any:
            for name in names:
                value = params.get(name)
                if value not in (None, ""):
                    return value
            return None

        limit = pick("limit")
        offset = pick("offset")
        return cls(
            search=pick("search"),
            rating_min=pick("ratingMin", "rating_min"),
            rating_max=pick("ratingMax", "rating_max"),
            genres=pick("genres"),
            platforms=pick("platforms"),
            engines=pick("engines"),
            release_date_min=pick("releaseDateMin", "release_date_min"),
            release_date_max=pick("releaseDateMax", "release_date_max"),
            age_ratings=pick("ageRatings", "age_ratings", "pegi"),
            sort_by=pick("sortBy", "sort_by"),
            limit=limit if limit is not None else DEFAULT_PAGE_SIZE,
            offset=offset if offset is not None else 0,
        )

    @property
    def has_rating_filter(self) -> bool:
        return self.rating_min is not None or self.rating_max is not None

    @property
    def is_rating_sort(self) -> bool:
        return self.sort_by in ("rating-desc", "rating-asc")

    @property
    def sort_descending(self) -> bool:
        return (self.sort_by or "").endswith("-desc")

    @property
    def uses_client_rating_sort(self) -> bool:
        """Rating sort must happen after the rounded-rating post-filter."""

        return self.has_rating_filter and self.is_rating_sort and not self.search

    def has_filters(self) -> bool:
        return bool(
            self.search
            or self.has_rating_filter
            or self.genres
            or self.platforms
            or self.engines
            or self.release_date_min is not None
            or self.release_date_max is not None
            or self.age_ratings
        )

    def facet_ids(self, kind: str) -> tuple[int, ...]:
        if kind not in FACET_KINDS:
            raise ValueError(f"unknown facet kind: {kind}")
        return getattr(self, kind)

    def with_facet(self, kind: str, facet_id: int) -> "FilterCriteria":
        """Return a copy that additionally requires ``facet_id`` for ``kind``."""

        current = self.facet_ids(kind)
        if facet_id in current:
            return self
        return replace(self, **{kind: current + (facet_id,)})


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SORT_CLAUSE",
    "FACET_KINDS",
    "FilterCriteria",
    "MAX_PAGE_SIZE",
    "PEGI_TIERS",
    "SORT_CLAUSES",
    "resolve_page_size",
]
