"""Compile :class:`FilterCriteria` into IGDB's textual query grammar."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from catalog.criteria import (
    DEFAULT_SORT_CLAUSE,
    MAX_PAGE_SIZE,
    SORT_CLAUSES,
    FilterCriteria,
    resolve_page_size,
)

logger = logging.getLogger(__name__)

MODE_COUNT = "count"
MODE_LIST = "list"

# IGDB age rating category used for PEGI ratings.
PEGI_CATEGORY = 2
PEGI_TO_RATING: dict[int, int] = {3: 1, 7: 2, 12: 3, 16: 4, 18: 5}

RATING_FILTER_PAGE_SIZE = 500
SIMILAR_GAMES_LIMIT = 10

FACET_FIELDS: dict[str, str] = {
    "genres": "genres",
    "platforms": "platforms",
    "engines": "game_engines",
}
FACET_ENDPOINTS: dict[str, str] = {
    "genres": "genres",
    "platforms": "platforms",
    "engines": "game_engines",
}

LIST_FIELDS = (
    "id,name,slug,summary,first_release_date,"
    "genres.name,platforms.name,game_engines.name,game_modes.name,themes.name,"
    "cover.image_id,cover.url,artworks.image_id,videos.video_id,"
    "websites,age_ratings,rating,rating_count,hypes"
)
DETAIL_FIELDS = (
    "id,name,slug,summary,storyline,url,first_release_date,"
    "genres.name,platforms.name,game_engines.name,game_modes.name,themes.name,"
    "player_perspectives.name,alternative_names.name,"
    "cover.image_id,cover.url,artworks.image_id,screenshots.image_id,"
    "videos.video_id,websites.url,websites.category,"
    "age_ratings.category,age_ratings.rating,similar_games,"
    "language_supports.language.name,language_supports.language_support_type,"
    "rating,rating_count,hypes"
)
SIMILAR_GAME_FIELDS = "id,name,slug,cover.image_id,rating,genres.name"
REFERENCE_FIELDS: dict[str, str] = {
    "age_ratings": "id,category,rating",
    "websites": "id,url,category",
}


@dataclass(frozen=True)
class CompiledQuery:
    """An IGDB request: the endpoint path and its query body."""

    endpoint: str
    body: str

    def __str__(self) -> str:
        return f"/{self.endpoint}: {self.body}"


def widen_rating_min(rating_min: float) -> int:
    if rating_min > 0:
        return max(0, math.floor(rating_min - 0.5))
    return 0


def widen_rating_max(rating_max: float, mode: str = MODE_LIST) -> float:
    """Widen the upper rating bound so values that round into range survive."""

    if rating_max >= 100:
        return 100
    if 22 <= rating_max <= 91:
        step = 15 if mode == MODE_COUNT else 10
        return min(100, rating_max + step)
    if rating_max < 22:
        return min(100, rating_max + 5)
    return min(100, rating_max + 2)


def escape_search_term(term: str) -> str:
    return term.replace("\\", "\\\\").replace('"', '\\"')


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _id_list(ids: Iterable[int]) -> str:
    return ",".join(str(int(value)) for value in ids)


class QueryCompiler:
    """Translate search criteria and lookups into IGDB request bodies."""

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time

    def rating_predicates(self, criteria: FilterCriteria, mode: str) -> list[str]:
        where: list[str] = []
        if criteria.rating_min is not None:
            min_value = widen_rating_min(criteria.rating_min)
            where.append(f"rating >= {min_value}")
            logger.debug(
                "Rating min filter: requesting rating >= %s (for min=%s)",
                min_value,
                criteria.rating_min,
            )
        if criteria.rating_max is not None:
            max_value = widen_rating_max(criteria.rating_max, mode)
            where.append(f"rating <= {_format_number(max_value)}")
            logger.debug(
                "Rating max filter: requesting rating <= %s (for max=%s, mode=%s)",
                max_value,
                criteria.rating_max,
                mode,
            )
        return where

    def where_predicates(self, criteria: FilterCriteria, mode: str) -> list[str]:
        where = self.rating_predicates(criteria, mode)

        for kind, field_name in FACET_FIELDS.items():
            for facet_id in criteria.facet_ids(kind):
                where.append(f"{field_name} = ({facet_id})")

        if criteria.release_date_min is not None:
            where.append(f"first_release_date >= {criteria.release_date_min}")
        if criteria.release_date_max is not None:
            where.append(f"first_release_date <= {criteria.release_date_max}")

        if criteria.age_ratings:
            ratings = [PEGI_TO_RATING[tier] for tier in criteria.age_ratings]
            where.append(
                f"age_ratings.category = {PEGI_CATEGORY} & "
                f"age_ratings.rating = ({_id_list(ratings)})"
            )

        if criteria.search:
            where.append(f'name ~ "{escape_search_term(criteria.search)}"*')
        return where

    def sort_clause(self, criteria: FilterCriteria) -> str | None:
        """Return the server-side sort, or ``None`` when search ranks results."""

        if criteria.search:
            return None
        if criteria.uses_client_rating_sort:
            return "id asc"
        return SORT_CLAUSES.get(criteria.sort_by or "", DEFAULT_SORT_CLAUSE)

    def compile(self, criteria: FilterCriteria, mode: str = MODE_LIST) -> CompiledQuery:
        if mode not in (MODE_COUNT, MODE_LIST):
            raise ValueError(f"unknown query mode: {mode}")

        where = self.where_predicates(criteria, mode)
        where_clause = f"where {' & '.join(where)};" if where else ""

        if mode == MODE_COUNT:
            return CompiledQuery("games/count", where_clause)

        parts = [f"fields {LIST_FIELDS};"]
        if where_clause:
            parts.append(where_clause)
        sort = self.sort_clause(criteria)
        if sort:
            parts.append(f"sort {sort};")
        if criteria.has_rating_filter:
            parts.append(f"limit {RATING_FILTER_PAGE_SIZE};")
            parts.append("offset 0;")
        else:
            parts.append(f"limit {criteria.limit};")
            parts.append(f"offset {criteria.offset};")
        return CompiledQuery("games", " ".join(parts))

    def games_by_ids(self, ids: Iterable[int]) -> CompiledQuery:
        id_values = list(ids)
        return CompiledQuery(
            "games",
            f"fields {LIST_FIELDS}; where id = ({_id_list(id_values)}); "
            f"limit {resolve_page_size(len(id_values))};",
        )

    def game_by_id(self, game_id: int) -> CompiledQuery:
        return CompiledQuery(
            "games", f"fields {DETAIL_FIELDS}; where id = {int(game_id)}; limit 1;"
        )

    def game_by_slug(self, slug: str) -> CompiledQuery:
        return CompiledQuery(
            "games",
            f'fields {DETAIL_FIELDS}; where slug = "{escape_search_term(slug)}"; limit 1;',
        )

    def similar_games(self, ids: Iterable[int]) -> CompiledQuery:
        id_values = list(ids)[:SIMILAR_GAMES_LIMIT]
        return CompiledQuery(
            "games",
            f"fields {SIMILAR_GAME_FIELDS}; where id = ({_id_list(id_values)}); "
            f"limit {len(id_values)};",
        )

    def popular_games(self, limit: int) -> CompiledQuery:
        return CompiledQuery(
            "games",
            f"fields {LIST_FIELDS}; where cover != null & rating != null; "
            f"sort rating desc; limit {int(limit)};",
        )

    def upcoming_games(self, limit: int) -> CompiledQuery:
        now = int(self._clock())
        return CompiledQuery(
            "games",
            f"fields {LIST_FIELDS}; "
            f"where first_release_date != null & first_release_date > {now}; "
            f"sort first_release_date asc; limit {int(limit)};",
        )

    def reference_lookup(self, family: str, ids: Iterable[int]) -> CompiledQuery:
        """Batch lookup against a reference type's own endpoint."""

        fields = REFERENCE_FIELDS[family]
        return CompiledQuery(
            family,
            f"fields {fields}; where id = ({_id_list(ids)}); limit {MAX_PAGE_SIZE};",
        )

    def total_count(self) -> CompiledQuery:
        return CompiledQuery("games/count", "")

    def facet_sample(self, offset: int, batch_size: int = MAX_PAGE_SIZE) -> CompiledQuery:
        fields = ",".join(FACET_FIELDS.values())
        return CompiledQuery(
            "games",
            f"fields {fields}; limit {int(batch_size)}; offset {int(offset)};",
        )

    def facet_names(self, kind: str) -> CompiledQuery:
        return CompiledQuery(
            FACET_ENDPOINTS[kind], f"fields id,name; limit {MAX_PAGE_SIZE};"
        )


__all__ = [
    "CompiledQuery",
    "FACET_ENDPOINTS",
    "FACET_FIELDS",
    "MODE_COUNT",
    "MODE_LIST",
    "PEGI_CATEGORY",
    "PEGI_TO_RATING",
    "QueryCompiler",
    "RATING_FILTER_PAGE_SIZE",
    "escape_search_term",
    "widen_rating_max",
    "widen_rating_min",
]
