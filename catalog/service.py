"""Caller-facing catalog operations."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

import config
from helpers import _coerce_catalog_id, _dedupe_ids, _normalize_lookup_name
from catalog.auth import CredentialCache
from catalog.cache import TTLCache
from catalog.criteria import MAX_PAGE_SIZE, FilterCriteria
from catalog.errors import NotFound, UpstreamRateLimited
from catalog.facets import FacetAggregator, FacetStats
from catalog.normalize import NormalizedGame, normalize_game, normalize_games, post_filter
from catalog.query import MODE_COUNT, MODE_LIST, QueryCompiler
from catalog.references import ReferenceResolver
from catalog.transport import CatalogTransport

logger = logging.getLogger(__name__)

POPULAR_DEFAULT_LIMIT = 20
UPCOMING_DEFAULT_LIMIT = 12
SHOWCASE_MAX_LIMIT = 50


class CatalogService:
    """Search, fetch and summarize IGDB games as :class:`NormalizedGame` values."""

    def __init__(
        self,
        *,
        credentials: CredentialCache | None = None,
        transport: CatalogTransport | None = None,
        compiler: QueryCompiler | None = None,
        resolver: ReferenceResolver | None = None,
        facets: FacetAggregator | None = None,
        game_cache: TTLCache[NormalizedGame] | None = None,
        opener: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.compiler = compiler or QueryCompiler(clock=clock)
        if transport is None:
            credentials = credentials or CredentialCache(
                opener=opener, sleep=sleep, clock=clock
            )
            transport = CatalogTransport(credentials, opener=opener, sleep=sleep)
        self.transport = transport
        self.resolver = resolver or ReferenceResolver(self.transport, self.compiler)
        self.facets = facets or FacetAggregator(
            self.transport, self.compiler, sleep=sleep
        )
        self.game_cache = game_cache or TTLCache(
            ttl=config.GAME_CACHE_TTL_SECONDS, max_size=config.GAME_CACHE_MAX_SIZE
        )

    def search_games(self, criteria: FilterCriteria) -> list[NormalizedGame]:
        query = self.compiler.compile(criteria, MODE_LIST)
        records = self.transport.execute(query)
        self.resolver.resolve(records)
        games = post_filter(normalize_games(records), criteria)

        if not games and records and criteria.has_rating_filter:
            logger.warning(
                "No games left after rating filter (min=%s, max=%s) out of %s fetched",
                criteria.rating_min,
                criteria.rating_max,
                len(records),
            )

        if criteria.has_rating_filter:
            # Oversized candidate page: paginate after the exact post-filter.
            return games[criteria.offset : criteria.offset + criteria.limit]
        return games

    def get_games_count(self, criteria: FilterCriteria) -> int:
        count = self.transport.count(
            self.compiler.compile(criteria, MODE_COUNT), retry_timeouts=True
        )
        if criteria.has_filters():
            logger.info("Games count for filtered query: %s", count)
        return count

    def get_game_by_id(self, id_or_slug: Any) -> NormalizedGame:
        """Return one game looked up by numeric id or by slug."""

        game_id = _coerce_catalog_id(id_or_slug)
        if game_id is not None:
            cache_key = f"id:{game_id}"
            query = self.compiler.game_by_id(game_id)
        else:
            slug = _normalize_lookup_name(id_or_slug)
            if not slug:
                raise NotFound("Game not found")
            cache_key = f"slug:{slug}"
            query = self.compiler.game_by_slug(slug)

        cached = self.game_cache.get(cache_key)
        if cached is not None:
            return cached

        records = self.transport.execute(query)
        if not records:
            raise NotFound("Game not found")
        record = records[0]
        self.resolver.resolve([record])
        self.resolver.expand_similar_games(record)
        game = normalize_game(record)
        self.game_cache.set(cache_key, game)
        return game

    def get_games_by_ids(self, ids: Iterable[Any]) -> list[NormalizedGame]:
        unique_ids = _dedupe_ids(ids)
        if not unique_ids:
            return []

        records: list[dict[str, Any]] = []
        for start in range(0, len(unique_ids), MAX_PAGE_SIZE):
            chunk = unique_ids[start : start + MAX_PAGE_SIZE]
            records.extend(self.transport.execute(self.compiler.games_by_ids(chunk)))
        self.resolver.resolve(records)

        position = {game_id: index for index, game_id in enumerate(unique_ids)}
        games = normalize_games(records)
        games.sort(key=lambda game: position.get(game.id, len(position)))
        return games

    def get_facet_stats(self, criteria: FilterCriteria | None = None) -> FacetStats:
        return self.facets.get_facet_stats(criteria)

    def get_popular_games(self, limit: Any = POPULAR_DEFAULT_LIMIT) -> list[NormalizedGame]:
        query = self.compiler.popular_games(_showcase_limit(limit, POPULAR_DEFAULT_LIMIT))
        return self._showcase(query, "popular")

    def get_upcoming_games(self, limit: Any = UPCOMING_DEFAULT_LIMIT) -> list[NormalizedGame]:
        query = self.compiler.upcoming_games(_showcase_limit(limit, UPCOMING_DEFAULT_LIMIT))
        return self._showcase(query, "upcoming")

    def _showcase(self, query, label: str) -> list[NormalizedGame]:
        try:
            records = self.transport.execute(query)
        except UpstreamRateLimited:
            logger.warning("Rate limit exceeded for %s games, returning empty list", label)
            return []
        self.resolver.resolve(records)
        return normalize_games(records)


def _showcase_limit(value: Any, default: int) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    if limit <= 0:
        return default
    return min(limit, SHOWCASE_MAX_LIMIT)


_service: CatalogService | None = None
_service_lock = threading.Lock()


def get_catalog_service() -> CatalogService:
    """Return the process-wide service sharing one credential and stats cache."""

    global _service
    with _service_lock:
        if _service is None:
            _service = CatalogService()
        return _service


def set_catalog_service(service: CatalogService | None) -> None:
    global _service
    with _service_lock:
        _service = service


__all__ = [
    "CatalogService",
    "get_catalog_service",
    "set_catalog_service",
]
