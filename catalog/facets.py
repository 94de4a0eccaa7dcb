"""Genre, platform and engine statistics under a bounded request budget."""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, Mapping

import pandas as pd

import config
from helpers import _coerce_catalog_id, _normalize_lookup_name
from catalog.criteria import FACET_KINDS, MAX_PAGE_SIZE, FilterCriteria
from catalog.errors import UpstreamError, UpstreamRateLimited
from catalog.query import FACET_FIELDS, MODE_COUNT, QueryCompiler
from catalog.transport import CatalogTransport

logger = logging.getLogger(__name__)

FALLBACK_CATALOG_SIZE = 35000
MAX_SAMPLE_BATCHES = 5
SAMPLE_CONCURRENCY = 3
COUNT_WAVE_SIZE = 5
COUNT_ITEM_DELAY = 0.03
COUNT_WAVE_DELAY = 0.1
CANDIDATE_CAPS: dict[str, int | None] = {
    "genres": None,
    "platforms": 20,
    "engines": 20,
}


@dataclass(frozen=True)
class FacetCount:
    id: int
    name: str
    count: int


@dataclass(frozen=True)
class FacetStats:
    genres: tuple[FacetCount, ...] = ()
    platforms: tuple[FacetCount, ...] = ()
    engines: tuple[FacetCount, ...] = ()

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {kind: [asdict(entry) for entry in getattr(self, kind)] for kind in FACET_KINDS}


class FacetAggregator:
    """Compute exact facet counts, shortlisting candidates from a sample.

    A few sampled pages of the catalog give an approximate usage signal that
    decides which facet values receive an exact ``/games/count`` query. Only
    the exact counts are reported. Unfiltered results are cached for ``ttl``
    seconds and kept afterwards as a fallback for rate-limited runs.
    """

    def __init__(
        self,
        transport: CatalogTransport,
        compiler: QueryCompiler | None = None,
        *,
        ttl: float | None = None,
        timeout: float | None = None,
        max_sample_batches: int = MAX_SAMPLE_BATCHES,
        batch_size: int = MAX_PAGE_SIZE,
        sample_concurrency: int = SAMPLE_CONCURRENCY,
        count_wave_size: int = COUNT_WAVE_SIZE,
        item_delay: float = COUNT_ITEM_DELAY,
        wave_delay: float = COUNT_WAVE_DELAY,
        candidate_caps: Mapping[str, int | None] | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._transport = transport
        self._compiler = compiler or QueryCompiler()
        self._ttl = config.FACET_STATS_CACHE_TTL_SECONDS if ttl is None else ttl
        self._timeout = timeout or config.FACET_STATS_TIMEOUT_SECONDS
        self._max_sample_batches = max(1, int(max_sample_batches))
        self._batch_size = max(1, min(int(batch_size), MAX_PAGE_SIZE))
        self._sample_concurrency = max(1, int(sample_concurrency))
        self._count_wave_size = max(1, int(count_wave_size))
        self._item_delay = item_delay
        self._wave_delay = wave_delay
        self._candidate_caps = dict(CANDIDATE_CAPS if candidate_caps is None else candidate_caps)
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._cache_lock = Lock()
        self._cached: FacetStats | None = None
        self._cached_at: float | None = None

    @property
    def cached_stats(self) -> FacetStats | None:
        with self._cache_lock:
            return self._cached

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cached = None
            self._cached_at = None

    def get_facet_stats(self, criteria: FilterCriteria | None = None) -> FacetStats:
        criteria = criteria or FilterCriteria()
        filtered = criteria.has_filters()

        if not filtered:
            cached = self._fresh_cache()
            if cached is not None:
                logger.info("Returning cached filter stats (no filters)")
                return cached

        total = self._catalog_size()
        usage = self._sample_usage(total)

        try:
            stats = FacetStats(
                **{
                    kind: self._exact_counts(kind, usage.get(kind, {}), criteria)
                    for kind in FACET_KINDS
                }
            )
        except UpstreamError as exc:
            fallback = self.cached_stats
            if isinstance(exc, UpstreamRateLimited):
                logger.warning(
                    "Rate limit reached for filter stats, returning %s",
                    "cached data" if fallback is not None else "empty stats",
                )
            else:
                logger.error("Error getting filter stats: %s", exc)
            return fallback if fallback is not None else FacetStats()

        if not filtered:
            with self._cache_lock:
                self._cached = stats
                self._cached_at = self._clock()
        return stats

    def _fresh_cache(self) -> FacetStats | None:
        with self._cache_lock:
            if self._cached is None or self._cached_at is None:
                return None
            if self._clock() - self._cached_at >= self._ttl:
                return None
            return self._cached

    def _catalog_size(self) -> int:
        try:
            total = self._transport.count(
                self._compiler.total_count(), timeout=self._timeout, retry_timeouts=True
            )
        except UpstreamError as exc:
            logger.warning("Error getting total games count: %s", exc)
            return FALLBACK_CATALOG_SIZE
        logger.info("Total games in catalog: %s", total)
        return total

    def _sample_usage(self, total: int) -> dict[str, dict[int, int]]:
        batches = min(math.ceil(max(total, 0) / self._batch_size), self._max_sample_batches)
        offsets = [index * self._batch_size for index in range(batches)]
        if not offsets:
            return {kind: {} for kind in FACET_KINDS}

        with ThreadPoolExecutor(max_workers=self._sample_concurrency) as pool:
            pages = list(pool.map(self._fetch_sample, offsets))

        pairs: list[tuple[str, int]] = []
        for page in pages:
            for record in page:
                for kind, field_name in FACET_FIELDS.items():
                    values = record.get(field_name)
                    if not isinstance(values, (list, tuple)):
                        continue
                    for value in values:
                        raw_id = value.get("id") if isinstance(value, Mapping) else value
                        facet_id = _coerce_catalog_id(raw_id)
                        if facet_id is not None:
                            pairs.append((kind, facet_id))

        frame = pd.DataFrame(pairs, columns=["kind", "id"])
        usage = {
            kind: {
                int(facet_id): int(hits)
                for facet_id, hits in frame.loc[frame["kind"] == kind, "id"]
                .value_counts()
                .items()
            }
            for kind in FACET_KINDS
        }
        logger.info(
            "Sampled %s games: %s genres, %s platforms, %s engines in use",
            sum(len(page) for page in pages),
            len(usage["genres"]),
            len(usage["platforms"]),
            len(usage["engines"]),
        )
        return usage

    def _fetch_sample(self, offset: int) -> list[dict[str, Any]]:
        query = self._compiler.facet_sample(offset, self._batch_size)
        try:
            return self._transport.execute(
                query, timeout=self._timeout, retry_timeouts=True
            )
        except UpstreamError as exc:
            logger.error("Error fetching sample batch at offset %s: %s", offset, exc)
            return []

    def _candidates(self, kind: str, usage: Mapping[int, int]) -> list[tuple[int, str]]:
        if not usage:
            return []
        rows = self._transport.execute(
            self._compiler.facet_names(kind), timeout=self._timeout, retry_timeouts=True
        )
        candidates: list[tuple[int, str]] = []
        seen: set[int] = set()
        for row in rows:
            facet_id = _coerce_catalog_id(row.get("id"))
            name = _normalize_lookup_name(row.get("name"))
            if facet_id is None or not name or facet_id in seen or facet_id not in usage:
                continue
            seen.add(facet_id)
            candidates.append((facet_id, name))
        candidates.sort(key=lambda item: usage[item[0]], reverse=True)
        cap = self._candidate_caps.get(kind)
        if cap is not None:
            candidates = candidates[:cap]
        return candidates

    def _exact_counts(
        self, kind: str, usage: Mapping[int, int], criteria: FilterCriteria
    ) -> tuple[FacetCount, ...]:
        candidates = self._candidates(kind, usage)
        logger.info("Getting exact counts for %s %s", len(candidates), kind)

        results: list[FacetCount] = []
        with ThreadPoolExecutor(max_workers=self._count_wave_size) as pool:
            for start in range(0, len(candidates), self._count_wave_size):
                if start > 0:
                    self._sleep(self._wave_delay)
                wave = candidates[start : start + self._count_wave_size]
                futures = [
                    pool.submit(self._count_one, kind, facet_id, name, criteria, index)
                    for index, (facet_id, name) in enumerate(wave)
                ]
                results.extend(future.result() for future in futures)

        stats = [entry for entry in results if entry.count > 0]
        stats.sort(key=lambda entry: entry.name.casefold())
        logger.info("Completed %s: %s with count > 0", kind, len(stats))
        return tuple(stats)

    def _count_one(
        self,
        kind: str,
        facet_id: int,
        name: str,
        criteria: FilterCriteria,
        index: int,
    ) -> FacetCount:
        if index > 0:
            self._sleep(self._item_delay)
        query = self._compiler.compile(criteria.with_facet(kind, facet_id), MODE_COUNT)
        try:
            count = self._transport.count(query, timeout=self._timeout, retry_timeouts=True)
        except UpstreamRateLimited:
            raise
        except UpstreamError as exc:
            logger.warning("Error getting count for %s %s (%s): %s", kind, facet_id, name, exc)
            count = 0
        return FacetCount(facet_id, name, count)


__all__ = [
    "CANDIDATE_CAPS",
    "FALLBACK_CATALOG_SIZE",
    "FacetAggregator",
    "FacetCount",
    "FacetStats",
]
