"""Reshape raw IGDB game records into :class:`NormalizedGame` values."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from helpers import (
    _coerce_catalog_id,
    _coerce_rating,
    _format_release_timestamp,
    _normalize_lookup_name,
    display_rating,
)
from catalog.criteria import FACET_KINDS, FilterCriteria
from catalog.query import PEGI_CATEGORY

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://images.igdb.com/igdb/image/upload"

RATING_TO_PEGI: dict[int, int] = {1: 3, 2: 7, 3: 12, 4: 16, 5: 18}

STORE_CATEGORIES: dict[int, str] = {
    13: "steam",
    17: "gog",
    16: "epic",
    26: "playstation",
    27: "xbox",
}
STORE_URL_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("steam", ("steampowered.com",)),
    ("gog", ("gog.com",)),
    ("epic", ("epicgames.com",)),
    ("playstation", ("playstation.com",)),
    ("xbox", ("xbox.com", "microsoft.com")),
)


@dataclass(frozen=True)
class NamedRef:
    id: int
    name: str


@dataclass(frozen=True)
class Screenshot:
    image_id: str
    url: str


@dataclass(frozen=True)
class LanguageSupport:
    language: str | None
    language_support_type: int | None


@dataclass(frozen=True)
class SimilarGame:
    id: int
    name: str
    slug: str | None = None
    cover_url: str | None = None
    rating: float | None = None
    genres: tuple[NamedRef, ...] = ()


@dataclass(frozen=True)
class NormalizedGame:
    """Stable internal representation of one catalog game."""

    id: int
    name: str
    slug: str | None = None
    summary: str | None = None
    storyline: str | None = None
    rating: float | None = None
    cover_url: str | None = None
    release_date: str | None = None
    genres: tuple[NamedRef, ...] = ()
    platforms: tuple[NamedRef, ...] = ()
    engines: tuple[NamedRef, ...] = ()
    game_modes: tuple[NamedRef, ...] = ()
    themes: tuple[NamedRef, ...] = ()
    pegi: int | None = None
    external_links: Mapping[str, str] | None = None
    screenshots: tuple[Screenshot, ...] = ()
    trailer_video_id: str | None = None
    language_supports: tuple[LanguageSupport, ...] = ()
    similar_games: tuple[SimilarGame, ...] = field(default_factory=tuple)

    @property
    def display_rating(self) -> int | None:
        if self.rating is None:
            return None
        return display_rating(self.rating)

    def facet_ids(self, kind: str) -> set[int]:
        return {ref.id for ref in getattr(self, kind)}

    def to_dict(self) -> dict[str, Any]:
        links = self.external_links
        plain = replace(self, external_links=dict(links) if links is not None else None)
        return asdict(plain)


def cover_url_from_cover(value: Any, size: str = "t_cover_big") -> str | None:
    """Return the IGDB image URL for a cover payload or image identifier."""

    if isinstance(value, Mapping):
        explicit = value.get("url")
        if isinstance(explicit, str) and explicit.strip():
            return _absolute_url(explicit.strip())
        image_id = _normalize_lookup_name(value.get("image_id"))
    elif isinstance(value, str):
        image_id = value.strip()
    else:
        image_id = ""
    if not image_id:
        return None
    size_key = str(size).strip() if size else "t_cover_big"
    return f"{IMAGE_BASE_URL}/{size_key or 't_cover_big'}/{image_id}.jpg"


def _absolute_url(url: str) -> str:
    if url.startswith("//"):
        return f"https:{url}"
    return url


def _named_refs(raw: Any) -> tuple[NamedRef, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    refs: list[NamedRef] = []
    seen: set[int] = set()
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        ref_id = _coerce_catalog_id(item.get("id"))
        name = _normalize_lookup_name(item.get("name"))
        if ref_id is None or not name or ref_id in seen:
            continue
        seen.add(ref_id)
        refs.append(NamedRef(ref_id, name))
    return tuple(refs)


def pegi_from_age_ratings(age_ratings: Iterable[Mapping[str, Any]]) -> int | None:
    """Map the PEGI entry of resolved age ratings onto the 3/7/12/16/18 scale."""

    for entry in age_ratings or []:
        if not isinstance(entry, Mapping):
            continue
        if _coerce_catalog_id(entry.get("category")) != PEGI_CATEGORY:
            continue
        rating = _coerce_catalog_id(entry.get("rating"))
        return RATING_TO_PEGI.get(rating) if rating is not None else None
    return None


def _classify_store_url(url: str) -> str | None:
    lowered = url.lower()
    for store, patterns in STORE_URL_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return store
    return None


def store_links_from_websites(websites: Iterable[Mapping[str, Any]]) -> dict[str, str] | None:
    links: dict[str, str] = {}
    for website in websites or []:
        if not isinstance(website, Mapping):
            continue
        url = _normalize_lookup_name(website.get("url"))
        if not url:
            continue
        category = _coerce_catalog_id(website.get("category"))
        if category is not None:
            store = STORE_CATEGORIES.get(category)
        else:
            store = _classify_store_url(url)
        if store:
            links[store] = url
    return links or None


def _screenshots(raw: Any) -> tuple[Screenshot, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    shots: list[Screenshot] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        image_id = _normalize_lookup_name(item.get("image_id"))
        if image_id:
            shots.append(
                Screenshot(image_id, f"{IMAGE_BASE_URL}/t_screenshot_big/{image_id}.jpg")
            )
    return tuple(shots)


def _trailer_video_id(raw: Any) -> str | None:
    if not isinstance(raw, (list, tuple)):
        return None
    for video in raw:
        if isinstance(video, Mapping):
            video_id = _normalize_lookup_name(video.get("video_id"))
            if video_id:
                return video_id
    return None


def _language_supports(raw: Any) -> tuple[LanguageSupport, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    supports: list[LanguageSupport] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        language = item.get("language")
        if isinstance(language, Mapping):
            language = language.get("name")
        name = _normalize_lookup_name(language) or None
        supports.append(
            LanguageSupport(name, _coerce_catalog_id(item.get("language_support_type")))
        )
    return tuple(supports)


def _similar_games(raw: Any) -> tuple[SimilarGame, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    games: list[SimilarGame] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        game_id = _coerce_catalog_id(item.get("id"))
        name = _normalize_lookup_name(item.get("name"))
        if game_id is None or not name:
            continue
        games.append(
            SimilarGame(
                id=game_id,
                name=name,
                slug=_normalize_lookup_name(item.get("slug")) or None,
                cover_url=cover_url_from_cover(item.get("cover")),
                rating=_coerce_rating(item.get("rating")),
                genres=_named_refs(item.get("genres")),
            )
        )
    return tuple(games)


def _read_only(links: dict[str, str] | None) -> Mapping[str, str] | None:
    return MappingProxyType(links) if links is not None else None


def _optional_text(value: Any) -> str | None:
    return _normalize_lookup_name(value) or None


def normalize_game(record: Mapping[str, Any]) -> NormalizedGame:
    """Return the normalized form of a record whose references are resolved."""

    game_id = _coerce_catalog_id(record.get("id"))
    if game_id is None:
        raise ValueError(f"IGDB record without a valid id: {record.get('id')!r}")

    return NormalizedGame(
        id=game_id,
        name=_normalize_lookup_name(record.get("name")),
        slug=_optional_text(record.get("slug")),
        summary=_optional_text(record.get("summary")),
        storyline=_optional_text(record.get("storyline")),
        rating=_coerce_rating(record.get("rating")),
        cover_url=cover_url_from_cover(record.get("cover")),
        release_date=_format_release_timestamp(record.get("first_release_date")),
        genres=_named_refs(record.get("genres")),
        platforms=_named_refs(record.get("platforms")),
        engines=_named_refs(record.get("game_engines")),
        game_modes=_named_refs(record.get("game_modes")),
        themes=_named_refs(record.get("themes")),
        pegi=pegi_from_age_ratings(record.get("age_ratings") or []),
        external_links=_read_only(store_links_from_websites(record.get("websites") or [])),
        screenshots=_screenshots(record.get("screenshots")),
        trailer_video_id=_trailer_video_id(record.get("videos")),
        language_supports=_language_supports(record.get("language_supports")),
        similar_games=_similar_games(record.get("similar_games")),
    )


def normalize_games(records: Iterable[Mapping[str, Any]]) -> list[NormalizedGame]:
    games: list[NormalizedGame] = []
    for record in records:
        try:
            games.append(normalize_game(record))
        except ValueError as exc:
            logger.warning("Skipping IGDB entry: %s", exc)
    return games


def _within_rating_bounds(game: NormalizedGame, criteria: FilterCriteria) -> bool:
    rounded = game.display_rating
    if rounded is None:
        return False
    if criteria.rating_min is not None and rounded < criteria.rating_min:
        return False
    if criteria.rating_max is not None and rounded > criteria.rating_max:
        return False
    return True


def post_filter(games: list[NormalizedGame], criteria: FilterCriteria) -> list[NormalizedGame]:
    """Re-apply the caller's exact filters and orderings after a list fetch."""

    result = list(games)

    if criteria.has_rating_filter:
        result = [game for game in result if _within_rating_bounds(game, criteria)]

    for kind in FACET_KINDS:
        required = set(criteria.facet_ids(kind))
        if len(required) > 1:
            result = [game for game in result if required <= game.facet_ids(kind)]

    if criteria.uses_client_rating_sort:
        result.sort(
            key=lambda game: game.display_rating or 0,
            reverse=criteria.sort_descending,
        )

    if criteria.search:
        prefix = criteria.search.casefold()
        result.sort(key=lambda game: not game.name.casefold().startswith(prefix))

    if len(result) < len(games):
        logger.debug("Post-filter kept %s of %s games", len(result), len(games))
    return result


__all__ = [
    "IMAGE_BASE_URL",
    "LanguageSupport",
    "NamedRef",
    "NormalizedGame",
    "RATING_TO_PEGI",
    "STORE_CATEGORIES",
    "Screenshot",
    "SimilarGame",
    "cover_url_from_cover",
    "normalize_game",
    "normalize_games",
    "pegi_from_age_ratings",
    "post_filter",
    "store_links_from_websites",
]
