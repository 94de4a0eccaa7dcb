"""Expansion of partially-inlined IGDB reference fields."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

from helpers import _coerce_catalog_id
from catalog.errors import CatalogError
from catalog.query import QueryCompiler, SIMILAR_GAMES_LIMIT
from catalog.transport import CatalogTransport

logger = logging.getLogger(__name__)

REFERENCE_CHUNK_SIZE = 500

# Properties an inlined object must carry to count as fully expanded.
REFERENCE_FAMILIES: dict[str, tuple[str, ...]] = {
    "age_ratings": ("category",),
    "websites": ("category", "url"),
}


@dataclass(frozen=True)
class Unresolved:
    """A reference known only by its id."""

    id: int


@dataclass(frozen=True)
class Resolved:
    """A reference whose full object was inlined or looked up."""

    value: dict[str, Any]

    @property
    def id(self) -> int | None:
        return _coerce_catalog_id(self.value.get("id"))


Reference = Union[Unresolved, Resolved]


def parse_reference(value: Any, required: tuple[str, ...]) -> Reference | None:
    """Classify one raw reference value, or return ``None`` if unusable."""

    if isinstance(value, Mapping):
        if all(value.get(key) is not None for key in required):
            return Resolved(dict(value))
        ref_id = _coerce_catalog_id(value.get("id"))
        return Unresolved(ref_id) if ref_id is not None else None
    ref_id = _coerce_catalog_id(value)
    return Unresolved(ref_id) if ref_id is not None else None


def parse_references(raw: Any, required: tuple[str, ...]) -> list[Reference]:
    """Parse a reference field that may be a list, a single object or an id."""

    if raw is None:
        return []
    values: Iterable[Any]
    if isinstance(raw, (list, tuple)):
        values = raw
    else:
        values = [raw]
    references: list[Reference] = []
    for value in values:
        reference = parse_reference(value, required)
        if reference is not None:
            references.append(reference)
    return references


class ReferenceResolver:
    """Rewrite reference fields of raw game records into expanded objects.

    After :meth:`resolve` every record's ``age_ratings`` and ``websites``
    fields are lists of full objects. Ids that cannot be looked up are
    dropped, so a failed lookup degrades the field rather than the batch.
    """

    def __init__(
        self,
        transport: CatalogTransport,
        compiler: QueryCompiler | None = None,
        *,
        chunk_size: int = REFERENCE_CHUNK_SIZE,
        families: Mapping[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._transport = transport
        self._compiler = compiler or QueryCompiler()
        self._chunk_size = max(1, min(int(chunk_size), REFERENCE_CHUNK_SIZE))
        self._families = dict(families or REFERENCE_FAMILIES)

    def resolve(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for family, required in self._families.items():
            parsed = [parse_references(record.get(family), required) for record in records]
            pending: list[int] = []
            seen: set[int] = set()
            for references in parsed:
                for reference in references:
                    if isinstance(reference, Unresolved) and reference.id not in seen:
                        seen.add(reference.id)
                        pending.append(reference.id)

            lookup = self._lookup(family, pending) if pending else {}

            for record, references in zip(records, parsed):
                record[family] = self._expand(references, lookup)
        return records

    def _lookup(self, family: str, ids: list[int]) -> dict[int, dict[str, Any]]:
        found: dict[int, dict[str, Any]] = {}
        for start in range(0, len(ids), self._chunk_size):
            chunk = ids[start : start + self._chunk_size]
            query = self._compiler.reference_lookup(family, chunk)
            try:
                rows = self._transport.execute(query)
            except CatalogError as exc:
                logger.error("Error fetching %s details: %s", family, exc)
                continue
            for row in rows:
                row_id = _coerce_catalog_id(row.get("id"))
                if row_id is not None:
                    found[row_id] = row
        logger.debug("Fetched %s of %s %s for expansion", len(found), len(ids), family)
        return found

    @staticmethod
    def _expand(
        references: list[Reference], lookup: Mapping[int, dict[str, Any]]
    ) -> list[dict[str, Any]]:
        expanded: list[dict[str, Any]] = []
        for reference in references:
            if isinstance(reference, Resolved):
                expanded.append(reference.value)
                continue
            value = lookup.get(reference.id)
            if value is not None:
                expanded.append(value)
        return expanded

    def expand_similar_games(self, record: dict[str, Any]) -> dict[str, Any]:
        """Replace ``similar_games`` ids with short game records."""

        raw = record.get("similar_games")
        if not raw:
            record["similar_games"] = []
            return record
        values = raw if isinstance(raw, (list, tuple)) else [raw]
        ids: list[int] = []
        for value in values:
            candidate = value.get("id") if isinstance(value, Mapping) else value
            similar_id = _coerce_catalog_id(candidate)
            if similar_id is not None and similar_id not in ids:
                ids.append(similar_id)
        ids = ids[:SIMILAR_GAMES_LIMIT]
        if not ids:
            record["similar_games"] = []
            return record
        try:
            rows = self._transport.execute(self._compiler.similar_games(ids))
        except CatalogError as exc:
            logger.error("Error fetching similar games: %s", exc)
            rows = []
        record["similar_games"] = rows
        return record


__all__ = [
    "REFERENCE_CHUNK_SIZE",
    "REFERENCE_FAMILIES",
    "Reference",
    "ReferenceResolver",
    "Resolved",
    "Unresolved",
    "parse_reference",
    "parse_references",
]
