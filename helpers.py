"""General-purpose helper utilities shared across the application."""

from __future__ import annotations

import json
import math
import numbers
from datetime import datetime, timezone
from typing import Any, Iterable

import pandas as pd


__all__ = [
    "_coerce_catalog_id",
    "_coerce_rating",
    "_dedupe_ids",
    "_format_release_timestamp",
    "_normalize_lookup_name",
    "_parse_id_list",
    "_to_epoch_seconds",
    "display_rating",
]


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _normalize_lookup_name(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _coerce_catalog_id(value: Any) -> int | None:
    """Return ``value`` as a positive integer identifier or ``None``."""

    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        numeric = int(value)
    elif isinstance(value, numbers.Real):
        if not float(value).is_integer():
            return None
        numeric = int(value)
    else:
        text = str(value).strip()
        if text.endswith(".0") and text[:-2].isdigit():
            text = text[:-2]
        if not text.isdigit():
            return None
        numeric = int(text)
    return numeric if numeric > 0 else None


def _dedupe_ids(values: Iterable[Any]) -> list[int]:
    seen: set[int] = set()
    result: list[int] = []
    for value in values:
        numeric = _coerce_catalog_id(value)
        if numeric is None or numeric in seen:
            continue
        seen.add(numeric)
        result.append(numeric)
    return result


def _parse_id_list(value: Any) -> list[int]:
    """Parse ``"1,2"``, ``[1, "2"]`` or a JSON array into unique integer ids."""

    if _is_missing(value):
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return _dedupe_ids(decoded)
        return _dedupe_ids(part for part in text.split(",") if part.strip())
    if isinstance(value, numbers.Number):
        return _dedupe_ids([value])
    try:
        return _dedupe_ids(iter(value))
    except TypeError:
        return []


def _coerce_rating(value: Any) -> float | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        numeric = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            numeric = float(text)
        except (TypeError, ValueError):
            return None
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def display_rating(value: float) -> int:
    """Return ``value`` rounded half-up, as ratings are shown to users."""

    return int(math.floor(value + 0.5))


def _to_epoch_seconds(value: Any) -> int | None:
    """Return ``value`` (date string, datetime or timestamp) as epoch seconds."""

    if _is_missing(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return int(value)
    timestamp = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(timestamp):
        return None
    return int(math.floor(timestamp.timestamp()))


def _format_release_timestamp(value: Any) -> str | None:
    if value in (None, "", 0):
        return None
    try:
        timestamp = float(value)
    except (TypeError, ValueError):
        return None
    try:
        dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
