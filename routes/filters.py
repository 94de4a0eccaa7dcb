"""Facet statistics route with a global request throttle."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable, Mapping

from flask import Blueprint, jsonify, request

import config
from catalog.criteria import FilterCriteria
from catalog.service import CatalogService
from routes.api_utils import handle_api_errors

logger = logging.getLogger(__name__)

filters_blueprint = Blueprint("filters", __name__)

_context: dict[str, Any] = {}


class RequestThrottle:
    """Space successive callers at least ``min_interval`` seconds apart."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._min_interval = max(0.0, float(min_interval))
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = Lock()
        self._last_request: float | None = None

    def wait(self) -> float:
        """Block until the caller may proceed and return the time waited."""
        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_request is not None:
                elapsed = now - self._last_request
                if elapsed < self._min_interval:
                    waited = self._min_interval - elapsed
                    logger.info("Throttling filter stats request for %.3fs", waited)
                    self._sleep(waited)
                    now = self._clock()
            self._last_request = now
            return waited


def configure(context: Mapping[str, Any]) -> None:
    """Provide shared state required by the filter endpoints."""
    _context.clear()
    _context.update(context)


def _ctx(key: str) -> Any:
    if key not in _context:
        raise RuntimeError(f"filters routes missing context value: {key}")
    return _context[key]


def _get_throttle() -> RequestThrottle:
    throttle = _context.get("throttle")
    if throttle is None:
        throttle = RequestThrottle(config.FILTER_STATS_MIN_INTERVAL_SECONDS)
        _context["throttle"] = throttle
    return throttle


@filters_blueprint.route("/api/filters/stats")
@handle_api_errors
def api_filter_stats():
    _get_throttle().wait()
    getter: Callable[[], CatalogService] = _ctx("get_service")
    criteria = FilterCriteria.from_params(request.args)
    stats = getter().get_facet_stats(criteria)
    return jsonify(stats.to_dict())


__all__ = ["RequestThrottle", "configure", "filters_blueprint"]
