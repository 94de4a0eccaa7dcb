"""Game catalog API routes."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from flask import Blueprint, jsonify, request

from catalog.criteria import FilterCriteria
from catalog.service import CatalogService
from routes.api_utils import BadRequestError, handle_api_errors

games_blueprint = Blueprint("games", __name__)

_context: dict[str, Any] = {}


def configure(context: Mapping[str, Any]) -> None:
    """Provide shared state required by the game endpoints."""
    _context.update(context)


def _ctx(key: str) -> Any:
    if key not in _context:
        raise RuntimeError(f"games routes missing context value: {key}")
    return _context[key]


def _get_service() -> CatalogService:
    getter: Callable[[], CatalogService] = _ctx("get_service")
    return getter()


def _serialize(games) -> list[dict[str, Any]]:
    return [game.to_dict() for game in games]


@games_blueprint.route("/api/games")
@handle_api_errors
def api_games():
    service = _get_service()
    criteria = FilterCriteria.from_params(request.args)
    games = _serialize(service.search_games(criteria))
    if request.args.get("includeCount", "false").lower() == "true":
        total_count = service.get_games_count(criteria)
        return jsonify({"games": games, "totalCount": total_count})
    return jsonify(games)


@games_blueprint.route("/api/games/popular")
@handle_api_errors
def api_popular_games():
    limit = request.args.get("limit", 20)
    return jsonify(_serialize(_get_service().get_popular_games(limit)))


@games_blueprint.route("/api/games/upcoming")
@handle_api_errors
def api_upcoming_games():
    limit = request.args.get("limit", 12)
    return jsonify(_serialize(_get_service().get_upcoming_games(limit)))


@games_blueprint.route("/api/games/bulk", methods=["POST"])
@handle_api_errors
def api_games_bulk():
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids") if isinstance(payload, Mapping) else None
    if not isinstance(ids, list):
        raise BadRequestError("ids must be an array of numbers")
    return jsonify({"games": _serialize(_get_service().get_games_by_ids(ids))})


@games_blueprint.route("/api/games/<id_or_slug>")
@handle_api_errors
def api_game(id_or_slug: str):
    return jsonify(_get_service().get_game_by_id(id_or_slug).to_dict())


__all__ = ["configure", "games_blueprint"]
