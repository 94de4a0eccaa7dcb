"""Flask application factory and logging setup."""
from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Callable

from flask import Flask

import config
from catalog.service import CatalogService, get_catalog_service
from routes import filters as routes_filters
from routes import games as routes_games

logger = logging.getLogger(__name__)


def _determine_log_level(flask_app: Flask) -> int:
    if flask_app.debug:
        return logging.DEBUG
    if os.environ.get('FLASK_DEBUG', '').lower() in {'1', 'true', 'yes', 'on'}:
        return logging.DEBUG
    level_name = os.environ.get('LOG_LEVEL', '').strip().upper()
    level = logging.getLevelName(level_name) if level_name else None
    if isinstance(level, int):
        return level
    return logging.INFO


def configure_logging(flask_app: Flask, log_file: str | None = None) -> None:
    log_level = _determine_log_level(flask_app)
    log_path = Path(log_file or config.LOG_FILE)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass

    for handler in list(flask_app.logger.handlers):
        flask_app.logger.removeHandler(handler)

    logging.config.dictConfig(
        {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'standard': {
                    'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
                    'datefmt': '%Y-%m-%d %H:%M:%S',
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'formatter': 'standard',
                    'level': log_level,
                    'stream': 'ext://sys.stdout',
                },
                'file': {
                    'class': 'logging.handlers.RotatingFileHandler',
                    'formatter': 'standard',
                    'level': logging.DEBUG,
                    'filename': os.fspath(log_path),
                    'maxBytes': 5 * 1024 * 1024,
                    'backupCount': 5,
                    'encoding': 'utf-8',
                },
            },
            'root': {
                'level': log_level,
                'handlers': ['console', 'file'],
            },
        }
    )

    flask_app.logger.setLevel(log_level)
    logger.setLevel(log_level)


def create_app(
    *,
    get_service: Callable[[], CatalogService] | None = None,
    throttle: routes_filters.RequestThrottle | None = None,
    setup_logging: bool = True,
) -> Flask:
    """Return a Flask application serving the catalog API."""
    flask_app = Flask(__name__)
    if setup_logging:
        configure_logging(flask_app)

    if not config.validate_igdb_credentials():
        logger.warning('IGDB credentials missing; catalog requests will fail with 503')

    service_getter = get_service or get_catalog_service
    routes_games.configure({'get_service': service_getter})
    routes_filters.configure(
        {
            'get_service': service_getter,
            'throttle': throttle
            or routes_filters.RequestThrottle(config.FILTER_STATS_MIN_INTERVAL_SECONDS),
        }
    )

    flask_app.register_blueprint(routes_games.games_blueprint)
    flask_app.register_blueprint(routes_filters.filters_blueprint)
    return flask_app


__all__ = ['configure_logging', 'create_app']
