# -*- coding: utf-8 -*-
"""Yield dashboard configuration: app, upstream API, analytics defaults."""

from config.app_config import (
    APP_DIR,
    CACHE_TTL_SECONDS,
    CHUNK_SIZE,
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    POLL_INTERVAL_SECONDS,
    REPORT_API_BASE,
    REPORT_TZ,
    SETTINGS_PATH,
    STATIONS_ORDER,
    UPLOAD_DIR,
)
from config.analytics_config import get_model_aliases

__all__ = [
    "APP_DIR",
    "CACHE_TTL_SECONDS",
    "CHUNK_SIZE",
    "FLASK_DEBUG",
    "FLASK_HOST",
    "FLASK_PORT",
    "POLL_INTERVAL_SECONDS",
    "REPORT_API_BASE",
    "REPORT_TZ",
    "SETTINGS_PATH",
    "STATIONS_ORDER",
    "UPLOAD_DIR",
    "get_model_aliases",
]
