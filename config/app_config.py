# -*- coding: utf-8 -*-
"""Central application configuration: paths, Flask, upstream reporting API, SQL portal."""

import os

from config.analytics_config import (
    get_cache_ttl_seconds,
    get_chunk_size,
    get_poll_interval_seconds,
    get_stations_order,
    get_timezone,
)

APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
STATE_DIR = os.environ.get("STATE_DIR", os.path.join(APP_DIR, "dashboard_state"))
SETTINGS_PATH = os.environ.get("SETTINGS_PATH", os.path.join(STATE_DIR, "settings.json"))
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", os.path.join(APP_DIR, "uploads"))

FLASK_HOST = os.environ.get("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.environ.get("FLASK_PORT", "5556"))
FLASK_DEBUG = os.environ.get("FLASK_DEBUG", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Upstream reporting API (Express layer in front of Postgres)
REPORT_API_BASE = os.environ.get("REPORT_API_BASE", "http://localhost:5000").rstrip("/")
REQUEST_TIMEOUT_SECONDS = int(os.environ.get("REQUEST_TIMEOUT_SECONDS", "60"))

# SQL portal: dedicated read-only database user
DB_HOST = os.environ.get("DB_HOST", "localhost")
DB_PORT = int(os.environ.get("DB_PORT", "5432"))
DB_NAME = os.environ.get("DB_NAME", "fox_db")
SQL_PORTAL_USER = os.environ.get("SQL_PORTAL_USER", "fox_observer")
SQL_PORTAL_PASSWORD = os.environ.get("SQL_PORTAL_PASSWORD", "")

CACHE_TTL_SECONDS = get_cache_ttl_seconds()
POLL_INTERVAL_SECONDS = get_poll_interval_seconds()
CHUNK_SIZE = get_chunk_size()
STATIONS_ORDER = get_stations_order()
REPORT_TZ = get_timezone()
