# -*- coding: utf-8 -*-
"""Analytics config: load/save analytics_config.json, model aliases, stations, cache and polling defaults."""

import json
import logging
import os
from typing import Any, Dict, List

import pytz

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
_CONFIG_PATH = os.environ.get("ANALYTICS_CONFIG_PATH", os.path.join(_CONFIG_DIR, "analytics_config.json"))

_DEFAULT_STATIONS_ORDER = ["ASSY2", "FLA", "FLB", "FCT", "BAT", "PACKING"]

_DEFAULT_CONFIG = {
    "model_aliases": {
        "Tesla SXM4": ["SXM4", "SXM4 HGX"],
        "Tesla SXM5": ["SXM5", "SXM5 HGX"],
        "SXM6": ["Tesla SXM6"],
    },
    "stations_order": _DEFAULT_STATIONS_ORDER,
    "repair_station_prefixes": ["R_", "REPAIR"],
    "timezone": "America/Los_Angeles",
    "max_error_codes_default": 5,
    "weeks_to_show": 12,
    "bar_limit_default": 7,
    "cache_ttl_seconds": 300,
    "poll_interval_seconds": 300,
    "chunk_size": 2000,
}

_cached_config: Dict[str, Any] = {}


def _load_config() -> Dict[str, Any]:
    """Load config from JSON file, merge with defaults."""
    global _cached_config
    if _cached_config:
        return _cached_config
    result = json.loads(json.dumps(_DEFAULT_CONFIG))
    if os.path.isfile(_CONFIG_PATH):
        try:
            with open(_CONFIG_PATH, "r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    _merge(result, data)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("ignoring unreadable %s: %s", _CONFIG_PATH, e)
    _cached_config = result
    return result


def _merge(base: dict, override: dict) -> None:
    """Merge override into base in-place. A saved alias table replaces the default one."""
    for k, v in override.items():
        if k in base and k != "model_aliases" and isinstance(base[k], dict) and isinstance(v, dict):
            _merge(base[k], v)
        else:
            base[k] = v


def _reload_config() -> None:
    """Clear cache so next load reads from file."""
    global _cached_config
    _cached_config = {}


def get(key: str, default: Any = None) -> Any:
    """Get a top-level config value."""
    cfg = _load_config()
    return cfg.get(key, default)


def _positive_int(key: str) -> int:
    val = get(key)
    if isinstance(val, (int, float)) and int(val) >= 1:
        return int(val)
    return _DEFAULT_CONFIG[key]


def get_model_aliases() -> Dict[str, List[str]]:
    """canonical model name -> list of upstream aliases."""
    val = get("model_aliases")
    if not isinstance(val, dict):
        val = _DEFAULT_CONFIG["model_aliases"]
    out: Dict[str, List[str]] = {}
    for canonical, aliases in val.items():
        if not isinstance(canonical, str) or not canonical.strip():
            continue
        if not isinstance(aliases, list):
            aliases = []
        out[canonical.strip()] = [str(a).strip() for a in aliases if str(a).strip()]
    return out


def set_model_aliases(aliases: Dict[str, List[str]]) -> None:
    """Save model_aliases to config file and reload."""
    cfg = _load_config()
    cfg["model_aliases"] = {
        str(k).strip(): [str(a).strip() for a in (v or []) if str(a).strip()]
        for k, v in aliases.items()
        if str(k).strip()
    }
    with open(_CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2, ensure_ascii=False)
    _reload_config()


def get_stations_order() -> List[str]:
    """Preferred station order for throughput and SNFN tables."""
    val = get("stations_order")
    if isinstance(val, list) and all(isinstance(x, str) for x in val):
        return list(val)
    return list(_DEFAULT_STATIONS_ORDER)


def get_repair_station_prefixes() -> List[str]:
    val = get("repair_station_prefixes")
    if isinstance(val, list):
        return [str(x).strip().upper() for x in val if str(x).strip()]
    return list(_DEFAULT_CONFIG["repair_station_prefixes"])


def get_max_error_codes_default() -> int:
    """Default top-N error codes kept per SNFN group."""
    return _positive_int("max_error_codes_default")


def get_weeks_to_show() -> int:
    """Weeks in the packing weekly summary."""
    return _positive_int("weeks_to_show")


def get_bar_limit_default() -> int:
    return _positive_int("bar_limit_default")


def get_cache_ttl_seconds() -> int:
    """Per-entry TTL for the response cache."""
    return _positive_int("cache_ttl_seconds")


def get_poll_interval_seconds() -> int:
    """Shared polling scheduler interval (5 minutes)."""
    return _positive_int("poll_interval_seconds")


def get_chunk_size() -> int:
    """Batch size for serial-number list imports."""
    return _positive_int("chunk_size")


def get_timezone():
    """Plant timezone used for 'today' in weekly windows."""
    tz_name = get("timezone") or _DEFAULT_CONFIG["timezone"]
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(_DEFAULT_CONFIG["timezone"])
