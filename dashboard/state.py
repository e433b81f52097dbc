# -*- coding: utf-8 -*-
"""
Dashboard settings: date range, bar limit, widget list and per-widget settings.
reduce() is pure; SettingsStore owns the JSON file and writes it after every change.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from copy import deepcopy
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from config.analytics_config import get_bar_limit_default
from config.app_config import REPORT_TZ, SETTINGS_PATH

logger = logging.getLogger(__name__)

# Keys written to disk; current_page is session-only.
PERSISTED_KEYS = (
    "start_date",
    "end_date",
    "bar_limit",
    "widgets",
    "widget_settings",
    "layout_mode",
    "current_mode",
)


def initial_state(today=None) -> Dict[str, Any]:
    """Last 7 days ending today (plant timezone), grid layout, no widgets."""
    if today is None:
        today = datetime.now(REPORT_TZ).date()
    return {
        "start_date": (today - timedelta(days=7)).isoformat(),
        "end_date": today.isoformat(),
        "bar_limit": get_bar_limit_default(),
        "widgets": [],
        "widget_settings": {},
        "current_page": "dashboard",
        "current_mode": "Home",
        "layout_mode": "grid",
    }


def _wid(value: Any) -> str:
    return str(value)


def reduce(state: Dict[str, Any], action: Dict[str, Any]) -> Dict[str, Any]:
    """Next state for an action {type, ...}. Unknown types return state unchanged."""
    kind = action.get("type")
    if kind == "SET_DATE_RANGE":
        return dict(state, start_date=action.get("start_date"), end_date=action.get("end_date"))
    if kind == "SET_BAR_LIMIT":
        return dict(state, bar_limit=action.get("bar_limit"))
    if kind == "ADD_WIDGET":
        widget = dict(action.get("widget") or {})
        settings = dict(state.get("widget_settings") or {})
        settings[_wid(widget.get("id"))] = {}
        return dict(state, widgets=list(state.get("widgets") or []) + [widget], widget_settings=settings)
    if kind == "REMOVE_WIDGETS":
        ids = {_wid(i) for i in action.get("widget_ids") or []}
        widgets = [w for w in state.get("widgets") or [] if _wid(w.get("id")) not in ids]
        settings = {k: v for k, v in (state.get("widget_settings") or {}).items() if k not in ids}
        return dict(state, widgets=widgets, widget_settings=settings)
    if kind == "REORDER_WIDGETS":
        return dict(state, widgets=list(action.get("widgets") or []))
    if kind == "UPDATE_WIDGET_SETTINGS":
        key = _wid(action.get("widget_id"))
        settings = dict(state.get("widget_settings") or {})
        settings[key] = dict(settings.get(key) or {}, **(action.get("settings") or {}))
        return dict(state, widget_settings=settings)
    if kind == "LOAD_SETTINGS":
        loaded = dict(action.get("settings") or {})
        loaded["widget_settings"] = loaded.get("widget_settings") or {}
        return dict(state, **loaded)
    if kind == "SET_PAGE":
        return dict(state, current_page=action.get("page"))
    if kind == "SET_MODE":
        return dict(state, current_mode=action.get("mode"))
    if kind == "SET_LAYOUT_MODE":
        return dict(state, layout_mode=action.get("mode"))
    return state


class SettingsStore:
    """Thread-safe holder of the current state, persisted to a JSON file."""

    def __init__(self, path: Optional[str] = None, state: Optional[Dict[str, Any]] = None):
        self.path = path or SETTINGS_PATH
        self._lock = threading.Lock()
        self._state = state if state is not None else initial_state()

    @property
    def state(self) -> Dict[str, Any]:
        with self._lock:
            return deepcopy(self._state)

    def load(self) -> Dict[str, Any]:
        """Apply saved settings, if any, as LOAD_SETTINGS. Unreadable files are ignored."""
        if not os.path.isfile(self.path):
            return self.state
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                saved = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("could not read settings %s: %s", self.path, e)
            return self.state
        if not isinstance(saved, dict):
            return self.state
        with self._lock:
            self._state = reduce(self._state, {"type": "LOAD_SETTINGS", "settings": saved})
            return deepcopy(self._state)

    def dispatch(self, action: Dict[str, Any]) -> Dict[str, Any]:
        """Apply an action; the file is rewritten only when the state changed."""
        with self._lock:
            new_state = reduce(self._state, action)
            changed = new_state != self._state
            self._state = new_state
            if changed:
                self._save()
            return deepcopy(self._state)

    def _save(self) -> None:
        data = {k: self._state.get(k) for k in PERSISTED_KEYS}
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)
