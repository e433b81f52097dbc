# -*- coding: utf-8 -*-
"""
Yield dashboard: Flask app on port 5556.
Routes take a date range / filters, fetch from the reporting API (cached), run the
aggregation engine and return chart-ready JSON. Also hosts the SQL portal blueprint
and the persisted dashboard settings.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from analytics.service import (
    run_fail_check,
    run_filtered_yields,
    run_most_recent_fail,
    run_packing_daily,
    run_packing_weekly,
    run_pareto,
    run_records_by_error,
    run_snfn_report,
    run_station_performance,
    run_station_times,
    run_test_yields,
    run_throughput,
    run_xbar_r,
)
from config.app_config import FLASK_DEBUG, FLASK_HOST, FLASK_PORT, LOG_LEVEL, REPORT_API_BASE
from dashboard.state import SettingsStore
from report_api.cache import data_cache
from report_api.client import normalize_list
from report_api.poller import scheduler
from sql_portal.routes import sql_portal_bp

logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

BODY_ERROR = "request body must be a JSON object"

app = Flask(__name__)
app.register_blueprint(sql_portal_bp)

_settings_lock = threading.Lock()
_settings_store: Optional[SettingsStore] = None

# Last packing snapshot delivered by the poller
_latest_lock = threading.Lock()
_latest_packing: Optional[Dict[str, Any]] = None


def get_settings_store() -> SettingsStore:
    global _settings_store
    with _settings_lock:
        if _settings_store is None:
            _settings_store = SettingsStore()
            _settings_store.load()
        return _settings_store


def _parse_date(s: Any) -> Optional[date]:
    if not s or not str(s).strip():
        return None
    s = str(s).strip()
    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M"):
        try:
            return datetime.strptime(s[:19] if "T" in s else s, fmt).date()
        except ValueError:
            continue
    return None


def _date_range(payload: Dict[str, Any]) -> Tuple[Optional[date], Optional[date], Optional[str]]:
    """(start, end, error). Missing dates fall back to the saved dashboard range."""
    state = get_settings_store().state
    start = _parse_date(payload.get("start_date") or state.get("start_date"))
    end = _parse_date(payload.get("end_date") or state.get("end_date"))
    if start is None or end is None:
        return None, None, "start_date and end_date required (YYYY-MM-DD)"
    if end < start:
        return None, None, "end must be after start"
    return start, end, None


def _payload() -> Optional[Dict[str, Any]]:
    """JSON object body; {} when absent, None when the body is not an object."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    return body if isinstance(body, dict) else None


def _text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return str(value).strip()


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _respond(result: Dict[str, Any]):
    """Service results carrying `error` are upstream failures."""
    if result.get("error"):
        return jsonify(result), 502
    return jsonify(dict(result, ok=True))


@app.route("/api/health")
def api_health():
    return jsonify({
        "ok": True,
        "report_api_base": REPORT_API_BASE,
        "cache_entries": len(data_cache),
    })


@app.route("/api/packing/daily", methods=["POST"])
def api_packing_daily():
    """
    Body: { start_date, end_date, models?, show_trend?, exclude_zeros_in_avg? }
    Daily packed units for every day of the range plus the model/part table.
    """
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    result = run_packing_daily(
        start,
        end,
        models=normalize_list(payload.get("models")) or None,
        show_trend=bool(payload.get("show_trend")),
        exclude_zeros_in_avg=payload.get("exclude_zeros_in_avg", True) is not False,
    )
    return _respond(result)


@app.route("/api/packing/weekly", methods=["POST"])
def api_packing_weekly():
    """Body: { this_week_start?, weeks_to_show?, models?, show_trend? }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    this_week_start = None
    if payload.get("this_week_start"):
        this_week_start = _parse_date(payload.get("this_week_start"))
        if this_week_start is None:
            return jsonify({"error": "this_week_start must be YYYY-MM-DD"}), 400
    weeks = _optional_int(payload.get("weeks_to_show"))
    if weeks is not None and weeks < 1:
        return jsonify({"error": "weeks_to_show must be >= 1"}), 400
    result = run_packing_weekly(
        this_week_start=this_week_start,
        weeks_to_show=weeks,
        models=normalize_list(payload.get("models")) or None,
        show_trend=bool(payload.get("show_trend")),
        exclude_zeros_in_avg=payload.get("exclude_zeros_in_avg", True) is not False,
    )
    return _respond(result)


@app.route("/api/packing/latest")
def api_packing_latest():
    """Most recent poller snapshot of the dashboard's daily packing range."""
    with _latest_lock:
        latest = _latest_packing
    if latest is None:
        return jsonify({"error": "No data yet"}), 404
    return jsonify(latest)


@app.route("/api/snfn", methods=["POST"])
def api_snfn():
    """
    Body: { start_date, end_date, stations?, models?, error_codes?, sort_by_count?,
    sort_asc?, max_error_codes?, group_by_workstation?, page?, per_page? }
    """
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    result = run_snfn_report(
        start,
        end,
        stations=normalize_list(payload.get("stations")),
        models=normalize_list(payload.get("models")),
        error_codes=normalize_list(payload.get("error_codes")),
        sort_by_count=bool(payload.get("sort_by_count")),
        sort_asc=payload.get("sort_asc", True) is not False,
        max_error_codes=_optional_int(payload.get("max_error_codes")),
        group_by_workstation=bool(payload.get("group_by_workstation")),
        page=_optional_int(payload.get("page")) or 1,
        per_page=_optional_int(payload.get("per_page")) or 6,
    )
    return _respond(result)


@app.route("/api/pareto", methods=["POST"])
def api_pareto():
    """Body: { start_date, end_date, models?, limit? }. limit defaults to the saved bar limit."""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    limit = _optional_int(payload.get("limit"))
    if limit is None:
        limit = _optional_int(get_settings_store().state.get("bar_limit"))
    result = run_pareto(start, end, models=normalize_list(payload.get("models")) or None, limit=limit)
    return _respond(result)


@app.route("/api/throughput", methods=["POST"])
def api_throughput():
    """Body: { week_id?, models?, sort_by?: volume|yield|route, include_repair? }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    sort_by = _text(payload.get("sort_by")).lower() or "volume"
    if sort_by not in ("volume", "yield", "route"):
        sort_by = "volume"
    result = run_throughput(
        week_id=_text(payload.get("week_id")) or None,
        models=normalize_list(payload.get("models")) or None,
        sort_by=sort_by,
        include_repair=bool(payload.get("include_repair")),
    )
    return _respond(result)


@app.route("/api/filtered-yields", methods=["POST"])
def api_filtered_yields():
    """Body: { dates: [...] | "a,b", sns: [...] | "a,b" }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    if not normalize_list(payload.get("sns")) or not payload.get("dates"):
        return jsonify({"error": "dates and sns required"}), 400
    return _respond(run_filtered_yields(payload.get("dates"), payload.get("sns")))


@app.route("/api/station-times", methods=["POST"])
def api_station_times():
    """Body: { sns: [...] | "a,b" }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    sns = normalize_list(payload.get("sns"))
    if not sns:
        return jsonify({"error": "sns required"}), 400
    return _respond(run_station_times(sns))


@app.route("/api/station-performance", methods=["POST"])
def api_station_performance():
    """Body: { start_date, end_date, models?, by_fixture? }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    result = run_station_performance(
        start,
        end,
        models=normalize_list(payload.get("models")) or None,
        by_fixture=bool(payload.get("by_fixture")),
    )
    return _respond(result)


@app.route("/api/test-yields", methods=["POST"])
def api_test_yields():
    """Body: { dates? , week_of? }. Without dates: Monday-Sunday of week_of (default this week)."""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    week_of = None
    if payload.get("week_of"):
        week_of = _parse_date(payload.get("week_of"))
        if week_of is None:
            return jsonify({"error": "week_of must be YYYY-MM-DD"}), 400
    dates = normalize_list(payload.get("dates")) or None
    return _respond(run_test_yields(dates, week_of=week_of))


@app.route("/api/most-recent-fail", methods=["POST"])
def api_most_recent_fail():
    """Body: { sns: [...] | "a,b", start_date, end_date, pass_check?: stations }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    sns = normalize_list(payload.get("sns"))
    if not sns:
        return jsonify({"error": "No serial numbers found"}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    return _respond(run_most_recent_fail(sns, start, end, pass_check=payload.get("pass_check")))


@app.route("/api/fail-check", methods=["POST"])
def api_fail_check():
    """Body: { sns, stations, start_date, end_date }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    sns = normalize_list(payload.get("sns"))
    stations = normalize_list(payload.get("stations"))
    if not sns or not stations:
        return jsonify({"error": "sns and stations required"}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    return _respond(run_fail_check(sns, start, end, stations))


@app.route("/api/records-by-error", methods=["POST"])
def api_records_by_error():
    """Body: { error_codes, start_date, end_date }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    codes = normalize_list(payload.get("error_codes"))
    if not codes:
        return jsonify({"error": "error_codes required"}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    return _respond(run_records_by_error(codes, start, end))


@app.route("/api/xbar-r", methods=["POST"])
def api_xbar_r():
    """Body: { error_code, station, start_date, end_date, subgroup_size? (2-12), min_samples? }"""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    error_code = _text(payload.get("error_code"))
    station = _text(payload.get("station"))
    if not error_code or not station:
        return jsonify({"error": "error_code and station required"}), 400
    start, end, err = _date_range(payload)
    if err:
        return jsonify({"error": err}), 400
    subgroup_size = _optional_int(payload.get("subgroup_size")) or 6
    if not 2 <= subgroup_size <= 12:
        return jsonify({"error": "subgroup_size must be between 2 and 12"}), 400
    min_samples = _optional_int(payload.get("min_samples")) or 5
    result = run_xbar_r(error_code, station, start, end, subgroup_size=subgroup_size, min_samples=min_samples)
    return _respond(result)


@app.route("/api/cache/clear", methods=["POST"])
def api_cache_clear():
    """Body: { prefix? }. Without a prefix the whole cache is dropped."""
    payload = _payload()
    if payload is None:
        return jsonify({"error": BODY_ERROR}), 400
    prefix = _text(payload.get("prefix"))
    if prefix:
        removed = data_cache.invalidate_prefix(prefix)
    else:
        removed = len(data_cache)
        data_cache.clear()
    return jsonify({"ok": True, "removed": removed})


@app.route("/api/settings", methods=["GET"])
def api_settings_get():
    return jsonify(get_settings_store().state)


@app.route("/api/settings", methods=["POST"])
def api_settings_dispatch():
    """Body: an action { type, ... }. Returns the new state."""
    action = request.get_json(silent=True) or {}
    if not isinstance(action, dict) or not action.get("type"):
        return jsonify({"error": "action type required"}), 400
    try:
        state = get_settings_store().dispatch(action)
    except OSError as e:
        logger.exception("saving settings failed")
        return jsonify({"error": f"could not save settings: {e}"}), 500
    return jsonify(state)


def _poll_packing() -> Dict[str, Any]:
    state = get_settings_store().state
    start = _parse_date(state.get("start_date"))
    end = _parse_date(state.get("end_date"))
    if start is None or end is None or end < start:
        return {"error": "saved date range is invalid", "data": []}
    return run_packing_daily(start, end)


def _store_packing(data: Dict[str, Any]) -> None:
    """Keep the last good snapshot; failed polls are logged only."""
    global _latest_packing
    if data.get("error"):
        logger.warning("packing poll failed: %s", data["error"])
        return
    with _latest_lock:
        _latest_packing = data


def start_polling() -> int:
    return scheduler.subscribe("packing", _poll_packing, _store_packing, cache_prefix="packing_")


if __name__ == "__main__":
    start_polling()
    app.run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
