# -*- coding: utf-8 -*-
"""
Report service: fetch from the reporting API, map rows, run the aggregation engine.
Plain functions; no Flask. Used by app routes.
Upstream failures are returned as {"error": message, ...empty data} instead of raised.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from analytics.dates import date_range_keys, end_of_iso_week, start_of_iso_week
from analytics.fail_status import fail_status_table, status_counts
from analytics.models import ModelResolver
from analytics.packing import chart_payload, daily_series, packing_table, weekly_series
from analytics.pareto import pareto_series, sort_by_count
from analytics.snfn import collect_filter_options, paginate, process_station_data
from analytics.stats import station_time_stats, xbar_r, xbar_r_points
from analytics.throughput import join_weekly_tpy, merge_filtered_yields, throughput_summary
from config.analytics_config import get_max_error_codes_default, get_weeks_to_show
from config.app_config import CHUNK_SIZE, REPORT_TZ
from report_api.client import (
    chunk_list,
    fetch_error_query,
    fetch_fail_check,
    fetch_filtered_yields,
    fetch_fixture_query,
    fetch_most_recent_fail,
    fetch_packing_records,
    fetch_pass_check,
    fetch_records_by_error,
    fetch_sn_check,
    fetch_snfn_records,
    fetch_station_times,
    fetch_test_yields,
    fetch_tpy_daily,
    fetch_tpy_weekly,
    fetch_workstation_query,
    fetch_xbar_r_counts,
    normalize_list,
)
from report_api.errors import BatchFailure, FetchError, ImportCancelled
from report_api.mappers import flatten_daily_tpy_payload, flatten_packing_payload, to_iso_date

logger = logging.getLogger(__name__)

SNFN_ROUTE = "/api/v1/snfn/station-errors"
PARETO_ROUTE = "/api/v1/snfn/model-errors"
STATION_PERFORMANCE_ROUTE = "/api/v1/functional-testing/station-performance"
FIXTURE_PERFORMANCE_ROUTE = "/api/v1/functional-testing/fixture-performance"


def today() -> date:
    """Current calendar day in the plant timezone."""
    return datetime.now(REPORT_TZ).date()


def _model_param(models: Optional[Iterable[str]]) -> List[Dict[str, Any]]:
    return [{"id": "model", "value": ",".join(normalize_list(list(models)))}] if models else []


def run_packing_daily(
    start: date,
    end: date,
    models: Optional[List[str]] = None,
    show_trend: bool = False,
    exclude_zeros_in_avg: bool = True,
) -> Dict[str, Any]:
    """
    Daily packed units for [start, end] (every day present, zero-filled) plus the
    model/part table. Returns chart payload {data, average, total, table}.
    """
    try:
        payload = fetch_packing_records(start, end)
    except FetchError as e:
        logger.warning("packing fetch failed: %s", e)
        return {"error": str(e), "data": [], "average": 0, "total": 0, "table": None}
    records = flatten_packing_payload(payload)
    resolver = ModelResolver()
    series = daily_series(records, start, end, models=models, resolver=resolver)
    out = chart_payload(series, show_trend=show_trend, exclude_zeros_in_avg=exclude_zeros_in_avg)
    out["table"] = packing_table(records, start, end)
    return out


def run_packing_weekly(
    this_week_start: Optional[date] = None,
    weeks_to_show: Optional[int] = None,
    models: Optional[List[str]] = None,
    show_trend: bool = False,
    exclude_zeros_in_avg: bool = True,
) -> Dict[str, Any]:
    """Packed units per ISO week for the last weeks_to_show weeks, oldest first."""
    weeks = weeks_to_show or get_weeks_to_show()
    anchor = start_of_iso_week(this_week_start or today())
    start = anchor - timedelta(weeks=weeks - 1)
    end = end_of_iso_week(anchor)
    try:
        payload = fetch_packing_records(start, end)
    except FetchError as e:
        logger.warning("packing fetch failed: %s", e)
        return {"error": str(e), "data": [], "average": 0, "total": 0}
    records = flatten_packing_payload(payload)
    series = weekly_series(records, anchor, weeks, models=models, resolver=ModelResolver())
    return chart_payload(series, show_trend=show_trend, exclude_zeros_in_avg=exclude_zeros_in_avg)


def run_snfn_report(
    start: date,
    end: date,
    stations: Optional[List[str]] = None,
    models: Optional[List[str]] = None,
    error_codes: Optional[List[str]] = None,
    sort_by_count: bool = False,
    sort_asc: bool = True,
    max_error_codes: Optional[int] = None,
    group_by_workstation: bool = False,
    page: int = 1,
    per_page: int = 6,
    route: str = SNFN_ROUTE,
) -> Dict[str, Any]:
    """
    Error-code records for the range grouped per fixture (or workstation), with the
    filter option lists built from the unfiltered records.
    """
    errors: List[str] = []
    records = fetch_snfn_records(route, start_date=start, end_date=end, on_error=errors.append)
    if errors:
        return {"error": errors[0], "page": 1, "pages": 0, "items": [], "options": None, "record_count": 0}
    if max_error_codes is None:
        max_error_codes = get_max_error_codes_default()
    groups = process_station_data(
        records,
        station_filter=stations,
        model_filter=models,
        error_code_filter=error_codes,
        sort_by_count=sort_by_count,
        sort_asc=sort_asc,
        max_error_codes=max_error_codes,
        group_by_workstation=group_by_workstation,
    )
    out = paginate(groups, page=page, per_page=per_page)
    out["options"] = collect_filter_options(records, group_by_workstation)
    out["record_count"] = len(records)
    return out


def run_pareto(
    start: date,
    end: date,
    models: Optional[List[str]] = None,
    limit: Optional[int] = None,
    route: str = PARETO_ROUTE,
) -> Dict[str, Any]:
    """Error codes by count with cumulative failure share over the whole dataset."""
    errors: List[str] = []
    rows = fetch_error_query(route, _model_param(models), start, end, key="pareto", on_error=errors.append)
    if errors:
        return {"error": errors[0], "data": [], "total_codes": 0}
    rows = sort_by_count(rows)
    return {"data": pareto_series(rows, limit=limit), "total_codes": len(rows)}


def _pick_week(weeks: List[dict], week_id: Optional[str]) -> Optional[dict]:
    if week_id:
        for w in weeks:
            if w["week_id"] == week_id:
                return w
        return None
    return weeks[0] if weeks else None


def run_throughput(
    week_id: Optional[str] = None,
    models: Optional[List[str]] = None,
    sort_by: str = "volume",
    include_repair: bool = False,
) -> Dict[str, Any]:
    """
    Station throughput for one ISO week (default: most recent available). Daily TPY
    rows of that week are summed per model and station; each model gets its route TPY.
    """
    try:
        weekly = fetch_tpy_weekly("1900-W01", "2100-W99")
    except FetchError as e:
        logger.warning("weekly TPY fetch failed: %s", e)
        return {"error": str(e), "weeks": [], "week": None, "models": []}
    weeks = [
        dict(w, week_id=str(w.get("weekId") or w.get("week_id") or ""),
             week_start=to_iso_date(w.get("weekStart") or w.get("week_start")),
             week_end=to_iso_date(w.get("weekEnd") or w.get("week_end")))
        for w in weekly if isinstance(w, dict)
    ]
    weeks = [w for w in weeks if w["week_id"]]
    weeks.sort(key=lambda w: w["week_id"], reverse=True)
    week_ids = [w["week_id"] for w in weeks]
    week = _pick_week(weeks, week_id)
    if week is None:
        return {"weeks": week_ids, "week": None, "models": []}
    try:
        daily = fetch_tpy_daily(week["week_start"], week["week_end"])
    except FetchError as e:
        logger.warning("daily TPY fetch failed: %s", e)
        return {"error": str(e), "weeks": week_ids, "week": None, "models": []}
    summary = throughput_summary(
        flatten_daily_tpy_payload(daily),
        models=models,
        sort_by=sort_by,
        include_repair=include_repair,
    )
    model_rows = [
        {"week_id": week["week_id"], "model": s["model"], "dynamic_tpy": s["tpy"], "station_count": len(s["stations"])}
        for s in summary
    ]
    joined = join_weekly_tpy([{"week_id": week["week_id"], "week_start": week["week_start"],
                               "week_end": week["week_end"]}], model_rows)
    return {"weeks": week_ids, "week": joined[0], "models": summary}


def run_filtered_yields(
    dates: Any,
    sns: Any,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Test yields restricted to a serial-number list, requested in SN batches and merged
    per model. Cancellation or a failed batch reports how many batches completed.
    """
    chunks = chunk_list(normalize_list(sns), chunk_size or CHUNK_SIZE)
    rows: List[dict] = []
    try:
        for i, chunk in enumerate(chunks):
            if cancel_event is not None and cancel_event.is_set():
                raise ImportCancelled(completed_chunks=i)
            try:
                rows.extend(fetch_filtered_yields(dates, chunk))
            except FetchError as e:
                raise BatchFailure(i, len(chunks), e) from e
    except (ImportCancelled, BatchFailure) as e:
        logger.warning("filtered yields stopped: %s", e)
        return {"error": str(e), "data": [], "completed_chunks": e.completed_chunks, "total_chunks": len(chunks)}
    return {"data": merge_filtered_yields(rows), "completed_chunks": len(chunks), "total_chunks": len(chunks)}


def run_station_times(
    sns: Any,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Per-station cycle-time box stats for the given serial numbers."""
    try:
        rows = fetch_station_times(normalize_list(sns), cancel_event=cancel_event, chunk_size=chunk_size)
    except (ImportCancelled, BatchFailure) as e:
        logger.warning("station times stopped: %s", e)
        return {"error": str(e), "stations": [], "completed_chunks": e.completed_chunks}
    return {"stations": station_time_stats(rows), "record_count": len(rows)}


def run_station_performance(
    start: date,
    end: date,
    models: Optional[List[str]] = None,
    by_fixture: bool = False,
) -> Dict[str, Any]:
    """Pass/fail counts per workstation (or per fixture), worst failure rate first."""
    errors: List[str] = []
    if by_fixture:
        rows = fetch_fixture_query(FIXTURE_PERFORMANCE_ROUTE, None, start, end, key="fixtures",
                                   on_error=errors.append)
    else:
        rows = fetch_workstation_query(STATION_PERFORMANCE_ROUTE, _model_param(models), start, end,
                                       key="workstation", on_error=errors.append)
    if errors:
        return {"error": errors[0], "data": [], "passed": 0, "failed": 0}
    rows = sorted(rows, key=lambda r: r["failure_rate"], reverse=True)
    return {
        "data": rows,
        "passed": sum(r["passed"] for r in rows),
        "failed": sum(r["failed"] for r in rows),
    }


def run_test_yields(dates: Any = None, week_of: Optional[date] = None) -> Dict[str, Any]:
    """FLA/FCT test yields per model for the given days (default: Monday-Sunday of week_of or today)."""
    if not dates:
        monday = start_of_iso_week(week_of or today())
        dates = date_range_keys(monday, end_of_iso_week(monday))
    try:
        rows = fetch_test_yields(dates)
    except FetchError as e:
        logger.warning("test yields fetch failed: %s", e)
        return {"error": str(e), "data": [], "dates": list(dates)}
    return {"data": rows, "dates": list(dates)}


def run_most_recent_fail(
    sns: Any,
    start: date,
    end: date,
    pass_check: Any = None,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
    progress: Optional[Callable[[float], Any]] = None,
) -> Dict[str, Any]:
    """
    Status of every serial number in the list: sn-check, then most-recent-fail, then
    (when pass-check stations are given) pass-check, each in SN batches. A cancelled or
    failed batch discards everything fetched so far.
    """
    sn_list = normalize_list(sns)
    stations = normalize_list(pass_check)
    steps = 3 if stations else 2

    def step_progress(step: int) -> Optional[Callable[[int, int], Any]]:
        if progress is None:
            return None
        return lambda done, total: progress((step * total + done) * 100.0 / (total * steps))

    kw = {"cancel_event": cancel_event, "chunk_size": chunk_size}
    try:
        sn_rows = fetch_sn_check(sn_list, start, end, progress=step_progress(0), **kw)
        fail_rows = fetch_most_recent_fail(sn_list, start, end, progress=step_progress(1), **kw)
        pass_rows: List[dict] = []
        if stations:
            pass_rows = fetch_pass_check(sn_list, start, end, stations, progress=step_progress(2), **kw)
    except (ImportCancelled, BatchFailure) as e:
        logger.warning("most recent fail lookup stopped: %s", e)
        return {"error": str(e), "data": [], "counts": {}}
    table = fail_status_table(sn_list, sn_rows, fail_rows, pass_rows, pass_check=bool(stations))
    return {"data": table, "counts": status_counts(table)}


def run_fail_check(
    sns: Any,
    start: date,
    end: date,
    stations: Any,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Latest failure per serial number at the given stations."""
    try:
        rows = fetch_fail_check(normalize_list(sns), start, end, normalize_list(stations),
                                cancel_event=cancel_event, chunk_size=chunk_size)
    except (ImportCancelled, BatchFailure) as e:
        logger.warning("fail check stopped: %s", e)
        return {"error": str(e), "data": []}
    return {"data": rows}


def run_records_by_error(error_codes: Any, start: date, end: date) -> Dict[str, Any]:
    """Testboard records carrying any of the raw failure codes, with per-code counts."""
    try:
        rows = fetch_records_by_error(normalize_list(error_codes), start, end)
    except FetchError as e:
        logger.warning("by-error fetch failed: %s", e)
        return {"error": str(e), "data": [], "counts": {}}
    counts: Dict[str, int] = {}
    for r in rows:
        counts[r["error_code"]] = counts.get(r["error_code"], 0) + 1
    return {"data": rows, "counts": counts}


def run_xbar_r(
    error_code: str,
    station: str,
    start: date,
    end: date,
    subgroup_size: int = 6,
    min_samples: int = 5,
) -> Dict[str, Any]:
    """X-bar / R chart of the daily share of tests failing with error_code at station."""
    try:
        rows = fetch_xbar_r_counts(error_code, station, start, end)
    except FetchError as e:
        logger.warning("x-bar-r fetch failed: %s", e)
        return {"error": str(e), "status": "no_data", "subgroups": [], "points": []}
    points = xbar_r_points(rows)
    return dict(xbar_r(points, subgroup_size=subgroup_size, min_samples=min_samples), points=points)
