# -*- coding: utf-8 -*-
"""Reporting API client: parameter building, cached GETs, JSON POST queries, chunked imports."""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import requests

from config.app_config import CHUNK_SIZE, REPORT_API_BASE, REQUEST_TIMEOUT_SECONDS
from report_api.cache import DataCache, data_cache, make_cache_key
from report_api.errors import BatchFailure, FetchError, ImportCancelled
from report_api.mappers import (
    map_error_count_row,
    map_error_record,
    map_fail_record,
    map_filtered_yield_row,
    map_fixture_row,
    map_sn_check_row,
    map_station_time_row,
    map_test_yield_row,
    map_workstation_row,
    map_xbar_count_row,
    to_iso_date,
)

logger = logging.getLogger(__name__)

_session_lock = threading.Lock()
_session: Optional[requests.Session] = None


def get_session() -> requests.Session:
    """Shared keep-alive session."""
    global _session
    with _session_lock:
        if _session is None:
            _session = requests.Session()
            _session.headers.update({"Accept": "application/json"})
        return _session


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    iso = to_iso_date(value)
    return date.fromisoformat(iso) if iso else None


def format_date_param(value: Any, is_end: bool = False) -> Optional[str]:
    """Calendar day -> '...T00:00:00.000Z' (start) or '...T23:59:59.999Z' (end)."""
    d = _to_date(value)
    if d is None:
        return None
    t = dt_time(23, 59, 59, 999000) if is_end else dt_time(0, 0, 0, 0)
    instant = datetime.combine(d, t, tzinfo=timezone.utc)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"


def build_params(
    parameters: Optional[Iterable[Dict[str, Any]]] = None,
    start_date: Any = None,
    end_date: Any = None,
) -> List[Tuple[str, str]]:
    """[{id, value}] -> ordered (name, value) pairs; falsy values skipped; date bounds appended last."""
    params: List[Tuple[str, str]] = []
    for param in parameters or []:
        if not isinstance(param, dict):
            continue
        value = param.get("value")
        if value and param.get("id"):
            params.append((str(param["id"]), str(value)))
    if start_date:
        start = format_date_param(start_date)
        if start:
            params.append(("startDate", start))
    if end_date:
        end = format_date_param(end_date, is_end=True)
        if end:
            params.append(("endDate", end))
    return params


def encode_params(params: Sequence[Tuple[str, str]]) -> str:
    return urlencode(list(params))


def _decode_json(resp: requests.Response, url: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise FetchError(f"invalid JSON from {url}: {e}", status=resp.status_code, reason=resp.reason or "", url=url)


def _request(method: str, url: str, **kwargs) -> Any:
    """Issue one request; non-2xx, transport and JSON errors become FetchError."""
    try:
        resp = get_session().request(method, url, timeout=REQUEST_TIMEOUT_SECONDS, **kwargs)
    except requests.RequestException as e:
        raise FetchError(f"request to {url} failed: {e}", url=url) from e
    if not resp.ok:
        raise FetchError(
            f"Server error: {resp.status_code} {resp.reason}",
            status=resp.status_code,
            reason=resp.reason or "",
            url=url,
        )
    return _decode_json(resp, url)


def fetch_with_cache(
    url: str,
    cache_key: str,
    on_result: Optional[Callable[[List[dict]], Any]],
    map_fn: Callable[[Any], dict],
    cache: Optional[DataCache] = None,
) -> List[dict]:
    """
    Cached GET. Hit: on_result(cached) without a network call. Miss: GET, map every row,
    store under cache_key, on_result(mapped). Raises FetchError on a failed request.
    """
    cache = cache if cache is not None else data_cache
    cached = cache.get(cache_key)
    if cached is not None:
        if on_result is not None:
            on_result(cached)
        return cached
    data = _request("GET", url)
    mapped = [map_fn(row) for row in data] if isinstance(data, list) else []
    cache.set(cache_key, mapped)
    if on_result is not None:
        on_result(mapped)
    return mapped


def fetch_query(
    route: str,
    key: str,
    map_fn: Callable[[Any], dict],
    parameters: Optional[Iterable[Dict[str, Any]]] = None,
    start_date: Any = None,
    end_date: Any = None,
    on_result: Optional[Callable[[List[dict]], Any]] = None,
    on_error: Optional[Callable[[str], Any]] = None,
    base: Optional[str] = None,
    cache: Optional[DataCache] = None,
) -> List[dict]:
    """
    Build params + cache key, then fetch_with_cache. Failures are logged, reported to
    on_error with the message and degrade to [].
    """
    params = build_params(parameters, start_date, end_date)
    query = encode_params(params)
    cache_key = f"{key}_{query}"
    url = f"{base or REPORT_API_BASE}{route}"
    if query:
        url += ("&" if "?" in url else "?") + query
    try:
        return fetch_with_cache(url, cache_key, on_result, map_fn, cache=cache)
    except FetchError as e:
        logger.warning("fetch %s failed: %s", key, e)
        if on_error is not None:
            on_error(str(e))
        if on_result is not None:
            on_result([])
        return []


def import_query(
    base: Optional[str],
    route: str,
    params: Optional[Dict[str, Any]] = None,
    method: str = "GET",
    body: Any = None,
) -> List[dict]:
    """
    GET with query string or POST with JSON body (body or params).
    Raises FetchError carrying status and reason; a non-list response yields [].
    """
    url = f"{base or REPORT_API_BASE}{route}"
    method = (method or "GET").upper()
    if method == "GET":
        query = urlencode(params or {}, doseq=True)
        if query:
            url += ("&" if "?" in url else "?") + query
        data = _request("GET", url)
    elif method == "POST":
        data = _request("POST", url, json=body if body is not None else (params or {}))
    else:
        raise ValueError(f"unsupported method: {method}")
    return data if isinstance(data, list) else []

def normalize_list(values: Any) -> List[str]:
    """List or comma-separated string -> stripped, non-empty strings."""
    if values is None:
        return []
    if isinstance(values, str):
        values = values.split(",")
    if not isinstance(values, (list, tuple)):
        return []
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def normalize_dates(dates: Any) -> List[str]:
    """Dates -> YYYY-MM-DD; unparseable entries dropped."""
    if isinstance(dates, (date, datetime)):
        dates = [dates]
    if isinstance(dates, (list, tuple)):
        items: List[Any] = [d for d in dates if d is not None]
    else:
        items = normalize_list(dates)
    out = []
    for d in items:
        iso = to_iso_date(d)
        if iso:
            out.append(iso)
    return out


def chunk_list(items: Sequence[Any], size: int) -> List[List[Any]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def chunked_import(
    route: str,
    items: Sequence[Any],
    build_body: Callable[[List[Any]], Dict[str, Any]],
    chunk_size: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[Callable[[int, int], Any]] = None,
    base: Optional[str] = None,
) -> List[dict]:
    """
    POST items in sequential batches and concatenate the results.
    cancel_event is checked before each batch (ImportCancelled). A failing batch raises
    BatchFailure and no further batches are issued.
    """
    chunks = chunk_list(list(items), chunk_size or CHUNK_SIZE)
    total = len(chunks)
    results: List[dict] = []
    for i, chunk in enumerate(chunks):
        if cancel_event is not None and cancel_event.is_set():
            raise ImportCancelled(completed_chunks=i)
        logger.debug("chunk %d/%d (%d items) -> %s", i + 1, total, len(chunk), route)
        try:
            results.extend(import_query(base, route, method="POST", body=build_body(chunk)))
        except FetchError as e:
            raise BatchFailure(i, total, e) from e
        if progress is not None:
            progress(i + 1, total)
    return results


# Endpoint helpers


def fetch_workstation_query(route: str, parameters=None, start_date=None, end_date=None, key="workstation", **kw) -> List[dict]:
    return fetch_query(route, key, map_workstation_row, parameters, start_date, end_date, **kw)


def fetch_fixture_query(route: str, parameters=None, start_date=None, end_date=None, key="fixture", **kw) -> List[dict]:
    return fetch_query(route, key, map_fixture_row, parameters, start_date, end_date, **kw)


def fetch_error_query(route: str, parameters=None, start_date=None, end_date=None, key="error", **kw) -> List[dict]:
    return fetch_query(route, key, map_error_count_row, parameters, start_date, end_date, **kw)


def fetch_snfn_records(route: str, parameters=None, start_date=None, end_date=None, key="snfn", **kw) -> List[dict]:
    return fetch_query(route, key, map_error_record, parameters, start_date, end_date, **kw)


def _cached_post(
    cache_key: str,
    route: str,
    body: Dict[str, Any],
    map_fn: Callable[[Any], dict],
    base: Optional[str] = None,
    cache: Optional[DataCache] = None,
) -> List[dict]:
    cache = cache if cache is not None else data_cache
    cached = cache.get(cache_key)
    if cached is not None:
        return cached
    mapped = [map_fn(r) for r in import_query(base, route, method="POST", body=body)]
    cache.set(cache_key, mapped)
    return mapped


def fetch_test_yields(
    dates: Any,
    key: str = "test_yields",
    route: str = "/api/v1/tpy/test-yields",
    base: Optional[str] = None,
    cache: Optional[DataCache] = None,
) -> List[dict]:
    """POST {dates}; empty date list -> [] without a request. Raises FetchError."""
    normalized = normalize_dates(dates)
    if not normalized:
        return []
    cache_key = f"{key}_{'|'.join(normalized)}"
    return _cached_post(cache_key, route, {"dates": normalized}, map_test_yield_row, base, cache)


def fetch_filtered_yields(
    dates: Any,
    sns: Any,
    key: str = "filtered_yields",
    route: str = "/api/v1/workstation-routes/filtered-yields",
    base: Optional[str] = None,
    cache: Optional[DataCache] = None,
) -> List[dict]:
    """POST {dates, sns}; either list empty -> []. Raises FetchError."""
    normalized_dates = normalize_dates(dates)
    normalized_sns = normalize_list(sns)
    if not normalized_dates or not normalized_sns:
        return []
    cache_key = f"{key}_d:{'|'.join(normalized_dates)}_sn:{'|'.join(normalized_sns)}"
    body = {"dates": normalized_dates, "sns": normalized_sns}
    return _cached_post(cache_key, route, body, map_filtered_yield_row, base, cache)


def fetch_station_times(
    sns: Sequence[str],
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
    base: Optional[str] = None,
) -> List[dict]:
    """Chunked POST {sns} to station-times. Raises BatchFailure / ImportCancelled."""
    rows = chunked_import(
        "/api/v1/workstation-routes/station-times",
        normalize_list(list(sns)),
        lambda chunk: {"sns": chunk},
        chunk_size=chunk_size,
        cancel_event=cancel_event,
        base=base,
    )
    return [map_station_time_row(r) for r in rows]


def fetch_tpy_daily(start_date: Any, end_date: Any, model: Optional[str] = None, base: Optional[str] = None,
                    cache: Optional[DataCache] = None) -> List[dict]:
    """Raw daily TPY payload (grouped or flat rows). Raises FetchError."""
    params = {"startDate": to_iso_date(start_date), "endDate": to_iso_date(end_date)}
    if model:
        params["model"] = model
    cache = cache if cache is not None else data_cache
    cache_key = make_cache_key("tpy_daily", params)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached
    data = import_query(base, "/api/v1/tpy/daily", params)
    cache.set(cache_key, data)
    return data


def fetch_tpy_weekly(start_week: str, end_week: str, base: Optional[str] = None,
                     cache: Optional[DataCache] = None) -> List[dict]:
    params = {"startWeek": start_week, "endWeek": end_week}
    cache = cache if cache is not None else data_cache
    cache_key = make_cache_key("tpy_weekly", params)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached
    data = import_query(base, "/api/v1/tpy/weekly", params)
    cache.set(cache_key, data)
    return data


def fetch_packing_records(start_date: Any, end_date: Any, base: Optional[str] = None,
                          cache: Optional[DataCache] = None) -> Any:
    """Raw packing payload (nested model/parts/date object or flat rows). Raises FetchError."""
    params = {
        "startDate": format_date_param(start_date),
        "endDate": format_date_param(end_date, is_end=True),
    }
    cache = cache if cache is not None else data_cache
    cache_key = make_cache_key("packing", params)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached
    url = f"{base or REPORT_API_BASE}/api/v1/packing/packing-records?{urlencode(params)}"
    data = _request("GET", url)
    if not isinstance(data, (dict, list)):
        data = []
    cache.set(cache_key, data)
    return data


# Testboard records: POST bodies carry {sns | checkArray, startDate, endDate, ...}

TESTBOARD_ROUTE = "/api/v1/testboard-records"


def _date_body(start_date: Any, end_date: Any) -> Dict[str, Any]:
    return {
        "startDate": format_date_param(start_date),
        "endDate": format_date_param(end_date, is_end=True),
    }


def _chunked_sn_lookup(
    endpoint: str,
    sns: Sequence[str],
    start_date: Any,
    end_date: Any,
    map_fn: Callable[[Any], dict],
    extra: Optional[Dict[str, Any]] = None,
    cancel_event: Optional[threading.Event] = None,
    chunk_size: Optional[int] = None,
    progress: Optional[Callable[[int, int], Any]] = None,
    base: Optional[str] = None,
) -> List[dict]:
    bounds = _date_body(start_date, end_date)

    def build_body(chunk: List[Any]) -> Dict[str, Any]:
        body = dict(bounds, sns=chunk)
        if extra:
            body.update(extra)
        return body

    rows = chunked_import(
        f"{TESTBOARD_ROUTE}/{endpoint}",
        normalize_list(list(sns)),
        build_body,
        chunk_size=chunk_size,
        cancel_event=cancel_event,
        progress=progress,
        base=base,
    )
    return [map_fn(r) for r in rows]


def fetch_sn_check(sns: Sequence[str], start_date: Any, end_date: Any, **kw) -> List[dict]:
    """Latest record (sn, pn, time) of each serial number seen in the range."""
    return _chunked_sn_lookup("sn-check", sns, start_date, end_date, map_sn_check_row, **kw)


def fetch_most_recent_fail(sns: Sequence[str], start_date: Any, end_date: Any, **kw) -> List[dict]:
    """Most recent failing test per serial number (testboard or workstation log)."""
    return _chunked_sn_lookup("most-recent-fail", sns, start_date, end_date, map_fail_record, **kw)


def fetch_pass_check(sns: Sequence[str], start_date: Any, end_date: Any, stations: Sequence[str], **kw) -> List[dict]:
    """Latest pass per serial number at any of the given stations."""
    extra = {"passCheck": normalize_list(list(stations))}
    return _chunked_sn_lookup("pass-check", sns, start_date, end_date, map_sn_check_row, extra=extra, **kw)


def fetch_fail_check(sns: Sequence[str], start_date: Any, end_date: Any, stations: Sequence[str], **kw) -> List[dict]:
    """Latest testboard failure per serial number at any of the given stations."""
    extra = {"passCheck": normalize_list(list(stations))}
    return _chunked_sn_lookup("fail-check", sns, start_date, end_date, map_fail_record, extra=extra, **kw)


def fetch_records_by_error(error_codes: Sequence[str], start_date: Any, end_date: Any,
                           base: Optional[str] = None) -> List[dict]:
    """Every testboard record with one of the raw failure codes. Raises FetchError."""
    body = dict(_date_body(start_date, end_date), checkArray=normalize_list(list(error_codes)))
    rows = import_query(base, f"{TESTBOARD_ROUTE}/by-error", method="POST", body=body)
    return [map_fail_record(r) for r in rows]


def fetch_xbar_r_counts(error_code: str, station: str, start_date: Any, end_date: Any,
                        base: Optional[str] = None) -> List[dict]:
    """Daily {date, error_code_count, test_count} for one code suffix at one station."""
    body = dict(_date_body(start_date, end_date), ec=error_code, station=station)
    rows = import_query(base, f"{TESTBOARD_ROUTE}/x-bar-r", method="POST", body=body)
    return [map_xbar_count_row(r) for r in rows]
