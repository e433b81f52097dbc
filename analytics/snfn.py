# -*- coding: utf-8 -*-
"""
SNFN report: filter error-code records, group by fixture or workstation, tally error
codes per group, sort groups and keep the top-N codes of each group.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from report_api.mappers import to_int


def _clean(s: Any) -> str:
    return (str(s) if s is not None else "").strip()


def group_field(group_by_workstation: bool) -> str:
    """Record field used as the grouping key."""
    return "workstation" if group_by_workstation else "fixture"


def group_value(record: dict, group_by_workstation: bool = False) -> str:
    """Grouping key of a record; falls back to a plain `station` field."""
    v = _clean(record.get(group_field(group_by_workstation)))
    return v or _clean(record.get("station"))


def _as_set(values: Optional[Iterable[Any]]) -> set:
    return {_clean(v) for v in (values or []) if _clean(v)}


def filter_records(
    records: List[dict],
    stations: Optional[Iterable[str]] = None,
    models: Optional[Iterable[str]] = None,
    error_codes: Optional[Iterable[str]] = None,
    group_by_workstation: bool = False,
) -> List[dict]:
    """
    OR within a field, AND across fields; an empty filter does not restrict.
    Records are returned unchanged, in source order.
    """
    st_set = _as_set(stations)
    model_set = _as_set(models)
    code_set = _as_set(error_codes)
    out = []
    for r in records or []:
        if not isinstance(r, dict):
            continue
        if st_set and group_value(r, group_by_workstation) not in st_set:
            continue
        if model_set and _clean(r.get("model")) not in model_set:
            continue
        if code_set and _clean(r.get("error_code")) not in code_set:
            continue
        out.append(r)
    return out


def group_records(records: List[dict], group_by_workstation: bool = False) -> List[Dict[str, Any]]:
    """
    One group per station key in first-seen order:
    {station, total, codes: [{error_code, count, error_desc}] (first-seen), models}.
    """
    by_st: Dict[str, Dict[str, Any]] = {}
    for r in records or []:
        key = group_value(r, group_by_workstation)
        if key not in by_st:
            by_st[key] = {"station": key, "total": 0, "codes": {}, "models": []}
        g = by_st[key]
        count = to_int(r.get("count"), default=1)
        code = _clean(r.get("error_code"))
        if code not in g["codes"]:
            g["codes"][code] = {"error_code": code, "count": 0, "error_desc": _clean(r.get("error_desc"))}
        g["codes"][code]["count"] += count
        if not g["codes"][code]["error_desc"]:
            g["codes"][code]["error_desc"] = _clean(r.get("error_desc"))
        g["total"] += count
        model = _clean(r.get("model"))
        if model and model not in g["models"]:
            g["models"].append(model)
    out = []
    for g in by_st.values():
        out.append({
            "station": g["station"],
            "total": g["total"],
            "codes": list(g["codes"].values()),
            "models": g["models"],
        })
    return out


def sort_groups(groups: List[dict], sort_by_count: bool = False, sort_asc: bool = True) -> List[dict]:
    """By station name or total count. Stable: equal keys keep first-seen order either way."""
    if sort_by_count:
        return sorted(groups, key=lambda g: g["total"], reverse=not sort_asc)
    return sorted(groups, key=lambda g: (g["station"].lower(), g["station"]), reverse=not sort_asc)


def truncate_codes(groups: List[dict], max_error_codes: Optional[int]) -> List[dict]:
    """Keep each group's top-N codes by count (stable ties); the rest are discarded."""
    out = []
    for g in groups:
        codes = sorted(g["codes"], key=lambda c: c["count"], reverse=True)
        if max_error_codes is not None:
            codes = codes[:max(int(max_error_codes), 0)]
        out.append(dict(g, codes=codes))
    return out


def process_station_data(
    records: List[dict],
    station_filter: Optional[Iterable[str]] = None,
    model_filter: Optional[Iterable[str]] = None,
    error_code_filter: Optional[Iterable[str]] = None,
    sort_by_count: bool = False,
    sort_asc: bool = True,
    max_error_codes: Optional[int] = None,
    group_by_workstation: bool = False,
) -> List[dict]:
    """filter -> group -> sort -> truncate."""
    filtered = filter_records(records, station_filter, model_filter, error_code_filter, group_by_workstation)
    groups = group_records(filtered, group_by_workstation)
    groups = sort_groups(groups, sort_by_count=sort_by_count, sort_asc=sort_asc)
    return truncate_codes(groups, max_error_codes)


def collect_filter_options(records: List[dict], group_by_workstation: bool = False) -> Dict[str, Any]:
    """Distinct stations, models and error codes, plus error code -> description."""
    stations, models, codes = set(), set(), set()
    code_desc: Dict[str, str] = {}
    for r in records or []:
        st = group_value(r, group_by_workstation)
        if st:
            stations.add(st)
        m = _clean(r.get("model"))
        if m:
            models.add(m)
        ec = _clean(r.get("error_code"))
        if ec:
            codes.add(ec)
            desc = _clean(r.get("error_desc"))
            if desc and ec not in code_desc:
                code_desc[ec] = desc
    return {
        "stations": sorted(stations),
        "models": sorted(models),
        "error_codes": sorted(codes),
        "code_desc": code_desc,
    }


def paginate(groups: List[dict], page: int = 1, per_page: int = 6) -> Dict[str, Any]:
    """1-based page slice with page count."""
    per_page = max(int(per_page), 1)
    pages = (len(groups) + per_page - 1) // per_page
    page = min(max(int(page), 1), max(pages, 1))
    start = (page - 1) * per_page
    return {"page": page, "pages": pages, "items": groups[start:start + per_page]}
