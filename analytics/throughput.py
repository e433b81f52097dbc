# -*- coding: utf-8 -*-
"""
Throughput: per-model, per-station pass/fail sums from canonical daily TPY rows,
station throughput yield, model TPY, weekly row joins and filtered-yield merges.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from analytics.models import ModelResolver
from config.analytics_config import get_repair_station_prefixes
from config.app_config import STATIONS_ORDER
from report_api.mappers import to_float, to_int, to_optional_float


def _norm(s: Any) -> str:
    return (str(s) if s is not None else "").strip().upper()


def _station_sort_key(st: str) -> Tuple[int, Any]:
    """Order: STATIONS_ORDER first, then alphabetical."""
    try:
        return (0, STATIONS_ORDER.index(_norm(st)))
    except ValueError:
        return (1, _norm(st))


def is_repair_station(station: str, prefixes: Optional[List[str]] = None) -> bool:
    st = _norm(station)
    for p in prefixes if prefixes is not None else get_repair_station_prefixes():
        if st.startswith(p) or (len(p) > 2 and p in st):
            return True
    return False


def _yield_pct(passed: int, total: int) -> float:
    return (passed / total) * 100.0 if total > 0 else 0.0


def aggregate_station_throughput(
    records: List[dict],
    models: Optional[Iterable[str]] = None,
    resolver: Optional[ModelResolver] = None,
) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """
    {model: {station: {total_parts, passed_parts, failed_parts, throughput_yield}}}.
    Models are canonicalized through the alias table; `models` limits the output.
    throughput_yield is passed/total * 100 (0 when no parts).
    """
    resolver = resolver or ModelResolver()
    wanted = None
    if models is not None:
        wanted = {resolver.canonical(m) for m in models}
    out: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for r in records or []:
        model = resolver.canonical(r.get("model"))
        if not model or (wanted is not None and model not in wanted):
            continue
        station = (r.get("station") or "").strip()
        if not station:
            continue
        acc = out.setdefault(model, {}).setdefault(
            station, {"total_parts": 0, "passed_parts": 0, "failed_parts": 0, "throughput_yield": 0.0}
        )
        acc["total_parts"] += to_int(r.get("total"))
        acc["passed_parts"] += to_int(r.get("passed"))
        acc["failed_parts"] += to_int(r.get("failed"))
    for stations in out.values():
        for acc in stations.values():
            acc["throughput_yield"] = _yield_pct(acc["passed_parts"], acc["total_parts"])
    return out


def model_tpy(stations: Dict[str, Dict[str, Any]], include_repair: bool = False) -> Optional[float]:
    """Throughput yield of the whole route: product of station yields, as a percent."""
    tpy = 1.0
    seen = False
    for name, acc in stations.items():
        if not include_repair and is_repair_station(name):
            continue
        if to_int(acc.get("total_parts")) <= 0:
            continue
        tpy *= to_float(acc.get("throughput_yield")) / 100.0
        seen = True
    return tpy * 100.0 if seen else None


def sort_stations(
    stations: Dict[str, Dict[str, Any]],
    sort_by: str = "volume",
    include_repair: bool = False,
) -> List[Dict[str, Any]]:
    """Station rows sorted by volume (desc), yield (asc) or "route" (configured station order)."""
    rows = [
        dict(acc, station=name)
        for name, acc in stations.items()
        if include_repair or not is_repair_station(name)
    ]
    if sort_by == "volume":
        rows.sort(key=lambda r: -r["total_parts"])
    elif sort_by == "yield":
        rows.sort(key=lambda r: r["throughput_yield"])
    else:
        rows.sort(key=lambda r: _station_sort_key(r["station"]))
    return rows


def throughput_summary(
    records: List[dict],
    models: Optional[Iterable[str]] = None,
    sort_by: str = "volume",
    include_repair: bool = False,
    resolver: Optional[ModelResolver] = None,
) -> List[Dict[str, Any]]:
    """Per-model station tables plus route TPY."""
    agg = aggregate_station_throughput(records, models, resolver)
    out = []
    for model, stations in agg.items():
        out.append({
            "model": model,
            "tpy": model_tpy(stations, include_repair=include_repair),
            "stations": sort_stations(stations, sort_by=sort_by, include_repair=include_repair),
        })
    return out


def join_weekly_tpy(weekly_rows: List[dict], model_rows: List[dict]) -> List[Dict[str, Any]]:
    """Attach per-model TPY rows to their weekly aggregate by week_id; newest week first."""
    by_week: Dict[str, Dict[str, Any]] = {}
    for r in model_rows or []:
        wid = str(r.get("week_id") or r.get("weekId") or "").strip()
        model = (r.get("model") or "").strip()
        if not wid or not model:
            continue
        by_week.setdefault(wid, {})[model] = {
            "hardcoded_tpy": to_optional_float(r.get("hardcoded_tpy")),
            "dynamic_tpy": to_optional_float(r.get("dynamic_tpy")),
            "station_count": to_int(r.get("station_count")),
        }
    out = []
    for w in weekly_rows or []:
        wid = str(w.get("week_id") or w.get("weekId") or "").strip()
        if not wid:
            continue
        out.append(dict(w, week_id=wid, models=by_week.get(wid, {})))
    out.sort(key=lambda r: r["week_id"], reverse=True)
    return out


def _ratio_pct(num: int, den: int) -> Optional[float]:
    if not num or not den:
        return None
    return round(num / den * 100.0, 2)


def merge_filtered_yields(rows: List[dict]) -> List[Dict[str, Any]]:
    """Sum per-chunk filtered-yield rows by model and recompute FLA/FCT test yields."""
    merged: Dict[str, Dict[str, Any]] = {}
    for r in rows or []:
        model = r.get("model") or ""
        if model not in merged:
            merged[model] = dict(r)
            continue
        m = merged[model]
        m["assy2_total"] += to_int(r.get("assy2_total"))
        m["fla_total"] += to_int(r.get("fla_total"))
        m["fct_total"] += to_int(r.get("fct_total"))
        m["test_yield_fla"] = _ratio_pct(m["assy2_total"], m["fla_total"])
        m["test_yield_fct"] = _ratio_pct(m["assy2_total"], m["fct_total"])
    return list(merged.values())
