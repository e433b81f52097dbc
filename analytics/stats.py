# -*- coding: utf-8 -*-
"""Box-plot statistics for station cycle times and X-bar / R control charts."""

import math
from typing import Any, Dict, List, Optional

from report_api.mappers import to_optional_float


def _quantile(sorted_vals: List[float], q: float) -> float:
    """Linear interpolation between closest ranks."""
    if len(sorted_vals) == 1:
        return sorted_vals[0]
    pos = (len(sorted_vals) - 1) * q
    lo = int(math.floor(pos))
    hi = int(math.ceil(pos))
    if lo == hi:
        return sorted_vals[lo]
    return sorted_vals[lo] + (sorted_vals[hi] - sorted_vals[lo]) * (pos - lo)


def box_stats(values: List[Any]) -> Optional[Dict[str, Any]]:
    """
    min/q1/median/q3/max/mean over numeric values, whiskers at 1.5 * IQR
    (clamped to the data) and the outliers beyond them. None for no data.
    """
    vals = sorted(v for v in (to_optional_float(x) for x in values or []) if v is not None)
    if not vals:
        return None
    q1 = _quantile(vals, 0.25)
    median = _quantile(vals, 0.5)
    q3 = _quantile(vals, 0.75)
    iqr = q3 - q1
    lo_fence = q1 - 1.5 * iqr
    hi_fence = q3 + 1.5 * iqr
    inside = [v for v in vals if lo_fence <= v <= hi_fence]
    return {
        "count": len(vals),
        "min": vals[0],
        "q1": q1,
        "median": median,
        "q3": q3,
        "max": vals[-1],
        "mean": sum(vals) / len(vals),
        "whisker_low": inside[0] if inside else vals[0],
        "whisker_high": inside[-1] if inside else vals[-1],
        "outliers": [v for v in vals if v < lo_fence or v > hi_fence],
    }


def station_time_stats(records: List[dict]) -> List[Dict[str, Any]]:
    """Per-station box stats of total_time, stations in first-seen order."""
    by_station: Dict[str, List[Any]] = {}
    for r in records or []:
        st = (r.get("station") or "").strip()
        if not st:
            continue
        by_station.setdefault(st, []).append(r.get("total_time"))
    out = []
    for st, times in by_station.items():
        stats = box_stats(times)
        if stats is None:
            continue
        out.append(dict(stats, station=st))
    return out


# Control chart constants by subgroup size
A2 = {2: 1.880, 3: 1.023, 4: 0.729, 5: 0.577, 6: 0.483, 7: 0.419, 8: 0.373, 9: 0.337, 10: 0.308, 11: 0.285, 12: 0.266}
D3 = {2: 0.0, 3: 0.0, 4: 0.0, 5: 0.0, 6: 0.0, 7: 0.076, 8: 0.136, 9: 0.184, 10: 0.223, 11: 0.256, 12: 0.283}
D4 = {2: 3.267, 3: 2.574, 4: 2.282, 5: 2.114, 6: 2.004, 7: 1.924, 8: 1.864, 9: 1.816, 10: 1.777, 11: 1.744, 12: 1.717}

RUN_LENGTH = 7


def xbar_r_points(rows: List[dict]) -> List[Dict[str, Any]]:
    """Daily count rows -> [{date, value}] with value = error-code share of tests in percent."""
    out = []
    for r in rows or []:
        tests = r.get("test_count") or 0
        if not tests:
            continue
        out.append({"date": r.get("date"), "value": r.get("error_code_count", 0) / tests * 100})
    return out


def _mark_runs(points: List[dict], field: str, center: float, flag: str) -> None:
    """Flag every point of a run of RUN_LENGTH or more on one side of the center line."""
    run = 0
    last = None
    for i, p in enumerate(points):
        above = p[field] > center
        run = run + 1 if above == last else 1
        last = above
        if run >= RUN_LENGTH:
            for j in range(i - RUN_LENGTH + 1, i + 1):
                points[j][flag] = True


def xbar_r(points: List[dict], subgroup_size: int = 6, min_samples: int = 5) -> Dict[str, Any]:
    """
    X-bar / R control chart over consecutive subgroups of `subgroup_size` points
    (a trailing partial subgroup is dropped). Status is "no_data" for an empty
    series and "insufficient" below subgroup_size * min_samples points.
    """
    if subgroup_size not in A2:
        raise ValueError(f"subgroup size must be between 2 and 12, got {subgroup_size}")
    if not points:
        return {"status": "no_data", "subgroups": []}
    if len(points) < subgroup_size * min_samples:
        return {"status": "insufficient", "subgroups": [], "points": len(points)}
    trimmed = len(points) - len(points) % subgroup_size
    subgroups = []
    for i in range(0, trimmed, subgroup_size):
        values = [p["value"] for p in points[i:i + subgroup_size]]
        subgroups.append({
            "start_date": points[i]["date"],
            "end_date": points[i + subgroup_size - 1]["date"],
            "xi": sum(values) / subgroup_size,
            "ri": max(values) - min(values),
            "sample_size": subgroup_size,
        })
    r_bar = sum(s["ri"] for s in subgroups) / len(subgroups)
    x_bar = sum(s["xi"] for s in subgroups) / len(subgroups)
    limits = {
        "xbar": x_bar,
        "ucl_x": x_bar + A2[subgroup_size] * r_bar,
        "lcl_x": x_bar - A2[subgroup_size] * r_bar,
        "r_bar": r_bar,
        "ucl_r": D4[subgroup_size] * r_bar,
        "lcl_r": D3[subgroup_size] * r_bar,
    }
    for s in subgroups:
        s["out_of_control_x"] = s["xi"] > limits["ucl_x"] or s["xi"] < limits["lcl_x"]
        s["out_of_control_r"] = s["ri"] > limits["ucl_r"] or s["ri"] < limits["lcl_r"]
    _mark_runs(subgroups, "xi", x_bar, "out_of_control_x")
    _mark_runs(subgroups, "ri", r_bar, "out_of_control_r")
    return dict(limits, status="ok", subgroups=subgroups)
