# -*- coding: utf-8 -*-
"""
Packing output rollups from canonical packing records {date, model, part_number, value}:
daily series over an inclusive date range, ISO-week summaries and the model/part table.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from analytics.dates import date_range_keys, iso_week_key, week_labels
from analytics.models import ModelResolver
from analytics.rollup import rollup
from analytics.trend import series_average, with_trend
from report_api.mappers import to_int

logger = logging.getLogger(__name__)


def _as_list(models: Union[None, str, Iterable[str]]) -> Optional[List[str]]:
    if models is None:
        return None
    if isinstance(models, str):
        return [models]
    return [m for m in models if m]


def select_models(
    records: List[dict],
    models: Union[None, str, Iterable[str]],
    resolver: Optional[ModelResolver] = None,
) -> List[dict]:
    """Records whose model matches one of `models` (exact or via alias table). None = all."""
    wanted = _as_list(models)
    if wanted is None:
        return list(records or [])
    resolver = resolver or ModelResolver()
    available: List[str] = []
    for r in records or []:
        m = r.get("model") or ""
        if m not in available:
            available.append(m)
    matched = set(resolver.resolve_selected(wanted, available).values())
    return [r for r in records or [] if (r.get("model") or "") in matched]


def daily_totals(
    records: List[dict],
    models: Union[None, str, Iterable[str]] = None,
    resolver: Optional[ModelResolver] = None,
) -> Dict[str, int]:
    """{YYYY-MM-DD: summed value} across every part of every selected model."""
    out: Dict[str, int] = {}
    for r in select_models(records, models, resolver):
        d = r.get("date")
        if not d:
            continue
        out[d] = out.get(d, 0) + to_int(r.get("value"))
    return out


def daily_series(
    records: List[dict],
    start: Any,
    end: Any,
    models: Union[None, str, Iterable[str]] = None,
    resolver: Optional[ModelResolver] = None,
) -> List[dict]:
    """[{label, value}] for every day in [start, end]; days without output are 0."""
    totals = daily_totals(records, models, resolver)
    return [{"label": d, "value": totals.get(d, 0)} for d in date_range_keys(start, end)]


def weekly_totals(date_map: Dict[str, int]) -> Dict[str, int]:
    """Roll daily totals up by ISO week key 'YYYY-WW'."""
    out: Dict[str, int] = {}
    for d, value in date_map.items():
        key = iso_week_key(d)
        if key is None:
            continue
        out[key] = out.get(key, 0) + to_int(value)
    return out


def weekly_series(
    records: List[dict],
    this_week_start: Any,
    weeks_to_show: int = 12,
    models: Union[None, str, Iterable[str]] = None,
    resolver: Optional[ModelResolver] = None,
) -> List[dict]:
    """[{label: 'YYYY-WW', value}] for the last weeks_to_show ISO weeks, oldest first."""
    totals = weekly_totals(daily_totals(records, models, resolver))
    return [{"label": w, "value": totals.get(w, 0)} for w in week_labels(this_week_start, weeks_to_show)]


def chart_payload(series: List[dict], show_trend: bool = False, exclude_zeros_in_avg: bool = True) -> Dict[str, Any]:
    """Series plus average and optional trend values for the bar chart."""
    return {
        "data": with_trend(series) if show_trend else [dict(d) for d in series],
        "average": series_average(series, exclude_zeros=exclude_zeros_in_avg),
        "total": sum(to_int(d.get("value")) for d in series),
    }


def packing_table(records: List[dict], start: Any, end: Any) -> Dict[str, Any]:
    """
    Model -> part number -> date counts with every date in [start, end] filled,
    plus per-date totals. Records outside the range are ignored.
    """
    dates = date_range_keys(start, end)
    in_range = set(dates)
    kept = [r for r in records or [] if r.get("date") in in_range]
    tree = rollup(kept, ("model", "part_number", "date"), value_field="value")
    models: Dict[str, Dict[str, Dict[str, int]]] = {}
    totals_by_date = {d: 0 for d in dates}
    for model, parts in tree.items():
        models[model] = {}
        for part_number, by_date in parts.items():
            row = {d: int(by_date.get(d, 0)) for d in dates}
            models[model][part_number] = row
            for d, n in row.items():
                totals_by_date[d] += n
    return {"dates": dates, "models": models, "totals_by_date": totals_by_date}
