# -*- coding: utf-8 -*-
"""Pareto chart data: count-sorted bars with cumulative failure share."""

from typing import List, Optional

from report_api.mappers import to_float


def sort_by_count(rows: List[dict], count_field: str = "code_count") -> List[dict]:
    """Descending by count; ties keep input order."""
    return sorted(rows or [], key=lambda r: to_float(r.get(count_field)), reverse=True)


def pareto_series(rows: List[dict], limit: Optional[int] = None, count_field: str = "code_count") -> List[dict]:
    """
    Copy of the first `limit` rows with `failure_rate` = running sum / total.
    The total covers every row, so a truncated series may end below 1.0.
    """
    rows = rows or []
    total = sum(to_float(r.get(count_field)) for r in rows)
    shown = rows if limit is None else rows[:max(int(limit), 0)]
    running = 0.0
    out = []
    for r in shown:
        running += to_float(r.get(count_field))
        out.append(dict(r, failure_rate=(running / total) if total > 0 else 0.0))
    return out
