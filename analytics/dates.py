# -*- coding: utf-8 -*-
"""Calendar helpers: inclusive day keys, ISO week keys and week windows."""

from datetime import date, datetime, timedelta
from typing import Any, List, Optional

from report_api.mappers import to_iso_date


def parse_date(value: Any) -> Optional[date]:
    """date/datetime/ISO/M-D-YYYY -> date; None when unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    iso = to_iso_date(value)
    return date.fromisoformat(iso) if iso else None


def date_range_keys(start: Any, end: Any) -> List[str]:
    """Every calendar day in [start, end] as YYYY-MM-DD, ascending. Empty when start > end."""
    d0 = parse_date(start)
    d1 = parse_date(end)
    if d0 is None or d1 is None or d0 > d1:
        return []
    return [(d0 + timedelta(days=i)).isoformat() for i in range((d1 - d0).days + 1)]


def iso_week_key(value: Any) -> Optional[str]:
    """'{isoWeekYear}-{isoWeek:02d}'."""
    d = parse_date(value)
    if d is None:
        return None
    year, week, _ = d.isocalendar()
    return f"{year}-{week:02d}"


def start_of_iso_week(value: Any) -> Optional[date]:
    """Monday of the ISO week."""
    d = parse_date(value)
    if d is None:
        return None
    return d - timedelta(days=d.weekday())


def end_of_iso_week(value: Any) -> Optional[date]:
    """Sunday of the ISO week."""
    d = start_of_iso_week(value)
    return d + timedelta(days=6) if d else None


def week_labels(this_week_start: Any, weeks: int) -> List[str]:
    """ISO week keys for the `weeks` weeks ending with the week of this_week_start."""
    start = start_of_iso_week(this_week_start)
    if start is None or weeks < 1:
        return []
    return [iso_week_key(start - timedelta(weeks=weeks - 1 - i)) for i in range(weeks)]
