# -*- coding: utf-8 -*-
"""Least-squares trend line over an evenly spaced series (x = 0..n-1)."""

import math
from typing import List, Optional, Sequence, Tuple

from report_api.mappers import to_float


def linear_regression(values: Sequence) -> Optional[Tuple[float, float]]:
    """(slope, intercept), or None when the denominator is zero (n < 2)."""
    y = [to_float(v) for v in values]
    n = len(y)
    x_sum = n * (n - 1) / 2
    y_sum = sum(y)
    xx_sum = (n - 1) * n * (2 * n - 1) / 6
    xy_sum = sum(i * v for i, v in enumerate(y))
    denom = n * xx_sum - x_sum * x_sum
    if n == 0 or denom == 0:
        return None
    slope = (n * xy_sum - x_sum * y_sum) / denom
    intercept = (y_sum - slope * x_sum) / n
    return slope, intercept


def trend_line(series: List[dict]) -> List[dict]:
    """[{label, value}] -> fitted [{label, value}]; degenerate input -> flat line at raw values."""
    fit = linear_regression([d.get("value") for d in series])
    if fit is None:
        return [{"label": d.get("label"), "value": to_float(d.get("value"))} for d in series]
    slope, intercept = fit
    return [{"label": d.get("label"), "value": slope * i + intercept} for i, d in enumerate(series)]


def series_average(series: List[dict], exclude_zeros: bool = True) -> int:
    """Rounded mean of series values, optionally ignoring zero days."""
    values = [to_float(d.get("value")) for d in series]
    if exclude_zeros:
        values = [v for v in values if v > 0]
    if not values:
        return 0
    return int(math.floor(sum(values) / len(values) + 0.5))


def with_trend(series: List[dict]) -> List[dict]:
    """Copy of series with a `trend` value per point (the raw value when fewer than 2 points)."""
    line = trend_line(series)
    return [dict(d, trend=line[i]["value"]) for i, d in enumerate(series)]
