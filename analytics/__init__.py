# -*- coding: utf-8 -*-
"""Aggregation engine over canonical report rows."""

from analytics.fail_status import fail_status_table
from analytics.models import ModelResolver
from analytics.packing import chart_payload, daily_series, packing_table, weekly_series
from analytics.pareto import pareto_series
from analytics.rollup import rollup
from analytics.snfn import process_station_data
from analytics.stats import box_stats, xbar_r
from analytics.throughput import aggregate_station_throughput, merge_filtered_yields
from analytics.trend import linear_regression, trend_line

__all__ = [
    "ModelResolver",
    "fail_status_table",
    "chart_payload",
    "daily_series",
    "packing_table",
    "weekly_series",
    "pareto_series",
    "rollup",
    "process_station_data",
    "box_stats",
    "xbar_r",
    "aggregate_station_throughput",
    "merge_filtered_yields",
    "linear_regression",
    "trend_line",
]
