import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from analytics.models import ModelResolver
from analytics.throughput import (
    aggregate_station_throughput,
    is_repair_station,
    join_weekly_tpy,
    merge_filtered_yields,
    model_tpy,
    sort_stations,
    throughput_summary,
)

RESOLVER = ModelResolver({"Tesla SXM5": ["SXM5"], "SXM6": ["Tesla SXM6"]})

DAILY = [
    {"date": "2025-01-06", "model": "Tesla SXM5", "station": "BAT", "total": 10, "passed": 9, "failed": 1},
    {"date": "2025-01-07", "model": "SXM5", "station": "BAT", "total": 10, "passed": 10, "failed": 0},
    {"date": "2025-01-06", "model": "Tesla SXM5", "station": "FCT", "total": 40, "passed": 20, "failed": 20},
    {"date": "2025-01-06", "model": "Tesla SXM5", "station": "R_BAT", "total": 1, "passed": 0, "failed": 1},
    {"date": "2025-01-06", "model": "SXM6", "station": "FLA", "total": 0, "passed": 0, "failed": 0},
]


def test_aggregate_sums_days_and_canonicalizes_models():
    agg = aggregate_station_throughput(DAILY, resolver=RESOLVER)
    bat = agg["Tesla SXM5"]["BAT"]
    assert bat["total_parts"] == 20
    assert bat["passed_parts"] == 19
    assert bat["failed_parts"] == 1
    assert bat["throughput_yield"] == pytest.approx(95.0)
    assert agg["SXM6"]["FLA"]["throughput_yield"] == 0.0


def test_aggregate_model_filter():
    agg = aggregate_station_throughput(DAILY, models=["SXM6"], resolver=RESOLVER)
    assert list(agg) == ["SXM6"]


def test_repair_station_detection():
    assert is_repair_station("R_BAT", ["R_", "REPAIR"])
    assert is_repair_station("BAT_REPAIR", ["R_", "REPAIR"])
    assert not is_repair_station("BAT", ["R_", "REPAIR"])


def test_model_tpy_is_product_of_station_yields():
    stations = aggregate_station_throughput(DAILY, resolver=RESOLVER)["Tesla SXM5"]
    assert model_tpy(stations) == pytest.approx(0.95 * 0.5 * 100)
    assert model_tpy({"FLA": {"total_parts": 0, "throughput_yield": 0.0}}) is None


def test_sort_stations():
    stations = aggregate_station_throughput(DAILY, resolver=RESOLVER)["Tesla SXM5"]
    assert [s["station"] for s in sort_stations(stations, "volume")] == ["FCT", "BAT"]
    assert [s["station"] for s in sort_stations(stations, "yield")] == ["FCT", "BAT"]
    assert [s["station"] for s in sort_stations(stations, "route")] == ["FCT", "BAT"]
    assert "R_BAT" in [s["station"] for s in sort_stations(stations, "volume", include_repair=True)]
    acc = {"total_parts": 1, "passed_parts": 1, "failed_parts": 0, "throughput_yield": 100.0}
    mixed = {"ZZZ": dict(acc), "bat": dict(acc), "ASSY2": dict(acc), "AAA": dict(acc)}
    assert [s["station"] for s in sort_stations(mixed, "route")] == ["ASSY2", "bat", "AAA", "ZZZ"]


def test_throughput_summary():
    summary = throughput_summary(DAILY, models=["Tesla SXM5"], resolver=RESOLVER)
    assert len(summary) == 1
    assert summary[0]["model"] == "Tesla SXM5"
    assert summary[0]["tpy"] == pytest.approx(47.5)


def test_join_weekly_tpy_newest_first():
    weekly = [{"weekId": "2025-W01"}, {"weekId": "2025-W02"}, {"note": "no id"}]
    models = [{"week_id": "2025-W02", "model": "SXM5", "dynamic_tpy": "91.5", "station_count": 6}]
    out = join_weekly_tpy(weekly, models)
    assert [w["week_id"] for w in out] == ["2025-W02", "2025-W01"]
    assert out[0]["models"]["SXM5"] == {"hardcoded_tpy": None, "dynamic_tpy": 91.5, "station_count": 6}
    assert out[1]["models"] == {}


def test_merge_filtered_yields_recomputes_rates():
    rows = [
        {"model": "SXM5", "assy2_total": 8, "fla_total": 10, "fct_total": 0, "test_yield_fla": 80.0, "test_yield_fct": None},
        {"model": "SXM6", "assy2_total": 1, "fla_total": 1, "fct_total": 1, "test_yield_fla": 100.0, "test_yield_fct": 100.0},
        {"model": "SXM5", "assy2_total": 1, "fla_total": 2, "fct_total": 3, "test_yield_fla": 50.0, "test_yield_fct": 33.33},
    ]
    merged = merge_filtered_yields(rows)
    assert [m["model"] for m in merged] == ["SXM5", "SXM6"]
    sxm5 = merged[0]
    assert (sxm5["assy2_total"], sxm5["fla_total"], sxm5["fct_total"]) == (9, 12, 3)
    assert sxm5["test_yield_fla"] == 75.0
    assert sxm5["test_yield_fct"] == 300.0
    assert rows[0]["assy2_total"] == 8
