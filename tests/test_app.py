import os
import sys
from datetime import date

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import app as app_module
from dashboard.state import SettingsStore, initial_state
from report_api import client as report_client
from report_api.cache import data_cache


@pytest.fixture
def client(monkeypatch, tmp_path):
    store = SettingsStore(str(tmp_path / "settings.json"), state=initial_state(today=date(2025, 1, 15)))
    monkeypatch.setattr(app_module, "_settings_store", store)
    monkeypatch.setattr(app_module, "_latest_packing", None)
    data_cache.clear()
    yield app_module.app.test_client()
    data_cache.clear()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True


def test_packing_daily_passes_parsed_dates(client, monkeypatch):
    seen = {}

    def fake(start, end, models=None, show_trend=False, exclude_zeros_in_avg=True):
        seen.update(start=start, end=end, models=models, show_trend=show_trend)
        return {"data": [], "average": 0, "total": 0, "table": None}

    monkeypatch.setattr(app_module, "run_packing_daily", fake)
    resp = client.post("/api/packing/daily", json={
        "start_date": "2025-01-01", "end_date": "2025-01-07T12:00:00Z", "models": "SXM4,SXM5", "show_trend": True,
    })
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True
    assert seen == {"start": date(2025, 1, 1), "end": date(2025, 1, 7), "models": ["SXM4", "SXM5"], "show_trend": True}


def test_packing_daily_defaults_to_saved_range(client, monkeypatch):
    seen = {}
    monkeypatch.setattr(app_module, "run_packing_daily",
                        lambda start, end, **kw: seen.update(start=start, end=end) or {"data": []})
    assert client.post("/api/packing/daily", json={}).status_code == 200
    assert seen == {"start": date(2025, 1, 8), "end": date(2025, 1, 15)}


def test_packing_daily_rejects_bad_range(client):
    resp = client.post("/api/packing/daily", json={"start_date": "2025-01-07", "end_date": "2025-01-01"})
    assert resp.status_code == 400
    resp = client.post("/api/packing/daily", json={"start_date": "soon", "end_date": "2025-01-01"})
    assert resp.status_code == 400


def test_upstream_error_is_502(client, monkeypatch):
    monkeypatch.setattr(app_module, "run_packing_daily",
                        lambda *a, **kw: {"error": "Server error: 500 Internal Server Error", "data": []})
    resp = client.post("/api/packing/daily", json={"start_date": "2025-01-01", "end_date": "2025-01-02"})
    assert resp.status_code == 502
    assert resp.get_json()["error"].startswith("Server error")


def test_packing_weekly_validation(client, monkeypatch):
    monkeypatch.setattr(app_module, "run_packing_weekly", lambda **kw: {"data": [], "kw": {
        "this_week_start": kw["this_week_start"].isoformat(), "weeks_to_show": kw["weeks_to_show"]}})
    assert client.post("/api/packing/weekly", json={"weeks_to_show": 0}).status_code == 400
    assert client.post("/api/packing/weekly", json={"this_week_start": "bad"}).status_code == 400
    resp = client.post("/api/packing/weekly", json={"this_week_start": "2025-01-08", "weeks_to_show": "4"})
    assert resp.get_json()["kw"] == {"this_week_start": "2025-01-08", "weeks_to_show": 4}


def test_pareto_limit_defaults_to_bar_limit(client, monkeypatch):
    seen = {}
    monkeypatch.setattr(app_module, "run_pareto",
                        lambda start, end, models=None, limit=None: seen.update(limit=limit) or {"data": []})
    client.post("/api/pareto", json={"start_date": "2025-01-01", "end_date": "2025-01-02"})
    assert seen["limit"] == 7
    client.post("/api/pareto", json={"start_date": "2025-01-01", "end_date": "2025-01-02", "limit": 3})
    assert seen["limit"] == 3


def test_snfn_route_forwards_filters(client, monkeypatch):
    seen = {}

    def fake(start, end, **kw):
        seen.update(kw)
        return {"page": 1, "pages": 0, "items": []}

    monkeypatch.setattr(app_module, "run_snfn_report", fake)
    resp = client.post("/api/snfn", json={
        "start_date": "2025-01-01", "end_date": "2025-01-02", "stations": ["BAT"], "sort_asc": False,
        "max_error_codes": "3", "group_by_workstation": True,
    })
    assert resp.status_code == 200
    assert seen["stations"] == ["BAT"]
    assert seen["sort_asc"] is False
    assert seen["max_error_codes"] == 3
    assert seen["group_by_workstation"] is True


def test_throughput_sort_by_falls_back_to_volume(client, monkeypatch):
    seen = {}
    monkeypatch.setattr(app_module, "run_throughput", lambda **kw: seen.update(kw) or {"models": []})
    client.post("/api/throughput", json={"sort_by": "random"})
    assert seen["sort_by"] == "volume"
    assert seen["week_id"] is None


def test_filtered_yields_and_station_times_require_sns(client, monkeypatch):
    assert client.post("/api/filtered-yields", json={"dates": ["2025-01-01"]}).status_code == 400
    assert client.post("/api/station-times", json={"sns": ""}).status_code == 400
    monkeypatch.setattr(app_module, "run_station_times", lambda sns: {"stations": [], "sns": sns})
    resp = client.post("/api/station-times", json={"sns": "A, B"})
    assert resp.get_json()["sns"] == ["A", "B"]


def test_cache_clear_with_and_without_prefix(client):
    data_cache.set("packing_x", [1])
    data_cache.set("pareto_x", [2])
    resp = client.post("/api/cache/clear", json={"prefix": "packing_"})
    assert resp.get_json() == {"ok": True, "removed": 1}
    resp = client.post("/api/cache/clear")
    assert resp.get_json() == {"ok": True, "removed": 1}
    assert len(data_cache) == 0


def test_settings_roundtrip(client, tmp_path):
    assert client.get("/api/settings").get_json()["bar_limit"] == 7
    resp = client.post("/api/settings", json={"type": "SET_BAR_LIMIT", "bar_limit": 9})
    assert resp.get_json()["bar_limit"] == 9
    assert (tmp_path / "settings.json").exists()
    assert client.post("/api/settings", json={"bar_limit": 9}).status_code == 400


def test_packing_latest_from_poller(client):
    assert client.get("/api/packing/latest").status_code == 404
    app_module._store_packing({"data": [{"label": "2025-01-01", "value": 1}]})
    assert client.get("/api/packing/latest").get_json()["data"][0]["value"] == 1


def test_non_object_body_is_rejected(client):
    resp = client.post("/api/packing/daily", json=["2025-01-01"])
    assert resp.status_code == 400
    assert resp.get_json()["error"] == app_module.BODY_ERROR


def test_throughput_tolerates_non_string_fields(client, monkeypatch):
    seen = {}
    monkeypatch.setattr(app_module, "run_throughput", lambda **kw: seen.update(kw) or {"models": []})
    resp = client.post("/api/throughput", json={"sort_by": 1, "week_id": ["2025-W02"]})
    assert resp.status_code == 200
    assert seen["sort_by"] == "volume"
    assert seen["week_id"] is None


def test_snfn_and_pareto_upstream_errors_are_502(client, monkeypatch):
    class DownSession:
        def request(self, method, url, timeout=None, **kwargs):
            class Resp:
                ok = False
                status_code = 500
                reason = "Internal Server Error"
            return Resp()

    monkeypatch.setattr(report_client, "get_session", lambda: DownSession())
    body = {"start_date": "2025-01-01", "end_date": "2025-01-02"}
    resp = client.post("/api/snfn", json=body)
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "Server error: 500 Internal Server Error"
    resp = client.post("/api/pareto", json=body)
    assert resp.status_code == 502
    assert resp.get_json()["data"] == []


def test_most_recent_fail_route(client, monkeypatch):
    seen = {}

    def fake(sns, start, end, pass_check=None):
        seen.update(sns=sns, start=start, pass_check=pass_check)
        return {"data": [], "counts": {}}

    monkeypatch.setattr(app_module, "run_most_recent_fail", fake)
    assert client.post("/api/most-recent-fail", json={"sns": ""}).status_code == 400
    resp = client.post("/api/most-recent-fail", json={"sns": "SN1,SN2", "start_date": "2025-01-01",
                                                      "end_date": "2025-01-07", "pass_check": "FCT"})
    assert resp.status_code == 200
    assert seen == {"sns": ["SN1", "SN2"], "start": date(2025, 1, 1), "pass_check": "FCT"}


def test_fail_check_and_records_by_error_require_inputs(client):
    assert client.post("/api/fail-check", json={"sns": "SN1"}).status_code == 400
    assert client.post("/api/records-by-error", json={"error_codes": []}).status_code == 400


def test_xbar_r_route_validation(client, monkeypatch):
    monkeypatch.setattr(app_module, "run_xbar_r",
                        lambda ec, station, start, end, subgroup_size, min_samples: {"status": "insufficient",
                                                                                      "size": subgroup_size})
    assert client.post("/api/xbar-r", json={"error_code": "045"}).status_code == 400
    body = {"error_code": "045", "station": "BAT", "start_date": "2025-01-01", "end_date": "2025-01-31"}
    assert client.post("/api/xbar-r", json=dict(body, subgroup_size=20)).status_code == 400
    resp = client.post("/api/xbar-r", json=body)
    assert resp.get_json()["size"] == 6


def test_station_performance_and_test_yields_routes(client, monkeypatch):
    monkeypatch.setattr(app_module, "run_station_performance",
                        lambda start, end, models=None, by_fixture=False: {"data": [], "by_fixture": by_fixture})
    resp = client.post("/api/station-performance", json={"by_fixture": True})
    assert resp.get_json()["by_fixture"] is True
    monkeypatch.setattr(app_module, "run_test_yields",
                        lambda dates, week_of=None: {"data": [], "week_of": week_of.isoformat()})
    assert client.post("/api/test-yields", json={"week_of": "nope"}).status_code == 400
    assert client.post("/api/test-yields", json={"week_of": "2025-01-08"}).get_json()["week_of"] == "2025-01-08"


def test_poll_with_unparseable_saved_range_skips_fetch(client, monkeypatch):
    called = []
    monkeypatch.setattr(app_module, "run_packing_daily", lambda *a, **kw: called.append(a) or {"data": []})
    app_module.get_settings_store().dispatch({"type": "SET_DATE_RANGE", "start_date": "bad", "end_date": None})
    result = app_module._poll_packing()
    assert "error" in result
    assert called == []
    app_module._store_packing(result)
    assert client.get("/api/packing/latest").status_code == 404
