import os
import sys
import threading
from datetime import date

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from report_api import client
from report_api.cache import DataCache
from report_api.errors import BatchFailure, FetchError, ImportCancelled
from report_api.mappers import map_workstation_row

_BAD_JSON = object()


class FakeResponse:
    def __init__(self, payload, status_code=200, reason="OK"):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason
        self.ok = 200 <= status_code < 300

    def json(self):
        if self._payload is _BAD_JSON:
            raise ValueError("Expecting value")
        return self._payload


class FakeSession:
    """Replays queued responses and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)


@pytest.fixture
def session(monkeypatch):
    def install(*responses):
        fake = FakeSession(responses)
        monkeypatch.setattr(client, "get_session", lambda: fake)
        return fake
    return install


def test_format_date_param_day_bounds():
    assert client.format_date_param(date(2025, 1, 15)) == "2025-01-15T00:00:00.000Z"
    assert client.format_date_param("2025-01-15", is_end=True) == "2025-01-15T23:59:59.999Z"
    assert client.format_date_param("not a date") is None


def test_build_params_skips_empty_values_and_appends_dates():
    params = client.build_params(
        [{"id": "model", "value": "Tesla SXM4"}, {"id": "station", "value": ""}, {"id": "pn"}],
        "2025-01-01",
        "2025-01-02",
    )
    assert params == [
        ("model", "Tesla SXM4"),
        ("startDate", "2025-01-01T00:00:00.000Z"),
        ("endDate", "2025-01-02T23:59:59.999Z"),
    ]


def test_build_params_without_dates():
    assert client.build_params([{"id": "model", "value": "SXM5"}]) == [("model", "SXM5")]
    assert client.build_params(None) == []


def test_fetch_with_cache_second_call_uses_cache(session):
    fake = session(FakeResponse([{"workstation_name": "BAT", "pass": "9", "fail": 1, "failurerate": 0.1}]))
    cache = DataCache()
    seen = []
    first = client.fetch_with_cache("http://x/api/ws", "ws_a", seen.append, map_workstation_row, cache=cache)
    second = client.fetch_with_cache("http://x/api/ws", "ws_a", seen.append, map_workstation_row, cache=cache)
    assert len(fake.calls) == 1
    assert first == second
    assert seen == [first, first]
    assert first[0]["station"] == "BAT"
    assert first[0]["passed"] == 9


def test_fetch_with_cache_non_list_payload_maps_to_empty(session):
    session(FakeResponse({"rows": []}))
    cache = DataCache()
    assert client.fetch_with_cache("http://x/a", "k", None, map_workstation_row, cache=cache) == []
    assert cache.get("k") == []


def test_fetch_with_cache_raises_on_server_error(session):
    session(FakeResponse(None, status_code=500, reason="Internal Server Error"))
    with pytest.raises(FetchError) as exc:
        client.fetch_with_cache("http://x/a", "k", None, map_workstation_row, cache=DataCache())
    assert exc.value.status == 500
    assert str(exc.value) == "Server error: 500 Internal Server Error"


def test_fetch_query_degrades_to_empty_on_failure(session):
    session(FakeResponse(None, status_code=502, reason="Bad Gateway"))
    cache = DataCache()
    seen = []
    errors = []
    out = client.fetch_query(
        "/api/v1/functional-testing/station-performance",
        "workstation",
        map_workstation_row,
        start_date="2025-01-01",
        end_date="2025-01-07",
        on_result=seen.append,
        on_error=errors.append,
        base="http://x",
        cache=cache,
    )
    assert out == []
    assert seen == [[]]
    assert errors == ["Server error: 502 Bad Gateway"]
    assert len(cache) == 0


def test_fetch_query_builds_url_and_cache_key(session):
    fake = session(FakeResponse([]))
    cache = DataCache()
    client.fetch_query(
        "/api/v1/snfn/model-errors",
        "pareto",
        map_workstation_row,
        parameters=[{"id": "model", "value": "SXM5"}],
        start_date="2025-01-01",
        end_date="2025-01-01",
        base="http://x",
        cache=cache,
    )
    url = fake.calls[0]["url"]
    assert url.startswith("http://x/api/v1/snfn/model-errors?model=SXM5&startDate=")
    assert cache.keys()[0].startswith("pareto_model=SXM5&startDate=2025-01-01T00%3A00%3A00.000Z")


def test_import_query_get_and_post(session):
    fake = session(FakeResponse([{"a": 1}]), FakeResponse([{"b": 2}]))
    assert client.import_query("http://x", "/r", {"startDate": "2025-01-01"}) == [{"a": 1}]
    assert fake.calls[0]["url"] == "http://x/r?startDate=2025-01-01"
    assert client.import_query("http://x", "/r", {"sns": ["A"]}, method="POST") == [{"b": 2}]
    assert fake.calls[1]["json"] == {"sns": ["A"]}


def test_import_query_errors(session):
    session(FakeResponse(None, status_code=404, reason="Not Found"), FakeResponse(_BAD_JSON))
    with pytest.raises(FetchError) as exc:
        client.import_query("http://x", "/missing")
    assert exc.value.status == 404
    assert exc.value.reason == "Not Found"
    with pytest.raises(FetchError):
        client.import_query("http://x", "/garbled")


def test_import_query_non_list_is_empty(session):
    session(FakeResponse({"message": "ok"}))
    assert client.import_query("http://x", "/r") == []


def test_normalize_helpers():
    assert client.normalize_list(" A, ,B ") == ["A", "B"]
    assert client.normalize_list(None) == []
    assert client.normalize_dates(["2025-01-02", "1/3/2025", "junk", None]) == ["2025-01-02", "2025-01-03"]


def test_chunk_list():
    assert client.chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert client.chunk_list([], 3) == []
    with pytest.raises(ValueError):
        client.chunk_list([1], 0)


def test_chunked_import_concatenates_in_order(session):
    fake = session(FakeResponse([{"n": 1}]), FakeResponse([{"n": 2}]), FakeResponse([{"n": 3}]))
    progress = []
    rows = client.chunked_import(
        "/api/v1/workstation-routes/station-times",
        ["a", "b", "c", "d", "e"],
        lambda chunk: {"sns": chunk},
        chunk_size=2,
        progress=lambda done, total: progress.append((done, total)),
        base="http://x",
    )
    assert rows == [{"n": 1}, {"n": 2}, {"n": 3}]
    assert [c["json"] for c in fake.calls] == [{"sns": ["a", "b"]}, {"sns": ["c", "d"]}, {"sns": ["e"]}]
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_chunked_import_cancel_between_chunks(session):
    fake = session(FakeResponse([{"n": 1}]), FakeResponse([{"n": 2}]))
    cancel = threading.Event()
    with pytest.raises(ImportCancelled) as exc:
        client.chunked_import(
            "/r",
            ["a", "b", "c", "d"],
            lambda chunk: {"sns": chunk},
            chunk_size=2,
            cancel_event=cancel,
            progress=lambda done, total: cancel.set(),
            base="http://x",
        )
    assert exc.value.completed_chunks == 1
    assert len(fake.calls) == 1


def test_chunked_import_stops_at_failed_chunk(session):
    fake = session(
        FakeResponse([{"n": 1}]),
        FakeResponse(None, status_code=500, reason="Internal Server Error"),
        FakeResponse([{"n": 3}]),
    )
    with pytest.raises(BatchFailure) as exc:
        client.chunked_import("/r", [1, 2, 3], lambda chunk: {"sns": chunk}, chunk_size=1, base="http://x")
    assert exc.value.chunk_index == 1
    assert exc.value.completed_chunks == 1
    assert isinstance(exc.value.cause, FetchError)
    assert len(fake.calls) == 2


def test_fetch_test_yields_empty_dates_skips_request(session):
    fake = session()
    assert client.fetch_test_yields([], cache=DataCache()) == []
    assert fake.calls == []


def test_fetch_filtered_yields_cached_by_dates_and_sns(session):
    fake = session(FakeResponse([{"model": "SXM5", "assy2": 4, "fla": 5, "fct": 5}]))
    cache = DataCache()
    first = client.fetch_filtered_yields(["2025-01-01"], "SN1,SN2", base="http://x", cache=cache)
    second = client.fetch_filtered_yields(["2025-01-01"], ["SN1", "SN2"], base="http://x", cache=cache)
    assert len(fake.calls) == 1
    assert first == second
    assert first[0]["assy2_total"] == 4
    assert "filtered_yields_d:2025-01-01_sn:SN1|SN2" in cache


def test_most_recent_fail_posts_sn_batches_with_day_bounds(session):
    fake = session(
        FakeResponse([{"sn": "SN1", "error_code": "FT_VOLT_123", "fail_time": "2025-01-02T08:00:00Z"}]),
        FakeResponse([]),
    )
    rows = client.fetch_most_recent_fail(["SN1", "SN2", "SN3"], date(2025, 1, 1), date(2025, 1, 7),
                                         chunk_size=2, base="http://x")
    assert [c["url"] for c in fake.calls] == ["http://x/api/v1/testboard-records/most-recent-fail"] * 2
    assert fake.calls[0]["json"] == {
        "sns": ["SN1", "SN2"],
        "startDate": "2025-01-01T00:00:00.000Z",
        "endDate": "2025-01-07T23:59:59.999Z",
    }
    assert fake.calls[1]["json"]["sns"] == ["SN3"]
    assert rows[0]["clean_code"] == "EC123"


def test_pass_check_sends_station_list(session):
    fake = session(FakeResponse([{"sn": "SN1", "pass_time": "2025-01-03T10:00:00Z"}]))
    rows = client.fetch_pass_check(["SN1"], "2025-01-01", "2025-01-07", "FCT, BAT", base="http://x")
    assert fake.calls[0]["url"].endswith("/testboard-records/pass-check")
    assert fake.calls[0]["json"]["passCheck"] == ["FCT", "BAT"]
    assert rows == [{"sn": "SN1", "part_number": "", "pass_time": "2025-01-03T10:00:00Z"}]


def test_fail_check_stops_when_cancelled(session):
    fake = session()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ImportCancelled):
        client.fetch_fail_check(["SN1"], "2025-01-01", "2025-01-07", ["FCT"], cancel_event=cancel, base="http://x")
    assert fake.calls == []


def test_records_by_error_and_xbar_counts(session):
    fake = session(
        FakeResponse([{"sn": "SN1", "pn": "692-A", "error_code": "BAT_LOW_045"}]),
        FakeResponse([{"date": "2025-01-02T00:00:00.000Z", "error_code_count": "3", "test_count": 60}]),
    )
    rows = client.fetch_records_by_error(["BAT_LOW_045"], "2025-01-01", "2025-01-07", base="http://x")
    assert fake.calls[0]["json"]["checkArray"] == ["BAT_LOW_045"]
    assert rows[0]["part_number"] == "692-A"
    counts = client.fetch_xbar_r_counts("045", "BAT", "2025-01-01", "2025-01-07", base="http://x")
    assert fake.calls[1]["url"] == "http://x/api/v1/testboard-records/x-bar-r"
    assert fake.calls[1]["json"]["ec"] == "045"
    assert fake.calls[1]["json"]["station"] == "BAT"
    assert counts == [{"date": "2025-01-02", "error_code_count": 3, "test_count": 60}]
