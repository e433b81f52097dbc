import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from analytics.pareto import pareto_series, sort_by_count


def rows(*counts):
    return [{"error_code": f"EC{i}", "code_count": c} for i, c in enumerate(counts)]


def test_cumulative_share_reaches_one():
    out = pareto_series(rows(50, 30, 20))
    assert [r["failure_rate"] for r in out] == pytest.approx([0.5, 0.8, 1.0])
    assert out[0]["error_code"] == "EC0"


def test_limit_keeps_total_over_all_rows():
    out = pareto_series(rows(50, 30, 20), limit=2)
    assert len(out) == 2
    assert [r["failure_rate"] for r in out] == pytest.approx([0.5, 0.8])


def test_zero_total_gives_zero_rates():
    assert [r["failure_rate"] for r in pareto_series(rows(0, 0))] == [0.0, 0.0]
    assert pareto_series([]) == []


def test_input_rows_not_modified():
    data = rows(1, 1)
    pareto_series(data)
    assert "failure_rate" not in data[0]


def test_sort_by_count_descending_stable():
    data = [{"error_code": "A", "code_count": 1}, {"error_code": "B", "code_count": 5},
            {"error_code": "C", "code_count": 1}]
    assert [r["error_code"] for r in sort_by_count(data)] == ["B", "A", "C"]
