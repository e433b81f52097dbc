# -*- coding: utf-8 -*-
"""
Row mappers: raw JSON rows from each reporting endpoint -> canonical records.
Mappers never filter and never raise; a malformed field falls back to its default.
Dates are normalized to YYYY-MM-DD, counts to non-negative ints, rates to floats.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("\xa0", " ").strip()


def to_float(value: Any, default: float = 0.0) -> float:
    """parseFloat semantics: leading number or default."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
        return default if math.isnan(number) or math.isinf(number) else number
    text = _clean(value).replace(",", "")
    if text.endswith("%"):
        text = text[:-1]
    m = re.match(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", text)
    if not m:
        return default
    try:
        number = float(m.group(0))
    except ValueError:
        return default
    return default if math.isnan(number) or math.isinf(number) else number


def to_optional_float(value: Any) -> Optional[float]:
    """None/blank stays None; otherwise float or None when unparseable."""
    if value is None or _clean(value) == "":
        return None
    number = to_float(value, default=math.nan)
    return None if math.isnan(number) else number


def to_int(value: Any, default: int = 0) -> int:
    """parseInt semantics, clamped to non-negative counts."""
    number = to_float(value, default=math.nan)
    if math.isnan(number):
        return default
    return max(int(number), 0)


def to_str(value: Any, default: str = "") -> str:
    text = _clean(value)
    return text if text else default


def to_iso_date(value: Any) -> Optional[str]:
    """YYYY-MM-DD from a date, datetime, ISO string or M/D/YYYY string; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _clean(value)
    if not text:
        return None
    m = _ISO_DATE_RE.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3))).isoformat()
        except ValueError:
            return None
    m = _US_DATE_RE.match(text)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(1)), int(m.group(2))).isoformat()
        except ValueError:
            return None
    return None


def to_rate(value: Any) -> float:
    """Rate in [0, 1]. Percent values (> 1) are scaled down."""
    number = to_float(value)
    if number > 1:
        number = number / 100.0
    return min(max(number, 0.0), 1.0)


@dataclass(frozen=True)
class Field:
    target: str
    sources: Tuple[str, ...]
    coerce: Callable[[Any], Any]
    default: Any = None


def map_row(schema: List[Field], raw: Any) -> Dict[str, Any]:
    """Apply a schema to one raw row. First present source name wins."""
    src = raw if isinstance(raw, dict) else {}
    out: Dict[str, Any] = {}
    for field in schema:
        value = None
        for name in field.sources:
            if name in src and src[name] is not None:
                value = src[name]
                break
        if value is None:
            out[field.target] = field.default
            continue
        try:
            out[field.target] = field.coerce(value)
        except (TypeError, ValueError):
            out[field.target] = field.default
    return out


WORKSTATION_SCHEMA = [
    Field("station", ("workstation_name", "station"), to_str, ""),
    Field("passed", ("pass", "passed"), to_int, 0),
    Field("failed", ("fail", "failed"), to_int, 0),
    Field("failure_rate", ("failurerate", "failure_rate"), to_rate, 0.0),
]

FIXTURE_SCHEMA = [
    Field("station", ("fixture_no", "fixture"), to_str, ""),
    Field("passed", ("pass", "passed"), to_int, 0),
    Field("failed", ("fail", "failed"), to_int, 0),
    Field("failure_rate", ("failurerate", "failure_rate"), to_rate, 0.0),
    Field("fail_percent_of_total", ("fail_percent_of_total",), to_float, 0.0),
]

ERROR_COUNT_SCHEMA = [
    Field("error_code", ("error_code",), to_str, ""),
    Field("code_count", ("code_count", "count"), to_int, 0),
]

ERROR_RECORD_SCHEMA = [
    Field("sn", ("sn",), to_str, ""),
    Field("part_number", ("pn", "part_number"), to_str, ""),
    Field("model", ("model",), to_str, ""),
    Field("fixture", ("fixture_no", "fixture"), to_str, ""),
    Field("workstation", ("workstation_name", "workstation"), to_str, ""),
    Field("error_code", ("error_code", "failure_reasons"), to_str, ""),
    Field("error_desc", ("error_disc", "error_desc", "failure_note"), to_str, ""),
    Field("count", ("code_count", "count"), to_int, 1),
    Field("date", ("date", "history_station_start_time", "fail_time"), to_iso_date, None),
]

PACKING_SCHEMA = [
    Field("date", ("date", "pack_date", "date_id"), to_iso_date, None),
    Field("model", ("model",), to_str, ""),
    Field("part_number", ("part", "pn", "part_number"), to_str, ""),
    Field("station", ("workstation_name", "station"), to_str, "PACKING"),
    Field("value", ("count", "value", "packed"), to_int, 0),
]

TPY_DAILY_SCHEMA = [
    Field("date", ("date_id", "date"), to_iso_date, None),
    Field("model", ("model",), to_str, ""),
    Field("station", ("workstation_name", "station"), to_str, ""),
    Field("total", ("total_parts", "totalParts"), to_int, 0),
    Field("passed", ("passed_parts", "passedParts"), to_int, 0),
    Field("failed", ("failed_parts", "failedParts"), to_int, 0),
    Field("throughput_yield", ("throughput_yield", "throughputYield"), to_optional_float, None),
]

TEST_YIELD_SCHEMA = [
    Field("model", ("model",), to_str, ""),
    Field("assy2_total", ("assy2_total",), to_int, 0),
    Field("fla_total", ("fla_total",), to_int, 0),
    Field("fct_total", ("fct_total",), to_int, 0),
    Field("test_yield_fla", ("test_yield_fla",), to_optional_float, None),
    Field("test_yield_fct", ("test_yield_fct",), to_optional_float, None),
]

FILTERED_YIELD_SCHEMA = [
    Field("model", ("model",), to_str, ""),
    Field("assy2_total", ("assy2", "assy2_total"), to_int, 0),
    Field("fla_total", ("fla", "fla_total"), to_int, 0),
    Field("fct_total", ("fct", "fct_total"), to_int, 0),
    Field("test_yield_fla", ("test_yield_fla",), to_optional_float, None),
    Field("test_yield_fct", ("test_yield_fct",), to_optional_float, None),
]

STATION_TIME_SCHEMA = [
    Field("sn", ("sn",), to_str, ""),
    Field("station", ("workstation_name", "station"), to_str, ""),
    Field("total_time", ("total_time",), to_float, 0.0),
]

FAIL_RECORD_SCHEMA = [
    Field("sn", ("sn",), to_str, ""),
    Field("part_number", ("pn", "part_number"), to_str, ""),
    Field("station", ("workstation_name", "station"), to_str, ""),
    Field("error_code", ("error_code", "failure_reasons"), to_str, ""),
    Field("fail_time", ("fail_time", "history_station_start_time"), to_str, ""),
]

SN_CHECK_SCHEMA = [
    Field("sn", ("sn",), to_str, ""),
    Field("part_number", ("pn", "part_number"), to_str, ""),
    Field("pass_time", ("pass_time",), to_str, ""),
]

XBAR_COUNT_SCHEMA = [
    Field("date", ("date",), to_iso_date, None),
    Field("error_code_count", ("error_code_count",), to_int, 0),
    Field("test_count", ("test_count",), to_int, 0),
]


def map_workstation_row(raw: Any) -> Dict[str, Any]:
    return map_row(WORKSTATION_SCHEMA, raw)


def map_fixture_row(raw: Any) -> Dict[str, Any]:
    return map_row(FIXTURE_SCHEMA, raw)


def map_error_count_row(raw: Any) -> Dict[str, Any]:
    return map_row(ERROR_COUNT_SCHEMA, raw)


def map_error_record(raw: Any) -> Dict[str, Any]:
    """SNFN error-code record (fixture and workstation both kept for group toggling)."""
    return map_row(ERROR_RECORD_SCHEMA, raw)


def map_packing_row(raw: Any) -> Dict[str, Any]:
    return map_row(PACKING_SCHEMA, raw)


def map_tpy_daily_row(raw: Any) -> Dict[str, Any]:
    return map_row(TPY_DAILY_SCHEMA, raw)


def map_test_yield_row(raw: Any) -> Dict[str, Any]:
    return map_row(TEST_YIELD_SCHEMA, raw)


def map_filtered_yield_row(raw: Any) -> Dict[str, Any]:
    return map_row(FILTERED_YIELD_SCHEMA, raw)


def map_station_time_row(raw: Any) -> Dict[str, Any]:
    return map_row(STATION_TIME_SCHEMA, raw)


def map_fail_record(raw: Any) -> Dict[str, Any]:
    row = map_row(FAIL_RECORD_SCHEMA, raw)
    row["clean_code"] = clean_error_code(row["error_code"])
    return row


def map_sn_check_row(raw: Any) -> Dict[str, Any]:
    """sn-check and pass-check rows: latest sighting of a serial number."""
    return map_row(SN_CHECK_SCHEMA, raw)


def map_xbar_count_row(raw: Any) -> Dict[str, Any]:
    return map_row(XBAR_COUNT_SCHEMA, raw)


def clean_error_code(code: Any) -> str:
    """'...XYZ123' -> 'EC123'; '..._na' suffix uses the 3 chars before it; Pass/empty -> PASSED."""
    text = _clean(code)
    if not text or text == "Pass":
        return "PASSED"
    tail = text[-3:]
    if len(tail) < 3:
        return "NA"
    if tail == "_na":
        tail = text[-6:-3]
        if len(tail) < 3:
            return "NA"
    return "EC" + tail


def flatten_packing_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Nested packing payload {model: {"parts": {pn: {"M/D/YYYY": count}}}} -> flat canonical
    packing records. Entries with an unparseable date are skipped; counts default to 0.
    A list payload is treated as already-flat raw rows.
    """
    if isinstance(payload, list):
        return [map_packing_row(r) for r in payload]
    out: List[Dict[str, Any]] = []
    if not isinstance(payload, dict):
        return out
    for model, model_data in payload.items():
        parts = model_data.get("parts") if isinstance(model_data, dict) else None
        if not isinstance(parts, dict):
            continue
        for part_number, by_date in parts.items():
            if not isinstance(by_date, dict):
                continue
            for date_str, count in by_date.items():
                iso = to_iso_date(date_str)
                if iso is None:
                    continue
                out.append({
                    "date": iso,
                    "model": to_str(model),
                    "part_number": to_str(part_number),
                    "station": "PACKING",
                    "value": to_int(count),
                })
    return out


def flatten_daily_tpy_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Grouped daily TPY [{date, stations: {model: {station: {totalParts, ...}}}}] -> flat
    canonical rows. Flat rows (with workstation_name) pass through map_tpy_daily_row.
    """
    if not isinstance(payload, list):
        return []
    out: List[Dict[str, Any]] = []
    for day in payload:
        if not isinstance(day, dict):
            continue
        stations = day.get("stations")
        if not isinstance(stations, dict):
            out.append(map_tpy_daily_row(day))
            continue
        for model, by_station in stations.items():
            if not isinstance(by_station, dict):
                continue
            for station, metrics in by_station.items():
                raw = dict(metrics) if isinstance(metrics, dict) else {}
                raw.update({"date": day.get("date"), "model": model, "workstation_name": station})
                out.append(map_tpy_daily_row(raw))
    return out
