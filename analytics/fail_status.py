# -*- coding: utf-8 -*-
"""Most-recent-fail lookup: merge sn-check, fail and pass-check rows into one status per serial number."""

from typing import Any, Dict, List, Optional

from report_api.mappers import clean_error_code

PASSED = "Passed"
PENDING = "Pending"
MISSING = "Missing"
NA = "NA"


def _by_sn(rows: Optional[List[dict]]) -> Dict[str, dict]:
    # later rows win, as the upstream returns one row per sn
    return {r.get("sn"): r for r in rows or [] if r.get("sn")}


def _clean_fail_code(code: Any) -> str:
    cleaned = clean_error_code(code)
    return PASSED if cleaned == "PASSED" else cleaned


def fail_status_table(
    sns: List[str],
    sn_rows: List[dict],
    fail_rows: List[dict],
    pass_rows: Optional[List[dict]] = None,
    pass_check: bool = False,
) -> List[Dict[str, Any]]:
    """
    One row per requested serial number, in request order:
    a fail record wins (cleaned EC code and fail time); otherwise with pass_check the
    unit is Passed at its pass time, Pending when seen but not passed, Missing when
    never seen; without pass_check a seen unit is Passed and an unseen one Missing.
    """
    seen = _by_sn(sn_rows)
    fails = _by_sn(fail_rows)
    passes = _by_sn(pass_rows)
    out = []
    for sn in sns:
        sighting = seen.get(sn)
        part_number = (sighting or {}).get("part_number") or NA
        fail = fails.get(sn)
        if fail is not None:
            code, when = _clean_fail_code(fail.get("error_code")), fail.get("fail_time") or NA
        elif pass_check:
            if sn in passes:
                code, when = PASSED, passes[sn].get("pass_time") or NA
            elif sighting is not None:
                code, when = PENDING, PENDING
            else:
                code, when = MISSING, MISSING
        elif sighting is not None:
            code, when = PASSED, NA
        else:
            code, when = MISSING, MISSING
        out.append({"sn": sn, "part_number": part_number, "error_code": code, "fail_time": when})
    return out


def status_counts(rows: List[dict]) -> Dict[str, int]:
    """error_code -> number of units, first-seen order."""
    counts: Dict[str, int] = {}
    for r in rows:
        counts[r["error_code"]] = counts.get(r["error_code"], 0) + 1
    return counts
