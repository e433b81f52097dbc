# -*- coding: utf-8 -*-
"""Generic grouping: nested and flat sums of canonical records along ordered dimensions."""

from typing import Any, Dict, List, Sequence, Tuple

from report_api.mappers import to_float

_MISSING = "Unknown"


def _dim_value(record: dict, dim: str) -> str:
    v = record.get(dim) if isinstance(record, dict) else None
    if v is None:
        return _MISSING
    s = str(v).strip()
    return s or _MISSING


def group_key(record: dict, dims: Sequence[str]) -> Tuple[str, ...]:
    return tuple(_dim_value(record, d) for d in dims)


def make_group_key(record: dict, dims: Sequence[str]) -> str:
    """Bucket identity string; stable for the same record and dims."""
    return "|".join(f"{d}={v}" for d, v in zip(dims, group_key(record, dims)))


def _number(value: Any) -> float:
    n = to_float(value)
    return int(n) if float(n).is_integer() else n


def rollup(records: List[dict], dims: Sequence[str], value_field: str = "value") -> Dict[str, Any]:
    """
    Nested dict along dims (e.g. model -> part_number -> date) with summed leaves.
    Missing leaves are created at zero; keys keep first-seen order; missing values count as 0.
    """
    if not dims:
        return {}
    root: Dict[str, Any] = {}
    for r in records or []:
        node = root
        path = group_key(r, dims)
        for key in path[:-1]:
            node = node.setdefault(key, {})
        leaf = path[-1]
        node[leaf] = node.get(leaf, 0) + _number((r or {}).get(value_field))
    return root


def flat_rollup(records: List[dict], dims: Sequence[str], value_field: str = "value") -> Dict[Tuple[str, ...], Any]:
    """{(dim values...): sum} in first-seen order."""
    out: Dict[Tuple[str, ...], Any] = {}
    for r in records or []:
        k = group_key(r, dims)
        out[k] = out.get(k, 0) + _number((r or {}).get(value_field))
    return out


def sum_leaves(tree: Any) -> float:
    """Total of every numeric leaf in a nested rollup."""
    if isinstance(tree, dict):
        return sum(sum_leaves(v) for v in tree.values())
    if isinstance(tree, (int, float)):
        return tree
    return 0
