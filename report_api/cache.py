# -*- coding: utf-8 -*-
"""
Response cache for the reporting API client.
Keys are deterministic strings (endpoint name + serialized params), so identical
logical queries share an entry. Entries expire on read after ttl_seconds and can be
invalidated by key prefix or all at once.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlencode

from config.app_config import CACHE_TTL_SECONDS


@dataclass
class CacheEntry:
    key: str
    value: Any
    timestamp: float


class DataCache:
    """Thread-safe key -> value map with optional per-entry TTL."""

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        if not self.ttl_seconds:
            return False
        return (now - entry.timestamp) > self.ttl_seconds

    def get(self, key: str) -> Any:
        """Return cached value or None when missing/stale. Stale entries are dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_stale(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, timestamp=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix. Returns number removed."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


ParamsLike = Union[Dict[str, Any], Iterable[Tuple[str, Any]]]


def make_cache_key(name: str, params: Optional[ParamsLike] = None) -> str:
    """`{name}_{urlencoded params}`; dict params are encoded in insertion order."""
    if not params:
        return f"{name}_"
    items = list(params.items()) if isinstance(params, dict) else list(params)
    return f"{name}_{urlencode(items, doseq=True)}"


# Process-wide cache used by the client
data_cache = DataCache(ttl_seconds=CACHE_TTL_SECONDS)
