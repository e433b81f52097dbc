# -*- coding: utf-8 -*-
"""
Shared polling scheduler: one background thread per data source, reference-counted
subscribers. Each tick invalidates the source's cache prefix, fetches once and fans
the result out to every subscriber.
"""
from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Dict, Optional

from config.app_config import POLL_INTERVAL_SECONDS
from report_api.cache import DataCache, data_cache

logger = logging.getLogger(__name__)


class _Source:
    def __init__(self, source_id: str, fetch_fn: Callable[[], Any], cache_prefix: str):
        self.source_id = source_id
        self.fetch_fn = fetch_fn
        self.cache_prefix = cache_prefix
        self.subscribers: Dict[int, Callable[[Any], Any]] = {}
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self.last_data: Any = None


class PollingScheduler:
    """Polls each data source at a fixed interval while it has subscribers."""

    def __init__(self, interval_seconds: Optional[float] = None, cache: Optional[DataCache] = None):
        self.interval_seconds = interval_seconds or POLL_INTERVAL_SECONDS
        self.cache = cache if cache is not None else data_cache
        self._lock = threading.Lock()
        self._sources: Dict[str, _Source] = {}
        self._tokens: Dict[int, str] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        source_id: str,
        fetch_fn: Callable[[], Any],
        on_data: Callable[[Any], Any],
        cache_prefix: Optional[str] = None,
        start_thread: bool = True,
    ) -> int:
        """
        Register on_data for source_id. The first subscriber's fetch_fn is used for the
        source; later subscribers share it. Returns a token for unsubscribe().
        """
        with self._lock:
            token = next(self._ids)
            src = self._sources.get(source_id)
            if src is None:
                src = _Source(source_id, fetch_fn, cache_prefix if cache_prefix is not None else source_id)
                self._sources[source_id] = src
            src.subscribers[token] = on_data
            self._tokens[token] = source_id
            if start_thread and src.thread is None:
                src.thread = threading.Thread(target=self._run, args=(src,), daemon=True, name=f"poll-{source_id}")
                src.thread.start()
            last = src.last_data
        if last is not None:
            on_data(last)
        return token

    def unsubscribe(self, token: int) -> None:
        """Remove one subscriber; the source stops when its last subscriber leaves."""
        with self._lock:
            source_id = self._tokens.pop(token, None)
            if source_id is None:
                return
            src = self._sources.get(source_id)
            if src is None:
                return
            src.subscribers.pop(token, None)
            if not src.subscribers:
                src.stop_event.set()
                del self._sources[source_id]

    def subscriber_count(self, source_id: str) -> int:
        with self._lock:
            src = self._sources.get(source_id)
            return len(src.subscribers) if src else 0

    def refresh(self, source_id: str) -> Any:
        """Run one tick synchronously. Returns fetched data or None when unknown/failed."""
        with self._lock:
            src = self._sources.get(source_id)
        if src is None:
            return None
        return self._tick(src)

    def stop_all(self) -> None:
        with self._lock:
            for src in self._sources.values():
                src.stop_event.set()
            self._sources.clear()
            self._tokens.clear()

    def _tick(self, src: _Source) -> Any:
        self.cache.invalidate_prefix(src.cache_prefix)
        try:
            data = src.fetch_fn()
        except Exception:
            logger.exception("poll %s failed", src.source_id)
            return None
        with self._lock:
            src.last_data = data
            callbacks = list(src.subscribers.values())
        for cb in callbacks:
            try:
                cb(data)
            except Exception:
                logger.exception("poll %s subscriber failed", src.source_id)
        return data

    def _run(self, src: _Source) -> None:
        self._tick(src)
        while not src.stop_event.wait(self.interval_seconds):
            self._tick(src)


scheduler = PollingScheduler()
