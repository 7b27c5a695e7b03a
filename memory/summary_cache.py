from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from models.schemas import BusinessSummary
from settings import SETTINGS


logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    summary: BusinessSummary
    updated_at: float


class SummaryCache:
    """In-process BusinessSummary cache keyed by site origin. Concurrent writers: last write wins."""

    def __init__(self, ttl_seconds: int | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = SETTINGS.summary_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = Lock()

    def get(self, site_key: str | None) -> BusinessSummary | None:
        if not site_key:
            return None
        with self._lock:
            entry = self._entries.get(site_key)
            if entry is None:
                return None
            if self._clock() - entry.updated_at > self.ttl_seconds:
                self._entries.pop(site_key, None)
                return None
            return entry.summary

    def set(self, site_key: str | None, summary: BusinessSummary) -> None:
        if not site_key:
            return
        with self._lock:
            self._entries[site_key] = _Entry(summary=summary, updated_at=self._clock())
            size = len(self._entries)
        logger.debug("summary_cache_set", extra={"site_key": site_key, "cache_size": size})

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
