"""In-memory TTL cache for resolved media URLs."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.feed_constants import MEDIA_CACHE_TTL_SECONDS

__all__ = ["MediaCacheEntry", "MediaUrlCache"]

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class MediaCacheEntry:
    """Resolved URL and the clock reading after which it is stale."""

    url: str
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class MediaUrlCache:
    """Process-wide cache mapping media file_ids to resolved URLs.

    Entries are independent, so a single lock around dict access is enough.
    Expired entries are dropped lazily when read.
    """

    def __init__(
        self,
        ttl_seconds: float = MEDIA_CACHE_TTL_SECONDS,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, MediaCacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, file_id: str) -> str | None:
        """Return the cached URL for a file_id if present and unexpired."""

        if not file_id:
            return None

        now = self._clock()
        with self._lock:
            entry = self._entries.get(file_id)
            if entry is None:
                return None
            if not entry.is_fresh(now):
                del self._entries[file_id]
                return None
            return entry.url

    def put(self, file_id: str, url: str) -> None:
        """Store a resolved URL for the configured TTL."""

        if not file_id or not url:
            return

        entry = MediaCacheEntry(url=url, expires_at=self._clock() + self._ttl_seconds)
        with self._lock:
            self._entries[file_id] = entry

    def purge_expired(self) -> int:
        """Drop all stale entries and return how many were removed."""

        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("media_cache_purged", removed=len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
