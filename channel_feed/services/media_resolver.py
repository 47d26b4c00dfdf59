"""Media reference resolution with TTL caching.

Resolves opaque media references (Telegram file_ids) to fetchable URLs:
- Fresh cache hits never reach the external source
- Misses perform exactly one external call; successes are cached, failures are not
- Concurrent lookups of the same file_id share one in-flight call
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import Future

from channel_feed.adapters.media_url_cache import MediaUrlCache
from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import TelegramAPIError
from channel_feed.domain.models import MediaRef
from channel_feed.domain.protocols import MediaResolutionSource
from channel_feed.observability.metrics import (
    MEDIA_CACHE_LOOKUPS_TOTAL,
    MEDIA_RESOLUTIONS_TOTAL,
)

logger = get_logger(__name__)


class MediaResolver:
    """Resolve media references through a shared URL cache."""

    def __init__(
        self,
        source: MediaResolutionSource | None,
        cache: MediaUrlCache,
    ) -> None:
        """Initialize resolver.

        Args:
            source: External resolution source; None disables resolution
                (every reference resolves to absent)
            cache: Cache shared by all requests in the process
        """
        self._source = source
        self._cache = cache
        self._inflight: dict[str, Future[str | None]] = {}
        self._inflight_lock = threading.Lock()

    @property
    def cache(self) -> MediaUrlCache:
        return self._cache

    def resolve(self, ref: MediaRef | str) -> str | None:
        """Resolve one reference to a URL, or None when it cannot be resolved."""

        file_id = ref.file_id if isinstance(ref, MediaRef) else ref
        if not file_id:
            return None

        cached = self._cache.get(file_id)
        if cached is not None:
            MEDIA_CACHE_LOOKUPS_TOTAL.labels(outcome="hit").inc()
            return cached
        MEDIA_CACHE_LOOKUPS_TOTAL.labels(outcome="miss").inc()

        if self._source is None:
            return None

        with self._inflight_lock:
            future = self._inflight.get(file_id)
            is_leader = future is None
            if future is None:
                future = Future()
                self._inflight[file_id] = future

        if not is_leader:
            return future.result()

        try:
            url = self._cache.get(file_id) or self._fetch(file_id)
        except Exception as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(url)
            return url
        finally:
            with self._inflight_lock:
                self._inflight.pop(file_id, None)

    def resolve_all(self, refs: Iterable[MediaRef]) -> list[str]:
        """Resolve references in order, dropping the ones that fail."""

        urls: list[str] = []
        for ref in refs:
            url = self.resolve(ref)
            if url:
                urls.append(url)
        return urls

    def _fetch(self, file_id: str) -> str | None:
        assert self._source is not None
        try:
            url = self._source.resolve_file_url(file_id)
        except TelegramAPIError as exc:
            MEDIA_RESOLUTIONS_TOTAL.labels(outcome="failed").inc()
            logger.warning("media_resolution_failed", file_id=file_id, error=str(exc))
            return None

        if not url:
            MEDIA_RESOLUTIONS_TOTAL.labels(outcome="failed").inc()
            logger.warning("media_resolution_empty", file_id=file_id)
            return None

        MEDIA_RESOLUTIONS_TOTAL.labels(outcome="ok").inc()
        self._cache.put(file_id, url)
        return url
