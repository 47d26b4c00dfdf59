"""Tests for the media URL TTL cache."""

import pytest

from channel_feed.adapters.media_url_cache import MediaCacheEntry, MediaUrlCache
from tests.conftest import FakeClock


class TestMediaUrlCache:
    def test_put_then_get_returns_url(self, media_cache: MediaUrlCache) -> None:
        media_cache.put("file-1", "https://cdn.test/1.jpg")

        assert media_cache.get("file-1") == "https://cdn.test/1.jpg"
        assert len(media_cache) == 1

    def test_missing_key_returns_none(self, media_cache: MediaUrlCache) -> None:
        assert media_cache.get("unknown") is None

    def test_entry_expires_after_ttl(self, clock: FakeClock) -> None:
        cache = MediaUrlCache(ttl_seconds=60, clock=clock)
        cache.put("file-1", "https://cdn.test/1.jpg")

        clock.advance(59)
        assert cache.get("file-1") == "https://cdn.test/1.jpg"

        clock.advance(1)
        assert cache.get("file-1") is None
        assert len(cache) == 0

    def test_put_refreshes_expiry(self, clock: FakeClock) -> None:
        cache = MediaUrlCache(ttl_seconds=60, clock=clock)
        cache.put("file-1", "https://cdn.test/old.jpg")
        clock.advance(50)
        cache.put("file-1", "https://cdn.test/new.jpg")
        clock.advance(50)

        assert cache.get("file-1") == "https://cdn.test/new.jpg"

    def test_purge_expired_removes_only_stale_entries(self, clock: FakeClock) -> None:
        cache = MediaUrlCache(ttl_seconds=60, clock=clock)
        cache.put("old", "https://cdn.test/old.jpg")
        clock.advance(30)
        cache.put("new", "https://cdn.test/new.jpg")
        clock.advance(40)

        assert cache.purge_expired() == 1
        assert cache.get("new") == "https://cdn.test/new.jpg"

    def test_empty_values_are_not_stored(self, media_cache: MediaUrlCache) -> None:
        media_cache.put("", "https://cdn.test/x.jpg")
        media_cache.put("file-1", "")

        assert len(media_cache) == 0

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl_rejected(self, ttl: float) -> None:
        with pytest.raises(ValueError):
            MediaUrlCache(ttl_seconds=ttl)


def test_cache_entry_freshness_boundary() -> None:
    entry = MediaCacheEntry(url="https://cdn.test/x.jpg", expires_at=100.0)

    assert entry.is_fresh(99.9)
    assert not entry.is_fresh(100.0)
