"""Tests for media reference resolution through the URL cache."""

import threading
from concurrent.futures import ThreadPoolExecutor

from channel_feed.adapters.media_url_cache import MediaUrlCache
from channel_feed.domain.exceptions import TelegramAPIError
from channel_feed.domain.models import MediaRef
from channel_feed.services.media_resolver import MediaResolver
from tests.conftest import FakeClock, FakeMediaSource


class TestResolve:
    def test_second_lookup_within_ttl_uses_cache(
        self, resolver: MediaResolver, media_source: FakeMediaSource
    ) -> None:
        first = resolver.resolve(MediaRef(file_id="abc"))
        second = resolver.resolve("abc")

        assert first == second == "https://cdn.test/abc.jpg"
        assert media_source.calls == ["abc"]

    def test_lookup_after_ttl_calls_source_again(
        self, resolver: MediaResolver, media_source: FakeMediaSource, clock: FakeClock
    ) -> None:
        resolver.resolve("abc")
        clock.advance(3600)
        resolver.resolve("abc")

        assert media_source.calls == ["abc", "abc"]

    def test_failure_is_absent_and_not_cached(
        self, resolver: MediaResolver, media_source: FakeMediaSource
    ) -> None:
        media_source.failing.add("gone")

        assert resolver.resolve("gone") is None
        assert resolver.resolve("gone") is None
        assert media_source.calls == ["gone", "gone"]
        assert len(resolver.cache) == 0

    def test_failure_then_recovery_is_cached(
        self, resolver: MediaResolver, media_source: FakeMediaSource
    ) -> None:
        media_source.failing.add("flaky")
        assert resolver.resolve("flaky") is None

        media_source.failing.clear()
        assert resolver.resolve("flaky") == "https://cdn.test/flaky.jpg"
        assert resolver.resolve("flaky") == "https://cdn.test/flaky.jpg"
        assert media_source.calls == ["flaky", "flaky"]

    def test_without_source_everything_is_absent(self, media_cache: MediaUrlCache) -> None:
        resolver = MediaResolver(None, media_cache)

        assert resolver.resolve("abc") is None

    def test_empty_file_id_is_absent(self, resolver: MediaResolver, media_source) -> None:
        assert resolver.resolve("") is None
        assert media_source.calls == []

    def test_empty_url_from_source_is_absent(self, media_cache: MediaUrlCache, mocker) -> None:
        source = mocker.Mock()
        source.resolve_file_url.return_value = ""
        resolver = MediaResolver(source, media_cache)

        assert resolver.resolve("abc") is None
        assert len(media_cache) == 0


class TestResolveAll:
    def test_preserves_order_and_drops_failures(
        self, resolver: MediaResolver, media_source: FakeMediaSource
    ) -> None:
        media_source.failing.add("b")
        refs = [MediaRef(file_id=file_id) for file_id in ("a", "b", "c")]

        assert resolver.resolve_all(refs) == [
            "https://cdn.test/a.jpg",
            "https://cdn.test/c.jpg",
        ]


class _BlockingSource:
    """Source that holds every call until released."""

    def __init__(self) -> None:
        self.calls = 0
        self.entered = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()

    def resolve_file_url(self, file_id: str) -> str:
        with self._lock:
            self.calls += 1
        self.entered.set()
        if not self.release.wait(timeout=5):
            raise TelegramAPIError("test source never released")
        return f"https://cdn.test/{file_id}.jpg"


def test_concurrent_lookups_share_one_external_call(media_cache: MediaUrlCache) -> None:
    source = _BlockingSource()
    resolver = MediaResolver(source, media_cache)

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(resolver.resolve, "hot") for _ in range(8)]
        assert source.entered.wait(timeout=5)
        source.release.set()
        results = [future.result(timeout=5) for future in futures]

    assert results == ["https://cdn.test/hot.jpg"] * 8
    assert source.calls == 1
