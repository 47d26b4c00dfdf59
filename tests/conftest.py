"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytz

from channel_feed.adapters.media_url_cache import MediaUrlCache
from channel_feed.adapters.repository_factory import create_repository
from channel_feed.config.settings import Settings
from channel_feed.domain.exceptions import TelegramAPIError
from channel_feed.domain.models import MediaRef, RawRow
from channel_feed.domain.protocols import FeedRepositoryProtocol
from channel_feed.services.channel_names import build_permalink
from channel_feed.services.media_resolver import MediaResolver

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=pytz.UTC)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMediaSource:
    """Media resolution source recording every external call."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self.failing = failing or set()

    def resolve_file_url(self, file_id: str) -> str:
        self.calls.append(file_id)
        if file_id in self.failing:
            raise TelegramAPIError(f"file not found: {file_id}")
        return f"https://cdn.test/{file_id}.jpg"


class FakeLiveSource:
    """Live stats source returning a fixed count or failing."""

    def __init__(self, count: int | None = None, *, error: Exception | None = None):
        self.count = count
        self.error = error
        self.calls: list[str] = []

    def fetch_member_count(self, channel: str) -> int:
        self.calls.append(channel)
        if self.error is not None:
            raise self.error
        assert self.count is not None
        return self.count


@pytest.fixture
def settings(
    tmp_path_factory: pytest.TempPathFactory, request: pytest.FixtureRequest
) -> Settings:
    """Create settings configured for the requested database backend."""

    base_settings = Settings(telegram_bot_token=None)

    backend = "sqlite"
    if hasattr(request.node, "callspec"):
        backend = request.node.callspec.params.get("repo", backend)

    if request.node.get_closest_marker("postgres"):
        backend = "postgres"

    if backend == "postgres":
        if os.environ.get("TEST_POSTGRES", "0") != "1":
            pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
        if not os.environ.get("POSTGRES_PASSWORD"):
            pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")
        return base_settings.model_copy(update={"database_type": "postgres"})

    temp_dir = tmp_path_factory.mktemp("db")
    return base_settings.model_copy(
        update={"database_type": "sqlite", "db_path": str(temp_dir / "feed.sqlite")}
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[FeedRepositoryProtocol, None, None]:
    """Provide a repository instance for the configured backend."""

    repository = create_repository(settings)
    try:
        yield repository
    finally:
        close = getattr(repository, "close", None)
        if callable(close):
            close()
        if settings.database_type == "sqlite":
            Path(settings.db_path).unlink(missing_ok=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def media_source() -> FakeMediaSource:
    return FakeMediaSource()


@pytest.fixture
def media_cache(clock: FakeClock) -> MediaUrlCache:
    return MediaUrlCache(ttl_seconds=3600, clock=clock)


@pytest.fixture
def resolver(media_source: FakeMediaSource, media_cache: MediaUrlCache) -> MediaResolver:
    return MediaResolver(media_source, media_cache)


@pytest.fixture
def make_row() -> Callable[..., RawRow]:
    """Factory for raw rows with sensible defaults."""

    def _make_row(
        message_id: int,
        *,
        channel: str = "loycewear",
        posted_at: datetime | None = None,
        text: str = "",
        group_id: str | None = None,
        file_ids: tuple[str, ...] = (),
        raw: dict[str, Any] | None = None,
    ) -> RawRow:
        return RawRow(
            channel=channel,
            message_id=message_id,
            posted_at=posted_at or BASE_TIME + timedelta(minutes=message_id),
            text=text,
            permalink=build_permalink(channel, message_id),
            media_refs=[MediaRef(file_id=file_id) for file_id in file_ids],
            group_id=group_id,
            raw=raw or {"message_id": message_id},
            ingested_at=BASE_TIME,
        )

    return _make_row


def channel_post_update(
    message_id: int,
    *,
    username: str = "LoyceWear",
    date: int | str = 1_740_830_400,
    text: str | None = None,
    caption: str | None = None,
    photo_id: str | None = None,
    media_group_id: str | None = None,
) -> dict[str, Any]:
    """Build a Bot API ``channel_post`` update."""

    message: dict[str, Any] = {
        "message_id": message_id,
        "chat": {"id": -1001234567890, "username": username, "type": "channel"},
        "date": date,
    }
    if text is not None:
        message["text"] = text
    if caption is not None:
        message["caption"] = caption
    if photo_id is not None:
        message["photo"] = [
            {"file_id": f"{photo_id}_thumb", "width": 90, "height": 90},
            {"file_id": photo_id, "width": 1280, "height": 960},
        ]
    if media_group_id is not None:
        message["media_group_id"] = media_group_id
    return {"update_id": 900_000 + message_id, "channel_post": message}
