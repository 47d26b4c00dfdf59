"""Feed page use case.

Reads an overscanned window of raw rows, groups albums into logical posts,
resolves their media and cuts a page with a continuation cursor.

Known approximation: the raw-row window is ``page_size * fanout`` rows
(capped). An album larger than the remaining window can be cut at the window
boundary, and a page may then carry fewer than ``page_size`` posts even
though older posts exist. Widening the window without bound is not the fix.

Known approximation: the cursor is the representative row's ``posted_at``
while posts are ordered by their latest member. When a late album member
moves a post ahead of others, posts timestamped between the representative
and that member are skipped by the next page. The same late member can
place an album ahead of a post whose timestamp is newer than the album's
representative. That post's cursor then lets the next page read the album's
older rows again, so the album is repeated under the same
representative_message_id.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Final

import pytz

from channel_feed.config.logging_config import get_logger
from channel_feed.config.settings import Settings
from channel_feed.domain.exceptions import ValidationError
from channel_feed.domain.feed_constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_ROWS_PER_PAGE,
    ROW_FANOUT_FACTOR,
)
from channel_feed.domain.models import FeedPage
from channel_feed.domain.protocols import FeedRepositoryProtocol
from channel_feed.observability.metrics import FEED_PAGE_DURATION_SECONDS
from channel_feed.services.album_grouper import group_rows
from channel_feed.services.media_resolver import MediaResolver

logger = get_logger(__name__)

# An unencoded "+" in a query string arrives as a space
_DECODED_PLUS_OFFSET: Final[re.Pattern[str]] = re.compile(r" (\d{2}:\d{2})$")


@dataclass(frozen=True)
class PaginationPolicy:
    """Page size limits and the raw-row overscan heuristic."""

    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    fanout_factor: int = ROW_FANOUT_FACTOR
    max_rows: int = MAX_ROWS_PER_PAGE

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaginationPolicy":
        return cls(
            default_page_size=settings.feed_default_page_size,
            max_page_size=settings.feed_max_page_size,
            fanout_factor=settings.feed_row_fanout_factor,
            max_rows=settings.feed_max_rows_per_page,
        )

    def clamp_page_size(self, requested: int | None) -> int:
        """Clamp a requested page size into ``[1, max_page_size]``."""
        if requested is None:
            requested = self.default_page_size
        return max(1, min(requested, self.max_page_size))

    def window_size(self, page_size: int) -> int:
        """Number of raw rows to read for a page of ``page_size`` posts."""
        return min(page_size * self.fanout_factor, self.max_rows)


def parse_cursor(value: str | None) -> datetime | None:
    """Parse an ISO-8601 cursor; naive values are treated as UTC.

    Raises:
        ValidationError: If the cursor is not a timestamp
    """
    if value is None or not value.strip():
        return None
    text = _DECODED_PLUS_OFFSET.sub(r"+\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid cursor: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    return parsed


def get_feed_page_use_case(
    channel: str,
    repository: FeedRepositoryProtocol,
    resolver: MediaResolver,
    *,
    limit: int | None = None,
    cursor: datetime | None = None,
    policy: PaginationPolicy | None = None,
) -> FeedPage:
    """Build one page of logical posts for a channel, newest first.

    Args:
        channel: Normalized channel name
        repository: Row store
        resolver: Media resolver backed by the process-wide cache
        limit: Requested page size (clamped by policy)
        cursor: Only posts with rows strictly earlier than this are returned
        policy: Pagination limits

    Returns:
        FeedPage; ``next_cursor`` is None when fewer than ``limit`` posts were found

    Raises:
        RepositoryError: If the row store read fails
    """
    policy = policy or PaginationPolicy()
    page_size = policy.clamp_page_size(limit)
    window = policy.window_size(page_size)
    started = time.perf_counter()

    rows = repository.select_rows(channel, posted_before=cursor, limit=window)
    groups = group_rows(rows)[:page_size]
    items = [group.to_post(resolver.resolve_all) for group in groups]

    next_cursor = items[-1].posted_at if len(items) == page_size else None

    elapsed = time.perf_counter() - started
    FEED_PAGE_DURATION_SECONDS.observe(elapsed)
    logger.info(
        "feed_page_built",
        channel=channel,
        page_size=page_size,
        rows_fetched=len(rows),
        row_window=window,
        posts=len(items),
        window_exhausted=len(rows) >= window,
        has_more=next_cursor is not None,
        duration_ms=round(elapsed * 1000, 1),
    )
    return FeedPage(items=items, next_cursor=next_cursor)
