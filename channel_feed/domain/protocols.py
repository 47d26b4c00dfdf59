"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import Protocol

from channel_feed.domain.models import RawRow, StatsRecord


class FeedRepositoryProtocol(Protocol):
    """Protocol for raw message and channel stats storage."""

    def upsert_row(self, row: RawRow) -> None:
        """Insert or overwrite a raw row keyed on (channel, message_id).

        Args:
            row: Row to persist

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def select_rows(
        self,
        channel: str,
        *,
        posted_before: datetime | None = None,
        limit: int,
    ) -> list[RawRow]:
        """Fetch raw rows for a channel ordered by posted_at descending.

        Args:
            channel: Normalized channel name
            posted_before: Only rows strictly earlier than this instant
            limit: Maximum rows to return

        Returns:
            Rows, newest first

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def select_latest_stats(self, channel: str) -> StatsRecord | None:
        """Return the most recently stored stats for a channel, if any.

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def upsert_stats(self, channel: str, count: int, updated_at: datetime) -> None:
        """Store the subscriber count for a channel.

        Raises:
            RepositoryError: On storage errors
        """
        ...


class MediaResolutionSource(Protocol):
    """External source turning a media file_id into a time-limited URL."""

    def resolve_file_url(self, file_id: str) -> str:
        """Resolve a file_id.

        Raises:
            TelegramAPIError: On network errors, malformed responses or unknown files
        """
        ...


class LiveStatsSource(Protocol):
    """External source of channel member counts."""

    def fetch_member_count(self, channel: str) -> int:
        """Fetch the current member count for a channel.

        Raises:
            TelegramAPIError: On API communication errors
        """
        ...
