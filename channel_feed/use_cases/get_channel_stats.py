"""Channel stats use case.

Produces a subscriber count through an explicit fallback chain:
1. ``live``: Bot API member count, written back to storage on success
2. ``stored``: last stored count, returned unchanged

Live failures are logged and treated as "try again next request".
A failing storage read propagates to the caller.
"""

from collections.abc import Callable
from datetime import datetime

import pytz

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import RepositoryError, TelegramAPIError
from channel_feed.domain.models import StatsRecord, StatsSource
from channel_feed.domain.protocols import FeedRepositoryProtocol, LiveStatsSource
from channel_feed.observability.metrics import STATS_LOOKUPS_TOTAL
from channel_feed.services.fallback import Strategy, first_success

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=pytz.UTC)


def _live_strategy(
    channel: str,
    repository: FeedRepositoryProtocol,
    live_source: LiveStatsSource | None,
    clock: Clock,
) -> Strategy[StatsRecord]:
    def attempt() -> StatsRecord | None:
        if live_source is None:
            logger.debug("stats_live_source_unavailable", channel=channel)
            return None

        try:
            count = live_source.fetch_member_count(channel)
        except TelegramAPIError as exc:
            logger.warning("stats_live_lookup_failed", channel=channel, error=str(exc))
            return None

        updated_at = clock()
        try:
            repository.upsert_stats(channel, count, updated_at)
        except RepositoryError as exc:
            logger.error("stats_refresh_write_failed", channel=channel, error=str(exc))

        return StatsRecord(
            channel=channel,
            count=count,
            updated_at=updated_at,
            source=StatsSource.LIVE,
        )

    return Strategy(name=StatsSource.LIVE.value, attempt=attempt)


def _stored_strategy(
    channel: str, repository: FeedRepositoryProtocol
) -> Strategy[StatsRecord]:
    def attempt() -> StatsRecord | None:
        record = repository.select_latest_stats(channel)
        if record is None or record.count is None:
            return None
        return record.model_copy(update={"source": StatsSource.STORED})

    return Strategy(name=StatsSource.STORED.value, attempt=attempt)


def get_channel_stats_use_case(
    channel: str,
    repository: FeedRepositoryProtocol,
    live_source: LiveStatsSource | None = None,
    *,
    clock: Clock = _utc_now,
) -> StatsRecord:
    """Return the best available subscriber count for a channel.

    Args:
        channel: Normalized channel name
        repository: Stats store
        live_source: Live member count source, None when no credentials are configured
        clock: Source of refresh timestamps

    Returns:
        StatsRecord; ``count`` is None when neither source has a value

    Raises:
        RepositoryError: If reading the stored value fails
    """
    strategies = [
        _live_strategy(channel, repository, live_source, clock),
        _stored_strategy(channel, repository),
    ]
    result = first_success(strategies)

    if result is None:
        STATS_LOOKUPS_TOTAL.labels(source="none").inc()
        logger.info("channel_stats_absent", channel=channel)
        return StatsRecord(channel=channel)

    STATS_LOOKUPS_TOTAL.labels(source=result.name).inc()
    logger.info(
        "channel_stats_resolved",
        channel=channel,
        source=result.name,
        count=result.value.count,
    )
    return result.value
