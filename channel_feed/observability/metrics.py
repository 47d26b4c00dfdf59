"""Prometheus metrics for feed serving, media resolution and ingestion."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

MESSAGES_INGESTED_TOTAL: Final[Counter] = Counter(
    "channel_feed_messages_ingested_total",
    "Inbound channel messages by ingestion outcome",
    labelnames=("outcome",),
)

MEDIA_CACHE_LOOKUPS_TOTAL: Final[Counter] = Counter(
    "channel_feed_media_cache_lookups_total",
    "Media URL cache lookups by outcome",
    labelnames=("outcome",),
)

MEDIA_RESOLUTIONS_TOTAL: Final[Counter] = Counter(
    "channel_feed_media_resolutions_total",
    "External media resolution calls by outcome",
    labelnames=("outcome",),
)

STATS_LOOKUPS_TOTAL: Final[Counter] = Counter(
    "channel_feed_stats_lookups_total",
    "Subscriber count lookups by the source that answered",
    labelnames=("source",),
)

FEED_PAGE_DURATION_SECONDS: Final[Histogram] = Histogram(
    "channel_feed_page_duration_seconds",
    "Time spent assembling one feed page",
)


__all__ = [
    "FEED_PAGE_DURATION_SECONDS",
    "MEDIA_CACHE_LOOKUPS_TOTAL",
    "MEDIA_RESOLUTIONS_TOTAL",
    "MESSAGES_INGESTED_TOTAL",
    "STATS_LOOKUPS_TOTAL",
]
