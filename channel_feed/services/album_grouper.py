"""Album grouping of raw channel rows into logical posts.

Handles:
- Partitioning rows by album key (``album:<group_id>`` or ``msg:<message_id>``)
- Canonical intra-album order (ascending message_id)
- Caption selection (first non-empty text in album order)
- Newest-first ordering by each album's latest member
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from channel_feed.domain.feed_constants import ALBUM_KEY_PREFIX, SINGLE_MESSAGE_KEY_PREFIX
from channel_feed.domain.models import LogicalPost, MediaRef, RawRow
from channel_feed.services.channel_names import build_permalink

ResolveMedia = Callable[[list[MediaRef]], list[str]]


def album_key(row: RawRow) -> str:
    """Return the grouping key for a row (album id, else a per-message key)."""
    if row.group_id:
        return f"{ALBUM_KEY_PREFIX}{row.group_id}"
    return f"{SINGLE_MESSAGE_KEY_PREFIX}{row.message_id}"


def pick_best_text(rows: Iterable[RawRow]) -> str:
    """Return the first non-empty (stripped) text, or empty string."""
    for row in rows:
        text = (row.text or "").strip()
        if text:
            return text
    return ""


@dataclass(frozen=True)
class AlbumGroup:
    """Member rows of one logical post, sorted by ascending message_id."""

    key: str
    rows: tuple[RawRow, ...]

    @property
    def representative(self) -> RawRow:
        return self.rows[0]

    @property
    def effective_posted_at(self) -> datetime:
        # Late-arriving album members promote the whole post
        return max(row.posted_at for row in self.rows)

    @property
    def media_refs(self) -> list[MediaRef]:
        return [ref for row in self.rows for ref in row.media_refs]

    @property
    def message_ids(self) -> list[int]:
        return [row.message_id for row in self.rows]

    def to_post(self, resolve_media: ResolveMedia | None = None) -> LogicalPost:
        """Build the served post; unresolvable media are dropped by the resolver."""
        first = self.representative
        images = resolve_media(self.media_refs) if resolve_media else []
        return LogicalPost(
            channel=first.channel,
            representative_message_id=first.message_id,
            posted_at=first.posted_at,
            text=pick_best_text(self.rows),
            permalink=build_permalink(first.channel, first.message_id),
            images=images,
            message_ids=self.message_ids,
        )


def group_rows(rows: Iterable[RawRow]) -> list[AlbumGroup]:
    """Partition a window of rows into album groups, newest first.

    Every input row lands in exactly one group. Groups are ordered by the
    latest ``posted_at`` among their members, ties broken by the higher
    representative message_id.
    """
    buckets: dict[str, list[RawRow]] = {}
    for row in rows:
        buckets.setdefault(album_key(row), []).append(row)

    groups = [
        AlbumGroup(key=key, rows=tuple(sorted(members, key=lambda r: r.message_id)))
        for key, members in buckets.items()
    ]
    groups.sort(
        key=lambda group: (group.effective_posted_at, group.representative.message_id),
        reverse=True,
    )
    return groups
