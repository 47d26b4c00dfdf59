"""SQLite repository adapter for local storage.

Implements FeedRepositoryProtocol with SQLite backend.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Final

import pytz

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import RepositoryError
from channel_feed.domain.models import MediaRef, RawRow, StatsRecord, StatsSource

logger = get_logger(__name__)

MESSAGES_TABLE: Final[str] = "channel_messages"
STATS_TABLE: Final[str] = "channel_stats"
SQLITE_BUSY_TIMEOUT_SECONDS: Final[float] = 30.0


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as fixed-width UTC ISO text so ordering is lexical."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC).isoformat(timespec="microseconds")


def from_db_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    return parsed


class SQLiteRepository:
    """SQLite-based repository for raw channel messages and stats."""

    def __init__(self, db_path: str) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

        # Ensure data directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection.

        Returns:
            SQLite connection

        Raises:
            RepositoryError: If the database file cannot be opened
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=SQLITE_BUSY_TIMEOUT_SECONDS)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {MESSAGES_TABLE} (
                    channel TEXT NOT NULL,
                    message_id INTEGER NOT NULL,
                    posted_at TEXT NOT NULL,
                    text TEXT,
                    permalink TEXT,
                    media_refs TEXT,
                    group_id TEXT,
                    raw TEXT,
                    ingested_at TEXT,
                    PRIMARY KEY (channel, message_id)
                )
                """
            )
            cursor.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{MESSAGES_TABLE}_channel_posted_at
                ON {MESSAGES_TABLE} (channel, posted_at DESC)
                """
            )
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {STATS_TABLE} (
                    channel TEXT PRIMARY KEY,
                    subscribers_count INTEGER,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create schema: {e}") from e
        finally:
            conn.close()

    def upsert_row(self, row: RawRow) -> None:
        """Save a raw channel message (idempotent upsert on channel + message_id).

        Raises:
            RepositoryError: On storage errors
        """
        ingested_at = row.ingested_at or datetime.now(tz=pytz.UTC)
        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                INSERT INTO {MESSAGES_TABLE} (
                    channel, message_id, posted_at, text, permalink,
                    media_refs, group_id, raw, ingested_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(channel, message_id) DO UPDATE SET
                    posted_at = excluded.posted_at,
                    text = excluded.text,
                    permalink = excluded.permalink,
                    media_refs = excluded.media_refs,
                    group_id = excluded.group_id,
                    raw = excluded.raw,
                    ingested_at = excluded.ingested_at
                """,
                (
                    row.channel,
                    row.message_id,
                    to_db_timestamp(row.posted_at),
                    row.text,
                    row.permalink,
                    json.dumps([ref.model_dump(mode="json") for ref in row.media_refs]),
                    row.group_id,
                    json.dumps(row.raw, default=str),
                    to_db_timestamp(ingested_at),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save channel message: {e}") from e
        finally:
            conn.close()

    def select_rows(
        self,
        channel: str,
        *,
        posted_before: datetime | None = None,
        limit: int,
    ) -> list[RawRow]:
        """Get channel messages ordered by posted_at DESC.

        Raises:
            RepositoryError: On storage errors
        """
        query = f"SELECT * FROM {MESSAGES_TABLE} WHERE channel = ?"
        params: list[object] = [channel]
        if posted_before is not None:
            query += " AND posted_at < ?"
            params.append(to_db_timestamp(posted_before))
        query += " ORDER BY posted_at DESC, message_id DESC LIMIT ?"
        params.append(limit)

        conn = self._get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get channel messages: {e}") from e
        finally:
            conn.close()

        return [self._row_to_raw_row(row) for row in rows]

    def select_latest_stats(self, channel: str) -> StatsRecord | None:
        """Get the stored subscriber count for a channel.

        Raises:
            RepositoryError: On storage errors
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT channel, subscribers_count, updated_at FROM {STATS_TABLE}
                WHERE channel = ?
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (channel,),
            ).fetchone()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get channel stats: {e}") from e
        finally:
            conn.close()

        if row is None:
            return None

        return StatsRecord(
            channel=row["channel"],
            count=row["subscribers_count"],
            updated_at=from_db_timestamp(row["updated_at"]),
            source=StatsSource.STORED,
        )

    def upsert_stats(self, channel: str, count: int, updated_at: datetime) -> None:
        """Store the subscriber count for a channel.

        Raises:
            RepositoryError: On storage errors
        """
        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                INSERT INTO {STATS_TABLE} (channel, subscribers_count, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(channel) DO UPDATE SET
                    subscribers_count = excluded.subscribers_count,
                    updated_at = excluded.updated_at
                """,
                (channel, count, to_db_timestamp(updated_at)),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save channel stats: {e}") from e
        finally:
            conn.close()

    def count_rows(self, channel: str) -> int:
        """Count stored rows for a channel."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {MESSAGES_TABLE} WHERE channel = ?",
                (channel,),
            ).fetchone()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to count channel messages: {e}") from e
        finally:
            conn.close()
        return int(row[0])

    def _row_to_raw_row(self, row: sqlite3.Row) -> RawRow:
        """Convert database row to RawRow."""
        media_payload = json.loads(row["media_refs"]) if row["media_refs"] else []
        return RawRow(
            channel=row["channel"],
            message_id=row["message_id"],
            posted_at=from_db_timestamp(row["posted_at"]),
            text=row["text"] or "",
            permalink=row["permalink"] or "",
            media_refs=[MediaRef(**item) for item in media_payload],
            group_id=row["group_id"],
            raw=json.loads(row["raw"]) if row["raw"] else {},
            ingested_at=(
                from_db_timestamp(row["ingested_at"]) if row["ingested_at"] else None
            ),
        )
