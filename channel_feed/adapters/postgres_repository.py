"""PostgreSQL repository implementation using psycopg2 with connection pooling."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from time import sleep
from typing import TYPE_CHECKING, Any, Final

import pytz
from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import Json, RealDictCursor

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import RepositoryError
from channel_feed.domain.models import MediaRef, RawRow, StatsRecord, StatsSource

if TYPE_CHECKING:
    from channel_feed.config.settings import Settings

DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 1
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 10
POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0

SCHEMA_STATEMENTS: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS channel_messages (
        channel TEXT NOT NULL,
        message_id BIGINT NOT NULL,
        posted_at TIMESTAMPTZ NOT NULL,
        text TEXT NOT NULL DEFAULT '',
        permalink TEXT NOT NULL DEFAULT '',
        media_refs JSONB NOT NULL DEFAULT '[]'::jsonb,
        group_id TEXT,
        raw JSONB NOT NULL DEFAULT '{}'::jsonb,
        ingested_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (channel, message_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_channel_messages_channel_posted_at
    ON channel_messages (channel, posted_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS channel_stats (
        channel TEXT PRIMARY KEY,
        subscribers_count INTEGER,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
)

logger = get_logger(__name__)


class PostgresRepository:
    """PostgreSQL repository backed by a connection pool."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        settings: "Settings | None" = None,
    ):
        """Initialize PostgreSQL repository with pooled connections."""
        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password

        self._connect_timeout_seconds = (
            settings.postgres_connect_timeout_seconds if settings else 10
        )
        self._application_name = (
            settings.postgres_application_name if settings else "channel_feed"
        )
        self._pool_min_connections = (
            settings.postgres_min_connections
            if settings
            else DEFAULT_POOL_MIN_CONNECTIONS
        )
        self._pool_max_connections = (
            settings.postgres_max_connections
            if settings
            else DEFAULT_POOL_MAX_CONNECTIONS
        )
        if self._pool_min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if self._pool_max_connections < self._pool_min_connections:
            raise RepositoryError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )

        self._pool_in_use_count = 0
        self._pool_lock = Lock()
        self._pool = self._create_pool()
        self._create_schema()

    def _create_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Create a PostgreSQL connection pool with validation."""
        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._pool_min_connections,
                self._pool_max_connections,
                host=self._host,
                port=self._port,
                database=self._database,
                user=self._user,
                password=self._password,
                connect_timeout=self._connect_timeout_seconds,
                application_name=self._application_name,
            )
        except PsycopgError as exc:
            raise RepositoryError(
                f"Failed to initialize PostgreSQL pool: {exc}"
            ) from exc

        logger.info(
            "postgres_pool_initialized",
            host=self._host,
            port=self._port,
            database=self._database,
            min_connections=self._pool_min_connections,
            max_connections=self._pool_max_connections,
        )
        return pool

    def _create_schema(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    cur.execute(statement)
            conn.commit()

    def _acquire_connection_with_retry(self) -> extensions.connection:
        """Acquire a connection from the pool with exponential backoff."""
        attempt = 0
        delay = POOL_ACQUIRE_BASE_DELAY_SECONDS
        while True:
            attempt += 1
            try:
                conn = self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT:
                    logger.error(
                        "postgres_pool_acquire_failed",
                        attempts=attempt,
                        max_connections=self._pool_max_connections,
                        in_use=self._pool_in_use_count,
                    )
                    raise RepositoryError(
                        "Failed to acquire PostgreSQL connection from pool"
                    ) from exc

                logger.warning(
                    "postgres_pool_exhausted_retry",
                    attempt=attempt,
                    wait_seconds=delay,
                    in_use=self._pool_in_use_count,
                )
                sleep(delay)
                delay = min(delay * 2, POOL_ACQUIRE_MAX_DELAY_SECONDS)
                continue

            with self._pool_lock:
                self._pool_in_use_count += 1
            return conn

    def _release_connection(self, conn: extensions.connection, *, close: bool) -> None:
        try:
            self._pool.putconn(conn, close=close)
        except PsycopgError:
            logger.warning(
                "postgres_putconn_failed",
                database=self._database,
                close=close,
                exc_info=True,
            )
        finally:
            with self._pool_lock:
                if self._pool_in_use_count > 0:
                    self._pool_in_use_count -= 1

    @contextmanager
    def _get_connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection from the pool and ensure cleanup."""
        conn: extensions.connection | None = None
        try:
            conn = self._acquire_connection_with_retry()
            conn.autocommit = False
            yield conn
        except PsycopgError as exc:
            if conn is not None:
                try:
                    conn.rollback()
                except PsycopgError:
                    logger.warning(
                        "postgres_connection_rollback_failed",
                        database=self._database,
                        exc_info=True,
                    )
                finally:
                    self._release_connection(conn, close=True)
                    conn = None
            raise RepositoryError(f"PostgreSQL error: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    if conn.get_transaction_status() in (
                        extensions.TRANSACTION_STATUS_INTRANS,
                        extensions.TRANSACTION_STATUS_INERROR,
                    ):
                        conn.rollback()
                except PsycopgError:
                    self._release_connection(conn, close=True)
                else:
                    self._release_connection(conn, close=False)

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        with self._pool_lock:
            self._pool_in_use_count = 0
        logger.info("postgres_pool_closed", database=self._database)

    def upsert_row(self, row: RawRow) -> None:
        """Save a raw channel message (idempotent upsert on channel + message_id).

        Raises:
            RepositoryError: On storage errors
        """
        ingested_at = row.ingested_at or datetime.now(tz=pytz.UTC)
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO channel_messages (
                        channel, message_id, posted_at, text, permalink,
                        media_refs, group_id, raw, ingested_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (channel, message_id) DO UPDATE SET
                        posted_at = EXCLUDED.posted_at,
                        text = EXCLUDED.text,
                        permalink = EXCLUDED.permalink,
                        media_refs = EXCLUDED.media_refs,
                        group_id = EXCLUDED.group_id,
                        raw = EXCLUDED.raw,
                        ingested_at = EXCLUDED.ingested_at
                    """,
                    (
                        row.channel,
                        row.message_id,
                        row.posted_at,
                        row.text,
                        row.permalink,
                        Json([ref.model_dump(mode="json") for ref in row.media_refs]),
                        row.group_id,
                        Json(row.raw, dumps=_dumps_raw),
                        ingested_at,
                    ),
                )
            conn.commit()

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
        query = "SELECT * FROM channel_messages WHERE channel = %s"
        params: list[Any] = [channel]
        if posted_before is not None:
            query += " AND posted_at < %s"
            params.append(posted_before)
        query += " ORDER BY posted_at DESC, message_id DESC LIMIT %s"
        params.append(limit)

        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()

        return [self._row_to_raw_row(row) for row in rows]

    def select_latest_stats(self, channel: str) -> StatsRecord | None:
        """Get the stored subscriber count for a channel.

        Raises:
            RepositoryError: On storage errors
        """
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT channel, subscribers_count, updated_at FROM channel_stats
                    WHERE channel = %s
                    ORDER BY updated_at DESC
                    LIMIT 1
                    """,
                    (channel,),
                )
                row = cur.fetchone()

        if row is None:
            return None

        return StatsRecord(
            channel=row["channel"],
            count=row["subscribers_count"],
            updated_at=row["updated_at"],
            source=StatsSource.STORED,
        )

    def upsert_stats(self, channel: str, count: int, updated_at: datetime) -> None:
        """Store the subscriber count for a channel.

        Raises:
            RepositoryError: On storage errors
        """
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO channel_stats (channel, subscribers_count, updated_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (channel) DO UPDATE SET
                        subscribers_count = EXCLUDED.subscribers_count,
                        updated_at = EXCLUDED.updated_at
                    """,
                    (channel, count, updated_at),
                )
            conn.commit()

    def count_rows(self, channel: str) -> int:
        """Count stored rows for a channel."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM channel_messages WHERE channel = %s",
                    (channel,),
                )
                row = cur.fetchone()
        return int(row[0])

    def _row_to_raw_row(self, row: dict[str, Any]) -> RawRow:
        """Convert database row to RawRow."""
        return RawRow(
            channel=row["channel"],
            message_id=row["message_id"],
            posted_at=row["posted_at"],
            text=row["text"] or "",
            permalink=row["permalink"] or "",
            media_refs=[MediaRef(**item) for item in row["media_refs"] or []],
            group_id=row["group_id"],
            raw=row["raw"] or {},
            ingested_at=row["ingested_at"],
        )


def _dumps_raw(value: Any) -> str:
    return json.dumps(value, default=str)
