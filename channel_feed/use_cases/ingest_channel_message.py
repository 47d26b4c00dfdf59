"""Ingest channel message use case.

Maps an inbound Telegram payload (webhook update or history export record)
to a stored raw row. Storage failures are logged and never surfaced, so an
at-least-once delivery source is always acknowledged.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import pytz
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import RepositoryError, ValidationError
from channel_feed.domain.models import (
    InboundMessage,
    MediaKind,
    MediaRef,
    RawRow,
    TelegramMessagePayload,
    UpdateKind,
)
from channel_feed.domain.protocols import FeedRepositoryProtocol
from channel_feed.observability.metrics import MESSAGES_INGESTED_TOTAL
from channel_feed.services.channel_names import build_permalink, require_channel

logger = get_logger(__name__)

Clock = Callable[[], datetime]

_ENVELOPE_KEYS: tuple[UpdateKind, ...] = (
    UpdateKind.CHANNEL_POST,
    UpdateKind.EDITED_CHANNEL_POST,
    UpdateKind.MESSAGE,
    UpdateKind.EDITED_MESSAGE,
)


class IngestResult(BaseModel):
    """Outcome of one ingestion attempt (never an error for the caller)."""

    accepted: bool = Field(..., description="Payload parsed into a raw row")
    saved: bool = Field(default=False, description="Row written to storage")
    channel: str | None = None
    message_id: int | None = None
    reason: str | None = Field(default=None, description="Why it was not saved")


def _utc_now() -> datetime:
    return datetime.now(tz=pytz.UTC)


def parse_inbound(payload: dict[str, Any]) -> InboundMessage | None:
    """Parse an inbound payload into a tagged message.

    Recognizes Bot API updates (``channel_post``, ``edited_channel_post``,
    ``message``, ``edited_message``) and bare message objects.

    Returns:
        Parsed message, or None if the shape is not a message
    """
    if not isinstance(payload, dict):
        return None

    for kind in _ENVELOPE_KEYS:
        body = payload.get(kind.value)
        if isinstance(body, dict):
            break
    else:
        kind, body = UpdateKind.BARE, payload

    if "message_id" not in body:
        return None

    try:
        message = TelegramMessagePayload.model_validate(body)
    except PydanticValidationError as exc:
        logger.warning(
            "ingest_payload_invalid",
            kind=kind.value,
            error_count=exc.error_count(),
        )
        return None

    return InboundMessage(kind=kind, message=message, payload=body)


def _from_unix_seconds(value: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(value, tz=pytz.UTC)
    except (ValueError, OverflowError, OSError):
        return None


def parse_posted_at(value: Any, *, now: datetime) -> datetime:
    """Parse a message timestamp (Unix seconds, ISO-8601 or datetime) as UTC.

    Falls back to ``now`` when the value is missing, unparseable or out of
    the representable range.
    """
    parsed: datetime | None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool) or value is None:
        return now
    elif isinstance(value, (int, float)):
        parsed = _from_unix_seconds(value)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                parsed = None
        else:
            parsed = _from_unix_seconds(seconds)
    else:
        return now

    if parsed is None:
        logger.warning("ingest_posted_at_unparseable", value=str(value))
        return now

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    try:
        return parsed.astimezone(pytz.UTC)
    except OverflowError:
        logger.warning("ingest_posted_at_unparseable", value=str(value))
        return now


def extract_media_refs(message: TelegramMessagePayload) -> list[MediaRef]:
    """Extract media references for one message.

    The largest photo size (last in Telegram's ladder) represents the photo;
    image documents contribute their own file_id. Entries without a
    file_id are skipped.
    """
    refs: list[MediaRef] = []

    if message.photo and message.photo[-1].file_id.strip():
        best = message.photo[-1]
        refs.append(
            MediaRef(
                kind=MediaKind.PHOTO,
                file_id=best.file_id,
                file_unique_id=best.file_unique_id,
                width=best.width,
                height=best.height,
            )
        )

    document = message.document
    if (
        document is not None
        and document.file_id.strip()
        and (document.mime_type or "").startswith("image/")
    ):
        refs.append(
            MediaRef(
                kind=MediaKind.DOCUMENT,
                file_id=document.file_id,
                file_unique_id=document.file_unique_id,
                mime_type=document.mime_type,
            )
        )

    return refs


def build_raw_row(
    inbound: InboundMessage,
    *,
    lowercase_channel: bool = True,
    now: datetime | None = None,
) -> RawRow:
    """Convert a parsed inbound message to a raw row.

    Raises:
        ValidationError: If the message carries no usable channel name
    """
    message = inbound.message
    now = now or _utc_now()

    raw_channel = message.channel_username or (
        message.chat.username if message.chat else None
    )
    channel = require_channel(raw_channel, lowercase=lowercase_channel)

    text = message.text if message.text else (message.caption or "")
    group_id = (
        message.media_group_id
        if message.media_group_id is not None
        else message.grouped_id
    )

    return RawRow(
        channel=channel,
        message_id=message.message_id,
        posted_at=parse_posted_at(message.date, now=now),
        text=text,
        permalink=build_permalink(channel, message.message_id),
        media_refs=extract_media_refs(message),
        group_id=group_id,
        raw=inbound.payload,
        ingested_at=now,
    )


def ingest_channel_message_use_case(
    payload: dict[str, Any],
    repository: FeedRepositoryProtocol,
    *,
    lowercase_channel: bool = True,
    clock: Clock = _utc_now,
) -> IngestResult:
    """Persist one inbound channel message idempotently.

    Replaying the same message any number of times leaves one stored row
    holding the latest field values. Never raises: unparseable payloads
    and storage failures are logged and reported in the result.

    Args:
        payload: Raw inbound payload
        repository: Row store
        lowercase_channel: Lower-case channel names
        clock: Source of the ingestion time

    Returns:
        IngestResult describing what happened
    """
    inbound = parse_inbound(payload)
    if inbound is None:
        MESSAGES_INGESTED_TOTAL.labels(outcome="ignored").inc()
        logger.info("ingest_payload_ignored", reason="not_a_message")
        return IngestResult(accepted=False, reason="not_a_message")

    try:
        row = build_raw_row(inbound, lowercase_channel=lowercase_channel, now=clock())
    except ValidationError as exc:
        MESSAGES_INGESTED_TOTAL.labels(outcome="rejected").inc()
        logger.warning(
            "ingest_payload_rejected",
            kind=inbound.kind.value,
            message_id=inbound.message.message_id,
            error=str(exc),
        )
        return IngestResult(
            accepted=False,
            message_id=inbound.message.message_id,
            reason="invalid_channel",
        )
    except PydanticValidationError as exc:
        MESSAGES_INGESTED_TOTAL.labels(outcome="rejected").inc()
        logger.warning(
            "ingest_payload_rejected",
            kind=inbound.kind.value,
            message_id=inbound.message.message_id,
            error_count=exc.error_count(),
        )
        return IngestResult(
            accepted=False,
            message_id=inbound.message.message_id,
            reason="invalid_payload",
        )

    try:
        repository.upsert_row(row)
    except RepositoryError as exc:
        MESSAGES_INGESTED_TOTAL.labels(outcome="failed").inc()
        logger.error(
            "ingest_store_write_failed",
            channel=row.channel,
            message_id=row.message_id,
            error=str(exc),
        )
        return IngestResult(
            accepted=True,
            saved=False,
            channel=row.channel,
            message_id=row.message_id,
            reason="store_write_failed",
        )

    MESSAGES_INGESTED_TOTAL.labels(outcome="saved").inc()
    logger.info(
        "channel_message_ingested",
        channel=row.channel,
        message_id=row.message_id,
        kind=inbound.kind.value,
        group_id=row.group_id,
        media_count=len(row.media_refs),
    )
    return IngestResult(
        accepted=True,
        saved=True,
        channel=row.channel,
        message_id=row.message_id,
    )
