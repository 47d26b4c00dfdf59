"""Domain models for the channel feed service.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaKind(str, Enum):
    """Kind of media asset a reference points to."""

    PHOTO = "photo"
    DOCUMENT = "document"


class StatsSource(str, Enum):
    """Where a subscriber count came from."""

    STORED = "stored"
    LIVE = "live"


class UpdateKind(str, Enum):
    """Envelope an inbound Telegram message arrived in."""

    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    BARE = "bare"


class MediaRef(BaseModel):
    """Opaque media reference that must be resolved to a URL before serving."""

    model_config = ConfigDict(frozen=True)

    kind: MediaKind = Field(default=MediaKind.PHOTO, description="Media kind")
    file_id: str = Field(..., min_length=1, description="Telegram file_id")
    file_unique_id: str | None = Field(
        default=None, description="Stable Telegram file identifier"
    )
    width: int | None = Field(default=None, description="Width in pixels")
    height: int | None = Field(default=None, description="Height in pixels")
    mime_type: str | None = Field(default=None, description="MIME type if known")


class RawRow(BaseModel):
    """One physical channel message as persisted.

    ``(channel, message_id)`` is unique; re-ingesting overwrites fields.
    """

    channel: str = Field(..., description="Normalized channel name")
    message_id: int = Field(..., description="Message ID, unique within channel")
    posted_at: datetime = Field(..., description="Authoritative ordering key (UTC)")
    text: str = Field(default="", description="Message text or caption")
    permalink: str = Field(default="", description="Public post URL")
    media_refs: list[MediaRef] = Field(
        default_factory=list, description="Media references in display order"
    )
    group_id: str | None = Field(
        default=None, description="Album identifier shared by album members"
    )
    raw: dict[str, Any] = Field(
        default_factory=dict, description="Original inbound payload"
    )
    ingested_at: datetime | None = Field(
        default=None, description="When the row was last written"
    )

    @field_validator("group_id", mode="before")
    @classmethod
    def _coerce_group_id(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return value or ""


class LogicalPost(BaseModel):
    """Grouped, de-duplicated post served to clients."""

    channel: str
    representative_message_id: int = Field(
        ..., description="Minimum message_id among the member rows"
    )
    posted_at: datetime = Field(..., description="Representative row timestamp")
    text: str = Field(default="", description="First non-empty member text")
    permalink: str
    images: list[str] = Field(
        default_factory=list, description="Resolved media URLs in album order"
    )
    message_ids: list[int] = Field(
        default_factory=list,
        exclude=True,
        description="Member message IDs, ascending",
    )


class FeedPage(BaseModel):
    """One page of logical posts plus the continuation cursor."""

    items: list[LogicalPost] = Field(default_factory=list)
    next_cursor: datetime | None = Field(
        default=None, description="posted_at of the last item, None at end of feed"
    )


class StatsRecord(BaseModel):
    """Subscriber count for a channel with its provenance."""

    channel: str
    count: int | None = Field(default=None, description="Subscriber/member count")
    updated_at: datetime | None = Field(default=None)
    source: StatsSource | None = Field(default=None)


# === Inbound Telegram payloads ===


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    username: str | None = None
    title: str | None = None
    type: str | None = None


class TelegramPhotoSize(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_id: str
    file_unique_id: str | None = None
    width: int | None = None
    height: int | None = None
    file_size: int | None = None


class TelegramDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_id: str
    file_unique_id: str | None = None
    mime_type: str | None = None
    file_name: str | None = None


class TelegramMessagePayload(BaseModel):
    """Subset of a Telegram message the feed cares about.

    Accepts both Bot API messages (``media_group_id``, Unix ``date``) and
    history exports (``grouped_id``, ISO ``date``, explicit ``channel_username``).
    """

    model_config = ConfigDict(extra="ignore")

    message_id: int
    chat: TelegramChat | None = None
    channel_username: str | None = None
    date: datetime | int | float | str | None = None
    text: str | None = None
    caption: str | None = None
    photo: list[TelegramPhotoSize] = Field(default_factory=list)
    document: TelegramDocument | None = None
    media_group_id: str | int | None = None
    grouped_id: str | int | None = None

    @field_validator("photo", mode="before")
    @classmethod
    def _coerce_photo(cls, value: Any) -> Any:
        # History exports store a single dict rather than the size ladder
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value


class InboundMessage(BaseModel):
    """Inbound message tagged with the envelope it arrived in."""

    kind: UpdateKind
    message: TelegramMessagePayload
    payload: dict[str, Any] = Field(default_factory=dict)
