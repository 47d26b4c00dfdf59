"""Channel name normalization and validation."""

import re
from typing import Final

from channel_feed.domain.exceptions import ValidationError
from channel_feed.domain.feed_constants import TELEGRAM_PERMALINK_BASE

CHANNEL_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_]{1,64}$")


def normalize_channel(raw: str | None, *, lowercase: bool = True) -> str:
    """Normalize a channel name as supplied by users or payloads.

    Args:
        raw: Channel name, possibly with whitespace or a leading ``@``
        lowercase: Lower-case the result

    Returns:
        Normalized name, or empty string when nothing is left

    Example:
        >>> normalize_channel("  @LoyceWear ")
        'loycewear'
    """
    if not raw:
        return ""
    channel = raw.strip().lstrip("@").strip()
    return channel.lower() if lowercase else channel


def require_channel(raw: str | None, *, lowercase: bool = True) -> str:
    """Normalize a channel name and reject empty or malformed values.

    Raises:
        ValidationError: If the channel is missing or malformed
    """
    channel = normalize_channel(raw, lowercase=lowercase)
    if not channel:
        raise ValidationError("No channel")
    if not CHANNEL_NAME_PATTERN.match(channel):
        raise ValidationError(f"Invalid channel: {channel!r}")
    return channel


def build_permalink(channel: str, message_id: int) -> str:
    """Build the public t.me URL for a channel post.

    Example:
        >>> build_permalink("loycewear", 42)
        'https://t.me/loycewear/42'
    """
    return f"{TELEGRAM_PERMALINK_BASE}/{channel}/{message_id}"
