"""Constants governing feed pagination and media caching."""

from typing import Final

DEFAULT_PAGE_SIZE: Final[int] = 20
MAX_PAGE_SIZE: Final[int] = 50

# One album spans several raw rows, so a page reads more rows than posts.
ROW_FANOUT_FACTOR: Final[int] = 16
MAX_ROWS_PER_PAGE: Final[int] = 800

MEDIA_CACHE_TTL_SECONDS: Final[float] = 60 * 60

ALBUM_KEY_PREFIX: Final[str] = "album:"
SINGLE_MESSAGE_KEY_PREFIX: Final[str] = "msg:"

TELEGRAM_PERMALINK_BASE: Final[str] = "https://t.me"
