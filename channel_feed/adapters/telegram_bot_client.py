"""Telegram Bot API client adapter.

Serves as both the media resolution source (``getFile``) and the live
stats source (``getChatMemberCount``). Each call is a single attempt;
callers decide how to recover.
"""

from typing import Any, Final, cast
from urllib.parse import quote

import requests

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.exceptions import TelegramAPIError

logger = get_logger(__name__)

DEFAULT_TELEGRAM_API_BASE_URL: Final[str] = "https://api.telegram.org"
DEFAULT_TELEGRAM_TIMEOUT_SECONDS: Final[float] = 10.0


class TelegramBotClient:
    """Minimal synchronous Bot API client.

    Args:
        bot_token: Bot token from @BotFather
        base_url: API root, overridable for local Bot API servers
        timeout_seconds: Per-request timeout
        session: Optional preconfigured requests session

    Example:
        >>> client = TelegramBotClient(bot_token="123:abc")
        >>> client.fetch_member_count("loycewear")
        1204
    """

    def __init__(
        self,
        bot_token: str,
        *,
        base_url: str = DEFAULT_TELEGRAM_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TELEGRAM_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token must not be empty")
        self._bot_token = bot_token
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def _call(self, method: str, params: dict[str, Any]) -> Any:
        """Call a Bot API method and return its ``result`` field.

        Raises:
            TelegramAPIError: On transport errors, non-JSON bodies or ``ok == false``
        """
        url = f"{self._base_url}/bot{self._bot_token}/{method}"
        try:
            response = self._session.get(url, params=params, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise TelegramAPIError(f"{method} request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TelegramAPIError(
                f"{method} returned non-JSON body (HTTP {response.status_code})"
            ) from exc

        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TelegramAPIError(
                f"{method} failed (HTTP {response.status_code}): {description or 'unknown error'}"
            )

        return data.get("result")

    def resolve_file_url(self, file_id: str) -> str:
        """Resolve a file_id to a downloadable URL.

        The returned URL embeds the bot token and stays valid for about an hour.

        Raises:
            TelegramAPIError: If the file is unknown or the response is malformed
        """
        result = self._call("getFile", {"file_id": file_id})
        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not file_path:
            raise TelegramAPIError(f"getFile returned no file_path for {file_id}")

        return f"{self._base_url}/file/bot{self._bot_token}/{quote(cast(str, file_path))}"

    def fetch_member_count(self, channel: str) -> int:
        """Fetch the subscriber count of a public channel.

        Raises:
            TelegramAPIError: On API errors or a non-integer result
        """
        result = self._call("getChatMemberCount", {"chat_id": f"@{channel}"})
        if isinstance(result, bool) or not isinstance(result, int):
            raise TelegramAPIError(
                f"getChatMemberCount returned non-integer result for {channel}"
            )

        logger.debug("telegram_member_count_fetched", channel=channel, count=result)
        return result

    def close(self) -> None:
        self._session.close()
