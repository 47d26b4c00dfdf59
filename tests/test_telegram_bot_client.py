"""Tests for the Telegram Bot API client adapter."""

from unittest.mock import Mock

import pytest
import requests

from channel_feed.adapters.telegram_bot_client import TelegramBotClient
from channel_feed.domain.exceptions import TelegramAPIError

TOKEN = "123456:test-token"


def _response(payload: object, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


@pytest.fixture
def session() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session: Mock) -> TelegramBotClient:
    return TelegramBotClient(TOKEN, timeout_seconds=3.0, session=session)


class TestInitialization:
    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValueError):
            TelegramBotClient("")


class TestResolveFileUrl:
    def test_builds_download_url(self, client: TelegramBotClient, session: Mock) -> None:
        session.get.return_value = _response(
            {"ok": True, "result": {"file_id": "abc", "file_path": "photos/file_7.jpg"}}
        )

        url = client.resolve_file_url("abc")

        assert url == f"https://api.telegram.org/file/bot{TOKEN}/photos/file_7.jpg"
        session.get.assert_called_once_with(
            f"https://api.telegram.org/bot{TOKEN}/getFile",
            params={"file_id": "abc"},
            timeout=3.0,
        )

    def test_custom_base_url(self, session: Mock) -> None:
        session.get.return_value = _response({"ok": True, "result": {"file_path": "a.jpg"}})
        client = TelegramBotClient(TOKEN, base_url="http://bot-api.local/", session=session)

        assert client.resolve_file_url("abc") == f"http://bot-api.local/file/bot{TOKEN}/a.jpg"

    def test_api_error_raises(self, client: TelegramBotClient, session: Mock) -> None:
        session.get.return_value = _response(
            {"ok": False, "description": "Bad Request: invalid file_id"}, status_code=400
        )

        with pytest.raises(TelegramAPIError, match="invalid file_id"):
            client.resolve_file_url("nope")

    def test_missing_file_path_raises(self, client: TelegramBotClient, session: Mock) -> None:
        session.get.return_value = _response({"ok": True, "result": {"file_id": "abc"}})

        with pytest.raises(TelegramAPIError, match="no file_path"):
            client.resolve_file_url("abc")

    def test_network_error_raises(self, client: TelegramBotClient, session: Mock) -> None:
        session.get.side_effect = requests.ConnectionError("connection reset")

        with pytest.raises(TelegramAPIError, match="request failed"):
            client.resolve_file_url("abc")

    def test_non_json_body_raises(self, client: TelegramBotClient, session: Mock) -> None:
        response = _response(None, status_code=502)
        response.json.side_effect = ValueError("Expecting value")
        session.get.return_value = response

        with pytest.raises(TelegramAPIError, match="non-JSON"):
            client.resolve_file_url("abc")


class TestFetchMemberCount:
    def test_returns_count(self, client: TelegramBotClient, session: Mock) -> None:
        session.get.return_value = _response({"ok": True, "result": 1204})

        assert client.fetch_member_count("loycewear") == 1204
        assert session.get.call_args.kwargs["params"] == {"chat_id": "@loycewear"}

    @pytest.mark.parametrize("result", [True, "1204", None])
    def test_non_integer_result_raises(
        self, client: TelegramBotClient, session: Mock, result: object
    ) -> None:
        session.get.return_value = _response({"ok": True, "result": result})

        with pytest.raises(TelegramAPIError):
            client.fetch_member_count("loycewear")


def test_close_closes_session(client: TelegramBotClient, session: Mock) -> None:
    client.close()

    session.close.assert_called_once()
