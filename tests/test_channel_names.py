"""Tests for channel name normalization."""

import pytest

from channel_feed.domain.exceptions import ValidationError
from channel_feed.services.channel_names import (
    build_permalink,
    normalize_channel,
    require_channel,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("loycewear", "loycewear"),
        ("@LoyceWear", "loycewear"),
        ("  @loyce_wear  ", "loyce_wear"),
        ("", ""),
        (None, ""),
        ("@", ""),
    ],
)
def test_normalize_channel(raw: str | None, expected: str) -> None:
    assert normalize_channel(raw) == expected


def test_normalize_keeps_case_when_requested() -> None:
    assert normalize_channel("@LoyceWear", lowercase=False) == "LoyceWear"


class TestRequireChannel:
    @pytest.mark.parametrize("raw", [None, "", "   ", "@"])
    def test_missing_channel(self, raw: str | None) -> None:
        with pytest.raises(ValidationError, match="No channel"):
            require_channel(raw)

    @pytest.mark.parametrize("raw", ["bad-name", "two words", "ch/../x", "a" * 65])
    def test_malformed_channel(self, raw: str) -> None:
        with pytest.raises(ValidationError, match="Invalid channel"):
            require_channel(raw)

    def test_valid_channel(self) -> None:
        assert require_channel("@Loyce_Wear2") == "loyce_wear2"


def test_build_permalink() -> None:
    assert build_permalink("loycewear", 10) == "https://t.me/loycewear/10"
