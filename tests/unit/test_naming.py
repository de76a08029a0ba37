"""Unit tests for identifier case conversion."""

from __future__ import annotations

import pytest

from protorm.utils.naming import (
    pascal_case,
    safe_identifier,
    screaming_snake_case,
    snake_case,
    split_words,
)


class TestSplitWords:
    """Test word boundaries."""

    @pytest.mark.parametrize(
        ("name", "words"),
        [
            ("UserProfile", ["User", "Profile"]),
            ("user_profile", ["user", "profile"]),
            ("HTTPServer", ["HTTP", "Server"]),
            ("HTTPServer2Config", ["HTTP", "Server2", "Config"]),
            ("createdAt", ["created", "At"]),
            ("api-key.v2", ["api", "key", "v2"]),
            ("__x__", ["x"]),
            ("ID", ["ID"]),
        ],
    )
    def test_split(self, name: str, words: list[str]) -> None:
        """Words split at separators and case transitions."""
        assert split_words(name) == words


class TestConversions:
    """Test snake, Pascal and screaming-snake conversion."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("UserProfile", "user_profile"),
            ("PostTag", "post_tag"),
            ("HTTPServer", "http_server"),
            ("createdAt", "created_at"),
            ("already_snake", "already_snake"),
        ],
    )
    def test_snake_case(self, name: str, expected: str) -> None:
        """snake_case lowercases and joins with underscores."""
        assert snake_case(name) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("user_profile", "UserProfile"),
            ("User", "User"),
            ("HTTPServer", "HttpServer"),
            ("order_v2", "OrderV2"),
        ],
    )
    def test_pascal_case(self, name: str, expected: str) -> None:
        """pascal_case capitalizes each word."""
        assert pascal_case(name) == expected

    def test_screaming_snake_case(self) -> None:
        """Enum variants keep their words in upper case."""
        assert screaming_snake_case("STATUS_ACTIVE") == "STATUS_ACTIVE"
        assert screaming_snake_case("activeUser") == "ACTIVE_USER"


class TestSafeIdentifier:
    """Test escaping of unusable attribute names."""

    @pytest.mark.parametrize("name", ["class", "from", "import", "None", "metadata", "registry"])
    def test_escaped(self, name: str) -> None:
        """Keywords and declarative reserved names get a trailing underscore."""
        assert safe_identifier(name) == f"{name}_"

    @pytest.mark.parametrize("name", ["id", "type", "match", "name"])
    def test_unchanged(self, name: str) -> None:
        """Ordinary names and soft keywords are kept."""
        assert safe_identifier(name) == name
