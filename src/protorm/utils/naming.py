"""Case conversion for generated identifiers.

All conversions are pure functions of their input: no locale, no state.
Words are split at separators (any non-alphanumeric character), at
lower-to-upper and digit-to-upper transitions, and before the last capital of
an acronym followed by a lowercase letter, so that "HTTPServer2Config" splits
into ["HTTP", "Server2", "Config"].
"""

from __future__ import annotations

import keyword

# Attribute names a declarative class cannot use for mapped columns
RESERVED_ATTRIBUTES = frozenset({"metadata", "registry"})


def split_words(name: str) -> list[str]:
    """Split an identifier into words.

    Args:
        name: Identifier in any casing convention

    Returns:
        Words in order, original casing preserved
    """
    words: list[str] = []
    current: list[str] = []

    for i, char in enumerate(name):
        if not (char.isascii() and char.isalnum()):
            if current:
                words.append("".join(current))
                current = []
            continue

        if current and char.isupper():
            prev = current[-1]
            following = name[i + 1] if i + 1 < len(name) else ""
            if prev.islower() or prev.isdigit():
                words.append("".join(current))
                current = []
            elif prev.isupper() and following.isascii() and following.islower():
                words.append("".join(current))
                current = []

        current.append(char)

    if current:
        words.append("".join(current))
    return words


def snake_case(name: str) -> str:
    """Convert to snake_case ("UserProfile" -> "user_profile")."""
    return "_".join(word.lower() for word in split_words(name))


def pascal_case(name: str) -> str:
    """Convert to PascalCase ("user_profile" -> "UserProfile", "HTTPServer" -> "HttpServer")."""
    return "".join(word[0].upper() + word[1:].lower() for word in split_words(name))


def screaming_snake_case(name: str) -> str:
    """Convert to SCREAMING_SNAKE_CASE ("activeUser" -> "ACTIVE_USER")."""
    return "_".join(word.upper() for word in split_words(name))


def safe_identifier(name: str) -> str:
    """Append an underscore to names that cannot be used as mapped attributes.

    Example:
        >>> safe_identifier("class")
        'class_'
        >>> safe_identifier("metadata")
        'metadata_'
    """
    if keyword.iskeyword(name) or name in RESERVED_ATTRIBUTES:
        return f"{name}_"
    return name
