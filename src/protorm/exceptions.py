"""Exception hierarchy for protorm.

This module defines all custom exceptions used throughout the package.
All exceptions inherit from ProtormError for easy catching of any protorm-specific error.

Per-field and per-message problems carry a Location so that the schema builder
can collect them and report every problem of a request in one message.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class Location:
    """Coordinates of a problem inside the descriptor set.

    Attributes:
        file: Proto file name as given in the request (e.g. "blog/user.proto")
        message: Fully-qualified message name, if the problem is message-scoped
        field: Field name, if the problem is field-scoped
    """

    file: str
    message: Optional[str] = None
    field: Optional[str] = None

    def __str__(self) -> str:
        if self.message is None:
            return self.file
        if self.field is None:
            return f"{self.file}: {self.message}"
        return f"{self.file}: {self.message}.{self.field}"


class ProtormError(Exception):
    """Base exception for all protorm errors."""

    def __init__(self, message: str, *, location: Optional[Location] = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def at(self, location: Location) -> ProtormError:
        """Attach a location to this error and return it."""
        self.location = location
        return self

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location}: {self.message}"


class DecodeError(ProtormError):
    """Raised when annotation option bytes cannot be decoded.

    Examples:
        - A boolean option encoded with a length-delimited wire type
        - Truncated varint or length-delimited payload
        - Invalid UTF-8 in a string option
        - Unparseable text-format aggregate in an uninterpreted option
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: Optional[str] = None,
        expected: Optional[str] = None,
        found: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> None:
        super().__init__(message, location=location)
        self.field_name = field_name
        self.expected = expected
        self.found = found


class SchemaError(ProtormError):
    """Raised when the annotated descriptor set violates a structural rule.

    Subclasses name the specific rule. The schema builder collects them into
    a SchemaBuildError instead of stopping at the first one.
    """

    pass


class InvalidColumnTypeOverride(SchemaError):
    """Raised when a column_type override names an unrecognized target type."""

    def __init__(self, override: str, reason: str, *, location: Optional[Location] = None) -> None:
        super().__init__(f"invalid column_type override {override!r}: {reason}", location=location)
        self.override = override


class UnsupportedFieldType(SchemaError):
    """Raised when a field type has no column mapping (groups, google.protobuf.Empty)."""

    pass


class MissingPrimaryKey(SchemaError):
    """Raised when an entity has no column marked primary_key."""

    pass


class UnresolvedRelationTarget(SchemaError):
    """Raised when a relation names a message that is not an entity of the schema."""

    def __init__(self, target: str, reason: str, *, location: Optional[Location] = None) -> None:
        super().__init__(f"relation target {target!r} {reason}", location=location)
        self.target = target


class DuplicateTableName(SchemaError):
    """Raised when two entities map to the same table name."""

    pass


class DuplicateEnumName(SchemaError):
    """Raised when two distinct proto enums map to the same generated enum name."""

    pass


class RelationColumnMismatch(SchemaError):
    """Raised when relation from/to column lists differ in length or name missing columns."""

    pass


class InvalidIndex(SchemaError):
    """Raised when an index declaration is empty or names a missing column."""

    pass


class InvalidStorageOption(SchemaError):
    """Raised when an enum or oneof storage annotation names an unknown value."""

    pass


class DuplicateEnumVariant(SchemaError):
    """Raised when two values of one enum normalize to the same member name."""

    pass


class SchemaBuildError(ProtormError):
    """Raised when building the schema produced one or more problems.

    Attributes:
        errors: Every problem found, in discovery order
    """

    def __init__(self, errors: Sequence[ProtormError]) -> None:
        self.errors = list(errors)
        count = len(self.errors)
        header = f"found {count} problem{'s' if count != 1 else ''} in the descriptor set:"
        lines = [header] + [f"  - {error}" for error in self.errors]
        super().__init__("\n".join(lines))


class ConfigError(ProtormError):
    """Raised when plugin parameters or environment settings are invalid."""

    pass


class GenerationError(ProtormError):
    """Raised when the request cannot be turned into output files.

    Examples:
        - A file to generate is missing from the descriptor set
        - Two rendered files would share one output path
    """

    pass
