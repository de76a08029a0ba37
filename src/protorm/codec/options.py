"""Decoded annotation values and the annotation wire contract.

The field numbers below mirror proto/protorm/options.proto. They are a fixed
external contract: changing any of them breaks already-annotated .proto files.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .wire import WireType

# Extension numbers on google.protobuf.MessageOptions, FieldOptions,
# EnumOptions and OneofOptions
MODEL_EXTENSION = 51000
COLUMN_EXTENSION = 51001
ENUM_EXTENSION = 51002
ONEOF_EXTENSION = 51003

EXTENSION_NAMES = {
    MODEL_EXTENSION: "protorm.model",
    COLUMN_EXTENSION: "protorm.column",
    ENUM_EXTENSION: "protorm.enum_storage",
    ONEOF_EXTENSION: "protorm.oneof_storage",
}


class RelationKind(enum.Enum):
    """The four association shapes between entities."""

    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    BELONGS_TO = "belongs_to"
    HAS_MANY_VIA = "has_many_via"


class EnumStorage(enum.Enum):
    """How enum-typed columns are stored."""

    NATIVE = "native"
    STRING = "string"
    INTEGER = "integer"


class OneofStrategy(enum.Enum):
    """How the members of a oneof map onto columns.

    FLATTEN gives every member its own nullable column, JSON stores the set
    member in one document column and TAGGED stores the member name next to
    its value.
    """

    FLATTEN = "flatten"
    JSON = "json"
    TAGGED = "tagged"


@dataclass(frozen=True)
class FieldSpec:
    """Wire-level description of one annotation field.

    Attributes:
        name: Field name in options.proto
        wire_type: Wire type the field must be encoded with
        kind: "string", "bool" or "message"
        repeated: Whether occurrences accumulate instead of replacing
    """

    name: str
    wire_type: WireType
    kind: str
    repeated: bool = False


INDEX_FIELDS = {
    1: FieldSpec("name", WireType.LEN, "string"),
    2: FieldSpec("columns", WireType.LEN, "string", repeated=True),
    3: FieldSpec("unique", WireType.VARINT, "bool"),
}

MESSAGE_OPTION_FIELDS = {
    1: FieldSpec("table_name", WireType.LEN, "string"),
    2: FieldSpec("skip", WireType.VARINT, "bool"),
    3: FieldSpec("indexes", WireType.LEN, "message", repeated=True),
}

FIELD_OPTION_FIELDS = {
    1: FieldSpec("primary_key", WireType.VARINT, "bool"),
    2: FieldSpec("auto_increment", WireType.VARINT, "bool"),
    3: FieldSpec("unique", WireType.VARINT, "bool"),
    4: FieldSpec("nullable", WireType.VARINT, "bool"),
    5: FieldSpec("column_type", WireType.LEN, "string"),
    6: FieldSpec("default", WireType.LEN, "string"),
    7: FieldSpec("column_name", WireType.LEN, "string"),
}

# Members of the FieldOptions.relation oneof
RELATION_FIELDS = {
    10: RelationKind.HAS_ONE,
    11: RelationKind.HAS_MANY,
    12: RelationKind.BELONGS_TO,
    13: RelationKind.HAS_MANY_VIA,
}

RELATION_NUMBERS = {kind: number for number, kind in RELATION_FIELDS.items()}

# Payload layout of each relation variant message
RELATION_VARIANT_FIELDS = {
    RelationKind.HAS_ONE: {
        1: FieldSpec("target", WireType.LEN, "string"),
    },
    RelationKind.HAS_MANY: {
        1: FieldSpec("target", WireType.LEN, "string"),
    },
    RelationKind.BELONGS_TO: {
        1: FieldSpec("target", WireType.LEN, "string"),
        2: FieldSpec("from_columns", WireType.LEN, "string", repeated=True),
        3: FieldSpec("to_columns", WireType.LEN, "string", repeated=True),
    },
    RelationKind.HAS_MANY_VIA: {
        1: FieldSpec("target", WireType.LEN, "string"),
        2: FieldSpec("junction_table", WireType.LEN, "string"),
        3: FieldSpec("from_columns", WireType.LEN, "string", repeated=True),
        4: FieldSpec("to_columns", WireType.LEN, "string", repeated=True),
    },
}

ENUM_OPTION_FIELDS = {
    1: FieldSpec("db_type", WireType.LEN, "string"),
}

ONEOF_OPTION_FIELDS = {
    1: FieldSpec("strategy", WireType.LEN, "string"),
    2: FieldSpec("column_prefix", WireType.LEN, "string"),
    3: FieldSpec("discriminator_column", WireType.LEN, "string"),
}


@dataclass(frozen=True)
class IndexSpec:
    """An index declared at message scope.

    Attributes:
        name: Index name; empty means derived from table and columns
        columns: Field names covered by the index, in order
        unique: Whether the index enforces uniqueness
    """

    name: str = ""
    columns: tuple[str, ...] = ()
    unique: bool = False


@dataclass(frozen=True)
class MessageOptions:
    """Decoded (protorm.model) annotation."""

    table_name: Optional[str] = None
    skip: bool = False
    indexes: tuple[IndexSpec, ...] = ()


@dataclass(frozen=True)
class RelationSpec:
    """Unresolved relation declared on a field.

    The target is a message name as written in the annotation; it is resolved
    against the schema's entity index after every entity has been built.
    """

    kind: RelationKind
    target: str = ""
    from_columns: tuple[str, ...] = ()
    to_columns: tuple[str, ...] = ()
    junction_table: str = ""


@dataclass(frozen=True)
class FieldOptions:
    """Decoded (protorm.column) annotation."""

    primary_key: bool = False
    auto_increment: bool = False
    unique: bool = False
    nullable: Optional[bool] = None
    column_type: Optional[str] = None
    default: Optional[str] = None
    column_name: Optional[str] = None
    relation: Optional[RelationSpec] = None


@dataclass(frozen=True)
class EnumOptions:
    """Decoded (protorm.enum_storage) annotation.

    db_type is kept as written; the schema builder validates it against
    EnumStorage so that a bad value is reported at the enum's location.
    """

    db_type: Optional[str] = None


@dataclass(frozen=True)
class OneofOptions:
    """Decoded (protorm.oneof_storage) annotation."""

    strategy: Optional[str] = None
    column_prefix: str = ""
    discriminator_column: str = ""
