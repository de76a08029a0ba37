"""Normalized schema produced by the schema builder.

Every value here is immutable once built. Entities refer to each other and to
enums only by fully-qualified proto name; lookups go through Schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Mapping, Optional

from ..codec.options import EnumStorage, RelationKind


@dataclass(frozen=True)
class TargetType:
    """A SQLAlchemy column type.

    Attributes:
        name: Canonical SQLAlchemy type name (e.g. "String", "Enum")
        args: Constructor arguments, already rendered as source text
        python_type: Annotation used inside Mapped[...] (e.g. "str", "list[int]")
        enum: Fully-qualified name of the enum this type refers to, if any
    """

    name: str
    args: tuple[str, ...] = ()
    python_type: str = "Any"
    enum: Optional[str] = None

    def expression(self) -> str:
        """Render the type as a constructor expression ("String(255)", "Boolean")."""
        if not self.args:
            return self.name
        return f"{self.name}({', '.join(self.args)})"


@dataclass(frozen=True)
class Column:
    """One mapped column of an entity.

    Attributes:
        field_name: Proto field name
        column_name: SQL column name
        attribute: Python attribute name on the mapped class
        proto_type: Human-readable proto type ("int64", "repeated string", ...)
        target_type: Mapped SQLAlchemy type
        primary_key: Part of the primary key
        auto_increment: Database-generated value
        unique: Single-column unique constraint
        nullable: Column accepts NULL
        default: Server default SQL expression
    """

    field_name: str
    column_name: str
    attribute: str
    proto_type: str
    target_type: TargetType
    primary_key: bool = False
    auto_increment: bool = False
    unique: bool = False
    nullable: bool = False
    default: Optional[str] = None


@dataclass(frozen=True)
class Relation:
    """A resolved relation between two entities.

    from_columns and to_columns hold proto field names: for BELONGS_TO they
    name columns of the owning entity and of the target; for HAS_MANY_VIA
    they name the primary-key columns of the owning entity and of the target
    that the junction table refers to.
    """

    field_name: str
    attribute: str
    kind: RelationKind
    target: str
    from_columns: tuple[str, ...] = ()
    to_columns: tuple[str, ...] = ()
    junction_table: str = ""
    nullable: bool = True


@dataclass(frozen=True)
class Index:
    """A resolved index; columns are SQL column names."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class Entity:
    """A table derived from one proto message."""

    name: str
    full_name: str
    file_name: str
    table_name: str
    columns: tuple[Column, ...] = ()
    relations: tuple[Relation, ...] = ()
    indexes: tuple[Index, ...] = ()

    @property
    def primary_key(self) -> tuple[Column, ...]:
        return tuple(column for column in self.columns if column.primary_key)

    def column(self, name: str) -> Optional[Column]:
        """Find a column by proto field name, then by SQL column name."""
        for column in self.columns:
            if column.field_name == name:
                return column
        for column in self.columns:
            if column.column_name == name:
                return column
        return None


@dataclass(frozen=True)
class EnumType:
    """A generated enum class shared by every column that uses the proto enum.

    Attributes:
        name: Python class name
        full_name: Fully-qualified proto name
        file_name: .proto file that declares the enum
        variants: (member name, number) pairs in declaration order
        storage: How columns of this enum are stored; INTEGER enums render as
            enum.IntEnum and their columns as plain Integer
    """

    name: str
    full_name: str
    file_name: str
    variants: tuple[tuple[str, int], ...] = ()
    storage: EnumStorage = EnumStorage.NATIVE


@dataclass(frozen=True)
class Schema:
    """Every entity and enum of a request, keyed by fully-qualified proto name.

    Both mappings keep discovery order (request file order, then declaration
    order), which is the order code is generated in.
    """

    entities: Mapping[str, Entity]
    enums: Mapping[str, EnumType]

    def entity(self, name: str) -> Optional[Entity]:
        return self.entities.get(name.lstrip("."))

    def enum(self, name: str) -> Optional[EnumType]:
        return self.enums.get(name.lstrip("."))

    def entities_in_file(self, file_name: str) -> Iterator[Entity]:
        return (entity for entity in self.entities.values() if entity.file_name == file_name)

    def enums_in_file(self, file_name: str) -> Iterator[EnumType]:
        return (enum for enum in self.enums.values() if enum.file_name == file_name)
