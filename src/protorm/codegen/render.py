"""Rendering of SQLAlchemy 2.0 declarative models.

Every function here is a pure function of the schema and configuration:
the same input renders to byte-identical text. Output follows a fixed
layout so that regenerating unchanged protos produces no diff:

- header comment, then "from __future__ import annotations"
- imports in three groups (standard library, sqlalchemy, generated modules),
  each sorted
- enums first, then entities, in declaration order, two blank lines apart

Relationships refer to their target by class name string, which the
SQLAlchemy registry resolves once every module is imported, so classes may
refer to classes defined later or in other modules.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..codec.options import EnumStorage, RelationKind
from ..config import GeneratorConfig, OutputLayout
from ..exceptions import GenerationError
from ..schema.model import Column, Entity, EnumType, Relation, Schema
from ..utils.naming import snake_case
from .layout import (
    base_path,
    entity_module,
    enum_module,
    file_module,
    module_path,
)

HEADER = "# Code generated by protoc-gen-protorm. DO NOT EDIT."

INDENT = "    "

_STDLIB_MODULES = ("datetime", "decimal", "uuid")


@dataclass(frozen=True)
class GeneratedFile:
    """One output file of the response."""

    name: str
    content: str


def render_enum(enum_type: EnumType) -> str:
    """Render a generated enum class.

    Args:
        enum_type: Enum to render

    Returns:
        Class source without a trailing newline
    """
    base = "enum.IntEnum" if enum_type.storage is EnumStorage.INTEGER else "enum.Enum"
    lines = [f"class {enum_type.name}({base}):"]
    if not enum_type.variants:
        lines.append(f"{INDENT}pass")
    for name, number in enum_type.variants:
        lines.append(f"{INDENT}{name} = {number}")
    return "\n".join(lines)


def render_entity(entity: Entity, schema: Schema, config: Optional[GeneratorConfig] = None) -> str:
    """Render one entity as a declarative mapped class.

    Args:
        entity: Entity to render
        schema: Schema the entity belongs to (relation targets are looked up here)
        config: Feature flags; defaults apply when omitted

    Returns:
        Class source without a trailing newline
    """
    config = config or GeneratorConfig()
    lines = [
        f"class {entity.name}(Base):",
        f"{INDENT}__tablename__ = {_literal(entity.table_name)}",
    ]

    table_args = _table_args(entity, schema, config)
    if table_args:
        lines.append(f"{INDENT}__table_args__ = (")
        lines.extend(f"{INDENT * 2}{arg}," for arg in table_args)
        lines.append(f"{INDENT})")

    lines.append("")
    lines.extend(_render_column(column) for column in entity.columns)

    if config.relations and entity.relations:
        lines.append("")
        lines.extend(_render_relation(entity, relation, schema) for relation in entity.relations)

    return "\n".join(lines)


def render_base(config: Optional[GeneratorConfig] = None) -> str:
    """Render the module defining the declarative Base class."""
    config = config or GeneratorConfig()
    lines = []
    if config.header:
        lines.extend([HEADER, ""])
    lines.extend(
        [
            "from __future__ import annotations",
            "",
            "from sqlalchemy.orm import DeclarativeBase",
            "",
            "",
            "class Base(DeclarativeBase):",
            f"{INDENT}pass",
        ]
    )
    return "\n".join(lines) + "\n"


def render_module(
    module: str,
    entities: Sequence[Entity],
    enums: Sequence[EnumType],
    schema: Schema,
    config: Optional[GeneratorConfig] = None,
    source: Optional[str] = None,
) -> str:
    """Render a complete Python module.

    Args:
        module: Dotted name of the module being rendered
        entities: Entities defined in the module, in order
        enums: Enums defined in the module, in order
        schema: The complete schema
        config: Generator configuration
        source: Proto file named in the header comment

    Returns:
        Module source ending with a newline
    """
    config = config or GeneratorConfig()
    sections = []

    header = []
    if config.header:
        header.append(HEADER)
        if source is not None:
            header.append(f"# source: {source}")
    if header:
        sections.append("\n".join(header))

    sections.append("from __future__ import annotations")
    sections.extend(_imports(module, entities, enums, schema, config))

    body = [render_enum(enum_type) for enum_type in enums]
    body.extend(render_entity(entity, schema, config) for entity in entities)

    return "\n\n".join(sections) + "\n\n\n" + "\n\n\n".join(body) + "\n"


def render_file(file_name: str, schema: Schema, config: GeneratorConfig) -> list[GeneratedFile]:
    """Render everything declared in one proto file.

    Args:
        file_name: Proto file name as listed in file_to_generate
        schema: The complete schema
        config: Generator configuration

    Returns:
        The generated files; empty if the proto declares no entities or enums
    """
    entities = list(schema.entities_in_file(file_name))
    enums = list(schema.enums_in_file(file_name))

    if config.layout is OutputLayout.ENTITY:
        files = []
        for enum_type in enums:
            module = enum_module(enum_type, config)
            content = render_module(module, [], [enum_type], schema, config, source=file_name)
            files.append(GeneratedFile(module_path(module), content))
        for entity in entities:
            module = entity_module(entity, config)
            content = render_module(module, [entity], [], schema, config, source=file_name)
            files.append(GeneratedFile(module_path(module), content))
        return files

    if not entities and not enums:
        return []
    module = file_module(file_name, config)
    content = render_module(module, entities, enums, schema, config, source=file_name)
    return [GeneratedFile(module_path(module), content)]


def render_base_file(config: GeneratorConfig) -> GeneratedFile:
    return GeneratedFile(base_path(config), render_base(config))


def _render_column(column: Column) -> str:
    python_type = column.target_type.python_type
    if column.nullable:
        python_type = f"Optional[{python_type}]"

    args = []
    if column.column_name != column.attribute:
        args.append(_literal(column.column_name))
    args.append(column.target_type.expression())
    if column.primary_key:
        args.append("primary_key=True")
    if column.auto_increment:
        args.append("autoincrement=True")
    if column.unique:
        args.append("unique=True")
    if column.nullable:
        args.append("nullable=True")
    if column.default is not None:
        args.append(f"server_default=text({_literal(column.default)})")

    return f"{INDENT}{column.attribute}: Mapped[{python_type}] = mapped_column({', '.join(args)})"


def _render_relation(entity: Entity, relation: Relation, schema: Schema) -> str:
    target = _target(entity, relation, schema)
    name = _literal(target.name)

    if relation.kind is RelationKind.HAS_ONE:
        annotation = f"Optional[{name}]"
        args = [name, "uselist=False"]

    elif relation.kind is RelationKind.HAS_MANY:
        annotation = f"list[{name}]"
        args = [name]

    elif relation.kind is RelationKind.BELONGS_TO:
        annotation = f"Optional[{name}]" if relation.nullable else name
        pairs = [
            (f"{entity.name}.{_attribute(entity, a)}", f"{target.name}.{_attribute(target, b)}")
            for a, b in zip(relation.from_columns, relation.to_columns)
        ]
        foreign_keys = "[" + ", ".join(left for left, _ in pairs) + "]"
        args = [
            name,
            f"foreign_keys={_literal(foreign_keys)}",
            f"primaryjoin={_literal(_join(pairs))}",
        ]

    else:
        annotation = f"list[{name}]"
        junction = relation.junction_table
        source_prefix = snake_case(entity.name)
        target_prefix = snake_case(target.name)
        primary = [
            (
                f"{entity.name}.{_attribute(entity, a)}",
                f"{junction}.c.{source_prefix}_{_column_name(entity, a)}",
            )
            for a in relation.from_columns
        ]
        secondary = [
            (
                f"{target.name}.{_attribute(target, b)}",
                f"{junction}.c.{target_prefix}_{_column_name(target, b)}",
            )
            for b in relation.to_columns
        ]
        args = [
            name,
            f"secondary={_literal(junction)}",
            f"primaryjoin={_literal(_join(primary))}",
            f"secondaryjoin={_literal(_join(secondary))}",
        ]

    return f"{INDENT}{relation.attribute}: Mapped[{annotation}] = relationship({', '.join(args)})"


def _table_args(entity: Entity, schema: Schema, config: GeneratorConfig) -> list[str]:
    args = []
    if config.relations:
        for relation in entity.relations:
            if relation.kind is not RelationKind.BELONGS_TO:
                continue
            target = _target(entity, relation, schema)
            local = [_column_name(entity, name) for name in relation.from_columns]
            remote = [
                f"{target.table_name}.{_column_name(target, name)}" for name in relation.to_columns
            ]
            args.append(f"ForeignKeyConstraint({_list(local)}, {_list(remote)})")

    if config.indexes:
        for index in entity.indexes:
            parts = [_literal(index.name)] + [_literal(column) for column in index.columns]
            if index.unique:
                parts.append("unique=True")
            args.append(f"Index({', '.join(parts)})")
    return args


def _imports(
    module: str,
    entities: Sequence[Entity],
    enums: Sequence[EnumType],
    schema: Schema,
    config: GeneratorConfig,
) -> list[str]:
    """Return the import groups of a module, each group as one block of lines."""
    python_types = [column.target_type.python_type for e in entities for column in e.columns]

    stdlib = []
    for name in _STDLIB_MODULES:
        if any(re.search(rf"\b{name}\.", python_type) for python_type in python_types):
            stdlib.append(name)
    if enums:
        stdlib.append("enum")
    stdlib_lines = [f"import {name}" for name in sorted(stdlib)]

    typing_names = set()
    if any(re.search(r"\bAny\b", python_type) for python_type in python_types):
        typing_names.add("Any")
    if any(column.nullable for e in entities for column in e.columns):
        typing_names.add("Optional")
    if config.relations and any(
        relation.kind is RelationKind.HAS_ONE
        or (relation.kind is RelationKind.BELONGS_TO and relation.nullable)
        for e in entities
        for relation in e.relations
    ):
        typing_names.add("Optional")
    if typing_names:
        stdlib_lines.append(f"from typing import {', '.join(sorted(typing_names))}")

    groups = []
    if stdlib_lines:
        groups.append("\n".join(stdlib_lines))

    if entities:
        sqlalchemy_names = set()
        orm_names = {"Mapped", "mapped_column"}
        for entity in entities:
            sqlalchemy_names.update(_sqlalchemy_names(entity, config))
            if config.relations and entity.relations:
                orm_names.add("relationship")
        lines = []
        if sqlalchemy_names:
            lines.append(f"from sqlalchemy import {', '.join(sorted(sqlalchemy_names))}")
        lines.append(f"from sqlalchemy.orm import {', '.join(sorted(orm_names))}")
        groups.append("\n".join(lines))

    local: dict[str, set[str]] = {}
    if entities:
        local.setdefault(config.base_module, set()).add("Base")
    for enum_type in _referenced_enums(entities, schema):
        enum_mod = enum_module(enum_type, config)
        if enum_mod != module:
            local.setdefault(enum_mod, set()).add(enum_type.name)
    if local:
        lines = [
            f"from {mod} import {', '.join(sorted(names))}"
            for mod, names in sorted(local.items())
        ]
        groups.append("\n".join(lines))
    return groups


def _sqlalchemy_names(entity: Entity, config: GeneratorConfig) -> set[str]:
    names = {column.target_type.name for column in entity.columns}
    if any(column.default is not None for column in entity.columns):
        names.add("text")
    if config.relations and any(r.kind is RelationKind.BELONGS_TO for r in entity.relations):
        names.add("ForeignKeyConstraint")
    if config.indexes and entity.indexes:
        names.add("Index")
    return names


def _referenced_enums(entities: Iterable[Entity], schema: Schema) -> list[EnumType]:
    """Enums whose class is named by a column type; integer columns name none."""
    seen: dict[str, EnumType] = {}
    for entity in entities:
        for column in entity.columns:
            name = column.target_type.enum
            if name is None or name in seen:
                continue
            enum_type = schema.enum(name)
            if enum_type is None:
                raise GenerationError(
                    f"{entity.full_name}.{column.field_name}: enum {name} is not in the schema"
                )
            seen[name] = enum_type
    return [e for e in seen.values() if e.storage is not EnumStorage.INTEGER]


def _target(entity: Entity, relation: Relation, schema: Schema) -> Entity:
    target = schema.entity(relation.target)
    if target is None:
        raise GenerationError(
            f"{entity.full_name}.{relation.field_name}: relation target "
            f"{relation.target} is not an entity of the schema"
        )
    return target


def _join(pairs: Sequence[tuple[str, str]]) -> str:
    conditions = [f"{left} == {right}" for left, right in pairs]
    if len(conditions) == 1:
        return conditions[0]
    return f"and_({', '.join(conditions)})"


def _attribute(entity: Entity, field_name: str) -> str:
    column = entity.column(field_name)
    return column.attribute if column is not None else field_name


def _column_name(entity: Entity, field_name: str) -> str:
    column = entity.column(field_name)
    return column.column_name if column is not None else field_name


def _list(items: Sequence[str]) -> str:
    return "[" + ", ".join(_literal(item) for item in items) + "]"


def _literal(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


__all__ = [
    "HEADER",
    "GeneratedFile",
    "render_enum",
    "render_entity",
    "render_module",
    "render_base",
    "render_file",
    "render_base_file",
]
