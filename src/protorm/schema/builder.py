"""Schema builder: descriptors plus annotations in, normalized Schema out.

The builder makes one pass over every message of every file in the request,
including files that are only imported, so that relations may point across
files and in any direction. Problems are collected with their location and
raised together as one SchemaBuildError at the end.
"""

from __future__ import annotations

import dataclasses
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping, Optional, Sequence

from google.protobuf import descriptor_pb2

from ..codec import (
    MODEL_EXTENSION,
    EnumStorage,
    FieldOptions,
    IndexSpec,
    OneofStrategy,
    RelationKind,
    RelationSpec,
    decode_enum_options,
    decode_field_options,
    decode_message_options,
    decode_oneof_options,
    has_extension,
)
from ..exceptions import (
    DecodeError,
    DuplicateEnumName,
    DuplicateEnumVariant,
    DuplicateTableName,
    InvalidColumnTypeOverride,
    InvalidIndex,
    InvalidStorageOption,
    Location,
    MissingPrimaryKey,
    ProtormError,
    RelationColumnMismatch,
    SchemaBuildError,
    SchemaError,
    UnresolvedRelationTarget,
    UnsupportedFieldType,
)
from ..protobuf.annotations import option_bytes
from ..protobuf.descriptors import (
    ANNOTATION_FILE,
    DescriptorIndex,
    MessageInfo,
    has_explicit_presence,
    is_real_oneof_member,
)
from ..utils.logging import get_logger
from ..utils.naming import pascal_case, safe_identifier, screaming_snake_case, snake_case
from .model import Column, Entity, EnumType, Index, Relation, Schema, TargetType
from .types import TypeMapper, describe_type

if TYPE_CHECKING:
    from ..config import GeneratorConfig

logger = get_logger(__name__)

_FDP = descriptor_pb2.FieldDescriptorProto


def build_schema(
    files: Iterable[descriptor_pb2.FileDescriptorProto],
    config: Optional[GeneratorConfig] = None,
) -> Schema:
    """Build the schema of every file in a request.

    Args:
        files: Every FileDescriptorProto of the request, imports included
        config: Generator configuration (entity selection, type overrides)

    Returns:
        The complete, read-only Schema

    Raises:
        SchemaBuildError: If any message or field has a problem
    """
    if config is None:
        return SchemaBuilder().build(files)
    return SchemaBuilder(
        annotated_only=config.annotated_only,
        type_overrides=config.type_overrides,
    ).build(files)


@dataclasses.dataclass
class _Draft:
    """An entity whose relations are not resolved yet."""

    info: MessageInfo
    entity: Entity
    relation_fields: list[tuple[descriptor_pb2.FieldDescriptorProto, RelationSpec]]


@dataclasses.dataclass
class _Oneof:
    """Storage of one declared oneof of the message being built."""

    name: str
    strategy: OneofStrategy
    column_prefix: str = ""
    discriminator_column: str = ""
    placed: bool = False


class SchemaBuilder:
    """Builds a Schema from file descriptors.

    Args:
        annotated_only: Only messages carrying a (protorm.model) block become entities
        type_overrides: Default column types keyed by proto type name
    """

    def __init__(
        self,
        annotated_only: bool = False,
        type_overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.annotated_only = annotated_only
        self.type_overrides = dict(type_overrides or {})

    def build(self, files: Iterable[descriptor_pb2.FileDescriptorProto]) -> Schema:
        """Build the schema; see build_schema()."""
        self._index = DescriptorIndex(files)
        self._errors: list[ProtormError] = []
        self._enums: dict[str, EnumType] = {}
        self._enum_storages: dict[str, EnumStorage] = {}
        self._mapper = TypeMapper(
            self.type_overrides, enum_names=self._enum_name, enum_storage=self._enum_storage
        )

        drafts: dict[str, _Draft] = {}
        for info in self._index.messages.values():
            draft = self._build_entity(info)
            if draft is not None:
                drafts[info.full_name] = draft

        entities = {name: draft.entity for name, draft in drafts.items()}
        for name, draft in drafts.items():
            relations = [
                relation
                for relation in (
                    self._resolve_relation(draft, field, spec, entities)
                    for field, spec in draft.relation_fields
                )
                if relation is not None
            ]
            entities[name] = dataclasses.replace(draft.entity, relations=tuple(relations))

        enums = {name: self._enums[name] for name in self._index.enums if name in self._enums}

        self._check_primary_keys(drafts.values())
        self._check_unique_names(drafts.values(), enums.values())

        if self._errors:
            logger.info("schema build failed with %d problem(s)", len(self._errors))
            raise SchemaBuildError(self._errors)

        logger.info("built schema with %d entities and %d enums", len(entities), len(enums))
        return Schema(entities=MappingProxyType(entities), enums=MappingProxyType(enums))

    def _is_candidate(self, info: MessageInfo) -> bool:
        if info.is_map_entry or info.is_well_known:
            return False
        return info.file_name != ANNOTATION_FILE

    def _build_entity(self, info: MessageInfo) -> Optional[_Draft]:
        if not self._is_candidate(info):
            return None

        location = Location(info.file_name, info.full_name)
        try:
            data = option_bytes(info.proto.options)
            options = decode_message_options(data)
        except DecodeError as e:
            self._errors.append(e.at(location))
            return None

        if self.annotated_only and not has_extension(data, MODEL_EXTENSION):
            return None
        if options.skip:
            logger.debug("skipping %s", info.full_name)
            return None

        name = "".join(pascal_case(part) for part in info.path)
        table_name = options.table_name or snake_case(name)

        columns: list[Column] = []
        relation_fields = []
        oneofs: dict[int, Optional[_Oneof]] = {}
        for field in info.proto.field:
            field_location = Location(info.file_name, info.full_name, field.name)
            try:
                field_options = decode_field_options(option_bytes(field.options))
            except DecodeError as e:
                self._errors.append(e.at(field_location))
                continue

            if field_options.relation is not None:
                relation_fields.append((field, field_options.relation))
                continue

            oneof = None
            if is_real_oneof_member(field):
                if field.oneof_index not in oneofs:
                    oneofs[field.oneof_index] = self._oneof(info, field.oneof_index)
                oneof = oneofs[field.oneof_index]

            if oneof is not None and oneof.strategy is not OneofStrategy.FLATTEN:
                if field_options != FieldOptions():
                    logger.warning(
                        "%s: column options are ignored on %s oneof members",
                        field_location,
                        oneof.strategy.value,
                    )
                if not oneof.placed:
                    oneof.placed = True
                    columns.extend(self._oneof_columns(oneof))
                continue

            prefix = oneof.column_prefix if oneof is not None else ""
            column = self._build_column(info, field, field_options, field_location, prefix)
            if column is not None:
                columns.append(column)

        self._check_attributes(info, columns, relation_fields)
        indexes = self._build_indexes(info, table_name, columns, options.indexes)

        logger.debug(
            "built entity %s (table %s, %d columns, %d relations)",
            info.full_name,
            table_name,
            len(columns),
            len(relation_fields),
        )
        entity = Entity(
            name=name,
            full_name=info.full_name,
            file_name=info.file_name,
            table_name=table_name,
            columns=tuple(columns),
            indexes=indexes,
        )
        return _Draft(info, entity, relation_fields)

    def _build_column(
        self,
        info: MessageInfo,
        field: descriptor_pb2.FieldDescriptorProto,
        options: FieldOptions,
        location: Location,
        prefix: str = "",
    ) -> Optional[Column]:
        repeated = field.label == _FDP.LABEL_REPEATED
        try:
            entry = self._map_entry(field)
            if entry is not None:
                target_type = self._mapper.map_entry(
                    entry.proto.field[0], entry.proto.field[1], options.column_type
                )
                proto_type = (
                    f"map<{describe_type(entry.proto.field[0])}, "
                    f"{describe_type(entry.proto.field[1])}>"
                )
            else:
                target_type = self._mapper.map_type(
                    field.type, field.type_name, options.column_type, repeated
                )
                proto_type = describe_type(field)
        except (InvalidColumnTypeOverride, UnsupportedFieldType) as e:
            self._errors.append(e.at(location))
            return None

        if target_type.enum is not None:
            self._register_enum(target_type.enum)

        if options.primary_key:
            if options.nullable:
                logger.warning("%s: nullable is ignored on primary key columns", location)
            nullable = False
        elif options.nullable is not None:
            nullable = options.nullable
        elif repeated:
            nullable = False
        else:
            nullable = has_explicit_presence(field, info.file)

        if options.auto_increment and not options.primary_key:
            logger.warning("%s: auto_increment is only rendered on primary key columns", location)

        attribute = safe_identifier(snake_case(field.name))
        column_name = snake_case(field.name)
        if prefix:
            column_name = f"{prefix}_{column_name}"
        return Column(
            field_name=field.name,
            column_name=options.column_name or column_name,
            attribute=attribute,
            proto_type=proto_type,
            target_type=target_type,
            primary_key=options.primary_key,
            auto_increment=options.auto_increment and options.primary_key,
            unique=options.unique,
            nullable=nullable,
            default=options.default,
        )

    def _map_entry(self, field: descriptor_pb2.FieldDescriptorProto) -> Optional[MessageInfo]:
        if field.type != _FDP.TYPE_MESSAGE or field.label != _FDP.LABEL_REPEATED:
            return None
        entry = self._index.message(field.type_name)
        if entry is None or not entry.is_map_entry:
            return None
        return entry

    def _oneof(self, info: MessageInfo, position: int) -> Optional[_Oneof]:
        """Decode the (protorm.oneof_storage) annotation of one declared oneof."""
        decl = info.proto.oneof_decl[position]
        location = Location(info.file_name, info.full_name, decl.name)
        try:
            options = decode_oneof_options(option_bytes(decl.options))
        except DecodeError as e:
            self._errors.append(e.at(location))
            return None

        strategy = OneofStrategy.FLATTEN
        if options.strategy:
            try:
                strategy = OneofStrategy(options.strategy.lower())
            except ValueError:
                self._errors.append(
                    InvalidStorageOption(
                        f"unknown oneof strategy {options.strategy!r} "
                        "(expected flatten, json or tagged)",
                        location=location,
                    )
                )
                return None
        return _Oneof(decl.name, strategy, options.column_prefix, options.discriminator_column)

    @staticmethod
    def _oneof_columns(oneof: _Oneof) -> list[Column]:
        name = snake_case(oneof.name)
        if oneof.strategy is OneofStrategy.JSON:
            return [
                Column(
                    field_name=oneof.name,
                    column_name=name,
                    attribute=safe_identifier(name),
                    proto_type=f"oneof {oneof.name}",
                    target_type=TargetType("JSON", python_type="dict[str, Any]"),
                    nullable=True,
                )
            ]

        # TAGGED: the set member's name next to its text-encoded value
        tag = oneof.discriminator_column or f"{name}_type"
        value = f"{name}_value"
        return [
            Column(
                field_name=tag,
                column_name=tag,
                attribute=safe_identifier(snake_case(tag)),
                proto_type=f"oneof {oneof.name} member",
                target_type=TargetType("String", python_type="str"),
                nullable=True,
            ),
            Column(
                field_name=value,
                column_name=value,
                attribute=safe_identifier(value),
                proto_type=f"oneof {oneof.name} value",
                target_type=TargetType("Text", python_type="str"),
                nullable=True,
            ),
        ]

    def _enum_name(self, full_name: str) -> str:
        info = self._index.enum(full_name)
        if info is None:
            return pascal_case(full_name.rsplit(".", 1)[-1])
        return "".join(pascal_case(part) for part in info.path)

    def _enum_storage(self, full_name: str) -> EnumStorage:
        """Return the storage an enum's (protorm.enum_storage) annotation asks for.

        Problems are recorded once per enum; the enum then falls back to
        native storage so that the fields using it are still checked.
        """
        storage = self._enum_storages.get(full_name)
        if storage is not None:
            return storage

        storage = EnumStorage.NATIVE
        info = self._index.enum(full_name)
        if info is not None:
            location = Location(info.file_name, info.full_name)
            try:
                db_type = decode_enum_options(option_bytes(info.proto.options)).db_type
            except DecodeError as e:
                self._errors.append(e.at(location))
                db_type = None
            if db_type:
                try:
                    storage = EnumStorage(db_type.lower())
                except ValueError:
                    self._errors.append(
                        InvalidStorageOption(
                            f"unknown enum db_type {db_type!r} "
                            "(expected native, string or integer)",
                            location=location,
                        )
                    )
        self._enum_storages[full_name] = storage
        return storage

    def _register_enum(self, full_name: str) -> None:
        if full_name in self._enums:
            return
        info = self._index.enum(full_name)
        if info is None:
            return

        variants = []
        seen: dict[str, str] = {}
        for value in info.proto.value:
            member = screaming_snake_case(value.name)
            other = seen.setdefault(member, value.name)
            if other != value.name:
                self._errors.append(
                    DuplicateEnumVariant(
                        f"values {other!r} and {value.name!r} both become member {member!r}",
                        location=Location(info.file_name, info.full_name),
                    )
                )
                continue
            variants.append((member, value.number))

        self._enums[full_name] = EnumType(
            name=self._enum_name(full_name),
            full_name=full_name,
            file_name=info.file_name,
            variants=tuple(variants),
            storage=self._enum_storage(full_name),
        )

    def _build_indexes(
        self,
        info: MessageInfo,
        table_name: str,
        columns: Sequence[Column],
        specs: Sequence[IndexSpec],
    ) -> tuple[Index, ...]:
        by_field = {column.field_name: column for column in columns}
        by_column = {column.column_name: column for column in columns}
        location = Location(info.file_name, info.full_name)

        indexes = []
        for position, spec in enumerate(specs):
            if not spec.columns:
                self._errors.append(
                    InvalidIndex(f"index #{position} lists no columns", location=location)
                )
                continue

            resolved = []
            for name in spec.columns:
                column = by_field.get(name) or by_column.get(name)
                if column is None:
                    self._errors.append(
                        InvalidIndex(f"index column {name!r} is not a column", location=location)
                    )
                    break
                resolved.append(column.column_name)
            else:
                index_name = spec.name or f"ix_{table_name}_{'_'.join(resolved)}"
                indexes.append(Index(index_name, tuple(resolved), spec.unique))
        return tuple(indexes)

    def _check_attributes(
        self,
        info: MessageInfo,
        columns: Sequence[Column],
        relation_fields: Sequence[tuple[descriptor_pb2.FieldDescriptorProto, RelationSpec]],
    ) -> None:
        seen_columns: dict[str, str] = {}
        for column in columns:
            other = seen_columns.setdefault(column.column_name, column.field_name)
            if other != column.field_name:
                self._errors.append(
                    SchemaError(
                        f"column name {column.column_name!r} is already used by field {other!r}",
                        location=Location(info.file_name, info.full_name, column.field_name),
                    )
                )

        seen_attributes = {column.attribute: column.field_name for column in columns}
        for field, _spec in relation_fields:
            attribute = safe_identifier(snake_case(field.name))
            other = seen_attributes.setdefault(attribute, field.name)
            if other != field.name:
                self._errors.append(
                    SchemaError(
                        f"attribute {attribute!r} is already used by field {other!r}",
                        location=Location(info.file_name, info.full_name, field.name),
                    )
                )

    def _resolve_relation(
        self,
        draft: _Draft,
        field: descriptor_pb2.FieldDescriptorProto,
        spec: RelationSpec,
        entities: Mapping[str, Entity],
    ) -> Optional[Relation]:
        entity = draft.entity
        location = Location(entity.file_name, entity.full_name, field.name)
        target_name = spec.target or field.type_name

        if not target_name:
            self._errors.append(
                UnresolvedRelationTarget(
                    spec.target,
                    "is empty and the field is not message-typed",
                    location=location,
                )
            )
            return None

        info = self._index.resolve_message(target_name, entity.full_name)
        if info is None:
            self._errors.append(
                UnresolvedRelationTarget(
                    target_name, "does not name a message in the request", location=location
                )
            )
            return None

        target = entities.get(info.full_name)
        if target is None:
            self._errors.append(
                UnresolvedRelationTarget(
                    target_name,
                    f"resolves to {info.full_name}, which is not an entity",
                    location=location,
                )
            )
            return None

        from_columns: tuple[str, ...] = ()
        to_columns: tuple[str, ...] = ()

        if spec.kind is RelationKind.BELONGS_TO:
            to_columns = spec.to_columns or _field_names(target.primary_key)
            from_columns = spec.from_columns or tuple(
                f"{snake_case(target.name)}_{_column_name(target, name)}" for name in to_columns
            )
            resolved = self._resolve_columns(
                location, spec.kind, entity, from_columns, target, to_columns
            )
            if resolved is None:
                return None
            from_columns, to_columns = resolved
            nullable = all(entity.column(name).nullable for name in from_columns)

        elif spec.kind is RelationKind.HAS_MANY_VIA:
            if not spec.junction_table:
                self._errors.append(
                    SchemaError("has_many_via requires a junction_table", location=location)
                )
                return None
            from_columns = spec.from_columns or _field_names(entity.primary_key)
            to_columns = spec.to_columns or _field_names(target.primary_key)
            resolved = self._resolve_columns(
                location, spec.kind, entity, from_columns, target, to_columns
            )
            if resolved is None:
                return None
            from_columns, to_columns = resolved
            nullable = False

        else:
            nullable = spec.kind is RelationKind.HAS_ONE

        return Relation(
            field_name=field.name,
            attribute=safe_identifier(snake_case(field.name)),
            kind=spec.kind,
            target=target.full_name,
            from_columns=from_columns,
            to_columns=to_columns,
            junction_table=spec.junction_table,
            nullable=nullable,
        )

    def _resolve_columns(
        self,
        location: Location,
        kind: RelationKind,
        source: Entity,
        from_columns: Sequence[str],
        target: Entity,
        to_columns: Sequence[str],
    ) -> Optional[tuple[tuple[str, ...], tuple[str, ...]]]:
        """Check a from/to pairing and normalize both sides to field names."""
        if not from_columns or len(from_columns) != len(to_columns):
            self._errors.append(
                RelationColumnMismatch(
                    f"{kind.value} pairs {len(from_columns)} column(s) of {source.name} "
                    f"with {len(to_columns)} column(s) of {target.name}",
                    location=location,
                )
            )
            return None

        resolved_from = []
        resolved_to = []
        ok = True
        for side, entity, names, out in (
            ("from", source, from_columns, resolved_from),
            ("to", target, to_columns, resolved_to),
        ):
            for name in names:
                column = entity.column(name)
                if column is None:
                    self._errors.append(
                        RelationColumnMismatch(
                            f"{kind.value} {side} column {name!r} is not a column of "
                            f"{entity.name}",
                            location=location,
                        )
                    )
                    ok = False
                else:
                    out.append(column.field_name)

        if not ok:
            return None
        return tuple(resolved_from), tuple(resolved_to)

    def _check_primary_keys(self, drafts: Iterable[_Draft]) -> None:
        for draft in drafts:
            if not draft.entity.primary_key:
                self._errors.append(
                    MissingPrimaryKey(
                        "entity has no primary key column "
                        "(set (protorm.column).primary_key on a field or skip the message)",
                        location=Location(draft.info.file_name, draft.info.full_name),
                    )
                )

    def _check_unique_names(self, drafts: Iterable[_Draft], enums: Iterable[EnumType]) -> None:
        tables: dict[str, str] = {}
        classes: dict[str, str] = {}
        for draft in drafts:
            entity = draft.entity
            location = Location(entity.file_name, entity.full_name)

            other = tables.setdefault(entity.table_name, entity.full_name)
            if other != entity.full_name:
                self._errors.append(
                    DuplicateTableName(
                        f"table name {entity.table_name!r} is already used by {other}",
                        location=location,
                    )
                )

            other = classes.setdefault(entity.name, entity.full_name)
            if other != entity.full_name:
                self._errors.append(
                    SchemaError(
                        f"class name {entity.name!r} is already used by {other}",
                        location=location,
                    )
                )

        names: dict[str, str] = {}
        for enum_type in enums:
            other = names.setdefault(enum_type.name, enum_type.full_name)
            if other != enum_type.full_name:
                self._errors.append(
                    DuplicateEnumName(
                        f"enum name {enum_type.name!r} is already used by {other}",
                        location=Location(enum_type.file_name, enum_type.full_name),
                    )
                )
            elif enum_type.name in classes:
                self._errors.append(
                    DuplicateEnumName(
                        f"enum name {enum_type.name!r} is already used by entity "
                        f"{classes[enum_type.name]}",
                        location=Location(enum_type.file_name, enum_type.full_name),
                    )
                )


def _field_names(columns: Iterable[Column]) -> tuple[str, ...]:
    return tuple(column.field_name for column in columns)


def _column_name(entity: Entity, name: str) -> str:
    column = entity.column(name)
    return column.column_name if column is not None else name
