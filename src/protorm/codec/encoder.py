"""Raw wire encoder for protorm annotations.

This module produces the protobuf encoding of protorm annotation
values without going through the protobuf runtime. It is the inverse of the
decoder and is used to build option blobs for descriptors assembled in code.
"""

from __future__ import annotations

from .options import (
    COLUMN_EXTENSION,
    ENUM_EXTENSION,
    ENUM_OPTION_FIELDS,
    FIELD_OPTION_FIELDS,
    INDEX_FIELDS,
    MESSAGE_OPTION_FIELDS,
    MODEL_EXTENSION,
    ONEOF_EXTENSION,
    ONEOF_OPTION_FIELDS,
    RELATION_NUMBERS,
    RELATION_VARIANT_FIELDS,
    EnumOptions,
    FieldOptions,
    FieldSpec,
    IndexSpec,
    MessageOptions,
    OneofOptions,
    RelationSpec,
)
from .wire import WireWriter


def encode_message_options(options: MessageOptions) -> bytes:
    """Encode a MessageOptions value as a protorm.MessageOptions payload.

    Args:
        options: Value to encode

    Returns:
        Payload bytes (without the extension tag)
    """
    numbers = _numbers(MESSAGE_OPTION_FIELDS)
    writer = WireWriter()

    if options.table_name is not None:
        writer.write_string(numbers["table_name"], options.table_name)
    if options.skip:
        writer.write_bool(numbers["skip"], True)
    for index in options.indexes:
        writer.write_bytes(numbers["indexes"], _encode_index(index))

    return writer.to_bytes()


def encode_field_options(options: FieldOptions) -> bytes:
    """Encode a FieldOptions value as a protorm.FieldOptions payload.

    Args:
        options: Value to encode

    Returns:
        Payload bytes (without the extension tag)
    """
    numbers = _numbers(FIELD_OPTION_FIELDS)
    writer = WireWriter()

    for flag in ("primary_key", "auto_increment", "unique"):
        if getattr(options, flag):
            writer.write_bool(numbers[flag], True)
    if options.nullable is not None:
        writer.write_bool(numbers["nullable"], options.nullable)
    for name in ("column_type", "default", "column_name"):
        value = getattr(options, name)
        if value is not None:
            writer.write_string(numbers[name], value)
    if options.relation is not None:
        writer.write_bytes(
            RELATION_NUMBERS[options.relation.kind], _encode_relation(options.relation)
        )

    return writer.to_bytes()


def encode_enum_options(options: EnumOptions) -> bytes:
    """Encode an EnumOptions value as a protorm.EnumOptions payload."""
    writer = WireWriter()
    if options.db_type is not None:
        writer.write_string(_numbers(ENUM_OPTION_FIELDS)["db_type"], options.db_type)
    return writer.to_bytes()


def encode_oneof_options(options: OneofOptions) -> bytes:
    """Encode a OneofOptions value as a protorm.OneofOptions payload."""
    numbers = _numbers(ONEOF_OPTION_FIELDS)
    writer = WireWriter()
    if options.strategy is not None:
        writer.write_string(numbers["strategy"], options.strategy)
    for name in ("column_prefix", "discriminator_column"):
        value = getattr(options, name)
        if value:
            writer.write_string(numbers[name], value)
    return writer.to_bytes()


def wrap_extension(payload: bytes, extension: int) -> bytes:
    """Wrap an annotation payload in its extension tag.

    The result can be merged into the matching google.protobuf options
    message with MergeFromString().
    """
    writer = WireWriter()
    writer.write_bytes(extension, payload)
    return writer.to_bytes()


def encode_model_annotation(options: MessageOptions) -> bytes:
    """Encode a MessageOptions value as a tagged (protorm.model) extension."""
    return wrap_extension(encode_message_options(options), MODEL_EXTENSION)


def encode_column_annotation(options: FieldOptions) -> bytes:
    """Encode a FieldOptions value as a tagged (protorm.column) extension."""
    return wrap_extension(encode_field_options(options), COLUMN_EXTENSION)


def encode_enum_annotation(options: EnumOptions) -> bytes:
    """Encode an EnumOptions value as a tagged (protorm.enum_storage) extension."""
    return wrap_extension(encode_enum_options(options), ENUM_EXTENSION)


def encode_oneof_annotation(options: OneofOptions) -> bytes:
    """Encode a OneofOptions value as a tagged (protorm.oneof_storage) extension."""
    return wrap_extension(encode_oneof_options(options), ONEOF_EXTENSION)


def _encode_index(index: IndexSpec) -> bytes:
    numbers = _numbers(INDEX_FIELDS)
    writer = WireWriter()
    if index.name:
        writer.write_string(numbers["name"], index.name)
    for column in index.columns:
        writer.write_string(numbers["columns"], column)
    if index.unique:
        writer.write_bool(numbers["unique"], True)
    return writer.to_bytes()


def _encode_relation(relation: RelationSpec) -> bytes:
    numbers = _numbers(RELATION_VARIANT_FIELDS[relation.kind])
    writer = WireWriter()
    writer.write_string(numbers["target"], relation.target)
    if "junction_table" in numbers and relation.junction_table:
        writer.write_string(numbers["junction_table"], relation.junction_table)
    if "from_columns" in numbers:
        for column in relation.from_columns:
            writer.write_string(numbers["from_columns"], column)
        for column in relation.to_columns:
            writer.write_string(numbers["to_columns"], column)
    return writer.to_bytes()


def _numbers(specs: dict[int, FieldSpec]) -> dict[str, int]:
    return {spec.name: number for number, spec in specs.items()}
