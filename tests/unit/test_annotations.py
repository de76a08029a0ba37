"""Unit tests for the runtime annotation schema and option normalization."""

from __future__ import annotations

from typing import Any

import pytest
from google.protobuf import descriptor_pb2

from protorm.codec import (
    EnumOptions,
    FieldOptions,
    IndexSpec,
    MessageOptions,
    OneofOptions,
    RelationKind,
    RelationSpec,
    decode_enum_options,
    decode_field_options,
    decode_message_options,
    decode_oneof_options,
    encode_column_annotation,
    encode_enum_annotation,
    encode_model_annotation,
    encode_oneof_annotation,
)
from protorm.exceptions import DecodeError
from protorm.protobuf import annotations, option_bytes


def uninterpreted(
    options: Any,
    *parts: str,
    **value: object,
) -> None:
    """Append an uninterpreted option such as (protorm.column).primary_key = true."""
    option = options.uninterpreted_option.add()
    option.name.add(name_part=parts[0], is_extension=True)
    for part in parts[1:]:
        option.name.add(name_part=part, is_extension=False)
    for key, item in value.items():
        setattr(option, key, item)


class TestAnnotationSchema:
    """Test the registered protorm/options.proto descriptor."""

    def test_file_descriptor(self) -> None:
        """The schema declares one extension per annotated descriptor kind."""
        file_proto = annotations.build_file_descriptor()
        assert file_proto.name == "protorm/options.proto"
        assert [m.name for m in file_proto.message_type] == [
            "Index",
            "MessageOptions",
            "HasOne",
            "HasMany",
            "BelongsTo",
            "HasManyVia",
            "FieldOptions",
            "EnumOptions",
            "OneofOptions",
        ]
        extensions = {e.name: (e.number, e.extendee) for e in file_proto.extension}
        assert extensions == {
            "model": (51000, ".google.protobuf.MessageOptions"),
            "column": (51001, ".google.protobuf.FieldOptions"),
            "enum_storage": (51002, ".google.protobuf.EnumOptions"),
            "oneof_storage": (51003, ".google.protobuf.OneofOptions"),
        }

    def test_relation_oneof(self) -> None:
        """The four relation variants form one oneof."""
        field_options = annotations.FieldOptions.DESCRIPTOR
        oneof = field_options.oneofs_by_name["relation"]
        assert [f.name for f in oneof.fields] == [
            "has_one",
            "has_many",
            "belongs_to",
            "has_many_via",
        ]

    def test_extension_numbers(self) -> None:
        """Extensions are registered under their fixed numbers."""
        assert annotations.model.number == 51000
        assert annotations.column.number == 51001
        assert annotations.enum_storage.number == 51002
        assert annotations.oneof_storage.number == 51003


class TestTypedAndRawEquivalence:
    """Typed extension values and raw option bytes decode identically."""

    def test_model_annotation(self) -> None:
        """A typed (protorm.model) decodes like its raw encoding."""
        typed = descriptor_pb2.MessageOptions()
        model = typed.Extensions[annotations.model]
        model.table_name = "users"
        index = model.indexes.add()
        index.columns.append("name")
        index.unique = True

        expected = MessageOptions(
            table_name="users", indexes=(IndexSpec(columns=("name",), unique=True),)
        )
        raw = descriptor_pb2.MessageOptions()
        raw.MergeFromString(encode_model_annotation(expected))

        assert decode_message_options(option_bytes(typed)) == expected
        assert decode_message_options(option_bytes(raw)) == expected

    def test_column_annotation(self) -> None:
        """A typed (protorm.column) with a relation decodes like its raw encoding."""
        typed = descriptor_pb2.FieldOptions()
        column = typed.Extensions[annotations.column]
        column.nullable = False
        column.column_name = "author"
        column.belongs_to.target = "User"
        column.belongs_to.from_columns.append("author_id")
        column.belongs_to.to_columns.append("id")

        expected = FieldOptions(
            nullable=False,
            column_name="author",
            relation=RelationSpec(
                RelationKind.BELONGS_TO, "User", from_columns=("author_id",), to_columns=("id",)
            ),
        )
        raw = descriptor_pb2.FieldOptions()
        raw.MergeFromString(encode_column_annotation(expected))

        assert decode_field_options(option_bytes(typed)) == expected
        assert decode_field_options(option_bytes(raw)) == expected

    def test_enum_annotation(self) -> None:
        """A typed (protorm.enum_storage) decodes like its raw encoding."""
        typed = descriptor_pb2.EnumOptions()
        typed.Extensions[annotations.enum_storage].db_type = "integer"

        expected = EnumOptions(db_type="integer")
        raw = descriptor_pb2.EnumOptions()
        raw.MergeFromString(encode_enum_annotation(expected))

        assert decode_enum_options(option_bytes(typed)) == expected
        assert decode_enum_options(option_bytes(raw)) == expected

    def test_oneof_annotation(self) -> None:
        """A typed (protorm.oneof_storage) decodes like its raw encoding."""
        typed = descriptor_pb2.OneofOptions()
        storage = typed.Extensions[annotations.oneof_storage]
        storage.strategy = "tagged"
        storage.discriminator_column = "payload_kind"

        expected = OneofOptions(strategy="tagged", discriminator_column="payload_kind")
        raw = descriptor_pb2.OneofOptions()
        raw.MergeFromString(encode_oneof_annotation(expected))

        assert decode_oneof_options(option_bytes(typed)) == expected
        assert decode_oneof_options(option_bytes(raw)) == expected

    def test_standard_options_survive(self) -> None:
        """Built-in options next to the annotation do not disturb decoding."""
        options = descriptor_pb2.FieldOptions(deprecated=True)
        options.Extensions[annotations.column].primary_key = True
        assert decode_field_options(option_bytes(options)) == FieldOptions(primary_key=True)

    def test_option_bytes_is_deterministic(self) -> None:
        """Serializing the same options twice gives the same bytes."""
        options = descriptor_pb2.MessageOptions()
        options.Extensions[annotations.model].table_name = "users"
        assert option_bytes(options) == option_bytes(options)


class TestUninterpretedOptions:
    """Options left uninterpreted are parsed as text format."""

    def test_aggregate_value(self) -> None:
        """option (protorm.model) = { ... } is decoded from its aggregate text."""
        options = descriptor_pb2.MessageOptions()
        uninterpreted(
            options,
            "protorm.model",
            aggregate_value='table_name: "users" indexes { columns: "name" }',
        )
        assert decode_message_options(option_bytes(options)) == MessageOptions(
            table_name="users", indexes=(IndexSpec(columns=("name",)),)
        )

    def test_scalar_sub_field(self) -> None:
        """(protorm.column).primary_key = true sets one field."""
        options = descriptor_pb2.FieldOptions()
        uninterpreted(options, "protorm.column", "primary_key", identifier_value="true")
        uninterpreted(options, "protorm.column", "column_type", string_value=b"Text")
        assert decode_field_options(option_bytes(options)) == FieldOptions(
            primary_key=True, column_type="Text"
        )

    def test_nested_sub_field(self) -> None:
        """A dotted path reaches into the relation oneof."""
        options = descriptor_pb2.FieldOptions()
        uninterpreted(
            options, "protorm.column", "has_many", "target", string_value=b"Comment"
        )
        assert decode_field_options(option_bytes(options)).relation == RelationSpec(
            RelationKind.HAS_MANY, "Comment"
        )

    def test_enum_and_oneof_options(self) -> None:
        """Enum and oneof annotations are read from their text form too."""
        enum_options = descriptor_pb2.EnumOptions()
        uninterpreted(enum_options, "protorm.enum_storage", "db_type", string_value=b"string")
        assert decode_enum_options(option_bytes(enum_options)) == EnumOptions(db_type="string")

        oneof_options = descriptor_pb2.OneofOptions()
        uninterpreted(
            oneof_options,
            "protorm.oneof_storage",
            aggregate_value='strategy: "flatten" column_prefix: "payload"',
        )
        assert decode_oneof_options(option_bytes(oneof_options)) == OneofOptions(
            strategy="flatten", column_prefix="payload"
        )

    def test_leading_dot(self) -> None:
        """Fully-qualified extension names are accepted."""
        options = descriptor_pb2.MessageOptions()
        uninterpreted(options, ".protorm.model", "skip", identifier_value="true")
        assert decode_message_options(option_bytes(options)).skip is True

    def test_foreign_option_is_ignored(self) -> None:
        """Options of other extensions are left alone."""
        options = descriptor_pb2.FieldOptions()
        uninterpreted(options, "validate.rules", aggregate_value="string { min_len: 1 }")
        assert decode_field_options(option_bytes(options)) == FieldOptions()

    def test_unparseable_aggregate(self) -> None:
        """Text that does not parse raises DecodeError."""
        options = descriptor_pb2.MessageOptions()
        uninterpreted(options, "protorm.model", aggregate_value="table_nam: 1")
        with pytest.raises(DecodeError) as exc_info:
            option_bytes(options)
        assert exc_info.value.field_name == "protorm.model"

    def test_extension_assigned_scalar(self) -> None:
        """The extension itself must be assigned a message value."""
        options = descriptor_pb2.FieldOptions()
        uninterpreted(options, "protorm.column", identifier_value="true")
        with pytest.raises(DecodeError, match="message value"):
            option_bytes(options)
