"""Annotation decoder for protorm option blobs.

This module provides the decode() function that recovers protorm annotation
values from the serialized bytes of a google.protobuf.MessageOptions,
FieldOptions, EnumOptions or OneofOptions message.

Every input shape (typed extension values, raw unknown fields, text-format
uninterpreted options) is first normalized to those bytes by
protorm.protobuf.annotations.option_bytes(), so this is the only place where
annotation semantics live.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional, Union, cast

from ..exceptions import DecodeError
from .options import (
    COLUMN_EXTENSION,
    ENUM_EXTENSION,
    ENUM_OPTION_FIELDS,
    EXTENSION_NAMES,
    FIELD_OPTION_FIELDS,
    INDEX_FIELDS,
    MESSAGE_OPTION_FIELDS,
    MODEL_EXTENSION,
    ONEOF_EXTENSION,
    ONEOF_OPTION_FIELDS,
    RELATION_FIELDS,
    RELATION_VARIANT_FIELDS,
    EnumOptions,
    FieldOptions,
    FieldSpec,
    IndexSpec,
    MessageOptions,
    OneofOptions,
    RelationKind,
    RelationSpec,
)
from .wire import WireReader, WireType

Options = Union[MessageOptions, FieldOptions, EnumOptions, OneofOptions]


def decode(data: bytes, extension: int) -> Options:
    """Decode the annotation stored under an extension number.

    Args:
        data: Serialized google.protobuf options message bytes
        extension: One of the protorm extension numbers

    Returns:
        MessageOptions for MODEL_EXTENSION, FieldOptions for COLUMN_EXTENSION,
        EnumOptions for ENUM_EXTENSION and OneofOptions for ONEOF_EXTENSION.
        An absent annotation yields the default value.

    Raises:
        DecodeError: If the bytes are malformed or a field has the wrong wire type
        ValueError: If the extension number is not a protorm extension

    Example:
        >>> options = decode(field.options.SerializeToString(), COLUMN_EXTENSION)
        >>> options.primary_key
        True
    """
    if extension not in EXTENSION_NAMES:
        raise ValueError(f"Unknown protorm extension number {extension}")

    payload = extract_extension(data, extension) or b""
    if extension == MODEL_EXTENSION:
        return parse_message_options(payload)
    if extension == ENUM_EXTENSION:
        return parse_enum_options(payload)
    if extension == ONEOF_EXTENSION:
        return parse_oneof_options(payload)
    return parse_field_options(payload)


def decode_message_options(data: bytes) -> MessageOptions:
    """Decode the (protorm.model) annotation from MessageOptions bytes."""
    payload = extract_extension(data, MODEL_EXTENSION) or b""
    return parse_message_options(payload)


def decode_field_options(data: bytes) -> FieldOptions:
    """Decode the (protorm.column) annotation from FieldOptions bytes."""
    payload = extract_extension(data, COLUMN_EXTENSION) or b""
    return parse_field_options(payload)


def decode_enum_options(data: bytes) -> EnumOptions:
    """Decode the (protorm.enum_storage) annotation from EnumOptions bytes."""
    return parse_enum_options(extract_extension(data, ENUM_EXTENSION) or b"")


def decode_oneof_options(data: bytes) -> OneofOptions:
    """Decode the (protorm.oneof_storage) annotation from OneofOptions bytes."""
    return parse_oneof_options(extract_extension(data, ONEOF_EXTENSION) or b"")


def has_extension(data: bytes, extension: int) -> bool:
    """Return True if the options bytes carry the given extension at all."""
    return extract_extension(data, extension) is not None


def extract_extension(data: bytes, extension: int) -> Optional[bytes]:
    """Return the payload stored under an extension number.

    Repeated occurrences of a message-typed field merge in protobuf, which is
    the same as decoding their concatenated payloads.

    Args:
        data: Serialized options message
        extension: Extension field number to extract

    Returns:
        Concatenated payload bytes, or None if the extension is absent

    Raises:
        DecodeError: If the bytes are malformed or the extension is not length-delimited
    """
    name = EXTENSION_NAMES.get(extension, str(extension))
    expected = {extension: FieldSpec(name, WireType.LEN, "message")}

    chunks: list[bytes] = []
    found = False
    for number, _wire_type, value in _iter_fields(data, "", expected):
        if number == extension:
            found = True
            chunks.append(cast(bytes, value))

    if not found:
        return None
    return b"".join(chunks)


def parse_message_options(payload: bytes) -> MessageOptions:
    """Decode a protorm.MessageOptions payload."""
    values = _collect(payload, MESSAGE_OPTION_FIELDS, "")
    indexes = tuple(
        _parse_index(chunk, "indexes") for chunk in values.get("indexes", [])
    )
    return MessageOptions(
        table_name=values.get("table_name"),
        skip=values.get("skip", False),
        indexes=indexes,
    )


def parse_field_options(payload: bytes) -> FieldOptions:
    """Decode a protorm.FieldOptions payload."""
    values = _collect(payload, FIELD_OPTION_FIELDS, "", oneof=RELATION_FIELDS)

    relation = None
    if "relation" in values:
        kind, relation_payload = values["relation"]
        relation = _parse_relation(kind, relation_payload)

    return FieldOptions(
        primary_key=values.get("primary_key", False),
        auto_increment=values.get("auto_increment", False),
        unique=values.get("unique", False),
        nullable=values.get("nullable"),
        column_type=values.get("column_type"),
        default=values.get("default"),
        column_name=values.get("column_name"),
        relation=relation,
    )


def parse_enum_options(payload: bytes) -> EnumOptions:
    """Decode a protorm.EnumOptions payload."""
    values = _collect(payload, ENUM_OPTION_FIELDS, "")
    return EnumOptions(db_type=values.get("db_type"))


def parse_oneof_options(payload: bytes) -> OneofOptions:
    """Decode a protorm.OneofOptions payload."""
    values = _collect(payload, ONEOF_OPTION_FIELDS, "")
    return OneofOptions(
        strategy=values.get("strategy"),
        column_prefix=values.get("column_prefix", ""),
        discriminator_column=values.get("discriminator_column", ""),
    )


def _parse_index(payload: bytes, path: str) -> IndexSpec:
    values = _collect(payload, INDEX_FIELDS, path)
    return IndexSpec(
        name=values.get("name", ""),
        columns=tuple(values.get("columns", [])),
        unique=values.get("unique", False),
    )


def _parse_relation(kind: RelationKind, payload: bytes) -> RelationSpec:
    values = _collect(payload, RELATION_VARIANT_FIELDS[kind], kind.value)
    return RelationSpec(
        kind=kind,
        target=values.get("target", ""),
        from_columns=tuple(values.get("from_columns", [])),
        to_columns=tuple(values.get("to_columns", [])),
        junction_table=values.get("junction_table", ""),
    )


def _collect(
    payload: bytes,
    specs: Mapping[int, FieldSpec],
    path: str,
    oneof: Optional[Mapping[int, RelationKind]] = None,
) -> dict[str, Any]:
    """Decode known fields of one message payload into a name -> value dict.

    Singular fields keep the last occurrence, repeated fields accumulate.
    Oneof members are stored under "relation" as (kind, payload); a later
    member replaces an earlier one and repeated occurrences of the same
    member merge.
    """
    expected = dict(specs)
    for number, kind in (oneof or {}).items():
        expected[number] = FieldSpec(kind.value, WireType.LEN, "message")

    values: dict[str, Any] = {}
    for number, _wire_type, raw in _iter_fields(payload, path, expected):
        if oneof is not None and number in oneof:
            kind = oneof[number]
            raw = cast(bytes, raw)
            previous = values.get("relation")
            if previous is not None and previous[0] is kind:
                values["relation"] = (kind, previous[1] + raw)
            else:
                values["relation"] = (kind, raw)
            continue

        spec = specs.get(number)
        if spec is None:
            continue

        value = _convert(spec, raw, _join(path, spec.name))
        if spec.repeated:
            values.setdefault(spec.name, []).append(value)
        else:
            values[spec.name] = value

    return values


def _iter_fields(
    payload: bytes, path: str, expected: Mapping[int, FieldSpec]
) -> Iterator[tuple[int, WireType, int | bytes | None]]:
    """Walk a payload, checking wire types of the fields we know about.

    Raises:
        DecodeError: If a tag or value is malformed or a known field carries
            the wrong wire type
    """
    reader = WireReader(payload)
    while not reader.at_end():
        try:
            number, wire_type = reader.read_tag()
        except (IndexError, ValueError) as e:
            where = path or "options"
            raise DecodeError(
                f"Malformed tag while decoding {where}: {e}", field_name=path or None
            ) from e

        spec = expected.get(number)
        field_path = _join(path, spec.name) if spec is not None else _join(path, str(number))

        if spec is not None and wire_type is not spec.wire_type:
            raise DecodeError(
                f"Field {field_path!r}: expected wire type {spec.wire_type.name}, "
                f"found {wire_type.name}",
                field_name=field_path,
                expected=spec.wire_type.name,
                found=wire_type.name,
            )

        try:
            value = reader.read_value(wire_type)
        except IndexError as e:
            raise DecodeError(
                f"Truncated data while decoding field {field_path!r}: {e}",
                field_name=field_path,
            ) from e
        except ValueError as e:
            raise DecodeError(
                f"Error decoding field {field_path!r}: {e}", field_name=field_path
            ) from e

        yield number, wire_type, value


def _convert(spec: FieldSpec, raw: int | bytes | None, field_path: str) -> Any:
    if spec.kind == "bool":
        return bool(raw)
    if spec.kind == "string":
        try:
            return cast(bytes, raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Field {field_path!r}: invalid UTF-8 encoding: {e}", field_name=field_path
            ) from e
    return raw


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
