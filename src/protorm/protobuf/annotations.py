"""Runtime registration of the protorm annotation schema.

The descriptor of proto/protorm/options.proto is assembled here from the
field tables in protorm.codec.options and added to the default descriptor
pool, so that:

- CodeGeneratorRequests parsed after import carry every protorm annotation
  as a typed extension, and
- callers can build annotated descriptors in code through the generated
  message classes exported by this module.

option_bytes() adapts every representation an annotation can arrive in to the
serialized byte view consumed by protorm.codec.decode().
"""

from __future__ import annotations

from typing import Iterator

from google.protobuf import (
    descriptor_pb2,
    descriptor_pool,
    message,
    message_factory,
    text_encoding,
    text_format,
)

from ..codec.encoder import wrap_extension
from ..codec.options import (
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
    FieldSpec,
    RelationKind,
)
from ..exceptions import DecodeError

FILE_NAME = "protorm/options.proto"
PACKAGE = "protorm"

_FDP = descriptor_pb2.FieldDescriptorProto

_SCALAR_KINDS = {
    "string": _FDP.TYPE_STRING,
    "bool": _FDP.TYPE_BOOL,
}

_RELATION_MESSAGES = {
    RelationKind.HAS_ONE: "HasOne",
    RelationKind.HAS_MANY: "HasMany",
    RelationKind.BELONGS_TO: "BelongsTo",
    RelationKind.HAS_MANY_VIA: "HasManyVia",
}

# (extension name, number, options message), where the protorm payload message
# shares its name with the google.protobuf message it extends
_EXTENSIONS = (
    ("model", MODEL_EXTENSION, "MessageOptions"),
    ("column", COLUMN_EXTENSION, "FieldOptions"),
    ("enum_storage", ENUM_EXTENSION, "EnumOptions"),
    ("oneof_storage", ONEOF_EXTENSION, "OneofOptions"),
)


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Assemble the FileDescriptorProto of protorm/options.proto."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=FILE_NAME,
        package=PACKAGE,
        syntax="proto2",
        dependency=["google/protobuf/descriptor.proto"],
    )

    file_proto.message_type.append(_message("Index", INDEX_FIELDS, {}))
    file_proto.message_type.append(
        _message("MessageOptions", MESSAGE_OPTION_FIELDS, {"indexes": f".{PACKAGE}.Index"})
    )
    for kind, name in _RELATION_MESSAGES.items():
        file_proto.message_type.append(_message(name, RELATION_VARIANT_FIELDS[kind], {}))

    field_options = _message("FieldOptions", FIELD_OPTION_FIELDS, {})
    field_options.oneof_decl.add(name="relation")
    for number, kind in RELATION_FIELDS.items():
        field_options.field.add(
            name=kind.value,
            number=number,
            label=_FDP.LABEL_OPTIONAL,
            type=_FDP.TYPE_MESSAGE,
            type_name=f".{PACKAGE}.{_RELATION_MESSAGES[kind]}",
            oneof_index=0,
        )
    file_proto.message_type.append(field_options)
    file_proto.message_type.append(_message("EnumOptions", ENUM_OPTION_FIELDS, {}))
    file_proto.message_type.append(_message("OneofOptions", ONEOF_OPTION_FIELDS, {}))

    for name, number, options in _EXTENSIONS:
        file_proto.extension.add(
            name=name,
            number=number,
            label=_FDP.LABEL_OPTIONAL,
            type=_FDP.TYPE_MESSAGE,
            type_name=f".{PACKAGE}.{options}",
            extendee=f".google.protobuf.{options}",
        )
    return file_proto


def _message(
    name: str, specs: dict[int, FieldSpec], type_names: dict[str, str]
) -> descriptor_pb2.DescriptorProto:
    proto = descriptor_pb2.DescriptorProto(name=name)
    for number, spec in specs.items():
        field = proto.field.add(
            name=spec.name,
            number=number,
            label=_FDP.LABEL_REPEATED if spec.repeated else _FDP.LABEL_OPTIONAL,
        )
        if spec.kind == "message":
            field.type = _FDP.TYPE_MESSAGE
            field.type_name = type_names[spec.name]
        else:
            field.type = _SCALAR_KINDS[spec.kind]
    return proto


def _register() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.Default()
    try:
        pool.FindFileByName(FILE_NAME)
    except KeyError:
        pool.AddSerializedFile(build_file_descriptor().SerializeToString())
    return pool


_pool = _register()
_classes = message_factory.GetMessageClassesForFiles([FILE_NAME], _pool)
_file = _pool.FindFileByName(FILE_NAME)

Index = _classes[f"{PACKAGE}.Index"]
MessageOptions = _classes[f"{PACKAGE}.MessageOptions"]
FieldOptions = _classes[f"{PACKAGE}.FieldOptions"]
EnumOptions = _classes[f"{PACKAGE}.EnumOptions"]
OneofOptions = _classes[f"{PACKAGE}.OneofOptions"]
HasOne = _classes[f"{PACKAGE}.HasOne"]
HasMany = _classes[f"{PACKAGE}.HasMany"]
BelongsTo = _classes[f"{PACKAGE}.BelongsTo"]
HasManyVia = _classes[f"{PACKAGE}.HasManyVia"]

model = _file.extensions_by_name["model"]
column = _file.extensions_by_name["column"]
enum_storage = _file.extensions_by_name["enum_storage"]
oneof_storage = _file.extensions_by_name["oneof_storage"]

_OPTION_CLASSES = {
    MODEL_EXTENSION: MessageOptions,
    COLUMN_EXTENSION: FieldOptions,
    ENUM_EXTENSION: EnumOptions,
    ONEOF_EXTENSION: OneofOptions,
}
_EXTENSIONS_BY_NAME = {name: number for number, name in EXTENSION_NAMES.items()}


def option_bytes(options: message.Message) -> bytes:
    """Normalize a descriptor options message to serialized bytes.

    Typed extension values and unknown fields both survive serialization
    unchanged. Uninterpreted options naming a protorm extension are parsed
    as text format and appended as tagged extension bytes, which protobuf
    merges exactly like repeated occurrences of the extension.

    Args:
        options: A google.protobuf MessageOptions, FieldOptions, EnumOptions or
            OneofOptions message

    Returns:
        Bytes suitable for protorm.codec.decode()

    Raises:
        DecodeError: If an uninterpreted protorm option cannot be parsed
    """
    data = options.SerializeToString(deterministic=True)
    extra = b"".join(_uninterpreted_chunks(options))
    return data + extra


def _uninterpreted_chunks(options: message.Message) -> Iterator[bytes]:
    for option in getattr(options, "uninterpreted_option", ()):
        if not option.name or not option.name[0].is_extension:
            continue

        extension_name = option.name[0].name_part.lstrip(".")
        number = _EXTENSIONS_BY_NAME.get(extension_name)
        if number is None:
            continue

        typed = _OPTION_CLASSES[number]()
        text = _option_text(option, extension_name)
        try:
            text_format.Merge(text, typed)
        except text_format.ParseError as e:
            raise DecodeError(
                f"Cannot parse ({extension_name}) option {text!r}: {e}",
                field_name=extension_name,
            ) from e

        yield wrap_extension(typed.SerializeToString(deterministic=True), number)


def _option_text(option: descriptor_pb2.UninterpretedOption, extension_name: str) -> str:
    """Render one uninterpreted option as text format for its extension message."""
    path = [part.name_part for part in option.name[1:]]

    if option.HasField("aggregate_value"):
        text = option.aggregate_value
        for part in reversed(path):
            text = f"{part} {{ {text} }}"
        return text

    if not path:
        raise DecodeError(
            f"Option ({extension_name}) must be assigned a message value",
            field_name=extension_name,
        )

    if option.HasField("identifier_value"):
        value = option.identifier_value
    elif option.HasField("string_value"):
        value = '"' + text_encoding.CEscape(option.string_value, False) + '"'
    elif option.HasField("positive_int_value"):
        value = str(option.positive_int_value)
    elif option.HasField("negative_int_value"):
        value = str(option.negative_int_value)
    elif option.HasField("double_value"):
        value = repr(option.double_value)
    else:
        raise DecodeError(
            f"Option ({extension_name}).{'.'.join(path)} has no value",
            field_name=".".join(path),
        )

    text = f"{path[-1]}: {value}"
    for part in reversed(path[:-1]):
        text = f"{part} {{ {text} }}"
    return text
