"""Schema analysis CLI command."""

from __future__ import annotations

from pathlib import Path

from google.protobuf import descriptor_pb2
from google.protobuf import message as protobuf_message
from google.protobuf.compiler import plugin_pb2

from ..codegen.render import render_file
from ..config import GeneratorConfig, parse_parameter
from ..protobuf.descriptors import ANNOTATION_FILE, WELL_KNOWN_PREFIX
from ..schema import Entity, EnumType, Schema, build_schema


def analyze_file(file_path: Path, descriptor_set: bool = False, parameter: str = "") -> None:
    """Print the schema built from a serialized request or descriptor set.

    Args:
        file_path: Path to a serialized CodeGeneratorRequest, or to a
            FileDescriptorSet written by `protoc --include_imports --descriptor_set_out`
        descriptor_set: The file holds a FileDescriptorSet
        parameter: Plugin parameter string; overrides the one stored in a request

    Raises:
        ValueError: If the file cannot be parsed
        ProtormError: If the parameters or the schema are invalid
    """
    request = load_request(file_path, descriptor_set)
    if parameter:
        request.parameter = parameter

    config = parse_parameter(request.parameter)
    schema = build_schema(request.proto_file, config)
    analyze_schema(schema, list(request.file_to_generate), config)


def load_request(file_path: Path, descriptor_set: bool = False) -> plugin_pb2.CodeGeneratorRequest:
    """Read a CodeGeneratorRequest from disk.

    A descriptor set is turned into the request protoc would send for it:
    every file except well-known types and the annotation schema is
    generated.
    """
    data = file_path.read_bytes()
    request = plugin_pb2.CodeGeneratorRequest()
    try:
        if not descriptor_set:
            request.ParseFromString(data)
            return request
        file_set = descriptor_pb2.FileDescriptorSet()
        file_set.ParseFromString(data)
    except protobuf_message.DecodeError as e:
        kind = "FileDescriptorSet" if descriptor_set else "CodeGeneratorRequest"
        raise ValueError(f"{file_path} is not a serialized {kind}: {e}") from e

    request.proto_file.extend(file_set.file)
    request.file_to_generate.extend(
        f.name
        for f in file_set.file
        if not f.name.startswith(WELL_KNOWN_PREFIX) and f.name != ANNOTATION_FILE
    )
    return request


def analyze_schema(schema: Schema, file_names: list[str], config: GeneratorConfig) -> None:
    """Print a summary of every entity and enum, then the files that would be written."""
    entity_count = len(schema.entities)
    enum_count = len(schema.enums)

    print("|" * 7, "protorm: Protobuf to SQLAlchemy", "|" * 7)
    print(
        f"{entity_count} entit{'ies' if entity_count != 1 else 'y'}, "
        f"{enum_count} enum{'s' if enum_count != 1 else ''} loaded."
    )
    print()

    for enum_type in schema.enums.values():
        analyze_enum(enum_type)
    for entity in schema.entities.values():
        analyze_entity(entity)

    print(f"{'=' * 24} Output {'=' * 24}")
    for name in file_names:
        for generated in render_file(name, schema, config):
            print(f"{name} -> {generated.name}")
    print()


def analyze_enum(enum_type: EnumType) -> None:
    """Print one enum and its variants."""
    print(f"{'=' * 19} enum {enum_type.name} ({enum_type.full_name}) {'=' * 19}")
    for name, number in enum_type.variants:
        print(f"        {name}{'.' * max(1, 40 - len(name))}{number}")
    print()


def analyze_entity(entity: Entity) -> None:
    """Print one entity: columns with types and flags, then relations."""
    print(f"{'=' * 19} {entity.name}: {entity.table_name} {'=' * 19}")
    print(f"source: {entity.file_name} ({entity.full_name})")

    print(f"{'-' * 27} Columns {'-' * 27}")
    for i, column in enumerate(entity.columns, 1):
        flags = [
            flag
            for flag, enabled in (
                ("primary_key", column.primary_key),
                ("auto_increment", column.auto_increment),
                ("unique", column.unique),
                ("nullable", column.nullable),
            )
            if enabled
        ]
        if column.default is not None:
            flags.append(f"default={column.default}")

        column_desc = f"{i}. {column.column_name}"
        column_type = column.target_type.expression()
        dots = "." * max(1, 36 - len(column_desc) - len(column_type))
        line = f"        {column_desc}{dots}{column_type} ({column.proto_type})"
        if flags:
            line += " [" + ", ".join(flags) + "]"
        print(line)

    if entity.relations:
        print(f"{'-' * 26} Relations {'-' * 26}")
        for relation in entity.relations:
            line = f"        {relation.attribute}: {relation.kind.value} -> {relation.target}"
            if relation.from_columns:
                line += f" ({', '.join(relation.from_columns)} -> {', '.join(relation.to_columns)})"
            if relation.junction_table:
                line += f" via {relation.junction_table}"
            print(line)

    if entity.indexes:
        print(f"{'-' * 27} Indexes {'-' * 27}")
        for index in entity.indexes:
            unique = " unique" if index.unique else ""
            print(f"        {index.name}: {', '.join(index.columns)}{unique}")

    print()
