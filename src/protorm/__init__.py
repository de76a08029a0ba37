"""protorm: SQLAlchemy models from annotated Protocol Buffers

A protoc plugin that turns the messages of .proto files into SQLAlchemy 2.0
declarative entity classes. Tables, columns, indexes and relations are
described with two custom options, (protorm.model) on messages and
(protorm.column) on fields, defined in proto/protorm/options.proto.

Key Features:
- One schema pass over the whole request, so relations may cross files
- Wire-level annotation decoding that does not depend on generated _pb2 modules
- Deterministic output, suitable for checking generated code into a repository
- Every problem of a descriptor set reported in one error message

Quick Start:
    $ protoc -I proto -I . --protorm_out=models blog/user.proto

    >>> from protorm import build_schema, render_file, GeneratorConfig
    >>> schema = build_schema(request.proto_file)
    >>> files = render_file("blog/user.proto", schema, GeneratorConfig())
"""

from __future__ import annotations

from .codec import decode, decode_field_options, decode_message_options
from .codegen import GeneratedFile, render_base, render_entity, render_enum, render_file
from .config import GeneratorConfig, Settings, get_settings, parse_parameter
from .exceptions import (
    ConfigError,
    DecodeError,
    DuplicateEnumName,
    DuplicateEnumVariant,
    DuplicateTableName,
    GenerationError,
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
from .plugin import generate, process
from .schema import Schema, TypeMapper, build_schema

__version__ = "0.1.0"

__all__ = [
    # Codec
    "decode",
    "decode_message_options",
    "decode_field_options",
    # Schema
    "build_schema",
    "Schema",
    "TypeMapper",
    # Code generation
    "render_entity",
    "render_enum",
    "render_base",
    "render_file",
    "GeneratedFile",
    # Plugin
    "process",
    "generate",
    # Configuration
    "GeneratorConfig",
    "parse_parameter",
    "Settings",
    "get_settings",
    # Exceptions
    "ProtormError",
    "Location",
    "DecodeError",
    "SchemaError",
    "InvalidColumnTypeOverride",
    "UnsupportedFieldType",
    "MissingPrimaryKey",
    "UnresolvedRelationTarget",
    "DuplicateTableName",
    "DuplicateEnumName",
    "DuplicateEnumVariant",
    "RelationColumnMismatch",
    "InvalidIndex",
    "InvalidStorageOption",
    "SchemaBuildError",
    "ConfigError",
    "GenerationError",
]
