"""Annotation codec for protorm.

This module provides decoding and encoding of the (protorm.model),
(protorm.column), (protorm.enum_storage) and (protorm.oneof_storage) custom
options carried in descriptor option bytes.
"""

from __future__ import annotations

from .decoder import (
    decode,
    decode_enum_options,
    decode_field_options,
    decode_message_options,
    decode_oneof_options,
    extract_extension,
    has_extension,
)
from .encoder import (
    encode_column_annotation,
    encode_enum_annotation,
    encode_enum_options,
    encode_field_options,
    encode_message_options,
    encode_model_annotation,
    encode_oneof_annotation,
    encode_oneof_options,
    wrap_extension,
)
from .options import (
    COLUMN_EXTENSION,
    ENUM_EXTENSION,
    MODEL_EXTENSION,
    ONEOF_EXTENSION,
    EnumOptions,
    EnumStorage,
    FieldOptions,
    IndexSpec,
    MessageOptions,
    OneofOptions,
    OneofStrategy,
    RelationKind,
    RelationSpec,
)

__all__ = [
    "decode",
    "decode_message_options",
    "decode_field_options",
    "decode_enum_options",
    "decode_oneof_options",
    "extract_extension",
    "has_extension",
    "encode_message_options",
    "encode_field_options",
    "encode_model_annotation",
    "encode_column_annotation",
    "encode_enum_options",
    "encode_oneof_options",
    "encode_enum_annotation",
    "encode_oneof_annotation",
    "wrap_extension",
    "MODEL_EXTENSION",
    "COLUMN_EXTENSION",
    "ENUM_EXTENSION",
    "ONEOF_EXTENSION",
    "MessageOptions",
    "FieldOptions",
    "EnumOptions",
    "OneofOptions",
    "EnumStorage",
    "OneofStrategy",
    "IndexSpec",
    "RelationKind",
    "RelationSpec",
]
