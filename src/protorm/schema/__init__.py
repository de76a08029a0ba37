"""Normalized schema of a code generator request.

This module provides the schema model (entities, columns, relations, enums),
the proto-to-SQLAlchemy type mapper and the schema builder.
"""

from __future__ import annotations

from .builder import SchemaBuilder, build_schema
from .model import Column, Entity, EnumType, Index, Relation, Schema, TargetType
from .types import TypeMapper, parse_override

__all__ = [
    "build_schema",
    "SchemaBuilder",
    "Schema",
    "Entity",
    "Column",
    "Relation",
    "Index",
    "EnumType",
    "TargetType",
    "TypeMapper",
    "parse_override",
]
