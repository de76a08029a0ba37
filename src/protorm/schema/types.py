"""Mapping of proto field types to SQLAlchemy column types.

Precedence, highest first:

1. an explicit column_type override on the field
2. a configured default override for the proto type (type.<name>=... parameter)
3. well-known types (Timestamp, Duration, wrappers, Struct, ...)
4. the default scalar table

Message, map and repeated fields that are not relations are stored as JSON
documents. Enum fields map to Enum(<generated enum class>), with
native_enum=False for string storage, or to Integer for integer storage.
"""

from __future__ import annotations

import re
from typing import Callable, Mapping, Optional

from google.protobuf import descriptor_pb2

from ..codec.options import EnumStorage
from ..exceptions import InvalidColumnTypeOverride, UnsupportedFieldType
from ..utils.naming import snake_case
from .model import TargetType

_FDP = descriptor_pb2.FieldDescriptorProto

# Canonical SQLAlchemy type name -> Python annotation of its values
TARGET_TYPES: dict[str, str] = {
    "BigInteger": "int",
    "Integer": "int",
    "SmallInteger": "int",
    "Float": "float",
    "Double": "float",
    "Numeric": "decimal.Decimal",
    "Boolean": "bool",
    "String": "str",
    "Text": "str",
    "Unicode": "str",
    "UnicodeText": "str",
    "LargeBinary": "bytes",
    "DateTime": "datetime.datetime",
    "Date": "datetime.date",
    "Time": "datetime.time",
    "Interval": "datetime.timedelta",
    "JSON": "Any",
    "Uuid": "uuid.UUID",
}

# Lowercase alias -> (canonical name, implied arguments)
TYPE_ALIASES: dict[str, tuple[str, tuple[str, ...]]] = {
    **{name.lower(): (name, ()) for name in TARGET_TYPES},
    "int": ("Integer", ()),
    "bigint": ("BigInteger", ()),
    "smallint": ("SmallInteger", ()),
    "bool": ("Boolean", ()),
    "varchar": ("String", ()),
    "blob": ("LargeBinary", ()),
    "bytea": ("LargeBinary", ()),
    "binary": ("LargeBinary", ()),
    "decimal": ("Numeric", ()),
    "timestamp": ("DateTime", ()),
    "timestamptz": ("DateTime", ("timezone=True",)),
    "jsonb": ("JSON", ()),
}

SCALAR_NAMES: dict[int, str] = {
    _FDP.TYPE_DOUBLE: "double",
    _FDP.TYPE_FLOAT: "float",
    _FDP.TYPE_INT64: "int64",
    _FDP.TYPE_UINT64: "uint64",
    _FDP.TYPE_INT32: "int32",
    _FDP.TYPE_FIXED64: "fixed64",
    _FDP.TYPE_FIXED32: "fixed32",
    _FDP.TYPE_BOOL: "bool",
    _FDP.TYPE_STRING: "string",
    _FDP.TYPE_BYTES: "bytes",
    _FDP.TYPE_UINT32: "uint32",
    _FDP.TYPE_SFIXED32: "sfixed32",
    _FDP.TYPE_SFIXED64: "sfixed64",
    _FDP.TYPE_SINT32: "sint32",
    _FDP.TYPE_SINT64: "sint64",
}

SCALAR_TYPES: dict[str, TargetType] = {
    "int32": TargetType("Integer", python_type="int"),
    "sint32": TargetType("Integer", python_type="int"),
    "sfixed32": TargetType("Integer", python_type="int"),
    "int64": TargetType("BigInteger", python_type="int"),
    "sint64": TargetType("BigInteger", python_type="int"),
    "sfixed64": TargetType("BigInteger", python_type="int"),
    "uint32": TargetType("BigInteger", python_type="int"),
    "fixed32": TargetType("BigInteger", python_type="int"),
    "uint64": TargetType("Numeric", ("20", "0"), python_type="decimal.Decimal"),
    "fixed64": TargetType("Numeric", ("20", "0"), python_type="decimal.Decimal"),
    "float": TargetType("Float", python_type="float"),
    "double": TargetType("Double", python_type="float"),
    "bool": TargetType("Boolean", python_type="bool"),
    "string": TargetType("String", python_type="str"),
    "bytes": TargetType("LargeBinary", python_type="bytes"),
}

_WRAPPERS = {
    "google.protobuf.DoubleValue": "double",
    "google.protobuf.FloatValue": "float",
    "google.protobuf.Int64Value": "int64",
    "google.protobuf.UInt64Value": "uint64",
    "google.protobuf.Int32Value": "int32",
    "google.protobuf.UInt32Value": "uint32",
    "google.protobuf.BoolValue": "bool",
    "google.protobuf.StringValue": "string",
    "google.protobuf.BytesValue": "bytes",
}

WELL_KNOWN_TYPES: dict[str, TargetType] = {
    "google.protobuf.Timestamp": TargetType(
        "DateTime", ("timezone=True",), python_type="datetime.datetime"
    ),
    "google.protobuf.Duration": TargetType("Interval", python_type="datetime.timedelta"),
    "google.protobuf.Struct": TargetType("JSON", python_type="dict[str, Any]"),
    "google.protobuf.Value": TargetType("JSON", python_type="Any"),
    "google.protobuf.ListValue": TargetType("JSON", python_type="list[Any]"),
    "google.protobuf.Any": TargetType("JSON", python_type="dict[str, Any]"),
    "google.protobuf.FieldMask": TargetType("JSON", python_type="list[str]"),
    **{name: SCALAR_TYPES[scalar] for name, scalar in _WRAPPERS.items()},
}

_OVERRIDE_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\((.*)\))?\s*$")
_INT_ARG_RE = re.compile(r"^-?\d+$")
_KEYWORD_ARG_RE = re.compile(r"^([a-z_][a-z0-9_]*)\s*=\s*(True|False|-?\d+)$")


def parse_override(override: str) -> TargetType:
    """Validate a column_type override and turn it into a TargetType.

    Type names are matched case-insensitively against the supported
    SQLAlchemy types and a few SQL aliases. Arguments must be integer or
    keyword literals: "String(255)", "Numeric(10, 2)", "DateTime(timezone=True)".

    Args:
        override: Override string as written in the annotation

    Returns:
        The target type with its canonical name and normalized arguments

    Raises:
        InvalidColumnTypeOverride: If the name is unknown or the arguments are malformed
    """
    match = _OVERRIDE_RE.match(override)
    if match is None:
        raise InvalidColumnTypeOverride(override, "expected a type name with optional arguments")

    type_name, raw_args = match.group(1), match.group(2)
    if type_name.lower() == "enum":
        raise InvalidColumnTypeOverride(
            override, "Enum columns are derived from proto enum fields"
        )
    if type_name.lower() not in TYPE_ALIASES:
        choices = ", ".join(sorted(TARGET_TYPES))
        raise InvalidColumnTypeOverride(
            override, f"unknown column type {type_name!r} (expected one of: {choices})"
        )

    canonical, implied = TYPE_ALIASES[type_name.lower()]
    args = _parse_args(override, raw_args) if raw_args is not None else implied
    return TargetType(canonical, args, python_type=TARGET_TYPES[canonical])


def _parse_args(override: str, raw_args: str) -> tuple[str, ...]:
    if not raw_args.strip():
        return ()

    args: list[str] = []
    seen_keyword = False
    for raw in raw_args.split(","):
        arg = raw.strip()
        if _INT_ARG_RE.match(arg):
            if seen_keyword:
                raise InvalidColumnTypeOverride(
                    override, "positional argument follows keyword argument"
                )
            args.append(str(int(arg)))
            continue

        keyword_match = _KEYWORD_ARG_RE.match(arg)
        if keyword_match is None:
            raise InvalidColumnTypeOverride(override, f"unsupported argument {arg!r}")
        seen_keyword = True
        args.append(f"{keyword_match.group(1)}={keyword_match.group(2)}")
    return tuple(args)


class TypeMapper:
    """Maps proto fields to target column types.

    Args:
        overrides: Default overrides keyed by proto scalar name ("string") or
            fully-qualified message name ("google.protobuf.Timestamp")
        enum_names: Returns the generated class name for a fully-qualified enum name
        enum_storage: Returns the storage of a fully-qualified enum name

    Example:
        >>> mapper = TypeMapper({"string": "Text"})
        >>> mapper.map_type(FieldDescriptorProto.TYPE_STRING).expression()
        'Text'
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        enum_names: Optional[Callable[[str], str]] = None,
        enum_storage: Optional[Callable[[str], EnumStorage]] = None,
    ) -> None:
        self.overrides = {
            key.lstrip("."): parse_override(value) for key, value in (overrides or {}).items()
        }
        self.enum_names = enum_names or (lambda full_name: full_name.rsplit(".", 1)[-1])
        self.enum_storage = enum_storage or (lambda full_name: EnumStorage.NATIVE)

    def map_type(
        self,
        proto_type: int,
        type_name: str = "",
        override: Optional[str] = None,
        repeated: bool = False,
    ) -> TargetType:
        """Map one proto type to a column type.

        Args:
            proto_type: FieldDescriptorProto.Type value
            type_name: Fully-qualified message or enum name for TYPE_MESSAGE/TYPE_ENUM
            override: column_type annotation, if any
            repeated: Whether the field is repeated

        Returns:
            The target column type

        Raises:
            InvalidColumnTypeOverride: If the override is not a supported type
            UnsupportedFieldType: For groups and google.protobuf.Empty
        """
        type_name = type_name.lstrip(".")

        if proto_type == _FDP.TYPE_GROUP:
            raise UnsupportedFieldType("proto2 groups cannot be mapped to a column")
        if proto_type == _FDP.TYPE_MESSAGE and type_name == "google.protobuf.Empty":
            raise UnsupportedFieldType("google.protobuf.Empty carries no value to store")

        element = self._element_type(proto_type, type_name)
        if repeated:
            default = TargetType(
                "JSON", python_type=f"list[{element.python_type}]", enum=element.enum
            )
        else:
            default = element

        if override is not None:
            return self._apply_override(parse_override(override), default)
        if repeated:
            return default

        if proto_type in (_FDP.TYPE_MESSAGE, _FDP.TYPE_ENUM):
            key = type_name
        else:
            key = SCALAR_NAMES[proto_type]
        configured = self.overrides.get(key)
        if configured is not None:
            return self._apply_override(configured, default)
        return default

    def map_entry(
        self,
        key: descriptor_pb2.FieldDescriptorProto,
        value: descriptor_pb2.FieldDescriptorProto,
        override: Optional[str] = None,
    ) -> TargetType:
        """Map a map<K, V> field, given the key and value fields of its entry message."""
        key_type = self._element_type(key.type, key.type_name.lstrip("."))
        value_type = self._element_type(value.type, value.type_name.lstrip("."))
        default = TargetType(
            "JSON",
            python_type=f"dict[{key_type.python_type}, {value_type.python_type}]",
            enum=value_type.enum,
        )
        if override is not None:
            return self._apply_override(parse_override(override), default)
        return default

    def _element_type(self, proto_type: int, type_name: str) -> TargetType:
        if proto_type == _FDP.TYPE_ENUM:
            storage = self.enum_storage(type_name)
            if storage is EnumStorage.INTEGER:
                return TargetType("Integer", python_type="int", enum=type_name)
            class_name = self.enum_names(type_name)
            args: tuple[str, ...] = (class_name, f'name="{snake_case(class_name)}"')
            if storage is EnumStorage.STRING:
                args += ("native_enum=False",)
            return TargetType("Enum", args, python_type=class_name, enum=type_name)
        if proto_type == _FDP.TYPE_MESSAGE:
            known = WELL_KNOWN_TYPES.get(type_name)
            if known is not None:
                return known
            return TargetType("JSON", python_type="dict[str, Any]")
        if proto_type in SCALAR_NAMES:
            return SCALAR_TYPES[SCALAR_NAMES[proto_type]]
        raise UnsupportedFieldType(f"field type {proto_type} has no column mapping")

    @staticmethod
    def _apply_override(target: TargetType, default: TargetType) -> TargetType:
        # JSON keeps the document shape of the value it replaces
        if target.name == "JSON" and default.python_type != target.python_type:
            return TargetType(
                "JSON", target.args, python_type=default.python_type, enum=default.enum
            )
        return target


def describe_type(field: descriptor_pb2.FieldDescriptorProto) -> str:
    """Render a field type the way it is written in a .proto file."""
    if field.type in (_FDP.TYPE_MESSAGE, _FDP.TYPE_ENUM, _FDP.TYPE_GROUP):
        name = field.type_name.lstrip(".")
    else:
        name = SCALAR_NAMES[field.type]
    if field.label == _FDP.LABEL_REPEATED:
        return f"repeated {name}"
    return name
