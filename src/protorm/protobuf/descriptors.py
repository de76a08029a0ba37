"""Indexing of the FileDescriptorProtos carried by a CodeGeneratorRequest.

The schema builder needs to look up any message or enum of the request by its
fully-qualified name, including those declared in files that are only
imported. DescriptorIndex flattens every file once, in request order, and
answers those lookups with protobuf scoping rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from google.protobuf import descriptor_pb2

_FDP = descriptor_pb2.FieldDescriptorProto

# Files whose messages never become entities
ANNOTATION_FILE = "protorm/options.proto"
WELL_KNOWN_PREFIX = "google/protobuf/"


@dataclass(frozen=True, eq=False)
class MessageInfo:
    """A message descriptor together with its coordinates.

    Attributes:
        full_name: Fully-qualified name without leading dot (e.g. "blog.Post.Draft")
        path: Names from the outermost message to this one (e.g. ("Post", "Draft"))
        proto: The message descriptor
        file: The file declaring the message
    """

    full_name: str
    path: tuple[str, ...]
    proto: descriptor_pb2.DescriptorProto
    file: descriptor_pb2.FileDescriptorProto

    @property
    def file_name(self) -> str:
        return self.file.name

    @property
    def package(self) -> str:
        return self.file.package

    @property
    def is_map_entry(self) -> bool:
        return self.proto.options.map_entry

    @property
    def is_well_known(self) -> bool:
        return self.file.name.startswith(WELL_KNOWN_PREFIX)


@dataclass(frozen=True, eq=False)
class EnumInfo:
    """An enum descriptor together with its coordinates."""

    full_name: str
    path: tuple[str, ...]
    proto: descriptor_pb2.EnumDescriptorProto
    file: descriptor_pb2.FileDescriptorProto

    @property
    def file_name(self) -> str:
        return self.file.name


class DescriptorIndex:
    """Read-only lookup tables over a set of file descriptors.

    Messages and enums are stored in discovery order: files in the order
    given, declarations depth-first in declaration order.

    Example:
        >>> index = DescriptorIndex(request.proto_file)
        >>> index.message(".blog.User").path
        ('User',)
    """

    def __init__(self, files: Iterable[descriptor_pb2.FileDescriptorProto]) -> None:
        self.files: dict[str, descriptor_pb2.FileDescriptorProto] = {}
        self.messages: dict[str, MessageInfo] = {}
        self.enums: dict[str, EnumInfo] = {}

        for file_proto in files:
            self.files[file_proto.name] = file_proto
            prefix = file_proto.package
            for enum_proto in file_proto.enum_type:
                self._add_enum(enum_proto, file_proto, prefix, ())
            for message_proto in file_proto.message_type:
                self._add_message(message_proto, file_proto, prefix, ())

    def _add_message(
        self,
        proto: descriptor_pb2.DescriptorProto,
        file_proto: descriptor_pb2.FileDescriptorProto,
        prefix: str,
        parents: tuple[str, ...],
    ) -> None:
        full_name = _qualify(prefix, proto.name)
        path = parents + (proto.name,)
        self.messages[full_name] = MessageInfo(full_name, path, proto, file_proto)

        for enum_proto in proto.enum_type:
            self._add_enum(enum_proto, file_proto, full_name, path)
        for nested in proto.nested_type:
            self._add_message(nested, file_proto, full_name, path)

    def _add_enum(
        self,
        proto: descriptor_pb2.EnumDescriptorProto,
        file_proto: descriptor_pb2.FileDescriptorProto,
        prefix: str,
        parents: tuple[str, ...],
    ) -> None:
        full_name = _qualify(prefix, proto.name)
        self.enums[full_name] = EnumInfo(full_name, parents + (proto.name,), proto, file_proto)

    def message(self, name: str) -> Optional[MessageInfo]:
        """Look up a message by fully-qualified name (leading dot optional)."""
        return self.messages.get(name.lstrip("."))

    def enum(self, name: str) -> Optional[EnumInfo]:
        """Look up an enum by fully-qualified name (leading dot optional)."""
        return self.enums.get(name.lstrip("."))

    def resolve_message(self, name: str, scope: str) -> Optional[MessageInfo]:
        """Resolve a message name the way protoc resolves type references.

        A leading dot makes the name absolute. Otherwise the first component
        is searched from the innermost enclosing scope outwards, and the rest
        of the name is resolved inside the first scope where it was found.

        Args:
            name: Name as written (e.g. "User", "blog.User", ".blog.User")
            scope: Fully-qualified name of the scope the reference appears in

        Returns:
            The matching message, or None
        """
        if name.startswith("."):
            return self.message(name)

        first, _, rest = name.partition(".")
        scopes = scope.split(".") if scope else []
        while True:
            base = ".".join(scopes)
            candidate = _qualify(base, first)
            if candidate in self.messages or candidate in self.enums or self._is_package(candidate):
                found = self.message(_qualify(candidate, rest) if rest else candidate)
                if found is not None:
                    return found
            if not scopes:
                return None
            scopes.pop()

    def _is_package(self, name: str) -> bool:
        return any(
            f.package == name or f.package.startswith(name + ".") for f in self.files.values()
        )


def has_explicit_presence(
    field: descriptor_pb2.FieldDescriptorProto, file_proto: descriptor_pb2.FileDescriptorProto
) -> bool:
    """Return True if a singular field tracks presence.

    proto2 `required` fields never do, since a value is always set. Otherwise
    message-typed fields always do. In proto3 only `optional` fields and
    members of real oneofs do. In proto2 every other singular field does.
    """
    if field.label in (_FDP.LABEL_REPEATED, _FDP.LABEL_REQUIRED):
        return False
    if field.type in (_FDP.TYPE_MESSAGE, _FDP.TYPE_GROUP):
        return True
    if field.proto3_optional or field.HasField("oneof_index"):
        return True
    return file_proto.syntax != "proto3"


def is_real_oneof_member(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    """Return True if the field belongs to a declared oneof (not a proto3 optional)."""
    return field.HasField("oneof_index") and not field.proto3_optional


def _qualify(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name
