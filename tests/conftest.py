"""Pytest configuration and shared fixtures.

Descriptors are assembled in code the way protoc sends them to a plugin, with
annotations attached as serialized extension bytes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

import pytest
from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from protorm.codec import (
    EnumOptions,
    FieldOptions,
    IndexSpec,
    MessageOptions,
    OneofOptions,
    RelationKind,
    RelationSpec,
    encode_column_annotation,
    encode_enum_annotation,
    encode_model_annotation,
    encode_oneof_annotation,
)

FDP = descriptor_pb2.FieldDescriptorProto

GOLDEN_DIR = Path(__file__).parent / "golden"


class ProtoFactory:
    """Builders for descriptor protos used throughout the tests."""

    FDP = FDP

    @staticmethod
    def field(
        name: str,
        number: int,
        type_: int = FDP.TYPE_STRING,
        *,
        type_name: str = "",
        repeated: bool = False,
        column: Optional[FieldOptions] = None,
        proto3_optional: bool = False,
        oneof_index: Optional[int] = None,
        json_name: Optional[str] = None,
    ) -> descriptor_pb2.FieldDescriptorProto:
        field = FDP(
            name=name,
            number=number,
            type=type_,
            label=FDP.LABEL_REPEATED if repeated else FDP.LABEL_OPTIONAL,
        )
        if type_name:
            field.type_name = type_name
        if proto3_optional:
            field.proto3_optional = True
        if oneof_index is not None:
            field.oneof_index = oneof_index
        if json_name is not None:
            field.json_name = json_name
        if column is not None:
            field.options.MergeFromString(encode_column_annotation(column))
        return field

    @staticmethod
    def message(
        name: str,
        fields: Iterable[descriptor_pb2.FieldDescriptorProto] = (),
        *,
        model: Optional[MessageOptions] = None,
        nested: Iterable[descriptor_pb2.DescriptorProto] = (),
        enums: Iterable[descriptor_pb2.EnumDescriptorProto] = (),
        oneofs: Sequence[str] = (),
        oneof_storage: Optional[Mapping[str, OneofOptions]] = None,
        map_entry: bool = False,
    ) -> descriptor_pb2.DescriptorProto:
        message = descriptor_pb2.DescriptorProto(name=name)
        message.field.extend(fields)
        message.nested_type.extend(nested)
        message.enum_type.extend(enums)
        for oneof in oneofs:
            decl = message.oneof_decl.add(name=oneof)
            if oneof_storage and oneof in oneof_storage:
                decl.options.MergeFromString(encode_oneof_annotation(oneof_storage[oneof]))
        if map_entry:
            message.options.map_entry = True
        if model is not None:
            message.options.MergeFromString(encode_model_annotation(model))
        return message

    @staticmethod
    def enum(
        name: str,
        values: Sequence[tuple[str, int]],
        *,
        storage: Optional[EnumOptions] = None,
    ) -> descriptor_pb2.EnumDescriptorProto:
        enum_proto = descriptor_pb2.EnumDescriptorProto(name=name)
        for value_name, number in values:
            enum_proto.value.add(name=value_name, number=number)
        if storage is not None:
            enum_proto.options.MergeFromString(encode_enum_annotation(storage))
        return enum_proto

    @staticmethod
    def file(
        name: str,
        package: str = "",
        messages: Iterable[descriptor_pb2.DescriptorProto] = (),
        enums: Iterable[descriptor_pb2.EnumDescriptorProto] = (),
        dependencies: Iterable[str] = (),
        syntax: str = "proto3",
    ) -> descriptor_pb2.FileDescriptorProto:
        file_proto = descriptor_pb2.FileDescriptorProto(name=name, package=package)
        if syntax != "proto2":
            file_proto.syntax = syntax
        file_proto.dependency.extend(dependencies)
        file_proto.message_type.extend(messages)
        file_proto.enum_type.extend(enums)
        return file_proto

    @staticmethod
    def request(
        files: Sequence[descriptor_pb2.FileDescriptorProto],
        to_generate: Optional[Sequence[str]] = None,
        parameter: str = "",
    ) -> plugin_pb2.CodeGeneratorRequest:
        request = plugin_pb2.CodeGeneratorRequest(parameter=parameter)
        request.proto_file.extend(files)
        if to_generate is None:
            to_generate = [f.name for f in files]
        request.file_to_generate.extend(to_generate)
        return request


def pk(auto_increment: bool = False) -> FieldOptions:
    """Column options of a primary key."""
    return FieldOptions(primary_key=True, auto_increment=auto_increment)


@pytest.fixture
def protos() -> ProtoFactory:
    """Descriptor builders."""
    return ProtoFactory()


@pytest.fixture
def common_file(protos: ProtoFactory) -> descriptor_pb2.FileDescriptorProto:
    """blog/common.proto: the Status enum shared by users and posts."""
    status = protos.enum(
        "Status", [("STATUS_UNSPECIFIED", 0), ("STATUS_ACTIVE", 1), ("STATUS_ARCHIVED", 2)]
    )
    return protos.file("blog/common.proto", "blog", enums=[status])


@pytest.fixture
def user_file(protos: ProtoFactory) -> descriptor_pb2.FileDescriptorProto:
    """blog/user.proto: the User entity."""
    user = protos.message(
        "User",
        [
            protos.field("id", 1, FDP.TYPE_INT64, column=pk(auto_increment=True)),
            protos.field("email", 2, column=FieldOptions(unique=True)),
            protos.field("name", 3),
            protos.field("status", 4, FDP.TYPE_ENUM, type_name=".blog.Status"),
            protos.field(
                "created_at", 5, FDP.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp"
            ),
            protos.field("nickname", 6, proto3_optional=True, oneof_index=0),
        ],
        model=MessageOptions(table_name="users", indexes=(IndexSpec(columns=("name",)),)),
        oneofs=["_nickname"],
    )
    return protos.file(
        "blog/user.proto",
        "blog",
        messages=[user],
        dependencies=["blog/common.proto", "google/protobuf/timestamp.proto"],
    )


@pytest.fixture
def post_file(protos: ProtoFactory) -> descriptor_pb2.FileDescriptorProto:
    """blog/post.proto: Post belongs to User and has many Tags through post_tags."""
    post = protos.message(
        "Post",
        [
            protos.field("id", 1, FDP.TYPE_INT64, column=pk(auto_increment=True)),
            protos.field("author_id", 2, FDP.TYPE_INT64),
            protos.field("title", 3, column=FieldOptions(column_type="String(200)")),
            protos.field("body", 4, column=FieldOptions(column_type="Text", nullable=True)),
            protos.field("status", 5, FDP.TYPE_ENUM, type_name=".blog.Status"),
            protos.field("published", 6, FDP.TYPE_BOOL, column=FieldOptions(default="false")),
            protos.field(
                "author",
                7,
                FDP.TYPE_MESSAGE,
                type_name=".blog.User",
                column=FieldOptions(
                    relation=RelationSpec(
                        RelationKind.BELONGS_TO,
                        target="User",
                        from_columns=("author_id",),
                        to_columns=("id",),
                    )
                ),
            ),
            protos.field(
                "tags",
                8,
                FDP.TYPE_MESSAGE,
                type_name=".blog.Tag",
                repeated=True,
                column=FieldOptions(
                    relation=RelationSpec(
                        RelationKind.HAS_MANY_VIA, target="Tag", junction_table="post_tags"
                    )
                ),
            ),
            protos.field("labels", 9, repeated=True),
        ],
        model=MessageOptions(table_name="posts"),
    )
    tag = protos.message(
        "Tag",
        [
            protos.field("id", 1, FDP.TYPE_INT64, column=pk()),
            protos.field("name", 2, column=FieldOptions(unique=True)),
        ],
        model=MessageOptions(table_name="tags"),
    )
    post_tag = protos.message(
        "PostTag",
        [
            protos.field("post_id", 1, FDP.TYPE_INT64, column=pk()),
            protos.field("tag_id", 2, FDP.TYPE_INT64, column=pk()),
        ],
        model=MessageOptions(table_name="post_tags"),
    )
    return protos.file(
        "blog/post.proto",
        "blog",
        messages=[post, tag, post_tag],
        dependencies=["blog/user.proto", "blog/common.proto"],
    )


@pytest.fixture
def blog_files(
    common_file: descriptor_pb2.FileDescriptorProto,
    user_file: descriptor_pb2.FileDescriptorProto,
    post_file: descriptor_pb2.FileDescriptorProto,
) -> list[descriptor_pb2.FileDescriptorProto]:
    """The blog example, in the order protoc lists dependencies."""
    return [common_file, user_file, post_file]


@pytest.fixture
def blog_request(
    protos: ProtoFactory, blog_files: list[descriptor_pb2.FileDescriptorProto]
) -> plugin_pb2.CodeGeneratorRequest:
    """A request generating every blog file with default parameters."""
    return protos.request(blog_files)


@pytest.fixture
def golden() -> GoldenFiles:
    """Reader for expected outputs under tests/golden/."""
    return GoldenFiles(GOLDEN_DIR)


class GoldenFiles:
    """Expected generator outputs stored next to the tests."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def read(self, name: str) -> str:
        return (self.directory / name).read_text(encoding="utf-8")
