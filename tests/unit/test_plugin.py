"""Unit tests for request orchestration."""

from __future__ import annotations

from typing import Any

import pytest
from google.protobuf.compiler import plugin_pb2

from protorm.codec import FieldOptions
from protorm.exceptions import GenerationError
from protorm.plugin import SUPPORTED_FEATURES, generate, generate_files, process

Response = plugin_pb2.CodeGeneratorResponse


class TestProcess:
    """Test the request to response mapping."""

    def test_blog(self, blog_request: plugin_pb2.CodeGeneratorRequest, golden: Any) -> None:
        """The base module comes first, then each file in request order."""
        response = process(blog_request)

        assert not response.HasField("error")
        assert [f.name for f in response.file] == [
            "orm_base.py",
            "blog/common_orm.py",
            "blog/user_orm.py",
            "blog/post_orm.py",
        ]
        assert response.file[0].content == golden.read("orm_base.py.golden")
        assert response.file[2].content == golden.read("user_orm.py.golden")

    def test_supported_features(self, blog_request: plugin_pb2.CodeGeneratorRequest) -> None:
        """proto3 optional support is announced on success and on failure."""
        assert process(blog_request).supported_features == Response.FEATURE_PROTO3_OPTIONAL
        blog_request.parameter = "bogus=1"
        assert process(blog_request).supported_features == SUPPORTED_FEATURES

    def test_only_requested_files(self, protos: Any, blog_files: list[Any]) -> None:
        """Imported files feed the schema but produce no output."""
        response = process(protos.request(blog_files, to_generate=["blog/post.proto"]))
        assert [f.name for f in response.file] == ["orm_base.py", "blog/post_orm.py"]

    def test_no_base_without_entities(self, protos: Any, blog_files: list[Any]) -> None:
        """An enum-only request does not emit the Base module."""
        response = process(protos.request(blog_files, to_generate=["blog/common.proto"]))
        assert [f.name for f in response.file] == ["blog/common_orm.py"]

    def test_emit_base_false(self, protos: Any, blog_files: list[Any]) -> None:
        """emit_base=false leaves Base to the user."""
        response = process(protos.request(blog_files, parameter="emit_base=false"))
        assert "orm_base.py" not in [f.name for f in response.file]

    def test_custom_base_module(self, protos: Any, blog_files: list[Any]) -> None:
        """base_module moves the Base module and its imports."""
        response = process(protos.request(blog_files, parameter="base_module=app.db.base"))
        names = [f.name for f in response.file]
        assert names[0] == "app/db/base.py"
        assert "from app.db.base import Base\n" in response.file[2].content

    def test_workers_do_not_change_output(
        self, protos: Any, blog_files: list[Any], blog_request: plugin_pb2.CodeGeneratorRequest
    ) -> None:
        """Threaded rendering gives byte-identical responses."""
        serial = process(blog_request).SerializeToString(deterministic=True)
        threaded = process(protos.request(blog_files, parameter="workers=4"))
        assert threaded.SerializeToString(deterministic=True) == serial


class TestFailures:
    """Any problem produces one error and zero files."""

    def test_schema_error(self, protos: Any, blog_files: list[Any]) -> None:
        """A schema problem anywhere fails the whole response."""
        broken = protos.file(
            "blog/log.proto", "blog", messages=[protos.message("Log", [protos.field("line", 1)])]
        )
        response = process(protos.request(blog_files + [broken]))

        assert len(response.file) == 0
        assert response.error.startswith("found 1 problem in the descriptor set:")
        assert "blog/log.proto: blog.Log: entity has no primary key" in response.error

    def test_many_errors_one_message(self, protos: Any) -> None:
        """Every problem of the request is listed in the single error."""
        bad = FieldOptions(column_type="Nope")
        files = [
            protos.file("a.proto", "a", messages=[protos.message("A", [protos.field("x", 1)])]),
            protos.file(
                "b.proto", "b", messages=[protos.message("B", [protos.field("y", 1, column=bad)])]
            ),
        ]
        response = process(protos.request(files))

        assert len(response.file) == 0
        lines = response.error.splitlines()
        assert lines[0] == "found 3 problems in the descriptor set:"
        assert len(lines) == 4

    def test_bad_parameter(self, protos: Any, blog_files: list[Any]) -> None:
        """Parameter errors are reported through the response."""
        response = process(protos.request(blog_files, parameter="layout=tree"))
        assert len(response.file) == 0
        assert response.error.startswith("Invalid plugin parameter: layout")

    def test_missing_file(self, protos: Any, blog_files: list[Any]) -> None:
        """file_to_generate must name files of the request."""
        request = protos.request(blog_files, to_generate=["blog/nope.proto"])
        with pytest.raises(GenerationError, match="blog/nope.proto"):
            generate_files(request)

    def test_duplicate_output(self, protos: Any) -> None:
        """Two protos rendering to one path are rejected."""
        key = FieldOptions(primary_key=True)
        files = [
            protos.file(
                f"{directory}/item.proto",
                f"p{n}",
                messages=[
                    protos.message(
                        f"Item{n}",
                        [protos.field("id", 1, column=key)],
                    )
                ],
            )
            for n, directory in enumerate(["My-Api", "my_api"])
        ]
        response = process(protos.request(files))
        assert len(response.file) == 0
        assert "my_api/item_orm.py" in response.error


class TestGenerate:
    """Test the serialized entry point."""

    def test_round_trip(self, blog_request: plugin_pb2.CodeGeneratorRequest) -> None:
        """Serialized requests give serialized responses."""
        data = generate(blog_request.SerializeToString())
        response = Response.FromString(data)
        assert len(response.file) == 4

    def test_garbage(self) -> None:
        """Unparseable input becomes an error response."""
        response = Response.FromString(generate(b"\xff\xff\xff"))
        assert response.error.startswith("Cannot parse CodeGeneratorRequest")
        assert len(response.file) == 0

    def test_deterministic(self, blog_request: plugin_pb2.CodeGeneratorRequest) -> None:
        """The same request always gives the same bytes."""
        data = blog_request.SerializeToString()
        assert generate(data) == generate(data)
