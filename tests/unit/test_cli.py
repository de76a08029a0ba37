"""Tests for the protoc-gen-protorm command."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Optional

from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

SRC = Path(__file__).resolve().parents[2] / "src"


def run_cli(
    *args: str, stdin: Optional[bytes] = None, env: Optional[dict[str, str]] = None
) -> subprocess.CompletedProcess[bytes]:
    environment = dict(os.environ)
    environment["PYTHONPATH"] = os.pathsep.join(
        filter(None, [str(SRC), environment.get("PYTHONPATH")])
    )
    environment.pop("PROTORM_LOG_LEVEL", None)
    environment.update(env or {})
    return subprocess.run(
        [sys.executable, "-m", "protorm.cli.main", *args],
        input=stdin if stdin is not None else b"",
        capture_output=True,
        env=environment,
    )


def test_cli_help() -> None:
    """Test CLI --help flag."""
    result = run_cli("--help")
    assert result.returncode == 0
    assert b"SQLAlchemy models from annotated .proto files" in result.stdout
    assert b"--analyze" in result.stdout


def test_cli_version() -> None:
    """Test CLI --version flag."""
    result = run_cli("--version")
    assert result.returncode == 0
    assert b"protoc-gen-protorm 0.1.0" in result.stdout


def test_cli_plugin_mode(blog_request: plugin_pb2.CodeGeneratorRequest, golden: Any) -> None:
    """Without arguments the command speaks the protoc plugin protocol."""
    result = run_cli(stdin=blog_request.SerializeToString())
    assert result.returncode == 0

    response = plugin_pb2.CodeGeneratorResponse.FromString(result.stdout)
    assert not response.error
    assert [f.name for f in response.file] == [
        "orm_base.py",
        "blog/common_orm.py",
        "blog/user_orm.py",
        "blog/post_orm.py",
    ]
    assert response.file[3].content == golden.read("post_orm.py.golden")


def test_cli_plugin_error(protos: Any) -> None:
    """Generation errors travel in the response; the exit code stays 0."""
    request = protos.request(
        [protos.file("a.proto", "a", messages=[protos.message("A", [protos.field("x", 1)])])]
    )
    result = run_cli(stdin=request.SerializeToString())
    assert result.returncode == 0

    response = plugin_pb2.CodeGeneratorResponse.FromString(result.stdout)
    assert "entity has no primary key" in response.error
    assert len(response.file) == 0


def test_cli_logs_to_stderr(blog_request: plugin_pb2.CodeGeneratorRequest) -> None:
    """Logging never touches stdout."""
    result = run_cli(
        stdin=blog_request.SerializeToString(), env={"PROTORM_LOG_LEVEL": "DEBUG"}
    )
    assert result.returncode == 0
    assert b"built schema with 4 entities and 1 enums" in result.stderr
    plugin_pb2.CodeGeneratorResponse.FromString(result.stdout)


def test_cli_invalid_settings() -> None:
    """Invalid environment settings exit with status 2."""
    result = run_cli("--version", env={"PROTORM_LOG_LEVEL": "loud"})
    # --version exits before settings are read
    assert result.returncode == 0
    result = run_cli(env={"PROTORM_LOG_LEVEL": "loud"})
    assert result.returncode == 2
    assert b"PROTORM_LOG_LEVEL" in result.stderr


def test_cli_analyze_request(
    tmp_path: Path, blog_request: plugin_pb2.CodeGeneratorRequest
) -> None:
    """--analyze prints the schema of a saved request."""
    request_file = tmp_path / "request.bin"
    request_file.write_bytes(blog_request.SerializeToString())

    result = run_cli("--analyze", str(request_file))
    assert result.returncode == 0
    out = result.stdout.decode()
    assert "protorm: Protobuf to SQLAlchemy" in out
    assert "4 entities, 1 enum loaded." in out
    assert "User: users" in out
    assert "author: belongs_to -> blog.User (author_id -> id)" in out
    assert "tags: has_many_via -> blog.Tag (id -> id) via post_tags" in out
    assert "blog/user.proto -> blog/user_orm.py" in out


def test_cli_analyze_descriptor_set(tmp_path: Path, blog_files: list[Any]) -> None:
    """--descriptor-set reads protoc --descriptor_set_out output."""
    file_set = descriptor_pb2.FileDescriptorSet(file=blog_files)
    set_file = tmp_path / "blog.pb"
    set_file.write_bytes(file_set.SerializeToString())

    result = run_cli(
        "--analyze", str(set_file), "--descriptor-set", "--parameter", "layout=entity"
    )
    assert result.returncode == 0
    out = result.stdout.decode()
    assert "blog/post.proto -> blog/post_tag.py" in out


def test_cli_analyze_schema_error(tmp_path: Path, protos: Any) -> None:
    """Schema problems are printed and exit with status 1."""
    request = protos.request(
        [protos.file("a.proto", "a", messages=[protos.message("A", [protos.field("x", 1)])])]
    )
    request_file = tmp_path / "request.bin"
    request_file.write_bytes(request.SerializeToString())

    result = run_cli("--analyze", str(request_file))
    assert result.returncode == 1
    assert b"Error analyzing file" in result.stderr
    assert b"a.proto: a.A: entity has no primary key" in result.stderr


def test_cli_analyze_garbage(tmp_path: Path) -> None:
    """Files that are not requests are rejected."""
    bad_file = tmp_path / "bad.bin"
    bad_file.write_bytes(b"\xff\xff\xff")
    result = run_cli("--analyze", str(bad_file))
    assert result.returncode == 1
    assert b"is not a serialized CodeGeneratorRequest" in result.stderr


def test_cli_analyze_missing_file() -> None:
    """Test CLI --analyze with missing file."""
    result = run_cli("--analyze", "nonexistent.bin")
    assert result.returncode == 1
    assert b"File not found" in result.stderr
