#!/usr/bin/env python3
"""Blog models example for protorm.

This example demonstrates:
1. Compiling annotated .proto files with grpc_tools.protoc
2. Generating SQLAlchemy models from the resulting descriptor set
3. Switching the output layout with plugin parameters

With protorm installed, protoc can run the plugin directly:

    python -m grpc_tools.protoc -I examples/proto -I proto \\
        --protorm_out=generated --protorm_opt=layout=entity \\
        examples/proto/blog/*.proto
"""

from __future__ import annotations

import sys
import tempfile
from importlib import resources
from pathlib import Path

from grpc_tools import protoc

from protorm import process
from protorm.cli.analyze import load_request

EXAMPLES_DIR = Path(__file__).resolve().parent
PROTO_DIR = EXAMPLES_DIR / "proto"
OPTIONS_DIR = EXAMPLES_DIR.parent / "proto"
OUTPUT_DIR = EXAMPLES_DIR / "generated"


def compile_descriptor_set(output: Path) -> None:
    """Run protoc on the blog protos and write a FileDescriptorSet."""
    well_known = resources.files("grpc_tools") / "_proto"
    sources = sorted(str(p.relative_to(PROTO_DIR)) for p in PROTO_DIR.glob("blog/*.proto"))
    status = protoc.main(
        [
            "grpc_tools.protoc",
            f"-I{PROTO_DIR}",
            f"-I{OPTIONS_DIR}",
            f"-I{well_known}",
            "--include_imports",
            f"--descriptor_set_out={output}",
            *sources,
        ]
    )
    if status != 0:
        raise SystemExit(f"protoc failed with status {status}")


def generate(descriptor_set: Path, parameter: str, output_dir: Path) -> list[str]:
    """Generate models the way protoc would and return the written paths."""
    request = load_request(descriptor_set, descriptor_set=True)
    request.parameter = parameter

    response = process(request)
    if response.error:
        print(response.error, file=sys.stderr)
        raise SystemExit(1)

    written = []
    for generated in response.file:
        path = output_dir / generated.name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generated.content, encoding="utf-8")
        written.append(generated.name)
    return written


def main() -> None:
    """Run the blog models example."""
    print("=" * 60)
    print("protorm Blog Models Example")
    print("=" * 60)
    print()

    with tempfile.TemporaryDirectory() as tmp:
        descriptor_set = Path(tmp) / "blog.pb"

        print("1. Compiling blog/*.proto...")
        compile_descriptor_set(descriptor_set)
        print(f"   Descriptor set: {descriptor_set.stat().st_size} bytes")
        print()

        print("2. Generating one module per .proto file...")
        for name in generate(descriptor_set, "", OUTPUT_DIR / "by_file"):
            print(f"   {name}")
        print()

        print("3. Generating one module per class...")
        for name in generate(descriptor_set, "layout=entity", OUTPUT_DIR / "by_entity"):
            print(f"   {name}")
        print()

    post_module = OUTPUT_DIR / "by_file" / "blog" / "post_orm.py"
    print("=" * 60)
    print(f"Generated {post_module.relative_to(EXAMPLES_DIR)}:")
    print("=" * 60)
    print(post_module.read_text(encoding="utf-8"))
    print("=" * 60)
    print("Example complete!")
    print(f"Output directory: {OUTPUT_DIR}")
    print("=" * 60)


if __name__ == "__main__":
    main()
