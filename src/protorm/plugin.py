"""Request orchestration for protoc-gen-protorm.

process() turns one CodeGeneratorRequest into one CodeGeneratorResponse:

1. parse the parameter string into a GeneratorConfig
2. build the Schema once from every file of the request
3. render each file named in file_to_generate, in request order
4. assemble the response

The plugin protocol has a single error channel, so any problem anywhere in
the request fails the whole response: it then carries the error message and
no files.
"""

from __future__ import annotations

import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from google.protobuf import message as protobuf_message
from google.protobuf.compiler import plugin_pb2

from .codegen import GeneratedFile, render_base_file, render_file
from .config import GeneratorConfig, parse_parameter
from .exceptions import GenerationError, ProtormError
from .schema import Schema, build_schema
from .utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_FEATURES = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL


def process(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    """Run the generator on a parsed request.

    Args:
        request: The request sent by protoc

    Returns:
        A response with either every generated file or a single error message
    """
    response = plugin_pb2.CodeGeneratorResponse(supported_features=SUPPORTED_FEATURES)
    try:
        files = generate_files(request)
    except ProtormError as e:
        logger.info("generation failed: %s", type(e).__name__)
        response.error = str(e)
        return response

    for generated in files:
        response.file.add(name=generated.name, content=generated.content)
    logger.info("generated %d file(s)", len(files))
    return response


def generate(data: bytes) -> bytes:
    """Run the generator on a serialized request and return the serialized response.

    Args:
        data: Serialized CodeGeneratorRequest (as read from stdin)

    Returns:
        Serialized CodeGeneratorResponse (to be written to stdout)
    """
    request = plugin_pb2.CodeGeneratorRequest()
    try:
        request.ParseFromString(data)
    except protobuf_message.DecodeError as e:
        response = plugin_pb2.CodeGeneratorResponse(
            error=f"Cannot parse CodeGeneratorRequest: {e}",
            supported_features=SUPPORTED_FEATURES,
        )
        return response.SerializeToString(deterministic=True)
    return process(request).SerializeToString(deterministic=True)


def generate_files(request: plugin_pb2.CodeGeneratorRequest) -> list[GeneratedFile]:
    """Produce every output file of a request.

    Raises:
        ConfigError: If the parameter string is invalid
        SchemaBuildError: If the descriptor set has any problem
        GenerationError: If a requested file is missing or two outputs collide
    """
    config = parse_parameter(request.parameter)
    logger.debug("configuration: %s", config.model_dump(mode="json"))

    known = {file_proto.name for file_proto in request.proto_file}
    missing = [name for name in request.file_to_generate if name not in known]
    if missing:
        raise GenerationError(
            "files to generate are missing from the request: " + ", ".join(missing)
        )

    schema = build_schema(request.proto_file, config)
    file_names = list(request.file_to_generate)
    rendered = _render_all(file_names, schema, config)

    files: list[GeneratedFile] = []
    if config.emit_base and _has_entities(schema, file_names):
        files.append(render_base_file(config))
    for generated in rendered:
        files.extend(generated)

    _check_unique_names(files)
    return files


def _render_all(
    file_names: Sequence[str], schema: Schema, config: GeneratorConfig
) -> list[list[GeneratedFile]]:
    render = functools.partial(render_file, schema=schema, config=config)
    if config.workers == 1 or len(file_names) < 2:
        return [render(name) for name in file_names]

    logger.debug("rendering %d files on %d threads", len(file_names), config.workers)
    with ThreadPoolExecutor(max_workers=config.workers) as executor:
        # map() yields results in submission order
        return list(executor.map(render, file_names))


def _has_entities(schema: Schema, file_names: Sequence[str]) -> bool:
    return any(next(schema.entities_in_file(name), None) is not None for name in file_names)


def _check_unique_names(files: Sequence[GeneratedFile]) -> None:
    seen: set[str] = set()
    duplicates = []
    for generated in files:
        if generated.name in seen:
            duplicates.append(generated.name)
        seen.add(generated.name)
    if duplicates:
        raise GenerationError(
            "more than one generated file would be written to: " + ", ".join(duplicates)
        )
