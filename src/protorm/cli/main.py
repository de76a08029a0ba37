"""Main CLI entry point for protoc-gen-protorm."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .. import __version__
from ..cli.analyze import analyze_file
from ..config import get_settings
from ..exceptions import ProtormError
from ..plugin import generate
from ..utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the protoc-gen-protorm CLI.

    Without arguments the program runs as a protoc plugin: it reads a
    CodeGeneratorRequest from stdin and writes a CodeGeneratorResponse to
    stdout. Generation errors travel inside the response, so the exit code
    is 0 whenever a response was written.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        prog="protoc-gen-protorm",
        description="protorm: SQLAlchemy models from annotated .proto files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  protoc --protorm_out=models --protorm_opt=layout=entity blog/*.proto
  protoc-gen-protorm --analyze request.bin         Analyze a saved request
  protoc-gen-protorm --analyze set.pb --descriptor-set
  protoc-gen-protorm --version                     Show version

Environment:
  PROTORM_LOG_LEVEL   DEBUG, INFO, WARNING (default), ERROR
  PROTORM_LOG_JSON    true to log JSON lines on stderr
        """,
    )

    parser.add_argument(
        "--analyze",
        metavar="FILE",
        type=str,
        help="Print the schema built from a serialized CodeGeneratorRequest",
    )

    parser.add_argument(
        "--descriptor-set",
        action="store_true",
        help="With --analyze: FILE is a FileDescriptorSet (protoc --descriptor_set_out)",
    )

    parser.add_argument(
        "--parameter",
        metavar="PARAMS",
        default="",
        help="With --analyze: plugin parameter string, e.g. 'layout=entity,type.string=Text'",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"protoc-gen-protorm {__version__}",
    )

    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ProtormError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level, settings.log_json)

    # Handle --analyze
    if args.analyze:
        file_path = Path(args.analyze)
        if not file_path.exists():
            print(f"Error: File not found: {file_path}", file=sys.stderr)
            return 1

        try:
            analyze_file(file_path, descriptor_set=args.descriptor_set, parameter=args.parameter)
            return 0
        except (ProtormError, ValueError) as e:
            print(f"Error analyzing file: {e}", file=sys.stderr)
            return 1

    # Plugin mode
    data = sys.stdin.buffer.read()
    logger.debug("read %d request bytes", len(data))
    sys.stdout.buffer.write(generate(data))
    sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
