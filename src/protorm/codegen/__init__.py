"""Code generation for protorm.

This module renders schema entities and enums as SQLAlchemy declarative
model source and decides which output files they go to.
"""

from __future__ import annotations

from .layout import class_module, file_module, module_path
from .render import (
    HEADER,
    GeneratedFile,
    render_base,
    render_base_file,
    render_entity,
    render_enum,
    render_file,
    render_module,
)

__all__ = [
    "HEADER",
    "GeneratedFile",
    "render_base",
    "render_base_file",
    "render_entity",
    "render_enum",
    "render_file",
    "render_module",
    "class_module",
    "file_module",
    "module_path",
]
