"""Output file and module naming.

Generated files live next to the path of the proto file they come from:

- "file" layout: blog/user.proto -> blog/user_orm.py (module blog.user_orm)
- "entity" layout: entity User of blog/user.proto -> blog/user.py

Path components are snake_cased so that every generated file is importable.
"""

from __future__ import annotations

import posixpath

from ..config import GeneratorConfig, OutputLayout
from ..schema.model import Entity, EnumType
from ..utils.naming import snake_case


def _package_parts(proto_file: str) -> list[str]:
    directory = posixpath.dirname(proto_file)
    return [snake_case(part) for part in directory.split("/") if part]


def _stem(proto_file: str) -> str:
    name = posixpath.basename(proto_file)
    if name.endswith(".proto"):
        name = name[: -len(".proto")]
    return snake_case(name)


def file_module(proto_file: str, config: GeneratorConfig) -> str:
    """Module generated for a whole proto file ("blog/user.proto" -> "blog.user_orm")."""
    return ".".join(_package_parts(proto_file) + [_stem(proto_file) + config.file_suffix])


def class_module(proto_file: str, class_name: str) -> str:
    """Module generated for one class ("blog/user.proto", "User" -> "blog.user")."""
    return ".".join(_package_parts(proto_file) + [snake_case(class_name)])


def entity_module(entity: Entity, config: GeneratorConfig) -> str:
    if config.layout is OutputLayout.ENTITY:
        return class_module(entity.file_name, entity.name)
    return file_module(entity.file_name, config)


def enum_module(enum_type: EnumType, config: GeneratorConfig) -> str:
    if config.layout is OutputLayout.ENTITY:
        return class_module(enum_type.file_name, enum_type.name)
    return file_module(enum_type.file_name, config)


def module_path(module: str) -> str:
    """Output file name for a dotted module ("blog.user_orm" -> "blog/user_orm.py")."""
    return module.replace(".", "/") + ".py"


def base_path(config: GeneratorConfig) -> str:
    return module_path(config.base_module)
