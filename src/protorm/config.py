"""Configuration for protorm.

Two sources feed the generator:

- the plugin parameter string passed by protoc (--protorm_opt=...), parsed
  into a GeneratorConfig by parse_parameter(), and
- environment variables with the PROTORM_ prefix, loaded into Settings with
  pydantic-settings. These only control logging.
"""

from __future__ import annotations

import enum
import logging
import re
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError, InvalidColumnTypeOverride
from .schema.types import parse_override

_MODULE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_SUFFIX_RE = re.compile(r"^[A-Za-z0-9_]*$")

TYPE_PREFIX = "type."


class OutputLayout(str, enum.Enum):
    """How generated classes are distributed over output files."""

    FILE = "file"  # one module per .proto file
    ENTITY = "entity"  # one module per entity and per enum


class EntitySelection(str, enum.Enum):
    """Which messages become entities."""

    ALL = "all"
    ANNOTATED = "annotated"  # only messages with a (protorm.model) block


class GeneratorConfig(BaseModel):
    """Options of one generator run.

    Attributes:
        layout: Output file layout
        entities: Entity selection policy
        base_module: Dotted module that defines the declarative Base class
        emit_base: Emit the base module alongside the generated files
        file_suffix: Appended to the proto file stem in the "file" layout
        relations: Render relationship() attributes and foreign key constraints
        indexes: Render Index entries in __table_args__
        header: Render the "generated code" header comment
        workers: Rendering threads (1 renders inline)
        type_overrides: Default column types keyed by proto type name
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    layout: OutputLayout = OutputLayout.FILE
    entities: EntitySelection = EntitySelection.ALL
    base_module: str = "orm_base"
    emit_base: bool = True
    file_suffix: str = "_orm"
    relations: bool = True
    indexes: bool = True
    header: bool = True
    workers: int = Field(default=1, ge=1, le=64)
    type_overrides: dict[str, str] = Field(default_factory=dict)

    @field_validator("base_module")
    @classmethod
    def _check_base_module(cls, value: str) -> str:
        if not _MODULE_RE.match(value):
            raise ValueError(f"{value!r} is not a dotted Python module name")
        return value

    @field_validator("file_suffix")
    @classmethod
    def _check_file_suffix(cls, value: str) -> str:
        if not _SUFFIX_RE.match(value):
            raise ValueError("may only contain letters, digits and underscores")
        return value

    @field_validator("type_overrides")
    @classmethod
    def _check_type_overrides(cls, value: dict[str, str]) -> dict[str, str]:
        for key, override in value.items():
            try:
                parse_override(override)
            except InvalidColumnTypeOverride as e:
                raise ValueError(f"{TYPE_PREFIX}{key}: {e.message}") from e
        return value

    @property
    def annotated_only(self) -> bool:
        return self.entities is EntitySelection.ANNOTATED


def parse_parameter(parameter: str) -> GeneratorConfig:
    """Parse the plugin parameter string.

    The string is a comma-separated list of key=value pairs; a bare key
    means key=true. Keys starting with "type." set default column types,
    e.g. "type.string=Text".

    Args:
        parameter: CodeGeneratorRequest.parameter

    Returns:
        The validated configuration

    Raises:
        ConfigError: If a key is unknown, repeated, or has an invalid value

    Example:
        >>> config = parse_parameter("layout=entity,type.string=Text,header=false")
        >>> config.type_overrides
        {'string': 'Text'}
    """
    values: dict[str, Any] = {}
    overrides: dict[str, str] = {}

    for item in parameter.split(","):
        item = item.strip()
        if not item:
            continue

        key, sep, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if not key:
            raise ConfigError(f"Parameter {item!r} has no key")
        if not sep:
            value = "true"

        if key.startswith(TYPE_PREFIX):
            type_name = key[len(TYPE_PREFIX) :]
            if not type_name:
                raise ConfigError(f"Parameter {item!r} does not name a proto type")
            if type_name in overrides:
                raise ConfigError(f"Parameter {key!r} is given more than once")
            overrides[type_name] = value
            continue

        if key == "type_overrides" or key in values:
            raise ConfigError(f"Parameter {key!r} is given more than once or not supported")
        values[key] = value

    values["type_overrides"] = overrides
    try:
        return GeneratorConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for detail in error.errors():
        key = ".".join(str(part) for part in detail["loc"])
        if detail["type"] == "extra_forbidden":
            problems.append(f"unknown parameter {key!r}")
        else:
            problems.append(f"{key}: {detail['msg']}")
    return "Invalid plugin parameter: " + "; ".join(problems)


class Settings(BaseSettings):
    """Process settings read from PROTORM_* environment variables."""

    log_level: str = "WARNING"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="PROTORM_", extra="ignore")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level {value!r}")
        return value


def load_settings() -> Settings:
    """Read Settings from the environment.

    Raises:
        ConfigError: If an environment variable has an invalid value
    """
    try:
        return Settings()
    except ValidationError as e:
        problems = "; ".join(
            f"PROTORM_{'.'.join(str(p) for p in d['loc']).upper()}: {d['msg']}"
            for d in e.errors()
        )
        raise ConfigError(f"Invalid environment settings: {problems}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance."""
    return load_settings()


__all__ = [
    "GeneratorConfig",
    "OutputLayout",
    "EntitySelection",
    "parse_parameter",
    "Settings",
    "load_settings",
    "get_settings",
]
