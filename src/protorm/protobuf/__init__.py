"""Protobuf runtime integration.

This module registers the protorm annotation schema with the protobuf runtime
and provides lookup tables over the descriptors of a code generator request.
"""

from __future__ import annotations

from .annotations import option_bytes
from .descriptors import DescriptorIndex, EnumInfo, MessageInfo, has_explicit_presence

__all__ = [
    "option_bytes",
    "DescriptorIndex",
    "MessageInfo",
    "EnumInfo",
    "has_explicit_presence",
]
