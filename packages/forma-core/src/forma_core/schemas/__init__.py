"""Pydantic schemas for forma-core.

This package contains:
- Element / Tag: input and compiled element trees
- PlatformConfig and its nested contract/extractor models
- CompileContext: compilation context
"""

from __future__ import annotations

from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element, Node, Tag
from forma_core.schemas.platform_config import (
    AttributeSelector,
    ComponentMapping,
    ElementContract,
    ExtractorSpec,
    PlatformConfig,
    PropertyMapper,
    PropertySelector,
    UnknownExtractor,
)

__all__ = [
    "AttributeSelector",
    "CompileContext",
    "ComponentMapping",
    "Element",
    "ElementContract",
    "ExtractorSpec",
    "Node",
    "PlatformConfig",
    "PropertyMapper",
    "PropertySelector",
    "Tag",
    "UnknownExtractor",
]
