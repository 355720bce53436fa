"""Compiler module for forma-core.

This module exports the stack compiler and its building blocks:
- Compiler: Fold elements through an ordered platform stack
- CachedCompiler: Compiler with result caching and dependency tracking
- PlatformResolver: Load platform documents and resolve their extends chains
- extract / element_attributes: Declarative extractor engine
- apply_contract: Element contract application
- merge_styles / dedupe_style: Inline style merging
- to_html / to_html_string: HTML serialization
"""

from __future__ import annotations

from forma_core.compiler.cached import CachedCompiler
from forma_core.compiler.compiler import (
    OUTPUT_FORMATS,
    UNKNOWN_ELEMENT_CLASS,
    Compiler,
    RenderedFile,
    get_output_format,
)
from forma_core.compiler.contract import apply_contract, refine_tag, resolve_vars
from forma_core.compiler.extractor import element_attributes, extract
from forma_core.compiler.platform_resolver import (
    BUILTIN_PLATFORM_DIR,
    PROJECT_ENV_VAR,
    PlatformResolver,
    deep_merge,
    get_project_name,
)
from forma_core.compiler.render import to_html, to_html_string, to_markup
from forma_core.compiler.styles import dedupe_style, merge_styles, parse_style, serialize_style

__all__ = [
    "BUILTIN_PLATFORM_DIR",
    "OUTPUT_FORMATS",
    "PROJECT_ENV_VAR",
    "UNKNOWN_ELEMENT_CLASS",
    "CachedCompiler",
    "Compiler",
    "PlatformResolver",
    "RenderedFile",
    "apply_contract",
    "dedupe_style",
    "deep_merge",
    "element_attributes",
    "extract",
    "get_output_format",
    "get_project_name",
    "merge_styles",
    "parse_style",
    "refine_tag",
    "resolve_vars",
    "serialize_style",
    "to_html",
    "to_html_string",
    "to_markup",
]
