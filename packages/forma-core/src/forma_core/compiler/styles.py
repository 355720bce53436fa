"""Inline style parsing, merging and serialization.

Declaration strings look like ``"background:#fff; padding:1rem"``. They are
parsed into ordered property maps so merges work per property and no
declaration appears twice in the output.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DECLARATION_SEPARATOR = ";"
JOIN_SEPARATOR = "; "


def parse_style(style: str | None) -> dict[str, str]:
    """Parse a declaration string into an ordered property map.

    Parts without a ``:`` or with a blank property or value are dropped. A
    property declared twice keeps its last value at its first position.

    Example:
        >>> parse_style("color: red; padding:1rem;")
        {'color': 'red', 'padding': '1rem'}
    """
    declarations: dict[str, str] = {}
    if not style:
        return declarations
    for part in style.split(DECLARATION_SEPARATOR):
        prop, sep, value = part.partition(":")
        prop, value = prop.strip(), value.strip()
        if sep and prop and value:
            declarations[prop] = value
    return declarations


def serialize_style(declarations: Mapping[str, Any]) -> str:
    """Serialize a property map as ``"k:v; k:v"``."""
    return JOIN_SEPARATOR.join(f"{k}:{v}" for k, v in declarations.items())


def merge_style_maps(explicit: Mapping[str, str], extracted: Mapping[str, str]) -> dict[str, str]:
    """Merge two property maps; ``explicit`` wins on every shared property.

    Extracted properties keep their order, followed by explicit-only ones.
    """
    merged = dict(extracted)
    merged.update(explicit)
    return merged


def merge_styles(explicit: str | None, extracted: str | None) -> str:
    """Merge two declaration strings, explicit winning per property.

    Example:
        >>> merge_styles("color: blue", "color:red; margin:0")
        'color:blue; margin:0'
    """
    return serialize_style(merge_style_maps(parse_style(explicit), parse_style(extracted)))


def dedupe_style(style: str | None) -> str:
    """Re-serialize a declaration string with one declaration per property."""
    return serialize_style(parse_style(style))
