"""HTML serialization of compiled trees."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import html
import json
from typing import Any

from forma_core.schemas.element import Node, Tag

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)


def _attr_value(value: Any) -> str:
    if isinstance(value, Mapping | list | tuple):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def render_attrs(attrs: Mapping[str, Any]) -> str:
    """Serialize attributes. None and False are omitted, True renders bare."""
    parts: list[str] = []
    for name, value in attrs.items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f" {name}")
        else:
            parts.append(f' {name}="{html.escape(_attr_value(value), quote=True)}"')
    return "".join(parts)


def to_html(node: Node) -> str:
    """Render one compiled node as HTML. Text is escaped.

    Example:
        >>> to_html(Tag(tag="button", attrs={"class": "btn"}, children=("Click",)))
        '<button class="btn">Click</button>'
    """
    if isinstance(node, str):
        return html.escape(node, quote=False)
    opening = f"<{node.tag}{render_attrs(node.attrs)}>"
    if node.tag in VOID_ELEMENTS and not node.children:
        return opening
    inner = "".join(to_html(child) for child in node.children)
    return f"{opening}{inner}</{node.tag}>"


def to_html_string(nodes: Iterable[Node]) -> str:
    """Render several nodes back to back."""
    return "".join(to_html(node) for node in nodes)


def to_markup(nodes: Iterable[Tag]) -> list[list[Any]]:
    """List form of several tags."""
    return [node.to_markup() for node in nodes]
