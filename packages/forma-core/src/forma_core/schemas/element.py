"""Element tree models for forma-core.

This module defines the input and output trees of the compiler:
- Element: Platform-agnostic input node (type, properties, children)
- Tag: Compiled output node (tag, attrs, children)
- Node: A compiled child, either a Tag or a text string
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Element(BaseModel):
    """Platform-agnostic element node.

    Properties are expected to be already inheritance-resolved and
    token-substituted by the caller. Elements are never mutated during
    compilation.

    Attributes:
        type: Element type (e.g., "button", "heading").
        properties: Resolved property map.
        children: Ordered child elements or text strings.

    Example:
        >>> Element(type="button", properties={"text": "Click"})
        >>> Element.from_markup(["div", {"padding": "1rem"}, ["text", {"text": "hi"}]])
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(..., min_length=1, description="Element type")
    properties: dict[str, Any] = Field(
        default_factory=dict,
        description="Resolved property map",
    )
    children: tuple[Element | str, ...] = Field(
        default_factory=tuple,
        description="Child elements or text",
    )

    @field_validator("children", mode="before")
    @classmethod
    def coerce_children(cls, v: Any) -> Any:
        """Accept the list form ``[type, props, *children]`` for children."""
        if isinstance(v, list | tuple):
            return tuple(Element.from_markup(c) if isinstance(c, list) else c for c in v)
        return v

    @classmethod
    def from_markup(cls, markup: list[Any] | tuple[Any, ...]) -> Element:
        """Build an Element from its list form.

        Args:
            markup: ``[type]``, ``[type, props]`` or ``[type, props, *children]``.

        Returns:
            Element instance.

        Raises:
            ValueError: If markup is empty.
        """
        if not markup:
            raise ValueError("Element markup must not be empty")
        element_type = str(markup[0])
        properties: dict[str, Any] = {}
        rest = list(markup[1:])
        if rest and isinstance(rest[0], dict):
            properties = rest.pop(0)
        return cls(type=element_type, properties=properties, children=tuple(rest))

    def walk(self) -> list[Element]:
        """Return this element and all descendant elements, depth first."""
        found: list[Element] = [self]
        for child in self.children:
            if isinstance(child, Element):
                found.extend(child.walk())
        return found


class Tag(BaseModel):
    """Compiled output node.

    Attributes:
        tag: Output tag name (e.g., "button", "h2").
        attrs: Ordered attribute map.
        children: Compiled child nodes or text.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tag: str = Field(..., min_length=1, description="Output tag name")
    attrs: dict[str, Any] = Field(default_factory=dict, description="Attribute map")
    children: tuple[Tag | str, ...] = Field(
        default_factory=tuple,
        description="Compiled children",
    )

    def to_markup(self) -> list[Any]:
        """Return the ``[tag, attrs, *content]`` list form."""
        return [
            self.tag,
            dict(self.attrs),
            *(c.to_markup() if isinstance(c, Tag) else c for c in self.children),
        ]


Node = Tag | str

Element.model_rebuild()
Tag.model_rebuild()
