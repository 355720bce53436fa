"""Platform stack compiler.

This module folds elements through an ordered stack of platforms:
- Compiler: compile one element, several elements, or render them
- get_output_format: pick an output format from context and configs
- RenderedFile: output of the html-file format
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from forma_core.compiler.contract import apply_contract, refine_tag
from forma_core.compiler.extractor import element_attributes
from forma_core.compiler.platform_resolver import PlatformResolver
from forma_core.compiler.render import to_html_string, to_markup
from forma_core.observability import compile_operation
from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element, Node, Tag
from forma_core.schemas.platform_config import DEFAULT_ELEMENT_TAG, PlatformConfig

logger = logging.getLogger(__name__)

# Output formats understood by Compiler.render
OUTPUT_FORMATS = ("html-string", "hiccup", "html-file")

DEFAULT_OUTPUT_FORMAT = "html-string"

# Marker class on elements no platform could compile
UNKNOWN_ELEMENT_CLASS = "unknown-element"

DEFAULT_OUTPUT_PATH = "index.html"


class RenderedFile(BaseModel):
    """HTML destined for a file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    output_path: str = Field(..., min_length=1)
    content: str


def get_output_format(context: CompileContext, configs: Sequence[PlatformConfig]) -> str:
    """Choose the output format.

    The context's request wins, then the first declared
    ``default_output_format`` in the stack, then the first declared output
    format, then html-string.

    Raises:
        ValueError: If the chosen format is not supported.
    """
    chosen = context.output_format
    if chosen is None:
        chosen = next((c.default_output_format for c in configs if c.default_output_format), None)
    if chosen is None:
        chosen = next((next(iter(c.output_formats)) for c in configs if c.output_formats), None)
    chosen = chosen or DEFAULT_OUTPUT_FORMAT
    if chosen not in OUTPUT_FORMATS:
        raise ValueError(
            f"Unsupported output format '{chosen}'. Supported: {', '.join(OUTPUT_FORMATS)}"
        )
    return chosen


class Compiler:
    """Compiles elements through a platform stack.

    Each platform in ``context.platform_stack`` is applied in order. The first
    platform with a contract for an element's type compiles it; later
    platforms with a contract for that type refine the result without
    overwriting attributes already emitted. Extractors and component
    mappings of the whole stack are visible at every step. An element no
    platform knows is emitted through the generic fallback with an
    ``unknown-element`` class and a ``data-type`` attribute.

    Attributes:
        resolver: Resolver used to load the stack's platforms.

    Example:
        >>> compiler = Compiler()
        >>> tag = compiler.compile(
        ...     Element(type="button", properties={"text": "Click"}),
        ...     CompileContext(platform_stack=("html",)),
        ... )
        >>> tag.to_markup()
        ['button', {}, 'Click']
    """

    def __init__(self, resolver: PlatformResolver | None = None) -> None:
        self.resolver = resolver or PlatformResolver()

    def configs_for(self, context: CompileContext) -> list[PlatformConfig]:
        """Resolved configs of the context's stack, in stack order."""
        return self.resolver.resolve_stack(context.platform_stack, context.project_name)

    def compile(self, element: Element, context: CompileContext | None = None) -> Tag:
        """Compile one element.

        Args:
            element: Element to compile.
            context: Compilation context; the default stack is ``["html"]``.

        Returns:
            Compiled Tag.

        Raises:
            PlatformNotFoundError: If a stack platform cannot be found.
            ExtensionCycleError: If a stack platform extends itself.
        """
        context = context or CompileContext()
        return self.compile_with(element, self.configs_for(context), context)

    def compile_many(
        self,
        elements: Iterable[Element],
        context: CompileContext | None = None,
    ) -> list[Tag]:
        context = context or CompileContext()
        configs = self.configs_for(context)
        return [self.compile_with(e, configs, context) for e in elements]

    def compile_with(
        self,
        element: Element,
        configs: Sequence[PlatformConfig],
        context: CompileContext,
    ) -> Tag:
        """Compile one element against already resolved configs."""

        def compile_child(child: Element) -> Tag:
            return self.compile_with(child, configs, context)

        compiled: Tag | None = None
        for config in configs:
            contract = config.elements.get(element.type)
            if contract is None:
                continue
            if compiled is None:
                compiled = apply_contract(
                    element, contract, config, configs, context, compile_child
                )
            else:
                compiled = refine_tag(compiled, element, contract, config)

        if compiled is None:
            compiled = self._fallback(element, configs, context, compile_child)
        return compiled

    def _fallback(
        self,
        element: Element,
        configs: Sequence[PlatformConfig],
        context: CompileContext,
        compile_child: Any,
    ) -> Tag:
        tag = configs[0].default_element if configs else DEFAULT_ELEMENT_TAG
        attrs = element_attributes(element.properties, configs)
        if element.children:
            children: list[Node] = [
                compile_child(c) if isinstance(c, Element) else c for c in element.children
            ]
            return Tag(tag=tag, attrs=attrs, children=tuple(children))

        logger.warning(
            "No platform in stack %s defines element type '%s'",
            list(context.platform_stack),
            element.type,
        )
        attrs.update({"class": UNKNOWN_ELEMENT_CLASS, "data-type": element.type})
        return Tag(tag=tag, attrs=attrs)

    def render(
        self,
        elements: Element | Iterable[Element],
        context: CompileContext | None = None,
    ) -> str | list[list[Any]] | RenderedFile:
        """Compile and serialize elements in the chosen output format.

        Returns:
            An HTML string for html-string, list-form markup for hiccup, or a
            RenderedFile for html-file.
        """
        context = context or CompileContext()
        items = [elements] if isinstance(elements, Element) else list(elements)
        with compile_operation(
            "render",
            platform_stack=context.platform_stack,
            output_format=context.output_format,
            elements=len(items),
            project=context.project_name,
        ):
            configs = self.configs_for(context)
            tags = [self.compile_with(e, configs, context) for e in items]
            return self.serialize(tags, context, configs)

    def serialize(
        self,
        tags: Sequence[Tag],
        context: CompileContext,
        configs: Sequence[PlatformConfig],
    ) -> str | list[list[Any]] | RenderedFile:
        """Serialize compiled tags in the output format chosen for ``context``."""
        output_format = get_output_format(context, configs)
        if output_format == "hiccup":
            return to_markup(tags)
        content = to_html_string(tags)
        if output_format == "html-file":
            settings = next(
                (c.output_formats["html-file"] for c in configs if "html-file" in c.output_formats),
                {},
            )
            return RenderedFile(
                output_path=str(settings.get("output_path", DEFAULT_OUTPUT_PATH)),
                content=content,
            )
        return content
