"""Element contract application.

Turns one element into a compiled Tag using a platform's ElementContract:
tag selection, explicit class handling, component mapping, extractor output,
style merging, content and children resolution.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
import re
from typing import Any

from forma_core.compiler.extractor import element_attributes
from forma_core.compiler.styles import merge_styles
from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element, Node, Tag
from forma_core.schemas.platform_config import ElementContract, PlatformConfig

# Properties never passed to extractors
RESERVED_PROPS = frozenset({"class", "style"})

VAR_PATTERN = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")

# Heading levels HTML defines
MIN_HEADING_LEVEL = 1
MAX_HEADING_LEVEL = 6

# Compiles a child element with the same stack and context
ChildCompiler = Callable[[Element], Tag]


def flatten(mapping: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted keys.

    Example:
        >>> flatten({"customer": {"name": "Ada"}, "n": 1})
        {'customer.name': 'Ada', 'n': 1}
    """
    flat: dict[str, Any] = {}
    for key, value in mapping.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def resolve_vars(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{path}}`` placeholders with values from ``variables``.

    Unknown placeholders are left untouched.

    Example:
        >>> resolve_vars("Hi {{customer.name}}", {"customer": {"name": "Ada"}})
        'Hi Ada'
    """
    if "{{" not in text:
        return text
    flat = flatten(variables)

    def replace(match: re.Match[str]) -> str:
        path = match.group(1)
        return str(flat[path]) if path in flat else match.group(0)

    return VAR_PATTERN.sub(replace, text)


def lookup_path(properties: Mapping[str, Any], path: str) -> Any:
    """Read a property by literal key, falling back to a dotted nested path."""
    if path in properties:
        return properties[path]
    current: Any = properties
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def resolve_tag(contract: ElementContract, properties: Mapping[str, Any]) -> str:
    """Output tag: property-driven dispatch first, else the contract's element.

    A numeric ``level`` missing from its table falls back to ``h<level>``,
    clamped to h1..h6. Other unmatched values use the contract's element.
    """
    for prop, table in contract.element_by_prop.items():
        value = properties.get(prop)
        if value is None:
            continue
        if value in table:
            return table[value]
        if str(value) in table:
            return table[str(value)]
        if prop == "level":
            try:
                level = int(value)
            except (TypeError, ValueError):
                continue
            return f"h{min(max(level, MIN_HEADING_LEVEL), MAX_HEADING_LEVEL)}"
    return contract.element


def explicit_class(properties: Mapping[str, Any], class_attr: str) -> str | None:
    """Explicit class from ``class`` or the contract's class attribute.

    A blank or whitespace-only value counts as no override.
    """
    value = properties.get("class", properties.get(class_attr))
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def apply_component_mapping(
    element_type: str,
    properties: Mapping[str, Any],
    config: PlatformConfig,
) -> dict[str, Any]:
    """Rewrite generic properties into the platform's vocabulary.

    Mapped properties win over the mapping's default attributes.
    """
    mapping = config.component_mappings.get(element_type)
    if mapping is None:
        return {}
    mapped = {
        target: properties[source]
        for source, target in mapping.mappings.items()
        if source in properties
    }
    return {**mapping.default_attrs, **mapped}


def apply_attr_map(properties: Mapping[str, Any], attr_map: Mapping[str, str]) -> dict[str, Any]:
    """Rename the properties listed in ``attr_map`` into attributes."""
    return {
        target: properties[source] for source, target in attr_map.items() if source in properties
    }


def _compile_node(
    child: Element | str,
    contract: ElementContract,
    context: CompileContext,
    compile_child: ChildCompiler,
) -> Node:
    if isinstance(child, Element):
        return compile_child(child)
    if contract.content_handling == "resolve-vars":
        return resolve_vars(child, context.variables)
    return child


def compile_children(
    element: Element,
    contract: ElementContract,
    context: CompileContext,
    compile_child: ChildCompiler,
) -> list[Node]:
    """Compile children per ``children_handling``."""
    if contract.children_handling == "none" or not element.children:
        return []
    children = element.children
    if contract.children_handling == "first-only":
        children = children[:1]
    return [_compile_node(c, contract, context, compile_child) for c in children]


def resolve_content(
    element: Element,
    contract: ElementContract,
    context: CompileContext,
    compile_child: ChildCompiler,
    compiled_children: Sequence[Node] = (),
) -> Node | None:
    """Content per ``content_source``; None when there is none."""
    source = contract.content_source
    if source == "none":
        return None
    if source in ("children", "first-child"):
        if compiled_children:
            return compiled_children[0]
        if not element.children:
            return None
        return _compile_node(element.children[0], contract, context, compile_child)

    if source == "text":
        value = element.properties.get("text")
    else:
        value = lookup_path(element.properties, source)
    if value is None or value == "":
        return None
    text = str(value)
    if contract.content_handling == "resolve-vars":
        text = resolve_vars(text, context.variables)
    return text


def apply_contract(
    element: Element,
    contract: ElementContract,
    config: PlatformConfig,
    configs: Sequence[PlatformConfig],
    context: CompileContext,
    compile_child: ChildCompiler,
) -> Tag:
    """Compile ``element`` with ``contract``.

    Attribute precedence, highest first: explicit class, merged style,
    extractor output, ``attr_map`` renames, component mapping, contract
    default attributes.

    Args:
        element: Element to compile.
        contract: Contract for the element's type on ``config``.
        config: Platform that owns the contract.
        configs: Every resolved config of the stack, in stack order.
        context: Compilation context.
        compile_child: Compiles child elements.

    Returns:
        Compiled Tag.
    """
    props = element.properties
    excluded = RESERVED_PROPS | {contract.class_attr, *contract.exclude_from_styles}
    extracted = element_attributes(
        {k: v for k, v in props.items() if k not in excluded},
        configs,
    )
    explicit_style = props.get("style")
    style = merge_styles(
        str(explicit_style) if explicit_style else None,
        extracted.pop("style", None),
    )

    attrs: dict[str, Any] = {}
    class_value = explicit_class(props, contract.class_attr)
    if class_value is not None:
        attrs[contract.class_attr] = class_value
    if style:
        attrs["style"] = style
    for layer in (
        extracted,
        apply_attr_map(props, contract.attr_map),
        apply_component_mapping(element.type, props, config),
        contract.default_attrs,
    ):
        for key, value in layer.items():
            attrs.setdefault(key, value)

    compiled_children = compile_children(element, contract, context, compile_child)
    content = resolve_content(element, contract, context, compile_child, compiled_children)

    if content is not None and contract.content_source not in ("children", "none"):
        body: list[Node] = [content]
    elif compiled_children:
        body = compiled_children
    elif content is not None:
        body = [content]
    else:
        body = []
    return Tag(tag=resolve_tag(contract, props), attrs=attrs, children=tuple(body))


def refine_tag(
    tag: Tag,
    element: Element,
    contract: ElementContract,
    config: PlatformConfig,
) -> Tag:
    """Let a later platform add attributes to an already compiled tag.

    The platform's component mapping, ``attr_map`` and default attributes
    may read the element's properties and the attributes already emitted,
    but never replace an attribute that is already present.
    """
    sources = {**tag.attrs, **element.properties}
    attrs = dict(tag.attrs)
    for layer in (
        apply_attr_map(sources, contract.attr_map),
        apply_component_mapping(element.type, sources, config),
        contract.default_attrs,
    ):
        for key, value in layer.items():
            attrs.setdefault(key, value)
    if attrs == tag.attrs:
        return tag
    return tag.model_copy(update={"attrs": attrs})
