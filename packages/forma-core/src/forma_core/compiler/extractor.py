"""Generic extractor engine.

Interprets the declarative extractor specs of every platform in a stack:
- property-selector: selected properties as a declaration string or attributes
- attribute-selector: properties copied verbatim, with sugar expansion
- property-mapper: renamed properties, optionally forwarded to another kind

Extractors of one kind are folded in stack order, later output winning.
Declaration strings written to the same attribute are merged per property.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from forma_core.compiler.styles import merge_styles
from forma_core.schemas.platform_config import (
    AttributeSelector,
    ExtractorSpec,
    PlatformConfig,
    PropertyMapper,
    PropertySelector,
)

logger = logging.getLogger(__name__)

# Extractor kinds consulted when compiling an element
STYLE_KIND = "styles"
ATTRIBUTE_KIND = "attributes"


def is_valid_value(value: Any) -> bool:
    """Whether a property value may be emitted.

    None, False, empty strings, the literal "nil" and values ending in ``:``
    (a declaration with its value missing) are rejected.
    """
    if value is None or value is False:
        return False
    text = str(value)
    return text not in ("", "nil") and not text.endswith(":")


def collect_extractors(configs: Sequence[PlatformConfig], kind: str) -> list[ExtractorSpec]:
    """Every extractor of ``kind`` declared in ``configs``, in stack order."""
    return [spec for config in configs for spec in config.extractors.get(kind, ())]


def _select(properties: Mapping[str, Any], spec: PropertySelector) -> dict[str, Any]:
    return {
        k: properties[k] for k in spec.keys if k in properties and is_valid_value(properties[k])
    }


def _lookup(table: Mapping[Any, Any], value: Any) -> Any:
    if value in table:
        return table[value]
    return table.get(str(value))


def _apply_selector(
    result: dict[str, Any],
    properties: Mapping[str, Any],
    spec: PropertySelector,
) -> None:
    selected = _select(properties, spec)
    if not selected:
        return
    if spec.output_format == "attributes":
        result.update(selected)
        return
    declarations = "; ".join(f"{k}:{v}" for k, v in selected.items())
    previous = result.get(spec.output_key)
    result[spec.output_key] = (
        merge_styles(declarations, str(previous)) if previous else declarations
    )


def _apply_attributes(
    result: dict[str, Any],
    properties: Mapping[str, Any],
    spec: AttributeSelector,
) -> None:
    for key in spec.keys:
        if key in properties and properties[key] is not None:
            result[key] = properties[key]
    for trigger, table in spec.sugar.items():
        if trigger not in properties:
            continue
        derived = _lookup(table, properties[trigger])
        if derived is not None:
            result[spec.output_key or trigger] = derived


def _apply_mapper(
    result: dict[str, Any],
    properties: Mapping[str, Any],
    spec: PropertyMapper,
    configs: Sequence[PlatformConfig],
    active: frozenset[str],
) -> None:
    mapped = {
        target: properties[source]
        for source, target in spec.mappings.items()
        if source in properties
    }
    if spec.target_extractor is None:
        result.update(mapped)
        return
    if spec.target_extractor in active:
        logger.warning(
            "Skipping property-mapper forwarding to '%s': extractor chain loops back",
            spec.target_extractor,
        )
        return
    forwarded = _extract({**properties, **mapped}, configs, spec.target_extractor, active)
    style = forwarded.get("style")
    if style and result.get("style"):
        forwarded["style"] = merge_styles(str(style), str(result["style"]))
    result.update(forwarded)


def _extract(
    properties: Mapping[str, Any],
    configs: Sequence[PlatformConfig],
    kind: str,
    active: frozenset[str],
) -> dict[str, Any]:
    active = active | {kind}
    result: dict[str, Any] = {}
    for spec in collect_extractors(configs, kind):
        if isinstance(spec, PropertySelector):
            _apply_selector(result, properties, spec)
        elif isinstance(spec, AttributeSelector):
            _apply_attributes(result, properties, spec)
        elif isinstance(spec, PropertyMapper):
            _apply_mapper(result, properties, spec, configs, active)
        else:
            logger.warning("Skipping unknown extractor type '%s' (kind=%s)", spec.type, kind)
    return result


def extract(
    properties: Mapping[str, Any],
    configs: Sequence[PlatformConfig],
    kind: str,
) -> dict[str, Any]:
    """Run every extractor of ``kind`` across the stack over ``properties``.

    Args:
        properties: Element properties.
        configs: Resolved configs of the whole stack, in stack order.
        kind: Extractor kind (e.g., "styles", "attributes").

    Returns:
        Attribute map.

    Example:
        >>> extract({"background": "#fff", "padding": "1rem", "other": "x"}, [html], "styles")
        {'style': 'background:#fff; padding:1rem'}
    """
    return _extract(properties, configs, kind, frozenset())


def element_attributes(
    properties: Mapping[str, Any],
    configs: Sequence[PlatformConfig],
) -> dict[str, Any]:
    """Style and attribute extractor output merged, attributes winning."""
    attrs = extract(properties, configs, STYLE_KIND)
    attributes = extract(properties, configs, ATTRIBUTE_KIND)
    if attrs.get("style") and attributes.get("style"):
        attributes["style"] = merge_styles(str(attributes["style"]), str(attrs["style"]))
    attrs.update(attributes)
    return attrs
