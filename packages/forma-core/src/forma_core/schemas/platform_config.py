"""Platform configuration models for forma-core.

This module defines the declarative platform document schema:
- PlatformConfig: Root model for a platform rule-set
- ElementContract: Per-element-type compilation contract
- PropertySelector, AttributeSelector, PropertyMapper: Extractor specs
- UnknownExtractor: Placeholder for extractor types this release does not know
- ComponentMapping: Generic-to-platform property renames

Platform documents are YAML files such as::

    name: htmx
    extends: html
    extractors:
      attributes:
        type: attribute-selector
        keys: [hx-get, hx-post, hx-target]
    component_mappings:
      form:
        mappings: {on_submit: hx-post}
        default_attrs: {hx-swap: outerHTML}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import yaml

from forma_core.errors import ConfigurationError

# Default tag for elements without a contract or explicit tag
DEFAULT_ELEMENT_TAG = "div"

# Default output key for property-selector extractors
DEFAULT_STYLE_KEY = "style"

# Content sources with built-in meaning; anything else is a dotted property path
CONTENT_SOURCES = frozenset({"children", "text", "first-child", "none"})

ContentHandling = Literal["resolve-vars", "none", "raw"]
ChildrenHandling = Literal["compile-all", "first-only", "none"]


class PropertySelector(BaseModel):
    """Select properties and emit them as a declaration string or attributes.

    Attributes:
        keys: Property names to select, in output order.
        output_format: "css-string" joins pairs as ``k:v; k:v``; "attributes"
            emits each pair as its own attribute.
        output_key: Attribute that receives the declaration string.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["property-selector"] = "property-selector"
    keys: tuple[str, ...] = Field(default_factory=tuple, description="Selected keys")
    output_format: Literal["css-string", "attributes"] = Field(
        default="css-string",
        description="Output encoding",
    )
    output_key: str = Field(default=DEFAULT_STYLE_KEY, description="Output attribute")


class AttributeSelector(BaseModel):
    """Copy properties verbatim, expanding sugar shorthands.

    Attributes:
        keys: Property names copied as attributes.
        sugar: Trigger key -> {trigger value: derived value}.
        output_key: Attribute for derived values (defaults to the trigger key).

    Example:
        >>> AttributeSelector(
        ...     keys=("hx-get",),
        ...     sugar={"swap": {"replace": "outerHTML"}},
        ...     output_key="hx-swap",
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["attribute-selector"] = "attribute-selector"
    keys: tuple[str, ...] = Field(default_factory=tuple, description="Copied keys")
    sugar: dict[str, dict[Any, Any]] = Field(
        default_factory=dict,
        description="Shorthand lookup tables",
    )
    output_key: str | None = Field(default=None, description="Derived attribute name")


class PropertyMapper(BaseModel):
    """Rename properties, optionally forwarding them to another extractor kind.

    Attributes:
        mappings: Source property -> target property.
        target_extractor: Extractor kind that receives the renamed properties.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["property-mapper"] = "property-mapper"
    mappings: dict[str, str] = Field(default_factory=dict, description="Rename table")
    target_extractor: str | None = Field(default=None, description="Forwarding kind")


class UnknownExtractor(BaseModel):
    """Extractor of a type this release does not interpret. Skipped at run time."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str


ExtractorSpec = PropertySelector | AttributeSelector | PropertyMapper | UnknownExtractor

EXTRACTOR_TYPES: dict[str, type[BaseModel]] = {
    "property-selector": PropertySelector,
    "attribute-selector": AttributeSelector,
    "property-mapper": PropertyMapper,
}


def parse_extractor(raw: Any) -> Any:
    """Build the extractor model matching a raw document's ``type``.

    Args:
        raw: Raw extractor mapping or an already-built model.

    Returns:
        Extractor model, or the input unchanged for pydantic to reject.
    """
    if not isinstance(raw, dict):
        return raw
    model = EXTRACTOR_TYPES.get(str(raw.get("type", "")))
    if model is None:
        return UnknownExtractor.model_validate(raw)
    return model.model_validate(raw)


class ComponentMapping(BaseModel):
    """Generic property names rewritten into a platform's vocabulary.

    Attributes:
        mappings: Generic property -> platform attribute.
        default_attrs: Attributes added whenever the mapping applies.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mappings: dict[str, str] = Field(default_factory=dict, description="Rename table")
    default_attrs: dict[str, Any] = Field(default_factory=dict, description="Default attributes")


class ElementContract(BaseModel):
    """Per-platform compilation contract for one element type.

    Attributes:
        element: Output tag name.
        element_by_prop: Property-driven tag dispatch, e.g.
            ``{"level": {1: "h1", 2: "h2"}}``.
        class_attr: Attribute that receives the explicit class.
        content_source: children, text, first-child, none, or a dotted
            property path.
        content_handling: resolve-vars substitutes ``{{path}}`` placeholders.
        children_handling: compile-all, first-only, or none.
        attr_map: Property -> attribute renames for this element.
        default_attrs: Attributes used when nothing else provides them.
        exclude_from_styles: Properties hidden from extractors.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    element: str = Field(default=DEFAULT_ELEMENT_TAG, min_length=1, description="Tag")
    element_by_prop: dict[str, dict[Any, str]] = Field(
        default_factory=dict,
        description="Property-driven tag dispatch",
    )
    class_attr: str = Field(default="class", description="Class attribute name")
    content_source: str = Field(default="children", description="Content source")
    content_handling: ContentHandling = Field(
        default="resolve-vars",
        description="Content handling",
    )
    children_handling: ChildrenHandling = Field(
        default="compile-all",
        description="Children handling",
    )
    attr_map: dict[str, str] = Field(default_factory=dict, description="Attribute renames")
    default_attrs: dict[str, Any] = Field(default_factory=dict, description="Default attributes")
    exclude_from_styles: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Properties hidden from extractors",
    )


class PlatformConfig(BaseModel):
    """A named, declarative platform rule-set.

    Instances returned by the resolver are fully merged: ``extends`` still
    names the base for reference but its content is already folded in.

    Attributes:
        name: Platform name.
        extends: Base platform name, if any.
        elements: Element contracts keyed by element type.
        extractors: Extractor specs keyed by kind (e.g., "styles").
        component_mappings: Component mappings keyed by element type.
        output_formats: Output format settings keyed by format name.
        default_output_format: Preferred output format.
        default_element: Tag used by the generic fallback.

    Example:
        >>> config = PlatformConfig.from_document({"name": "html"})
        >>> config.default_element
        'div'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Platform name")
    extends: str | None = Field(default=None, description="Base platform")
    description: str = Field(default="", description="Human-readable summary")
    elements: dict[str, ElementContract] = Field(
        default_factory=dict,
        description="Element contracts",
    )
    extractors: dict[str, tuple[ExtractorSpec, ...]] = Field(
        default_factory=dict,
        description="Extractors by kind",
    )
    component_mappings: dict[str, ComponentMapping] = Field(
        default_factory=dict,
        description="Component mappings",
    )
    output_formats: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Output format settings",
    )
    default_output_format: str | None = Field(default=None, description="Default format")
    default_element: str = Field(
        default=DEFAULT_ELEMENT_TAG,
        min_length=1,
        description="Fallback tag",
    )

    @field_validator("extractors", mode="before")
    @classmethod
    def normalize_extractors(cls, v: Any) -> Any:
        """Accept a single extractor or a list of extractors per kind."""
        if not isinstance(v, dict):
            return v
        normalized: dict[str, Any] = {}
        for kind, specs in v.items():
            items = specs if isinstance(specs, list | tuple) else [specs]
            normalized[kind] = tuple(parse_extractor(item) for item in items)
        return normalized

    @classmethod
    def from_document(cls, raw: dict[str, Any], *, source: str | None = None) -> PlatformConfig:
        """Validate a raw (already merged) platform document.

        Args:
            raw: Parsed document.
            source: File path or label used in error messages.

        Returns:
            Validated PlatformConfig.

        Raises:
            ConfigurationError: If validation fails.
        """
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            field_path = ".".join(str(p) for p in first["loc"])
            raise ConfigurationError(
                f"Invalid platform document: {first['msg']}",
                file_path=source,
                field_path=field_path or None,
                internal_details=str(e),
            ) from e


def load_platform_document(path: Path) -> dict[str, Any]:
    """Read a platform YAML document without validating it.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed mapping (empty for an empty file).

    Raises:
        ConfigurationError: If the file is unreadable, not YAML, or not a mapping.
    """
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            "Unable to read platform document",
            file_path=str(path),
            internal_details=str(e),
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Platform document must be a mapping",
            file_path=str(path),
        )
    return data
