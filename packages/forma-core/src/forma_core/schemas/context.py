"""Compilation context model for forma-core."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Platform stack used when a context declares none
DEFAULT_PLATFORM_STACK = ("html",)

# Context fields that participate in element cache keys
CACHE_RELEVANT_FIELDS = (
    "hierarchy_levels",
    "tokens",
    "platform_stack",
    "styling_stack",
    "project_name",
    "variables",
)


class CompileContext(BaseModel):
    """Everything the compiler needs besides the element itself.

    Attributes:
        platform_stack: Platform names, applied in this order.
        styling_stack: Styling system names (part of the cache key only).
        project_name: Project used for three-tier platform resolution.
        hierarchy_levels: Resolved inheritance levels supplied upstream.
        tokens: Resolved design tokens supplied upstream.
        variables: Values for ``{{path}}`` placeholders in content.
        output_format: Requested output format (e.g., "html-string").

    Example:
        >>> ctx = CompileContext(platform_stack=("html", "css", "htmx"))
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    platform_stack: tuple[str, ...] = Field(
        default=DEFAULT_PLATFORM_STACK,
        min_length=1,
        description="Ordered platform names",
    )
    styling_stack: tuple[str, ...] = Field(default_factory=tuple, description="Styling systems")
    project_name: str | None = Field(default=None, description="Project context")
    hierarchy_levels: dict[str, Any] = Field(
        default_factory=dict,
        description="Resolved hierarchy levels",
    )
    tokens: dict[str, Any] = Field(default_factory=dict, description="Resolved tokens")
    variables: dict[str, Any] = Field(default_factory=dict, description="Template variables")
    output_format: str | None = Field(default=None, description="Requested output format")

    def cache_subset(self) -> dict[str, Any]:
        """Return only the fields that affect compiled output identity."""
        return self.model_dump(mode="json", include=set(CACHE_RELEVANT_FIELDS))
