"""Unit tests for CompileContext."""

from __future__ import annotations

from pydantic import ValidationError
import pytest

from forma_core.schemas.context import CACHE_RELEVANT_FIELDS, CompileContext


class TestCompileContext:
    """Tests for CompileContext defaults and the cache subset."""

    def test_default_stack_is_html(self) -> None:
        assert CompileContext().platform_stack == ("html",)

    def test_empty_stack_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CompileContext(platform_stack=())

    def test_cache_subset_has_only_relevant_fields(self) -> None:
        context = CompileContext(
            platform_stack=("html", "htmx"),
            project_name="dashboard",
            tokens={"colors": {"primary": "#00f"}},
            variables={"user": "Ada"},
            output_format="hiccup",
        )
        subset = context.cache_subset()
        assert set(subset) == set(CACHE_RELEVANT_FIELDS)
        assert subset["platform_stack"] == ["html", "htmx"]
        assert subset["tokens"] == {"colors": {"primary": "#00f"}}

    def test_cache_subset_ignores_variables(self) -> None:
        a = CompileContext(variables={"user": "Ada"})
        b = CompileContext(variables={"user": "Grace"})
        assert a.cache_subset() == b.cache_subset()
