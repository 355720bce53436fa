"""Unit tests for the platform stack compiler.

This module tests:
- Single-platform compilation
- Folding an element through a multi-platform stack
- The generic fallback for unknown element types
- Output format selection and rendering
"""

from __future__ import annotations

import logging

import pytest

from forma_core.compiler.compiler import (
    UNKNOWN_ELEMENT_CLASS,
    Compiler,
    RenderedFile,
    get_output_format,
)
from forma_core.compiler.platform_resolver import PlatformResolver
from forma_core.schemas.context import CompileContext
from forma_core.schemas.element import Element
from forma_core.schemas.platform_config import PlatformConfig


@pytest.fixture
def compiler(resolver: PlatformResolver) -> Compiler:
    return Compiler(resolver)


HTML = CompileContext(platform_stack=("html",))
HTML_HTMX = CompileContext(platform_stack=("html", "htmx"))


class TestCompile:
    """Tests for Compiler.compile."""

    def test_button_with_text(self, compiler: Compiler) -> None:
        tag = compiler.compile(Element(type="button", properties={"text": "Click"}), HTML)
        assert tag.to_markup() == ["button", {}, "Click"]

    def test_default_context_uses_html(self, compiler: Compiler) -> None:
        tag = compiler.compile(Element(type="text", properties={"text": "hi"}))
        assert tag.to_markup() == ["p", {}, "hi"]

    def test_styles_and_attributes_extracted(self, compiler: Compiler) -> None:
        tag = compiler.compile(
            Element(
                type="container",
                properties={"id": "main", "padding": "1rem", "background": "#fff"},
            ),
            HTML,
        )
        assert tag.attrs == {"style": "background:#fff; padding:1rem", "id": "main"}

    def test_nested_children(self, compiler: Compiler) -> None:
        element = Element.from_markup(
            [
                "container",
                {},
                ["heading", {"level": 1, "text": "Title"}],
                ["link", {"url": "/docs", "text": "Docs"}],
            ]
        )
        tag = compiler.compile(element, HTML)
        assert tag.to_markup() == [
            "div",
            {},
            ["h1", {}, "Title"],
            ["a", {"href": "/docs"}, "Docs"],
        ]

    def test_later_platform_refines(self, compiler: Compiler) -> None:
        tag = compiler.compile(
            Element(type="button", properties={"text": "Save", "on_click": "/save"}),
            HTML_HTMX,
        )
        assert tag.to_markup() == [
            "button",
            {"hx-post": "/save", "hx-swap": "outerHTML"},
            "Save",
        ]

    def test_later_platform_never_overwrites(self, compiler: Compiler) -> None:
        tag = compiler.compile(
            Element(
                type="button",
                properties={"text": "Go", "hx-post": "/explicit", "on_click": "/save"},
            ),
            HTML_HTMX,
        )
        assert tag.attrs["hx-post"] == "/explicit"

    def test_stack_extractors_visible_to_first_platform(self, compiler: Compiler) -> None:
        tag = compiler.compile(
            Element(type="container", properties={"hx-get": "/items"}),
            HTML_HTMX,
        )
        assert tag.attrs == {"hx-get": "/items"}

    def test_compile_many(self, compiler: Compiler) -> None:
        tags = compiler.compile_many(
            [Element(type="button", properties={"text": "a"}), Element(type="text")],
            HTML,
        )
        assert [t.tag for t in tags] == ["button", "p"]


class TestFallback:
    """Tests for elements no platform defines."""

    def test_unknown_element_marked(
        self,
        compiler: Compiler,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            tag = compiler.compile(Element(type="widget", properties={"id": "w"}), HTML)
        assert tag.tag == "div"
        assert tag.attrs == {"id": "w", "class": UNKNOWN_ELEMENT_CLASS, "data-type": "widget"}
        assert "widget" in caplog.text

    def test_unknown_element_with_children_compiles_them(self, compiler: Compiler) -> None:
        element = Element.from_markup(["wrapper", {"color": "red"}, ["text", {"text": "x"}]])
        tag = compiler.compile(element, HTML)
        assert tag.to_markup() == ["div", {"style": "color:red"}, ["p", {}, "x"]]

    def test_fallback_uses_first_platform_default_element(self) -> None:
        resolver = PlatformResolver(include_builtin=False)
        resolver.register({"name": "svg", "default_element": "g"})
        tag = Compiler(resolver).compile(
            Element(type="shape"), CompileContext(platform_stack=("svg",))
        )
        assert tag.tag == "g"


class TestOutputFormat:
    """Tests for output format selection."""

    def test_context_wins(self) -> None:
        config = PlatformConfig(name="html", default_output_format="html-string")
        context = CompileContext(output_format="hiccup")
        assert get_output_format(context, [config]) == "hiccup"

    def test_platform_default(self) -> None:
        config = PlatformConfig(name="html", default_output_format="hiccup")
        assert get_output_format(CompileContext(), [config]) == "hiccup"

    def test_first_declared_format(self) -> None:
        config = PlatformConfig(name="html", output_formats={"html-file": {}, "hiccup": {}})
        assert get_output_format(CompileContext(), [config]) == "html-file"

    def test_fallback_html_string(self) -> None:
        assert get_output_format(CompileContext(), [PlatformConfig(name="x")]) == "html-string"

    def test_unsupported(self) -> None:
        with pytest.raises(ValueError, match="Unsupported output format"):
            get_output_format(CompileContext(output_format="pdf"), [])


class TestRender:
    """Tests for Compiler.render."""

    def test_html_string(self, compiler: Compiler) -> None:
        html = compiler.render(
            [
                Element(type="button", properties={"text": "a < b"}),
                Element(type="text", properties={"text": "x"}),
            ],
            HTML,
        )
        assert html == "<button>a &lt; b</button><p>x</p>"

    def test_hiccup(self, compiler: Compiler) -> None:
        markup = compiler.render(
            Element(type="button", properties={"text": "Click"}),
            CompileContext(output_format="hiccup"),
        )
        assert markup == [["button", {}, "Click"]]

    def test_html_file(self) -> None:
        resolver = PlatformResolver(include_builtin=False)
        resolver.register(
            {
                "name": "html",
                "elements": {"text": {"element": "p", "content_source": "text"}},
                "output_formats": {"html-file": {"output_path": "out/page.html"}},
            }
        )
        result = Compiler(resolver).render(Element(type="text", properties={"text": "hi"}))
        assert result == RenderedFile(output_path="out/page.html", content="<p>hi</p>")
