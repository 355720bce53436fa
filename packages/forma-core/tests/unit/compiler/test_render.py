"""Unit tests for HTML serialization."""

from __future__ import annotations

from forma_core.compiler.render import render_attrs, to_html, to_html_string, to_markup
from forma_core.schemas.element import Tag


class TestRenderAttrs:
    """Tests for attribute serialization."""

    def test_values_escaped(self) -> None:
        assert render_attrs({"title": 'say "hi" & go'}) == ' title="say &quot;hi&quot; &amp; go"'

    def test_boolean_attributes(self) -> None:
        assert render_attrs({"disabled": True, "hidden": False, "x": None}) == " disabled"

    def test_structured_values_as_json(self) -> None:
        assert render_attrs({"hx-vals": {"id": 1}}) == ' hx-vals="{&quot;id&quot;:1}"'

    def test_numbers(self) -> None:
        assert render_attrs({"tabindex": 0}) == ' tabindex="0"'


class TestToHtml:
    """Tests for to_html and to_html_string."""

    def test_text_escaped(self) -> None:
        assert to_html("<b>") == "&lt;b&gt;"

    def test_nested(self) -> None:
        tag = Tag(
            tag="div",
            attrs={"class": "card"},
            children=(Tag(tag="h2", children=("Title",)), "body"),
        )
        assert to_html(tag) == '<div class="card"><h2>Title</h2>body</div>'

    def test_void_element(self) -> None:
        assert to_html(Tag(tag="img", attrs={"src": "/a.png"})) == '<img src="/a.png">'

    def test_empty_non_void_element_closed(self) -> None:
        assert to_html(Tag(tag="div")) == "<div></div>"

    def test_several_nodes(self) -> None:
        assert to_html_string([Tag(tag="br"), "x"]) == "<br>x"

    def test_to_markup(self) -> None:
        assert to_markup([Tag(tag="p", children=("a",))]) == [["p", {}, "a"]]
