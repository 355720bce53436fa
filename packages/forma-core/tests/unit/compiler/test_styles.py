"""Unit tests for inline style merging."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from forma_core.compiler.styles import dedupe_style, merge_styles, parse_style, serialize_style

css_names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=12).filter(
    lambda s: s.strip("-") != ""
)
css_values = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789#.%", min_size=1, max_size=8)
style_maps = st.dictionaries(css_names, css_values, max_size=6)


class TestParseStyle:
    """Tests for parse_style."""

    def test_parses_declarations(self) -> None:
        assert parse_style("color: red; padding:1rem;") == {"color": "red", "padding": "1rem"}

    def test_empty_and_none(self) -> None:
        assert parse_style(None) == {}
        assert parse_style("") == {}

    def test_drops_incomplete_declarations(self) -> None:
        assert parse_style("color:; :red; margin") == {}

    def test_repeated_property_keeps_last_value(self) -> None:
        assert parse_style("color:red; margin:0; color:blue") == {"color": "blue", "margin": "0"}


class TestSerializeStyle:
    """Tests for serialize_style."""

    def test_format(self) -> None:
        assert serialize_style({"background": "#fff", "padding": "1rem"}) == (
            "background:#fff; padding:1rem"
        )


class TestMergeStyles:
    """Tests for merge_styles and dedupe_style."""

    def test_explicit_wins(self) -> None:
        assert merge_styles("color: blue", "color:red; margin:0") == "color:blue; margin:0"

    def test_explicit_only_properties_follow_extracted(self) -> None:
        assert merge_styles("border:0", "color:red") == "color:red; border:0"

    def test_either_side_empty(self) -> None:
        assert merge_styles(None, "color:red") == "color:red"
        assert merge_styles("color:red", None) == "color:red"
        assert merge_styles(None, None) == ""

    def test_dedupe(self) -> None:
        assert dedupe_style("color:red; color:blue") == "color:blue"

    @given(explicit=style_maps, extracted=style_maps)
    def test_explicit_value_kept_for_shared_properties(
        self,
        explicit: dict[str, str],
        extracted: dict[str, str],
    ) -> None:
        merged = parse_style(merge_styles(serialize_style(explicit), serialize_style(extracted)))
        for prop, value in explicit.items():
            assert merged[prop] == value
        for prop, value in extracted.items():
            if prop not in explicit:
                assert merged[prop] == value

    @given(explicit=style_maps, extracted=style_maps)
    def test_no_duplicate_declarations(
        self,
        explicit: dict[str, str],
        extracted: dict[str, str],
    ) -> None:
        merged = merge_styles(serialize_style(explicit), serialize_style(extracted))
        props = [part.split(":")[0] for part in merged.split("; ") if part]
        assert len(props) == len(set(props))
