"""
Tests for style tokens and the style table
"""

import pytest

from reportpdf.errors import UnknownStyle
from reportpdf.styles import StyleAttributes, StyleTable, default_style_table, parse_color


class TestParseColor:
    def test_long_and_short_codes(self):
        assert parse_color("#ff0000") == pytest.approx((1.0, 0.0, 0.0))
        assert parse_color("#f00") == pytest.approx((1.0, 0.0, 0.0))

    def test_empty_means_no_color(self):
        assert parse_color(None) is None
        assert parse_color("") is None

    @pytest.mark.parametrize("value", ["red", "#12", "#gggggg", "ff0000"])
    def test_malformed_codes_raise(self, value):
        with pytest.raises(ValueError):
            parse_color(value)


class TestStyleTable:
    def test_default_table_has_builtin_styles(self):
        table = default_style_table()
        for name in ("text", "header", "label", "footnote", "footnotenum", "pagenum", "genby"):
            assert name in table
        assert table.resolve("genby").italic is True

    def test_resolve_unknown_style(self):
        table = default_style_table()
        with pytest.raises(UnknownStyle) as excinfo:
            table.resolve("missing")
        assert excinfo.value.style_id == "missing"
        assert isinstance(excinfo.value, LookupError)

    def test_register_spec_maps_flags_to_font(self):
        table = StyleTable()
        style = table.register_spec("title", "helvetica", 18, "BI", "#000080")
        assert style.font_name == "Helvetica-BoldOblique"
        assert style.is_standard_font
        assert style.size == 18
        assert table.resolve("title") is style

    def test_register_spec_underline_and_background(self):
        table = StyleTable()
        style = table.register_spec("link", "times", 9, "u", background="#ffffff")
        assert style.underline is True
        assert style.font_name == "Times-Roman"
        assert style.background == pytest.approx((1.0, 1.0, 1.0))

    def test_unknown_font_family_rejected(self):
        table = StyleTable()
        with pytest.raises(ValueError):
            table.register_spec("odd", "no-such-font")
        assert "odd" not in table

    def test_bad_flags_rejected(self):
        with pytest.raises(ValueError):
            StyleTable().register_spec("odd", style="bx")

    def test_names_sorted(self):
        table = StyleTable()
        table.register(StyleAttributes("b"))
        table.register(StyleAttributes("a"))
        assert table.names() == ["a", "b"]
        assert len(table) == 2


class TestStyleAttributes:
    def test_line_height(self):
        assert StyleAttributes("x", size=10).line_height == pytest.approx(12.0)

    def test_scaled_keeps_everything_but_size(self):
        style = StyleAttributes("x", size=10, bold=True, color=(1.0, 0.0, 0.0))
        smaller = style.scaled(0.5)
        assert smaller.size == 5
        assert smaller.bold and smaller.color == style.color
        assert style.size == 10
