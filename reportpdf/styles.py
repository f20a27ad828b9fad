"""
Style tokens and the named style table used during layout.

This module defines the design tokens (fonts, sizes, colors, spacing) and
the style resolver that maps a style identifier used by report elements to
concrete font and color attributes.

License: MIT
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from reportlab.lib import colors as rl_colors
from reportlab.lib.fonts import tt2ps
from reportlab.pdfbase import pdfmetrics

from reportpdf.errors import UnknownStyle

RGB = Tuple[float, float, float]

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# Leading as a multiple of the font size (reportlab's Paragraph default)
LINE_HEIGHT_FACTOR = 1.2

# Footnote markers are drawn this much smaller and raised
SUPERSCRIPT_SCALE = 0.6
SUPERSCRIPT_RISE = 0.35


@dataclass
class FontConfig:
    """Default font families."""
    body: str = "helvetica"
    heading: str = "helvetica"


@dataclass
class FontSizes:
    """Font sizes in points."""
    header: int = 16
    label: int = 10
    body: int = 10
    footnote: int = 8
    footnote_number: int = 6
    small: int = 8


@dataclass
class Colors:
    """Color palette in RGB tuples (0-1 range for ReportLab)."""

    brand_brown: RGB = (0.431, 0.388, 0.275)  # #6E6346
    text_primary: RGB = (0.169, 0.169, 0.169)  # #2B2B2B
    text_muted: RGB = (0.416, 0.416, 0.416)  # #6A6A6A
    white: RGB = (1.0, 1.0, 1.0)
    black: RGB = (0.0, 0.0, 0.0)


@dataclass
class Spacing:
    """Spacing values in points."""
    cell_padding: float = 2.0
    textbox_padding: float = 3.0
    footnote_gap: float = 4.0
    footnote_rule_width: float = 72.0


# Line widths in points
LINE_WIDTHS = {
    "thin": 0.5,
    "regular": 1.0,
    "thick": 2.0,
}


def parse_color(value: Optional[str]) -> Optional[RGB]:
    """
    Convert an HTML color code into an RGB tuple.

    Args:
        value: ``#RGB``/``#RRGGBB`` code, or empty/None for "no color"

    Returns:
        RGB tuple in the 0-1 range, or None

    Raises:
        ValueError: If the code is malformed
    """
    if value is None or value == "":
        return None
    if not _HEX_COLOR.match(value):
        raise ValueError(f"Invalid color code: {value!r}")
    if len(value) == 4:
        value = "#" + "".join(ch * 2 for ch in value[1:])
    return tuple(rl_colors.HexColor(value).rgb())


def font_face_name(face: str) -> str:
    """
    Resolve a font family (``times``) or font name (``Times-Bold``) to a ReportLab font name.

    Raises:
        ValueError: If the font is neither a known family nor registered
    """
    if face in pdfmetrics.standardFonts or face in pdfmetrics.getRegisteredFontNames():
        return face
    return tt2ps(face, 0, 0)


@dataclass(frozen=True)
class StyleAttributes:
    """Concrete rendering attributes for one named style."""

    name: str
    font_family: str = "helvetica"
    size: float = 10.0
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: RGB = (0.0, 0.0, 0.0)
    background: Optional[RGB] = None

    @property
    def font_name(self) -> str:
        """ReportLab font name for the family and weight flags."""
        try:
            return tt2ps(self.font_family, int(self.bold), int(self.italic))
        except ValueError:
            # Fonts registered without a family mapping are used as-is
            if self.font_family in pdfmetrics.getRegisteredFontNames():
                return self.font_family
            raise

    @property
    def is_standard_font(self) -> bool:
        """True for the 14 built-in Type1 fonts (cp1252 only)."""
        return self.font_name in pdfmetrics.standardFonts

    @property
    def line_height(self) -> float:
        return self.size * LINE_HEIGHT_FACTOR

    def scaled(self, factor: float) -> "StyleAttributes":
        """Return a copy with the font size multiplied by ``factor``."""
        return StyleAttributes(
            name=self.name,
            font_family=self.font_family,
            size=self.size * factor,
            bold=self.bold,
            italic=self.italic,
            underline=self.underline,
            color=self.color,
            background=self.background,
        )


@dataclass
class StyleTable:
    """
    Registry of named styles.

    Styles are registered during setup and only read afterwards, so one
    table can be shared by several documents rendering at the same time.
    """

    _styles: Dict[str, StyleAttributes] = field(default_factory=dict)

    def register(self, style: StyleAttributes) -> StyleAttributes:
        """Add or replace a style. The font family must be resolvable."""
        try:
            style.font_name
        except ValueError as exc:
            raise ValueError(f"Style {style.name!r} uses an unknown font family {style.font_family!r}") from exc
        self._styles[style.name] = style
        return style

    def register_spec(
        self,
        name: str,
        font: str = "helvetica",
        size: float = 10,
        style: str = "",
        color: Optional[str] = "#000000",
        background: Optional[str] = None,
    ) -> StyleAttributes:
        """
        Register a style from report-template style attributes.

        ``style`` is a flag string made of ``b`` (bold), ``i`` (italic)
        and ``u`` (underline).
        """
        flags = style.lower()
        unknown = set(flags) - set("biu")
        if unknown:
            raise ValueError(f"Unknown style flags {''.join(sorted(unknown))!r} for style {name!r}")
        if size <= 0:
            raise ValueError(f"Style {name!r} must have a positive size")
        return self.register(
            StyleAttributes(
                name=name,
                font_family=font,
                size=float(size),
                bold="b" in flags,
                italic="i" in flags,
                underline="u" in flags,
                color=parse_color(color) or colors.black,
                background=parse_color(background),
            )
        )

    def resolve(self, style_id: str) -> StyleAttributes:
        """Return the attributes for ``style_id`` or raise UnknownStyle."""
        try:
            return self._styles[style_id]
        except KeyError:
            raise UnknownStyle(style_id) from None

    def names(self) -> List[str]:
        return sorted(self._styles)

    def __contains__(self, style_id: object) -> bool:
        return style_id in self._styles

    def __len__(self) -> int:
        return len(self._styles)


def default_style_table(extra: Iterable[StyleAttributes] = ()) -> StyleTable:
    """Build the built-in style table, optionally extended with ``extra`` styles."""
    table = StyleTable()
    table.register(StyleAttributes("text", fonts.body, font_sizes.body, color=colors.text_primary))
    table.register(StyleAttributes("header", fonts.heading, font_sizes.header, bold=True, color=colors.black))
    table.register(StyleAttributes("label", fonts.body, font_sizes.label, bold=True, color=colors.text_primary))
    table.register(StyleAttributes("footnote", fonts.body, font_sizes.footnote, color=colors.text_primary))
    table.register(StyleAttributes("footnotenum", fonts.body, font_sizes.footnote_number, color=colors.brand_brown))
    table.register(StyleAttributes("pagenum", fonts.body, font_sizes.small, color=colors.text_muted))
    table.register(StyleAttributes("genby", fonts.body, font_sizes.small, italic=True, color=colors.text_muted))
    for style in extra:
        table.register(style)
    return table


# Global style instances (singletons)
fonts = FontConfig()
font_sizes = FontSizes()
colors = Colors()
spacing = Spacing()
