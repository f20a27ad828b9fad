"""
Pydantic models for report elements.

These models describe every placeable unit of report content and the JSON
payload accepted by the rendering service. Elements are immutable once
built; the ``with_*`` helpers return modified copies.

License: MIT
"""

from typing import Annotated, Dict, List as ListType, Literal, Optional, Tuple, Union
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reportpdf.styles import font_face_name, parse_color

Align = Literal["left", "center", "right", "justify"]
LineAdvance = Literal["same_line", "next_line", "below"]

_BORDER_SIDES = "LTRB"


def _check_color(value: Optional[str]) -> Optional[str]:
    parse_color(value)
    return value or None


class ElementBase(BaseModel):
    """Common configuration for all elements."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Text(ElementBase):
    """Run of literal text in a named style."""
    type: Literal["text"] = "text"
    style: str = Field(default="text", description="Style identifier")
    color: Optional[str] = Field(default=None, description="HTML color overriding the style color")
    content: str = Field(default="", description="Literal text")

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return _check_color(v)


class Footnote(ElementBase):
    """Footnote referenced at its position in the body stream."""
    type: Literal["footnote"] = "footnote"
    style: str = Field(default="footnote", description="Style identifier for the footnote text")
    content: str = Field(..., description="Footnote text")


class Cell(ElementBase):
    """Rectangular cell with optional border, background and text."""
    type: Literal["cell"] = "cell"
    width: float = Field(default=0, ge=0, description="Width; 0 extends to the margin")
    height: float = Field(default=0, ge=0, description="Minimum height")
    border: str = Field(default="", description="Drawn sides, any of L, T, R, B")
    align: Optional[Align] = Field(default=None, description="Text alignment; None follows the writing direction")
    background: Optional[str] = Field(default=None, description="Background HTML color")
    style: str = Field(default="text", description="Style identifier")
    advance: LineAdvance = Field(default="same_line", description="Cursor movement after placement")
    top: Optional[float] = Field(default=None, description="Absolute Y position; None uses the cursor")
    left: Optional[float] = Field(default=None, description="Absolute X position; None uses the cursor")
    fill: bool = Field(default=False, description="Paint the background")
    stretch: int = Field(default=0, ge=0, le=4, description="Text stretch mode")
    border_color: Optional[str] = Field(default=None, description="Border HTML color")
    text_color: Optional[str] = Field(default=None, description="Text HTML color")
    reset_height: bool = Field(default=False, description="Ignore taller siblings on the current line")
    text: str = Field(default="", description="Cell text")
    url: Optional[str] = Field(default=None, description="Link target")

    @field_validator("background", "border_color", "text_color")
    @classmethod
    def check_colors(cls, v):
        return _check_color(v)

    @field_validator("border", mode="before")
    @classmethod
    def normalize_border(cls, v):
        """Accept 0/1/True/False as well as side letters."""
        if v is True or v == 1 or v == "1":
            return _BORDER_SIDES
        if v is False or v is None or v == 0 or v == "0":
            return ""
        if not isinstance(v, str):
            raise ValueError(f"Invalid border specification: {v!r}")
        sides = v.upper()
        if set(sides) - set(_BORDER_SIDES):
            raise ValueError(f"Border must only use the sides {_BORDER_SIDES}: {v!r}")
        return "".join(side for side in _BORDER_SIDES if side in sides)

    def with_text(self, text: str) -> "Cell":
        return self.model_copy(update={"text": self.text + text})

    def with_url(self, url: str) -> "Cell":
        return self.model_copy(update={"url": url})


Inline = Annotated[Union[Text, Footnote], Field(discriminator="type")]


class TextBox(ElementBase):
    """Box whose inline content wraps to its width and may span pages."""
    type: Literal["textbox"] = "textbox"
    width: float = Field(default=0, ge=0, description="Width; 0 extends to the margin")
    height: float = Field(default=0, ge=0, description="Minimum height")
    border: bool = Field(default=False, description="Draw a border")
    background: Optional[str] = Field(default=None, description="Background HTML color")
    newline: bool = Field(default=False, description="Move to the next line afterwards")
    left: Optional[float] = Field(default=None, description="Absolute X position")
    top: Optional[float] = Field(default=None, description="Absolute Y position")
    page_check: bool = Field(default=True, description="Break pages instead of overflowing")
    style: str = Field(default="text", description="Style identifier")
    fill: bool = Field(default=False, description="Paint the background")
    padding: bool = Field(default=True, description="Inset the content")
    reset_height: bool = Field(default=False, description="Ignore taller siblings on the current line")
    elements: Tuple[Inline, ...] = Field(default=(), description="Inline content")

    @field_validator("background")
    @classmethod
    def check_background(cls, v):
        return _check_color(v)

    def with_elements(self, *elements: Union[Text, Footnote]) -> "TextBox":
        return self.model_copy(update={"elements": self.elements + tuple(elements)})


class Image(ElementBase):
    """Image drawn from an external source."""
    type: Literal["image"] = "image"
    source: str = Field(..., min_length=1, description="Image path")
    x: Optional[float] = Field(default=None, description="Absolute X position")
    y: Optional[float] = Field(default=None, description="Absolute Y position")
    width: float = Field(default=0, ge=0, description="Width; 0 derives it from the aspect ratio")
    height: float = Field(default=0, ge=0, description="Height; 0 derives it from the aspect ratio")
    align: Optional[Literal["left", "center", "right"]] = Field(
        default=None, description="Horizontal alignment; None uses x"
    )
    advance: LineAdvance = Field(default="next_line", description="Cursor movement after placement")


class Line(ElementBase):
    """Straight rule. Missing coordinates come from the cursor and margins."""
    type: Literal["line"] = "line"
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None


# Tags rendered by ReportLab's paragraph markup, with their markup names
HTML_TAGS: Dict[str, str] = {
    "b": "b",
    "strong": "b",
    "i": "i",
    "em": "i",
    "u": "u",
    "strike": "strike",
    "s": "strike",
    "sup": "super",
    "sub": "sub",
    "font": "font",
    "a": "a",
}
HTML_ATTRIBUTES = {"font": ("face", "color", "size"), "a": ("href",)}
# Tags that only group their children
HTML_CONTAINERS = {"p", "div", "span", "html", "body"}


class HtmlFragment(ElementBase):
    """Small HTML fragment rendered as a wrapped paragraph."""
    type: Literal["html"] = "html"
    tag: str = Field(..., pattern=r"^[A-Za-z][A-Za-z0-9]*$", description="Tag name")
    attrs: Dict[str, str] = Field(default_factory=dict, description="Tag attributes")
    children: Tuple[Union[str, "HtmlFragment"], ...] = Field(default=(), description="Text and nested tags")
    style: str = Field(default="text", description="Base style identifier")

    @field_validator("attrs")
    @classmethod
    def check_attrs(cls, v):
        if "color" in v and parse_color(v["color"]) is None:
            raise ValueError("Font color must not be empty")
        if "face" in v:
            font_face_name(v["face"])
        if "size" in v:
            try:
                size = float(v["size"])
            except ValueError:
                raise ValueError(f"Invalid font size: {v['size']!r}") from None
            if size <= 0:
                raise ValueError(f"Font size must be positive: {v['size']!r}")
        return v

    def with_children(self, *children: Union[str, "HtmlFragment"]) -> "HtmlFragment":
        return self.model_copy(update={"children": self.children + tuple(children)})

    def to_markup(self) -> str:
        """Convert the fragment into ReportLab paragraph markup."""
        tag = self.tag.lower()
        if tag == "br":
            return "<br/>"
        inner = "".join(
            escape(child) if isinstance(child, str) else child.to_markup() for child in self.children
        )
        if tag not in HTML_TAGS:
            return inner
        name = HTML_TAGS[tag]
        attrs = "".join(
            f" {key}={quoteattr(value)}"
            for key, value in sorted(self.attrs.items())
            if key in HTML_ATTRIBUTES.get(tag, ())
        )
        return f"<{name}{attrs}>{inner}</{name}>"


class PageHeader(ElementBase):
    """Mini header that is drawn in place and repeated on every following page."""
    type: Literal["pageheader"] = "pageheader"
    elements: Tuple["Element", ...] = Field(default=(), description="Header content")

    @field_validator("elements")
    @classmethod
    def no_nested_page_headers(cls, v):
        if any(isinstance(element, PageHeader) for element in v):
            raise ValueError("A page header cannot contain another page header")
        return v

    def with_elements(self, *elements: "Element") -> "PageHeader":
        return self.model_copy(update={"elements": self.elements + tuple(elements)})


# Union type for all element types
Element = Annotated[
    Union[Cell, TextBox, Text, Footnote, PageHeader, Image, Line, HtmlFragment],
    Field(discriminator="type"),
]


class StyleSpec(BaseModel):
    """Named style as declared by a report template."""
    name: str = Field(..., min_length=1)
    font: str = Field(default="helvetica", description="Font family")
    size: float = Field(default=10, gt=0, description="Font size in points")
    style: str = Field(default="", pattern=r"^[biuBIU]*$", description="Flags: b, i, u")
    color: Optional[str] = Field(default="#000000")
    background: Optional[str] = None


class Meta(BaseModel):
    """Document metadata and page setup."""
    title: str = Field(default="", description="Document title")
    author: str = Field(default="", description="Document author")
    subject: str = Field(default="", description="Document subject")
    keywords: str = Field(default="", description="Document keywords")
    page_size: str = Field(default="A4", description="Paper size name; unknown names fall back to A4")
    orientation: Literal["portrait", "landscape"] = "portrait"
    unit: Literal["pt", "mm", "cm", "in"] = "pt"
    margin_top: Optional[float] = Field(default=None, ge=0)
    margin_bottom: Optional[float] = Field(default=None, ge=0)
    margin_left: Optional[float] = Field(default=None, ge=0)
    margin_right: Optional[float] = Field(default=None, ge=0)
    header_margin: Optional[float] = Field(default=None, ge=0, description="Header band offset from the top")
    footer_margin: Optional[float] = Field(default=None, ge=0, description="Footer band offset from the bottom")
    rtl: bool = Field(default=False, description="Right-to-left writing direction")
    show_generated_by: bool = Field(default=False, description="Add the generated-by footer notice")
    compress: Optional[bool] = Field(default=None, description="Compress content streams")


class ReportRequest(BaseModel):
    """Complete report payload: metadata, styles and the three regions."""
    meta: Meta = Field(default_factory=Meta)
    styles: ListType[StyleSpec] = Field(default_factory=list)
    header: ListType[Element] = Field(default_factory=list)
    body: ListType[Element] = Field(default_factory=list)
    footer: ListType[Element] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "meta": {"title": "Family report", "page_size": "A4", "margin_top": 20, "margin_bottom": 20},
                "styles": [{"name": "title", "font": "helvetica", "size": 18, "style": "b"}],
                "header": [{"type": "cell", "height": 20, "style": "title", "text": "Family report",
                            "advance": "next_line"}],
                "body": [
                    {"type": "textbox", "width": 0, "newline": True, "elements": [
                        {"type": "text", "content": "Born in 1850"},
                        {"type": "footnote", "content": "Parish register, p. 12"},
                    ]}
                ],
                "footer": [{"type": "cell", "style": "pagenum", "align": "center", "text": "{{PAGE}} / {{PAGES}}"}],
            }
        }
    )


# Update forward references
HtmlFragment.model_rebuild()
PageHeader.model_rebuild()
