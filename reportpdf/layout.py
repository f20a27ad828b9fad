"""
Layout engine placing report elements onto pages.

Maintains the cursor position, handles pagination and turns every element
into a flat list of drawing primitives per page. Coordinates are measured
from the top-left corner of the page in document units; the serializer
converts them to PDF space.

License: MIT
"""

import io
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from reportlab.lib.colors import Color
from reportlab.lib.enums import TA_LEFT, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.platypus import Paragraph

from reportpdf.errors import InvalidElementSpec, SerializationError
from reportpdf.footnotes import FootnoteCollector, FootnoteEntry
from reportpdf.geometry import PageGeometry
from reportpdf.images import FileImageLoader, ImageLoader
from reportpdf.models import Cell, Element, Footnote, HtmlFragment, Image, Line, PageHeader, Text, TextBox
from reportpdf.styles import (
    LINE_WIDTHS,
    RGB,
    SUPERSCRIPT_RISE,
    SUPERSCRIPT_SCALE,
    StyleAttributes,
    StyleTable,
    colors,
    parse_color,
    spacing,
)

logger = logging.getLogger(__name__)

EPSILON = 1e-6
# Baseline position below the line top, as a multiple of the font size
BASELINE_FACTOR = 0.9
FOOTNOTE_MARKER_STYLE = "footnotenum"

_TOKENS = re.compile(r"(\n|[ \t]+)")


class LayoutState(str, Enum):
    IDLE = "idle"
    PLACING = "placing"
    PAGE_BREAK_PENDING = "page_break_pending"
    DONE = "done"


@dataclass
class LayoutCursor:
    """Current write position."""
    x: float
    y: float
    page_index: int = 0
    row_bottom: float = 0.0

    def remaining(self, limit: float) -> float:
        """Vertical space left above ``limit``."""
        return limit - self.y


@dataclass(frozen=True)
class TextRun:
    """Contiguous text drawn with one style."""
    text: str
    style: StyleAttributes
    color: RGB
    rise: float = 0.0
    footnote: Optional[Footnote] = None


@dataclass
class TextLine:
    """One wrapped line of runs."""
    runs: List[TextRun] = field(default_factory=list)
    width: float = 0.0
    height: float = 0.0
    baseline: float = 0.0
    last: bool = False


@dataclass
class PlacedItem:
    """Drawing primitive positioned on a page."""
    kind: str
    x: float
    y: float
    width: float
    height: float
    payload: Dict[str, Any] = field(default_factory=dict)
    element: Optional[Any] = None

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass
class Page:
    """Laid-out page."""
    index: int
    items: List[PlacedItem] = field(default_factory=list)
    body_top: float = 0.0
    footnotes: List[FootnoteEntry] = field(default_factory=list)


def build_paragraph(markup: str, style: StyleAttributes, scale: float, rtl: bool = False) -> Paragraph:
    """Create a ReportLab paragraph sized for a canvas scaled by ``scale``."""
    paragraph_style = ParagraphStyle(
        name=style.name,
        fontName=style.font_name,
        fontSize=style.size / scale,
        leading=style.line_height / scale,
        textColor=Color(*style.color),
        alignment=TA_RIGHT if rtl else TA_LEFT,
    )
    return Paragraph(markup, paragraph_style)


class LayoutEngine:
    """
    Places elements sequentially and breaks pages when content overflows.

    Usage: ``set_header`` once, ``start``, ``place`` every body element,
    ``finish``, then ``apply_footer``.
    """

    def __init__(
        self,
        geometry: PageGeometry,
        styles: StyleTable,
        image_loader: Optional[ImageLoader] = None,
        auto_page_break: bool = True,
        footnote_placement: str = "page",
    ):
        """
        Initialize the engine.

        Args:
            geometry: Page geometry
            styles: Style table used to resolve element styles
            image_loader: Reader for image sources (defaults to the filesystem)
            auto_page_break: Start new pages when content overflows
            footnote_placement: ``page`` (bottom of each page) or ``document`` (after the body)
        """
        if footnote_placement not in ("page", "document"):
            raise ValueError(f"Unknown footnote placement: {footnote_placement!r}")
        self.geometry = geometry
        self.styles = styles
        self.image_loader = image_loader or FileImageLoader()
        self.auto_page_break = auto_page_break
        self.footnote_placement = footnote_placement
        self.footnotes = FootnoteCollector()
        self.pages: List[Page] = []
        self.state = LayoutState.IDLE
        self.header_height = 0.0

        self._k = geometry.scale
        self._header_items: List[PlacedItem] = []
        self._page_header: Optional[Tuple[List[PlacedItem], float]] = None
        self._footnote_reserve = 0.0
        self._band = False
        self._items: List[PlacedItem] = []
        self.cursor = LayoutCursor(self._line_start, geometry.margin_top, row_bottom=geometry.margin_top)

    # ------------------------------------------------------------------
    # Geometry helpers

    def _px(self, points: float) -> float:
        """Convert points to document units."""
        return points / self._k

    @property
    def _left(self) -> float:
        return self.geometry.margin_left

    @property
    def _right(self) -> float:
        return self.geometry.page_width - self.geometry.margin_right

    @property
    def _line_start(self) -> float:
        return self._right if self.geometry.rtl else self._left

    @property
    def _header_bottom(self) -> float:
        return max(self.geometry.margin_top, self.geometry.header_top + self.header_height)

    @property
    def _page_bottom(self) -> float:
        return self.geometry.page_height - self.geometry.margin_bottom

    def _bottom_limit(self) -> float:
        if self._band:
            return float("inf")
        return self._page_bottom - self._footnote_reserve

    def _fresh_page_capacity(self) -> float:
        top = self._header_bottom + (self._page_header[1] if self._page_header else 0.0)
        return self._page_bottom - top

    def _mirror_x(self, x: float, width: float = 0.0) -> float:
        return self.geometry.page_width - x - width if self.geometry.rtl else x

    def _available_width(self) -> float:
        if self.geometry.rtl:
            return max(self.cursor.x - self._left, 0.0)
        return max(self._right - self.cursor.x, 0.0)

    def _resolve_width(self, width: float, left: Optional[float]) -> float:
        """Width 0 extends the element to the margin on the advancing side."""
        if width > 0:
            return width
        if left is None:
            return self._available_width()
        if self.geometry.rtl:
            return max(self.geometry.page_width - left - self._left, 0.0)
        return max(self._right - left, 0.0)

    def _box_x(self, width: float, left: Optional[float]) -> float:
        if left is not None:
            return self._mirror_x(left, width)
        return self.cursor.x - width if self.geometry.rtl else self.cursor.x

    def _effective_align(self, align: Optional[str]) -> str:
        if align is None:
            return "right" if self.geometry.rtl else "left"
        return align

    def _page_has_content(self) -> bool:
        top = self.pages[-1].body_top
        return self.cursor.y > top + EPSILON or self.cursor.row_bottom > top + EPSILON

    # ------------------------------------------------------------------
    # Page lifecycle

    def set_header(self, elements: Sequence[Element]) -> float:
        """Lay out the header region once; returns its height."""
        if self.pages:
            raise RuntimeError("The header must be laid out before the first page")
        items, bottom = self._layout_band(elements, self.geometry.header_top)
        self._header_items = items
        self.header_height = max(0.0, bottom - self.geometry.header_top)
        return self.header_height

    def start(self) -> Page:
        """Open the first page."""
        if self.pages:
            raise RuntimeError("Layout already started")
        page = self._open_page()
        self.state = LayoutState.IDLE
        return page

    def place(self, element: Element) -> None:
        """Place one body element."""
        if self.state == LayoutState.DONE:
            raise RuntimeError("Layout is already finished")
        if not self.pages:
            self.start()
        self.state = LayoutState.PLACING
        self._place(element)
        self.state = LayoutState.IDLE

    def finish(self) -> List[Page]:
        """Close the last page and return all pages."""
        if self.state == LayoutState.DONE:
            return self.pages
        if not self.pages:
            self.start()
        if self.footnote_placement == "document":
            entries = self.footnotes.drain_for_current_page()
            if entries:
                self._flow_footnote_list(entries)
        self._close_page()
        self.state = LayoutState.DONE
        logger.debug(f"Layout finished with {len(self.pages)} page(s)")
        return self.pages

    def apply_footer(self, elements: Sequence[Element]) -> None:
        """Lay out the footer region below the printable area of every page."""
        if not elements:
            return
        items, _ = self._layout_band(elements, self.geometry.footer_top)
        for page in self.pages:
            page.items.extend(items)

    def _open_page(self) -> Page:
        page = Page(index=len(self.pages))
        page.items.extend(self._header_items)
        top = self._header_bottom
        if self._page_header is not None:
            page_header_items, page_header_height = self._page_header
            page.items.extend(page_header_items)
            top += page_header_height
        page.body_top = top
        self.pages.append(page)
        self._items = page.items
        self._footnote_reserve = 0.0
        self.cursor = LayoutCursor(self._line_start, top, page.index, row_bottom=top)
        return page

    def _close_page(self) -> None:
        if self.footnote_placement != "page":
            return
        page = self.pages[-1]
        entries = self.footnotes.drain_for_current_page()
        page.footnotes = entries
        if not entries:
            return
        blocks = [self._footnote_lines(entry.ordinal, entry.style, entry.content) for entry in entries]
        gap = self._px(spacing.footnote_gap)
        y = self._page_bottom - gap - sum(line.height for lines in blocks for line in lines)
        rule_width = min(self._px(spacing.footnote_rule_width), self.geometry.printable_width)
        x1 = self._line_start
        x2 = x1 - rule_width if self.geometry.rtl else x1 + rule_width
        page.items.append(self._line_item(x1, y - gap / 2, x2, y - gap / 2, None))
        for entry, lines in zip(entries, blocks):
            for line in lines:
                page.items.append(self._text_item(line, self._left, y, self.geometry.printable_width, None, entry))
                y += line.height

    def _page_break(self) -> None:
        self.state = LayoutState.PAGE_BREAK_PENDING
        logger.debug(f"Page break after page {len(self.pages)} at y={self.cursor.y:.2f}")
        self._close_page()
        self._open_page()
        self.state = LayoutState.PLACING

    def _ensure_room(self, height: float) -> bool:
        """Break the page if ``height`` does not fit; returns True on a break."""
        if self._band or not self.auto_page_break:
            return False
        if self.cursor.y + height <= self._bottom_limit() + EPSILON:
            return False
        if not self._page_has_content():
            # Taller than a whole page: place it anyway
            return False
        self._page_break()
        return True

    def _layout_band(self, elements: Sequence[Element], top: float) -> Tuple[List[PlacedItem], float]:
        """Lay out elements without page breaks or footnote recording."""
        saved = (self.cursor, self._items, self._band)
        self.cursor = LayoutCursor(self._line_start, top, self.cursor.page_index, row_bottom=top)
        self._items = []
        self._band = True
        try:
            for element in elements:
                self._place(element)
            return self._items, max(self.cursor.y, self.cursor.row_bottom)
        finally:
            self.cursor, self._items, self._band = saved

    def _advance(self, x: float, y: float, width: float, height: float, mode: str, reset_height: bool) -> None:
        cursor = self.cursor
        bottom = y + height
        cursor.row_bottom = bottom if reset_height else max(cursor.row_bottom, bottom)
        rtl = self.geometry.rtl
        if mode == "same_line":
            cursor.x = x if rtl else x + width
            cursor.y = y
        elif mode == "next_line":
            cursor.x = self._line_start
            cursor.y = cursor.row_bottom
        else:
            cursor.x = x + width if rtl else x
            cursor.y = bottom
            cursor.row_bottom = bottom

    # ------------------------------------------------------------------
    # Text measurement

    def _run_width(self, run: TextRun) -> float:
        return self._px(pdfmetrics.stringWidth(run.text, run.style.font_name, run.style.size))

    def _wrap(
        self,
        runs: Sequence[TextRun],
        width: float,
        base: StyleAttributes,
        first_width: Optional[float] = None,
    ) -> List[TextLine]:
        """Wrap runs into lines no wider than ``width`` (``first_width`` for the first line)."""
        lines = [TextLine()]
        limit = first_width if first_width is not None else width

        for run in runs:
            for part in _TOKENS.split(run.text):
                if not part:
                    continue
                if part == "\n":
                    lines[-1].last = True
                    lines.append(TextLine())
                    limit = width
                    continue

                token = replace(run, text=part)
                token_width = self._run_width(token)
                is_space = part.isspace()
                current = lines[-1]

                overflows = current.width + token_width > limit + EPSILON
                # A partial first line too short for its first word starts below instead
                starts_below = not current.runs and len(lines) == 1 and limit < width and not is_space
                if overflows and (current.runs or starts_below):
                    lines.append(TextLine())
                    limit = width
                    current = lines[-1]
                    if is_space:
                        continue
                if is_space and not current.runs:
                    continue
                self._append_token(current, token, token_width)

        lines[-1].last = True
        for line in lines:
            while line.runs:
                last = line.runs[-1]
                stripped = last.text.rstrip(" \t")
                if stripped == last.text:
                    break
                line.width -= self._run_width(last)
                if stripped:
                    line.runs[-1] = replace(last, text=stripped)
                    line.width += self._run_width(line.runs[-1])
                    break
                line.runs.pop()
            sizes = [run.style for run in line.runs] or [base]
            line.height = max(self._px(style.line_height) for style in sizes)
            line.baseline = self._px(max(style.size for style in sizes)) * BASELINE_FACTOR
        return lines

    @staticmethod
    def _append_token(line: TextLine, token: TextRun, token_width: float) -> None:
        if line.runs:
            previous = line.runs[-1]
            if (
                previous.footnote is None
                and token.footnote is None
                and previous.style == token.style
                and previous.color == token.color
                and previous.rise == token.rise
            ):
                line.runs[-1] = replace(previous, text=previous.text + token.text)
                line.width += token_width
                return
        line.runs.append(token)
        line.width += token_width

    def _text_item(
        self,
        line: TextLine,
        x: float,
        y: float,
        width: float,
        align: Optional[str],
        element: Any,
        h_scale: float = 100.0,
        char_space: float = 0.0,
    ) -> PlacedItem:
        align = self._effective_align(align)
        free = width - line.width
        word_space = 0.0
        if align == "right":
            x += free
        elif align == "center":
            x += free / 2
        elif align == "justify" and not line.last and free > 0:
            spaces = sum(run.text.count(" ") for run in line.runs)
            if spaces:
                word_space = free / spaces
        return PlacedItem(
            "text",
            x,
            y,
            width if word_space else line.width,
            line.height,
            payload={
                "runs": list(line.runs),
                "baseline": y + line.baseline,
                "word_space": word_space,
                "h_scale": h_scale,
                "char_space": char_space,
            },
            element=element,
        )

    def _line_item(self, x1: float, y1: float, x2: float, y2: float, element: Any) -> PlacedItem:
        return PlacedItem(
            "line",
            min(x1, x2),
            min(y1, y2),
            abs(x2 - x1),
            abs(y2 - y1),
            payload={
                "x1": x1,
                "y1": y1,
                "x2": x2,
                "y2": y2,
                "stroke": colors.black,
                "line_width": self._px(LINE_WIDTHS["thin"]),
            },
            element=element,
        )

    def _box_item(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        border: str,
        background: Optional[RGB],
        border_color: Optional[RGB],
        element: Any,
    ) -> Optional[PlacedItem]:
        if not border and background is None:
            return None
        item = PlacedItem(
            "rect",
            x,
            y,
            width,
            height,
            payload={
                "fill": background,
                "border": border,
                "stroke": border_color or colors.black,
                "line_width": self._px(LINE_WIDTHS["thin"]),
            },
            element=element,
        )
        self._items.append(item)
        return item

    # ------------------------------------------------------------------
    # Footnotes

    def _marker_run(self, footnote: Footnote, ordinal: int) -> TextRun:
        note_style = self.styles.resolve(footnote.style)
        if FOOTNOTE_MARKER_STYLE in self.styles:
            marker_style = self.styles.resolve(FOOTNOTE_MARKER_STYLE)
        else:
            marker_style = note_style.scaled(SUPERSCRIPT_SCALE)
        return TextRun(
            str(ordinal),
            marker_style,
            marker_style.color,
            rise=self._px(note_style.size * SUPERSCRIPT_RISE),
            footnote=footnote,
        )

    def _inline_runs(self, elements: Sequence[Any]) -> List[TextRun]:
        """Turn Text and Footnote elements into runs, numbering new footnotes provisionally."""
        runs: List[TextRun] = []
        provisional: Dict[Tuple[str, str], int] = {}
        next_ordinal = self.footnotes.next_ordinal
        for element in elements:
            if isinstance(element, Text):
                style = self.styles.resolve(element.style)
                runs.append(TextRun(element.content, style, parse_color(element.color) or style.color))
            elif isinstance(element, Footnote):
                if self._band:
                    raise InvalidElementSpec(
                        "Footnotes can only be placed in the body, not in header, footer or page header content"
                    )
                key = (element.style, element.content)
                ordinal = self.footnotes.lookup(element) or provisional.get(key)
                if ordinal is None:
                    ordinal = provisional[key] = next_ordinal
                    next_ordinal += 1
                runs.append(self._marker_run(element, ordinal))
        return runs

    def _footnote_lines(self, ordinal: int, style_id: str, content: str) -> List[TextLine]:
        style = self.styles.resolve(style_id)
        run = TextRun(f"{ordinal}. {content}", style, style.color)
        return self._wrap([run], self.geometry.printable_width, base=style)

    def _new_footnote_height(self, lines: Sequence[TextLine]) -> float:
        """Extra reserve needed if the footnotes referenced in ``lines`` were recorded now."""
        if self._band or self.footnote_placement != "page":
            return 0.0
        seen = set()
        height = 0.0
        ordinal = self.footnotes.next_ordinal
        for line in lines:
            for run in line.runs:
                footnote = run.footnote
                if footnote is None or self.footnotes.lookup(footnote) is not None:
                    continue
                key = (footnote.style, footnote.content)
                if key in seen:
                    continue
                seen.add(key)
                height += sum(l.height for l in self._footnote_lines(ordinal, footnote.style, footnote.content))
                ordinal += 1
        if height and not self._footnote_reserve:
            height += self._px(spacing.footnote_gap)
        return height

    def _record_footnotes(self, line: TextLine) -> None:
        if self._band:
            return
        for run in line.runs:
            if run.footnote is None:
                continue
            before = self.footnotes.next_ordinal
            extra = self._new_footnote_height([TextLine(runs=[run])])
            ordinal = self.footnotes.record(run.footnote, self.cursor.page_index)
            if ordinal >= before and self.footnote_placement == "page":
                self._footnote_reserve += extra

    def _flow_footnote_list(self, entries: Sequence[FootnoteEntry]) -> None:
        """Render footnotes as a block after the body (document placement)."""
        if self.cursor.x != self._line_start:
            self._advance(self.cursor.x, self.cursor.y, 0.0, 0.0, "next_line", False)
        for entry in entries:
            for line in self._footnote_lines(entry.ordinal, entry.style, entry.content):
                self._ensure_room(line.height)
                self._items.append(self._text_item(line, self._left, self.cursor.y, self.geometry.printable_width, None, entry))
                self._advance(self._left, self.cursor.y, self.geometry.printable_width, line.height, "next_line", False)
            self.pages[-1].footnotes.append(entry)

    # ------------------------------------------------------------------
    # Element placement

    def _place(self, element: Element) -> None:
        """Place a single element based on its type."""
        if isinstance(element, Cell):
            self._place_cell(element)
        elif isinstance(element, TextBox):
            self._place_text_box(element)
        elif isinstance(element, (Text, Footnote)):
            self._flow(self._inline_runs([element]), element)
        elif isinstance(element, Image):
            self._place_image(element)
        elif isinstance(element, Line):
            self._place_line(element)
        elif isinstance(element, HtmlFragment):
            self._place_html(element)
        elif isinstance(element, PageHeader):
            self._place_page_header(element)
        else:
            raise TypeError(f"Cannot place {type(element).__name__}")

    def _place_cell(self, cell: Cell) -> None:
        style = self.styles.resolve(cell.style)
        width = self._resolve_width(cell.width, cell.left)
        pad = self._px(spacing.cell_padding)
        inner = max(width - 2 * pad, 0.0)
        runs = [TextRun(cell.text, style, parse_color(cell.text_color) or style.color)] if cell.text else []

        h_scale, char_space = 100.0, 0.0
        if not runs:
            lines: List[TextLine] = []
        elif cell.stretch:
            lines = self._wrap(runs, float("inf"), base=style)
            natural = max(line.width for line in lines)
            if natural > 0 and (cell.stretch in (2, 4) or natural > inner):
                if cell.stretch in (1, 2):
                    h_scale = 100.0 * inner / natural
                else:
                    chars = max(len(run.text) for line in lines for run in line.runs)
                    char_space = (inner - natural) / max(chars - 1, 1)
                for line in lines:
                    line.width = inner if line.width == natural else line.width * inner / natural
        else:
            lines = self._wrap(runs, inner, base=style)

        content_height = sum(line.height for line in lines)
        height = max(cell.height, content_height)
        if cell.top is None:
            self._ensure_room(height)
            y = self.cursor.y
        else:
            y = cell.top
        x = self._box_x(width, cell.left)

        background = (parse_color(cell.background) or style.background) if cell.fill else None
        self._box_item(x, y, width, height, cell.border, background, parse_color(cell.border_color), cell)

        line_y = y + (height - content_height) / 2
        for line in lines:
            self._items.append(self._text_item(line, x + pad, line_y, inner, cell.align, cell, h_scale, char_space))
            line_y += line.height
        if cell.url:
            self._items.append(PlacedItem("link", x, y, width, height, payload={"url": cell.url}, element=cell))

        self._advance(x, y, width, height, cell.advance, cell.reset_height)

    def _place_text_box(self, box: TextBox) -> None:
        style = self.styles.resolve(box.style)
        pad = self._px(spacing.textbox_padding) if box.padding else 0.0
        width = self._resolve_width(box.width, box.left)
        inner = max(width - 2 * pad, 0.0)
        runs = self._inline_runs(box.elements)
        lines = self._wrap(runs, inner, base=style) if runs else []
        content_height = sum(line.height for line in lines) + (2 * pad if lines else 0.0)
        height = max(box.height, content_height)
        background = (parse_color(box.background) or style.background) if box.fill else None
        border = "LTRB" if box.border else ""
        advance = "next_line" if box.newline else "same_line"

        if box.top is not None or not box.page_check or not self.auto_page_break or self._band:
            y = box.top if box.top is not None else self.cursor.y
            x = self._box_x(width, box.left)
            self._draw_box_segment(x, y, width, height, pad, lines, border, background, box)
            self._advance(x, y, width, height, advance, box.reset_height)
            return

        needed = height + self._new_footnote_height(lines)
        if self.cursor.y + needed > self._bottom_limit() + EPSILON:
            if needed <= self._fresh_page_capacity() + EPSILON and self._page_has_content():
                self._page_break()
            else:
                self._split_text_box(box, width, height, pad, lines, border, background, advance)
                return

        y = self.cursor.y
        x = self._box_x(width, box.left)
        self._draw_box_segment(x, y, width, height, pad, lines, border, background, box)
        self._advance(x, y, width, height, advance, box.reset_height)

    def _draw_box_segment(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        pad: float,
        lines: Sequence[TextLine],
        border: str,
        background: Optional[RGB],
        box: TextBox,
    ) -> None:
        self._box_item(x, y, width, height, border, background, None, box)
        line_y = y + pad
        for line in lines:
            self._items.append(self._text_item(line, x + pad, line_y, width - 2 * pad, None, box))
            self._record_footnotes(line)
            line_y += line.height

    def _split_text_box(
        self,
        box: TextBox,
        width: float,
        height: float,
        pad: float,
        lines: Sequence[TextLine],
        border: str,
        background: Optional[RGB],
        advance: str,
    ) -> None:
        """Spread a text box over as many pages as it needs."""
        pending = list(lines)
        remaining = height
        # No page has room left: everything overflows the current one
        exhausted = self._fresh_page_capacity() <= EPSILON
        while True:
            first_need = (pending[0].height if pending else 0.0) + 2 * pad
            room = self.cursor.remaining(self._bottom_limit())
            if not exhausted and (room < first_need - EPSILON or room <= EPSILON) and self._page_has_content():
                self._page_break()

            top = self.cursor.y
            x = self._box_x(width, box.left)
            segment = self._box_item(x, top, width, 0.0, border, background, None, box)
            used = pad
            while pending:
                line = pending[0]
                need = used + line.height + pad + self._new_footnote_height([line])
                if used > pad and not exhausted and top + need > self._bottom_limit() + EPSILON:
                    break
                self._items.append(self._text_item(line, x + pad, top + used, width - 2 * pad, None, box))
                self._record_footnotes(line)
                used += line.height
                pending.pop(0)
            used += pad

            avail = self._bottom_limit() - top
            if not pending and (remaining <= avail + EPSILON or exhausted):
                segment_height = max(remaining, used)
                if segment is not None:
                    segment.height = segment_height
                self._advance(x, top, width, segment_height, advance, box.reset_height)
                return

            segment_height = max(avail, used)
            if segment is not None:
                segment.height = segment_height
            remaining = max(remaining - segment_height, 0.0)
            if pending:
                remaining = max(remaining, sum(line.height for line in pending) + 2 * pad)
            self._page_break()

    def _flow(self, runs: Sequence[TextRun], element: Element) -> None:
        """Write runs at the cursor, continuing on following lines and pages."""
        if not runs:
            return
        lines = self._wrap(runs, self.geometry.printable_width, base=runs[0].style, first_width=self._available_width())
        rtl = self.geometry.rtl
        for index, line in enumerate(lines):
            if index > 0:
                self._advance(self.cursor.x, self.cursor.y, 0.0, 0.0, "next_line", False)
            self._ensure_room(line.height + self._new_footnote_height([line]))
            x = self.cursor.x - line.width if rtl else self.cursor.x
            y = self.cursor.y
            self._items.append(self._text_item(line, x, y, line.width, None, element))
            self._record_footnotes(line)
            self._advance(x, y, line.width, line.height, "same_line", False)

    def _read_image(self, image: Image) -> bytes:
        try:
            return self.image_loader.read(image.source)
        except OSError as exc:
            raise SerializationError(f"Cannot read image source {image.source!r}: {exc}", element=image) from exc

    def _place_image(self, image: Image) -> None:
        data = self._read_image(image)
        try:
            pixel_width, pixel_height = ImageReader(io.BytesIO(data)).getSize()
        except (OSError, ValueError) as exc:
            raise SerializationError(f"Cannot decode image {image.source!r}: {exc}", element=image) from exc

        width, height = image.width, image.height
        if not width and not height:
            width, height = self._px(pixel_width), self._px(pixel_height)
        elif not width:
            width = height * pixel_width / pixel_height
        elif not height:
            height = width * pixel_height / pixel_width

        if image.y is None:
            self._ensure_room(height)
            y = self.cursor.y
        else:
            y = image.y

        if image.align == "left":
            x = self._left
        elif image.align == "center":
            x = self._left + (self.geometry.printable_width - width) / 2
        elif image.align == "right":
            x = self._right - width
        else:
            x = self._box_x(width, image.x)

        self._items.append(PlacedItem("image", x, y, width, height, payload={"data": data}, element=image))
        self._advance(x, y, width, height, image.advance, False)

    def _place_line(self, line: Line) -> None:
        rtl = self.geometry.rtl
        x1 = self._mirror_x(line.x1) if line.x1 is not None else self.cursor.x
        y1 = line.y1 if line.y1 is not None else self.cursor.y
        if line.x2 is not None:
            x2 = self._mirror_x(line.x2)
        else:
            x2 = self._left if rtl else self._right
        y2 = line.y2 if line.y2 is not None else y1
        self._items.append(self._line_item(x1, y1, x2, y2, line))

    def _place_html(self, fragment: HtmlFragment) -> None:
        style = self.styles.resolve(fragment.style)
        if abs(self.cursor.x - self._line_start) > EPSILON:
            self._advance(self.cursor.x, self.cursor.y, 0.0, 0.0, "next_line", False)
        markup = fragment.to_markup()
        width = self.geometry.printable_width
        try:
            paragraph = build_paragraph(markup, style, self._k, self.geometry.rtl)
            _, height = paragraph.wrap(width, self.geometry.page_height)
        except ValueError as exc:
            raise SerializationError(f"Cannot lay out HTML fragment <{fragment.tag}>: {exc}", element=fragment) from exc
        self._ensure_room(height)
        y = self.cursor.y
        self._items.append(
            PlacedItem("html", self._left, y, width, height, payload={"markup": markup, "style": style}, element=fragment)
        )
        self._advance(self._left, y, width, height, "next_line", False)

    def _place_page_header(self, page_header: PageHeader) -> None:
        if self._band:
            for element in page_header.elements:
                self._place(element)
            return
        if not page_header.elements:
            self._page_header = None
            return
        # Draw in place on the current page, then repeat on following pages
        items, bottom = self._layout_band(page_header.elements, self.cursor.y)
        self._items.extend(items)
        self.cursor.x = self._line_start
        self.cursor.y = self.cursor.row_bottom = bottom
        origin = self._header_bottom
        repeated, repeated_bottom = self._layout_band(page_header.elements, origin)
        self._page_header = (repeated, repeated_bottom - origin)
