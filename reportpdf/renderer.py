"""
PDF serializer using ReportLab.

Turns laid-out pages into PDF bytes: every page is drawn on a canvas scaled
to the document unit, with top-down layout coordinates flipped into PDF
space.

License: MIT
"""

import io
import logging
from typing import Any

from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from reportpdf.errors import SerializationError
from reportpdf.layout import Page, PlacedItem, build_paragraph

logger = logging.getLogger(__name__)

PAGE_TOKEN = "{{PAGE}}"
PAGES_TOKEN = "{{PAGES}}"

# Underline position below the baseline, as a multiple of the font size
UNDERLINE_OFFSET = 0.12
UNDERLINE_WIDTH = 0.05

# Encoding understood by the 14 standard Type1 fonts
STANDARD_FONT_ENCODING = "cp1252"


def substitute_page_tokens(text: str, page_number: int, page_count: int) -> str:
    """Replace page tokens with the 1-based page number and the page count."""
    return text.replace(PAGE_TOKEN, str(page_number)).replace(PAGES_TOKEN, str(page_count))


class PDFSerializer:
    """Draws laid-out pages onto a ReportLab canvas."""

    def __init__(self, compress: bool = True, invariant: bool = False, encoding_errors: str = "strict"):
        """
        Initialize the serializer.

        Args:
            compress: Compress page content streams
            invariant: Pin timestamps and document ID for byte-identical output
            encoding_errors: ``strict`` or ``replace`` for text outside the font encoding
        """
        if encoding_errors not in ("strict", "replace"):
            raise ValueError(f"Unknown encoding error policy: {encoding_errors!r}")
        self.compress = compress
        self.invariant = invariant
        self.encoding_errors = encoding_errors

    def serialize(self, document: Any) -> bytes:
        """
        Render a laid-out document to PDF bytes.

        Args:
            document: Object with ``geometry``, ``meta`` and ``pages``

        Returns:
            PDF file as bytes

        Raises:
            SerializationError: If an element cannot be drawn or the output cannot be written
        """
        geometry = document.geometry
        buffer = io.BytesIO()
        c = canvas.Canvas(
            buffer,
            pagesize=geometry.size_points,
            pageCompression=1 if self.compress else 0,
            invariant=1 if self.invariant else 0,
        )

        meta = document.meta
        c.setTitle(meta.title)
        c.setAuthor(meta.author)
        c.setSubject(meta.subject)
        c.setKeywords(meta.keywords)
        c.setCreator(meta.creator)

        total = len(document.pages)
        for page in document.pages:
            self._draw_page(c, page, total, geometry)

        try:
            c.save()
        except OSError as exc:
            raise SerializationError(f"Cannot write PDF output: {exc}") from exc

        data = buffer.getvalue()
        logger.debug(f"Serialized {total} page(s), {len(data)} bytes")
        return data

    def _draw_page(self, c: canvas.Canvas, page: Page, total: int, geometry) -> None:
        c.saveState()
        c.scale(geometry.scale, geometry.scale)
        for item in page.items:
            try:
                self._draw_item(c, item, page.index + 1, total, geometry)
            except SerializationError:
                raise
            except (OSError, ValueError, TypeError, KeyError) as exc:
                raise SerializationError(
                    f"Cannot draw {item.kind} on page {page.index + 1}: {exc}", element=item.element
                ) from exc
        c.restoreState()
        c.showPage()

    def _draw_item(self, c: canvas.Canvas, item: PlacedItem, page_number: int, total: int, geometry) -> None:
        """Draw a single primitive based on its kind."""
        height = geometry.page_height
        if item.kind == "rect":
            self._draw_rect(c, item, height)
        elif item.kind == "text":
            self._draw_text(c, item, page_number, total, geometry)
        elif item.kind == "image":
            image = ImageReader(io.BytesIO(item.payload["data"]))
            c.drawImage(image, item.x, height - item.y - item.height, width=item.width, height=item.height, mask="auto")
        elif item.kind == "line":
            payload = item.payload
            c.setStrokeColorRGB(*payload["stroke"])
            c.setLineWidth(payload["line_width"])
            c.line(payload["x1"], height - payload["y1"], payload["x2"], height - payload["y2"])
        elif item.kind == "html":
            style = item.payload["style"]
            markup = self._encode(substitute_page_tokens(item.payload["markup"], page_number, total), style, item.element)
            paragraph = build_paragraph(markup, style, geometry.scale, geometry.rtl)
            _, paragraph_height = paragraph.wrap(item.width, geometry.page_height)
            paragraph.drawOn(c, item.x, height - item.y - paragraph_height)
        elif item.kind == "link":
            top = height - item.y
            c.linkURL(item.payload["url"], (item.x, top - item.height, item.x + item.width, top), relative=1)
        else:
            raise SerializationError(f"Unknown item kind: {item.kind!r}", element=item.element)

    def _draw_rect(self, c: canvas.Canvas, item: PlacedItem, page_height: float) -> None:
        payload = item.payload
        x, y = item.x, page_height - item.y - item.height
        w, h = item.width, item.height
        fill = payload["fill"]
        border = payload["border"]

        c.setLineWidth(payload["line_width"])
        c.setStrokeColorRGB(*payload["stroke"])
        if fill is not None:
            c.setFillColorRGB(*fill)

        if border == "LTRB":
            c.rect(x, y, w, h, stroke=1, fill=1 if fill is not None else 0)
            return
        if fill is not None:
            c.rect(x, y, w, h, stroke=0, fill=1)
        sides = {
            "L": (x, y, x, y + h),
            "T": (x, y + h, x + w, y + h),
            "R": (x + w, y, x + w, y + h),
            "B": (x, y, x + w, y),
        }
        for side in border:
            c.line(*sides[side])

    def _encode(self, text: str, style, element: Any) -> str:
        """Check that ``text`` can be shown with the style's font."""
        if not style.is_standard_font:
            return text
        try:
            text.encode(STANDARD_FONT_ENCODING)
        except UnicodeEncodeError as exc:
            if self.encoding_errors == "replace":
                return text.encode(STANDARD_FONT_ENCODING, errors="replace").decode(STANDARD_FONT_ENCODING)
            raise SerializationError(
                f"Text {text!r} cannot be encoded in font {style.font_name} ({STANDARD_FONT_ENCODING})",
                element=element,
            ) from exc
        return text

    def _draw_text(self, c: canvas.Canvas, item: PlacedItem, page_number: int, total: int, geometry) -> None:
        payload = item.payload
        k = geometry.scale
        h_scale = payload["h_scale"]
        char_space = payload["char_space"]
        word_space = payload["word_space"]
        baseline = geometry.page_height - payload["baseline"]

        text_obj = c.beginText()
        text_obj.setTextOrigin(item.x, baseline)
        text_obj.setHorizScale(h_scale)
        text_obj.setCharSpace(char_space)
        text_obj.setWordSpace(word_space)

        underlines = []
        x = item.x
        for run in payload["runs"]:
            content = self._encode(substitute_page_tokens(run.text, page_number, total), run.style, item.element)
            size = run.style.size / k
            text_obj.setFont(run.style.font_name, size)
            text_obj.setFillColorRGB(*run.color)
            text_obj.setRise(run.rise)
            text_obj.textOut(content)

            advance = pdfmetrics.stringWidth(content, run.style.font_name, size) * h_scale / 100.0
            advance += char_space * len(content) + word_space * content.count(" ")
            if run.style.underline:
                underlines.append((x, x + advance, size, run.color))
            x += advance
        c.drawText(text_obj)

        for start, end, size, color in underlines:
            c.setStrokeColorRGB(*color)
            c.setLineWidth(size * UNDERLINE_WIDTH)
            y = baseline - size * UNDERLINE_OFFSET
            c.line(start, y, end, y)
