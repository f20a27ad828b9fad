"""
Document controller: report setup, element factories and the render run.

License: MIT
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from reportpdf.config import Settings, get_settings
from reportpdf.errors import InvalidElementSpec, NoActiveRegion
from reportpdf.geometry import PageGeometry
from reportpdf.images import FileImageLoader, ImageLoader
from reportpdf.layout import LayoutEngine, Page
from reportpdf.models import (
    Cell,
    Element,
    Footnote,
    HtmlFragment,
    Image,
    Line,
    PageHeader,
    ReportRequest,
    Text,
    TextBox,
)
from reportpdf.regions import RegionKind, RegionManager
from reportpdf.renderer import PDFSerializer
from reportpdf.styles import StyleTable, default_style_table

logger = logging.getLogger(__name__)

# Legacy single-letter and numeric codes accepted by the factories
ALIGN_CODES: Dict[str, Optional[str]] = {"L": "left", "C": "center", "R": "right", "J": "justify", "": None}
ADVANCE_CODES: Dict[Any, str] = {
    0: "same_line",
    1: "next_line",
    2: "below",
    "0": "same_line",
    "1": "next_line",
    "2": "below",
    "T": "same_line",
    "N": "next_line",
}
# "." places an element at the running cursor
CURSOR_POSITION = "."


def _align(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return ALIGN_CODES.get(value.upper() if len(value) == 1 else value, value)


def _advance(value: Any) -> Any:
    if not isinstance(value, (str, int)):
        return value
    return ADVANCE_CODES.get(value, value)


def _position(value: Any) -> Any:
    if value is None or value == CURSOR_POSITION or value == "":
        return None
    return value


def _flag(value: Any) -> Any:
    if value in (0, 1, "0", "1"):
        return bool(int(value))
    return value


@dataclass
class DocumentMeta:
    """PDF document information."""
    title: str = ""
    author: str = ""
    subject: str = ""
    keywords: str = ""
    creator: str = ""


@dataclass
class Document:
    """One report document from setup to finalized output."""
    geometry: PageGeometry
    regions: RegionManager
    meta: DocumentMeta
    pages: List[Page] = field(default_factory=list)
    output: Optional[bytes] = None

    @property
    def finalized(self) -> bool:
        return self.output is not None


@dataclass(frozen=True)
class AddResult:
    """Outcome of ``add_element``; falsy when nothing was added."""
    placed: bool
    region: Optional[RegionKind] = None
    ordinal: Optional[int] = None

    def __bool__(self) -> bool:
        return self.placed


NOT_PLACED = AddResult(placed=False)


class ReportController:
    """
    Builds a report: configure, select regions, add elements, run.

    Example:
        controller = ReportController(page_size="A4", title="Family report")
        controller.setup()
        controller.set_active_region(RegionKind.BODY)
        controller.add_element(controller.create_cell(0, 12, text="Hello", advance="next_line"))
        pdf_bytes = controller.run()
    """

    def __init__(
        self,
        page_size: Optional[str] = None,
        orientation: str = "portrait",
        unit: Optional[str] = None,
        margin_top: Optional[float] = None,
        margin_bottom: Optional[float] = None,
        margin_left: Optional[float] = None,
        margin_right: Optional[float] = None,
        header_margin: Optional[float] = None,
        footer_margin: Optional[float] = None,
        rtl: bool = False,
        title: str = "",
        author: str = "",
        subject: str = "",
        keywords: str = "",
        show_generated_by: bool = False,
        generated_by: Optional[str] = None,
        privileged: bool = False,
        styles: Optional[StyleTable] = None,
        settings: Optional[Settings] = None,
        image_loader: Optional[ImageLoader] = None,
        footnote_placement: Optional[str] = None,
        auto_page_break: Optional[bool] = None,
        compress: Optional[bool] = None,
        strict: bool = False,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        self.page_size = page_size or s.default_page_size
        self.orientation = orientation
        self.unit = unit or s.unit
        self.margins = {
            "margin_top": s.margin_top if margin_top is None else margin_top,
            "margin_bottom": s.margin_bottom if margin_bottom is None else margin_bottom,
            "margin_left": s.margin_left if margin_left is None else margin_left,
            "margin_right": s.margin_right if margin_right is None else margin_right,
            "header_margin": s.header_margin if header_margin is None else header_margin,
            "footer_margin": s.footer_margin if footer_margin is None else footer_margin,
        }
        self.rtl = rtl
        self.title = title
        self.author = author
        self.subject = subject
        self.keywords = keywords
        self.show_generated_by = show_generated_by
        self.generated_by = s.generated_by if generated_by is None else generated_by
        self.privileged = privileged
        self.styles = styles or default_style_table()
        self.image_loader = image_loader or FileImageLoader(s.image_base_dir)
        self.footnote_placement = footnote_placement or s.footnote_placement
        self.auto_page_break = s.auto_page_break if auto_page_break is None else auto_page_break
        self.compress = s.compression if compress is None else compress
        self.strict = strict
        self.document: Optional[Document] = None

    # ------------------------------------------------------------------
    # Setup and regions

    def setup(self) -> Document:
        """Create the page geometry, the regions and the document metadata."""
        if self.document is not None:
            raise RuntimeError("The report is already set up")
        geometry = PageGeometry.from_page_size(
            self.page_size,
            orientation=self.orientation,
            unit=self.unit,
            direction="rtl" if self.rtl else "ltr",
            **self.margins,
        )

        creator = self.settings.app_name
        if self.privileged:
            creator += f" {self.settings.version}"
        creator += f" ({self.settings.app_url})"

        meta = DocumentMeta(self.title, self.author, self.subject, self.keywords, creator)
        self.document = Document(geometry=geometry, regions=RegionManager(), meta=meta)

        if self.show_generated_by:
            notice = Cell(
                width=0,
                height=10,
                align="center",
                style="genby",
                advance="next_line",
                reset_height=True,
                text=self.generated_by,
                url=self.settings.app_url,
            )
            self.document.regions.footer.append(notice)

        logger.info(
            f"Report set up: {self.page_size} {self.orientation}, "
            f"{geometry.page_width:.2f}x{geometry.page_height:.2f} {geometry.unit}"
        )
        return self.document

    def _require_document(self) -> Document:
        if self.document is None:
            raise RuntimeError("setup() must be called first")
        return self.document

    @property
    def regions(self) -> RegionManager:
        return self._require_document().regions

    def set_active_region(self, kind: Optional[Union[RegionKind, str]]) -> None:
        self.regions.set_active_region(kind)

    def add_element(self, element: Element) -> AddResult:
        """
        Append an element to the active region.

        Returns:
            AddResult with the region and 0-based ordinal, or NOT_PLACED when
            no region is active (unless the controller is strict)

        Raises:
            NoActiveRegion: In strict mode, when no region is active
            RuntimeError: If the document was already rendered
        """
        document = self._require_document()
        if document.finalized:
            raise RuntimeError("Cannot add elements to a finalized document")
        regions = document.regions
        if regions.active is None:
            if self.strict:
                raise NoActiveRegion(f"Cannot add {type(element).__name__}: no active region selected")
            logger.debug(f"Dropped {type(element).__name__}: no active region")
            return NOT_PLACED
        ordinal = regions.append(element)
        return AddResult(placed=True, region=regions.active, ordinal=ordinal)

    def clear_header(self) -> None:
        self.regions.clear_region(RegionKind.HEADER)

    def clear_page_header(self) -> None:
        """Stop repeating the running page header from this point of the body on."""
        self.regions.body.append(PageHeader())

    # ------------------------------------------------------------------
    # Element factories

    @staticmethod
    def _build(factory: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return factory(**kwargs)
        except ValidationError as exc:
            raise InvalidElementSpec(f"Invalid {factory.__name__} specification: {exc}") from exc

    def create_cell(
        self,
        width: float = 0,
        height: float = 0,
        border: Any = "",
        align: Optional[str] = None,
        background: Optional[str] = None,
        style: str = "text",
        advance: Any = "same_line",
        top: Any = None,
        left: Any = None,
        fill: Any = False,
        stretch: int = 0,
        border_color: Optional[str] = None,
        text_color: Optional[str] = None,
        reset_height: bool = False,
        text: str = "",
        url: Optional[str] = None,
    ) -> Cell:
        return self._build(
            Cell,
            width=width,
            height=height,
            border=border,
            align=_align(align),
            background=background or None,
            style=style,
            advance=_advance(advance),
            top=_position(top),
            left=_position(left),
            fill=_flag(fill),
            stretch=stretch,
            border_color=border_color or None,
            text_color=text_color or None,
            reset_height=_flag(reset_height),
            text=text,
            url=url,
        )

    def create_text_box(
        self,
        width: float = 0,
        height: float = 0,
        border: Any = False,
        background: Optional[str] = None,
        newline: Any = False,
        left: Any = None,
        top: Any = None,
        page_check: Any = True,
        style: str = "text",
        fill: Any = False,
        padding: Any = True,
        reset_height: Any = False,
        elements: tuple = (),
    ) -> TextBox:
        return self._build(
            TextBox,
            width=width,
            height=height,
            border=_flag(border),
            background=background or None,
            newline=_flag(newline),
            left=_position(left),
            top=_position(top),
            page_check=_flag(page_check),
            style=style,
            fill=_flag(fill),
            padding=_flag(padding),
            reset_height=_flag(reset_height),
            elements=tuple(elements),
        )

    def create_text(self, style: str = "text", color: Optional[str] = None, content: str = "") -> Text:
        return self._build(Text, style=style, color=color or None, content=content)

    def create_footnote(self, content: str, style: str = "footnote") -> Footnote:
        return self._build(Footnote, style=style, content=content)

    def create_page_header(self, elements: tuple = ()) -> PageHeader:
        return self._build(PageHeader, elements=tuple(elements))

    def create_image(
        self,
        source: str,
        x: Any = None,
        y: Any = None,
        width: float = 0,
        height: float = 0,
        align: Optional[str] = None,
        advance: Any = "next_line",
    ) -> Image:
        return self._build(
            Image,
            source=source,
            x=_position(x),
            y=_position(y),
            width=width,
            height=height,
            align=_align(align),
            advance=_advance(advance),
        )

    def create_image_from_source(self, source: "os.PathLike[str]", **kwargs: Any) -> Image:
        """Create an image from any path-like object (e.g. a media file record)."""
        return self.create_image(os.fspath(source), **kwargs)

    def create_line(self, x1: Any = None, y1: Any = None, x2: Any = None, y2: Any = None) -> Line:
        return self._build(Line, x1=_position(x1), y1=_position(y1), x2=_position(x2), y2=_position(y2))

    def create_html(
        self,
        tag: str,
        attrs: Optional[Dict[str, str]] = None,
        children: tuple = (),
        style: str = "text",
    ) -> HtmlFragment:
        return self._build(HtmlFragment, tag=tag, attrs=dict(attrs or {}), children=tuple(children), style=style)

    # ------------------------------------------------------------------
    # Rendering

    def run(self) -> bytes:
        """
        Lay out and serialize the report.

        Returns:
            PDF file as bytes

        Raises:
            UnknownStyle: If an element references an unregistered style
            SerializationError: If an element cannot be drawn
            RuntimeError: If the report was already rendered
        """
        document = self._require_document()
        if document.finalized:
            raise RuntimeError("The report has already been rendered")

        engine = LayoutEngine(
            document.geometry,
            self.styles,
            image_loader=self.image_loader,
            auto_page_break=self.auto_page_break,
            footnote_placement=self.footnote_placement,
        )
        engine.set_header(document.regions.header.elements)
        engine.start()
        for element in document.regions.body:
            engine.place(element)
        engine.finish()
        engine.apply_footer(document.regions.footer.elements)
        document.pages = engine.pages

        serializer = PDFSerializer(
            compress=self.compress,
            invariant=self.settings.invariant,
            encoding_errors=self.settings.encoding_errors,
        )
        document.output = serializer.serialize(document)
        logger.info(f"Rendered {len(document.pages)} page(s), {len(document.output)} bytes")
        return document.output


def render_report(request: ReportRequest, settings: Optional[Settings] = None, privileged: bool = False) -> bytes:
    """
    Render a complete JSON report payload.

    Args:
        request: Validated report payload
        settings: Settings to use instead of the environment
        privileged: Include the version in the creator string

    Returns:
        PDF file as bytes
    """
    meta = request.meta
    styles = default_style_table()
    for spec in request.styles:
        try:
            styles.register_spec(spec.name, spec.font, spec.size, spec.style, spec.color, spec.background)
        except ValueError as exc:
            raise InvalidElementSpec(str(exc)) from exc

    controller = ReportController(
        page_size=meta.page_size,
        orientation=meta.orientation,
        unit=meta.unit,
        margin_top=meta.margin_top,
        margin_bottom=meta.margin_bottom,
        margin_left=meta.margin_left,
        margin_right=meta.margin_right,
        header_margin=meta.header_margin,
        footer_margin=meta.footer_margin,
        rtl=meta.rtl,
        title=meta.title,
        author=meta.author,
        subject=meta.subject,
        keywords=meta.keywords,
        show_generated_by=meta.show_generated_by,
        privileged=privileged,
        styles=styles,
        settings=settings,
        compress=meta.compress,
        strict=True,
    )
    try:
        controller.setup()
    except ValidationError as exc:
        raise InvalidElementSpec(f"Invalid page setup: {exc}") from exc

    for kind, elements in (
        (RegionKind.HEADER, request.header),
        (RegionKind.BODY, request.body),
        (RegionKind.FOOTER, request.footer),
    ):
        controller.set_active_region(kind)
        for element in elements:
            controller.add_element(element)
    controller.set_active_region(None)
    return controller.run()
