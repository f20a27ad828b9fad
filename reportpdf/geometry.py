"""
Page geometry: paper sizes, margins, units and writing direction.

License: MIT
"""

import logging
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from reportlab.lib import pagesizes
from reportlab.lib.units import cm, inch, mm

logger = logging.getLogger(__name__)

Orientation = Literal["portrait", "landscape"]
Direction = Literal["ltr", "rtl"]
Unit = Literal["pt", "mm", "cm", "in"]

# Points per document unit
UNIT_SCALE: Dict[str, float] = {
    "pt": 1.0,
    "mm": mm,
    "cm": cm,
    "in": inch,
}

# Paper sizes in points, portrait
PAGE_SIZES: Dict[str, Tuple[float, float]] = {
    "A3": pagesizes.A3,
    "A4": pagesizes.A4,
    "A5": pagesizes.A5,
    "B5": pagesizes.B5,
    "LETTER": pagesizes.LETTER,
    "LEGAL": pagesizes.LEGAL,
    "TABLOID": pagesizes.TABLOID,
}

DEFAULT_PAGE_SIZE = "A4"


def page_size_points(name: str) -> Tuple[float, float]:
    """
    Look up a paper size by name (case-insensitive).

    Unknown names fall back to the default size instead of failing.
    """
    key = (name or "").strip().upper()
    if key not in PAGE_SIZES:
        logger.warning(f"Unknown page size {name!r}, falling back to {DEFAULT_PAGE_SIZE}")
        key = DEFAULT_PAGE_SIZE
    return PAGE_SIZES[key]


class PageGeometry(BaseModel):
    """Page dimensions and margins, all expressed in ``unit``."""

    model_config = ConfigDict(frozen=True)

    orientation: Orientation = Field(default="portrait", description="Page orientation")
    unit: Unit = Field(default="pt", description="Unit of every length below")
    page_width: float = Field(..., gt=0, description="Page width")
    page_height: float = Field(..., gt=0, description="Page height")
    margin_top: float = Field(default=0, ge=0)
    margin_bottom: float = Field(default=0, ge=0)
    margin_left: float = Field(default=0, ge=0)
    margin_right: float = Field(default=0, ge=0)
    header_margin: Optional[float] = Field(default=None, ge=0, description="Header band offset from the top")
    footer_margin: Optional[float] = Field(default=None, ge=0, description="Footer band offset from the bottom")
    direction: Direction = Field(default="ltr", description="Writing direction")

    @model_validator(mode="after")
    def check_printable_area(self) -> "PageGeometry":
        """Margins must leave a non-empty printable area."""
        if self.printable_width <= 0:
            raise ValueError(
                f"Left and right margins ({self.margin_left} + {self.margin_right}) "
                f"leave no printable width on a page {self.page_width} wide"
            )
        if self.printable_height <= 0:
            raise ValueError(
                f"Top and bottom margins ({self.margin_top} + {self.margin_bottom}) "
                f"leave no printable height on a page {self.page_height} high"
            )
        if self.header_top >= self.page_height or self.footer_top <= 0:
            raise ValueError(
                f"Header and footer margins ({self.header_margin}, {self.footer_margin}) "
                f"must lie within a page {self.page_height} high"
            )
        return self

    @property
    def header_top(self) -> float:
        """Top of the header band."""
        return self.margin_top if self.header_margin is None else self.header_margin

    @property
    def footer_top(self) -> float:
        """Top of the footer band."""
        margin = self.margin_bottom if self.footer_margin is None else self.footer_margin
        return self.page_height - margin

    @property
    def printable_width(self) -> float:
        return self.page_width - self.margin_left - self.margin_right

    @property
    def printable_height(self) -> float:
        return self.page_height - self.margin_top - self.margin_bottom

    @property
    def scale(self) -> float:
        """Points per document unit."""
        return UNIT_SCALE[self.unit]

    @property
    def rtl(self) -> bool:
        return self.direction == "rtl"

    @property
    def size_points(self) -> Tuple[float, float]:
        """Page size in points, as ReportLab expects it."""
        return self.page_width * self.scale, self.page_height * self.scale

    @classmethod
    def from_page_size(
        cls,
        name: str,
        orientation: Orientation = "portrait",
        unit: Unit = "pt",
        margin_top: float = 0,
        margin_bottom: float = 0,
        margin_left: float = 0,
        margin_right: float = 0,
        direction: Direction = "ltr",
        header_margin: Optional[float] = None,
        footer_margin: Optional[float] = None,
    ) -> "PageGeometry":
        """
        Build geometry from a symbolic paper size name.

        Args:
            name: Paper size such as ``A4`` or ``letter``; unknown names use A4
            orientation: ``portrait`` or ``landscape``
            unit: Unit for the margins and the resulting page size
            margin_top, margin_bottom, margin_left, margin_right: Margins in ``unit``
            direction: ``ltr`` or ``rtl``
            header_margin, footer_margin: Band offsets in ``unit`` (default to the top and bottom margins)

        Returns:
            A validated PageGeometry
        """
        width, height = page_size_points(name)
        if orientation == "landscape":
            width, height = max(width, height), min(width, height)
        else:
            width, height = min(width, height), max(width, height)
        scale = UNIT_SCALE[unit]
        return cls(
            orientation=orientation,
            unit=unit,
            page_width=width / scale,
            page_height=height / scale,
            margin_top=margin_top,
            margin_bottom=margin_bottom,
            margin_left=margin_left,
            margin_right=margin_right,
            direction=direction,
            header_margin=header_margin,
            footer_margin=footer_margin,
        )
