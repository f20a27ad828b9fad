"""
Header, body and footer regions of a report.

License: MIT
"""

import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from reportpdf.errors import NoActiveRegion
from reportpdf.models import Element

logger = logging.getLogger(__name__)


class RegionKind(str, Enum):
    HEADER = "header"
    BODY = "body"
    FOOTER = "footer"


class Region:
    """Ordered, append-only sequence of elements for one region kind."""

    def __init__(self, kind: RegionKind):
        self.kind = kind
        self._elements: List[Element] = []

    def append(self, element: Element) -> int:
        self._elements.append(element)
        return len(self._elements) - 1

    def clear(self) -> None:
        self._elements.clear()

    @property
    def elements(self) -> Tuple[Element, ...]:
        return tuple(self._elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(tuple(self._elements))

    def __len__(self) -> int:
        return len(self._elements)

    def __repr__(self) -> str:
        return f"Region({self.kind.value}, {len(self._elements)} elements)"


class RegionManager:
    """
    Owns the three regions of a document and the currently active one.

    The regions are created once and never replaced; clearing a region
    only empties its element sequence.
    """

    def __init__(self):
        self._regions: Dict[RegionKind, Region] = {kind: Region(kind) for kind in RegionKind}
        self._active: Optional[RegionKind] = None

    @property
    def active(self) -> Optional[RegionKind]:
        return self._active

    def set_active_region(self, kind: Optional[RegionKind]) -> None:
        """Select the region that ``append`` adds to (None deselects)."""
        self._active = RegionKind(kind) if kind is not None else None

    def append(self, element: Element) -> int:
        """
        Add an element to the active region.

        Returns:
            The element's 0-based position within the region

        Raises:
            NoActiveRegion: If no region has been selected
        """
        if self._active is None:
            raise NoActiveRegion(f"Cannot append {type(element).__name__}: no active region selected")
        return self._regions[self._active].append(element)

    def region(self, kind: RegionKind) -> Region:
        return self._regions[RegionKind(kind)]

    def clear_region(self, kind: RegionKind) -> None:
        region = self.region(kind)
        logger.debug(f"Clearing {region.kind.value} region ({len(region)} elements)")
        region.clear()

    @property
    def header(self) -> Region:
        return self._regions[RegionKind.HEADER]

    @property
    def body(self) -> Region:
        return self._regions[RegionKind.BODY]

    @property
    def footer(self) -> Region:
        return self._regions[RegionKind.FOOTER]
