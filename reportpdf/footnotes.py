"""
Footnote collection.

Footnotes are numbered in the order they are met in the body. Ordinals are
monotonic for the whole document while rendering happens per page (or once
at the end of the document).

License: MIT
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from reportpdf.models import Footnote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FootnoteEntry:
    """One recorded footnote."""
    ordinal: int
    style: str
    content: str
    page_index: int

    @property
    def label(self) -> str:
        return f"{self.ordinal}. {self.content}"


class FootnoteCollector:
    """Accumulates footnotes until they are drained onto a page."""

    def __init__(self):
        self._pending: List[FootnoteEntry] = []
        self._ordinals: Dict[Tuple[str, str], int] = {}
        self._next_ordinal = 1

    @staticmethod
    def _key(footnote: Footnote) -> Tuple[str, str]:
        return footnote.style, footnote.content

    @property
    def next_ordinal(self) -> int:
        """Ordinal the next new footnote will receive."""
        return self._next_ordinal

    @property
    def pending(self) -> Tuple[FootnoteEntry, ...]:
        return tuple(self._pending)

    def lookup(self, footnote: Footnote) -> Optional[int]:
        """Ordinal of an identical footnote recorded earlier, if any."""
        return self._ordinals.get(self._key(footnote))

    def record(self, footnote: Footnote, page_index: int = 0) -> int:
        """
        Record a footnote met on ``page_index``.

        A footnote identical to an earlier one (same style and text) reuses
        that ordinal and is not listed a second time.

        Returns:
            The footnote's ordinal
        """
        existing = self.lookup(footnote)
        if existing is not None:
            return existing
        ordinal = self._next_ordinal
        self._next_ordinal += 1
        self._ordinals[self._key(footnote)] = ordinal
        self._pending.append(FootnoteEntry(ordinal, footnote.style, footnote.content, page_index))
        return ordinal

    def drain_for_current_page(self) -> List[FootnoteEntry]:
        """Return the pending footnotes in recording order and forget them."""
        entries = sorted(self._pending, key=lambda entry: entry.ordinal)
        self._pending.clear()
        if entries:
            logger.debug(f"Drained {len(entries)} footnote(s): {entries[0].ordinal}..{entries[-1].ordinal}")
        return entries
