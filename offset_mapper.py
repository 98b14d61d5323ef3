"""
Offset Mapper
Translates original-text positions into positions in the markdown
rendering, and places downstream clause records onto rendered paragraphs.
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Iterable, List, Optional

from document_types import DocumentSegment, OffsetMapping


@dataclass
class ClauseForRendering:
    """Clause record as stored by the classification step."""
    id: str
    category: str
    risk_level: str
    start_position: Optional[int]
    end_position: Optional[int]
    confidence: float
    clause_text: str = ""
    risk_explanation: Optional[str] = None


@dataclass
class ClauseOverlay:
    """Rendering-only placement of a clause; recomputed per render, never stored."""
    clause_id: str
    category: str
    risk_level: str
    confidence: float
    original_start: int
    original_end: int
    markdown_start: int
    markdown_end: int
    paragraph_index: int


class OffsetTranslator:
    """
    Offset map prepared for repeated lookups.

    The checkpoint positions are extracted once, so each translation is a
    binary search.
    """

    def __init__(self, offset_map: Iterable[OffsetMapping]):
        self.offset_map = list(offset_map)
        self._originals = [m.original for m in self.offset_map]

    def _shift(self, index: int) -> int:
        return self.offset_map[index].shift if index >= 0 else 0

    def translate(self, pos: int) -> int:
        """
        Shift `pos` by the nearest checkpoint at or before it.

        A position exactly at an insertion point lands after the inserted
        prefix. Positions before the first checkpoint are unchanged.
        """
        return pos + self._shift(bisect_right(self._originals, pos) - 1)

    def translate_boundary(self, pos: int) -> int:
        """
        Like `translate`, but uses the last checkpoint strictly before
        `pos`, so a prefix inserted at `pos` falls after the boundary.
        """
        return pos + self._shift(bisect_left(self._originals, pos) - 1)


def translate_offset(pos: int, offset_map: List[OffsetMapping]) -> int:
    """Translate one position; use `OffsetTranslator` for many."""
    return OffsetTranslator(offset_map).translate(pos)


def translate_boundary(pos: int, offset_map: List[OffsetMapping]) -> int:
    """Translate one chunk boundary; use `OffsetTranslator` for many."""
    return OffsetTranslator(offset_map).translate_boundary(pos)


def find_paragraph_index(markdown_offset: int, paragraphs: List[DocumentSegment]) -> int:
    """Paragraph containing the offset, else the nearest preceding one, else 0."""
    for paragraph in paragraphs:
        if paragraph.start_offset <= markdown_offset < paragraph.end_offset:
            return paragraph.index

    best = 0
    for paragraph in paragraphs:
        if paragraph.start_offset <= markdown_offset:
            best = paragraph.index
    return best


def map_clause_positions(clauses: List[ClauseForRendering],
                         offset_map: List[OffsetMapping],
                         paragraphs: List[DocumentSegment]) -> List[ClauseOverlay]:
    """
    Build overlays for clauses with known positions.

    Clauses without positions are skipped; negative starts clamp to 0 and
    ends never precede starts.
    """
    translator = OffsetTranslator(offset_map)
    overlays = []

    for clause in clauses:
        if clause.start_position is None or clause.end_position is None:
            continue

        original_start = max(0, clause.start_position)
        original_end = max(original_start, clause.end_position)
        markdown_start = translator.translate(original_start)
        markdown_end = translator.translate(original_end)

        overlays.append(ClauseOverlay(
            clause_id=clause.id,
            category=clause.category,
            risk_level=clause.risk_level,
            confidence=clause.confidence,
            original_start=original_start,
            original_end=original_end,
            markdown_start=markdown_start,
            markdown_end=markdown_end,
            paragraph_index=find_paragraph_index(markdown_start, paragraphs),
        ))

    return overlays
