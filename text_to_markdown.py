"""
Text to Markdown
Renders plain document text as markdown by prefixing detected headings,
and segments the rendering into paragraph units for windowed display.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from document_types import (
    DocumentSegment,
    LegalChunk,
    OffsetMapping,
    PositionedSection,
    Span,
)
from offset_mapper import OffsetTranslator


PARAGRAPH_SEPARATOR = re.compile(r'\n{2,}')


@dataclass
class MarkdownConversion:
    markdown: str
    offset_map: List[OffsetMapping]


@dataclass
class ChunkBoundary:
    """Stored chunk position used to segment the rendering."""
    start_position: int
    chunk_type: Optional[str] = None
    section_path: Optional[List[str]] = None

    @classmethod
    def from_chunk(cls, chunk: LegalChunk) -> "ChunkBoundary":
        return cls(
            start_position=chunk.start_position,
            chunk_type=chunk.chunk_type.value,
            section_path=list(chunk.section_path),
        )


def heading_prefix(level: int) -> str:
    return "#" * max(1, level) + " "


def convert_to_markdown(text: str, sections: Sequence[PositionedSection]) -> MarkdownConversion:
    """
    Insert a heading prefix at each section start.

    The original text is copied unchanged; only prefixes are added. Each
    insertion records a checkpoint whose markdown position includes all
    prefixes inserted so far. Several sections at one offset get a single
    prefix (the first in order).
    """
    if not text or not sections:
        return MarkdownConversion(markdown=text, offset_map=[])

    parts: List[str] = []
    offset_map: List[OffsetMapping] = []
    last_pos = 0
    shift = 0

    for section in sorted(sections, key=lambda s: s.start_offset):
        insert_pos = min(max(0, section.start_offset), len(text))
        if offset_map and offset_map[-1].original == insert_pos:
            continue

        prefix = heading_prefix(section.level)
        parts.append(text[last_pos:insert_pos])
        parts.append(prefix)
        shift += len(prefix)
        offset_map.append(OffsetMapping(original=insert_pos, markdown=insert_pos + shift))
        last_pos = insert_pos

    parts.append(text[last_pos:])
    return MarkdownConversion(markdown="".join(parts), offset_map=offset_map)


def split_into_paragraphs(markdown: str) -> List[DocumentSegment]:
    """Split on blank lines into trimmed segments with exact offsets."""
    segments: List[DocumentSegment] = []
    cursor = 0
    separators = [(m.start(), m.end()) for m in PARAGRAPH_SEPARATOR.finditer(markdown)]
    separators.append((len(markdown), len(markdown)))

    for sep_start, sep_end in separators:
        raw = markdown[cursor:sep_start]
        trimmed = raw.strip()
        if trimmed:
            start = cursor + (len(raw) - len(raw.lstrip()))
            segments.append(DocumentSegment(
                text=trimmed,
                start_offset=start,
                end_offset=start + len(trimmed),
                index=len(segments),
            ))
        cursor = sep_end

    return segments


def split_by_chunks(markdown: str,
                    chunks: Sequence[Union[ChunkBoundary, LegalChunk]],
                    offset_map: List[OffsetMapping]) -> List[DocumentSegment]:
    """
    Segment the rendering at stored chunk boundaries.

    Each segment runs from its chunk's translated start to the next chunk's
    start (the last one to the end of the text). Text before the first chunk
    becomes an untagged preamble segment. Without chunks this falls back to
    paragraph splitting.
    """
    if not chunks:
        return split_into_paragraphs(markdown)

    boundaries = sorted(
        (c if isinstance(c, ChunkBoundary) else ChunkBoundary.from_chunk(c) for c in chunks),
        key=lambda b: b.start_position,
    )
    length = len(markdown)
    translator = OffsetTranslator(offset_map)
    starts = [
        min(max(0, translator.translate_boundary(b.start_position)), length)
        for b in boundaries
    ]

    segments: List[DocumentSegment] = []

    def emit(span: Span, boundary: Optional[ChunkBoundary]):
        text = span.slice(markdown)
        if span.length == 0 or not text.strip():
            return
        path = boundary.section_path if boundary else None
        segments.append(DocumentSegment(
            text=text,
            start_offset=span.start,
            end_offset=span.end,
            index=len(segments),
            chunk_type=boundary.chunk_type if boundary else None,
            section_level=len(path) if path else None,
        ))

    emit(Span(0, starts[0]), None)
    for i, boundary in enumerate(boundaries):
        end = starts[i + 1] if i + 1 < len(starts) else length
        emit(Span(starts[i], max(starts[i], end)), boundary)

    return segments
