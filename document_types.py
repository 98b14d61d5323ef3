"""
Document Types
Shared data model for structure detection, chunking and offset mapping.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Optional

from langchain_core.documents import Document

import config


class SectionType(str, Enum):
    """Structural role of a detected section."""
    HEADING = "heading"
    DEFINITIONS = "definitions"
    CLAUSE = "clause"
    SIGNATURE = "signature"
    EXHIBIT = "exhibit"
    SCHEDULE = "schedule"
    AMENDMENT = "amendment"
    COVER_LETTER = "cover_letter"
    OTHER = "other"


class ChunkType(str, Enum):
    """Type/origin of a chunk."""
    DEFINITION = "definition"
    CLAUSE = "clause"
    SUB_CLAUSE = "sub-clause"
    RECITAL = "recital"
    BOILERPLATE = "boilerplate"
    EXHIBIT = "exhibit"
    MERGED = "merged"
    SPLIT = "split"
    FALLBACK = "fallback"


STRUCTURE_SOURCES = ("regex", "llm")


@dataclass(frozen=True)
class Span:
    """
    Half-open character range [start, end) over a text.

    All offset arithmetic in the pipeline goes through this type so that
    invalid ranges fail at construction instead of producing silent
    off-by-one slices later.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Span start must be >= 0, got {self.start}")
        if self.end < self.start:
            raise ValueError(f"Span end {self.end} precedes start {self.start}")

    @classmethod
    def clamped(cls, start: int, end: int, limit: int) -> "Span":
        """Build a span bounded to [0, limit], collapsing inverted ranges."""
        start = min(max(0, start), limit)
        end = min(max(start, end), limit)
        return cls(start, end)

    @property
    def length(self) -> int:
        return self.end - self.start

    def clamp(self, limit: int) -> "Span":
        return Span.clamped(self.start, self.end, limit)

    def shift(self, delta: int) -> "Span":
        return Span(self.start + delta, self.end + delta)

    def union(self, other: "Span") -> "Span":
        return Span(min(self.start, other.start), max(self.end, other.end))

    def contains(self, pos: int) -> bool:
        return self.start <= pos < self.end

    def slice(self, text: str) -> str:
        return text[self.start:self.end]


@dataclass
class PositionedSection:
    """Represents a section of a legal document with its position in the text."""
    title: str
    level: int  # 1 for Article, 2 for Section, 3 for Subsection, 4 for paragraph
    content: str
    type: SectionType
    start_offset: int
    end_offset: int
    section_path: List[str] = field(default_factory=list)

    @property
    def span(self) -> Span:
        return Span(self.start_offset, self.end_offset)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['type'] = self.type.value
        return data


@dataclass
class PartyInfo:
    """Detected party names."""
    disclosing: Optional[str] = None
    receiving: Optional[str] = None


@dataclass
class DocumentStructure:
    """Hierarchical structure of a document, produced once per analysis."""
    sections: List[PositionedSection] = field(default_factory=list)
    parties: PartyInfo = field(default_factory=PartyInfo)
    has_exhibits: bool = False
    has_signature_block: bool = False
    has_redacted_text: bool = False
    structure_source: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'sections': [s.to_dict() for s in self.sections],
            'parties': asdict(self.parties),
            'has_exhibits': self.has_exhibits,
            'has_signature_block': self.has_signature_block,
            'has_redacted_text': self.has_redacted_text,
            'structure_source': self.structure_source,
        }


@dataclass
class ChunkMetadata:
    """Additional metadata attached to each chunk for downstream processing."""
    parent_clause_intro: Optional[str] = None
    references: List[str] = field(default_factory=list)
    is_overlap: bool = False
    overlap_tokens: int = 0
    structure_source: str = "regex"
    is_ocr: Optional[bool] = None


@dataclass
class LegalChunk:
    """A single legal-aware chunk of document text."""
    id: str
    index: int
    content: str
    section_path: List[str]
    token_count: int
    start_position: int
    end_position: int
    chunk_type: ChunkType
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)

    @property
    def span(self) -> Span:
        return Span(self.start_position, self.end_position)

    @property
    def is_boilerplate(self) -> bool:
        return self.chunk_type == ChunkType.BOILERPLATE

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['chunk_type'] = self.chunk_type.value
        return data

    def to_document(self) -> Document:
        """Convert to a LangChain Document for embedding and vector-store consumers."""
        metadata = {
            'chunk_id': self.id,
            'chunk_index': self.index,
            'chunk_type': self.chunk_type.value,
            'section_path': list(self.section_path),
            'token_count': self.token_count,
            'start_position': self.start_position,
            'end_position': self.end_position,
            'cross_references': list(self.metadata.references),
            'has_cross_references': bool(self.metadata.references),
            'is_overlap': self.metadata.is_overlap,
            'overlap_tokens': self.metadata.overlap_tokens,
            'structure_source': self.metadata.structure_source,
        }
        if self.metadata.parent_clause_intro:
            metadata['parent_clause_intro'] = self.metadata.parent_clause_intro
        if self.metadata.is_ocr is not None:
            metadata['is_ocr'] = self.metadata.is_ocr

        return Document(page_content=self.content, metadata=metadata)


@dataclass
class ChunkOptions:
    """
    Configuration for the legal chunking pipeline.

    Defaults are tuned for a 512-token embedding window: aim for 400 tokens,
    split above 512, merge below 50, carry 50 tokens of overlap.
    """
    max_tokens: int = config.MAX_TOKENS
    target_tokens: int = config.TARGET_TOKENS
    overlap_tokens: int = config.OVERLAP_TOKENS
    min_chunk_tokens: int = config.MIN_CHUNK_TOKENS
    skip_boilerplate_embedding: bool = config.SKIP_BOILERPLATE_EMBEDDING


@dataclass(frozen=True)
class OffsetMapping:
    """Checkpoint: original text position and its position after prefix insertion."""
    original: int
    markdown: int

    @property
    def shift(self) -> int:
        return self.markdown - self.original


@dataclass
class DocumentSegment:
    """A paragraph-level unit of rendered text."""
    text: str
    start_offset: int
    end_offset: int
    index: int
    chunk_type: Optional[str] = None
    section_level: Optional[int] = None

    @property
    def span(self) -> Span:
        return Span(self.start_offset, self.end_offset)
