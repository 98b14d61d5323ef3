"""
Chunk Strategies
Type-specific chunking for definitions, clauses, recitals, boilerplate,
exhibits and unstructured text.

Every strategy returns chunks with placeholder ids; the legal chunker
re-indexes them at the end of the pipeline.
"""

import re
from typing import List, Dict, Optional, Tuple

import config
from document_types import (
    ChunkMetadata,
    ChunkOptions,
    ChunkType,
    LegalChunk,
    PositionedSection,
    SectionType,
    Span,
)
from token_counter import TokenCounter, get_token_counter


# "Term" means ... ; an entry runs until the next entry or the section end
DEFINITION_ENTRY_PATTERN = re.compile(
    r'["“”]([^"“”]+)["“”]\s+(?:means|shall mean|refers to|has the meaning|is defined as)\b',
    re.IGNORECASE
)

# Numbering allowed before a term on its own line: 1.1, 2., (a), (iv)
DEFINITION_NUMBERING = re.compile(r'[ \t]*(?:(?:\d+(?:\.\d+)*\.?|\([a-z0-9]{1,4}\))[ \t]+)?')

# (a), (b), ... at the start of the section or of a line
SUB_CLAUSE_PATTERN = re.compile(r'(?:^|\n)\s*\(([a-z])\)\s+')

WHEREAS_PATTERN = re.compile(
    r'(?:^|\n)\s*(WHEREAS[,:]?\s+[\s\S]*?)(?=\n\s*WHEREAS|\n\s*NOW,?\s+THEREFORE|\Z)',
    re.IGNORECASE
)

RECITAL_SIGNAL = re.compile(r'WHEREAS', re.IGNORECASE)
RECITAL_TITLE = re.compile(r'recital', re.IGNORECASE)

PARAGRAPH_BREAK = re.compile(r'\n\s*\n')

# Strategy method name per section type; every SectionType must appear here
STRATEGY_BY_SECTION_TYPE: Dict[SectionType, str] = {
    SectionType.DEFINITIONS: "definitions",
    SectionType.CLAUSE: "clause",
    SectionType.HEADING: "clause",
    SectionType.OTHER: "clause",
    SectionType.AMENDMENT: "clause",
    SectionType.SIGNATURE: "boilerplate",
    SectionType.COVER_LETTER: "boilerplate",
    SectionType.EXHIBIT: "exhibit",
    SectionType.SCHEDULE: "exhibit",
}


def section_slice(section: PositionedSection, full_text: str) -> Tuple[str, int]:
    """Section text clamped to the document bounds, and the offset it starts at."""
    bounds = Span.clamped(section.start_offset, section.end_offset, len(full_text))
    return bounds.slice(full_text), bounds.start


def _definition_start(text: str, match: re.Match) -> int:
    """Start of a definition entry, including a numbering prefix on its line."""
    line_start = text.rfind('\n', 0, match.start()) + 1
    if DEFINITION_NUMBERING.fullmatch(text, line_start, match.start()):
        return line_start
    return match.start()


def paragraph_spans(text: str) -> List[Span]:
    """Spans of the trimmed, non-empty paragraphs of `text`."""
    spans = []
    cursor = 0
    boundaries = [(m.start(), m.end()) for m in PARAGRAPH_BREAK.finditer(text)]
    boundaries.append((len(text), len(text)))

    for break_start, break_end in boundaries:
        raw = text[cursor:break_start]
        stripped = raw.strip()
        if stripped:
            start = cursor + (len(raw) - len(raw.lstrip()))
            spans.append(Span(start, start + len(stripped)))
        cursor = break_end

    return spans


class ChunkStrategies:
    """
    Section-to-chunk strategies sharing one token counter.
    """

    def __init__(self, token_counter: Optional[TokenCounter] = None):
        self.token_counter = token_counter or get_token_counter()

    def _chunk(self, content: str, chunk_type: ChunkType, section_path: List[str],
               span: Span, parent_clause_intro: Optional[str] = None) -> LegalChunk:
        return LegalChunk(
            id="chunk-0",
            index=0,
            content=content,
            section_path=list(section_path),
            token_count=self.token_counter.count_sync(content),
            start_position=span.start,
            end_position=span.end,
            chunk_type=chunk_type,
            metadata=ChunkMetadata(parent_clause_intro=parent_clause_intro),
        )

    def definitions(self, section: PositionedSection, full_text: str,
                    options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """
        One chunk per defined term.

        An entry runs from its term (or the numbering before it) to the next
        entry, so wrapped lines and lettered items stay with their term.
        Text before the first definition becomes a clause chunk when it is
        long enough; a section without recognisable definitions becomes a
        single clause chunk.
        """
        text, base = section_slice(section, full_text)
        matches = list(DEFINITION_ENTRY_PATTERN.finditer(text))
        starts = [_definition_start(text, match) for match in matches]
        chunks = []

        for i, match in enumerate(matches):
            end = starts[i + 1] if i + 1 < len(starts) else len(text)
            content = text[starts[i]:end].strip()
            if not content:
                continue
            chunks.append(self._chunk(
                content,
                ChunkType.DEFINITION,
                section.section_path + [f"Definition: {match.group(1)}"],
                Span(base + starts[i], base + end),
            ))

        if not matches:
            if text.strip():
                chunks.append(self._chunk(
                    text.strip(), ChunkType.CLAUSE, section.section_path,
                    Span(base, base + len(text)),
                ))
            return chunks

        first_start = starts[0]
        preamble = text[:first_start].strip()
        if preamble and self.token_counter.count_sync(preamble) >= config.DEFINITION_PREAMBLE_MIN_TOKENS:
            chunks.insert(0, self._chunk(
                preamble, ChunkType.CLAUSE, section.section_path,
                Span(base, base + first_start),
            ))

        return chunks

    def clause(self, section: PositionedSection, full_text: str,
               options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """
        Split a clause on lettered sub-items (a), (b), ...

        Each sub-clause carries the truncated intro text as
        `parent_clause_intro` so it can be read out of context.
        """
        text, base = section_slice(section, full_text)
        if not text.strip():
            return []

        matches = list(SUB_CLAUSE_PATTERN.finditer(text))

        if not matches:
            return [self._chunk(
                text.strip(), ChunkType.CLAUSE, section.section_path,
                Span(base, base + len(text)),
            )]

        chunks = []
        first_start = matches[0].start()
        intro = text[:first_start].strip()
        intro_for_metadata = (
            self.token_counter.truncate_to_tokens(intro, config.PARENT_INTRO_TOKENS)
            if intro else None
        )

        if intro and self.token_counter.count_sync(intro) >= config.CLAUSE_INTRO_MIN_TOKENS:
            chunks.append(self._chunk(
                intro, ChunkType.CLAUSE, section.section_path,
                Span(base, base + first_start),
            ))

        for i, match in enumerate(matches):
            sub_start = match.start()
            sub_end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
            content = text[sub_start:sub_end].strip()
            if not content:
                continue
            chunks.append(self._chunk(
                content,
                ChunkType.SUB_CLAUSE,
                section.section_path + [f"({match.group(1)})"],
                Span(base + sub_start, base + sub_end),
                parent_clause_intro=intro_for_metadata,
            ))

        return chunks

    def recital(self, section: PositionedSection, full_text: str,
                options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """One chunk per WHEREAS paragraph, numbered in order."""
        text, base = section_slice(section, full_text)
        if not text.strip():
            return []

        whole = self._chunk(
            text.strip(), ChunkType.RECITAL, section.section_path,
            Span(base, base + len(text)),
        )

        chunks = []
        last_end = 0
        for i, match in enumerate(WHEREAS_PATTERN.finditer(text)):
            content = match.group(1).strip()
            if not content:
                continue
            chunks.append(self._chunk(
                content,
                ChunkType.RECITAL,
                section.section_path + [f"Recital {i + 1}"],
                Span(base + match.start(), base + match.end()),
            ))
            last_end = match.end()

        if not chunks:
            return [whole]

        # Operative words after the last recital ("NOW, THEREFORE, ...")
        remainder = text[last_end:]
        if remainder.strip() and self.token_counter.count_sync(remainder.strip()) >= config.GAP_MIN_TOKENS:
            chunks.append(self._chunk(
                remainder.strip(), ChunkType.CLAUSE, section.section_path,
                Span(base + last_end, base + len(text)),
            ))

        return chunks

    def boilerplate(self, section: PositionedSection, full_text: str,
                    options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """Signature blocks and cover letters: a single chunk, flagged for embedding skip."""
        text, base = section_slice(section, full_text)
        if not text.strip():
            return []
        return [self._chunk(
            text.strip(), ChunkType.BOILERPLATE, section.section_path,
            Span(base, base + len(text)),
        )]

    def exhibit(self, section: PositionedSection, full_text: str,
                options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """One chunk if it fits the token limit, otherwise paragraph packing."""
        options = options or ChunkOptions()
        text, base = section_slice(section, full_text)
        if not text.strip():
            return []

        if self.token_counter.count_sync(text) <= options.max_tokens:
            return [self._chunk(
                text.strip(), ChunkType.EXHIBIT, section.section_path,
                Span(base, base + len(text)),
            )]

        return self.fallback(text, base, options,
                             section.section_path, ChunkType.EXHIBIT)

    def fallback(self, text: str, start_offset: int,
                 options: Optional[ChunkOptions] = None,
                 section_path: Optional[List[str]] = None,
                 chunk_type: ChunkType = ChunkType.FALLBACK) -> List[LegalChunk]:
        """
        Greedy paragraph packing up to `target_tokens`.

        Args:
            text: Text to chunk (a slice of the document)
            start_offset: Document offset of `text[0]`
            options: Chunk sizing options
            section_path: Path given to every produced chunk
            chunk_type: Type given to every produced chunk

        Returns:
            Chunks whose spans cover first..last packed paragraph
        """
        options = options or ChunkOptions()
        path = section_path or []
        chunks = []

        current: List[str] = []
        current_span: Optional[Span] = None

        for span in paragraph_spans(text):
            paragraph = span.slice(text)
            potential = "\n\n".join(current + [paragraph])

            if current and self.token_counter.count_sync(potential) > options.target_tokens:
                chunks.append(self._chunk(
                    "\n\n".join(current), chunk_type, path, current_span.shift(start_offset)
                ))
                current = [paragraph]
                current_span = span
            else:
                current.append(paragraph)
                current_span = span if current_span is None else current_span.union(span)

        if current:
            chunks.append(self._chunk(
                "\n\n".join(current), chunk_type, path, current_span.shift(start_offset)
            ))

        return chunks

    def strategy_for(self, section: PositionedSection, full_text: str) -> str:
        """Name of the strategy a section is routed to."""
        raw, _ = section_slice(section, full_text)
        if RECITAL_SIGNAL.search(raw) or RECITAL_TITLE.search(section.title):
            return "recital"
        return STRATEGY_BY_SECTION_TYPE.get(section.type, "clause")

    def dispatch(self, section: PositionedSection, full_text: str,
                 options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
        """Route a section to its strategy and chunk it."""
        strategy = getattr(self, self.strategy_for(section, full_text))
        return strategy(section, full_text, options)


_default_strategies: Optional[ChunkStrategies] = None


def _strategies() -> ChunkStrategies:
    global _default_strategies
    if _default_strategies is None:
        _default_strategies = ChunkStrategies()
    return _default_strategies


def chunk_definitions(section: PositionedSection, full_text: str,
                      options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    return _strategies().definitions(section, full_text, options)


def chunk_clause(section: PositionedSection, full_text: str,
                 options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    return _strategies().clause(section, full_text, options)


def chunk_recital(section: PositionedSection, full_text: str,
                  options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    return _strategies().recital(section, full_text, options)


def chunk_boilerplate(section: PositionedSection, full_text: str,
                      options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    return _strategies().boilerplate(section, full_text, options)


def chunk_exhibit(section: PositionedSection, full_text: str,
                  options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    return _strategies().exhibit(section, full_text, options)


def chunk_fallback(text: str, start_offset: int = 0,
                   options: Optional[ChunkOptions] = None,
                   section_path: Optional[List[str]] = None,
                   chunk_type: ChunkType = ChunkType.FALLBACK) -> List[LegalChunk]:
    return _strategies().fallback(text, start_offset, options, section_path, chunk_type)


def dispatch_section(section: PositionedSection, full_text: str,
                     options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    """Chunk a section with the default token counter."""
    return _strategies().dispatch(section, full_text, options)
