"""
Intelligent Legal Document Chunker
Turns document text plus its detected structure into right-sized,
position-tracked chunks for embedding and clause classification.

Pipeline: validate structure -> chunk by section -> quality gate (optional
LLM re-chunk) -> merge short -> split oversized -> cross-references ->
overlap -> re-index.
"""

import logging
import math
import re
import time
from dataclasses import replace
from typing import List, Optional

import config
from chunk_merger import merge_short_chunks, split_oversized_chunks
from chunk_strategies import ChunkStrategies
from cross_reference import CrossReferenceExtractor
from document_types import (
    ChunkOptions,
    DocumentStructure,
    LegalChunk,
    PositionedSection,
    Span,
)
from structure_detector import StructureDetector
from token_counter import TokenCounter, get_token_counter


logger = logging.getLogger(__name__)


REGEX_TITLE_INDICATOR = re.compile(r'^(ARTICLE|Section|SECTION|\d+\.)', re.IGNORECASE)


def infer_structure_source(structure: DocumentStructure) -> str:
    """
    Guess whether a structure came from regex or the LLM.

    Used only when neither the caller nor the structure records its source:
    regex when more than half the titles look like regex-made headings.
    """
    if not structure.sections:
        return "regex"
    regex_count = sum(1 for s in structure.sections if REGEX_TITLE_INDICATOR.match(s.title))
    return "regex" if regex_count > len(structure.sections) / 2 else "llm"


def estimate_pages(text_length: int) -> int:
    return math.ceil(text_length / config.CHARS_PER_PAGE)


def should_trigger_rechunk(section_count: int, chunk_count: int, text_length: int) -> bool:
    """
    Quality gate for LLM re-chunking.

    True when no sections were found, or when a document of at least
    `MIN_PAGES_FOR_RATIO_CHECK` estimated pages yields fewer than
    `MIN_CHUNK_PAGE_RATIO` chunks per page.
    """
    if section_count == 0:
        return True

    pages = estimate_pages(text_length)
    if pages < config.MIN_PAGES_FOR_RATIO_CHECK:
        return False

    ratio = chunk_count / pages
    if ratio < config.MIN_CHUNK_PAGE_RATIO:
        logger.info(
            f"Low chunk quality: {chunk_count} chunks / {pages} est. pages = {ratio:.1f} "
            f"(threshold {config.MIN_CHUNK_PAGE_RATIO})"
        )
        return True
    return False


def validate_structure(text: str, structure: DocumentStructure) -> DocumentStructure:
    """
    Clamp sections to the text, drop empty ones and log anomalies.

    Overlaps and low coverage are logged only; nothing is raised.
    """
    text_length = len(text)
    sections: List[PositionedSection] = []

    for section in structure.sections:
        span = Span.clamped(section.start_offset, section.end_offset, text_length)
        if span.length == 0:
            logger.warning(
                f"Section '{section.title}' has invalid range "
                f"[{section.start_offset}, {section.end_offset}], skipping"
            )
            continue

        if span.start != section.start_offset or span.end != section.end_offset:
            logger.warning(
                f"Section '{section.title}' positions clamped: "
                f"[{section.start_offset}, {section.end_offset}] -> [{span.start}, {span.end}]"
            )

        sections.append(replace(
            section,
            start_offset=span.start,
            end_offset=span.end,
            section_path=list(section.section_path),
        ))

    ordered = sorted(sections, key=lambda s: s.start_offset)
    for current, following in zip(ordered, ordered[1:]):
        if current.end_offset > following.start_offset:
            logger.warning(
                f"Overlapping sections: '{current.title}' ends at {current.end_offset} "
                f"but '{following.title}' starts at {following.start_offset}"
            )

    if ordered and text_length > 0:
        covered = sum(s.end_offset - s.start_offset for s in ordered)
        coverage = covered / text_length
        if coverage < config.MIN_COVERAGE_RATIO:
            logger.warning(
                f"Low structure coverage: {coverage * 100:.1f}% of text covered "
                f"by sections ({covered}/{text_length} chars)"
            )

    return replace(structure, sections=sections)


def extract_overlap_text(text: str, target_tokens: int,
                         token_counter: Optional[TokenCounter] = None) -> str:
    """
    Take about `target_tokens` tokens of whole words from the end of `text`.

    Never returns more than 1.5x the target unless a single word exceeds it.
    """
    counter = token_counter or get_token_counter()
    words = text.split()
    overlap: List[str] = []

    for word in reversed(words):
        overlap.insert(0, word)
        if counter.count_sync(" ".join(overlap)) >= target_tokens:
            break

    if counter.count_sync(" ".join(overlap)) > target_tokens * 1.5:
        while len(overlap) > 1 and counter.count_sync(" ".join(overlap)) > target_tokens:
            overlap.pop(0)

    return " ".join(overlap)


def add_overlap(chunks: List[LegalChunk], overlap_tokens: int,
                token_counter: Optional[TokenCounter] = None) -> List[LegalChunk]:
    """
    Prepend the tail of each chunk's predecessor to the chunk.

    Positions keep pointing at the non-overlapped original span.
    """
    if overlap_tokens <= 0 or len(chunks) <= 1:
        return chunks

    counter = token_counter or get_token_counter()
    result = [chunks[0]]

    for previous, current in zip(chunks, chunks[1:]):
        overlap_text = extract_overlap_text(previous.content, overlap_tokens, counter)
        if not overlap_text:
            result.append(current)
            continue

        content = f"{overlap_text}\n\n{current.content}"
        result.append(replace(
            current,
            content=content,
            token_count=counter.count_sync(content),
            metadata=replace(
                current.metadata,
                is_overlap=True,
                overlap_tokens=counter.count_sync(overlap_text),
            ),
        ))

    return result


def embeddable_chunks(chunks: List[LegalChunk],
                      options: Optional[ChunkOptions] = None) -> List[LegalChunk]:
    """Chunks worth embedding; boilerplate is dropped when configured to skip it."""
    options = options or ChunkOptions()
    if not options.skip_boilerplate_embedding:
        return list(chunks)
    return [c for c in chunks if not c.is_boilerplate]


class LegalChunker:
    """
    Legal-aware document chunker.

    Holds the token counter, strategies and structure detector used for
    one or more documents; per-document state lives only inside `chunk()`.
    """

    def __init__(self,
                 options: Optional[ChunkOptions] = None,
                 token_counter: Optional[TokenCounter] = None,
                 detector: Optional[StructureDetector] = None):
        """
        Initialize the chunker.

        Args:
            options: Token budgets; defaults come from config
            token_counter: Shared counter; the process-wide one by default
            detector: Structure detector for missing structures and re-chunking
        """
        self.options = options or ChunkOptions()
        self.token_counter = token_counter or get_token_counter()
        self.detector = detector or StructureDetector()
        self.strategies = ChunkStrategies(self.token_counter)

    def _gap_chunks(self, text: str, start: int, end: int, section_path: List[str]) -> List[LegalChunk]:
        """Fallback chunks for uncovered text, when it clears the token floor."""
        if end <= start:
            return []
        gap = text[start:end]
        stripped = gap.strip()
        if not stripped or self.token_counter.count_sync(stripped) < config.GAP_MIN_TOKENS:
            return []
        return self.strategies.fallback(gap, start, self.options, section_path)

    def chunk_sections(self, text: str, sections: List[PositionedSection]) -> List[LegalChunk]:
        """
        Dispatch each section to its strategy, covering the preamble,
        inter-section gaps and trailing text with fallback chunks.
        """
        ordered = sorted(sections, key=lambda s: s.start_offset)
        if not ordered:
            return []

        chunks = self._gap_chunks(text, 0, ordered[0].start_offset, ["Preamble"])

        for i, section in enumerate(ordered):
            chunks.extend(self.strategies.dispatch(section, text, self.options))
            if i + 1 < len(ordered):
                chunks.extend(self._gap_chunks(
                    text, section.end_offset, ordered[i + 1].start_offset, section.section_path
                ))

        last_end = max(s.end_offset for s in ordered)
        chunks.extend(self._gap_chunks(text, last_end, len(text), ["Trailing"]))
        return chunks

    async def _attempt_llm_rechunk(self, text: str,
                                   initial_chunks: List[LegalChunk]) -> Optional[List[LegalChunk]]:
        """
        Re-detect structure with the LLM and keep the result only if it is
        better: strictly more chunks, or an acceptable chunk/page ratio.
        """
        pages = estimate_pages(len(text))
        started = time.monotonic()
        logger.info(
            f"Attempting LLM re-chunking: {len(initial_chunks)} initial chunks, {pages} est. pages"
        )

        llm_structure = validate_structure(text, await self.detector.detect(text, force_llm=True))
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if not llm_structure.sections:
            logger.info(f"LLM re-chunking returned no sections ({elapsed_ms}ms); keeping initial chunks")
            return None

        llm_chunks = self.chunk_sections(text, llm_structure.sections)
        ratio = len(llm_chunks) / pages if pages > 0 else float(len(llm_chunks))

        if len(llm_chunks) > len(initial_chunks) or ratio >= config.MIN_CHUNK_PAGE_RATIO:
            logger.info(
                f"LLM re-chunking improved results in {elapsed_ms}ms: "
                f"{len(initial_chunks)} -> {len(llm_chunks)} chunks (ratio {ratio:.1f})"
            )
            return llm_chunks

        logger.info(
            f"LLM re-chunking did not improve results ({elapsed_ms}ms): {len(llm_chunks)} chunks "
            f"(ratio {ratio:.1f}); keeping initial {len(initial_chunks)} chunks"
        )
        return None

    async def chunk(self, text: str,
                    structure: Optional[DocumentStructure] = None,
                    structure_source: Optional[str] = None) -> List[LegalChunk]:
        """
        Chunk a legal document.

        Args:
            text: Full extracted document text
            structure: Structure from the detector; detected here when None
            structure_source: 'regex' or 'llm'; when 'llm' the re-chunk
                fallback is skipped

        Returns:
            Re-indexed chunks ready for embedding and storage
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")

        await self.token_counter.init_tokenizer()

        if structure is None:
            structure = await self.detector.detect(text)

        validated = validate_structure(text, structure)
        source = structure_source or structure.structure_source or infer_structure_source(validated)

        if not validated.sections:
            chunks = self.strategies.fallback(text, 0, self.options)
        else:
            chunks = self.chunk_sections(text, validated.sections)
        logger.debug(f"Initial chunking produced {len(chunks)} chunk(s) from {len(validated.sections)} section(s)")

        if source == "regex" and should_trigger_rechunk(len(validated.sections), len(chunks), len(text)):
            rechunked = await self._attempt_llm_rechunk(text, chunks)
            if rechunked is not None:
                chunks = rechunked
                source = "llm"

        if not chunks and text.strip():
            chunks = self.strategies.fallback(text, 0, self.options)

        chunks = merge_short_chunks(chunks, self.options.min_chunk_tokens, self.token_counter)
        chunks = split_oversized_chunks(chunks, self.options.max_tokens, self.token_counter)

        CrossReferenceExtractor.annotate_references(chunks)
        for chunk in chunks:
            chunk.metadata.structure_source = source

        chunks = add_overlap(chunks, self.options.overlap_tokens, self.token_counter)

        for i, chunk in enumerate(chunks):
            chunk.index = i
            chunk.id = f"chunk-{i}"

        logger.info(f"Chunked document into {len(chunks)} chunk(s) (structure source: {source})")
        return chunks


async def chunk_legal_document(text: str,
                               structure: Optional[DocumentStructure] = None,
                               options: Optional[ChunkOptions] = None,
                               structure_source: Optional[str] = None,
                               token_counter: Optional[TokenCounter] = None,
                               detector: Optional[StructureDetector] = None) -> List[LegalChunk]:
    """Chunk a legal document with a one-off chunker."""
    chunker = LegalChunker(options=options, token_counter=token_counter, detector=detector)
    return await chunker.chunk(text, structure=structure, structure_source=structure_source)
