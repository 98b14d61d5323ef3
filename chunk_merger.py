"""
Chunk Merger
Merges undersized chunks into their next sibling and splits oversized chunks
at sentence (or word) boundaries.
"""

import re
from dataclasses import replace
from typing import List, Optional

import config
from document_types import ChunkType, LegalChunk, Span
from token_counter import TokenCounter, get_token_counter


# Period or semicolon, whitespace, then a capital or opening parenthesis
SENTENCE_BOUNDARY = re.compile(r'(?<=[.;])\s+(?=[A-Z(])')
SIMPLE_SENTENCE_BOUNDARY = re.compile(r'(?<=\.)\s+')
WORD = re.compile(r'\S+')


def can_merge(a: LegalChunk, b: LegalChunk) -> bool:
    """Same boilerplate classification and same top-level section."""
    if a.is_boilerplate != b.is_boilerplate:
        return False
    a_top = a.section_path[0] if a.section_path else ""
    b_top = b.section_path[0] if b.section_path else ""
    return a_top == b_top


def merge_short_chunks(chunks: List[LegalChunk],
                       min_tokens: int = config.MIN_CHUNK_TOKENS,
                       token_counter: Optional[TokenCounter] = None) -> List[LegalChunk]:
    """
    Merge each chunk under `min_tokens` with its immediate next sibling.

    Args:
        chunks: Chunks in document order
        min_tokens: Chunks below this are merge candidates
        token_counter: Counter for the merged content

    Returns:
        New chunk list; merged chunks are typed `merged`
    """
    if len(chunks) <= 1:
        return chunks

    counter = token_counter or get_token_counter()
    result = []
    i = 0

    while i < len(chunks):
        current = chunks[i]
        if (current.token_count < min_tokens
                and i + 1 < len(chunks)
                and can_merge(current, chunks[i + 1])):
            following = chunks[i + 1]
            content = f"{current.content}\n\n{following.content}"
            span = current.span.union(following.span)
            references = sorted(set(current.metadata.references) | set(following.metadata.references))

            result.append(replace(
                current,
                content=content,
                section_path=list(current.section_path),
                token_count=counter.count_sync(content),
                start_position=span.start,
                end_position=span.end,
                chunk_type=ChunkType.MERGED,
                metadata=replace(current.metadata, references=references),
            ))
            i += 2
        else:
            result.append(current)
            i += 1

    return result


def _piece_spans(content: str, boundary: re.Pattern) -> List[Span]:
    """Spans of the non-blank pieces between boundary matches."""
    spans = []
    cursor = 0
    for match in boundary.finditer(content):
        if content[cursor:match.start()].strip():
            spans.append(Span(cursor, match.start()))
        cursor = match.end()
    if content[cursor:].strip():
        spans.append(Span(cursor, len(content)))
    return spans


def sentence_spans(content: str) -> List[Span]:
    """Sentence spans within `content`, with a plain period split as fallback."""
    spans = _piece_spans(content, SENTENCE_BOUNDARY)
    if len(spans) <= 1:
        simple = _piece_spans(content, SIMPLE_SENTENCE_BOUNDARY)
        if len(simple) > 1:
            return simple
    return spans


class ChunkSplitter:
    """Splits one oversized chunk into `split` sub-chunks within a token limit."""

    def __init__(self, max_tokens: int = config.MAX_TOKENS,
                 token_counter: Optional[TokenCounter] = None):
        self.max_tokens = max_tokens
        self.token_counter = token_counter or get_token_counter()

    def _pack(self, content: str, units: List[Span]) -> List[List[Span]]:
        """Greedily group units while the space-joined text fits the limit."""
        groups: List[List[Span]] = []
        current: List[Span] = []

        for unit in units:
            candidate = " ".join(u.slice(content) for u in current + [unit])
            if current and self.token_counter.count_sync(candidate) > self.max_tokens:
                groups.append(current)
                current = [unit]
            else:
                current.append(unit)

        if current:
            groups.append(current)
        return groups

    def _groups(self, content: str) -> List[List[Span]]:
        sentences = sentence_spans(content)
        if len(sentences) <= 1:
            return self._pack(content, [Span(m.start(), m.end()) for m in WORD.finditer(content)])

        groups = []
        for group in self._pack(content, sentences):
            text = group[0].slice(content)
            # A lone sentence over the limit is packed again by words
            if len(group) == 1 and self.token_counter.count_sync(text) > self.max_tokens:
                words = [Span(m.start(), m.end()).shift(group[0].start) for m in WORD.finditer(text)]
                groups.extend(self._pack(content, words))
            else:
                groups.append(group)
        return groups

    def split(self, chunk: LegalChunk) -> List[LegalChunk]:
        if chunk.token_count <= self.max_tokens:
            return [chunk]

        content = chunk.content
        intro = chunk.metadata.parent_clause_intro or content[:config.SPLIT_INTRO_CHARS]
        sub_chunks = []

        for group in self._groups(content):
            sub_content = " ".join(unit.slice(content) for unit in group)
            span = Span.clamped(
                chunk.start_position + group[0].start,
                chunk.start_position + group[-1].end,
                chunk.end_position,
            )
            sub_chunks.append(replace(
                chunk,
                content=sub_content,
                section_path=list(chunk.section_path),
                token_count=self.token_counter.count_sync(sub_content),
                start_position=span.start,
                end_position=span.end,
                chunk_type=ChunkType.SPLIT,
                metadata=replace(
                    chunk.metadata,
                    parent_clause_intro=intro,
                    references=list(chunk.metadata.references),
                ),
            ))

        return sub_chunks or [chunk]


def split_oversized_chunks(chunks: List[LegalChunk],
                           max_tokens: int = config.MAX_TOKENS,
                           token_counter: Optional[TokenCounter] = None) -> List[LegalChunk]:
    """
    Split every chunk above `max_tokens`.

    A single word longer than the limit cannot be split further and is kept
    whole.
    """
    splitter = ChunkSplitter(max_tokens, token_counter)
    result = []
    for chunk in chunks:
        result.extend(splitter.split(chunk))
    return result
