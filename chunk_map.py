"""
Chunk Map
Summary statistics and a compact per-chunk listing for inspecting how a
document was chunked.
"""

from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import List, Dict

from document_types import LegalChunk


PREVIEW_CHARS = 100


@dataclass
class ChunkStats:
    total_chunks: int = 0
    avg_tokens: int = 0
    min_tokens: int = 0
    max_tokens: int = 0
    distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ChunkMapEntry:
    index: int
    section_path: List[str]
    type: str
    token_count: int
    preview: str


@dataclass
class ChunkMap:
    document_id: str
    stats: ChunkStats
    entries: List[ChunkMapEntry] = field(default_factory=list)

    def to_dict(self) -> Dict:
        data = {'document_id': self.document_id}
        data.update(self.stats.to_dict())
        data['entries'] = [asdict(e) for e in self.entries]
        return data


def compute_chunk_stats(chunks: List[LegalChunk]) -> ChunkStats:
    """Token statistics and the chunk-type distribution."""
    if not chunks:
        return ChunkStats()

    token_counts = [c.token_count for c in chunks]
    distribution = Counter(c.chunk_type.value for c in chunks)

    return ChunkStats(
        total_chunks=len(chunks),
        avg_tokens=round(sum(token_counts) / len(chunks)),
        min_tokens=min(token_counts),
        max_tokens=max(token_counts),
        distribution=dict(distribution),
    )


def generate_chunk_map(chunks: List[LegalChunk], document_id: str) -> ChunkMap:
    """Build the chunk map of a document."""
    entries = [
        ChunkMapEntry(
            index=chunk.index,
            section_path=list(chunk.section_path),
            type=chunk.chunk_type.value,
            token_count=chunk.token_count,
            preview=chunk.content[:PREVIEW_CHARS],
        )
        for chunk in chunks
    ]
    return ChunkMap(document_id=document_id, stats=compute_chunk_stats(chunks), entries=entries)
