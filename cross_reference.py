"""
Cross-Reference Extractor
Extracts internal document references (sections, articles, exhibits) from
chunk text so downstream consumers know which parts of the agreement a
chunk depends on.
"""

import re
from typing import List

from document_types import LegalChunk


class CrossReferenceExtractor:
    """
    Extracts section, article, clause and exhibit references.
    Results are advisory linkage data; no false-positive filtering is
    applied beyond the pattern anchors.
    """

    CROSS_REF_PATTERNS = [
        # "Section 3.1", "Section 3.1(a)", "Section 3.1.2"
        re.compile(r'Section\s+(\d+(?:\.\d+)*(?:\([a-z]\))?)', re.IGNORECASE),
        # "Article I", "Article IV", "Article 5"
        re.compile(r'(?i:Article)\s+([IVXLC]+|\d+)\b'),
        # "paragraph 2.3", "clause 4(b)"
        re.compile(r'(?:paragraph|clause)\s+(\d+(?:\.\d+)*(?:\([a-z]\))?)', re.IGNORECASE),
        # "as defined in Section 1", "pursuant to Section 7.4"
        re.compile(
            r'(?:as defined in|pursuant to|in accordance with|subject to|under)\s+'
            r'Section\s+(\d+(?:\.\d+)*)',
            re.IGNORECASE
        ),
        # "Exhibit A", "Schedule 1", "Annex B"
        re.compile(r'(?i:Exhibit|Schedule|Attachment|Annex)\s+([A-Z]{1,2}|\d+)\b'),
    ]

    @classmethod
    def extract_cross_references(cls, text: str) -> List[str]:
        """
        Extract all cross-references from text.

        Args:
            text: Legal text to search

        Returns:
            Sorted, deduplicated list of bare reference tokens
        """
        references = set()

        for pattern in cls.CROSS_REF_PATTERNS:
            for match in pattern.finditer(text):
                if match.group(1):
                    references.add(match.group(1))

        return sorted(references)

    @classmethod
    def annotate_references(cls, chunks: List[LegalChunk]) -> List[LegalChunk]:
        """Fill `metadata.references` on each chunk from its own content."""
        for chunk in chunks:
            chunk.metadata.references = cls.extract_cross_references(chunk.content)
        return chunks


def extract_cross_references(text: str) -> List[str]:
    """Extract sorted, deduplicated cross-references from legal text."""
    return CrossReferenceExtractor.extract_cross_references(text)
