"""
Legal Document Structure Detector
Detects the heading hierarchy of extracted document text.

Deterministic pattern matching runs first. When it finds nothing (or the
caller forces it), a generative model is asked for the heading list only,
and section content is rebuilt by slicing the original text.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Dict, Optional, Tuple, Callable

from langchain_core.messages import SystemMessage, HumanMessage
from pydantic import BaseModel, Field

import config
from document_types import (
    DocumentStructure,
    PartyInfo,
    PositionedSection,
    SectionType,
    Span,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Section Type Classification
# ============================================================================

# Ordered: first matching rule wins
SECTION_TYPE_RULES: Tuple[Tuple[re.Pattern, SectionType], ...] = (
    (re.compile(r'defin', re.IGNORECASE), SectionType.DEFINITIONS),
    (re.compile(r'\b(?:exhibit|attachment|annex|appendix)\b', re.IGNORECASE), SectionType.EXHIBIT),
    (re.compile(r'\bschedule\b', re.IGNORECASE), SectionType.SCHEDULE),
    (re.compile(r'signature|witness\s+whereof|executed', re.IGNORECASE), SectionType.SIGNATURE),
    (re.compile(r'amendment', re.IGNORECASE), SectionType.AMENDMENT),
    (re.compile(r'cover\s+letter|transmittal|^dear\b', re.IGNORECASE), SectionType.COVER_LETTER),
    # Recitals stay clauses; the chunker routes them on content
    (re.compile(r'recital|whereas|witnesseth|background|now,?\s+therefore', re.IGNORECASE), SectionType.CLAUSE),
    (re.compile(r'^(?:article|section|sec\.|part)\b', re.IGNORECASE), SectionType.HEADING),
)


def classify_section_type(title: str) -> SectionType:
    """Classify a section from its heading text."""
    title = title.strip()
    for pattern, section_type in SECTION_TYPE_RULES:
        if pattern.search(title):
            return section_type
    return SectionType.CLAUSE


def _fixed_type(section_type: SectionType) -> Callable[[str], SectionType]:
    return lambda title: section_type


# ============================================================================
# Heading Pattern Catalogue
# ============================================================================

# Standalone ALL-CAPS lines only count as headings when they name a known
# legal heading
KNOWN_HEADING_TERMS = frozenset({
    "DEFINITIONS", "DEFINED TERMS", "INTERPRETATION", "RECITALS", "BACKGROUND",
    "PURPOSE", "SCOPE", "CONFIDENTIALITY", "CONFIDENTIAL INFORMATION",
    "OBLIGATIONS", "OBLIGATIONS OF RECEIVING PARTY", "PERMITTED DISCLOSURE",
    "PERMITTED DISCLOSURES", "EXCLUSIONS", "EXCEPTIONS", "TERM", "TERMINATION",
    "TERM AND TERMINATION", "DURATION", "RETURN OF MATERIALS",
    "RETURN OR DESTRUCTION OF CONFIDENTIAL INFORMATION", "REMEDIES",
    "INJUNCTIVE RELIEF", "NO LICENSE", "OWNERSHIP", "INTELLECTUAL PROPERTY",
    "WARRANTIES", "NO WARRANTY", "REPRESENTATIONS AND WARRANTIES",
    "INDEMNIFICATION", "LIMITATION OF LIABILITY", "NON-SOLICITATION",
    "NON-COMPETITION", "NON-CIRCUMVENTION", "GOVERNING LAW",
    "GOVERNING LAW AND JURISDICTION", "JURISDICTION", "DISPUTE RESOLUTION",
    "ARBITRATION", "NOTICES", "ASSIGNMENT", "SEVERABILITY", "WAIVER",
    "ENTIRE AGREEMENT", "AMENDMENTS", "AMENDMENT", "COUNTERPARTS",
    "MISCELLANEOUS", "GENERAL", "GENERAL PROVISIONS", "SURVIVAL",
    "EXPORT CONTROL", "PUBLICITY", "COMPELLED DISCLOSURE", "SIGNATURES",
    "SIGNATURE PAGE", "ANNEXES", "EXHIBITS", "SCHEDULES",
})

_ALL_CAPS_LINE = re.compile(r"^[A-Z][A-Z0-9 ,&'/\-]{2,60}[.:]?$")

MAX_HEADING_CHARS = 150


@dataclass(frozen=True)
class HeadingPattern:
    """
    One entry of the heading catalogue.

    Attributes:
        name: Identifier used in logs
        regex: Matches a heading line (MULTILINE, anchored at line start);
            group 'marker' is the structural marker itself
        level: Hierarchy depth 1-4
        rank: Specificity; lower wins when several patterns hit one line
        classifier: Maps the heading title to a SectionType
        title_from_marker: Use the marker instead of the line as title
        collapse_runs: Drop a match that directly follows another match of
            the same pattern (e.g. consecutive WHEREAS paragraphs)
        validator: Extra check on the stripped heading line
    """
    name: str
    regex: re.Pattern
    level: int
    rank: int
    classifier: Callable[[str], SectionType] = classify_section_type
    title_from_marker: bool = False
    collapse_runs: bool = False
    validator: Optional[Callable[[str], bool]] = None


def _line_pattern(marker: str) -> re.Pattern:
    return re.compile(r'^[ \t]*(?P<marker>' + marker + r')', re.MULTILINE)


def _is_known_caps_heading(line: str) -> bool:
    if not _ALL_CAPS_LINE.match(line):
        return False
    normalized = re.sub(r'\s+', ' ', line.rstrip('.:')).strip()
    return normalized in KNOWN_HEADING_TERMS


# 1.1 "Confidential Information" means ... is a definition entry, not a heading
_DEFINITION_LINE = re.compile(
    r'^(?:(?:SECTION|Section|Sec\.)[ \t]+)?\d+(?:\.\d+)*\.?[ \t]+'
    r'["“”][^"“”]+["“”]\s+(?:means|shall mean|refers to|has the meaning|is defined as)\b',
    re.IGNORECASE
)


def _is_not_definition_entry(line: str) -> bool:
    return not _DEFINITION_LINE.match(line)


# Separator or title text must follow a numeric marker for it to be a heading
_TITLE_FOLLOWS = r'(?=[ \t]*(?:$|[.:\-–—]|[A-Z("“]))'
_TITLE_CASE_PHRASE = r"[A-Z][A-Za-z'\-]+(?:[ \t]+(?:[A-Z][A-Za-z'\-]*|of|and|or|to|the|for|in|on))*"

HEADING_PATTERNS: Tuple[HeadingPattern, ...] = (
    # ARTICLE I - DEFINITIONS, Article 2: Confidentiality, PART II
    HeadingPattern(
        name="article",
        regex=_line_pattern(r'(?:ARTICLE|Article|PART)[ \t]+(?:[IVXLC]+|\d+)\b' + _TITLE_FOLLOWS),
        level=1,
        rank=0,
    ),
    # EXHIBIT A, SCHEDULE 1, ANNEX B
    HeadingPattern(
        name="exhibit",
        regex=_line_pattern(r'(?:EXHIBIT|SCHEDULE|ATTACHMENT|ANNEX|APPENDIX)[ \t]+[A-Z\d]{1,3}\b'),
        level=1,
        rank=0,
    ),
    # Section 2.1 Scope, Section 3.1.2
    HeadingPattern(
        name="section_decimal",
        regex=_line_pattern(r'(?:SECTION|Section|Sec\.)[ \t]+\d+\.\d+(?!\.\d)\.?' + _TITLE_FOLLOWS),
        level=3,
        rank=1,
        validator=_is_not_definition_entry,
    ),
    HeadingPattern(
        name="section_subdecimal",
        regex=_line_pattern(r'(?:SECTION|Section|Sec\.)[ \t]+\d+\.\d+\.\d+\.?' + _TITLE_FOLLOWS),
        level=4,
        rank=1,
        validator=_is_not_definition_entry,
    ),
    # Section 1. Definitions, SECTION 2 - TERM
    HeadingPattern(
        name="section",
        regex=_line_pattern(r'(?:SECTION|Section|Sec\.|§)[ \t]*\d+(?![.\d]\d)\.?' + _TITLE_FOLLOWS),
        level=2,
        rank=1,
    ),
    # 1. DEFINITIONS, 2. Confidential Information.
    HeadingPattern(
        name="numbered",
        regex=_line_pattern(
            r"\d{1,3}\.(?!\d)[ \t]+(?:[A-Z][A-Z0-9 ,;&'/\-]{2,}(?=[.:]?[ \t]*$)|"
            + _TITLE_CASE_PHRASE + r"(?=[.:](?:\s|$)|[ \t]*$))"
        ),
        level=2,
        rank=2,
    ),
    # IV. REMEDIES
    HeadingPattern(
        name="roman",
        regex=_line_pattern(
            r"[IVXLC]{1,6}\.[ \t]+(?:[A-Z][A-Z0-9 ,;&'/\-]{2,}(?=[.:]?[ \t]*$)|"
            + _TITLE_CASE_PHRASE + r"(?=[.:](?:\s|$)|[ \t]*$))"
        ),
        level=2,
        rank=2,
    ),
    # 2.1 Scope, 3.1.2 Exceptions
    HeadingPattern(
        name="decimal",
        regex=_line_pattern(r'\d{1,3}\.\d{1,3}(?!\.\d)\.?[ \t]+(?=[A-Z("“])'),
        level=3,
        rank=3,
        validator=_is_not_definition_entry,
    ),
    HeadingPattern(
        name="subdecimal",
        regex=_line_pattern(r'\d{1,3}\.\d{1,3}\.\d{1,3}\.?[ \t]+(?=[A-Z("“])'),
        level=4,
        rank=3,
        validator=_is_not_definition_entry,
    ),
    # (a) Purpose. -- only short title-case captions, not running sub-clauses
    HeadingPattern(
        name="lettered",
        regex=_line_pattern(r'\([a-z]\)[ \t]+[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+){0,4}\.(?=\s|$)'),
        level=4,
        rank=4,
    ),
    # RECITALS, WITNESSETH, WHEREAS, NOW THEREFORE (first of a run)
    HeadingPattern(
        name="preamble",
        regex=_line_pattern(r'(?:RECITALS|Recitals|W[ \t]*I[ \t]*T[ \t]*N[ \t]*E[ \t]*S[ \t]*S[ \t]*E[ \t]*T[ \t]*H|WHEREAS|NOW,?[ \t]+THEREFORE)\b'),
        level=2,
        rank=5,
        title_from_marker=True,
        collapse_runs=True,
    ),
    HeadingPattern(
        name="signature",
        regex=_line_pattern(r'IN WITNESS WHEREOF'),
        level=2,
        rank=5,
        classifier=_fixed_type(SectionType.SIGNATURE),
        title_from_marker=True,
    ),
    # DEFINITIONS, GOVERNING LAW
    HeadingPattern(
        name="all_caps",
        regex=re.compile(r"^[ \t]*(?P<marker>[A-Z][A-Z0-9 ,&'/\-]{2,60}[.:]?)[ \t]*$", re.MULTILINE),
        level=2,
        rank=6,
        validator=_is_known_caps_heading,
    ),
)


@dataclass
class HeadingMatch:
    """A heading candidate found in the text."""
    title: str
    level: int
    type: SectionType
    start: Optional[int] = None  # Known for regex matches, searched for LLM headings
    rank: int = 0
    pattern_name: str = "llm"


_NUMBERING_PREFIX = re.compile(
    r'^(?:(?:ARTICLE|Article|PART|SECTION|Section|Sec\.|§)[ \t]*)?'
    r'(?:[IVXLC]+|\d+(?:\.\d+)*|\([a-z]\))\.?[ \t]*'
)
_CAPTION_END = re.compile(r'[.:](?=[ \t]+\S)')


def _heading_title(line: str, marker: str, title_from_marker: bool) -> str:
    """Pick the heading title from its line, dropping run-in body text."""
    if title_from_marker:
        return marker.strip()

    # Run-in heading: "1.1 Scope. The Receiving Party shall ..."
    numbering = _NUMBERING_PREFIX.match(line)
    caption_start = numbering.end() if numbering else 0
    caption_end = _CAPTION_END.search(line, caption_start)
    if caption_end and caption_end.start() > caption_start:
        line = line[:caption_end.start() + 1]

    return line[:MAX_HEADING_CHARS].rstrip()


def scan_headings(text: str, patterns: Tuple[HeadingPattern, ...] = HEADING_PATTERNS) -> List[HeadingMatch]:
    """
    Run the heading catalogue over the full text.

    Keeps the most specific match per line and returns matches sorted by
    offset.
    """
    best_by_line: Dict[int, Tuple[HeadingMatch, HeadingPattern]] = {}

    for pattern in patterns:
        for match in pattern.regex.finditer(text):
            start = match.start('marker')
            line_end = text.find('\n', start)
            if line_end == -1:
                line_end = len(text)
            line = text[start:line_end].rstrip()

            if pattern.validator and not pattern.validator(line):
                continue

            title = _heading_title(line, match.group('marker'), pattern.title_from_marker)
            if not title:
                continue

            heading = HeadingMatch(
                title=title,
                level=pattern.level,
                type=pattern.classifier(title),
                start=start,
                rank=pattern.rank,
                pattern_name=pattern.name,
            )

            existing = best_by_line.get(start)
            if existing is None or pattern.rank < existing[0].rank:
                best_by_line[start] = (heading, pattern)

    headings: List[HeadingMatch] = []
    previous_pattern: Optional[HeadingPattern] = None
    for start in sorted(best_by_line):
        heading, pattern = best_by_line[start]
        if pattern.collapse_runs and previous_pattern is pattern:
            continue
        headings.append(heading)
        previous_pattern = pattern

    return headings


# ============================================================================
# Structural Flags and Parties
# ============================================================================

SIGNATURE_PATTERNS = [
    re.compile(r'IN WITNESS WHEREOF', re.IGNORECASE),
    re.compile(r'EXECUTED as of', re.IGNORECASE),
    re.compile(r'By:\s*_+'),
    re.compile(r'Signature:', re.IGNORECASE),
    re.compile(r'Authorized Representative', re.IGNORECASE),
]

EXHIBIT_PATTERNS = [
    re.compile(r'^\s*EXHIBIT\s+[A-Z\d]', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*SCHEDULE\s+[A-Z\d]', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*ATTACHMENT\s+[A-Z\d]', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*ANNEX\s+[A-Z\d]', re.IGNORECASE | re.MULTILINE),
]

REDACTED_PATTERNS = [
    re.compile(r'\[REDACTED\]', re.IGNORECASE),
    re.compile(r'\[CONFIDENTIAL\]', re.IGNORECASE),
    re.compile(r'\*{5,}'),
    re.compile(r'█{3,}'),
]

_PARTY_NAME = (
    r"(?P<name>[A-Z][\w&'.\-]*(?:[ \t]+(?:[A-Z][\w&'.\-]*|&|and|of))*"
    r"(?:,?[ \t]+(?:Inc|LLC|Ltd|Corp|Corporation|Company|L\.P|LLP|GmbH|plc)\.?)?)"
)
_ROLE = r'(?P<role>(?i:disclosing|receiving))[ \t]+(?i:party)'
_QUOTE = r'["“”\'‘’]?'

# Ordered: earlier conventions win per role
PARTY_PATTERNS = [
    # Acme Corp. (the "Disclosing Party")
    re.compile(
        _PARTY_NAME + r'\s*\((?:(?i:hereinafter)\s+)?(?:(?i:referred\s+to\s+as)\s+)?'
        r'(?:(?i:the)\s+)?' + _QUOTE + _ROLE + _QUOTE + r'\)'
    ),
    # Disclosing Party: Acme Corp.
    re.compile(r'^[ \t]*' + _ROLE + r'[ \t]*:[ \t]*(?P<name>[^\n]{2,120})', re.MULTILINE),
    # "Receiving Party" means Beta LLC
    re.compile(
        _QUOTE + _ROLE + _QUOTE + r'\s+(?:means|shall mean|refers to)\s+'
        r'(?P<name>[A-Z][^,;\n(]{1,80})'
    ),
]


def detect_flags(text: str) -> Tuple[bool, bool, bool]:
    """Return (has_exhibits, has_signature_block, has_redacted_text)."""
    has_exhibits = any(p.search(text) for p in EXHIBIT_PATTERNS)
    has_signature_block = any(p.search(text) for p in SIGNATURE_PATTERNS)
    has_redacted_text = any(p.search(text) for p in REDACTED_PATTERNS)
    return has_exhibits, has_signature_block, has_redacted_text


def extract_parties(text: str) -> PartyInfo:
    """Extract disclosing/receiving party names; first match wins per role."""
    parties = PartyInfo()

    for pattern in PARTY_PATTERNS:
        for match in pattern.finditer(text):
            role = match.group('role').lower()
            name = match.group('name').strip().rstrip(',;').strip()
            if not name:
                continue
            if role == 'disclosing' and parties.disclosing is None:
                parties.disclosing = name
            elif role == 'receiving' and parties.receiving is None:
                parties.receiving = name
        if parties.disclosing and parties.receiving:
            break

    return parties


# ============================================================================
# Generative Fallback
# ============================================================================

class LlmSection(BaseModel):
    """A heading returned by the model."""
    title: str
    level: int = Field(ge=1, le=4)
    type: SectionType


class LlmParties(BaseModel):
    disclosing: Optional[str] = None
    receiving: Optional[str] = None


class LlmStructure(BaseModel):
    """Strict response schema: headings only, no section content."""
    sections: List[LlmSection] = Field(default_factory=list)
    parties: LlmParties = Field(default_factory=LlmParties)


LLM_SYSTEM_PROMPT = """You identify the heading structure of legal agreements.
Return ONLY the headings, in document order. Do not return section content.

For each heading give:
- title: the heading text exactly as it appears in the document
- level: 1 = article/part, 2 = section, 3 = subsection, 4 = paragraph
- type: one of heading, definitions, clause, signature, exhibit, schedule, amendment, cover_letter, other

Also return the disclosing and receiving party names if this is a non-disclosure agreement."""


@dataclass
class LlmOutcome:
    """Result of a fallback request: either a structure or the error that prevented it."""
    structure: Optional[LlmStructure] = None
    error: Optional[Exception] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.structure is not None and self.error is None


def create_structure_llm():
    """Build the default structured-output model for the fallback."""
    from langchain_openai import ChatOpenAI

    llm = ChatOpenAI(
        model=config.STRUCTURE_MODEL,
        api_key=config.OPENAI_API_KEY or None,
        temperature=0,
        timeout=config.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )
    return llm.with_structured_output(LlmStructure)


_structure_llm = None


def get_structure_llm():
    """Get or create the shared fallback model; a failed build is retried next time."""
    global _structure_llm
    if _structure_llm is None:
        _structure_llm = create_structure_llm()
    return _structure_llm


async def request_llm_structure(text: str,
                                llm=None,
                                max_chars: int = config.LLM_STRUCTURE_MAX_CHARS,
                                timeout: float = config.LLM_TIMEOUT_SECONDS) -> LlmOutcome:
    """
    Ask the model for the heading list of the document prefix.

    Never raises: network, timeout and schema failures are returned in
    `LlmOutcome.error`.
    """
    started = time.monotonic()
    truncated = text[:max_chars]
    messages = [
        SystemMessage(content=LLM_SYSTEM_PROMPT),
        HumanMessage(content=f"Document:\n{truncated}"),
    ]

    try:
        if llm is None:
            llm = get_structure_llm()
        result = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        if isinstance(result, dict):
            result = LlmStructure.model_validate(result)
        elif not isinstance(result, LlmStructure):
            raise TypeError(f"Unexpected structure response type: {type(result).__name__}")
        outcome = LlmOutcome(structure=result)
    except Exception as e:
        outcome = LlmOutcome(error=e)

    outcome.elapsed_ms = int((time.monotonic() - started) * 1000)
    return outcome


# ============================================================================
# Position Computation
# ============================================================================

def _find_title(text: str, title: str, cursor: int) -> int:
    """Find a heading title at or after cursor, tolerating case and spacing drift."""
    found = text.find(title, cursor)
    if found >= 0:
        return found

    words = title.split()
    if not words:
        return -1
    loose = re.compile(r'\s+'.join(re.escape(w) for w in words), re.IGNORECASE)
    match = loose.search(text, cursor)
    return match.start() if match else -1


def compute_positions(text: str, headings: List[HeadingMatch]) -> List[PositionedSection]:
    """
    Turn headings into positioned sections.

    Each heading is located from the end of the previous one; unknown
    positions are searched for, and headings that cannot be found are placed
    at the cursor. Section content runs from the end of the heading to the
    start of the next heading (or end of text). The cursor never moves
    backward.
    """
    text_length = len(text)
    cursor = 0
    placed: List[Tuple[HeadingMatch, int, int]] = []

    for heading in headings:
        title = heading.title.strip()
        if heading.start is not None and heading.start >= cursor:
            start = heading.start
        else:
            start = _find_title(text, title, cursor)
            if start < 0:
                logger.warning(
                    f"Heading '{title[:60]}' not found after offset {cursor}; estimating position"
                )
                start = cursor

        start = min(start, text_length)
        title_end = min(start + len(title), text_length)
        placed.append((heading, start, title_end))
        cursor = max(cursor, title_end)

    sections: List[PositionedSection] = []
    path_stack: List[Tuple[int, str]] = []

    for i, (heading, start, title_end) in enumerate(placed):
        next_start = placed[i + 1][1] if i + 1 < len(placed) else text_length
        span = Span.clamped(start, max(next_start, title_end), text_length)
        if span.start != start or span.end < next_start:
            logger.warning(
                f"Section '{heading.title[:60]}' clamped to [{span.start}, {span.end}]"
            )

        level = min(max(int(heading.level), 1), 4)
        while path_stack and path_stack[-1][0] >= level:
            path_stack.pop()
        path_stack.append((level, heading.title.strip()))

        content = text[min(title_end, span.end):span.end].strip()

        sections.append(PositionedSection(
            title=heading.title.strip(),
            level=level,
            content=content,
            type=heading.type,
            start_offset=span.start,
            end_offset=span.end,
            section_path=[title for _, title in path_stack],
        ))

    return sections


# ============================================================================
# Detector
# ============================================================================

class StructureDetector:
    """
    Detects document structure with position tracking.

    Regex headings first; the generative fallback runs when regex finds
    nothing or when `force_llm` is set. A failed fallback yields an empty
    section list rather than an exception.
    """

    def __init__(self, llm=None, max_llm_chars: int = config.LLM_STRUCTURE_MAX_CHARS,
                 llm_timeout: float = config.LLM_TIMEOUT_SECONDS):
        """
        Args:
            llm: Runnable with `ainvoke(messages)` returning `LlmStructure`;
                built from config on first use when omitted
            max_llm_chars: Prefix length sent to the model
            llm_timeout: Seconds before the request is abandoned
        """
        self.llm = llm
        self.max_llm_chars = max_llm_chars
        self.llm_timeout = llm_timeout

    def detect_regex(self, text: str) -> List[PositionedSection]:
        """Deterministic tier only."""
        return compute_positions(text, scan_headings(text))

    async def detect(self, text: str, force_llm: bool = False) -> DocumentStructure:
        """
        Detect the structure of `text`.

        Args:
            text: Normalized plain text of the whole document
            force_llm: Skip straight to the generative fallback

        Returns:
            DocumentStructure (sections may be empty)
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")

        has_exhibits, has_signature_block, has_redacted_text = detect_flags(text)
        parties = extract_parties(text)

        sections: List[PositionedSection] = []
        source = "regex"

        if not force_llm:
            sections = self.detect_regex(text)
            logger.debug(f"Regex structure detection found {len(sections)} section(s)")

        if force_llm or not sections:
            source = "llm"
            outcome = await request_llm_structure(
                text, llm=self.llm, max_chars=self.max_llm_chars, timeout=self.llm_timeout
            )
            if outcome.ok:
                headings = [
                    HeadingMatch(title=s.title, level=s.level, type=s.type)
                    for s in outcome.structure.sections
                    if s.title.strip()
                ]
                sections = compute_positions(text, headings)
                llm_parties = outcome.structure.parties
                parties = PartyInfo(
                    disclosing=llm_parties.disclosing or parties.disclosing,
                    receiving=llm_parties.receiving or parties.receiving,
                )
                logger.info(
                    f"LLM structure detection returned {len(sections)} section(s) "
                    f"in {outcome.elapsed_ms}ms"
                )
            else:
                # Single place where fallback failures are absorbed
                logger.warning(
                    f"LLM structure detection failed after {outcome.elapsed_ms}ms: "
                    f"{outcome.error!r}. Continuing with no sections."
                )
                sections = []

        return DocumentStructure(
            sections=sections,
            parties=parties,
            has_exhibits=has_exhibits,
            has_signature_block=has_signature_block,
            has_redacted_text=has_redacted_text,
            structure_source=source,
        )


async def detect_structure(text: str, force_llm: bool = False, llm=None) -> DocumentStructure:
    """Detect document structure with a one-off detector."""
    return await StructureDetector(llm=llm).detect(text, force_llm=force_llm)
