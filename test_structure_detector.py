"""
Tests for legal document structure detection.
"""

import pytest

import structure_detector
from conftest import FakeStructureLlm
from document_types import SectionType
from structure_detector import (
    HEADING_PATTERNS,
    HeadingMatch,
    LlmParties,
    LlmSection,
    LlmStructure,
    StructureDetector,
    classify_section_type,
    compute_positions,
    detect_flags,
    detect_structure,
    extract_parties,
    request_llm_structure,
    scan_headings,
)


SIMPLE_NDA = (
    'Section 1. Definitions\n\n'
    '"Confidential Information" means all non-public data.\n\n'
    'Section 2. Term\n\n'
    'This Agreement lasts 2 years.'
)

ARTICLE_NDA = (
    "ARTICLE I - DEFINITIONS\n\n"
    "1.1 Scope of Terms. Words used here have the meanings below.\n\n"
    "1.2 Interpretation. Headings are for convenience only.\n\n"
    "ARTICLE II - OBLIGATIONS\n\n"
    "2.1 Care. The Receiving Party shall protect the information.\n"
)

UNSTRUCTURED = (
    "Confidentiality\n"
    "The parties agree to keep all shared material secret.\n\n"
    "Term\n"
    "This arrangement lasts two years from signing."
)


class TestRegexDetection:
    """Deterministic heading scan."""

    @pytest.mark.asyncio
    async def test_two_numbered_sections(self):
        structure = await StructureDetector().detect(SIMPLE_NDA)

        assert structure.structure_source == "regex"
        assert [s.title for s in structure.sections] == ["Section 1. Definitions", "Section 2. Term"]
        assert [s.level for s in structure.sections] == [2, 2]
        assert structure.sections[0].type == SectionType.DEFINITIONS
        assert structure.sections[1].type == SectionType.HEADING

        first, second = structure.sections
        assert first.start_offset == 0
        assert first.end_offset == second.start_offset == SIMPLE_NDA.index("Section 2.")
        assert second.end_offset == len(SIMPLE_NDA)
        assert first.content == '"Confidential Information" means all non-public data.'
        assert first.section_path == ["Section 1. Definitions"]
        assert second.section_path == ["Section 2. Term"]

    @pytest.mark.asyncio
    async def test_article_hierarchy_paths(self):
        structure = await StructureDetector().detect(ARTICLE_NDA)
        sections = structure.sections

        assert [s.level for s in sections] == [1, 3, 3, 1, 3]
        assert sections[1].title == "1.1 Scope of Terms."
        assert sections[1].content.startswith("Words used here")
        assert sections[2].section_path == ["ARTICLE I - DEFINITIONS", "1.2 Interpretation."]
        assert sections[4].section_path == ["ARTICLE II - OBLIGATIONS", "2.1 Care."]

    def test_one_match_per_line_keeps_most_specific(self):
        headings = scan_headings("RECITALS\nWHEREAS, Acme wishes to share information;\n")
        assert len(headings) == 1
        assert headings[0].title == "RECITALS"
        assert headings[0].pattern_name == "preamble"

    def test_whereas_run_collapses(self):
        text = (
            "WHEREAS, Acme wishes to disclose information;\n"
            "WHEREAS, Beta wishes to receive it;\n"
            "NOW, THEREFORE, the parties agree as follows:\n\n"
            "1. DEFINITIONS\n"
            "Terms have the meanings below.\n"
        )
        headings = scan_headings(text)
        assert [h.title for h in headings] == ["WHEREAS", "1. DEFINITIONS"]

    def test_standalone_now_therefore_is_heading(self):
        text = (
            "1. PURPOSE\n"
            "The parties wish to cooperate.\n"
            "NOW, THEREFORE, the parties agree as follows:\n"
            "2. TERM\n"
            "Two years.\n"
        )
        headings = scan_headings(text)

        assert [h.title for h in headings] == ["1. PURPOSE", "NOW, THEREFORE", "2. TERM"]
        assert [h.level for h in headings] == [2, 2, 2]

    def test_numbered_definitions_are_not_headings(self):
        text = (
            "1. DEFINITIONS\n"
            '1.1 "Confidential Information" means all non-public data.\n'
            '1.2 "Affiliate" means any entity controlled by a party.\n'
            "2. TERM\n"
            "This Agreement lasts two years.\n"
        )
        sections = StructureDetector().detect_regex(text)

        assert [s.title for s in sections] == ["1. DEFINITIONS", "2. TERM"]
        assert sections[0].type == SectionType.DEFINITIONS
        assert sections[0].end_offset == text.index("2. TERM")

    def test_body_lines_are_not_headings(self):
        text = (
            "1. The Receiving Party shall not disclose any information to others\n"
            "Section 2 of this Agreement survives.\n"
            "(a) the Receiving Party may disclose to advisors;\n"
        )
        assert scan_headings(text) == []

    def test_all_caps_requires_known_term(self):
        text = "GOVERNING LAW\nThis Agreement is governed by New York law.\n\nACME HOLDINGS\nAddress line.\n"
        assert [h.title for h in scan_headings(text)] == ["GOVERNING LAW"]

    def test_catalogue_levels_and_ranks(self):
        for pattern in HEADING_PATTERNS:
            assert 1 <= pattern.level <= 4
            assert 0 <= pattern.rank <= 6

    @pytest.mark.parametrize("text", [SIMPLE_NDA, ARTICLE_NDA, "No headings here at all."])
    def test_section_span_invariants(self, text):
        sections = StructureDetector().detect_regex(text)
        starts = [s.start_offset for s in sections]
        assert starts == sorted(starts)
        for section in sections:
            assert 0 <= section.start_offset <= section.end_offset <= len(text)
            assert text[section.start_offset:section.end_offset].startswith(section.title)


class TestClassification:

    @pytest.mark.parametrize("title,expected", [
        ("Section 1. Definitions", SectionType.DEFINITIONS),
        ("EXHIBIT A", SectionType.EXHIBIT),
        ("Schedule 1 - Pricing", SectionType.SCHEDULE),
        ("IN WITNESS WHEREOF", SectionType.SIGNATURE),
        ("Section 9. Amendment", SectionType.AMENDMENT),
        ("Cover Letter", SectionType.COVER_LETTER),
        ("RECITALS", SectionType.CLAUSE),
        ("ARTICLE II - OBLIGATIONS", SectionType.HEADING),
        ("Confidentiality", SectionType.CLAUSE),
    ])
    def test_classify(self, title, expected):
        assert classify_section_type(title) == expected

    def test_definitions_beats_exhibit(self):
        assert classify_section_type("Exhibit A - Definitions") == SectionType.DEFINITIONS


class TestFlagsAndParties:

    def test_flags(self):
        text = (
            "The price is [REDACTED].\n\n"
            "IN WITNESS WHEREOF, the parties have signed.\n"
            "By: ________\n\n"
            "EXHIBIT A\nList of materials."
        )
        assert detect_flags(text) == (True, True, True)

    def test_no_flags(self):
        assert detect_flags("Plain text.") == (False, False, False)

    def test_parenthetical_roles(self):
        text = ('This Agreement is entered into by Acme Corp. (the "Disclosing Party") '
                'and Beta LLC (the "Receiving Party").')
        parties = extract_parties(text)
        assert parties.disclosing == "Acme Corp."
        assert parties.receiving == "Beta LLC"

    def test_label_colon_roles(self):
        parties = extract_parties("Disclosing Party: Acme Corp.\nReceiving Party: Beta LLC\n")
        assert parties.disclosing == "Acme Corp."
        assert parties.receiving == "Beta LLC"

    def test_means_form(self):
        parties = extract_parties('"Receiving Party" means Beta LLC, a Delaware company.')
        assert parties.disclosing is None
        assert parties.receiving == "Beta LLC"

    def test_first_match_wins(self):
        text = ('Acme Corp. (the "Disclosing Party")\n'
                'Disclosing Party: Someone Else\n')
        assert extract_parties(text).disclosing == "Acme Corp."


class TestLlmFallback:
    """Generative fallback and its degradation."""

    @staticmethod
    def _llm_structure():
        return LlmStructure(
            sections=[
                LlmSection(title="Confidentiality", level=2, type=SectionType.CLAUSE),
                LlmSection(title="Term", level=2, type=SectionType.CLAUSE),
            ],
            parties=LlmParties(disclosing="Acme"),
        )

    @pytest.mark.asyncio
    async def test_fallback_when_regex_finds_nothing(self):
        llm = FakeStructureLlm(response=self._llm_structure())
        structure = await StructureDetector(llm=llm).detect(UNSTRUCTURED)

        assert len(llm.calls) == 1
        assert structure.structure_source == "llm"
        assert [s.title for s in structure.sections] == ["Confidentiality", "Term"]
        assert structure.sections[0].start_offset == 0
        assert structure.sections[1].start_offset == UNSTRUCTURED.index("Term\n")
        assert structure.sections[0].end_offset == structure.sections[1].start_offset
        assert structure.sections[0].content == "The parties agree to keep all shared material secret."
        assert structure.parties.disclosing == "Acme"

    @pytest.mark.asyncio
    async def test_force_llm_skips_regex(self):
        llm = FakeStructureLlm(response=LlmStructure(sections=[
            LlmSection(title="Section 2. Term", level=2, type=SectionType.CLAUSE),
        ]))
        structure = await StructureDetector(llm=llm).detect(SIMPLE_NDA, force_llm=True)

        assert structure.structure_source == "llm"
        assert [s.title for s in structure.sections] == ["Section 2. Term"]

    @pytest.mark.asyncio
    async def test_failure_degrades_to_empty(self, failing_llm, caplog):
        with caplog.at_level("WARNING"):
            structure = await StructureDetector(llm=failing_llm).detect(UNSTRUCTURED)
        assert structure.sections == []
        assert structure.structure_source == "llm"
        assert "LLM structure detection failed" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_degrades_to_empty(self):
        llm = FakeStructureLlm(response=self._llm_structure(), delay=1.0)
        structure = await StructureDetector(llm=llm, llm_timeout=0.01).detect(UNSTRUCTURED)
        assert structure.sections == []

    @pytest.mark.asyncio
    async def test_prompt_is_bounded_prefix(self):
        llm = FakeStructureLlm(response=LlmStructure())
        await request_llm_structure("x" * 500, llm=llm, max_chars=100)

        system, human = llm.calls[0]
        assert "ONLY the headings" in system.content
        assert human.content.endswith("x" * 100)
        assert "x" * 101 not in human.content

    @pytest.mark.asyncio
    async def test_outcome_carries_error(self):
        llm = FakeStructureLlm(error=ValueError("bad json"))
        outcome = await request_llm_structure("text", llm=llm)
        assert not outcome.ok
        assert isinstance(outcome.error, ValueError)

    @pytest.mark.asyncio
    async def test_dict_response_is_validated(self):
        llm = FakeStructureLlm(response={"sections": [{"title": "Term", "level": 2, "type": "clause"}]})
        outcome = await request_llm_structure("Term\nTwo years.", llm=llm)
        assert outcome.ok
        assert outcome.structure.sections[0].type == SectionType.CLAUSE

    @pytest.mark.asyncio
    async def test_invalid_dict_response_is_error(self):
        llm = FakeStructureLlm(response={"sections": [{"title": "Term", "level": 9, "type": "clause"}]})
        outcome = await request_llm_structure("Term", llm=llm)
        assert outcome.error is not None

    @pytest.mark.asyncio
    async def test_default_model_built_once(self, monkeypatch):
        built = []

        def factory():
            built.append(FakeStructureLlm(response=LlmStructure()))
            return built[-1]

        monkeypatch.setattr(structure_detector, "create_structure_llm", factory)
        monkeypatch.setattr(structure_detector, "_structure_llm", None)

        await StructureDetector().detect(UNSTRUCTURED)
        await StructureDetector().detect(UNSTRUCTURED)

        assert len(built) == 1
        assert len(built[0].calls) == 2

    @pytest.mark.asyncio
    async def test_failed_model_build_not_cached(self, monkeypatch):
        attempts = []

        def factory():
            attempts.append(1)
            raise RuntimeError("missing api key")

        monkeypatch.setattr(structure_detector, "create_structure_llm", factory)
        monkeypatch.setattr(structure_detector, "_structure_llm", None)

        outcome = await request_llm_structure("text")
        await request_llm_structure("text")

        assert isinstance(outcome.error, RuntimeError)
        assert len(attempts) == 2
        assert structure_detector._structure_llm is None

    @pytest.mark.asyncio
    async def test_module_level_detect(self):
        structure = await detect_structure(SIMPLE_NDA)
        assert len(structure.sections) == 2


class TestPositionComputation:

    def test_missing_title_estimated_at_cursor(self, caplog):
        headings = [
            HeadingMatch(title="Alpha Heading", level=2, type=SectionType.CLAUSE),
            HeadingMatch(title="Term", level=2, type=SectionType.CLAUSE),
        ]
        with caplog.at_level("WARNING"):
            sections = compute_positions(UNSTRUCTURED, headings)

        assert "not found" in caplog.text
        assert sections[0].start_offset == 0
        assert sections[1].start_offset == UNSTRUCTURED.index("Term\n")

    def test_loose_match_ignores_case_and_spacing(self):
        text = "Intro line.\n\nGoverning   law\nNew York."
        sections = compute_positions(text, [
            HeadingMatch(title="GOVERNING LAW", level=2, type=SectionType.CLAUSE),
        ])
        assert sections[0].start_offset == text.index("Governing")

    def test_cursor_never_moves_backward(self):
        text = "Term\nfirst\n\nScope\nsecond"
        sections = compute_positions(text, [
            HeadingMatch(title="Scope", level=2, type=SectionType.CLAUSE),
            HeadingMatch(title="Term", level=2, type=SectionType.CLAUSE),
        ])
        assert sections[0].start_offset == text.index("Scope")
        assert sections[1].start_offset >= sections[0].start_offset
        assert all(s.end_offset <= len(text) for s in sections)

    def test_stack_discipline(self):
        text = "A\nB\nC\nD\n"
        sections = compute_positions(text, [
            HeadingMatch(title="A", level=1, type=SectionType.HEADING),
            HeadingMatch(title="B", level=2, type=SectionType.CLAUSE),
            HeadingMatch(title="C", level=3, type=SectionType.CLAUSE),
            HeadingMatch(title="D", level=2, type=SectionType.CLAUSE),
        ])
        assert [s.section_path for s in sections] == [
            ["A"], ["A", "B"], ["A", "B", "C"], ["A", "D"],
        ]


class TestInputContract:

    @pytest.mark.asyncio
    async def test_non_string_rejected(self):
        with pytest.raises(TypeError):
            await StructureDetector().detect(None)
