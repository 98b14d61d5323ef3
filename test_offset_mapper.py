"""
Tests for original-to-markdown offset translation and clause placement.
"""

import pytest

from document_types import DocumentSegment, OffsetMapping, PositionedSection, SectionType
from offset_mapper import (
    ClauseForRendering,
    OffsetTranslator,
    find_paragraph_index,
    map_clause_positions,
    translate_boundary,
    translate_offset,
)
from text_to_markdown import convert_to_markdown


OFFSET_MAP = [OffsetMapping(0, 2), OffsetMapping(27, 32)]


class CountingMap(list):
    """Offset map that records how often it is walked."""

    iterations = 0

    def __iter__(self):
        self.iterations += 1
        return super().__iter__()


def segment(index, start, end):
    return DocumentSegment(text="x" * (end - start), start_offset=start, end_offset=end, index=index)


PARAGRAPHS = [segment(0, 0, 9), segment(1, 11, 24), segment(2, 26, 39)]


def clause(clause_id, start, end):
    return ClauseForRendering(
        id=clause_id, category="confidentiality", risk_level="medium",
        start_position=start, end_position=end, confidence=0.9,
    )


class TestTranslateOffset:

    @pytest.mark.parametrize("pos,expected", [
        (0, 2),
        (10, 12),
        (26, 28),
        (27, 32),
        (40, 45),
    ])
    def test_translate(self, pos, expected):
        assert translate_offset(pos, OFFSET_MAP) == expected

    def test_before_first_checkpoint_unchanged(self):
        assert translate_offset(3, [OffsetMapping(5, 7)]) == 3

    def test_empty_map_is_identity(self):
        assert translate_offset(17, []) == 17

    def test_boundary_stays_before_prefix(self):
        assert translate_boundary(27, OFFSET_MAP) == 29
        assert translate_boundary(0, OFFSET_MAP) == 0
        assert translate_boundary(28, OFFSET_MAP) == 33

    @pytest.mark.parametrize("text,starts", [
        ("Intro\n\nBody.", [0]),
        ("First heading\n\nSome body.\n\nSecond heading\n\nMore.", [0, 27]),
        ("Preamble text.\n\nSection 1\n\nA.\n\nSection 2\n\nB.", [16, 31]),
    ])
    def test_translation_preserves_characters(self, text, starts):
        sections = [
            PositionedSection(f"h{i}", 1 + i % 3, "", SectionType.HEADING, s, len(text))
            for i, s in enumerate(starts)
        ]
        conversion = convert_to_markdown(text, sections)

        previous = -1
        for pos in range(len(text)):
            translated = translate_offset(pos, conversion.offset_map)
            assert conversion.markdown[translated] == text[pos]
            assert translated > previous
            previous = translated


class TestFindParagraphIndex:

    @pytest.mark.parametrize("offset,expected", [
        (0, 0),
        (12, 1),
        (10, 0),
        (25, 1),
        (30, 2),
        (50, 2),
    ])
    def test_lookup(self, offset, expected):
        assert find_paragraph_index(offset, PARAGRAPHS) == expected

    def test_before_first_paragraph(self):
        assert find_paragraph_index(2, [segment(0, 5, 9)]) == 0

    def test_no_paragraphs(self):
        assert find_paragraph_index(5, []) == 0


class TestMapClausePositions:

    def test_overlay_fields(self):
        overlays = map_clause_positions([clause("c1", 10, 20)], OFFSET_MAP, PARAGRAPHS)

        assert len(overlays) == 1
        overlay = overlays[0]
        assert (overlay.original_start, overlay.original_end) == (10, 20)
        assert (overlay.markdown_start, overlay.markdown_end) == (12, 22)
        assert overlay.paragraph_index == 1
        assert overlay.clause_id == "c1"
        assert overlay.confidence == 0.9

    def test_missing_positions_skipped(self):
        clauses = [clause("c1", None, 10), clause("c2", 5, None), clause("c3", 0, 4)]
        overlays = map_clause_positions(clauses, OFFSET_MAP, PARAGRAPHS)

        assert [o.clause_id for o in overlays] == ["c3"]

    def test_bad_ranges_normalised(self):
        overlays = map_clause_positions(
            [clause("neg", -5, 3), clause("inverted", 20, 10)], [], PARAGRAPHS
        )

        assert (overlays[0].original_start, overlays[0].original_end) == (0, 3)
        assert (overlays[1].original_start, overlays[1].original_end) == (20, 20)
        assert all(o.markdown_start <= o.markdown_end for o in overlays)

    def test_offset_map_walked_once(self):
        offset_map = CountingMap(OFFSET_MAP)
        clauses = [clause("c1", 0, 5), clause("c2", 10, 20), clause("c3", 27, 30)]
        overlays = map_clause_positions(clauses, offset_map, PARAGRAPHS)

        assert offset_map.iterations == 1
        assert [(o.markdown_start, o.markdown_end) for o in overlays] == [
            (2, 7), (12, 22), (32, 35),
        ]


class TestOffsetTranslator:

    def test_matches_module_functions(self):
        translator = OffsetTranslator(OFFSET_MAP)
        for pos in (0, 1, 26, 27, 28, 40):
            assert translator.translate(pos) == translate_offset(pos, OFFSET_MAP)
            assert translator.translate_boundary(pos) == translate_boundary(pos, OFFSET_MAP)

    def test_accepts_any_iterable(self):
        translator = OffsetTranslator(iter(OFFSET_MAP))
        assert translator.translate(27) == 32
        assert translator.translate(27) == 32
