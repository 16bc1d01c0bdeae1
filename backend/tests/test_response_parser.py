"""Tests for model output parsing and the citation-shape guarantee."""

import json

from services.response_parser import (
    FALLBACK_ANSWER,
    ResponseParser,
    citations_are_valid,
    evidence_citations,
    strip_code_fence,
)
from services.types import EvidenceItem

EVIDENCE = [
    EvidenceItem(
        doc_id="n-1",
        kind="note",
        scope="job",
        date="2024-06-01T14:10:00.000000Z",
        text="Customer reports noise from outdoor unit",
        author_name="Tina Tech",
        author_email="tina@example.com",
    ),
    EvidenceItem(
        doc_id="ev-3",
        kind="job_event",
        scope="job",
        date="2024-06-01T15:10:00.000000Z",
        text="repair — Fan motor seized — Replaced condenser fan motor",
    ),
]


class TestStripCodeFence:
    """Test Markdown fence removal."""

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"answer": "a"}\n```') == '{"answer": "a"}'

    def test_bare_fence(self):
        assert strip_code_fence('```\n{"answer": "a"}\n```  ') == '{"answer": "a"}'

    def test_no_fence(self):
        assert strip_code_fence('  {"answer": "a"} ') == '{"answer": "a"}'


class TestCitationsAreValid:
    """Test the citation shape check."""

    def test_valid(self):
        assert citations_are_valid([{"doc_id": "1", "snippet": "s", "type": "note"}])

    def test_empty_or_not_a_list(self):
        assert not citations_are_valid([])
        assert not citations_are_valid(None)
        assert not citations_are_valid({"doc_id": "1", "snippet": "s", "type": "note"})

    def test_any_bad_element_fails(self):
        citations = [
            {"doc_id": "1", "snippet": "s", "type": "note"},
            {"doc_id": 2, "snippet": "s", "type": "note"},
        ]

        assert not citations_are_valid(citations)


class TestResponseParser:
    """Test ResponseParser.parse."""

    def test_well_formed_output_round_trips(self):
        """Test answer, citations and follow-ups pass through unchanged."""
        content = (
            '{"answer":"a","citations":[{"doc_id":"1","snippet":"s","type":"note"}],'
            '"follow_ups":["q"]}'
        )

        parsed = ResponseParser().parse(content, EVIDENCE)

        assert parsed.answer == "a"
        assert parsed.citations == [{"doc_id": "1", "snippet": "s", "type": "note"}]
        assert parsed.follow_ups == ["q"]
        assert parsed.citations_from_model is True

    def test_citation_missing_type_uses_evidence(self):
        """Test one malformed citation replaces the whole list with evidence."""
        content = json.dumps(
            {
                "answer": "a",
                "citations": [
                    {"doc_id": "n-1", "snippet": "s", "type": "note"},
                    {"doc_id": "ev-3", "snippet": "s"},
                ],
                "follow_ups": [],
            }
        )

        parsed = ResponseParser().parse(content, EVIDENCE)

        assert parsed.citations == evidence_citations(EVIDENCE)
        assert parsed.citations_from_model is False

    def test_model_citation_enriched_from_evidence(self):
        """Test known doc ids gain date and author fields from evidence."""
        content = json.dumps(
            {
                "answer": "a",
                "citations": [{"doc_id": "n-1", "snippet": "noise", "type": "note"}],
            }
        )

        parsed = ResponseParser().parse(content, EVIDENCE)

        assert parsed.citations == [
            {
                "doc_id": "n-1",
                "date": "2024-06-01T14:10:00.000000Z",
                "type": "note",
                "snippet": "noise",
                "author_name": "Tina Tech",
                "author_email": "tina@example.com",
            }
        ]

    def test_fenced_json(self):
        content = '```json\n{"answer": "Replaced the fan motor.", "citations": []}\n```'

        parsed = ResponseParser().parse(content, EVIDENCE)

        assert parsed.answer == "Replaced the fan motor."
        assert [c["doc_id"] for c in parsed.citations] == ["n-1", "ev-3"]

    def test_plain_text_becomes_answer(self):
        """Test unstructured output is used verbatim with evidence citations."""
        parsed = ResponseParser().parse("  The fan motor was replaced.  ", EVIDENCE)

        assert parsed.answer == "The fan motor was replaced."
        assert parsed.follow_ups == []
        assert len(parsed.citations) == 2

    def test_non_object_json_becomes_answer(self):
        parsed = ResponseParser().parse("42", [])

        assert parsed.answer == "42"
        assert parsed.citations == []

    def test_empty_answer_substituted(self):
        """Test an empty answer falls back to the not-available message."""
        for content in ("", "   ", '{"answer": ""}', '{"answer": 7}'):
            parsed = ResponseParser().parse(content, EVIDENCE)
            assert parsed.answer == FALLBACK_ANSWER

    def test_non_string_follow_ups_dropped(self):
        content = json.dumps({"answer": "a", "follow_ups": ["q", 3, None, "r"]})

        parsed = ResponseParser().parse(content, [])

        assert parsed.follow_ups == ["q", "r"]

    def test_snippets_bounded(self):
        """Test both evidence and model snippets are truncated."""
        long_item = EvidenceItem(
            doc_id="n-9", kind="note", scope="client", date="2024-01-01", text="x" * 500
        )
        content = json.dumps(
            {
                "answer": "a",
                "citations": [{"doc_id": "n-9", "snippet": "y" * 500, "type": "note"}],
            }
        )

        from_model = ResponseParser(snippet_chars=240).parse(content, [long_item])
        from_evidence = ResponseParser(snippet_chars=240).parse("plain", [long_item])

        assert len(from_model.citations[0]["snippet"]) == 240
        assert len(from_evidence.citations[0]["snippet"]) == 240

    def test_no_evidence_and_bad_citations(self):
        """Test the guarantee holds with an empty evidence set."""
        content = json.dumps({"answer": "a", "citations": [{"doc_id": "1"}]})

        parsed = ResponseParser().parse(content, [])

        assert parsed.citations == []
