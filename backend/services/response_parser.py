"""Normalizes raw model output into a citation-verified response.

The model is asked for ``{"answer", "citations", "follow_ups"}`` JSON but may
return fenced JSON, malformed citations or plain text. Whatever it returns,
the parsed response always has a non-empty answer and structurally valid
citations: model citations that fail the shape check are replaced wholesale
by citations derived from the evidence used for the turn.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from services.types import EvidenceItem

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "Information not available in the job history."
DEFAULT_SNIPPET_CHARS = 240

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


@dataclass
class ParsedResponse:
    answer: str
    citations: list[dict[str, Any]] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)
    citations_from_model: bool = False


def strip_code_fence(content: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    text = content.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text).strip()
    return text


def citations_are_valid(citations: Any) -> bool:
    """True if every citation has string doc_id, snippet and type fields.

    An empty or non-list value is not valid.
    """
    if not isinstance(citations, list) or not citations:
        return False
    return all(
        isinstance(c, dict)
        and isinstance(c.get("doc_id"), str)
        and isinstance(c.get("snippet"), str)
        and isinstance(c.get("type"), str)
        for c in citations
    )


def evidence_citations(
    evidence: list[EvidenceItem], snippet_chars: int = DEFAULT_SNIPPET_CHARS
) -> list[dict[str, Any]]:
    """Deterministic citations for every evidence item of the turn."""
    return [
        {
            "doc_id": item.doc_id,
            "date": item.date,
            "type": item.kind,
            "snippet": item.text[:snippet_chars],
            "author_name": item.author_name,
            "author_email": item.author_email,
        }
        for item in evidence
    ]


class ResponseParser:
    """Parses model output and enforces the citation-shape guarantee."""

    def __init__(self, snippet_chars: int = DEFAULT_SNIPPET_CHARS) -> None:
        self.snippet_chars = snippet_chars

    def parse(self, content: str, evidence: list[EvidenceItem]) -> ParsedResponse:
        answer, raw_citations, follow_ups = self._extract(content)
        if not answer.strip():
            answer = FALLBACK_ANSWER

        fallback = evidence_citations(evidence, self.snippet_chars)

        if not citations_are_valid(raw_citations):
            if raw_citations:
                logger.info("Discarding malformed model citations")
            return ParsedResponse(answer=answer, citations=fallback, follow_ups=follow_ups)

        by_id = {c["doc_id"]: c for c in fallback}
        citations = []
        for citation in raw_citations:
            merged = {**by_id.get(citation["doc_id"], {}), **citation}
            merged["snippet"] = merged["snippet"][: self.snippet_chars]
            citations.append(merged)

        return ParsedResponse(
            answer=answer,
            citations=citations,
            follow_ups=follow_ups,
            citations_from_model=True,
        )

    @staticmethod
    def _extract(content: str) -> tuple[str, Any, list[str]]:
        """Pull answer, raw citations and follow-ups out of model output."""
        payload = strip_code_fence(content)
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            return content.strip(), [], []

        if not isinstance(parsed, dict):
            return content.strip(), [], []

        answer = parsed.get("answer")
        follow_ups = parsed.get("follow_ups")
        return (
            answer if isinstance(answer, str) else "",
            parsed.get("citations") or [],
            [f for f in follow_ups if isinstance(f, str)]
            if isinstance(follow_ups, list)
            else [],
        )
