"""Prompt assembly and model orchestration for copilot turns.

The orchestrator holds no per-request state: each turn's inputs arrive in an
OrchestratorInput and its parameters come from the injected CopilotConfig.
"""

import json
import logging
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from config import CopilotConfig
from llm.base import BaseModelProvider, ChatMessage, ChatRequest, StreamChunk
from llm.prompts import get_system_prompt, resolve_prompt_version
from services.response_parser import ParsedResponse, ResponseParser
from services.types import EvidenceChunk, EvidenceItem, JobContextSnapshot
from utils import format_evidence_timestamp

logger = logging.getLogger(__name__)

# (title, scope, kind) in prompt order; vector matches are appended last
EVIDENCE_SECTIONS: list[tuple[str, str, str]] = [
    ("Job Notes", "job", "note"),
    ("Job Events", "job", "job_event"),
    ("Property Notes", "property", "note"),
    ("Property Events", "property", "job_event"),
    ("Client Notes", "client", "note"),
]
VECTOR_SECTION_TITLE = "Related Vector Matches"


def format_evidence_section(
    title: str, items: Sequence[EvidenceItem | EvidenceChunk]
) -> str:
    """Render one labeled section, one timestamped line per item."""
    if not items:
        return ""
    lines = []
    for item in items:
        stamp = format_evidence_timestamp(item.date)
        prefix = f"[{stamp}] " if stamp else ""
        lines.append(f"- {prefix}{item.text}")
    return f"{title}:\n" + "\n".join(lines)


def format_evidence_for_prompt(
    evidence: Sequence[EvidenceItem], vector_chunks: Sequence[EvidenceChunk]
) -> str:
    """Group evidence into labeled sections, skipping empty ones."""
    sections = [
        format_evidence_section(
            title,
            [e for e in evidence if e.scope == scope and e.kind == kind],
        )
        for title, scope, kind in EVIDENCE_SECTIONS
    ]
    sections.append(format_evidence_section(VECTOR_SECTION_TITLE, vector_chunks))
    return "\n\n".join(s for s in sections if s)


class PromptAssembler:
    """Composes the ordered message list sent to the model."""

    def __init__(self, prompt_version: str) -> None:
        self.prompt_version = resolve_prompt_version(prompt_version)

    def build(
        self,
        snapshot: JobContextSnapshot,
        evidence_text: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> list[ChatMessage]:
        context_json = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        return [
            ChatMessage(role="system", content=get_system_prompt(self.prompt_version)),
            ChatMessage(
                role="system",
                content=(
                    f"Structured context:\n{context_json}\n\n"
                    f"Evidence (labeled sections):\n{evidence_text}"
                ),
            ),
            *history,
            ChatMessage(role="user", content=user_message),
        ]


@dataclass(frozen=True)
class OrchestratorInput:
    """Everything one turn needs to build its model request."""

    request_id: str
    user_message: str
    snapshot: JobContextSnapshot
    evidence: list[EvidenceItem] = field(default_factory=list)
    vector_chunks: list[EvidenceChunk] = field(default_factory=list)
    history: list[ChatMessage] = field(default_factory=list)


class CopilotOrchestrator:
    """Builds model requests and turns model output into parsed responses."""

    def __init__(
        self,
        provider: BaseModelProvider,
        config: CopilotConfig,
        parser: ResponseParser | None = None,
    ) -> None:
        self.provider = provider
        self.config = config
        self.parser = parser or ResponseParser(config.citation_snippet_chars)
        self.assembler = PromptAssembler(config.prompt_version)

    def build_request(self, turn: OrchestratorInput) -> ChatRequest:
        evidence_text = format_evidence_for_prompt(turn.evidence, turn.vector_chunks)
        messages = self.assembler.build(
            turn.snapshot, evidence_text, turn.history, turn.user_message
        )
        return ChatRequest(
            model=self.config.model,
            messages=messages,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            max_tokens=self.config.max_tokens,
            response_format=self.config.response_format,
        )

    async def run(self, turn: OrchestratorInput) -> tuple[str, ParsedResponse]:
        """Blocking path: complete, then parse.

        Returns:
            Tuple of (raw model content, parsed response).

        Raises:
            LLMError: If the provider fails.
        """
        request = self.build_request(turn)
        start_time = time.time()
        logger.info(
            "[%s] LLM request started (model=%s, prompt=%s)",
            turn.request_id,
            self.config.model,
            self.assembler.prompt_version,
        )
        try:
            completion = await self.provider.complete(request)
        except Exception as e:
            logger.error("[%s] LLM request failed: %s", turn.request_id, e)
            raise

        logger.info(
            "[%s] LLM request completed in %.0fms (usage=%s)",
            turn.request_id,
            (time.time() - start_time) * 1000,
            completion.usage,
        )
        return completion.content, self.finalize(turn, completion.content)

    def stream(self, turn: OrchestratorInput) -> AsyncIterator[StreamChunk]:
        """Streaming path: the provider's delta stream for this turn."""
        logger.info(
            "[%s] LLM stream started (model=%s, prompt=%s)",
            turn.request_id,
            self.config.model,
            self.assembler.prompt_version,
        )
        return self.provider.stream(self.build_request(turn))

    def finalize(self, turn: OrchestratorInput, content: str) -> ParsedResponse:
        parsed = self.parser.parse(content, turn.evidence)
        logger.debug(
            "[%s] Parsed response: %d citations (from model: %s), %d follow-ups",
            turn.request_id,
            len(parsed.citations),
            parsed.citations_from_model,
            len(parsed.follow_ups),
        )
        return parsed
