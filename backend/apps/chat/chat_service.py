"""Chat turn lifecycle for the job copilot.

A turn moves through:

    IDLE -> VALIDATING_REQUEST -> BUILDING_CONTEXT -> GATHERING_EVIDENCE
         -> RESOLVING_CONVERSATION -> INVOKING_MODEL -> PERSISTING_TURN -> DONE

and can reach FAILED from any step. Both messages of a turn are persisted
only once the full answer is known; for streaming turns that is after the
model stream completes, never while deltas are still being delivered.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from config import CopilotConfig
from db.conversations import ConversationRecord, ConversationStore, MessageRecord
from errors import ConversationMismatchError, ValidationError
from llm.base import ChatMessage
from services.evidence import EvidenceAggregator
from services.job_context import JobContextBuilder
from services.orchestrator import CopilotOrchestrator, OrchestratorInput
from services.response_parser import ParsedResponse
from services.types import (
    EvidenceItem,
    JobContextSnapshot,
    RetrievalScope,
    VectorRetrievalResult,
)
from services.vector_retriever import VectorRetriever

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    VALIDATING_REQUEST = "validating_request"
    BUILDING_CONTEXT = "building_context"
    GATHERING_EVIDENCE = "gathering_evidence"
    RESOLVING_CONVERSATION = "resolving_conversation"
    INVOKING_MODEL = "invoking_model"
    PERSISTING_TURN = "persisting_turn"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ChatTurn:
    """Per-request state. Never shared between requests."""

    request_id: str
    tenant_id: str
    job_id: str
    user_id: str
    message: str
    requested_conversation_id: str | None = None
    debug: bool = False
    state: TurnState = TurnState.IDLE
    conversation_id: str | None = None
    snapshot: JobContextSnapshot | None = None
    evidence: list[EvidenceItem] = field(default_factory=list)
    vector: VectorRetrievalResult = field(default_factory=VectorRetrievalResult)
    history: list[ChatMessage] = field(default_factory=list)

    def advance(self, state: TurnState) -> None:
        logger.debug("[%s] %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state


class ChatService:
    """Drives a chat turn from validation to persisted answer."""

    def __init__(
        self,
        context_builder: JobContextBuilder,
        evidence_aggregator: EvidenceAggregator,
        vector_retriever: VectorRetriever,
        conversations: ConversationStore,
        orchestrator: CopilotOrchestrator,
        config: CopilotConfig,
    ) -> None:
        self.context_builder = context_builder
        self.evidence_aggregator = evidence_aggregator
        self.vector_retriever = vector_retriever
        self.conversations = conversations
        self.orchestrator = orchestrator
        self.config = config

    # --- Preparation ---

    async def prepare(
        self,
        *,
        tenant_id: str,
        job_id: str,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        debug: bool = False,
        request_id: str | None = None,
    ) -> ChatTurn:
        """Validate the request and gather everything the model call needs.

        Raises:
            ValidationError: If the message is empty.
            JobNotFoundError: If the job does not exist for the tenant.
            ConversationMismatchError: If the conversation belongs to another job.
        """
        turn = ChatTurn(
            request_id=request_id or str(uuid.uuid4())[:8],
            tenant_id=tenant_id,
            job_id=job_id,
            user_id=user_id,
            message=message,
            requested_conversation_id=(conversation_id or "").strip() or None,
            debug=debug,
        )

        try:
            turn.advance(TurnState.VALIDATING_REQUEST)
            if not message or not message.strip():
                raise ValidationError("Missing message")

            turn.advance(TurnState.BUILDING_CONTEXT)
            turn.snapshot = await self.context_builder.build(
                tenant_id, job_id, self.config.recent_event_limit
            )

            turn.advance(TurnState.GATHERING_EVIDENCE)
            turn.evidence, turn.vector = await asyncio.gather(
                self.evidence_aggregator.gather(
                    tenant_id, job_id, self.config.evidence_limit
                ),
                self.vector_retriever.retrieve(
                    message, RetrievalScope(tenant_id, job_id), debug=debug
                ),
            )

            turn.advance(TurnState.RESOLVING_CONVERSATION)
            conversation = await self._resolve_conversation(turn)
            turn.conversation_id = conversation.id

            history = await self.conversations.recent_history(
                tenant_id, conversation.id, self.config.history_limit
            )
            turn.history = [
                ChatMessage(
                    role="assistant" if m.role == "assistant" else "user",
                    content=m.content,
                )
                for m in history
            ]
        except Exception:
            turn.advance(TurnState.FAILED)
            raise

        logger.info(
            "[%s] Prepared turn: %d evidence, %d vector matches, %d history (conversation %s)",
            turn.request_id,
            len(turn.evidence),
            len(turn.vector.chunks),
            len(turn.history),
            turn.conversation_id,
        )
        return turn

    async def _resolve_conversation(self, turn: ChatTurn) -> ConversationRecord:
        """Reuse the supplied conversation or find/create one for the triple."""
        requested = turn.requested_conversation_id
        if requested:
            existing = await self.conversations.find_conversation_by_id(
                turn.tenant_id, requested
            )
            if existing is None:
                record = ConversationRecord(
                    id=requested,
                    tenant_id=turn.tenant_id,
                    job_id=turn.job_id,
                    user_id=turn.user_id,
                )
                if await self.conversations.ensure_conversation(record):
                    return record
                # Lost a creation race; re-read to check the winner's job
                existing = await self.conversations.find_conversation_by_id(
                    turn.tenant_id, requested
                )
            if existing is None or existing.job_id != turn.job_id:
                raise ConversationMismatchError(requested, turn.job_id)
            return existing

        existing = await self.conversations.find_conversation(
            turn.tenant_id, turn.job_id, turn.user_id
        )
        if existing is not None:
            return existing

        record = ConversationRecord(
            id=str(uuid.uuid4()),
            tenant_id=turn.tenant_id,
            job_id=turn.job_id,
            user_id=turn.user_id,
        )
        await self.conversations.ensure_conversation(record)
        return record

    # --- Model invocation ---

    def _orchestrator_input(self, turn: ChatTurn) -> OrchestratorInput:
        return OrchestratorInput(
            request_id=turn.request_id,
            user_message=turn.message,
            snapshot=turn.snapshot,
            evidence=turn.evidence,
            vector_chunks=turn.vector.chunks,
            history=turn.history,
        )

    async def answer(self, turn: ChatTurn) -> dict[str, Any]:
        """Blocking path: complete, parse, persist, respond.

        Raises:
            LLMError: If the model backend fails.
            ConsistencyError: If persistence affects an unexpected row count.
        """
        try:
            turn.advance(TurnState.INVOKING_MODEL)
            _, parsed = await self.orchestrator.run(self._orchestrator_input(turn))

            turn.advance(TurnState.PERSISTING_TURN)
            await self._persist(turn, parsed)
        except Exception:
            turn.advance(TurnState.FAILED)
            raise

        turn.advance(TurnState.DONE)
        return self.build_payload(turn, parsed, include_debug=turn.debug)

    async def stream(self, turn: ChatTurn) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Streaming path: yield ``(event, data)`` pairs.

        Emits zero or more ``delta`` events, then exactly one terminal event:
        ``done`` with the full response payload, or ``error``. Closing this
        generator early closes the upstream model stream.
        """
        orchestrator_input = self._orchestrator_input(turn)
        parts: list[str] = []

        turn.advance(TurnState.INVOKING_MODEL)
        try:
            async with aclosing(self.orchestrator.stream(orchestrator_input)) as upstream:
                async for chunk in upstream:
                    if chunk.done:
                        break
                    if chunk.delta:
                        parts.append(chunk.delta)
                        yield "delta", {"delta": chunk.delta}

            parsed = self.orchestrator.finalize(orchestrator_input, "".join(parts))

            turn.advance(TurnState.PERSISTING_TURN)
            await self._persist(turn, parsed)
        except Exception as e:
            turn.advance(TurnState.FAILED)
            logger.exception("[%s] Stream error", turn.request_id)
            yield "error", {"error": str(e) or "Streaming failed"}
            return

        turn.advance(TurnState.DONE)
        yield "done", self.build_payload(turn, parsed, include_debug=False)

    # --- Persistence and response ---

    async def _persist(self, turn: ChatTurn, parsed: ParsedResponse) -> None:
        """Write the user/assistant pair, then touch the conversation."""
        common = {
            "conversation_id": turn.conversation_id,
            "tenant_id": turn.tenant_id,
            "job_id": turn.job_id,
            "user_id": turn.user_id,
            "source": "app",
            "model": self.config.model,
            "prompt_version": self.orchestrator.assembler.prompt_version,
        }
        await self.conversations.save_message(
            MessageRecord(
                id=str(uuid.uuid4()),
                role="user",
                content=turn.message,
                metadata_json=json.dumps({"type": "user_message"}),
                **common,
            )
        )
        await self.conversations.save_message(
            MessageRecord(
                id=str(uuid.uuid4()),
                role="assistant",
                content=parsed.answer,
                metadata_json=json.dumps(
                    {
                        "type": "assistant_message",
                        "citations": parsed.citations,
                        "evidence": [item.doc_id for item in turn.evidence],
                    }
                ),
                **common,
            )
        )
        await self.conversations.touch_conversation(turn.conversation_id)

    @staticmethod
    def build_payload(
        turn: ChatTurn, parsed: ParsedResponse, include_debug: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "conversation_id": turn.conversation_id,
            "answer": parsed.answer,
            "citations": parsed.citations,
            "follow_ups": parsed.follow_ups,
            "evidence": [item.to_dict() for item in turn.evidence],
        }
        if include_debug:
            payload["debug"] = {
                **turn.vector.debug.to_dict(),
                "evidence_count": len(turn.evidence),
            }
        return payload

    # --- Read endpoints ---

    async def get_conversation(
        self,
        *,
        tenant_id: str,
        job_id: str,
        user_id: str,
        conversation_id: str | None = None,
    ) -> dict[str, Any]:
        """Messages of the requested (or latest) conversation for the job.

        Returns ``{"conversation_id": None, "messages": []}`` when there is no
        conversation or it belongs to another job.
        """
        if conversation_id:
            conversation = await self.conversations.find_conversation_by_id(
                tenant_id, conversation_id
            )
        else:
            conversation = await self.conversations.find_conversation(
                tenant_id, job_id, user_id
            )

        if conversation is None or conversation.job_id != job_id:
            return {"conversation_id": None, "messages": []}

        messages = await self.conversations.list_messages(tenant_id, conversation.id)
        return {
            "conversation_id": conversation.id,
            "messages": [
                {
                    "role": m.role,
                    "content": m.content,
                    "created_at": m.created_at,
                    "metadata_json": m.metadata_json,
                }
                for m in messages
            ],
        }

    async def get_context(self, tenant_id: str, job_id: str) -> dict[str, Any]:
        """Current context snapshot of the job as a JSON-ready dict."""
        snapshot = await self.context_builder.build(
            tenant_id, job_id, self.config.recent_event_limit
        )
        return snapshot.to_dict()
