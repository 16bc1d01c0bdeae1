"""POST /jobs/{job_id}/ai/chat - Ask the copilot about a job.

Returns a JSON response, or a Server-Sent Events stream when ``stream`` is
true. Stream events:
- delta - {"delta": "..."} answer text as it is generated (zero or more)
- error - {"error": "..."} terminal, only on failure
- done  - the same JSON payload the non-streaming path returns, terminal
"""

import json
import logging
import uuid
from contextlib import aclosing
from typing import Any

from fastapi import Depends, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from apps.chat.chat_service import ChatService
from dependencies import RequestIdentity, get_chat_service, get_request_identity
from utils import truncate_text

logger = logging.getLogger(__name__)

CONVERSATION_HEADER = "x-conversation-id"


# --- Request Schema ---


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = Field(
        None,
        max_length=4000,
        description="Technician's question about the job",
    )
    conversation_id: str | None = Field(
        None,
        alias="conversationId",
        description="Optional: continue this conversation instead of the latest one",
    )
    stream: bool = Field(False, description="Stream the answer as SSE events")


def format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


# --- Handler ---


async def send_message(
    job_id: str,
    body: ChatRequest,
    request: Request,
    identity: RequestIdentity = Depends(get_request_identity),
    chat_service: ChatService = Depends(get_chat_service),
    x_debug: str | None = Header(default=None),
):
    """Answer a question about the job, citing the evidence used."""
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())[:8]
    logger.info(
        "[%s] Chat on job %s (stream=%s): %s",
        request_id,
        job_id,
        body.stream,
        truncate_text(body.message or ""),
    )

    turn = await chat_service.prepare(
        tenant_id=identity.tenant_id,
        job_id=job_id,
        user_id=identity.user_id,
        message=body.message or "",
        conversation_id=body.conversation_id,
        debug=x_debug == "1",
        request_id=request_id,
    )

    if body.stream:

        async def event_generator():
            async with aclosing(chat_service.stream(turn)) as events:
                async for event, data in events:
                    yield format_sse(event, data)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                CONVERSATION_HEADER: turn.conversation_id,
            },
        )

    payload = await chat_service.answer(turn)
    return JSONResponse(
        content=payload, headers={CONVERSATION_HEADER: turn.conversation_id}
    )
