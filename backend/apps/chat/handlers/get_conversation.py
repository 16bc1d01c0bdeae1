"""GET /jobs/{job_id}/ai/conversation - Load a job conversation's messages."""

from fastapi import Depends, Query
from pydantic import BaseModel, Field

from apps.chat.chat_service import ChatService
from dependencies import RequestIdentity, get_chat_service, get_request_identity

# --- Response Schemas ---


class ConversationMessage(BaseModel):
    role: str = Field(..., description="Message role (user/assistant)")
    content: str = Field(..., description="Message content")
    created_at: str = Field(..., description="ISO timestamp")
    metadata_json: str | None = Field(
        None, description="JSON metadata (citations and evidence ids for answers)"
    )


class ConversationResponse(BaseModel):
    conversation_id: str | None = Field(
        None, description="Conversation id, or null when none exists for the job"
    )
    messages: list[ConversationMessage] = Field(default_factory=list)


# --- Handler ---


async def get_conversation(
    job_id: str,
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    identity: RequestIdentity = Depends(get_request_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
    """Get the requested conversation, or the user's latest one for the job."""
    result = await chat_service.get_conversation(
        tenant_id=identity.tenant_id,
        job_id=job_id,
        user_id=identity.user_id,
        conversation_id=conversation_id,
    )
    return ConversationResponse(**result)
