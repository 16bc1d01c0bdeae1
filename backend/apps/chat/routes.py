"""Copilot routes - registers all job copilot endpoints."""

from fastapi import APIRouter

from apps.chat.handlers import get_context, get_conversation, send_message
from apps.chat.handlers.get_conversation import ConversationResponse

router = APIRouter(prefix="/jobs/{job_id}/ai", tags=["Copilot"])

# POST /jobs/{job_id}/ai/chat - Ask a question (JSON or SSE stream)
router.post("/chat")(send_message)

# GET /jobs/{job_id}/ai/conversation - Conversation messages
router.get("/conversation", response_model=ConversationResponse)(get_conversation)

# GET /jobs/{job_id}/ai/context - Job context snapshot
router.get("/context")(get_context)
