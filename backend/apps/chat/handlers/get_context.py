"""GET /jobs/{job_id}/ai/context - Structured context snapshot of a job."""

from typing import Any

from fastapi import Depends

from apps.chat.chat_service import ChatService
from dependencies import RequestIdentity, get_chat_service, get_request_identity


async def get_context(
    job_id: str,
    identity: RequestIdentity = Depends(get_request_identity),
    chat_service: ChatService = Depends(get_chat_service),
) -> dict[str, Any]:
    """Return the snapshot the copilot would use for this job."""
    return await chat_service.get_context(identity.tenant_id, job_id)
