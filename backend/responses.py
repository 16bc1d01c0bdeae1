"""Standardized response infrastructure for API endpoints.

Provides consistent error format with structured codes and messages.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from errors import (
    ConsistencyError,
    ConversationMismatchError,
    CopilotError,
    JobNotFoundError,
    NotFoundError,
    UnauthenticatedError,
    UpstreamError,
    ValidationError,
)


class ResponseCode(str, Enum):
    """Response codes for API responses.

    Ranges: 0xxx=Success, 1xxx=Client Error, 2xxx=Server Error, 3xxx=External Service
    """

    # Success codes
    SUCCESS = "0000"

    # Client errors
    VALIDATION_ERROR = "1000"
    JOB_NOT_FOUND = "1001"
    CONVERSATION_MISMATCH = "1002"
    NOT_FOUND = "1003"
    UNAUTHENTICATED = "1004"

    # Server errors
    INTERNAL_ERROR = "2000"
    CONSISTENCY_ERROR = "2001"

    # External service errors
    UPSTREAM_ERROR = "3000"
    LLM_RATE_LIMIT = "3001"


# Response messages mapped to codes
RESPONSE_MESSAGES: dict[ResponseCode, str] = {
    ResponseCode.SUCCESS: "Operation completed successfully",
    ResponseCode.VALIDATION_ERROR: "Request validation failed",
    ResponseCode.JOB_NOT_FOUND: "Job not found",
    ResponseCode.CONVERSATION_MISMATCH: "Conversation does not belong to this job",
    ResponseCode.NOT_FOUND: "Resource not found",
    ResponseCode.UNAUTHENTICATED: "Missing tenant or user identity",
    ResponseCode.INTERNAL_ERROR: "An internal error occurred",
    ResponseCode.CONSISTENCY_ERROR: "An internal error occurred",
    ResponseCode.UPSTREAM_ERROR: "The model backend failed to respond",
    ResponseCode.LLM_RATE_LIMIT: "Rate limit exceeded. Please wait and retry",
}

# HTTP status codes for each response code
HTTP_STATUS_MAP: dict[ResponseCode, int] = {
    ResponseCode.SUCCESS: 200,
    ResponseCode.VALIDATION_ERROR: 400,
    ResponseCode.JOB_NOT_FOUND: 404,
    ResponseCode.CONVERSATION_MISMATCH: 400,
    ResponseCode.NOT_FOUND: 404,
    ResponseCode.UNAUTHENTICATED: 401,
    ResponseCode.INTERNAL_ERROR: 500,
    ResponseCode.CONSISTENCY_ERROR: 500,
    ResponseCode.UPSTREAM_ERROR: 502,
    ResponseCode.LLM_RATE_LIMIT: 429,
}


def get_message(code: ResponseCode) -> str:
    """Get the message for a response code."""
    return RESPONSE_MESSAGES.get(code, "Unknown error")


def get_http_status(code: ResponseCode) -> int:
    """Get HTTP status code for a response code."""
    return HTTP_STATUS_MAP.get(code, 500)


def code_for_exception(exc: CopilotError) -> ResponseCode:
    """Map a domain exception onto its response code."""
    # Order matters: ConversationMismatchError is a NotFoundError.
    if isinstance(exc, ValidationError):
        return ResponseCode.VALIDATION_ERROR
    if isinstance(exc, UnauthenticatedError):
        return ResponseCode.UNAUTHENTICATED
    if isinstance(exc, ConversationMismatchError):
        return ResponseCode.CONVERSATION_MISMATCH
    if isinstance(exc, JobNotFoundError):
        return ResponseCode.JOB_NOT_FOUND
    if isinstance(exc, NotFoundError):
        return ResponseCode.NOT_FOUND
    if isinstance(exc, UpstreamError):
        return ResponseCode.UPSTREAM_ERROR
    if isinstance(exc, ConsistencyError):
        return ResponseCode.CONSISTENCY_ERROR
    return ResponseCode.INTERNAL_ERROR


def error_dict(
    code: ResponseCode,
    custom_message: str | None = None,
    error_details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build a standardized error response dictionary."""
    message = custom_message or get_message(code)
    return {
        "code": code.value,
        "success": False,
        "error": message,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
        "request_id": request_id,
        "error_details": error_details,
    }
