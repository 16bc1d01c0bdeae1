"""Domain exceptions shared across the copilot core.

Handlers map these onto response codes in responses.py; services raise them
and let them propagate.
"""

from typing import Any


class CopilotError(Exception):
    """Base class for errors the API turns into a structured response."""


class ValidationError(CopilotError):
    """Raised when a request is missing required input."""


class NotFoundError(CopilotError):
    """Raised when a tenant-scoped entity does not exist."""


class JobNotFoundError(NotFoundError):
    """Raised when no job matches the (tenant, job) pair."""

    def __init__(self, tenant_id: str, job_id: str) -> None:
        super().__init__(f"Job not found for tenant {tenant_id}: {job_id}")
        self.tenant_id = tenant_id
        self.job_id = job_id


class ConversationNotFoundError(NotFoundError):
    """Raised when a conversation id matches no row."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationMismatchError(NotFoundError):
    """Raised when a supplied conversation belongs to a different job."""

    def __init__(self, conversation_id: str, job_id: str) -> None:
        super().__init__("Conversation does not belong to this job")
        self.conversation_id = conversation_id
        self.job_id = job_id


class UpstreamError(CopilotError):
    """Raised when a model or embedding backend fails."""


class ConsistencyError(CopilotError):
    """Raised when a write affects an unexpected number of rows."""


class VectorFilterError(CopilotError):
    """One vector filter candidate failed.

    Collected per candidate during probing and reported in debug
    diagnostics; never raised to the HTTP layer.
    """

    def __init__(self, filter_spec: dict[str, Any], message: str) -> None:
        super().__init__(message)
        self.filter_spec = filter_spec
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"filter": self.filter_spec, "message": self.message}


class UnauthenticatedError(CopilotError):
    """Raised when the gateway did not supply tenant/user identity."""
