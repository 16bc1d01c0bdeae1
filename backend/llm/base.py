"""Base model provider interface.

Defines the contract that all chat model backends must implement.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from errors import UpstreamError

ChatRole = Literal["system", "user", "assistant"]


class LLMError(UpstreamError):
    """Raised when a model backend call fails."""


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str


@dataclass(frozen=True)
class ChatRequest:
    """Provider-neutral chat completion request."""

    model: str
    messages: list[ChatMessage]
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    response_format: str | None = None


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True)
class ChatCompletion:
    content: str
    usage: TokenUsage | None = None
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class StreamChunk:
    """One streamed fragment. The final chunk has ``done=True``."""

    delta: str
    done: bool = False


class BaseModelProvider(ABC):
    """Abstract base class for chat model backends.

    Providers must implement ``complete``. Providers that cannot stream
    inherit a ``stream`` that emits the whole completion as one delta.
    """

    name: str = "base"

    @abstractmethod
    async def complete(self, request: ChatRequest) -> ChatCompletion:
        """Run a blocking completion.

        Raises:
            LLMError: If the backend call fails.
        """

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a completion as text deltas, ending with a done chunk.

        Raises:
            LLMError: If the backend call fails.
        """
        completion = await self.complete(request)
        if completion.content:
            yield StreamChunk(delta=completion.content)
        yield StreamChunk(delta="", done=True)

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""
