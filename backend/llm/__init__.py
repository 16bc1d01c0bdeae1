"""LLM module - provider-neutral interface for chat model backends.

Usage:
    from llm import ChatMessage, ChatRequest, create_provider

    provider = create_provider()
    completion = await provider.complete(request)

    async for chunk in provider.stream(request):
        print(chunk.delta, end="")

Structure:
    - base.py: Abstract interface (BaseModelProvider) and request/response types
    - anthropic.py: Claude implementation (AnthropicProvider)
    - openai_compat.py: OpenAI-compatible HTTP implementation (OpenAIChatProvider)
    - prompts/: Versioned system prompts
"""

from config import get_settings
from llm.anthropic import AnthropicProvider
from llm.base import (
    BaseModelProvider,
    ChatCompletion,
    ChatMessage,
    ChatRequest,
    LLMError,
    StreamChunk,
    TokenUsage,
)
from llm.openai_compat import OpenAIChatProvider


def create_provider() -> BaseModelProvider:
    """Instantiate the provider selected by ``LLM_PROVIDER``."""
    settings = get_settings()
    if settings.llm_provider == "openai":
        return OpenAIChatProvider()
    return AnthropicProvider()


__all__ = [
    "AnthropicProvider",
    "BaseModelProvider",
    "ChatCompletion",
    "ChatMessage",
    "ChatRequest",
    "LLMError",
    "OpenAIChatProvider",
    "StreamChunk",
    "TokenUsage",
    "create_provider",
]
