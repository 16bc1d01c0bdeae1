"""Anthropic Claude model provider."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from anthropic import APIError, AsyncAnthropic, RateLimitError

from config import get_settings

from .base import (
    BaseModelProvider,
    ChatCompletion,
    ChatRequest,
    LLMError,
    StreamChunk,
    TokenUsage,
)

logger = logging.getLogger(__name__)

JSON_OBJECT_DIRECTIVE = (
    "Respond with a single JSON object only. Do not wrap it in markdown."
)


class AnthropicProvider(BaseModelProvider):
    """Claude chat completions via the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        settings = get_settings()
        self.settings = settings

        self._client = client or AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key,
            timeout=httpx.Timeout(
                timeout=timeout or settings.llm_timeout_seconds, connect=10.0
            ),
        )

    def _build_params(self, request: ChatRequest) -> dict[str, Any]:
        """Translate a provider-neutral request into Messages API kwargs.

        System messages are folded into the top-level ``system`` field; the
        Messages API only accepts user/assistant turns.
        """
        system_parts = [m.content for m in request.messages if m.role == "system"]
        if request.response_format == "json_object":
            system_parts.append(JSON_OBJECT_DIRECTIVE)

        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or self.settings.llm_max_tokens,
            "messages": [
                {"role": m.role, "content": m.content}
                for m in request.messages
                if m.role != "system"
            ],
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.top_p is not None:
            params["top_p"] = request.top_p
        return params

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        """Generate a response using Claude."""
        try:
            response = await self._client.messages.create(**self._build_params(request))
        except RateLimitError as e:
            logger.warning("Rate limit: %s", e)
            raise LLMError("Rate limit exceeded. Please try again.") from e
        except APIError as e:
            logger.error("API error: %s", e)
            raise LLMError(f"LLM error: {e}") from e

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )
        return ChatCompletion(content=content, usage=usage, raw=response)

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a response using Claude."""
        try:
            async with self._client.messages.stream(
                **self._build_params(request)
            ) as stream:
                async for event in stream:
                    if event.type != "content_block_delta":
                        continue
                    delta = getattr(event.delta, "text", None)
                    if not isinstance(delta, str):
                        logger.debug("Skipping non-text delta: %s", event.delta)
                        continue
                    if delta:
                        yield StreamChunk(delta=delta)
        except RateLimitError as e:
            logger.warning("Rate limit during streaming: %s", e)
            raise LLMError("Rate limit exceeded.") from e
        except APIError as e:
            logger.error("Streaming failed: %s", e)
            raise LLMError(f"Streaming failed: {e}") from e

        yield StreamChunk(delta="", done=True)

    async def aclose(self) -> None:
        await self._client.close()
