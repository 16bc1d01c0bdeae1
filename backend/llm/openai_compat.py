"""OpenAI-compatible chat completions provider over httpx.

Works against any backend exposing ``POST {base_url}/chat/completions`` with
the OpenAI request/response shape, including server-sent event streaming.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

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

STREAM_DONE = "[DONE]"


def _parse_stream_line(line: str) -> StreamChunk | None:
    """Parse one SSE line from a streaming completion.

    Returns None for lines that carry no text: blanks, comments, non-data
    fields, role-only deltas and malformed payloads. Malformed payloads are
    logged and skipped rather than aborting the stream.
    """
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None

    data = line[len("data:") :].strip()
    if data == STREAM_DONE:
        return StreamChunk(delta="", done=True)

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream chunk: %.200s", data)
        return None

    try:
        delta = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        logger.debug("Stream chunk without delta: %.200s", data)
        return None

    if not isinstance(delta, str) or not delta:
        return None
    return StreamChunk(delta=delta)


class OpenAIChatProvider(BaseModelProvider):
    """Chat completions against an OpenAI-compatible HTTP API."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.openai_base_url).rstrip("/"),
            headers={
                "authorization": f"Bearer {api_key or settings.openai_api_key}",
                "content-type": "application/json",
            },
            timeout=httpx.Timeout(
                timeout=timeout or settings.llm_timeout_seconds, connect=10.0
            ),
            transport=transport,
        )

    @staticmethod
    def _build_payload(request: ChatRequest, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": m.role, "content": m.content} for m in request.messages
            ],
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.response_format:
            payload["response_format"] = {"type": request.response_format}
        if stream:
            payload["stream"] = True
        return payload

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        try:
            response = await self._client.post(
                "/chat/completions", json=self._build_payload(request, stream=False)
            )
        except httpx.HTTPError as e:
            logger.error("Chat completion request failed: %s", e)
            raise LLMError(f"LLM request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Chat completion error %s: %.500s", response.status_code, response.text
            )
            raise LLMError(f"LLM error: {response.status_code} {response.text}")

        try:
            body = response.json()
            content = body["choices"][0]["message"].get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise LLMError(f"Malformed completion response: {e}") from e

        usage = None
        raw_usage = body.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                input_tokens=raw_usage.get("prompt_tokens"),
                output_tokens=raw_usage.get("completion_tokens"),
                total_tokens=raw_usage.get("total_tokens"),
            )
        return ChatCompletion(content=content, usage=usage, raw=body)

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        try:
            async with self._client.stream(
                "POST",
                "/chat/completions",
                json=self._build_payload(request, stream=True),
            ) as response:
                if response.status_code != 200:
                    error_text = (await response.aread()).decode("utf-8", "replace")
                    logger.error(
                        "Chat stream error %s: %.500s", response.status_code, error_text
                    )
                    raise LLMError(f"LLM error: {response.status_code} {error_text}")

                async for line in response.aiter_lines():
                    chunk = _parse_stream_line(line)
                    if chunk is None:
                        continue
                    if chunk.done:
                        break
                    yield chunk
        except httpx.HTTPError as e:
            logger.error("Streaming failed: %s", e)
            raise LLMError(f"Streaming failed: {e}") from e

        yield StreamChunk(delta="", done=True)

    async def aclose(self) -> None:
        await self._client.aclose()
