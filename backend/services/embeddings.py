"""Query embedding service via Voyage AI.

Features:
- Automatic retry with exponential backoff
- In-memory caching to reduce API calls for repeated questions

The Voyage client is synchronous; calls run in a worker thread so the event
loop is never blocked.
"""

import asyncio
import hashlib
import logging
import time

import voyageai

from config import get_settings
from errors import UpstreamError

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """Simple in-memory cache for embeddings."""

    def __init__(self, max_size: int = 2000):
        self._cache: dict[str, list[float]] = {}
        self.max_size = max_size
        self.hits = 0
        self.misses = 0

    def _get_key(self, text: str, input_type: str) -> str:
        return hashlib.sha256(f"{input_type}:{text}".encode()).hexdigest()

    def get(self, text: str, input_type: str) -> list[float] | None:
        key = self._get_key(text, input_type)
        if key in self._cache:
            self.hits += 1
            return self._cache[key]
        self.misses += 1
        return None

    def set(self, text: str, input_type: str, embedding: list[float]) -> None:
        if len(self._cache) >= self.max_size:
            # Simple eviction: remove oldest (first) entry
            first_key = next(iter(self._cache))
            del self._cache[first_key]
        self._cache[self._get_key(text, input_type)] = embedding


class EmbeddingError(UpstreamError):
    """Raised when embedding generation fails."""


class EmbeddingService:
    """Service for generating query embeddings using Voyage AI."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: "voyageai.Client | None" = None,
    ) -> None:
        settings = get_settings()
        self.client = client or voyageai.Client(api_key=api_key or settings.voyage_api_key)
        self.model = model or settings.embedding_model
        self._cache = EmbeddingCache()

    async def embed_query(self, text: str, retry_count: int = 3) -> list[float]:
        """Embed a search query.

        Args:
            text: Query text.
            retry_count: Number of attempts before giving up.

        Returns:
            Embedding vector.

        Raises:
            ValueError: If text is empty.
            EmbeddingError: If the backend fails after retries.
        """
        if not text or not text.strip():
            raise ValueError("text cannot be empty")

        cached = self._cache.get(text, "query")
        if cached is not None:
            return cached

        embedding = await self._embed_with_retry(text, "query", retry_count)
        self._cache.set(text, "query", embedding)
        return embedding

    async def _embed_with_retry(
        self, text: str, input_type: str, retry_count: int
    ) -> list[float]:
        last_error: Exception | None = None
        backoff_times = [1, 2, 4]

        for attempt in range(retry_count):
            try:
                start_time = time.time()
                result = await asyncio.to_thread(
                    self.client.embed,
                    [text],
                    model=self.model,
                    input_type=input_type,
                )
                logger.debug("Generated embedding in %.2fs", time.time() - start_time)
                return result.embeddings[0]

            except Exception as e:
                last_error = e
                # Sanitize error message to avoid leaking API keys
                error_msg = str(e)
                if "api" in error_msg.lower() or "key" in error_msg.lower():
                    error_msg = f"{type(e).__name__}: [redacted - may contain API key]"

                if attempt < retry_count - 1:
                    wait_time = backoff_times[min(attempt, len(backoff_times) - 1)]
                    logger.warning(
                        "Embedding API error: %s. Retrying in %ds (%d/%d)",
                        error_msg,
                        wait_time,
                        attempt + 1,
                        retry_count,
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(
                        "Embedding generation failed after %d attempts: %s",
                        retry_count,
                        error_msg,
                    )

        raise EmbeddingError(
            f"Failed to generate embedding after {retry_count} attempts: {last_error}"
        )
