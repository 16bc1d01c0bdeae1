"""Vector store service for Qdrant queries.

The copilot only reads the index; another pipeline owns indexing and
refresh. Evidence points carry ``tenant_id``, ``job_id``, ``doc_id``,
``type``, ``created_at`` and ``text`` in their payload.
"""

import logging
import time

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models as qdrant_models

from config import get_settings
from errors import UpstreamError
from services.types import VectorMatch

logger = logging.getLogger(__name__)


class VectorStoreError(UpstreamError):
    """Raised when vector store operations fail."""


class VectorStoreService:
    """Service for Qdrant similarity queries."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        collection_name: str | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client or AsyncQdrantClient(
            url=url or settings.qdrant_url,
            api_key=api_key or settings.qdrant_api_key,
        )
        self.collection_name = collection_name or settings.qdrant_collection

    async def query(
        self,
        embedding: list[float],
        top_k: int,
        query_filter: qdrant_models.Filter | None = None,
    ) -> list[VectorMatch]:
        """Return the ``top_k`` nearest points, optionally filtered.

        Raises:
            VectorStoreError: If the query fails.
        """
        try:
            start_time = time.time()
            results = await self.client.query_points(
                collection_name=self.collection_name,
                query=embedding,
                query_filter=query_filter,
                limit=top_k,
                with_payload=True,
            )
            logger.debug(
                "Query returned %d points in %.3fs",
                len(results.points),
                time.time() - start_time,
            )
        except Exception as e:
            logger.warning("Vector query failed: %s", e)
            raise VectorStoreError(f"Vector query failed: {e}") from e

        return [
            VectorMatch(id=str(point.id), score=point.score, metadata=point.payload or {})
            for point in results.points
        ]

    async def health_check(self) -> dict[str, object]:
        """Check vector store health.

        Returns:
            Dict with status, latency_ms, and collections count.
        """
        try:
            start_time = time.time()
            collections = await self.client.get_collections()
            latency = (time.time() - start_time) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency, 2),
                "collections": len(collections.collections),
            }

        except Exception as e:
            logger.warning("Vector store health check failed: %s", e)
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        await self.client.close()
