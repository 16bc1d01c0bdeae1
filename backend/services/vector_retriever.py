"""Vector evidence retrieval with filter-candidate probing.

The vector index can disagree with us on how payload filters are typed, so
retrieval probes an ordered list of filter strategies and accepts only the
matches whose payload carries exactly the expected tenant and job ids:

1. Embed the query once.
2. Try each strategy in order; stop at the first whose accepted set is
   non-empty. A failing strategy is recorded and probing continues.
3. If none yields an accepted match, run one broad query with a larger
   limit and apply the same acceptance check ("fallback used").

Vector evidence is optional: a disabled or failing index yields an empty
result, never an error.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from qdrant_client.http import models as qdrant_models

from errors import UpstreamError, VectorFilterError
from services.embeddings import EmbeddingService
from services.types import (
    EvidenceChunk,
    RetrievalScope,
    VectorMatch,
    VectorRetrievalDebug,
    VectorRetrievalResult,
)
from services.vector_store import VectorStoreService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterStrategy:
    """One filter candidate: payload conditions plus their match representation.

    ``match_any=False`` sends exact ``MatchValue`` conditions; ``match_any=True``
    sends single-element ``MatchAny`` conditions for stores that only honour
    keyword-set matching.
    """

    conditions: dict[str, str] = field(default_factory=dict)
    match_any: bool = False

    def build_filter(self) -> qdrant_models.Filter:
        must: list[qdrant_models.Condition] = []
        for key, value in self.conditions.items():
            if self.match_any:
                match = qdrant_models.MatchAny(any=[value])
            else:
                match = qdrant_models.MatchValue(value=value)
            must.append(qdrant_models.FieldCondition(key=key, match=match))
        return qdrant_models.Filter(must=must)

    def describe(self) -> dict[str, object]:
        return {
            **self.conditions,
            "match": "any" if self.match_any else "value",
        }


StrategyFactory = Callable[[RetrievalScope], list[FilterStrategy]]
AcceptPredicate = Callable[[VectorMatch, RetrievalScope], bool]


def default_filter_strategies(scope: RetrievalScope) -> list[FilterStrategy]:
    """Tenant+job, tenant-only, then job-only, each in both representations."""
    both = {"tenant_id": scope.tenant_id, "job_id": scope.job_id}
    tenant = {"tenant_id": scope.tenant_id}
    job = {"job_id": scope.job_id}
    return [
        FilterStrategy(both),
        FilterStrategy(both, match_any=True),
        FilterStrategy(tenant),
        FilterStrategy(tenant, match_any=True),
        FilterStrategy(job),
        FilterStrategy(job, match_any=True),
    ]


def scope_matches(match: VectorMatch, scope: RetrievalScope) -> bool:
    """Accept a match only if its payload names exactly this tenant and job."""
    return (
        match.metadata.get("tenant_id") == scope.tenant_id
        and match.metadata.get("job_id") == scope.job_id
    )


def to_evidence_chunks(matches: list[VectorMatch]) -> list[EvidenceChunk]:
    chunks = []
    for match in matches:
        metadata = match.metadata
        created_at = metadata.get("created_at")
        chunks.append(
            EvidenceChunk(
                doc_id=str(metadata.get("doc_id") or match.id),
                type=str(metadata.get("type") or "vector"),
                date=created_at if isinstance(created_at, str) else None,
                text=str(metadata.get("text") or ""),
                score=match.score,
            )
        )
    return chunks


@dataclass
class ProbeResult:
    matches: list[VectorMatch]
    filter_used: dict[str, object] | None
    errors: list[VectorFilterError]


class VectorRetriever:
    """Retrieves vector evidence scoped to one tenant's job."""

    def __init__(
        self,
        embedding_service: EmbeddingService | None,
        vector_store: VectorStoreService | None,
        *,
        top_k: int = 6,
        fallback_top_k: int = 10,
        debug_top_k: int = 3,
        strategies: StrategyFactory = default_filter_strategies,
        accept: AcceptPredicate = scope_matches,
    ) -> None:
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.top_k = top_k
        self.fallback_top_k = fallback_top_k
        self.debug_top_k = debug_top_k
        self.strategies = strategies
        self.accept = accept

    @property
    def enabled(self) -> bool:
        return self.embedding_service is not None and self.vector_store is not None

    async def retrieve(
        self, query: str, scope: RetrievalScope, *, debug: bool = False
    ) -> VectorRetrievalResult:
        """Retrieve accepted matches for the query within the scope.

        Args:
            query: Free-text user question.
            scope: Tenant and job the matches must belong to.
            debug: Also report the top unfiltered matches.

        Returns:
            VectorRetrievalResult with evidence chunks and diagnostics. Empty
            when the index is disabled or unavailable.
        """
        diagnostics = VectorRetrievalDebug(
            vector_enabled=self.enabled,
            vector_filter={"tenant_id": scope.tenant_id, "job_id": scope.job_id},
        )
        if not self.enabled:
            return VectorRetrievalResult(debug=diagnostics)

        try:
            embedding = await self.embedding_service.embed_query(query)
        except UpstreamError as e:
            logger.warning("Skipping vector retrieval, embedding failed: %s", e)
            return VectorRetrievalResult(debug=diagnostics)

        probe = await self._probe(embedding, scope)
        matches = probe.matches
        diagnostics.vector_filter_used = probe.filter_used
        diagnostics.vector_filter_errors = [e.to_dict() for e in probe.errors]

        if not matches:
            matches = await self._fallback(embedding, scope)
            diagnostics.vector_fallback_used = bool(matches)

        if debug:
            diagnostics.unfiltered_matches = await self._unfiltered(embedding)

        chunks = to_evidence_chunks(matches)
        diagnostics.vector_matches = len(chunks)
        return VectorRetrievalResult(chunks=chunks, debug=diagnostics)

    async def _probe(self, embedding: list[float], scope: RetrievalScope) -> ProbeResult:
        errors: list[VectorFilterError] = []
        for strategy in self.strategies(scope):
            try:
                matches = await self.vector_store.query(
                    embedding, self.top_k, strategy.build_filter()
                )
            except UpstreamError as e:
                logger.warning("Vector filter %s failed: %s", strategy.describe(), e)
                errors.append(VectorFilterError(strategy.describe(), str(e)))
                continue

            accepted = [m for m in matches if self.accept(m, scope)]
            if accepted:
                return ProbeResult(accepted, strategy.describe(), errors)

        return ProbeResult([], None, errors)

    async def _fallback(
        self, embedding: list[float], scope: RetrievalScope
    ) -> list[VectorMatch]:
        try:
            matches = await self.vector_store.query(embedding, self.fallback_top_k)
        except UpstreamError as e:
            logger.warning("Broad vector query failed: %s", e)
            return []

        accepted = [m for m in matches if self.accept(m, scope)]
        if accepted:
            logger.info(
                "Vector filters returned no matches; using fallback for tenant %s job %s",
                scope.tenant_id,
                scope.job_id,
            )
        return accepted

    async def _unfiltered(self, embedding: list[float]) -> list[dict[str, object]]:
        try:
            matches = await self.vector_store.query(embedding, self.debug_top_k)
        except UpstreamError as e:
            logger.debug("Unfiltered debug query failed: %s", e)
            return []
        return [m.to_dict() for m in matches]
