"""FastAPI dependency injection for services.

Expensive clients are cached with @lru_cache() and reused across requests.
Request identity is resolved per request from gateway headers and passed
explicitly to every service call.
"""

from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header

from config import CopilotConfig, get_settings
from db.conversations import ConversationStore
from db.engine import Database
from errors import UnauthenticatedError
from llm import BaseModelProvider, create_provider
from services.embeddings import EmbeddingService
from services.evidence import EvidenceAggregator
from services.job_context import JobContextBuilder
from services.orchestrator import CopilotOrchestrator
from services.vector_retriever import VectorRetriever
from services.vector_store import VectorStoreService


@dataclass(frozen=True)
class RequestIdentity:
    tenant_id: str
    user_id: str


# --- Cached Singletons ---
# These are created once and reused across all requests


@lru_cache
def get_database() -> Database:
    """Get cached database (owns the engine and connection pool)."""
    return Database()


@lru_cache
def get_embedding_service() -> EmbeddingService | None:
    """Get cached embedding service, or None when vector search is disabled."""
    if not get_settings().vector_search_enabled:
        return None
    return EmbeddingService()


@lru_cache
def get_vector_store() -> VectorStoreService | None:
    """Get cached vector store service, or None when vector search is disabled."""
    if not get_settings().vector_search_enabled:
        return None
    return VectorStoreService()


@lru_cache
def get_model_provider() -> BaseModelProvider:
    """Get cached model provider (expensive - has HTTP client)."""
    return create_provider()


@lru_cache
def get_copilot_config() -> CopilotConfig:
    return CopilotConfig.from_settings(get_settings())


# --- Request Identity ---


def get_request_identity(
    x_tenant_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> RequestIdentity:
    """Resolve tenant and user from gateway-supplied headers.

    Raises:
        UnauthenticatedError: If either header is missing or blank.
    """
    tenant_id = (x_tenant_id or "").strip()
    user_id = (x_user_id or "").strip()
    if not tenant_id or not user_id:
        raise UnauthenticatedError("Missing tenant or user identity")
    return RequestIdentity(tenant_id=tenant_id, user_id=user_id)


# --- Composed Services ---
# Use Depends() for proper FastAPI DI chaining


def get_vector_retriever(
    embedding_service: EmbeddingService | None = Depends(get_embedding_service),
    vector_store: VectorStoreService | None = Depends(get_vector_store),
    config: CopilotConfig = Depends(get_copilot_config),
) -> VectorRetriever:
    return VectorRetriever(
        embedding_service,
        vector_store,
        top_k=config.top_k,
        fallback_top_k=config.fallback_top_k,
        debug_top_k=get_settings().debug_unfiltered_top_k,
    )


def get_chat_service(
    database: Database = Depends(get_database),
    provider: BaseModelProvider = Depends(get_model_provider),
    vector_retriever: VectorRetriever = Depends(get_vector_retriever),
    config: CopilotConfig = Depends(get_copilot_config),
):
    """Get chat service with injected dependencies.

    FastAPI will automatically inject the cached dependencies.

    Returns:
        ChatService instance driving copilot turns.
    """
    from apps.chat.chat_service import ChatService

    return ChatService(
        context_builder=JobContextBuilder(database),
        evidence_aggregator=EvidenceAggregator(database),
        vector_retriever=vector_retriever,
        conversations=ConversationStore(database),
        orchestrator=CopilotOrchestrator(provider, config),
        config=config,
    )
