"""Services module for copilot business logic.

Contains the building blocks of a copilot turn:
- Job context snapshots and structured evidence (SQLAlchemy)
- Query embeddings (Voyage AI) and vector retrieval (Qdrant)
- Prompt assembly and model orchestration
- Response parsing with the citation-shape guarantee

Note: Service instances are managed via dependencies.py using FastAPI DI.
"""

from services.embeddings import EmbeddingError, EmbeddingService
from services.evidence import EvidenceAggregator
from services.job_context import JobContextBuilder
from services.orchestrator import CopilotOrchestrator, PromptAssembler
from services.response_parser import ParsedResponse, ResponseParser
from services.types import (
    EvidenceChunk,
    EvidenceItem,
    JobContextSnapshot,
    RetrievalScope,
    VectorMatch,
)
from services.vector_retriever import FilterStrategy, VectorRetriever
from services.vector_store import VectorStoreError, VectorStoreService

__all__ = [
    # Core services
    "CopilotOrchestrator",
    "EmbeddingError",
    "EmbeddingService",
    "EvidenceAggregator",
    "JobContextBuilder",
    "PromptAssembler",
    "ResponseParser",
    "VectorRetriever",
    "VectorStoreError",
    "VectorStoreService",
    # Types
    "EvidenceChunk",
    "EvidenceItem",
    "FilterStrategy",
    "JobContextSnapshot",
    "ParsedResponse",
    "RetrievalScope",
    "VectorMatch",
]
