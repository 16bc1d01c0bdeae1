"""Configuration and settings for the Job Copilot service.

Uses Pydantic Settings for fail-fast validation on startup.
Required environment variables are validated the first time settings load.
"""

import logging
import sys
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("voyageai").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("qdrant_client").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Raises ValidationError on startup if the selected LLM provider has no key.
    """

    model_config = SettingsConfigDict(
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["anthropic", "openai"] = Field(
        default="anthropic", description="Which model backend answers chat turns"
    )
    anthropic_api_key: str | None = Field(
        default=None, description="Anthropic API key for Claude"
    )
    openai_api_key: str | None = Field(
        default=None, description="API key for an OpenAI-compatible backend"
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible chat completions API",
    )

    # Vector Search (optional - retrieval degrades to structured evidence)
    voyage_api_key: str | None = Field(
        default=None, description="Voyage AI API key for query embeddings"
    )
    qdrant_url: str | None = Field(default=None, description="Qdrant URL")
    qdrant_api_key: str | None = Field(default=None, description="Qdrant API key")
    qdrant_collection: str = Field(
        default="copilot_evidence", description="Qdrant collection holding job evidence"
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./copilot.db",
        description="SQLAlchemy async database URL",
    )
    database_auto_create: bool = Field(
        default=True, description="Create missing tables on startup"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Application Settings
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # Model Settings
    llm_model: str = Field(
        default="claude-sonnet-4-20250514", description="Model used for chat turns"
    )
    llm_temperature: float = Field(
        default=0.2, description="LLM temperature for factual responses"
    )
    llm_top_p: float | None = Field(default=None, description="Optional nucleus sampling")
    llm_max_tokens: int = Field(default=2048, description="Max tokens for generation")
    llm_response_format: Literal["json_object"] | None = Field(
        default="json_object", description="Forced response format for chat turns"
    )
    llm_timeout_seconds: float = Field(
        default=60.0, description="Total timeout for a model call in seconds"
    )
    embedding_model: str = Field(
        default="voyage-3-lite", description="Voyage AI embedding model"
    )
    prompt_version: str = Field(
        default="copilot.v1", description="System prompt version recorded on messages"
    )

    # Retrieval Settings
    retrieval_top_k: int = Field(default=6, description="Matches per filtered query")
    retrieval_fallback_top_k: int = Field(
        default=10, description="Matches for the broad fallback query"
    )
    debug_unfiltered_top_k: int = Field(
        default=3, description="Unfiltered matches reported in debug diagnostics"
    )
    history_limit: int = Field(
        default=25, description="Max prior messages included in the prompt"
    )
    recent_event_limit: int = Field(
        default=3, description="Recent job events in the context snapshot"
    )
    evidence_limit: int | None = Field(
        default=None, description="Optional cap on structured evidence items"
    )
    citation_snippet_chars: int = Field(
        default=240, description="Max characters in a citation snippet"
    )

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True, description="Limit chat requests")
    rate_limit_per_minute: int = Field(default=20, description="Chat requests per minute")
    rate_limit_per_hour: int = Field(default=200, description="Chat requests per hour")
    rate_limit_burst: int = Field(default=5, description="Chat requests per 10 seconds")

    @field_validator(
        "anthropic_api_key",
        "openai_api_key",
        "voyage_api_key",
        "qdrant_url",
        "qdrant_api_key",
    )
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty strings as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @model_validator(mode="after")
    def validate_provider_key(self) -> "Settings":
        """Ensure the selected LLM provider has credentials."""
        if self.llm_provider == "anthropic" and not self.anthropic_api_key:
            raise ValueError("anthropic_api_key is required when llm_provider=anthropic")
        if self.llm_provider == "openai" and not self.openai_api_key:
            raise ValueError("openai_api_key is required when llm_provider=openai")
        return self

    @property
    def vector_search_enabled(self) -> bool:
        """Vector retrieval needs both an embedding key and an index."""
        return bool(self.voyage_api_key and self.qdrant_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@dataclass(frozen=True)
class CopilotConfig:
    """Per-request orchestration parameters, injected into the orchestrator."""

    model: str
    temperature: float
    top_p: float | None
    max_tokens: int | None
    response_format: str | None
    prompt_version: str
    top_k: int
    fallback_top_k: int
    history_limit: int
    recent_event_limit: int
    evidence_limit: int | None
    citation_snippet_chars: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "CopilotConfig":
        return cls(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            top_p=settings.llm_top_p,
            max_tokens=settings.llm_max_tokens,
            response_format=settings.llm_response_format,
            prompt_version=settings.prompt_version,
            top_k=settings.retrieval_top_k,
            fallback_top_k=settings.retrieval_fallback_top_k,
            history_limit=settings.history_limit,
            recent_event_limit=settings.recent_event_limit,
            evidence_limit=settings.evidence_limit,
            citation_snippet_chars=settings.citation_snippet_chars,
        )


# CORS Configuration
CORS_CONFIG: dict[str, Any] = {
    "allow_origins": [
        "http://localhost:8081",
        "http://localhost:19006",
        "http://127.0.0.1:8081",
        "http://127.0.0.1:19006",
    ],
    "allow_credentials": True,
    "allow_methods": ["GET", "POST", "OPTIONS"],
    "allow_headers": ["*"],
    "expose_headers": ["x-conversation-id", "X-Request-ID"],
    "max_age": 600,
}

# FastAPI App Configuration
APP_CONFIG: dict[str, Any] = {
    "title": "Job Copilot",
    "description": (
        "Job-scoped assistant for field technicians. Answers questions about a "
        "service job using its history, with citations to the evidence used."
    ),
    "version": "0.1.0",
    "docs_url": "/api/docs",
    "redoc_url": "/api/redoc",
    "openapi_url": "/api/openapi.json",
    "openapi_tags": [
        {
            "name": "Health",
            "description": "Health check and service status",
        },
        {
            "name": "Copilot",
            "description": "Job-scoped chat with cited answers",
        },
    ],
}


def get_app_config() -> dict[str, Any]:
    """Get FastAPI application configuration."""
    return APP_CONFIG.copy()


def get_cors_config() -> dict[str, Any]:
    """Get CORS middleware configuration."""
    return CORS_CONFIG.copy()
