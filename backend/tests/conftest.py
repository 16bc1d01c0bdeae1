"""Pytest configuration and fixtures for Job Copilot tests."""

import json
import os
import sys

# Set required env vars BEFORE any imports that might trigger Settings
os.environ["LLM_PROVIDER"] = "anthropic"
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ["VOYAGE_API_KEY"] = ""
os.environ["QDRANT_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_AUTO_CREATE"] = "false"

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import CopilotConfig, get_settings  # noqa: E402
from db.engine import Database  # noqa: E402
from db.models import (  # noqa: E402
    Client,
    Equipment,
    Job,
    JobEvent,
    Note,
    Property,
    User,
)
from llm.base import (  # noqa: E402
    BaseModelProvider,
    ChatCompletion,
    LLMError,
    StreamChunk,
)

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"

MODEL_ANSWER = {
    "answer": "The condenser fan motor was replaced on the last visit.",
    "citations": [
        {
            "doc_id": "ev-3",
            "snippet": "repair — Fan motor seized — Replaced condenser fan motor",
            "type": "job_event",
        }
    ],
    "follow_ups": ["Check capacitor readings"],
}


class FakeModelProvider(BaseModelProvider):
    """Scripted model backend that records every request it receives."""

    name = "fake"

    def __init__(
        self,
        content: str | None = None,
        chunk_size: int = 16,
        fail_after: int | None = None,
    ) -> None:
        self.content = json.dumps(MODEL_ANSWER) if content is None else content
        self.chunk_size = chunk_size
        self.fail_after = fail_after
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        if self.fail_after is not None:
            raise LLMError("Model backend unavailable")
        return ChatCompletion(content=self.content)

    async def stream(self, request):
        self.requests.append(request)
        pieces = [
            self.content[i : i + self.chunk_size]
            for i in range(0, len(self.content), self.chunk_size)
        ]
        for index, piece in enumerate(pieces):
            if self.fail_after is not None and index >= self.fail_after:
                raise LLMError("Upstream stream dropped")
            yield StreamChunk(delta=piece)
        yield StreamChunk(delta="", done=True)


async def seed_database(database: Database) -> None:
    """Two tenants; tenant B rows reuse tenant A entity ids where possible."""
    async with database.session() as session:
        session.add_all(
            [
                User(
                    id="u-1",
                    tenant_id=TENANT_A,
                    first_name="Tina",
                    last_name="Tech",
                    email="tina@example.com",
                ),
                User(
                    id="u-2",
                    tenant_id=TENANT_A,
                    first_name=None,
                    last_name=None,
                    email="dispatch@example.com",
                    role="dispatcher",
                ),
                Client(
                    id="c-1",
                    tenant_id=TENANT_A,
                    name="Acme Homes",
                    primary_phone="555-0100",
                ),
                Property(
                    id="p-1",
                    tenant_id=TENANT_A,
                    client_id="c-1",
                    address_line1="1 Main St",
                    city="Springfield",
                    state="IL",
                    zip="62701",
                    access_notes="Gate code 4411",
                ),
                Equipment(
                    id="e-1",
                    tenant_id=TENANT_A,
                    property_id="p-1",
                    type="condenser",
                    brand="Carrier",
                    installed_at="2019-05-01T00:00:00.000000Z",
                ),
                Equipment(
                    id="e-2",
                    tenant_id=TENANT_A,
                    property_id="p-1",
                    type="furnace",
                    brand="Trane",
                    installed_at="2022-10-15T00:00:00.000000Z",
                ),
                Equipment(
                    id="e-3",
                    tenant_id=TENANT_A,
                    property_id="p-1",
                    type="thermostat",
                    installed_at=None,
                ),
                Job(
                    id="job-1",
                    tenant_id=TENANT_A,
                    property_id="p-1",
                    client_id="c-1",
                    job_type="repair",
                    scheduled_at="2024-06-01T14:00:00.000000Z",
                    status="in_progress",
                    assigned_user_id="u-1",
                    summary="No cooling upstairs",
                ),
                Job(
                    id="job-2",
                    tenant_id=TENANT_A,
                    property_id="p-1",
                    client_id="c-1",
                    job_type="maintenance",
                    status="completed",
                ),
                JobEvent(
                    id="ev-1",
                    tenant_id=TENANT_A,
                    job_id="job-1",
                    property_id="p-1",
                    client_id="c-1",
                    event_type="arrival",
                    created_at="2024-06-01T14:05:00.000000Z",
                ),
                JobEvent(
                    id="ev-2",
                    tenant_id=TENANT_A,
                    job_id="job-1",
                    property_id="p-1",
                    client_id="c-1",
                    event_type="diagnosis",
                    issue="Low refrigerant",
                    created_at="2024-06-01T14:30:00.000000Z",
                ),
                JobEvent(
                    id="ev-3",
                    tenant_id=TENANT_A,
                    job_id="job-1",
                    property_id="p-1",
                    client_id="c-1",
                    equipment_id="e-1",
                    event_type="repair",
                    issue="Fan motor seized",
                    resolution="Replaced condenser fan motor",
                    created_at="2024-06-01T15:10:00.000000Z",
                ),
                JobEvent(
                    id="ev-4",
                    tenant_id=TENANT_A,
                    job_id="job-1",
                    property_id="p-1",
                    client_id="c-1",
                    event_type="departure",
                    created_at="2024-06-01T16:00:00.000000Z",
                ),
                JobEvent(
                    id="ev-5",
                    tenant_id=TENANT_A,
                    job_id="job-2",
                    property_id="p-1",
                    client_id="c-1",
                    event_type="maintenance",
                    resolution="Replaced air filter",
                    created_at="2023-11-20T09:00:00.000000Z",
                ),
                Note(
                    id="n-1",
                    tenant_id=TENANT_A,
                    entity_type="job",
                    entity_id="job-1",
                    content="Customer reports noise from outdoor unit",
                    author_user_id="u-1",
                    created_at="2024-06-01T14:10:00.000000Z",
                ),
                Note(
                    id="n-2",
                    tenant_id=TENANT_A,
                    entity_type="property",
                    entity_id="p-1",
                    content="Dog in backyard, call before entering",
                    author_user_id="u-2",
                    created_at="2024-01-10T08:00:00.000000Z",
                ),
                Note(
                    id="n-3",
                    tenant_id=TENANT_A,
                    entity_type="client",
                    entity_id="c-1",
                    content="Prefers text message updates",
                    created_at="2023-08-01T12:00:00.000000Z",
                ),
                # Tenant B: its own job, plus rows pointing at tenant A ids
                User(
                    id="u-b1",
                    tenant_id=TENANT_B,
                    first_name="Bob",
                    last_name="Other",
                    email="bob@other.example.com",
                ),
                Client(id="c-b1", tenant_id=TENANT_B, name="Other Co"),
                Property(
                    id="p-b1",
                    tenant_id=TENANT_B,
                    client_id="c-b1",
                    address_line1="9 Elm St",
                    city="Shelbyville",
                    state="IL",
                    zip="62565",
                ),
                Job(
                    id="job-b1",
                    tenant_id=TENANT_B,
                    property_id="p-b1",
                    client_id="c-b1",
                    job_type="install",
                ),
                JobEvent(
                    id="b-ev-1",
                    tenant_id=TENANT_B,
                    job_id="job-1",
                    property_id="p-1",
                    client_id="c-1",
                    event_type="repair",
                    issue="Other tenant event",
                    created_at="2024-07-01T10:00:00.000000Z",
                ),
                Note(
                    id="b-n-1",
                    tenant_id=TENANT_B,
                    entity_type="job",
                    entity_id="job-1",
                    content="Other tenant job note",
                    author_user_id="u-b1",
                    created_at="2024-07-01T10:00:00.000000Z",
                ),
                Note(
                    id="b-n-2",
                    tenant_id=TENANT_B,
                    entity_type="property",
                    entity_id="p-1",
                    content="Other tenant property note",
                    created_at="2024-07-01T10:00:00.000000Z",
                ),
                Note(
                    id="b-n-3",
                    tenant_id=TENANT_B,
                    entity_type="client",
                    entity_id="c-1",
                    content="Other tenant client note",
                    created_at="2024-07-01T10:00:00.000000Z",
                ),
            ]
        )
        await session.commit()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Seeded file-backed SQLite database, fresh per test."""
    db = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'copilot.db'}", echo=False)
    await db.create_all()
    await seed_database(db)
    yield db
    await db.dispose()


@pytest.fixture
def copilot_config():
    """Copilot parameters from test settings."""
    return CopilotConfig.from_settings(get_settings())


@pytest.fixture
def fake_provider():
    """Model backend returning a valid JSON answer."""
    return FakeModelProvider()


@pytest.fixture
def provider_factory():
    """Build scripted model backends with custom content or failures."""
    return FakeModelProvider


@pytest.fixture
def model_answer():
    """The JSON answer the default fake backend returns."""
    return MODEL_ANSWER


@pytest.fixture
def mock_embedding_service():
    """Mock embedding service."""
    service = AsyncMock()
    service.embed_query.return_value = [0.1, 0.2, 0.3, 0.4]
    return service


@pytest.fixture
def mock_vector_store():
    """Mock vector store service."""
    service = AsyncMock()
    service.query.return_value = []
    service.health_check.return_value = {"status": "healthy", "latency_ms": 10}
    return service
