"""Pytest configuration and fixtures."""

import json
import os
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment before any app code runs
os.environ["ENV"] = "test"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["HISTORY_BACKEND"] = "memory"

from api.config import Settings, get_settings  # noqa: E402
from api.deps import get_audit_provider  # noqa: E402
from api.middleware import SlidingWindowRateLimiter  # noqa: E402
from tests.fixtures.audits import raw_audit  # noqa: E402
from worker.audit.generator import MockProvider  # noqa: E402
from worker.audit.history import InMemoryHistoryStore  # noqa: E402
from worker.audit.models import AuditDocument  # noqa: E402
from worker.audit.repair import repair  # noqa: E402

get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings for tests, independent of any .env file."""
    return Settings(_env_file=None, env="test", openai_api_key="test-key")


@pytest.fixture
def document() -> AuditDocument:
    """The sample generator output after repair."""
    return repair(raw_audit())


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    """Empty in-memory history."""
    return InMemoryHistoryStore(max_entries=50)


@pytest.fixture
def mock_provider() -> MockProvider:
    """Provider that replies with the sample audit once."""
    return MockProvider(responses=[json.dumps(raw_audit())])


@pytest.fixture
async def client(
    settings: Settings,
    history_store: InMemoryHistoryStore,
    mock_provider: MockProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client backed by in-memory history and a mock provider."""
    from api.main import create_app

    app = create_app(
        settings=settings,
        history_store=history_store,
        rate_limiter=SlidingWindowRateLimiter(max_requests=1000, window_seconds=60),
    )
    app.dependency_overrides[get_audit_provider] = lambda: mock_provider

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
