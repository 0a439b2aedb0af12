"""
Pytest Configuration and Fixtures

Provides shared fixtures for both unit and integration tests.
"""

import pytest
from typing import AsyncGenerator
from unittest.mock import patch
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from src.interview.local_store import LocalStore
from src.interview.orchestrator import RunOrchestrator
from tests.mocks.fake_agents import FakeAgents


# ==============================================================================
# Store & Agents
# ==============================================================================

@pytest.fixture
def local_store(tmp_path):
    """A filesystem store rooted in a per-test temp directory."""
    return LocalStore(str(tmp_path / "data"))


@pytest.fixture
def fake_agents():
    return FakeAgents()


@pytest.fixture
def orchestrator(local_store, fake_agents):
    return RunOrchestrator(local_store, fake_agents)


# ==============================================================================
# FastAPI Test Client Fixtures
# ==============================================================================

@pytest.fixture
def app_with_mocks(local_store, orchestrator):
    """The real app with the module-level store and orchestrator swapped for test instances."""
    from src.interview.main import app

    with patch('src.interview.controllers.store', local_store), \
         patch('src.interview.controllers.orchestrator', orchestrator):
        yield app, local_store, orchestrator


@pytest.fixture
def test_client(app_with_mocks):
    """Synchronous test client for simple endpoint tests."""
    app, _, _ = app_with_mocks
    with TestClient(app) as client:
        yield client


@pytest.fixture
async def async_client(app_with_mocks) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for async endpoint tests."""
    app, _, _ = app_with_mocks
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ==============================================================================
# Sample Request Fixtures
# ==============================================================================

@pytest.fixture
def sample_interactive_request():
    return {
        "mode": "interactive",
        "initialQuestion": "What do you need help planning?",
        "taskTopic": "Team offsite",
    }


@pytest.fixture
def sample_simulated_request():
    return {
        "mode": "simulated",
        "initialQuestion": "What do you need help planning?",
        "profileId": "default",
        "maxTurns": 4,
    }


@pytest.fixture
def sample_upload_request():
    return {
        "initialQuestion": "What do you need help planning?",
        "transcript": [
            {"role": "agentA", "content": "What do you need help planning?", "endFlag": 0},
            {"role": "user", "content": "A team offsite for 12 people."},
            {"role": "agentA", "content": "Thanks, I have what I need.", "endFlag": 1},
        ],
    }
