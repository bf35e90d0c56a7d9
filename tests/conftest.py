"""
Root pytest configuration and fixtures for tandem.

Provides common fixtures and test utilities for the test suite.
"""

import os
from pathlib import Path
import sys

import pytest
import responses

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tandem.config import Settings  # noqa: E402
from tandem.gate import PersistenceGate  # noqa: E402
from tandem.store import MemoryStorage, SessionStore  # noqa: E402


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean environment variables before each test."""
    original_env = os.environ.copy()

    # Remove tandem environment variables
    for key in list(os.environ.keys()):
        if key.startswith("TANDEM_"):
            del os.environ[key]

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def base_url():
    """Test base URL."""
    return "http://tandem.test"


@pytest.fixture
def settings(base_url, tmp_path):
    """Settings pointing at a throwaway store and test server."""
    return Settings(base_url=base_url, store_path=tmp_path / "sessions.json")


@pytest.fixture
def storage():
    """In-memory storage that counts writes."""
    return MemoryStorage()


@pytest.fixture
def store(storage):
    """Empty session store over in-memory storage."""
    return SessionStore(storage)


@pytest.fixture
def gate(store):
    """Persistence gate over the test store."""
    return PersistenceGate(store)


@pytest.fixture
def mock_requests():
    """Mock HTTP requests using responses library."""
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def plan_payload():
    """A complete progressive_todos tool payload."""
    return {
        "enhanced_prompt": "Open example.com and check the login form",
        "todos": [
            {
                "id": "1",
                "description": "Open the home page",
                "action": "navigate",
                "details": {
                    "type": "goto",
                    "value": "https://example.com",
                    "timeout": 5000,
                    "expectation": "Page loads",
                },
                "validation": {"selector": "body", "expected_state": "visible"},
            },
            {
                "id": "2",
                "description": "Click login",
                "action": "click",
                "details": {
                    "type": "click",
                    "selector": "#login",
                    "timeout": 3000,
                    "expectation": "Login form opens",
                },
                "validation": {"selector": "form#login", "expected_state": "visible"},
            },
        ],
    }
