"""
Pytest configuration and shared fixtures for entity enrichment tests.

Test Categories:
- unit: Fast tests against a temporary SQLite database
- integration: Tests that exercise the HTTP API through the FastAPI TestClient

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not integration" # Skip API tests
- pytest                      # All tests
"""
import tempfile
from pathlib import Path

import pytest

from enrichment.services import person_entity
from enrichment.services.entity_resolver import EntityResolver
from enrichment.services.person_entity import PersonStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: API tests through the TestClient")


@pytest.fixture
def temp_store():
    """Create a temporary person store for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    store = PersonStore(db_path)
    yield store
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def resolver(temp_store):
    """Resolver with acme.com as the internal domain."""
    return EntityResolver(temp_store, internal_domains=["acme.com"])


@pytest.fixture(autouse=True)
def reset_person_store():
    """Drop the PersonStore singleton so tests never share a database."""
    yield
    person_entity._person_store = None
