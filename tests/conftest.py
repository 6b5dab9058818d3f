"""
Pytest configuration and shared fixtures for Stan Chat tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- slow: Tests that start the FastAPI app through TestClient
- integration: Tests that call the real OpenRouter API (need OPENROUTER_API_KEY)

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not integration" # Skip tests that hit the network
- pytest                      # All tests
"""
import pytest

from api.services.fact_store import SQLiteFactStore
from tests.fakes import FakeOpenRouter, InMemoryFactStore
from tests.reset_singletons import reset_all_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Tests that start the FastAPI app")
    config.addinivalue_line("markers", "integration: Integration tests (real OpenRouter API)")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Point every test at a throwaway database and a fake API key.

    Singletons are reset afterwards so nothing leaks into the next test.
    """
    from config.settings import settings

    monkeypatch.setattr(settings, "db_path", tmp_path / "facts.db")
    monkeypatch.setattr(settings, "openrouter_api_key", "test-key-for-testing")
    monkeypatch.setattr(settings, "openrouter_max_retries", 0)
    yield settings
    reset_all_singletons()


@pytest.fixture
def store(tmp_path):
    """Create a SQLiteFactStore with a temporary database."""
    return SQLiteFactStore(db_path=str(tmp_path / "store.db"))


@pytest.fixture
def memory_store():
    """An empty in-memory fact store."""
    return InMemoryFactStore()


@pytest.fixture
def fake_openrouter():
    """A FakeOpenRouter with default (empty) extraction and a canned reply."""
    return FakeOpenRouter()
