"""
Tests for the Memories API.

Covers listing and deleting the facts remembered about a user.
"""
import pytest
from fastapi.testclient import TestClient

# These tests use TestClient which initializes the app (slow)
pytestmark = pytest.mark.slow

from api.main import app
from api.services.fact_store import get_fact_store


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def seeded_store():
    """The default fact store with two facts for u1."""
    store = get_fact_store()
    store.upsert("u1", "name", "Kia")
    store.upsert("u1", "favorite_color", "blue")
    return store


class TestListFacts:
    """Tests for GET /api/memories/{user_id}."""

    def test_lists_facts(self, client, seeded_store):
        response = client.get("/api/memories/u1")

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "u1"
        assert data["total"] == 2
        assert [(f["key"], f["value"]) for f in data["facts"]] == [
            ("name", "Kia"),
            ("favorite_color", "blue"),
        ]
        assert data["facts"][0]["created_at"]
        assert data["facts"][0]["updated_at"]

    def test_unknown_user_is_empty(self, client, seeded_store):
        response = client.get("/api/memories/nobody")

        assert response.status_code == 200
        assert response.json() == {"user_id": "nobody", "facts": [], "total": 0}


class TestDeleteFact:
    """Tests for DELETE /api/memories/{user_id}/{key}."""

    def test_deletes_fact(self, client, seeded_store):
        response = client.delete("/api/memories/u1/name")

        assert response.status_code == 200
        assert response.json() == {"status": "deleted", "key": "name"}
        assert seeded_store.get("u1", "name") is None
        assert seeded_store.get("u1", "favorite_color") == "blue"

    def test_missing_fact_is_404(self, client, seeded_store):
        response = client.delete("/api/memories/u1/pet")

        assert response.status_code == 404
        assert response.json()["detail"] == "Fact not found"

    def test_delete_is_per_user(self, client, seeded_store):
        response = client.delete("/api/memories/u2/name")

        assert response.status_code == 404
        assert seeded_store.get("u1", "name") == "Kia"
