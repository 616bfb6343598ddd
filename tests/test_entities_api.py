"""
Tests for the entity HTTP API.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from enrichment.main import app
from enrichment.routes.entities import get_store
from enrichment.services.errors import StoreError

pytestmark = pytest.mark.integration

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
SCOPE = {"tenant_id": TENANT}


@pytest.fixture
def client(temp_store):
    """TestClient backed by a temporary store."""
    app.dependency_overrides[get_store] = lambda: temp_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def resolve(client, email, display_name="", **kwargs):
    payload = {"tenant_id": TENANT, "email": email, "display_name": display_name, **kwargs}
    return client.post("/api/entities/resolve", json=payload)


def create(client, email, display_name=""):
    response = resolve(client, email, display_name)
    assert response.status_code == 200
    return response.json()["person"]


class TestResolveEndpoint:
    """Tests for POST /api/entities/resolve."""

    def test_creates_person(self, client):
        response = resolve(client, "Jane.Doe@other.com")
        assert response.status_code == 200
        data = response.json()
        assert data["found"] is True
        assert data["is_new"] is True
        assert data["source"] == "auto_created"
        assert data["confidence"] == pytest.approx(0.6)
        assert data["person"]["canonical_name"] == "Jane Doe"
        assert data["person"]["primary_email"] == "jane.doe@other.com"
        assert data["person"]["account_type"] == "person"

    def test_internal_domains_from_settings(self, client, monkeypatch):
        monkeypatch.setattr(settings, "internal_domains_raw", "acme.com")
        data = resolve(client, "jane@acme.com", "Jane Doe").json()
        assert data["person"]["is_internal"] is True
        assert data["confidence"] == pytest.approx(0.7)

    def test_second_call_is_exact_match(self, client):
        first = create(client, "jane@other.com", "Jane Doe")
        data = resolve(client, "JANE@other.com", "Jane Doe").json()
        assert data["source"] == "exact_match"
        assert data["is_new"] is False
        assert data["person"]["id"] == first["id"]

    def test_lookup_only(self, client):
        data = resolve(client, "nobody@other.com", create_if_missing=False).json()
        assert data == {"found": False, "is_new": False, "confidence": 0.0, "source": "", "person": None}
        stats = client.get("/api/entities/stats", params={"tenant_id": TENANT}).json()
        assert stats["total_people"] == 0

    def test_invalid_email(self, client):
        response = resolve(client, "not-an-email")
        assert response.status_code == 400
        assert "invalid email" in response.json()["detail"]

    def test_missing_fields(self, client):
        response = client.post("/api/entities/resolve", json={"tenant_id": TENANT})
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    def test_blocked_by_filter_rule(self, client):
        client.post("/api/entities/filters", json={"tenant_id": TENANT, "email_pattern": "%@spam.com"})
        response = resolve(client, "promo@spam.com", "Promo")
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["blocked"] is True
        assert detail["reason"] == "filter rule"
        assert detail["error"].startswith("entity creation blocked by")

    def test_rejected_address_blocked(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        client.post(f"/api/entities/{person['id']}/reject", json={"tenant_id": TENANT, "reason": "spam"})
        response = resolve(client, "jane@other.com", "Jane Doe")
        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "rejected entity"

    def test_expired_timeout(self, client):
        response = resolve(client, "jane@other.com", timeout=0)
        assert response.status_code == 504


class TestBatchResolveEndpoint:
    """Tests for POST /api/entities/resolve/batch."""

    def test_batch(self, client):
        client.post("/api/entities/filters", json={"tenant_id": TENANT, "email_pattern": "%@spam.com"})
        response = client.post("/api/entities/resolve/batch", json={
            "tenant_id": TENANT,
            "participants": [
                {"email": "alice@other.com", "name": "Alice Adams"},
                {"email": "", "name": "Nobody"},
                {"email": "promo@spam.com", "name": "Promo"},
                {"email": "noreply@other.com"},
            ],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert data["resolved"] == 2
        assert [r["email"] for r in data["results"]] == ["alice@other.com", "promo@spam.com", "noreply@other.com"]
        assert data["results"][1]["person_id"] is None
        assert data["results"][2]["account_type"] == "bot"


class TestPersonEndpoints:
    """Tests for single-person endpoints."""

    def test_get_person(self, client):
        person = create(client, "jane@other.com", "DOE, JANE")
        response = client.get(f"/api/entities/{person['id']}", params=SCOPE)
        assert response.status_code == 200
        assert response.json()["canonical_name"] == "Jane Doe"

    def test_get_missing_person(self, client):
        assert client.get("/api/entities/999", params=SCOPE).status_code == 404
        assert client.get("/api/entities/999/aliases", params=SCOPE).status_code == 404

    def test_aliases(self, client):
        person = create(client, "jane@other.com", "DOE, JANE")
        data = client.get(f"/api/entities/{person['id']}/aliases", params=SCOPE).json()
        assert data["count"] == 2
        assert [a["alias_type"] for a in data["aliases"]] == ["email", "display_name"]

    def test_review(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        queue = client.get("/api/entities/review/queue", params={"tenant_id": TENANT}).json()
        assert [p["id"] for p in queue["people"]] == [person["id"]]

        response = client.post(f"/api/entities/{person['id']}/review", json={"tenant_id": TENANT, "reviewed_by": "admin"})
        assert response.json() == {"status": "reviewed", "person_id": person["id"]}
        assert client.get(f"/api/entities/{person['id']}", params=SCOPE).json()["confidence"] == 1.0
        assert client.get("/api/entities/review/queue", params={"tenant_id": TENANT}).json()["count"] == 0

        assert client.post("/api/entities/999/review", json={"tenant_id": TENANT, "reviewed_by": "admin"}).status_code == 404

    def test_reject_and_restore(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        url = f"/api/entities/{person['id']}"

        response = client.post(f"{url}/reject", json={"tenant_id": TENANT, "reason": "spam", "rejected_by": "admin"})
        assert response.status_code == 200
        assert client.get(url, params=SCOPE).json()["is_rejected"] is True
        assert client.post(f"{url}/reject", json={"tenant_id": TENANT}).status_code == 404

        assert client.post(f"{url}/restore", json={"tenant_id": TENANT}).status_code == 200
        assert client.get(url, params=SCOPE).json()["is_rejected"] is False
        assert client.post(f"{url}/restore", json={"tenant_id": TENANT}).status_code == 404

    def test_update(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        url = f"/api/entities/{person['id']}"

        response = client.patch(url, json={"tenant_id": TENANT, "name": "Jane Q. Doe", "account_type": "role"})
        assert response.status_code == 200
        assert response.json()["canonical_name"] == "Jane Q. Doe"
        assert response.json()["account_type"] == "role"

        assert client.patch(url, json={"tenant_id": TENANT}).status_code == 400
        assert client.patch(url, json={"tenant_id": TENANT, "account_type": "robot"}).status_code == 400
        assert client.patch(url, json={"tenant_id": "other", "name": "X"}).status_code == 404

    def test_delete(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        url = f"/api/entities/{person['id']}"

        assert client.delete(url, params={"tenant_id": "other"}).status_code == 404
        assert client.delete(url, params={"tenant_id": TENANT}).json()["status"] == "deleted"
        assert client.get(url, params=SCOPE).status_code == 404
        assert client.delete(url, params={"tenant_id": TENANT}).status_code == 404

    def test_other_tenant_cannot_read_or_review(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        url = f"/api/entities/{person['id']}"
        other = {"tenant_id": OTHER_TENANT}

        assert client.get(url, params=other).status_code == 404
        assert client.get(f"{url}/aliases", params=other).status_code == 404
        response = client.post(f"{url}/review", json={"tenant_id": OTHER_TENANT, "reviewed_by": "intruder"})
        assert response.status_code == 404

        data = client.get(url, params=SCOPE).json()
        assert data["reviewed_by"] is None
        assert data["needs_review"] is True

    def test_tenant_required(self, client):
        person = create(client, "jane@other.com", "Jane Doe")
        assert client.get(f"/api/entities/{person['id']}").status_code == 400
        response = client.post(f"/api/entities/{person['id']}/review", json={"reviewed_by": "admin"})
        assert response.status_code == 400


class TestTeamEndpoints:
    """Tests for /api/teams."""

    def test_team_lifecycle(self, client):
        jane = create(client, "jane@other.com", "Jane Doe")
        response = client.post("/api/teams", json={"tenant_id": TENANT, "name": "Platform"})
        assert response.status_code == 200
        team = response.json()

        assert client.post("/api/teams", json={"tenant_id": TENANT, "name": "Platform"}).status_code == 409

        member = client.post(f"/api/teams/{team['id']}/members", json={
            "tenant_id": TENANT, "person_id": jane["id"], "role": "lead",
        }).json()
        assert member["role"] == "lead"

        data = client.get(f"/api/teams/{team['id']}", params=SCOPE).json()
        assert [m["person"]["canonical_name"] for m in data["members"]] == ["Jane Doe"]
        assert client.get("/api/teams", params={"tenant_id": TENANT, "q": "plat"}).json()["count"] == 1

        url = f"/api/teams/members/{member['id']}"
        assert client.delete(url, params=SCOPE).status_code == 200
        assert client.delete(url, params=SCOPE).status_code == 404

        assert client.delete(f"/api/teams/{team['id']}", params=SCOPE).json()["status"] == "deleted"
        assert client.get(f"/api/teams/{team['id']}", params=SCOPE).status_code == 404

    def test_cross_tenant_member_rejected(self, client):
        jane = create(client, "jane@other.com", "Jane Doe")
        team = client.post("/api/teams", json={"tenant_id": OTHER_TENANT, "name": "Platform"}).json()

        response = client.post(f"/api/teams/{team['id']}/members", json={
            "tenant_id": OTHER_TENANT, "person_id": jane["id"],
        })
        assert response.status_code == 404
        assert client.get(f"/api/teams/{team['id']}", params=SCOPE).status_code == 404


class TestProjectEndpoints:
    """Tests for /api/projects."""

    def test_project_members(self, client):
        jane = create(client, "jane@other.com", "Jane Doe")
        john = create(client, "john@other.com", "John Smith")
        team = client.post("/api/teams", json={"tenant_id": TENANT, "name": "Platform"}).json()
        client.post(f"/api/teams/{team['id']}/members", json={"tenant_id": TENANT, "person_id": john["id"]})

        response = client.post("/api/projects", json={
            "tenant_id": TENANT, "name": "Atlas", "keywords": ["atlas"], "jira_projects": ["ATL"],
        })
        assert response.status_code == 200
        project = response.json()
        assert project["member_ids"] == []

        url = f"/api/projects/{project['id']}/members"
        assert client.post(url, json={"tenant_id": TENANT, "person_id": jane["id"]}).status_code == 200
        assert client.post(url, json={"tenant_id": TENANT, "team_id": team["id"]}).status_code == 200
        assert client.post(url, json={"tenant_id": TENANT}).status_code == 400

        data = client.get(f"/api/projects/{project['id']}", params=SCOPE).json()
        assert data["member_ids"] == sorted([jane["id"], john["id"]])

        by_key = client.get("/api/projects/by-jira-key/ATL", params=SCOPE).json()
        assert by_key["id"] == project["id"]
        assert client.get("/api/projects/by-jira-key/NOPE", params=SCOPE).status_code == 404

        listed = client.get("/api/projects/with-keywords", params=SCOPE).json()
        assert [p["name"] for p in listed["projects"]] == ["Atlas"]

    def test_other_tenant_cannot_see_project(self, client):
        project = client.post("/api/projects", json={"tenant_id": TENANT, "name": "Atlas"}).json()
        other = {"tenant_id": OTHER_TENANT}
        assert client.get(f"/api/projects/{project['id']}", params=other).status_code == 404
        assert client.post("/api/projects", json={"tenant_id": TENANT, "name": "Atlas"}).status_code == 409


class TestCollectionEndpoints:
    """Tests for stats, search and bulk endpoints."""

    def test_stats(self, client):
        create(client, "jane@other.com", "Jane Doe")
        create(client, "noreply@other.com")
        stats = client.get("/api/entities/stats", params={"tenant_id": TENANT}).json()
        assert stats["total_people"] == 2
        assert stats["by_account_type"] == {"person": 1, "bot": 1}
        assert stats["needing_review"] == 1
        assert stats["auto_created"] == 2

    def test_search(self, client):
        create(client, "jane@other.com", "Jane Doe")
        create(client, "john@other.com", "John Smith")
        data = client.get("/api/entities/search", params={"tenant_id": TENANT, "q": "smith"}).json()
        assert [p["canonical_name"] for p in data["people"]] == ["John Smith"]

        response = client.get("/api/entities/search", params={"tenant_id": TENANT, "q": "x", "field": "phone"})
        assert response.status_code == 400

    def test_bulk_reject(self, client):
        create(client, "a@spam.com", "A")
        create(client, "b@spam.com", "B")
        create(client, "c@other.com", "C")

        response = client.post("/api/entities/bulk-reject", json={"tenant_id": TENANT, "email_pattern": "%@spam.com"})
        assert response.json() == {"count": 2}
        assert client.post("/api/entities/bulk-reject", json={"tenant_id": TENANT}).status_code == 400

    def test_bulk_enrich(self, client):
        person = create(client, "a@partner.com", "A")
        response = client.post("/api/entities/bulk-enrich", json={
            "tenant_id": TENANT, "domain": "partner.com", "company": "Partner Inc",
        })
        assert response.json() == {"count": 1}
        assert client.get(f"/api/entities/{person['id']}", params=SCOPE).json()["company"] == "Partner Inc"


class TestFilterRuleEndpoints:
    """Tests for /api/entities/filters."""

    def test_crud(self, client):
        response = client.post("/api/entities/filters", json={
            "tenant_id": TENANT, "email_pattern": "%@spam.com", "reason": "spam", "created_by": "admin",
        })
        assert response.status_code == 200
        rule = response.json()
        assert rule["id"] is not None
        assert rule["reason"] == "spam"

        rules = client.get("/api/entities/filters", params={"tenant_id": TENANT}).json()
        assert rules["count"] == 1

        tested = client.post("/api/entities/filters/test", json={"tenant_id": TENANT, "email": "X@Spam.com"}).json()
        assert tested["matches"] is True
        assert tested["rules"][0]["id"] == rule["id"]

        url = f"/api/entities/filters/{rule['id']}"
        assert client.delete(url, params={"tenant_id": TENANT}).json() == {"status": "deleted", "id": rule["id"]}
        assert client.delete(url, params={"tenant_id": TENANT}).status_code == 404

    def test_rule_requires_pattern(self, client):
        response = client.post("/api/entities/filters", json={"tenant_id": TENANT, "reason": "nothing"})
        assert response.status_code == 400


class TestPatternEndpoints:
    """Tests for /api/entities/patterns."""

    def test_pattern_changes_classification(self, client):
        response = client.post("/api/entities/patterns", json={
            "tenant_id": TENANT, "pattern": "ops", "pattern_type": "role",
        })
        assert response.status_code == 200
        pattern = response.json()

        data = resolve(client, "ops@other.com").json()
        assert data["person"]["account_type"] == "role"

        listed = client.get("/api/entities/patterns", params={"tenant_id": TENANT}).json()
        assert listed["count"] == 1

        url = f"/api/entities/patterns/{pattern['id']}"
        assert client.delete(url, params={"tenant_id": TENANT}).status_code == 200
        assert client.delete(url, params={"tenant_id": TENANT}).status_code == 404

    def test_invalid_pattern_type(self, client):
        response = client.post("/api/entities/patterns", json={
            "tenant_id": TENANT, "pattern": "ops", "pattern_type": "team",
        })
        assert response.status_code == 400


class TestHealth:
    """Tests for /health."""

    def test_healthy(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"database": True}

    def test_degraded(self):
        broken = MagicMock()
        broken.get_entity_stats.side_effect = StoreError("get entity stats", "unable to open database file")
        app.dependency_overrides[get_store] = lambda: broken
        try:
            data = TestClient(app).get("/health").json()
        finally:
            app.dependency_overrides.clear()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] is False
