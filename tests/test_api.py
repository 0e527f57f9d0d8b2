"""Tests for API endpoints."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from project_service.api.app import create_app
from project_service.errors import RemoteUnavailableError
from project_service.main import Application

TENANT = {"X-Tenant-Id": "tenant-a", "X-User-Id": "u1"}


@pytest.fixture
def client(application: Application) -> TestClient:
    """Create test client. The lifespan is not run; the database is ready."""
    app = create_app(application=application, consume_events=False)
    return TestClient(app)


def create_project(client: TestClient, name: str = "site") -> dict:
    response = client.post("/api/projects", json={"name": name}, headers=TENANT)
    assert response.status_code == 201
    return response.json()


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "ok"
        assert data["report_failures"] == 0
        assert data["events"]["backend"] == "memory"

    def test_root(self, client: TestClient) -> None:
        assert client.get("/").json()["name"] == "Project Service"


class TestProjectEndpoints:
    """Tests for /api/projects."""

    def test_create(self, client: TestClient) -> None:
        project = create_project(client)

        assert project["tenant_id"] == "tenant-a"
        assert project["owner_id"] == "u1"
        assert project["status"] == "ACTIVE"

    def test_create_requires_headers(self, client: TestClient) -> None:
        response = client.post("/api/projects", json={"name": "site"})
        assert response.status_code == 422

    def test_create_validates_body(self, client: TestClient) -> None:
        response = client.post("/api/projects", json={"name": ""}, headers=TENANT)
        assert response.status_code == 422

    def test_limit_exceeded(self, client: TestClient) -> None:
        create_project(client, "one")
        create_project(client, "two")

        response = client.post("/api/projects", json={"name": "three"}, headers=TENANT)

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "limit_exceeded"
        assert body["current"] == 2
        assert body["limit"] == 2
        assert body["resource"] == "project"

    def test_limits_unavailable(self, client: TestClient, remote: MagicMock) -> None:
        remote.fetch_limits.side_effect = RemoteUnavailableError("Tenant service unreachable")

        response = client.post("/api/projects", json={"name": "one"}, headers=TENANT)

        assert response.status_code == 503
        assert response.json()["error"] == "limits_unavailable"

    def test_get_and_list(self, client: TestClient) -> None:
        project = create_project(client)

        assert client.get(f"/api/projects/{project['id']}").json()["name"] == "site"
        listed = client.get("/api/projects", params={"tenantId": "tenant-a"}).json()
        assert [p["id"] for p in listed] == [project["id"]]

    def test_list_requires_tenant(self, client: TestClient) -> None:
        assert client.get("/api/projects").status_code == 422

    def test_get_missing(self, client: TestClient) -> None:
        response = client.get("/api/projects/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_update(self, client: TestClient) -> None:
        project = create_project(client)

        response = client.put(
            f"/api/projects/{project['id']}",
            json={"name": "renamed", "description": "d"},
            headers=TENANT,
        )
        assert response.status_code == 200
        assert response.json()["name"] == "renamed"

    def test_update_forbidden(self, client: TestClient) -> None:
        project = create_project(client)

        response = client.put(
            f"/api/projects/{project['id']}",
            json={"name": "renamed"},
            headers={"X-User-Id": "someone-else"},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_delete(self, client: TestClient) -> None:
        project = create_project(client)

        response = client.delete(f"/api/projects/{project['id']}", headers=TENANT)
        assert response.status_code == 204
        assert client.get(f"/api/projects/{project['id']}").status_code == 404


class TestDomainEndpoints:
    """Tests for /api/projects/{id}/domains."""

    def test_add_list_delete(self, client: TestClient) -> None:
        project = create_project(client)
        base = f"/api/projects/{project['id']}/domains"

        response = client.post(base, json={"domain_url": "https://www.Example.com/"}, headers=TENANT)
        assert response.status_code == 201
        domain = response.json()
        assert domain["domain_url"] == "example.com"
        assert domain["verification_status"] == "PENDING"
        assert domain["verification_method"] == "DNS_TXT"

        assert [d["id"] for d in client.get(base).json()] == [domain["id"]]

        assert client.delete(f"{base}/{domain['id']}").status_code == 204
        assert client.get(base).json() == []

    def test_duplicate_conflict(self, client: TestClient) -> None:
        project = create_project(client)
        base = f"/api/projects/{project['id']}/domains"

        client.post(base, json={"domain_url": "example.com"})
        response = client.post(base, json={"domain_url": "http://example.com/"})

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_invalid_method(self, client: TestClient) -> None:
        project = create_project(client)
        response = client.post(
            f"/api/projects/{project['id']}/domains",
            json={"domain_url": "example.com", "verification_method": "CARRIER_PIGEON"},
        )
        assert response.status_code == 422


class TestRepositoryEndpoints:
    """Tests for /api/projects/{id}/repositories."""

    def test_add_and_delete(self, client: TestClient) -> None:
        project = create_project(client)
        base = f"/api/projects/{project['id']}/repositories"

        response = client.post(
            base,
            json={"name": "web", "repo_url": "https://git.example.com/web.git", "default_branch": "develop"},
        )
        assert response.status_code == 201
        repository = response.json()
        assert repository["default_branch"] == "develop"

        assert client.delete(f"{base}/{repository['id']}").status_code == 204
        assert client.get(f"/api/projects/{project['id']}").json()["repo_count"] == 0


class TestTenantLimitsEndpoint:
    def test_limits_view(self, client: TestClient) -> None:
        create_project(client)

        data = client.get("/api/tenants/tenant-a/limits").json()
        assert data["limits"]["max_projects"] == 2
        assert data["usage"]["projects"] == 1
