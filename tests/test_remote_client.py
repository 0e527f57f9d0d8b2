"""Tests for the tenant service client and the HTTP client beneath it."""

import httpx
import pytest

from project_service.errors import RemoteUnavailableError
from project_service.http.client import HttpClient
from project_service.quota.limits import ResourceKind
from project_service.quota.remote import TenantServiceClient


def make_client(handler, max_retries: int = 1) -> TenantServiceClient:
    http = HttpClient(
        base_url="http://tenant-service",
        max_retries=max_retries,
        backoff_factor=0,
        transport=httpx.MockTransport(handler),
    )
    return TenantServiceClient(base_url="http://tenant-service", http_client=http)


class TestFetchLimits:
    """Tests for TenantServiceClient.fetch_limits."""

    def test_nested_limits(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "t1",
                    "plan": "PRO",
                    "limits": {"maxProjects": 10, "maxDomains": 20, "maxRepos": 30},
                },
            )

        limits = make_client(handler).fetch_limits("t1")

        assert requests[0].method == "GET"
        assert requests[0].url.path == "/api/tenants/t1"
        assert (limits.max_projects, limits.max_domains, limits.max_repos) == (10, 20, 30)
        assert limits.tenant_id == "t1"

    def test_flat_limits(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"maxProjects": 1, "maxDomains": 2, "maxRepos": 3})

        assert make_client(handler).fetch_limits("t1").max_repos == 3

    def test_not_found(self) -> None:
        client = make_client(lambda request: httpx.Response(404, json={"error": "not found"}))

        with pytest.raises(RemoteUnavailableError, match="404"):
            client.fetch_limits("t1")
        assert client.stats()["fetch_failures"] == 1

    def test_server_error_retried(self) -> None:
        """5xx responses are retried before failing."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(RemoteUnavailableError):
            make_client(handler, max_retries=2).fetch_limits("t1")
        assert len(calls) == 3

    def test_server_error_then_success(self) -> None:
        responses = iter([
            httpx.Response(502),
            httpx.Response(200, json={"limits": {"maxProjects": 1, "maxDomains": 1, "maxRepos": 1}}),
        ])

        limits = make_client(lambda request: next(responses)).fetch_limits("t1")
        assert limits.max_projects == 1

    def test_timeout(self) -> None:
        """A timeout that persists after retries is a hard failure."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RemoteUnavailableError, match="ReadTimeout"):
            make_client(handler).fetch_limits("t1")
        assert len(calls) == 2

    def test_client_error_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400)

        with pytest.raises(RemoteUnavailableError):
            make_client(handler, max_retries=3).fetch_limits("t1")
        assert len(calls) == 1

    @pytest.mark.parametrize(
        "body",
        [
            {"limits": {"maxProjects": 1}},
            {"limits": {"maxProjects": -1, "maxDomains": 1, "maxRepos": 1}},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_limits(self, body: object) -> None:
        client = make_client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(RemoteUnavailableError, match="malformed"):
            client.fetch_limits("t1")

    def test_invalid_json(self) -> None:
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(RemoteUnavailableError, match="invalid JSON"):
            client.fetch_limits("t1")


class TestReportDelta:
    """Tests for TenantServiceClient.report_delta."""

    @pytest.mark.parametrize(
        ("delta", "action"),
        [(1, "increment"), (-1, "decrement")],
    )
    def test_endpoint_and_resource(self, delta: int, action: str) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        client = make_client(handler)
        assert client.report_delta("t1", ResourceKind.REPO, delta) is True

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == f"/api/tenants/t1/resources/{action}"
        assert request.url.params["resource"] == "REPO"

    def test_failure_is_logged_and_counted(self, caplog: pytest.LogCaptureFixture) -> None:
        """Reporting never raises; failures are observable."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with caplog.at_level("ERROR"):
            assert client.report_delta("t1", ResourceKind.PROJECT, 1) is False

        stats = client.stats()
        assert stats["reports"] == 1
        assert stats["report_failures"] == 1
        assert "Failed to report PROJECT delta +1 for tenant t1" in caplog.text

    def test_error_status_is_a_failure(self) -> None:
        client = make_client(lambda request: httpx.Response(404))
        assert client.report_delta("t1", ResourceKind.DOMAIN, -1) is False
        assert client.stats()["report_failures"] == 1

    def test_rejects_other_deltas(self) -> None:
        client = make_client(lambda request: httpx.Response(200))
        with pytest.raises(ValueError):
            client.report_delta("t1", ResourceKind.PROJECT, 2)


class TestHttpClient:
    """Tests for the retrying HttpClient."""

    def test_client_errors_are_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        transport = httpx.MockTransport(handler)
        with HttpClient(base_url="http://x", transport=transport, max_retries=3) as client:
            assert client.get("/status").status_code == 404
        assert len(calls) == 1

    def test_backoff(self) -> None:
        client = HttpClient(backoff_factor=0.5)
        assert client.backoff_for(0) == 0.5
        assert client.backoff_for(2) == 2.0
