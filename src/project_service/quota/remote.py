"""Client for the tenant service, the authority on tenant limits."""

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx

from project_service.config import Settings
from project_service.errors import RemoteReportFailure, RemoteUnavailableError
from project_service.http.client import HttpClient
from project_service.quota.limits import ResourceKind, TenantLimits

logger = logging.getLogger(__name__)


class TenantServiceClient:
    """
    Synchronous client for the tenant service.

    ``fetch_limits`` blocks and raises when the answer is unknown, because
    quota checks must never guess. ``report_delta`` is best-effort usage
    telemetry: it logs and counts failures but never raises, so the tenant
    service being down cannot break local resource changes.
    """

    def __init__(
        self,
        base_url: str,
        timeout: httpx.Timeout | None = None,
        max_retries: int = 1,
        backoff_factor: float = 0.2,
        http_client: HttpClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Tenant service root URL
            timeout: Bounded request timeout
            max_retries: Retries on connection errors, timeouts and 5xx
            backoff_factor: Base delay between retries in seconds
            http_client: Pre-built HTTP client (tests)
        """
        self._http = http_client or HttpClient(
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._stats_lock = threading.Lock()
        self._stats = {
            "fetches": 0,
            "fetch_failures": 0,
            "reports": 0,
            "report_failures": 0,
        }

    @classmethod
    def from_settings(cls, config: Settings) -> TenantServiceClient:
        timeout = httpx.Timeout(
            connect=config.tenant_service_timeout_connect,
            read=config.tenant_service_timeout_read,
            write=config.tenant_service_timeout_read,
            pool=config.tenant_service_timeout_connect,
        )
        return cls(
            base_url=config.tenant_service_url,
            timeout=timeout,
            max_retries=config.tenant_service_max_retries,
            backoff_factor=config.tenant_service_backoff_factor,
        )

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def stats(self) -> dict[str, int]:
        """Call and failure counters since start."""
        with self._stats_lock:
            return dict(self._stats)

    def fetch_limits(self, tenant_id: str) -> TenantLimits:
        """
        Fetch the authoritative limits of a tenant.

        Raises:
            RemoteUnavailableError: On timeout, connection error, non-2xx
                status, or a body without valid limits
        """
        self._count("fetches")
        try:
            response = self._http.get(f"/api/tenants/{tenant_id}")
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            self._count("fetch_failures")
            raise RemoteUnavailableError(
                f"Tenant service returned {e.response.status_code} for tenant {tenant_id}"
            ) from e
        except httpx.HTTPError as e:
            self._count("fetch_failures")
            raise RemoteUnavailableError(
                f"Tenant service unreachable ({type(e).__name__}) for tenant {tenant_id}"
            ) from e
        except ValueError as e:
            self._count("fetch_failures")
            raise RemoteUnavailableError(f"Tenant service sent invalid JSON: {e}") from e

        payload: Any = body.get("limits", body) if isinstance(body, dict) else body
        try:
            limits = TenantLimits.from_payload(tenant_id, payload)
        except ValueError as e:
            self._count("fetch_failures")
            raise RemoteUnavailableError(f"Tenant service sent malformed limits: {e}") from e

        logger.info(
            f"Fetched limits for tenant {tenant_id}: "
            f"{limits.max_projects} projects, {limits.max_domains} domains, "
            f"{limits.max_repos} repositories"
        )
        return limits

    def report_delta(self, tenant_id: str, kind: ResourceKind, delta: int) -> bool:
        """
        Report a usage change to the tenant service.

        Args:
            tenant_id: Tenant whose usage changed
            kind: Resource kind
            delta: +1 or -1

        Returns:
            True if the tenant service acknowledged the report
        """
        if delta not in (1, -1):
            raise ValueError(f"delta must be +1 or -1, got {delta}")

        action = "increment" if delta > 0 else "decrement"
        self._count("reports")
        try:
            response = self._http.post(
                f"/api/tenants/{tenant_id}/resources/{action}",
                params={"resource": kind.value},
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            self._count("report_failures")
            failure = RemoteReportFailure(tenant_id, kind.value, delta, e)
            logger.error(f"{failure} (failures so far: {self.stats()['report_failures']})")
            return False

    def close(self) -> None:
        self._http.close()
