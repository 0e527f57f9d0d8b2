"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Generator
from unittest.mock import MagicMock

import pytest

from project_service.cache.memory import InMemoryCache
from project_service.db.manager import DatabaseManager
from project_service.events.bus import InMemoryEventBus
from project_service.main import Application
from project_service.quota.limits import LimitsCache, TenantLimits
from project_service.quota.remote import TenantServiceClient
from project_service.services import ResourceService


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup, including WAL side files
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        try:
            os.unlink(path)
        except OSError:
            pass


@pytest.fixture
def db_manager(temp_db_path: str) -> Generator[DatabaseManager, None, None]:
    """Create a DatabaseManager with a temporary database."""
    manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def tenant_limits() -> dict[str, TenantLimits]:
    """Authoritative limits served by the fake tenant service, by tenant id."""
    return {
        "tenant-a": TenantLimits("tenant-a", max_projects=2, max_domains=2, max_repos=3),
        "tenant-b": TenantLimits("tenant-b", max_projects=5, max_domains=5, max_repos=5),
    }


@pytest.fixture
def remote(tenant_limits: dict[str, TenantLimits]) -> MagicMock:
    """Tenant service client double backed by ``tenant_limits``."""
    client = MagicMock(spec=TenantServiceClient)
    client.fetch_limits.side_effect = lambda tenant_id: tenant_limits[tenant_id]
    client.report_delta.return_value = True
    client.stats.return_value = {
        "fetches": 0,
        "fetch_failures": 0,
        "reports": 0,
        "report_failures": 0,
    }
    return client


@pytest.fixture
def limits_cache() -> LimitsCache:
    return LimitsCache(InMemoryCache())


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus(max_deliveries=3)


@pytest.fixture
def application(
    db_manager: DatabaseManager,
    remote: MagicMock,
    bus: InMemoryEventBus,
) -> Application:
    """Fully wired application over the temporary database and fakes."""
    return Application(
        db_manager=db_manager,
        cache_backend=InMemoryCache(),
        remote=remote,
        bus=bus,
    )


@pytest.fixture
def resources(application: Application) -> ResourceService:
    return application.resources
