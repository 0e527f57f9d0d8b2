"""Tests for ResourceCounter."""

import pytest

from project_service.db.manager import DatabaseManager
from project_service.db.models import Project, ProjectStatus, TenantUsage
from project_service.errors import CounterUnderflowError, InvariantViolation, ProjectNotFoundError
from project_service.quota.counter import ResourceCounter
from project_service.quota.limits import ResourceKind


@pytest.fixture
def counter() -> ResourceCounter:
    return ResourceCounter()


@pytest.fixture
def project_id(db_manager: DatabaseManager) -> str:
    with db_manager.get_session() as session:
        project = Project(tenant_id="t1", owner_id="u1", name="site")
        session.add(project)
        session.flush()
        return project.id


class TestProjectCounter:
    """Project counts live on the tenant usage row."""

    def test_zero_without_usage_row(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        with db_manager.get_session() as session:
            assert counter.current(session, ResourceKind.PROJECT, "t1") == 0

    def test_increment_creates_usage_row(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        with db_manager.get_session() as session:
            assert counter.increment(session, ResourceKind.PROJECT, "t1") == 1
            assert counter.increment(session, ResourceKind.PROJECT, "t1") == 2

        with db_manager.get_session() as session:
            assert session.get(TenantUsage, "t1").project_count == 2

    def test_usage_row_created_by_another_transaction(
        self, db_manager: DatabaseManager, counter: ResourceCounter
    ) -> None:
        """A usage row that appears after the read is reused, not re-inserted."""
        with db_manager.get_session() as session:
            assert counter.current(session, ResourceKind.PROJECT, "t1") == 0

            with db_manager.get_session() as other:
                other.add(TenantUsage(tenant_id="t1", project_count=1))

            assert counter.increment(session, ResourceKind.PROJECT, "t1") == 2

        with db_manager.get_session() as session:
            assert session.get(TenantUsage, "t1").project_count == 2

    def test_decrement(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        with db_manager.get_session() as session:
            counter.increment(session, ResourceKind.PROJECT, "t1")
            assert counter.decrement(session, ResourceKind.PROJECT, "t1") == 0

    def test_underflow_raises(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        """Decrementing below zero fails instead of clamping."""
        with pytest.raises(CounterUnderflowError) as exc_info:
            with db_manager.get_session() as session:
                counter.decrement(session, ResourceKind.PROJECT, "t1")

        assert isinstance(exc_info.value, InvariantViolation)

    def test_rolled_back_with_transaction(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        """A count change is undone when its transaction rolls back."""
        with pytest.raises(RuntimeError):
            with db_manager.get_session() as session:
                counter.increment(session, ResourceKind.PROJECT, "t1")
                raise RuntimeError("insert failed")

        with db_manager.get_session() as session:
            assert counter.current(session, ResourceKind.PROJECT, "t1") == 0


class TestChildCounters:
    """Domain and repository counts live on the project row."""

    @pytest.mark.parametrize("kind", [ResourceKind.DOMAIN, ResourceKind.REPO])
    def test_increment_and_decrement(
        self,
        db_manager: DatabaseManager,
        counter: ResourceCounter,
        project_id: str,
        kind: ResourceKind,
    ) -> None:
        with db_manager.get_session() as session:
            assert counter.increment(session, kind, project_id) == 1
            assert counter.increment(session, kind, project_id) == 2
            assert counter.decrement(session, kind, project_id) == 1
            assert counter.current(session, kind, project_id) == 1

    def test_counts_are_independent(
        self,
        db_manager: DatabaseManager,
        counter: ResourceCounter,
        project_id: str,
    ) -> None:
        with db_manager.get_session() as session:
            counter.increment(session, ResourceKind.DOMAIN, project_id)

        with db_manager.get_session() as session:
            project = session.get(Project, project_id)
            assert project.domain_count == 1
            assert project.repo_count == 0

    def test_missing_project(self, db_manager: DatabaseManager, counter: ResourceCounter) -> None:
        with pytest.raises(ProjectNotFoundError):
            with db_manager.get_session() as session:
                counter.current(session, ResourceKind.DOMAIN, "missing")

    def test_deleted_project_rejects_increment(
        self,
        db_manager: DatabaseManager,
        counter: ResourceCounter,
        project_id: str,
    ) -> None:
        with db_manager.get_session() as session:
            session.get(Project, project_id).status = ProjectStatus.DELETED

        with pytest.raises(ProjectNotFoundError):
            with db_manager.get_session() as session:
                counter.increment(session, ResourceKind.DOMAIN, project_id)

    def test_deleted_project_allows_decrement(
        self,
        db_manager: DatabaseManager,
        counter: ResourceCounter,
        project_id: str,
    ) -> None:
        """Children of a soft-deleted project can still be removed."""
        with db_manager.get_session() as session:
            counter.increment(session, ResourceKind.REPO, project_id)
            session.get(Project, project_id).status = ProjectStatus.DELETED

        with db_manager.get_session() as session:
            assert counter.decrement(session, ResourceKind.REPO, project_id) == 0

    def test_child_underflow(
        self,
        db_manager: DatabaseManager,
        counter: ResourceCounter,
        project_id: str,
    ) -> None:
        with pytest.raises(CounterUnderflowError):
            with db_manager.get_session() as session:
                counter.decrement(session, ResourceKind.DOMAIN, project_id)
