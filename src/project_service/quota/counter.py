"""Live counters of active child resources, embedded in parent rows."""

import logging

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from project_service.db.models import Project, TenantUsage
from project_service.errors import CounterUnderflowError, ProjectNotFoundError
from project_service.quota.limits import ResourceKind

logger = logging.getLogger(__name__)


class ResourceCounter:
    """
    Maintains per-parent counts of active children.

    Projects are counted on the tenant's ``tenant_usage`` row; domains and
    repositories on their project row. Every operation runs inside the
    caller's session, so a count change commits or rolls back together with
    the resource change that caused it. Parent rows are read with
    ``FOR UPDATE`` so that concurrent transactions on one parent serialize.
    """

    def _tenant_row(self, session: Session, tenant_id: str) -> TenantUsage | None:
        return session.get(TenantUsage, tenant_id, with_for_update=True)

    def _ensure_tenant_row(self, session: Session, tenant_id: str) -> TenantUsage:
        """
        Create the usage row if missing, then lock it.

        Two transactions creating a tenant's first project may both have
        found no row; the insert ignores the conflict so the loser waits on
        the row lock instead of failing on the primary key.
        """
        values = {"tenant_id": tenant_id, "project_count": 0}
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            session.execute(sqlite_insert(TenantUsage).values(**values).on_conflict_do_nothing())
        elif dialect == "postgresql":
            session.execute(postgresql_insert(TenantUsage).values(**values).on_conflict_do_nothing())
        elif session.get(TenantUsage, tenant_id) is None:
            try:
                with session.begin_nested():
                    session.add(TenantUsage(**values))
            except IntegrityError:
                logger.debug(f"Usage row for tenant {tenant_id} created concurrently")
        return self._tenant_row(session, tenant_id)

    def _project_row(self, session: Session, project_id: str) -> Project:
        project = session.get(Project, project_id, with_for_update=True)
        if project is None or not project.is_active:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def current(self, session: Session, kind: ResourceKind, parent_id: str) -> int:
        """Return the number of active children of ``kind`` under ``parent_id``."""
        if kind is ResourceKind.PROJECT:
            usage = self._tenant_row(session, parent_id)
            return usage.project_count if usage is not None else 0

        project = self._project_row(session, parent_id)
        return project.domain_count if kind is ResourceKind.DOMAIN else project.repo_count

    def increment(self, session: Session, kind: ResourceKind, parent_id: str) -> int:
        """Add one active child. Returns the new count."""
        if kind is ResourceKind.PROJECT:
            usage = self._ensure_tenant_row(session, parent_id)
            usage.project_count += 1
            session.flush()
            return usage.project_count

        project = self._project_row(session, parent_id)
        if kind is ResourceKind.DOMAIN:
            project.domain_count += 1
            value = project.domain_count
        else:
            project.repo_count += 1
            value = project.repo_count
        session.flush()
        return value

    def decrement(self, session: Session, kind: ResourceKind, parent_id: str) -> int:
        """
        Remove one active child. Returns the new count.

        Raises:
            CounterUnderflowError: If the count is already zero; the counter
                and the entities it tracks have drifted apart
        """
        if kind is ResourceKind.PROJECT:
            usage = self._tenant_row(session, parent_id)
            if usage is None or usage.project_count <= 0:
                logger.error(f"Counter underflow: {kind.value} for tenant {parent_id}")
                raise CounterUnderflowError(kind.value, parent_id)
            usage.project_count -= 1
            session.flush()
            return usage.project_count

        # Deleting children of a soft-deleted project still has to balance its counters
        project = session.get(Project, parent_id, with_for_update=True)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {parent_id}")

        attr = "domain_count" if kind is ResourceKind.DOMAIN else "repo_count"
        value = getattr(project, attr)
        if value <= 0:
            logger.error(f"Counter underflow: {kind.value} for project {parent_id}")
            raise CounterUnderflowError(kind.value, parent_id)
        setattr(project, attr, value - 1)
        session.flush()
        return value - 1
