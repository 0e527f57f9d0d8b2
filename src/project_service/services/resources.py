"""
Quota-guarded creation and deletion of projects, domains and repositories.

Every creation runs check, insert and counter increment in one transaction
while holding the parent's lock, so two concurrent requests can never both
take the last free slot. Usage reporting to the tenant service and the
lifecycle event happen after commit and never undo it.
"""

import logging
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from project_service.db.manager import DatabaseManager
from project_service.db.models import (
    Domain,
    Project,
    ProjectStatus,
    Repository,
    VerificationMethod,
)
from project_service.errors import (
    DomainAlreadyExistsError,
    DomainNotFoundError,
    PermissionDeniedError,
    ProjectNotFoundError,
    RepositoryAlreadyExistsError,
    RepositoryNotFoundError,
)
from project_service.events.publisher import ResourceEventPublisher
from project_service.locks import KeyedLock
from project_service.quota.counter import ResourceCounter
from project_service.quota.guard import QuotaGuard
from project_service.quota.limits import ResourceKind
from project_service.quota.remote import TenantServiceClient

logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_WWW = re.compile(r"^www\.", re.IGNORECASE)

_REQUIRED_ATTRIBUTES = {
    ResourceKind.PROJECT: ("owner_id", "name"),
    ResourceKind.DOMAIN: ("domain_url",),
    ResourceKind.REPO: ("name", "repo_url"),
}


def normalize_domain_url(url: str) -> str:
    """
    Canonical form of a domain URL.

    >>> normalize_domain_url("https://www.Example.com/")
    'example.com'
    """
    normalized = _SCHEME.sub("", url.strip())
    normalized = _WWW.sub("", normalized)
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    normalized = normalized.lower()
    if not normalized:
        raise ValueError("domain_url must not be empty")
    return normalized


class ResourceService:
    """Resource lifecycle with quota enforcement."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        guard: QuotaGuard,
        counter: ResourceCounter,
        remote: TenantServiceClient,
        publisher: ResourceEventPublisher,
        locks: KeyedLock | None = None,
    ) -> None:
        self._db = db_manager
        self._guard = guard
        self._counter = counter
        self._remote = remote
        self._publisher = publisher
        self._locks = locks or KeyedLock()

    @staticmethod
    def _lock_key(kind: ResourceKind, parent_id: str) -> str:
        return f"{kind.value}:{parent_id}"

    # --- Generic operations ---

    def create_resource(
        self,
        kind: ResourceKind,
        parent_id: str,
        tenant_id: str | None = None,
        **attributes: Any,
    ) -> str:
        """
        Create one resource of ``kind`` under ``parent_id`` if the quota allows.

        Args:
            kind: Resource kind
            parent_id: Tenant id for projects, project id otherwise
            tenant_id: Owning tenant; taken from the parent when omitted
            **attributes: Resource fields (``name``, ``owner_id``,
                ``domain_url``, ``repo_url`` ...)

        Returns:
            Id of the new resource

        Raises:
            LimitExceededError: The tenant's ceiling is reached
            LimitsUnavailableError: Limits are unknown and cannot be fetched
            NotFoundError: The parent project does not exist
            ConflictError: The domain or repository already exists
        """
        if kind is ResourceKind.DOMAIN and "domain_url" in attributes:
            attributes["domain_url"] = normalize_domain_url(attributes["domain_url"])
        return self._create(kind, parent_id, tenant_id, attributes).id

    def delete_resource(self, kind: ResourceKind, resource_id: str, user_id: str | None = None) -> None:
        """
        Delete a resource and release its quota slot.

        Projects are soft-deleted and, when ``user_id`` is given, only by
        their owner. Domains and repositories are removed.
        """
        if kind is ResourceKind.PROJECT:
            self.delete_project(resource_id, user_id)
        elif kind is ResourceKind.DOMAIN:
            self.delete_domain(resource_id)
        else:
            self.delete_repository(resource_id)

    def _create(
        self,
        kind: ResourceKind,
        parent_id: str,
        tenant_id: str | None,
        attributes: dict[str, Any],
    ) -> Any:
        missing = [name for name in _REQUIRED_ATTRIBUTES[kind] if not attributes.get(name)]
        if missing:
            raise ValueError(f"Missing {kind.label} attributes: {', '.join(missing)}")

        if kind is ResourceKind.PROJECT:
            tenant_id = tenant_id or parent_id
            if tenant_id != parent_id:
                raise ValueError("Projects are created under their own tenant")
        else:
            tenant_id = self._tenant_of_project(parent_id, tenant_id)

        with self._locks.hold(self._lock_key(kind, parent_id)):
            with self._db.get_session() as session:
                self._check_duplicate(session, kind, parent_id, attributes)

                decision = self._guard.check_and_reserve(kind, parent_id, tenant_id, session)
                decision.raise_for_denial()

                resource = self._build(kind, parent_id, tenant_id, attributes)
                session.add(resource)
                try:
                    session.flush()
                except IntegrityError as e:
                    raise self._conflict(kind, attributes) from e

                count = self._counter.increment(session, kind, parent_id)
                logger.info(
                    f"Created {kind.label} {resource.id} under {parent_id} "
                    f"({count}/{decision.ceiling})"
                )

        self._remote.report_delta(tenant_id, kind, 1)
        self._announce_created(kind, resource, tenant_id)
        return resource

    def _tenant_of_project(self, project_id: str, tenant_id: str | None) -> str:
        with self._db.get_session() as session:
            project = session.get(Project, project_id)
            if project is None or not project.is_active:
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            if tenant_id is not None and project.tenant_id != tenant_id:
                # Do not reveal projects of other tenants
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            return project.tenant_id

    def _check_duplicate(
        self,
        session: Session,
        kind: ResourceKind,
        parent_id: str,
        attributes: dict[str, Any],
    ) -> None:
        if kind is ResourceKind.DOMAIN:
            url = attributes["domain_url"]
            exists = session.scalar(select(Domain.id).where(Domain.domain_url == url))
            if exists is not None:
                raise DomainAlreadyExistsError(f"Domain already exists: {url}")
        elif kind is ResourceKind.REPO:
            url = attributes["repo_url"]
            exists = session.scalar(
                select(Repository.id).where(
                    Repository.project_id == parent_id,
                    Repository.repo_url == url,
                )
            )
            if exists is not None:
                raise RepositoryAlreadyExistsError(f"Repository already exists in project: {url}")

    @staticmethod
    def _conflict(kind: ResourceKind, attributes: dict[str, Any]) -> Exception:
        if kind is ResourceKind.DOMAIN:
            return DomainAlreadyExistsError(f"Domain already exists: {attributes['domain_url']}")
        if kind is ResourceKind.REPO:
            return RepositoryAlreadyExistsError(
                f"Repository already exists in project: {attributes['repo_url']}"
            )
        return ValueError(f"Could not create {kind.label}")

    @staticmethod
    def _build(kind: ResourceKind, parent_id: str, tenant_id: str, attributes: dict[str, Any]) -> Any:
        if kind is ResourceKind.PROJECT:
            return Project(
                tenant_id=tenant_id,
                owner_id=attributes["owner_id"],
                name=attributes["name"],
                description=attributes.get("description"),
                status=ProjectStatus.ACTIVE,
                domain_count=0,
                repo_count=0,
            )
        if kind is ResourceKind.DOMAIN:
            return Domain(
                project_id=parent_id,
                domain_url=attributes["domain_url"],
                verification_method=attributes.get("verification_method") or VerificationMethod.DNS_TXT,
            )
        return Repository(
            project_id=parent_id,
            name=attributes["name"],
            repo_url=attributes["repo_url"],
            default_branch=attributes.get("default_branch") or "main",
        )

    def _announce_created(self, kind: ResourceKind, resource: Any, tenant_id: str) -> None:
        if kind is ResourceKind.PROJECT:
            self._publisher.publish_project_created(resource)
        elif kind is ResourceKind.DOMAIN:
            self._publisher.publish_domain_added(resource, tenant_id)
        else:
            self._publisher.publish_repository_added(resource, tenant_id)

    # --- Projects ---

    def create_project(
        self,
        tenant_id: str,
        owner_id: str,
        name: str,
        description: str | None = None,
    ) -> Project:
        return self._create(
            ResourceKind.PROJECT,
            tenant_id,
            tenant_id,
            {"owner_id": owner_id, "name": name, "description": description},
        )

    def get_project(self, project_id: str) -> Project:
        with self._db.get_session() as session:
            project = session.get(Project, project_id)
            if project is None or not project.is_active:
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            return project

    def list_projects(self, tenant_id: str) -> list[Project]:
        """Active projects of a tenant, oldest first."""
        with self._db.get_session() as session:
            stmt = (
                select(Project)
                .where(Project.tenant_id == tenant_id, Project.status == ProjectStatus.ACTIVE)
                .order_by(Project.created_at)
            )
            return list(session.scalars(stmt))

    def update_project(
        self,
        project_id: str,
        user_id: str,
        name: str,
        description: str | None = None,
    ) -> Project:
        with self._db.get_session() as session:
            project = session.get(Project, project_id, with_for_update=True)
            if project is None or not project.is_active:
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            if project.owner_id != user_id:
                raise PermissionDeniedError("You don't have permission to update this project")

            project.name = name
            project.description = description
            session.flush()
            logger.info(f"Project updated: {project_id}")
            return project

    def delete_project(self, project_id: str, user_id: str | None = None) -> None:
        tenant_id = self.get_project(project_id).tenant_id

        with self._locks.hold(self._lock_key(ResourceKind.PROJECT, tenant_id)):
            with self._db.get_session() as session:
                project = session.get(Project, project_id, with_for_update=True)
                if project is None or not project.is_active:
                    raise ProjectNotFoundError(f"Project not found: {project_id}")
                if user_id is not None and project.owner_id != user_id:
                    raise PermissionDeniedError("You don't have permission to delete this project")

                project.status = ProjectStatus.DELETED
                self._counter.decrement(session, ResourceKind.PROJECT, tenant_id)

        logger.info(f"Project deleted: {project_id}")
        self._remote.report_delta(tenant_id, ResourceKind.PROJECT, -1)
        self._publisher.publish_project_deleted(project_id, tenant_id)

    # --- Domains ---

    def add_domain(
        self,
        project_id: str,
        domain_url: str,
        verification_method: VerificationMethod | None = None,
        tenant_id: str | None = None,
    ) -> Domain:
        return self._create(
            ResourceKind.DOMAIN,
            project_id,
            tenant_id,
            {
                "domain_url": normalize_domain_url(domain_url),
                "verification_method": verification_method,
            },
        )

    def get_domain(self, domain_id: str) -> Domain:
        with self._db.get_session() as session:
            domain = session.get(Domain, domain_id)
            if domain is None:
                raise DomainNotFoundError(f"Domain not found: {domain_id}")
            return domain

    def list_domains(self, project_id: str) -> list[Domain]:
        self.get_project(project_id)
        with self._db.get_session() as session:
            stmt = select(Domain).where(Domain.project_id == project_id).order_by(Domain.created_at)
            return list(session.scalars(stmt))

    def delete_domain(self, domain_id: str, project_id: str | None = None) -> None:
        owner = self.get_domain(domain_id).project_id
        if project_id is not None and owner != project_id:
            raise DomainNotFoundError(f"Domain not found: {domain_id}")
        project_id = owner

        with self._locks.hold(self._lock_key(ResourceKind.DOMAIN, project_id)):
            with self._db.get_session() as session:
                domain = session.get(Domain, domain_id)
                if domain is None:
                    raise DomainNotFoundError(f"Domain not found: {domain_id}")
                self._counter.decrement(session, ResourceKind.DOMAIN, project_id)
                tenant_id = session.get(Project, project_id).tenant_id
                session.delete(domain)

        logger.info(f"Domain deleted: {domain_id}")
        self._remote.report_delta(tenant_id, ResourceKind.DOMAIN, -1)

    # --- Repositories ---

    def add_repository(
        self,
        project_id: str,
        name: str,
        repo_url: str,
        default_branch: str | None = None,
        tenant_id: str | None = None,
    ) -> Repository:
        return self._create(
            ResourceKind.REPO,
            project_id,
            tenant_id,
            {"name": name, "repo_url": repo_url.strip(), "default_branch": default_branch},
        )

    def get_repository(self, repository_id: str) -> Repository:
        with self._db.get_session() as session:
            repository = session.get(Repository, repository_id)
            if repository is None:
                raise RepositoryNotFoundError(f"Repository not found: {repository_id}")
            return repository

    def list_repositories(self, project_id: str) -> list[Repository]:
        self.get_project(project_id)
        with self._db.get_session() as session:
            stmt = (
                select(Repository)
                .where(Repository.project_id == project_id)
                .order_by(Repository.created_at)
            )
            return list(session.scalars(stmt))

    def delete_repository(self, repository_id: str, project_id: str | None = None) -> None:
        owner = self.get_repository(repository_id).project_id
        if project_id is not None and owner != project_id:
            raise RepositoryNotFoundError(f"Repository not found: {repository_id}")
        project_id = owner

        with self._locks.hold(self._lock_key(ResourceKind.REPO, project_id)):
            with self._db.get_session() as session:
                repository = session.get(Repository, repository_id)
                if repository is None:
                    raise RepositoryNotFoundError(f"Repository not found: {repository_id}")
                self._counter.decrement(session, ResourceKind.REPO, project_id)
                tenant_id = session.get(Project, project_id).tenant_id
                session.delete(repository)

        logger.info(f"Repository deleted: {repository_id}")
        self._remote.report_delta(tenant_id, ResourceKind.REPO, -1)

    # --- Tenants ---

    def tenant_limits_view(self, tenant_id: str) -> dict[str, Any]:
        """Limits of a tenant (cached or fetched) with its project usage."""
        limits = self._guard.resolve_limits(tenant_id)
        with self._db.get_session() as session:
            projects = self._counter.current(session, ResourceKind.PROJECT, tenant_id)
        return {
            "tenant_id": tenant_id,
            "limits": limits.to_dict(),
            "usage": {"projects": projects},
        }
