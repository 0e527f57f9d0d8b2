"""Outbound resource lifecycle events."""

import logging
import threading
from typing import Any

from project_service.db.models import Domain, Project, Repository
from project_service.events.bus import EventBus
from project_service.events.messages import (
    DOMAIN_ADDED,
    PROJECT_CREATED,
    PROJECT_DELETED,
    REPOSITORY_ADDED,
    envelope,
)

logger = logging.getLogger(__name__)


class ResourceEventPublisher:
    """
    Announces resource lifecycle changes to downstream services.

    Called after the local transaction committed. A publish failure is
    logged and counted but does not undo the committed change.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._failures = 0
        self._failures_lock = threading.Lock()

    @property
    def failures(self) -> int:
        """Publishes that failed since start."""
        with self._failures_lock:
            return self._failures

    def _publish(self, routing_key: str, payload: dict[str, Any]) -> str | None:
        message = envelope(payload)
        try:
            message_id = self._bus.publish(routing_key, message)
        except Exception as e:
            with self._failures_lock:
                self._failures += 1
            logger.error(f"Failed to publish {routing_key} event {message['eventId']}: {e}")
            return None
        logger.info(f"Published {routing_key} ({message['eventId']})")
        return message_id

    def publish_project_created(self, project: Project) -> str | None:
        return self._publish(
            PROJECT_CREATED,
            {
                "projectId": project.id,
                "tenantId": project.tenant_id,
                "ownerId": project.owner_id,
                "name": project.name,
            },
        )

    def publish_project_deleted(self, project_id: str, tenant_id: str) -> str | None:
        return self._publish(
            PROJECT_DELETED,
            {"projectId": project_id, "tenantId": tenant_id},
        )

    def publish_domain_added(self, domain: Domain, tenant_id: str) -> str | None:
        # Consumed by the domain verification service
        return self._publish(
            DOMAIN_ADDED,
            {
                "domainId": domain.id,
                "projectId": domain.project_id,
                "tenantId": tenant_id,
                "domainUrl": domain.domain_url,
                "verificationMethod": domain.verification_method.value,
                "verificationToken": domain.verification_token,
            },
        )

    def publish_repository_added(self, repository: Repository, tenant_id: str) -> str | None:
        return self._publish(
            REPOSITORY_ADDED,
            {
                "repositoryId": repository.id,
                "projectId": repository.project_id,
                "tenantId": tenant_id,
                "repoUrl": repository.repo_url,
            },
        )
