"""
Applies inbound events from other services to local state.

Handlers are idempotent because the transport delivers at least once.
Any failure propagates to the transport, which redelivers the message or
dead-letters it; nothing is dropped silently here.
"""

import logging
from typing import Any, Callable

from project_service.db.manager import DatabaseManager
from project_service.db.models import Domain, VerificationStatus
from project_service.errors import EventProcessingError
from project_service.events.messages import (
    DOMAIN_VERIFIED,
    TENANT_PLAN_UPGRADED,
    LimitsUpgraded,
    VerificationOutcome,
)
from project_service.quota.limits import LimitsCache, TenantLimits

logger = logging.getLogger(__name__)


class EventSynchronizer:
    """Consumer side of the cross-service event flow."""

    def __init__(self, limits_cache: LimitsCache, db_manager: DatabaseManager) -> None:
        self._limits_cache = limits_cache
        self._db = db_manager
        self._routes: dict[str, Callable[[Any], None]] = {
            TENANT_PLAN_UPGRADED: self.on_limits_upgraded,
            DOMAIN_VERIFIED: self.on_domain_verified,
        }

    @property
    def routing_keys(self) -> list[str]:
        return list(self._routes)

    def handle(self, routing_key: str, body: Any) -> None:
        """
        Apply one inbound message.

        Local state is committed before this returns, so acknowledging
        afterwards never loses an update.

        Raises:
            EventProcessingError: Unknown routing key, malformed body or
                unresolvable target
        """
        route = self._routes.get(routing_key)
        if route is None:
            raise EventProcessingError(routing_key, "no handler for routing key")

        try:
            route(body)
        except Exception as e:
            logger.error(f"Failed to handle {routing_key} event: {e}")
            raise

    # --- tenant.plan.upgraded ---

    def on_limits_upgraded(self, body: Any) -> None:
        event = LimitsUpgraded.parse(body)
        self.apply_limits_upgrade(event.tenant_id, event.limits)

    def apply_limits_upgrade(self, tenant_id: str, limits: TenantLimits) -> TenantLimits:
        """
        Upsert the tenant's ceilings.

        Applying the same upgrade twice leaves the same ceilings. There is
        no ordering against concurrent fetches: the last write applied wins.
        """
        previous = self._limits_cache.get(tenant_id)
        stored = self._limits_cache.put(tenant_id, limits)

        if limits.same_ceilings(previous):
            logger.info(f"Tenant limits for {tenant_id} unchanged (duplicate upgrade)")
        else:
            logger.info(
                f"Tenant limits cache updated for tenant {tenant_id}: "
                f"{stored.max_projects} projects, {stored.max_domains} domains, "
                f"{stored.max_repos} repositories"
            )
        return stored

    # --- domain.verified ---

    def on_domain_verified(self, body: Any) -> None:
        event = VerificationOutcome.parse(body)
        self.apply_verification_outcome(event.domain_id, event.verified)

    def apply_verification_outcome(self, domain_id: str, verified: bool) -> VerificationStatus:
        """
        Move a domain out of PENDING according to the verification result.

        Re-delivery of the outcome already recorded is a no-op. A
        contradicting outcome is logged as an anomaly and applied anyway:
        the latest message wins.

        Raises:
            EventProcessingError: If the domain does not exist
        """
        target = VerificationStatus.VERIFIED if verified else VerificationStatus.FAILED

        with self._db.get_session() as session:
            domain = session.get(Domain, domain_id, with_for_update=True)
            if domain is None:
                raise EventProcessingError(DOMAIN_VERIFIED, f"Domain not found: {domain_id}")

            current = domain.verification_status
            if current == target:
                logger.info(f"Domain {domain_id} already {target.value}, ignoring duplicate outcome")
                return current

            if current != VerificationStatus.PENDING:
                logger.warning(
                    f"Anomaly: domain {domain_id} was {current.value}, "
                    f"now reported {target.value}; applying the later outcome"
                )

            if verified:
                domain.mark_as_verified()
                logger.info(f"Domain verified: {domain_id}")
            else:
                domain.mark_as_failed()
                logger.warning(f"Domain verification failed: {domain_id}")

        return target
