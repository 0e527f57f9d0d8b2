"""
Quota decisions for resource creation.

Given a resource kind, the parent it would be created under and the
owning tenant, decide whether one more resource fits the tenant's ceiling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from project_service.errors import LimitExceededError, LimitsUnavailableError, RemoteUnavailableError
from project_service.quota.counter import ResourceCounter
from project_service.quota.limits import LimitsCache, ResourceKind, TenantLimits
from project_service.quota.remote import TenantServiceClient

logger = logging.getLogger(__name__)


@dataclass
class QuotaDecision:
    """Result of a quota check."""

    allowed: bool
    """Whether one more resource may be created."""

    kind: ResourceKind
    """Resource kind checked."""

    tenant_id: str
    """Tenant whose ceiling applies."""

    parent_id: str
    """Parent the resource would be created under."""

    current: int
    """Active children of the parent at decision time."""

    ceiling: int
    """Tenant ceiling for the kind."""

    reason: str
    """Human-readable reason."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "resource": self.kind.value,
            "tenant_id": self.tenant_id,
            "parent_id": self.parent_id,
            "current": self.current,
            "limit": self.ceiling,
            "reason": self.reason,
        }

    def raise_for_denial(self) -> None:
        """Raise LimitExceededError if the decision is a denial."""
        if not self.allowed:
            raise LimitExceededError(self.kind.label, self.current, self.ceiling)


class QuotaGuard:
    """
    Decides whether a tenant may create one more resource of a kind.

    The guard reads; it does not reserve. Callers must run the check, the
    insert and ``ResourceCounter.increment`` inside one transaction that
    holds the parent's lock, otherwise concurrent checks may overshoot.
    """

    def __init__(
        self,
        limits_cache: LimitsCache,
        counter: ResourceCounter,
        remote: TenantServiceClient,
    ) -> None:
        self._limits_cache = limits_cache
        self._counter = counter
        self._remote = remote

    def resolve_limits(self, tenant_id: str) -> TenantLimits:
        """
        Return the tenant's limits from the cache, fetching them on a miss.

        Raises:
            LimitsUnavailableError: If the limits are not cached and the
                tenant service cannot provide them
        """
        try:
            limits, fetched = self._limits_cache.get_or_fetch(tenant_id, self._remote.fetch_limits)
        except RemoteUnavailableError as e:
            logger.error(f"Cannot validate limits for tenant {tenant_id}: {e}")
            raise LimitsUnavailableError(tenant_id, str(e)) from e

        if fetched:
            logger.info(f"Limits cache miss for tenant {tenant_id}, populated from tenant service")
        return limits

    @staticmethod
    def evaluate(
        kind: ResourceKind,
        current: int,
        limits: TenantLimits,
        parent_id: str,
    ) -> QuotaDecision:
        """Compare a count against the tenant's ceiling for ``kind``."""
        if current < 0:
            logger.error(
                f"Invariant violation: negative {kind.value} count {current} "
                f"for parent {parent_id}, treating as 0"
            )
            current = 0

        ceiling = limits.ceiling_for(kind)
        if current < ceiling:
            return QuotaDecision(
                allowed=True,
                kind=kind,
                tenant_id=limits.tenant_id,
                parent_id=parent_id,
                current=current,
                ceiling=ceiling,
                reason="Within quota",
            )

        return QuotaDecision(
            allowed=False,
            kind=kind,
            tenant_id=limits.tenant_id,
            parent_id=parent_id,
            current=current,
            ceiling=ceiling,
            reason=f"{kind.label.capitalize()} limit reached ({current}/{ceiling})",
        )

    def check_and_reserve(
        self,
        kind: ResourceKind,
        parent_id: str,
        tenant_id: str,
        session: Session,
    ) -> QuotaDecision:
        """
        Decide whether one more ``kind`` may be created under ``parent_id``.

        Args:
            kind: Resource kind
            parent_id: Tenant id for projects, project id otherwise
            tenant_id: Tenant whose ceiling applies
            session: Open transaction the caller will create the resource in

        Returns:
            QuotaDecision, allowed iff current < ceiling

        Raises:
            LimitsUnavailableError: Limits are unknown and cannot be fetched
            ProjectNotFoundError: The parent project does not exist
        """
        current = self._counter.current(session, kind, parent_id)
        limits = self.resolve_limits(tenant_id)
        decision = self.evaluate(kind, current, limits, parent_id)

        if decision.allowed:
            logger.debug(f"Quota check passed: {decision.reason} {decision.current}/{decision.ceiling}")
        else:
            logger.info(f"Quota denied for tenant {tenant_id}: {decision.reason}")
        return decision
