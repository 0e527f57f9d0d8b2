"""
Event contracts exchanged with other services.

Inbound events are flat JSON objects validated here before they touch
local state. Outbound events carry an ``eventId`` so that consumers, which
see every message at least once, can discard duplicates.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from project_service.errors import EventProcessingError
from project_service.quota.limits import TenantLimits

# Inbound
TENANT_PLAN_UPGRADED = "tenant.plan.upgraded"
DOMAIN_VERIFIED = "domain.verified"

# Outbound
PROJECT_CREATED = "project.created"
PROJECT_DELETED = "project.deleted"
DOMAIN_ADDED = "domain.added"
REPOSITORY_ADDED = "repository.added"


def _require_object(routing_key: str, body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise EventProcessingError(routing_key, f"body must be an object, got {type(body).__name__}")
    return body


def _require_id(routing_key: str, body: dict[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        raise EventProcessingError(routing_key, f"missing or invalid '{name}'")
    return value.strip()


@dataclass(frozen=True)
class LimitsUpgraded:
    """``tenant.plan.upgraded``: new ceilings for a tenant."""

    tenant_id: str
    limits: TenantLimits

    @classmethod
    def parse(cls, body: Any) -> LimitsUpgraded:
        body = _require_object(TENANT_PLAN_UPGRADED, body)
        tenant_id = _require_id(TENANT_PLAN_UPGRADED, body, "tenantId")
        try:
            limits = TenantLimits.from_payload(tenant_id, body.get("newLimits"))
        except ValueError as e:
            raise EventProcessingError(TENANT_PLAN_UPGRADED, f"invalid newLimits: {e}") from e
        return cls(tenant_id=tenant_id, limits=limits)


@dataclass(frozen=True)
class VerificationOutcome:
    """``domain.verified``: result of a domain ownership check."""

    domain_id: str
    verified: bool

    @classmethod
    def parse(cls, body: Any) -> VerificationOutcome:
        body = _require_object(DOMAIN_VERIFIED, body)
        domain_id = _require_id(DOMAIN_VERIFIED, body, "domainId")
        verified = body.get("verified")
        if not isinstance(verified, bool):
            raise EventProcessingError(DOMAIN_VERIFIED, f"'verified' must be a boolean, got {verified!r}")
        return cls(domain_id=domain_id, verified=verified)


def envelope(payload: dict[str, Any]) -> dict[str, Any]:
    """Add the deduplication id and timestamp to an outbound payload."""
    return {
        "eventId": str(uuid.uuid4()),
        "occurredAt": datetime.now(timezone.utc).isoformat(),
        **payload,
    }
