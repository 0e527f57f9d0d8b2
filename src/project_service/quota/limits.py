"""
Tenant limits and the local limits cache.

The cache is the source of truth for quota decisions. Entries are written
by a remote fetch on cache miss or by a plan-upgrade event, and are never
computed locally or expired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from project_service.cache.base import CacheBackend

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Resource kinds subject to a quota ceiling."""

    PROJECT = "PROJECT"
    DOMAIN = "DOMAIN"
    REPO = "REPO"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    ResourceKind.PROJECT: "project",
    ResourceKind.DOMAIN: "domain",
    ResourceKind.REPO: "repository",
}

# Wire names used by the tenant service and plan-upgrade events
_PAYLOAD_FIELDS = {
    "max_projects": "maxProjects",
    "max_domains": "maxDomains",
    "max_repos": "maxRepos",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _non_negative_int(payload: dict[str, Any], name: str) -> int:
    value = payload.get(name)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class TenantLimits:
    """Quota ceilings of one tenant."""

    tenant_id: str
    max_projects: int
    max_domains: int
    max_repos: int
    last_updated: datetime = field(default_factory=_utcnow)

    def ceiling_for(self, kind: ResourceKind) -> int:
        if kind is ResourceKind.PROJECT:
            return self.max_projects
        if kind is ResourceKind.DOMAIN:
            return self.max_domains
        return self.max_repos

    def same_ceilings(self, other: TenantLimits | None) -> bool:
        return other is not None and (
            self.max_projects,
            self.max_domains,
            self.max_repos,
        ) == (other.max_projects, other.max_domains, other.max_repos)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "max_projects": self.max_projects,
            "max_domains": self.max_domains,
            "max_repos": self.max_repos,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TenantLimits:
        return cls(
            tenant_id=data["tenant_id"],
            max_projects=data["max_projects"],
            max_domains=data["max_domains"],
            max_repos=data["max_repos"],
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )

    @classmethod
    def from_payload(cls, tenant_id: str, payload: Any) -> TenantLimits:
        """
        Build limits from a camelCase wire payload.

        Raises:
            ValueError: If a field is missing, not an integer, or negative
        """
        if not isinstance(payload, dict):
            raise ValueError(f"limits payload must be an object, got {type(payload).__name__}")
        return cls(
            tenant_id=tenant_id,
            **{attr: _non_negative_int(payload, wire) for attr, wire in _PAYLOAD_FIELDS.items()},
        )


class LimitsCache:
    """
    Per-tenant store of quota ceilings over a key-value backend.

    Every read and write for a tenant goes through that tenant's lock on
    the backend, so operations on one tenant are linearizable and the last
    applied write wins. No TTL: an entry stays valid until overwritten.
    """

    def __init__(self, backend: CacheBackend, key_prefix: str = "limits:") -> None:
        self._backend = backend
        self._key_prefix = key_prefix

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _key(self, tenant_id: str) -> str:
        return f"{self._key_prefix}{tenant_id}"

    def _read(self, tenant_id: str) -> TenantLimits | None:
        data = self._backend.get(self._key(tenant_id))
        if data is None:
            return None
        try:
            return TenantLimits.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Discarding unreadable limits cache entry for {tenant_id}: {e}")
            return None

    def _write(self, tenant_id: str, limits: TenantLimits) -> TenantLimits:
        applied = replace(limits, tenant_id=tenant_id, last_updated=_utcnow())
        if not self._backend.set(self._key(tenant_id), applied.to_dict()):
            logger.warning(f"Limits cache write failed for tenant {tenant_id}")
        return applied

    def get(self, tenant_id: str) -> TenantLimits | None:
        """Return the cached limits of a tenant, or None on a miss."""
        with self._backend.lock(self._key(tenant_id)):
            return self._read(tenant_id)

    def put(self, tenant_id: str, limits: TenantLimits) -> TenantLimits:
        """
        Upsert the limits of a tenant.

        ``last_updated`` is stamped with the time of application.

        Returns:
            The entry as stored
        """
        with self._backend.lock(self._key(tenant_id)):
            return self._write(tenant_id, limits)

    def get_or_fetch(
        self,
        tenant_id: str,
        fetch: Callable[[str], TenantLimits],
    ) -> tuple[TenantLimits, bool]:
        """
        Return cached limits, fetching and storing them on a miss.

        The fetch runs under the tenant's lock, so concurrent misses for one
        tenant trigger a single fetch. Errors raised by ``fetch`` propagate
        and leave the cache untouched.

        Returns:
            Tuple of (limits, fetched)
        """
        with self._backend.lock(self._key(tenant_id)):
            cached = self._read(tenant_id)
            if cached is not None:
                return cached, False

            fetched = fetch(tenant_id)
            return self._write(tenant_id, fetched), True

    def snapshot(self) -> list[TenantLimits]:
        """List every cached entry."""
        entries = []
        for key in self._backend.keys(f"{self._key_prefix}*"):
            limits = self._read(key[len(self._key_prefix):])
            if limits is not None:
                entries.append(limits)
        return entries
