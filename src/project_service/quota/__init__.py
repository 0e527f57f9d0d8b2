"""
Quota enforcement.

Tenant limits come from a local cache filled by the tenant service on a
miss and refreshed by plan-upgrade events; usage comes from counters kept
on parent rows. The guard compares the two.
"""

from project_service.quota.counter import ResourceCounter
from project_service.quota.guard import QuotaDecision, QuotaGuard
from project_service.quota.limits import LimitsCache, ResourceKind, TenantLimits
from project_service.quota.remote import TenantServiceClient

__all__ = [
    "LimitsCache",
    "QuotaDecision",
    "QuotaGuard",
    "ResourceCounter",
    "ResourceKind",
    "TenantLimits",
    "TenantServiceClient",
]
