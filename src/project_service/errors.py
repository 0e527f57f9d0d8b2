"""Exception hierarchy for the project service."""

from __future__ import annotations

from typing import Any


class ProjectServiceError(Exception):
    """Base class for all project service errors."""

    code = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": str(self)}


# --- Lookups ---


class NotFoundError(ProjectServiceError):
    """A resource or its parent does not exist."""

    code = "not_found"


class ProjectNotFoundError(NotFoundError):
    pass


class DomainNotFoundError(NotFoundError):
    pass


class RepositoryNotFoundError(NotFoundError):
    pass


class ConflictError(ProjectServiceError):
    """The resource already exists."""

    code = "conflict"


class DomainAlreadyExistsError(ConflictError):
    pass


class RepositoryAlreadyExistsError(ConflictError):
    pass


class PermissionDeniedError(ProjectServiceError):
    """The acting user does not own the resource."""

    code = "forbidden"


# --- Quota ---


class LimitExceededError(ProjectServiceError):
    """Quota denial: the tenant already uses its whole ceiling."""

    code = "limit_exceeded"

    def __init__(self, kind: str, current: int, ceiling: int) -> None:
        self.kind = kind
        self.current = current
        self.ceiling = ceiling
        super().__init__(
            f"{kind.capitalize()} limit reached ({current}/{ceiling}). Upgrade your plan."
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"resource": self.kind, "current": self.current, "limit": self.ceiling})
        return data


class LimitsUnavailableError(ProjectServiceError):
    """Tenant limits are neither cached nor fetchable right now."""

    code = "limits_unavailable"

    def __init__(self, tenant_id: str, reason: str = "") -> None:
        self.tenant_id = tenant_id
        self.reason = reason
        message = f"Unable to validate limits for tenant {tenant_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# --- Remote tenant service ---


class RemoteUnavailableError(ProjectServiceError):
    """The tenant service could not be reached or answered with an error."""

    code = "remote_unavailable"


class RemoteReportFailure(ProjectServiceError):
    """A usage report to the tenant service failed. Logged, never raised to callers."""

    code = "remote_report_failure"

    def __init__(self, tenant_id: str, kind: str, delta: int, cause: Exception) -> None:
        self.tenant_id = tenant_id
        self.kind = kind
        self.delta = delta
        self.cause = cause
        super().__init__(
            f"Failed to report {kind} delta {delta:+d} for tenant {tenant_id}: {cause}"
        )


# --- Consistency ---


class InvariantViolation(ProjectServiceError):
    """Local state disagrees with itself; indicates a bug upstream."""

    code = "invariant_violation"


class CounterUnderflowError(InvariantViolation):
    """A resource counter would drop below zero."""

    def __init__(self, kind: str, parent_id: str) -> None:
        self.kind = kind
        self.parent_id = parent_id
        super().__init__(f"{kind} counter for {parent_id} would become negative")


class EventProcessingError(ProjectServiceError):
    """An inbound event is malformed or cannot be applied."""

    code = "event_processing_failure"

    def __init__(self, routing_key: str, message: str) -> None:
        self.routing_key = routing_key
        super().__init__(f"{routing_key}: {message}")
