"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from project_service.db.models import ProjectStatus, VerificationMethod, VerificationStatus


# --- Requests ---

class ProjectRequest(BaseModel):
    """Create or update a project."""
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: str | None = Field(default=None, description="Free-form description")


class AddDomainRequest(BaseModel):
    """Attach a domain to a project."""
    domain_url: str = Field(..., min_length=1, max_length=255, description="Domain or URL, normalized on save")
    verification_method: VerificationMethod | None = Field(
        default=None,
        description="How ownership is proven (default DNS_TXT)",
    )


class AddRepositoryRequest(BaseModel):
    """Attach a source repository to a project."""
    name: str = Field(..., min_length=1, max_length=255)
    repo_url: str = Field(..., min_length=1, max_length=500)
    default_branch: str | None = Field(default=None, max_length=255)


# --- Responses ---

class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    owner_id: str
    name: str
    description: str | None = None
    status: ProjectStatus
    domain_count: int
    repo_count: int
    created_at: datetime
    updated_at: datetime


class DomainResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    domain_url: str
    verification_status: VerificationStatus
    verification_method: VerificationMethod
    verification_token: str
    verified_at: datetime | None = None
    created_at: datetime


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    name: str
    repo_url: str
    default_branch: str
    created_at: datetime


class TenantLimitsResponse(BaseModel):
    """Cached tenant ceilings with current usage."""
    tenant_id: str
    limits: dict[str, Any]
    usage: dict[str, int]


class ErrorResponse(BaseModel):
    error: str
    detail: str
    resource: str | None = None
    current: int | None = None
    limit: int | None = None
