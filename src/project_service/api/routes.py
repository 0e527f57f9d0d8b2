"""API routes for projects, domains, repositories and tenant limits."""

import logging

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from project_service.api.schemas import (
    AddDomainRequest,
    AddRepositoryRequest,
    DomainResponse,
    ErrorResponse,
    ProjectRequest,
    ProjectResponse,
    RepositoryResponse,
    TenantLimitsResponse,
)
from project_service.services import ResourceService

logger = logging.getLogger(__name__)
router = APIRouter()

_QUOTA_ERRORS = {
    403: {"model": ErrorResponse, "description": "Limit exceeded or not the owner"},
    404: {"model": ErrorResponse, "description": "Project not found"},
    503: {"model": ErrorResponse, "description": "Tenant limits unavailable"},
}


def get_resource_service(request: Request) -> ResourceService:
    """Resource service of the running application."""
    return request.app.state.application.resources


# --- Projects ---

@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_QUOTA_ERRORS,
)
def create_project(
    body: ProjectRequest,
    tenant_id: str = Header(..., alias="X-Tenant-Id"),
    user_id: str = Header(..., alias="X-User-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> ProjectResponse:
    """Create a project if the tenant has a free project slot."""
    project = service.create_project(
        tenant_id=tenant_id,
        owner_id=user_id,
        name=body.name,
        description=body.description,
    )
    return ProjectResponse.model_validate(project)


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    tenant_query: str | None = Query(default=None, alias="tenantId"),
    tenant_header: str | None = Header(default=None, alias="X-Tenant-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> list[ProjectResponse]:
    tenant_id = tenant_query or tenant_header
    if not tenant_id:
        raise ValueError("tenantId query parameter or X-Tenant-Id header is required")
    return [ProjectResponse.model_validate(p) for p in service.list_projects(tenant_id)]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(service.get_project(project_id))


@router.put("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    body: ProjectRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> ProjectResponse:
    project = service.update_project(project_id, user_id, body.name, body.description)
    return ProjectResponse.model_validate(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    user_id: str = Header(..., alias="X-User-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> Response:
    service.delete_project(project_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Domains ---

@router.post(
    "/projects/{project_id}/domains",
    response_model=DomainResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**_QUOTA_ERRORS, 409: {"model": ErrorResponse, "description": "Domain exists"}},
)
def add_domain(
    project_id: str,
    body: AddDomainRequest,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> DomainResponse:
    domain = service.add_domain(
        project_id,
        body.domain_url,
        verification_method=body.verification_method,
        tenant_id=tenant_id,
    )
    return DomainResponse.model_validate(domain)


@router.get("/projects/{project_id}/domains", response_model=list[DomainResponse])
def list_domains(
    project_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> list[DomainResponse]:
    return [DomainResponse.model_validate(d) for d in service.list_domains(project_id)]


@router.delete("/projects/{project_id}/domains/{domain_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_domain(
    project_id: str,
    domain_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> Response:
    service.delete_domain(domain_id, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Repositories ---

@router.post(
    "/projects/{project_id}/repositories",
    response_model=RepositoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**_QUOTA_ERRORS, 409: {"model": ErrorResponse, "description": "Repository exists"}},
)
def add_repository(
    project_id: str,
    body: AddRepositoryRequest,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    service: ResourceService = Depends(get_resource_service),
) -> RepositoryResponse:
    repository = service.add_repository(
        project_id,
        name=body.name,
        repo_url=body.repo_url,
        default_branch=body.default_branch,
        tenant_id=tenant_id,
    )
    return RepositoryResponse.model_validate(repository)


@router.get("/projects/{project_id}/repositories", response_model=list[RepositoryResponse])
def list_repositories(
    project_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> list[RepositoryResponse]:
    return [RepositoryResponse.model_validate(r) for r in service.list_repositories(project_id)]


@router.delete(
    "/projects/{project_id}/repositories/{repository_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_repository(
    project_id: str,
    repository_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> Response:
    service.delete_repository(repository_id, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Tenants ---

@router.get("/tenants/{tenant_id}/limits", response_model=TenantLimitsResponse)
def tenant_limits(
    tenant_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> TenantLimitsResponse:
    """Limits the service enforces for a tenant, fetching them if not cached."""
    return TenantLimitsResponse(**service.tenant_limits_view(tenant_id))
