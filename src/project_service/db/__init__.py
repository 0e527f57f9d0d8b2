"""Database package for the project service."""

from project_service.db.base import Base
from project_service.db.manager import DatabaseManager
from project_service.db.models import (
    Domain,
    Project,
    ProjectStatus,
    Repository,
    TenantUsage,
    VerificationMethod,
    VerificationStatus,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "Domain",
    "Project",
    "ProjectStatus",
    "Repository",
    "TenantUsage",
    "VerificationMethod",
    "VerificationStatus",
]
