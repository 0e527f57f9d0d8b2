"""Application services."""

from project_service.services.resources import ResourceService, normalize_domain_url

__all__ = ["ResourceService", "normalize_domain_url"]
