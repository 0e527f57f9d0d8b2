"""HTTP client utilities."""

from project_service.http.client import HttpClient

__all__ = ["HttpClient"]
