"""HTTP API for the project service."""

from project_service.api.app import create_app

__all__ = ["create_app"]
