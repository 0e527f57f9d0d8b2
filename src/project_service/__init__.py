"""Project service: projects, domains and repositories under per-tenant quotas."""

__version__ = "0.1.0"
