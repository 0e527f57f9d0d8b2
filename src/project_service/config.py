"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite:///data/project_service.db"

    # Tenant service (authoritative limits)
    tenant_service_url: str = "http://localhost:8081"
    tenant_service_timeout_connect: float = 2.0
    tenant_service_timeout_read: float = 5.0
    tenant_service_max_retries: int = 1
    tenant_service_backoff_factor: float = 0.2

    # Limits cache
    limits_cache_backend: str = "memory"  # "memory" or "redis"

    # Redis
    redis_url: str | None = None  # e.g. redis://localhost:6379/0
    redis_prefix: str = "project-service:"

    # Events
    event_backend: str = "memory"  # "memory" or "redis"
    event_stream_prefix: str = "events:"
    event_consumer_group: str = "project-service"
    event_consumer_name: str = "worker-1"
    event_block_ms: int = 5000
    event_max_deliveries: int = 5
    event_reclaim_idle_ms: int = 60000
    event_reclaim_interval_seconds: int = 30

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    @property
    def tenant_fetch_worst_case_seconds(self) -> float:
        """Longest a limits fetch can take, retries and backoff included."""
        # Pool wait, connect, write and read are each bounded; write and pool
        # reuse the read and connect timeouts
        per_attempt = 2 * (self.tenant_service_timeout_connect + self.tenant_service_timeout_read)
        retries = self.tenant_service_max_retries
        backoff = sum(self.tenant_service_backoff_factor * 2**attempt for attempt in range(retries))
        return per_attempt * (retries + 1) + backoff


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
