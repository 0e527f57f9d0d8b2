"""Event transport factory."""

import logging

from project_service.config import Settings, settings as default_settings
from project_service.events.bus import EventBus, InMemoryEventBus
from project_service.events.redis_streams import RedisStreamEventBus

logger = logging.getLogger(__name__)


def create_event_bus(backend: str | None = None, config: Settings | None = None) -> EventBus:
    """
    Create an event transport.

    Args:
        backend: Backend type ("memory" or "redis"), defaults to config
        config: Settings to read connection details from

    Raises:
        ValueError: If backend type is unknown or Redis is not configured
    """
    config = config or default_settings
    backend_type = backend or config.event_backend

    if backend_type == "memory":
        logger.info("Using in-process event transport")
        return InMemoryEventBus(max_deliveries=config.event_max_deliveries)

    if backend_type == "redis":
        bus = RedisStreamEventBus.from_settings(config)
        logger.info(f"Using Redis Streams event transport (group {config.event_consumer_group})")
        return bus

    raise ValueError(f"Unknown event backend: {backend_type}")
