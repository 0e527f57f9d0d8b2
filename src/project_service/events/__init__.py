"""
Cross-service events.

Inbound plan upgrades and verification outcomes are applied by the
synchronizer; lifecycle changes are announced by the publisher. The bus
abstracts the transport (in-process or Redis Streams).
"""

from project_service.events.bus import EventBus, InMemoryEventBus, Message
from project_service.events.consumer import EventConsumer
from project_service.events.factory import create_event_bus
from project_service.events.messages import (
    DOMAIN_ADDED,
    DOMAIN_VERIFIED,
    PROJECT_CREATED,
    PROJECT_DELETED,
    REPOSITORY_ADDED,
    TENANT_PLAN_UPGRADED,
    LimitsUpgraded,
    VerificationOutcome,
)
from project_service.events.publisher import ResourceEventPublisher
from project_service.events.redis_streams import RedisStreamEventBus
from project_service.events.synchronizer import EventSynchronizer

__all__ = [
    "DOMAIN_ADDED",
    "DOMAIN_VERIFIED",
    "PROJECT_CREATED",
    "PROJECT_DELETED",
    "REPOSITORY_ADDED",
    "TENANT_PLAN_UPGRADED",
    "EventBus",
    "EventConsumer",
    "EventSynchronizer",
    "InMemoryEventBus",
    "LimitsUpgraded",
    "Message",
    "RedisStreamEventBus",
    "ResourceEventPublisher",
    "VerificationOutcome",
    "create_event_bus",
]
