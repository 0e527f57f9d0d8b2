"""Main entry point and component wiring for the project service."""

import logging
import signal
import sys
from typing import Any, NoReturn

from project_service.cache import CacheBackend, create_cache
from project_service.config import Settings, settings
from project_service.db import DatabaseManager
from project_service.events import (
    EventBus,
    EventConsumer,
    EventSynchronizer,
    ResourceEventPublisher,
    create_event_bus,
)
from project_service.quota import LimitsCache, QuotaGuard, ResourceCounter, TenantServiceClient
from project_service.services import ResourceService

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for an entry point."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class Application:
    """Owns every component of the service and their lifecycle."""

    def __init__(
        self,
        config: Settings | None = None,
        db_manager: DatabaseManager | None = None,
        cache_backend: CacheBackend | None = None,
        remote: TenantServiceClient | None = None,
        bus: EventBus | None = None,
    ) -> None:
        """
        Build the component graph.

        Collaborators may be injected (tests); anything not given is built
        from ``config``.
        """
        self.config = config or settings
        self.db_manager = db_manager or DatabaseManager.from_settings(self.config)
        self.limits_cache = LimitsCache(cache_backend or create_cache(config=self.config))
        self.remote = remote or TenantServiceClient.from_settings(self.config)
        self.counter = ResourceCounter()
        self.guard = QuotaGuard(self.limits_cache, self.counter, self.remote)
        self.bus = bus or create_event_bus(config=self.config)
        self.publisher = ResourceEventPublisher(self.bus)
        self.resources = ResourceService(
            db_manager=self.db_manager,
            guard=self.guard,
            counter=self.counter,
            remote=self.remote,
            publisher=self.publisher,
        )
        self.synchronizer = EventSynchronizer(self.limits_cache, self.db_manager)
        self.consumer = EventConsumer(
            self.bus,
            self.synchronizer,
            block_ms=self.config.event_block_ms,
            reclaim_interval_seconds=self.config.event_reclaim_interval_seconds,
        )

    def start(self, consume_events: bool = True) -> None:
        logger.info("Starting project service...")
        self.db_manager.init_db()
        logger.info("Database initialized")

        if consume_events:
            self.consumer.start()
            logger.info("Event consumer started")

    def stop(self) -> None:
        logger.info("Stopping project service...")
        self.consumer.stop()
        self.bus.close()
        self.remote.close()
        self.limits_cache.backend.close()
        self.db_manager.close()
        logger.info("Project service stopped")

    def health(self) -> dict[str, Any]:
        """Health of the database, limits cache and transport."""
        db_ok = self.db_manager.health_check()
        cache = self.limits_cache.backend.health_check()
        events = self.bus.health_check()
        remote = self.remote.stats()

        healthy = db_ok and cache.get("connected", False) and events.get("connected", False)
        return {
            "status": "healthy" if healthy else "degraded",
            "database": "ok" if db_ok else "unavailable",
            "limits_cache": cache,
            "events": {
                **events,
                "consumer_running": self.consumer.is_running,
                "publish_failures": self.publisher.failures,
            },
            "tenant_service": remote,
            "report_failures": remote["report_failures"],
        }


_application: Application | None = None


def get_application() -> Application:
    """Get the global application instance."""
    global _application
    if _application is None:
        _application = Application()
    return _application


def set_application(application: Application | None) -> None:
    """Replace the global application instance (tests, CLI)."""
    global _application
    _application = application


def main() -> NoReturn:
    """Run the event worker until interrupted."""
    configure_logging()
    application = get_application()

    # Handle graceful shutdown
    def signal_handler(signum: int, frame: object) -> None:
        logger.info(f"Received signal {signum}")
        application.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        application.start()
        logger.info("Project service worker running. Press Ctrl+C to stop.")
        signal.pause()
    except AttributeError:
        # signal.pause() not available on Windows
        import time
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        application.stop()

    sys.exit(0)


if __name__ == "__main__":
    main()
