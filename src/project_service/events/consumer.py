"""Background worker consuming inbound events."""

import logging
import threading

from project_service.events.bus import EventBus
from project_service.events.synchronizer import EventSynchronizer
from project_service.scheduler import SchedulerService

logger = logging.getLogger(__name__)


class EventConsumer:
    """
    Runs the event poll loop on its own thread.

    Request handling never waits on this loop. A scheduler job periodically
    asks the transport to redeliver or dead-letter messages whose handler
    failed.
    """

    RECLAIM_JOB_ID = "reclaim_pending_events"

    def __init__(
        self,
        bus: EventBus,
        synchronizer: EventSynchronizer,
        block_ms: int = 5000,
        reclaim_interval_seconds: int = 30,
        scheduler: SchedulerService | None = None,
    ) -> None:
        self._bus = bus
        self._synchronizer = synchronizer
        self._block_ms = block_ms
        self._reclaim_interval = reclaim_interval_seconds
        self._scheduler = scheduler or SchedulerService(max_workers=1)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._registered = False

    def register(self) -> None:
        """Subscribe the synchronizer to every inbound routing key."""
        if self._registered:
            return
        for routing_key in self._synchronizer.routing_keys:
            self._bus.subscribe(routing_key, self._synchronizer.handle)
            logger.info(f"Subscribed to {routing_key} on {self._bus.name} transport")
        self._registered = True

    def run_once(self) -> int:
        """Deliver one batch of messages. Returns messages handled."""
        self.register()
        return self._bus.poll(block_ms=self._block_ms)

    def _run(self) -> None:
        logger.info("Event consumer loop started")
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                # Transport trouble (e.g. Redis down); back off and keep consuming
                logger.error(f"Event poll failed: {e}")
                self._stop.wait(1.0)
        logger.info("Event consumer loop stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Event consumer is already running")
            return

        self.register()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="event-consumer", daemon=True)
        self._thread.start()

        self._scheduler.add_job(self.RECLAIM_JOB_ID, self._bus.reclaim_pending, self._reclaim_interval)
        self._scheduler.start()

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        self._scheduler.shutdown(wait=False)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
