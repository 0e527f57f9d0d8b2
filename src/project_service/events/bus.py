"""Message transport interface and the in-process implementation."""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], None]


@dataclass
class Message:
    """A message as seen by the transport."""

    id: str
    routing_key: str
    payload: Any
    deliveries: int = 0
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "routing_key": self.routing_key,
            "payload": self.payload,
            "deliveries": self.deliveries,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }


class EventBus(ABC):
    """
    Abstract message transport with at-least-once delivery.

    A message is acknowledged only after its handler returned. A handler
    that raises leaves the message unacknowledged; the transport redelivers
    it and moves it to the dead-letter store after ``max_deliveries``
    attempts.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name (e.g. 'memory', 'redis')."""
        ...

    @abstractmethod
    def publish(self, routing_key: str, payload: dict[str, Any]) -> str:
        """
        Publish a message.

        Returns:
            Transport-assigned message id
        """
        ...

    @abstractmethod
    def subscribe(self, routing_key: str, handler: Handler) -> None:
        """Register the handler for a routing key."""
        ...

    @abstractmethod
    def poll(self, block_ms: int | None = None) -> int:
        """
        Deliver available messages to their handlers.

        Returns:
            Number of messages handled and acknowledged
        """
        ...

    @abstractmethod
    def dead_letters(self, limit: int = 100) -> list[Message]:
        """Most recent dead-lettered messages, newest first."""
        ...

    def reclaim_pending(self) -> int:
        """
        Redeliver messages left unacknowledged by failed handlers.

        Returns:
            Number of messages redelivered or dead-lettered
        """
        return 0

    def health_check(self) -> dict[str, Any]:
        return {"backend": self.name, "connected": True}

    def close(self) -> None:
        """Release transport resources."""


class InMemoryEventBus(EventBus):
    """
    Single-process transport.

    Used by tests and local runs. Every published message is kept in
    ``published``; messages for subscribed routing keys are also queued and
    delivered by ``poll``. A failed message goes back to the end of the
    queue until it reaches ``max_deliveries``.
    """

    def __init__(self, max_deliveries: int = 5) -> None:
        self._max_deliveries = max_deliveries
        self._handlers: dict[str, Handler] = {}
        self._queue: deque[Message] = deque()
        self._dead: list[Message] = []
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self.published: list[Message] = []

    @property
    def name(self) -> str:
        return "memory"

    def publish(self, routing_key: str, payload: dict[str, Any]) -> str:
        message = Message(id=str(uuid.uuid4()), routing_key=routing_key, payload=payload)
        with self._lock:
            self.published.append(message)
            if routing_key in self._handlers:
                self._queue.append(message)
                self._ready.set()
        logger.debug(f"Published {routing_key} message {message.id}")
        return message.id

    def subscribe(self, routing_key: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[routing_key] = handler

    def poll(self, block_ms: int | None = None) -> int:
        if block_ms and not self._queue:
            self._ready.wait(block_ms / 1000)

        with self._lock:
            batch = list(self._queue)
            self._queue.clear()
            # Requeued failures wait for the next publish or block timeout
            self._ready.clear()

        handled = 0
        for message in batch:
            handler = self._handlers[message.routing_key]
            message.deliveries += 1
            try:
                handler(message.routing_key, message.payload)
                handled += 1
            except Exception as e:
                message.error = f"{type(e).__name__}: {e}"
                logger.error(
                    f"Handler for {message.routing_key} failed on message {message.id} "
                    f"(delivery {message.deliveries}): {e}"
                )
                with self._lock:
                    if message.deliveries >= self._max_deliveries:
                        self._dead.append(message)
                        logger.warning(f"Dead-lettered message {message.id} ({message.routing_key})")
                    else:
                        self._queue.append(message)
        return handled

    def drain(self, max_rounds: int = 100) -> int:
        """Poll until the queue is empty. Returns messages handled."""
        handled = 0
        for _ in range(max_rounds):
            if not self._queue:
                break
            handled += self.poll()
        return handled

    def pending(self) -> int:
        return len(self._queue)

    def dead_letters(self, limit: int = 100) -> list[Message]:
        with self._lock:
            return list(reversed(self._dead))[:limit]

    def messages_for(self, routing_key: str) -> list[Message]:
        """Published messages with the given routing key, oldest first."""
        return [m for m in self.published if m.routing_key == routing_key]

    def health_check(self) -> dict[str, Any]:
        return {
            "backend": self.name,
            "connected": True,
            "pending": self.pending(),
            "dead_letters": len(self._dead),
        }
