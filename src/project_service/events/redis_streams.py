"""
Redis Streams transport.

One stream per routing key, one consumer group per service:

- XADD publishes a message as ``{"data": <json>}``
- XREADGROUP delivers new messages to this consumer
- XACK runs only after the handler returned
- Unacknowledged messages stay in the pending entries list; the reclaim
  job claims and redelivers them once idle, and moves them to the
  dead-letter stream after ``max_deliveries`` attempts
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import redis

from project_service.config import Settings
from project_service.events.bus import EventBus, Handler, Message

logger = logging.getLogger(__name__)


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisStreamEventBus(EventBus):
    """Redis Streams implementation of the event bus."""

    DEAD_LETTER_SUFFIX = "dead-letter"

    def __init__(
        self,
        client: redis.Redis,
        stream_prefix: str = "events:",
        group_name: str = "project-service",
        consumer_name: str = "worker-1",
        max_deliveries: int = 5,
        reclaim_idle_ms: int = 60000,
        batch_size: int = 10,
        maxlen: int | None = 100000,
    ) -> None:
        """
        Initialize the transport.

        Args:
            client: Redis client
            stream_prefix: Prefix of stream keys
            group_name: Consumer group shared by all workers of this service
            consumer_name: Name of this worker within the group
            max_deliveries: Attempts before a message is dead-lettered
            reclaim_idle_ms: Idle time before a pending message is reclaimed
            batch_size: Messages read per XREADGROUP call
            maxlen: Approximate stream length cap
        """
        self._redis = client
        self._prefix = stream_prefix
        self._group = group_name
        self._consumer = consumer_name
        self._max_deliveries = max_deliveries
        self._reclaim_idle_ms = reclaim_idle_ms
        self._batch_size = batch_size
        self._maxlen = maxlen
        self._handlers: dict[str, Handler] = {}

    @classmethod
    def from_settings(cls, config: Settings) -> RedisStreamEventBus:
        if not config.redis_url:
            raise ValueError("REDIS_URL must be set to use the redis event backend")
        client = redis.Redis.from_url(config.redis_url, decode_responses=False)
        return cls(
            client,
            stream_prefix=config.event_stream_prefix,
            group_name=config.event_consumer_group,
            consumer_name=config.event_consumer_name,
            max_deliveries=config.event_max_deliveries,
            reclaim_idle_ms=config.event_reclaim_idle_ms,
        )

    @property
    def name(self) -> str:
        return "redis"

    def stream_key(self, routing_key: str) -> str:
        return f"{self._prefix}{routing_key}"

    @property
    def dead_letter_key(self) -> str:
        return f"{self._prefix}{self.DEAD_LETTER_SUFFIX}"

    def _routing_key(self, stream_key: Any) -> str:
        return _decode(stream_key)[len(self._prefix):]

    @staticmethod
    def _parse_fields(fields: dict) -> Any:
        raw = fields.get(b"data") or fields.get("data")
        raw = _decode(raw)
        try:
            return json.loads(raw) if raw else None
        except json.JSONDecodeError:
            # Left to the handler to reject
            return raw

    def publish(self, routing_key: str, payload: dict[str, Any]) -> str:
        data = {"data": json.dumps(payload, default=str)}
        try:
            if self._maxlen:
                message_id = self._redis.xadd(
                    self.stream_key(routing_key), data, maxlen=self._maxlen, approximate=True
                )
            else:
                message_id = self._redis.xadd(self.stream_key(routing_key), data)
        except redis.RedisError as e:
            logger.error(f"[RedisStream] Failed to publish {routing_key}: {e}")
            raise
        return _decode(message_id)

    def subscribe(self, routing_key: str, handler: Handler) -> None:
        stream = self.stream_key(routing_key)
        try:
            # "0": a new group starts from the beginning of the stream
            self._redis.xgroup_create(stream, self._group, id="0", mkstream=True)
            logger.info(f"[RedisStream] Created group {self._group} for {stream}")
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.debug(f"[RedisStream] Group {self._group} already exists for {stream}")
        self._handlers[routing_key] = handler

    def _dispatch(self, routing_key: str, message_id: str, fields: dict) -> bool:
        payload = self._parse_fields(fields)
        handler = self._handlers[routing_key]
        try:
            handler(routing_key, payload)
        except Exception as e:
            # Left pending; the reclaim job redelivers or dead-letters it
            logger.error(f"[RedisStream] Handler for {routing_key} failed on {message_id}: {e}")
            return False

        self._redis.xack(self.stream_key(routing_key), self._group, message_id)
        return True

    def poll(self, block_ms: int | None = None) -> int:
        if not self._handlers:
            return 0

        streams = {self.stream_key(key): ">" for key in self._handlers}
        response = self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams=streams,
            count=self._batch_size,
            block=block_ms,
        )
        if not response:
            return 0

        handled = 0
        for stream_key, messages in response:
            routing_key = self._routing_key(stream_key)
            for message_id, fields in messages:
                if self._dispatch(routing_key, _decode(message_id), fields):
                    handled += 1
        return handled

    def _dead_letter(self, routing_key: str, message_id: str, deliveries: int) -> None:
        stream = self.stream_key(routing_key)
        entries = self._redis.xrange(stream, min=message_id, max=message_id)
        payload = self._parse_fields(entries[0][1]) if entries else None
        self._redis.xadd(
            self.dead_letter_key,
            {
                "routing_key": routing_key,
                "message_id": message_id,
                "deliveries": str(deliveries),
                "data": json.dumps(payload, default=str),
                "dead_lettered_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        self._redis.xack(stream, self._group, message_id)
        logger.warning(
            f"[RedisStream] Dead-lettered {routing_key} message {message_id} "
            f"after {deliveries} deliveries"
        )

    def reclaim_pending(self) -> int:
        processed = 0
        for routing_key in list(self._handlers):
            stream = self.stream_key(routing_key)
            try:
                pending = self._redis.xpending_range(
                    stream,
                    self._group,
                    min="-",
                    max="+",
                    count=self._batch_size,
                    idle=self._reclaim_idle_ms,
                )
            except redis.RedisError as e:
                logger.error(f"[RedisStream] Failed to read pending for {stream}: {e}")
                continue

            for entry in pending:
                message_id = _decode(entry["message_id"])
                deliveries = int(entry.get("times_delivered", 1))
                if deliveries >= self._max_deliveries:
                    self._dead_letter(routing_key, message_id, deliveries)
                    processed += 1
                    continue

                claimed = self._redis.xclaim(
                    stream, self._group, self._consumer, self._reclaim_idle_ms, [message_id]
                )
                for claimed_id, fields in claimed:
                    self._dispatch(routing_key, _decode(claimed_id), fields)
                    processed += 1

        if processed:
            logger.info(f"[RedisStream] Reclaimed {processed} pending messages")
        return processed

    def dead_letters(self, limit: int = 100) -> list[Message]:
        entries = self._redis.xrevrange(self.dead_letter_key, count=limit)
        letters = []
        for entry_id, fields in entries:
            fields = {_decode(k): _decode(v) for k, v in fields.items()}
            letters.append(
                Message(
                    id=fields.get("message_id", _decode(entry_id)),
                    routing_key=fields.get("routing_key", ""),
                    payload=self._parse_fields(fields),
                    deliveries=int(fields.get("deliveries", 0)),
                    created_at=datetime.fromisoformat(fields["dead_lettered_at"])
                    if "dead_lettered_at" in fields
                    else datetime.now(timezone.utc),
                )
            )
        return letters

    def health_check(self) -> dict[str, Any]:
        try:
            self._redis.ping()
            return {"backend": self.name, "connected": True, "group": self._group}
        except redis.RedisError as e:
            return {"backend": self.name, "connected": False, "error": str(e)}

    def close(self) -> None:
        try:
            self._redis.close()
        except redis.RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
