"""
Registry event fan-out over Redis.

Each lifecycle change is published on the ``events:registry`` channel for
real-time consumers and appended to the ``registry:events`` list for history.
Publishing never fails the operation that triggered it.
"""

import json
import logging
from datetime import UTC, datetime
from typing import List

import redis.asyncio as redis

from qcap_registry.modules.registry import CapabilityRecord

logger = logging.getLogger("qcap_registry.events")

EVENT_CHANNEL = "events:registry"
EVENT_HISTORY_KEY = "registry:events"
EVENT_HISTORY_SIZE = 1000

EVENT_TYPES = (
    "capability.registered",
    "capability.renewed",
    "capability.deregistered",
    "capability.expired",
)


class RegistryEventPublisher:
    def __init__(self, redis_client):
        """
        Initialize publisher.

        Args:
            redis_client: Async Redis client
        """
        self.redis = redis_client

    async def publish(self, event_type: str, record: CapabilityRecord) -> bool:
        """
        Publish a registry event.

        Returns:
            True if published, False if Redis rejected it
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown registry event type: {event_type}")

        event = {
            "type": event_type,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": record.to_dict(),
        }
        payload = json.dumps(event)

        try:
            await self.redis.publish(EVENT_CHANNEL, payload)
            await self.redis.lpush(EVENT_HISTORY_KEY, payload)
            await self.redis.ltrim(EVENT_HISTORY_KEY, 0, EVENT_HISTORY_SIZE - 1)
            return True
        except Exception as e:
            logger.warning(f"Failed to publish {event_type} for {record.id}: {e}")
            return False

    async def recent_events(self, limit: int = 100) -> List[dict]:
        """Most recent events first."""
        raw = await self.redis.lrange(EVENT_HISTORY_KEY, 0, max(limit, 1) - 1)
        events = []
        for item in raw:
            if isinstance(item, bytes):
                item = item.decode("utf-8")
            events.append(json.loads(item))
        return events

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning(f"Event backend ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.redis.close()


async def create_redis_client(
    host: str, port: int = 6379, db: int = 0, password: str = None
) -> redis.Redis:
    """Create Redis client from configuration."""
    # Password passed separately to avoid URL encoding issues
    return await redis.from_url(
        f"redis://{host}:{port}/{db}",
        password=password,
        encoding="utf-8",
        decode_responses=True,
    )
