"""
Events Module - Black Box Interface

Purpose: Broadcast capability lifecycle events
Interface: publish(), recent_events()
Hidden: Redis channel and history list layout

Optional: the registry works without it; events are emitted only when a
Redis backend is configured.
"""

from .publisher import EVENT_CHANNEL, EVENT_TYPES, RegistryEventPublisher, create_redis_client

__all__ = ["RegistryEventPublisher", "create_redis_client", "EVENT_CHANNEL", "EVENT_TYPES"]
