"""
Routes events to a user's open stream, if there is one.

Delivery is at-most-once and best effort: a user without an open stream
simply misses the live event, and a stream that fails on write is evicted
from the registry. Neither case is reported to the caller as an error;
the persisted notification record is the durable copy.
"""
from __future__ import annotations

import logging
from typing import Any

from asgiref.sync import async_to_sync

from .channel import ChannelClosed
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def send(self, user_id, notification: Any) -> bool:
        """Push ``{"type": "notification", "data": notification}`` to the user."""
        return await self.publish(user_id, 'notification', notification)

    async def publish(self, user_id, event_type: str, data: Any) -> bool:
        channel = self.registry.get(user_id)
        if channel is None:
            logger.debug("No open stream for user %s, dropping %s event", user_id, event_type)
            return False
        try:
            await channel.write({'type': event_type, 'data': data})
        except (ChannelClosed, OSError) as exc:
            logger.warning("Dropping %s event for user %s: %s", event_type, user_id, exc)
            self.registry.remove(user_id, channel)
            return False
        logger.debug("Sent %s event to user %s", event_type, user_id)
        return True

    def send_sync(self, user_id, notification: Any) -> bool:
        """Blocking variant of :meth:`send` for sync views and services."""
        return async_to_sync(self.send)(user_id, notification)
