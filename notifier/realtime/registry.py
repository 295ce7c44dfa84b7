"""
In-process registry of open notification streams.

Holds at most one channel per user id. Adding a channel for a user that
already has one replaces the entry; the old channel is not torn down
here because the request that opened it owns its lifetime.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from prometheus_client import Gauge

from .channel import StreamChannel

logger = logging.getLogger(__name__)

ACTIVE_STREAMS = Gauge(
    'notifier_active_streams',
    'Notification streams currently registered in this process',
)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._channels: dict[str, StreamChannel] = {}
        # touched from the event loop and from sync views in worker threads
        self._lock = threading.Lock()

    def add(self, user_id, channel: StreamChannel) -> None:
        key = str(user_id)
        with self._lock:
            self._channels[key] = channel
            total = len(self._channels)
        ACTIVE_STREAMS.set(total)
        logger.info("Stream added for user %s. Total streams: %d", key, total)

    def remove(self, user_id, channel: Optional[StreamChannel] = None) -> bool:
        """Drop the entry for ``user_id``.

        With ``channel`` given, the entry is only dropped while it is still
        that channel, so a replaced stream closing late cannot evict its
        successor. Returns whether anything was removed.
        """
        key = str(user_id)
        with self._lock:
            current = self._channels.get(key)
            if current is None or (channel is not None and current is not channel):
                return False
            del self._channels[key]
            total = len(self._channels)
        ACTIVE_STREAMS.set(total)
        logger.info("Stream removed for user %s. Total streams: %d", key, total)
        return True

    def get(self, user_id) -> Optional[StreamChannel]:
        with self._lock:
            return self._channels.get(str(user_id))

    def count(self) -> int:
        with self._lock:
            return len(self._channels)

    def __contains__(self, user_id) -> bool:
        return self.get(user_id) is not None
