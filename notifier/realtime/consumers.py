"""
Event-stream endpoint for live notifications.

``GET /api/notifications/stream?userId=<id>`` opens one long-lived
``text/event-stream`` response per session. The consumer registers its
channel under the authenticated user's id, writes a ``connected`` frame
and periodic heartbeats, and removes itself from the registry however the
stream ends (client disconnect, server shutdown, broken write).
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import parse_qs

from channels.consumer import AsyncConsumer
from channels.exceptions import StopConsumer
from django.conf import settings

from .channel import ChannelClosed, StreamChannel
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

SSE_HEADERS = [
    (b"Content-Type", b"text/event-stream"),
    (b"Cache-Control", b"no-cache"),
    (b"Connection", b"keep-alive"),
    (b"X-Accel-Buffering", b"no"),
]


class NotificationStreamConsumer(AsyncConsumer):
    """One instance per open stream.

    ``AsyncConsumer`` is used instead of ``AsyncHttpConsumer`` because the
    response has to stay open after the request is handled; the stream
    ends on ``http.disconnect``, on cancellation, or when a heartbeat
    write fails.
    """
    registry: Optional[ConnectionRegistry] = None
    heartbeat_seconds: Optional[float] = None

    def __init__(self, registry: Optional[ConnectionRegistry] = None, heartbeat_seconds: Optional[float] = None):
        self.registry = registry
        self.heartbeat_seconds = heartbeat_seconds
        self.user_id: Optional[str] = None
        self.channel: Optional[StreamChannel] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None
        self._stream_lost = False

    async def __call__(self, scope, receive, send):
        self._task = asyncio.current_task()
        try:
            await super().__call__(scope, receive, send)
        except asyncio.CancelledError:
            # cancelled by the heartbeat loop after the stream broke
            if not self._stream_lost:
                raise
        finally:
            await self._teardown()

    async def http_request(self, message):
        if message.get("more_body"):
            return

        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self._reject(401, b"Unauthorized")
            raise StopConsumer()

        user_id = str(user.pk)
        requested = parse_qs(self.scope.get("query_string", b"").decode("latin-1")).get("userId")
        if requested and requested[0] != user_id:
            await self._reject(403, b"Forbidden")
            raise StopConsumer()

        if self.registry is None:
            from . import get_registry
            self.registry = get_registry()
        if self.heartbeat_seconds is None:
            self.heartbeat_seconds = settings.NOTIFIER_HEARTBEAT_SECONDS

        await self.send({"type": "http.response.start", "status": 200, "headers": SSE_HEADERS})
        self.user_id = user_id
        self.channel = StreamChannel(self._send_body, user_id=user_id)
        self.registry.add(user_id, self.channel)

        try:
            await self.channel.write({"type": "connected", "message": "Connected to notifications"})
        except ChannelClosed:
            logger.warning("Stream for user %s closed before it was established", user_id)
            raise StopConsumer()
        self._heartbeat = asyncio.ensure_future(self._heartbeat_loop(self.channel))

    async def http_disconnect(self, message):
        raise StopConsumer()

    async def _send_body(self, body: bytes, *, more_body: bool = False) -> None:
        await self.send({"type": "http.response.body", "body": body, "more_body": more_body})

    async def _reject(self, status: int, body: bytes) -> None:
        await self.send({
            "type": "http.response.start",
            "status": status,
            "headers": [(b"Content-Type", b"text/plain")],
        })
        await self._send_body(body)

    async def _heartbeat_loop(self, channel: StreamChannel) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            try:
                await channel.write({"type": "heartbeat", "timestamp": int(time.time() * 1000)})
            except ChannelClosed:
                logger.info("Heartbeat failed for user %s, dropping stream", self.user_id)
                self.registry.remove(self.user_id, channel)
                self._stream_lost = True
                if self._task is not None:
                    self._task.cancel()
                return

    async def _teardown(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None
        if self.channel is not None:
            channel, self.channel = self.channel, None
            await channel.close()
            self.registry.remove(self.user_id, channel)
