"""
Server side of a delivery channel.

A :class:`StreamChannel` wraps the ``send_body`` coroutine of one open
event-stream response. Writers are serialised by an ``asyncio.Lock`` so
frames reach the client in the order they were written, and a channel
that has been closed refuses further writes with :class:`ChannelClosed`.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

from django.core.serializers.json import DjangoJSONEncoder

SendBody = Callable[..., Awaitable[None]]


class ChannelClosed(Exception):
    """Raised when writing to a stream that is closed or broken."""


def encode_event(event: dict[str, Any]) -> bytes:
    """Encode one event as a single SSE ``data:`` frame."""
    return f"data: {json.dumps(event, cls=DjangoJSONEncoder)}\n\n".encode('utf-8')


class StreamChannel:
    def __init__(self, send_body: SendBody, *, user_id: str | None = None):
        self._send_body = send_body
        self._lock = asyncio.Lock()
        self.user_id = user_id
        self.closed = False

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f"<StreamChannel user={self.user_id} {state}>"

    async def write(self, event: dict[str, Any]) -> None:
        frame = encode_event(event)
        async with self._lock:
            if self.closed:
                raise ChannelClosed(f"stream for user {self.user_id} is closed")
            try:
                await self._send_body(frame, more_body=True)
            except ChannelClosed:
                self.closed = True
                raise
            except Exception as exc:
                self.closed = True
                raise ChannelClosed(str(exc)) from exc

    async def close(self) -> None:
        # waits for an in-flight write to finish
        async with self._lock:
            self.closed = True
