"""
Client for the notification event stream.

:class:`RealTimeClient` opens ``/api/notifications/stream`` for one user,
parses the Server-Sent Events frames and hands each event to the
listener subscribed for its ``type``, then to the wildcard listener
(``"*"``) if one is registered. When the stream fails or ends it waits a
fixed delay and connects again, with no attempt limit.

Listeners run on the reader thread, one event at a time, in the order
the server wrote them.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterable, Iterator, Optional

import requests

logger = logging.getLogger(__name__)

WILDCARD = '*'
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_STREAM_PATH = '/api/notifications/stream'

DISCONNECTED = 'disconnected'
CONNECTED = 'connected'

Listener = Callable[[Any], None]


def start_timer(delay: float, fn: Callable, *args) -> threading.Timer:
    timer = threading.Timer(delay, fn, args=args)
    timer.daemon = True
    timer.start()
    return timer


def iter_sse_data(lines: Iterable) -> Iterator[str]:
    """Yield the ``data`` payload of every complete event in ``lines``.

    Multiple ``data:`` lines of one event are joined with newlines,
    comment lines (``:``) and other fields are skipped, and a trailing
    event without its blank terminator line is dropped.
    """
    buf: list[str] = []
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        line = line.rstrip('\r')
        if not line:
            if buf:
                yield '\n'.join(buf)
                buf = []
            continue
        if line.startswith(':'):
            continue
        field, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]
        if field == 'data':
            buf.append(value)


class RealTimeClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        scheduler: Callable[..., Any] = start_timer,
        stream_path: str = DEFAULT_STREAM_PATH,
        timeout: tuple[float, float] = (10.0, 90.0),
    ):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        if token:
            self.session.headers['Authorization'] = f'Token {token}'
        self.reconnect_delay = reconnect_delay
        self.scheduler = scheduler
        self.stream_path = '/' + stream_path.lstrip('/')
        # read timeout longer than the server heartbeat so a silent stream counts as failed
        self.timeout = timeout

        self.state = DISCONNECTED
        self.user_id: Optional[str] = None
        self.reader_thread: Optional[threading.Thread] = None
        self._listeners: dict[str, Listener] = {}
        self._response = None
        self._retry = None
        # bumped on every connect/disconnect; stale readers and retries compare against it
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def stream_url(self) -> str:
        return f"{self.base_url}{self.stream_path}"

    def connect(self, user_id) -> None:
        with self._lock:
            self._close_stream()
            self._cancel_retry()
            self._generation += 1
            generation = self._generation
            self.user_id = str(user_id)
            try:
                response = self.session.get(
                    self.stream_url,
                    params={'userId': self.user_id},
                    headers={'Accept': 'text/event-stream'},
                    stream=True,
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.RequestException as exc:
                logger.warning("Could not open notification stream for user %s: %s", self.user_id, exc)
                self._on_stream_error(generation)
                return
            self._response = response
            self.state = CONNECTED
            self.reader_thread = threading.Thread(
                target=self._pump,
                args=(response, generation),
                name=f'notification-stream-{self.user_id}',
                daemon=True,
            )
            self.reader_thread.start()
            logger.info("Notification stream open for user %s", self.user_id)

    def disconnect(self) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_retry()
            self._close_stream()
            self._listeners.clear()
            self.state = DISCONNECTED

    def subscribe(self, event_type: str, callback: Listener) -> None:
        with self._lock:
            self._listeners[event_type] = callback

    def unsubscribe(self, event_type: str) -> None:
        with self._lock:
            self._listeners.pop(event_type, None)

    def handle_message(self, raw: str) -> None:
        """Parse one frame's data and notify listeners."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed notification frame: %.200r", raw)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring notification frame that is not an object: %.200r", raw)
            return

        event_type = message.get('type')
        with self._lock:
            callback = self._listeners.get(event_type)
            wildcard = self._listeners.get(WILDCARD)
        if callback is not None:
            self._invoke(callback, message, event_type)
        if wildcard is not None:
            self._invoke(wildcard, {'type': event_type, 'data': message}, event_type)

    def _invoke(self, callback: Listener, payload: Any, event_type) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("Listener for %s events failed", event_type)

    def _pump(self, response, generation: int) -> None:
        try:
            # raw bytes; event streams are always UTF-8 whatever the charset header says
            for data in iter_sse_data(response.iter_lines()):
                if generation != self._generation:
                    return
                self.handle_message(data)
        except Exception as exc:
            if generation == self._generation:
                logger.warning("Notification stream for user %s failed: %s", self.user_id, exc)
        else:
            if generation == self._generation:
                logger.info("Notification stream for user %s ended", self.user_id)
        self._on_stream_error(generation)

    def _on_stream_error(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._close_stream()
            self.state = DISCONNECTED
            self._retry = self.scheduler(self.reconnect_delay, self._reconnect, generation)

    def _reconnect(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            logger.info("Reconnecting notification stream for user %s", self.user_id)
            self.connect(self.user_id)

    def _close_stream(self) -> None:
        response, self._response = self._response, None
        if response is not None:
            try:
                response.close()
            except Exception:
                logger.debug("Error closing notification stream", exc_info=True)

    def _cancel_retry(self) -> None:
        retry, self._retry = self._retry, None
        if retry is not None and hasattr(retry, 'cancel'):
            retry.cancel()
