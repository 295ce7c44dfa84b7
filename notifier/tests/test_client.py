"""
Client agent: event parsing, listener dispatch and fixed-delay reconnects.

The HTTP session and the reconnect scheduler are replaced with fakes so
every reconnect is driven explicitly by the test.
"""
import io
import json
import logging
import threading

import pytest
import requests

from notifier.client import CONNECTED, DISCONNECTED, WILDCARD, RealTimeClient, iter_sse_data


def frame(event: dict) -> list[str]:
    return [f"data: {json.dumps(event)}", ""]


class FakeResponse:
    def __init__(self, n, log, lines=(), error=None, block=False):
        self.n = n
        self.log = log
        self.lines = lines
        self.error = error
        self.block = block
        self.closed = threading.Event()

    def raise_for_status(self):
        return None

    def iter_lines(self, decode_unicode=False):
        yield from self.lines
        if self.block:
            self.closed.wait(5)
            raise requests.ConnectionError("stream closed")
        if self.error is not None:
            raise self.error

    def close(self):
        self.log.append(f"close:{self.n}")
        self.closed.set()


class FakeSession:
    """Each ``get`` consumes the next script: ``dict(lines=..., error=..., block=...)``,
    an exception to raise, or a ready ``requests.Response``."""

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.headers = {}
        self.calls = []
        self.log = []
        self.responses = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        n = len(self.calls)
        self.log.append(f"open:{n}")
        script = self.scripts.pop(0) if self.scripts else {}
        if isinstance(script, Exception):
            raise script
        if isinstance(script, requests.Response):
            return script
        response = FakeResponse(n, self.log, **script)
        self.responses.append(response)
        return response


class FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.calls = []

    def __call__(self, delay, fn, *args):
        handle = FakeHandle()
        self.calls.append((delay, fn, args, handle))
        return handle

    def fire(self, index=-1):
        _, fn, args, _ = self.calls[index]
        fn(*args)


def event_stream_response(body: bytes) -> requests.Response:
    """A real requests response the way the adapter builds it: encoding from headers."""
    response = requests.Response()
    response.status_code = 200
    response.headers["Content-Type"] = "text/event-stream"
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    response.raw = io.BytesIO(body)
    return response


def make_client(*scripts, **kwargs):
    session = FakeSession(*scripts)
    scheduler = FakeScheduler()
    client = RealTimeClient("http://clinic.test/", session=session, scheduler=scheduler, **kwargs)
    return client, session, scheduler


def join(client):
    client.reader_thread.join(5)
    assert not client.reader_thread.is_alive()


def test_notification_reaches_its_listener_and_wildcard():
    client, _, _ = make_client()
    seen, everything = [], []
    client.subscribe("notification", seen.append)
    client.subscribe(WILDCARD, everything.append)

    message = {"type": "notification", "data": {"title": "T", "message": "M"}}
    client.handle_message(json.dumps(message))

    assert seen == [message]
    assert everything == [{"type": "notification", "data": message}]


def test_unsubscribed_type_only_reaches_wildcard():
    client, _, _ = make_client()
    seen, everything = [], []
    client.subscribe("notification", seen.append)
    client.subscribe(WILDCARD, everything.append)

    client.handle_message(json.dumps({"type": "appointment_update", "message": "moved"}))

    assert seen == []
    assert everything == [{"type": "appointment_update", "data": {"type": "appointment_update", "message": "moved"}}]


def test_unsubscribed_type_without_wildcard_is_dropped():
    client, _, _ = make_client()
    seen = []
    client.subscribe("notification", seen.append)
    client.handle_message(json.dumps({"type": "heartbeat", "timestamp": 1}))
    assert seen == []


def test_last_subscription_wins_and_unsubscribe_removes():
    client, _, _ = make_client()
    first, second = [], []
    client.subscribe("notification", first.append)
    client.subscribe("notification", second.append)
    client.handle_message(json.dumps({"type": "notification", "data": {}}))
    assert first == [] and len(second) == 1

    client.unsubscribe("notification")
    client.handle_message(json.dumps({"type": "notification", "data": {}}))
    assert len(second) == 1


def test_malformed_frame_is_logged_and_ignored(caplog):
    client, _, _ = make_client()
    seen = []
    client.subscribe(WILDCARD, seen.append)
    with caplog.at_level(logging.WARNING, logger="notifier.client"):
        client.handle_message("{not json")
        client.handle_message("[1, 2]")
    assert seen == []
    assert "malformed" in caplog.text


def test_failing_listener_does_not_stop_delivery():
    client, _, _ = make_client()
    seen = []

    def boom(_):
        raise RuntimeError("listener bug")

    client.subscribe("notification", boom)
    client.subscribe(WILDCARD, seen.append)
    client.handle_message(json.dumps({"type": "notification", "data": {}}))
    assert len(seen) == 1


def test_stream_events_are_delivered_in_order():
    lines = frame({"type": "connected"}) + frame({"type": "notification", "data": {"n": 1}}) \
        + [": keep-alive comment", ""] + frame({"type": "notification", "data": {"n": 2}})
    client, session, _ = make_client({"lines": lines, "block": True})
    received = []
    done = threading.Event()

    def on_notification(message):
        received.append(message["data"]["n"])
        if len(received) == 2:
            done.set()

    client.subscribe("notification", on_notification)

    client.connect("u1")
    assert client.state == CONNECTED
    url, kwargs = session.calls[0]
    assert url == "http://clinic.test/api/notifications/stream"
    assert kwargs["params"] == {"userId": "u1"}
    assert kwargs["stream"] is True

    assert done.wait(5)
    client.disconnect()
    join(client)
    assert received == [1, 2]


def test_stream_error_reconnects_once_after_fixed_delay():
    client, session, scheduler = make_client(
        {"lines": frame({"type": "connected"}), "error": requests.ConnectionError("reset")},
        {"lines": [], "block": True},
    )
    client.connect("u1")
    join(client)

    assert client.state == DISCONNECTED
    assert len(scheduler.calls) == 1
    assert scheduler.calls[0][0] == 5.0
    assert len(session.calls) == 1

    scheduler.fire()
    assert len(session.calls) == 2
    assert session.calls[1][1]["params"] == {"userId": "u1"}
    assert session.log == ["open:1", "close:1", "open:2"]
    assert client.state == CONNECTED

    client.disconnect()
    join(client)
    assert len(scheduler.calls) == 1


def test_end_of_stream_also_reconnects():
    client, _, scheduler = make_client({"lines": frame({"type": "connected"})})
    client.connect("u1")
    join(client)
    assert len(scheduler.calls) == 1


def test_failed_open_schedules_retry():
    client, session, scheduler = make_client(requests.ConnectionError("refused"))
    client.connect("u1")
    assert client.state == DISCONNECTED
    assert client.reader_thread is None
    assert len(scheduler.calls) == 1

    scheduler.fire()
    assert len(session.calls) == 2


def test_connect_again_closes_previous_stream_first():
    client, session, scheduler = make_client({"block": True}, {"block": True})
    client.connect("u1")
    first_reader = client.reader_thread

    client.connect("u1")
    first_reader.join(5)
    assert session.log[:3] == ["open:1", "close:1", "open:2"]
    # the superseded reader must not schedule a reconnect
    assert scheduler.calls == []

    client.disconnect()
    join(client)
    assert scheduler.calls == []


def test_disconnect_cancels_pending_retry_and_clears_listeners():
    client, session, scheduler = make_client(requests.ConnectionError("refused"))
    client.subscribe("notification", lambda m: None)
    client.connect("u1")
    handle = scheduler.calls[0][3]

    client.disconnect()
    assert handle.cancelled
    assert client.state == DISCONNECTED

    # a timer that already fired after disconnect does nothing
    scheduler.fire()
    assert len(session.calls) == 1

    seen = []
    client.subscribe(WILDCARD, seen.append)
    client.disconnect()
    client.handle_message(json.dumps({"type": "notification"}))
    assert seen == []


def test_token_is_sent_as_authorization_header():
    client, session, _ = make_client(token="abc123")
    assert session.headers["Authorization"] == "Token abc123"


@pytest.mark.parametrize("lines, expected", [
    (["data: {\"a\": 1}", ""], ["{\"a\": 1}"]),
    (["data: line one", "data: line two", ""], ["line one\nline two"]),
    ([": comment", "event: notification", "data:x", ""], ["x"]),
    (["data: incomplete"], []),
    ([b"data: bytes", b""], ["bytes"]),
])
def test_iter_sse_data(lines, expected):
    assert list(iter_sse_data(lines)) == expected


def test_non_ascii_payload_is_decoded_as_utf8():
    body = 'data: {"type": "notification", "data": {"title": "Café, 北京"}}\n\n'.encode("utf-8")
    response = event_stream_response(body)
    assert response.encoding == "ISO-8859-1"

    client, _, scheduler = make_client(response)
    titles = []
    client.subscribe("notification", lambda m: titles.append(m["data"]["title"]))
    client.connect("u1")
    join(client)

    assert titles == ["Café, 北京"]
    # end of stream still schedules the usual reconnect
    assert len(scheduler.calls) == 1
