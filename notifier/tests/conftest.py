import pytest

from notifier.realtime import ConnectionRegistry, NotificationDispatcher, StreamChannel

from .utils import RecordingStream


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(registry):
    return NotificationDispatcher(registry)


@pytest.fixture
def open_stream(registry):
    """Register a recording channel for a user and return its recorder."""
    def _open(user_id, *, fail=False):
        stream = RecordingStream(fail=fail)
        registry.add(user_id, StreamChannel(stream, user_id=str(user_id)))
        return stream
    return _open

