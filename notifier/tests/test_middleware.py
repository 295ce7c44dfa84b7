"""
Token resolution for the event-stream endpoint.
"""
import pytest
from django.contrib.auth.models import AnonymousUser

from notifier.models import User
from notifier.realtime import middleware
from notifier.realtime.middleware import TokenAuthMiddleware, _token_from_scope


@pytest.mark.parametrize("headers, expected", [
    ([(b"authorization", b"Token abc123")], "abc123"),
    ([(b"Authorization", b"token  abc123 ")], "abc123"),
    ([(b"authorization", b"Bearer abc123")], None),
    ([(b"authorization", b"Token ")], None),
    ([], None),
])
def test_token_from_scope(headers, expected):
    assert _token_from_scope({"headers": headers}) == expected


class Inner:
    def __init__(self):
        self.scope = None

    async def __call__(self, scope, receive, send):
        self.scope = scope


@pytest.mark.asyncio
async def test_anonymous_scope_is_resolved_from_token(monkeypatch):
    user = User(id=5, username="doctor5", role=User.ROLE_DOCTOR)
    seen = []

    async def fake_lookup(key):
        seen.append(key)
        return user

    monkeypatch.setattr(middleware, "get_token_user", fake_lookup)
    inner = Inner()
    scope = {"type": "http", "headers": [(b"authorization", b"Token k1")], "user": AnonymousUser()}
    await TokenAuthMiddleware(inner)(scope, None, None)

    assert seen == ["k1"]
    assert inner.scope["user"] is user


@pytest.mark.asyncio
async def test_authenticated_scope_is_left_alone(monkeypatch):
    async def fail_lookup(key):
        raise AssertionError("token lookup must not run")

    monkeypatch.setattr(middleware, "get_token_user", fail_lookup)
    user = User(id=6, username="admin6", role=User.ROLE_ADMIN)
    inner = Inner()
    scope = {"type": "http", "headers": [(b"authorization", b"Token k1")], "user": user}
    await TokenAuthMiddleware(inner)(scope, None, None)
    assert inner.scope["user"] is user
