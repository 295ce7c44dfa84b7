"""
Token authentication for the stream endpoint.

Browsers reach the stream with their session cookie through Channels'
``AuthMiddlewareStack``. Non-browser clients send the same
``Authorization: Token <key>`` header the REST API accepts; this
middleware resolves it when the session did not produce a user.
"""
from __future__ import annotations

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework.authtoken.models import Token

from ..authentication import TokenAuthentication


def _token_from_scope(scope) -> str | None:
    prefix = f"{TokenAuthentication.keyword} ".lower().encode("latin-1")
    for name, value in scope.get("headers", []):
        if name.lower() == b"authorization" and value.lower().startswith(prefix):
            return value[len(prefix):].decode("latin-1").strip() or None
    return None


@database_sync_to_async
def get_token_user(key: str):
    try:
        token = Token.objects.select_related("user").get(key=key)
    except Token.DoesNotExist:
        return AnonymousUser()
    return token.user if token.user.is_active else AnonymousUser()


class TokenAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        user = scope.get("user")
        if user is None or not user.is_authenticated:
            key = _token_from_scope(scope)
            if key:
                scope = dict(scope, user=await get_token_user(key))
        return await super().__call__(scope, receive, send)


def TokenAuthMiddlewareStack(inner):
    return AuthMiddlewareStack(TokenAuthMiddleware(inner))
