"""
ASGI config for the clinic project.

Wires Django HTTP and the notification event stream (Channels).
Order matters: configure Django before importing any Django-dependent modules.
"""
import os

# 1) Configure settings before any Django import
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "clinic.settings")

# 2) Ensure Django is fully set up (so models/auth work during imports)
import django  # noqa: E402
django.setup()  # noqa: E402

# 3) Now import ASGI/Channels components and app consumers
from django.apps import apps  # noqa: E402
from django.conf import settings  # noqa: E402
from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from django.urls import path, re_path  # noqa: E402

from notifier.realtime.consumers import NotificationStreamConsumer  # noqa: E402
from notifier.realtime.middleware import TokenAuthMiddlewareStack  # noqa: E402

# HTTP app (Django)
django_asgi_app = get_asgi_application()

# The app config owns this process's registry
notifier_config = apps.get_app_config("notifier")

stream_app = NotificationStreamConsumer.as_asgi(
    registry=notifier_config.registry,
    heartbeat_seconds=settings.NOTIFIER_HEARTBEAT_SECONDS,
)

http_urlpatterns = [
    path(settings.NOTIFIER_STREAM_PATH, TokenAuthMiddlewareStack(stream_app)),
    re_path(r"", django_asgi_app),
]

# ASGI entrypoint
application = ProtocolTypeRouter({
    "http": URLRouter(http_urlpatterns),
})
