from django.apps import AppConfig


class NotifierConfig(AppConfig):
    """App config for the notification backend.

    ``ready()`` is the composition root of the real-time layer: it builds
    the single connection registry and dispatcher owned by this server
    process. The ASGI entrypoint injects both into the stream consumer and
    services reach the dispatcher through :func:`notifier.realtime.get_dispatcher`.
    """
    name = 'notifier'
    default_auto_field = 'django.db.models.BigAutoField'

    registry = None
    dispatcher = None

    def ready(self) -> None:
        from .realtime.registry import ConnectionRegistry
        from .realtime.dispatcher import NotificationDispatcher

        self.registry = ConnectionRegistry()
        self.dispatcher = NotificationDispatcher(self.registry)
