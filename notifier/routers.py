"""
URL mappings for the notification API.

Paths omit trailing slashes to match the front-end. The event stream
(``api/notifications/stream``) is not routed here: it is an ASGI consumer
wired in ``clinic.asgi``.
"""
from django.urls import path

from .auth_views import login_view
from .views.health import healthz
from .views.notifications import notifications, mark_read, mark_all_read, unread_count
from .views.realtime import realtime_status

urlpatterns = [
    path('healthz', healthz, name='healthz'),
    path('api/login', login_view, name='login_view'),
    path('api/notifications', notifications, name='notifications'),
    path('api/notifications/unread-count', unread_count, name='notifications_unread_count'),
    path('api/notifications/mark-all-as-read', mark_all_read, name='notifications_mark_all_read'),
    path('api/notifications/<int:notification_id>/read', mark_read, name='notifications_mark_read'),
    path('api/realtime/status', realtime_status, name='realtime_status'),
]
