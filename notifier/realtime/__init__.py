"""Real-time notification delivery over Server-Sent Events.

Each server process owns one :class:`ConnectionRegistry` and one
:class:`NotificationDispatcher`, created by the app config. Nothing here
survives a restart or spans processes.
"""
from django.apps import apps

from .channel import ChannelClosed, StreamChannel, encode_event
from .dispatcher import NotificationDispatcher
from .registry import ConnectionRegistry


def get_registry() -> ConnectionRegistry:
    return apps.get_app_config('notifier').registry


def get_dispatcher() -> NotificationDispatcher:
    return apps.get_app_config('notifier').dispatcher


__all__ = [
    'ChannelClosed',
    'StreamChannel',
    'encode_event',
    'ConnectionRegistry',
    'NotificationDispatcher',
    'get_registry',
    'get_dispatcher',
]
