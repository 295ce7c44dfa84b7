"""
Notification persistence and live delivery.

Creating a notification stores one :class:`Notification` plus a
:class:`NotificationRecipient` row per user, then, once the transaction
has committed, pushes the serialised notification to every recipient
with an open stream. Live delivery is best effort and never changes what
was stored.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Tuple

import bleach
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from notifier.models import Notification, NotificationRecipient
from notifier.realtime import NotificationDispatcher, get_dispatcher

User = get_user_model()
logger = logging.getLogger(__name__)

APPOINTMENT_MESSAGES = {
    'appointment_created': (
        'New Appointment Scheduled',
        'A new appointment has been scheduled for {date}',
    ),
    'appointment_cancelled': (
        'Appointment Cancelled',
        'An appointment scheduled for {date} has been cancelled',
    ),
    'appointment_rescheduled': (
        'Appointment Rescheduled',
        'An appointment has been rescheduled to {date}',
    ),
}
APPOINTMENT_FALLBACK = ('Appointment Update', 'An appointment has been updated')


def _clean(text: Optional[str]) -> str:
    return bleach.clean((text or '').strip(), tags=set(), strip=True)


def _coerce_ids(values: Iterable[Any]) -> list[int]:
    ids: list[int] = []
    for v in values:
        v = getattr(v, 'pk', v)
        try:
            ids.append(int(v))
        except (TypeError, ValueError):
            continue
    return ids


def _resolve_user(value) -> Optional[User]:
    if value is None or isinstance(value, User):
        return value
    ids = _coerce_ids([value])
    return User.objects.filter(pk=ids[0]).first() if ids else None


def format_notification(n: Notification, recipient: Optional[NotificationRecipient] = None) -> dict:
    data = {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'priority': n.priority,
        'relatedEntity': (
            {'entityType': n.related_entity_type, 'entityId': n.related_entity_id}
            if n.related_entity_type else None
        ),
        'sender': (
            {'id': n.sender_id, 'name': n.sender.get_full_name() or n.sender.username, 'role': n.sender.role}
            if n.sender_id else None
        ),
        'createdAt': n.created_at.isoformat() if n.created_at else None,
        'updatedAt': n.updated_at.isoformat() if n.updated_at else None,
    }
    if recipient is not None:
        data['isRead'] = recipient.is_read
        data['readAt'] = recipient.read_at.isoformat() if recipient.read_at else None
    return data


def _deliver(dispatcher: NotificationDispatcher, user_ids: list[int], payload: dict) -> int:
    delivered = 0
    for user_id in user_ids:
        try:
            if dispatcher.send_sync(user_id, payload):
                delivered += 1
        except Exception:
            # the record is already committed; live delivery is best effort
            logger.exception("Live delivery of notification %s to user %s failed", payload.get('id'), user_id)
    logger.info("Notification %s delivered live to %d/%d recipients", payload.get('id'), delivered, len(user_ids))
    return delivered


@transaction.atomic
def create_notification(
    *,
    title: str,
    message: str,
    type: str,
    recipient_ids: Iterable[Any],
    sender=None,
    related_entity: Optional[dict] = None,
    priority: str = 'medium',
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Notification:
    title = _clean(title)
    message = _clean(message)
    if not title or not message:
        raise ValueError('title and message are required')
    if type not in Notification.valid_types():
        raise ValueError(f'unknown notification type: {type}')
    if priority not in {p for p, _ in Notification.PRIORITY_CHOICES}:
        raise ValueError(f'unknown priority: {priority}')

    related_entity = related_entity or {}
    n = Notification.objects.create(
        title=title,
        message=message,
        type=type,
        sender=_resolve_user(sender),
        related_entity_type=related_entity.get('entityType') or '',
        related_entity_id=str(related_entity.get('entityId') or ''),
        priority=priority,
    )

    recipients = list(User.objects.filter(pk__in=set(_coerce_ids(recipient_ids))).only('id', 'role'))
    NotificationRecipient.objects.bulk_create([
        NotificationRecipient(notification=n, user=u, role=u.role) for u in recipients
    ])

    payload = {**format_notification(n), 'isRead': False, 'readAt': None}
    user_ids = [u.id for u in recipients]
    dispatcher = dispatcher or get_dispatcher()
    transaction.on_commit(lambda: _deliver(dispatcher, user_ids, payload))
    return n


def create_appointment_notification(
    appointment: dict,
    type: str,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Notification:
    """Notify active admins and the appointment's doctor about a change.

    ``appointment`` is the plain dict the appointment handlers already
    serialise (``id``/``_id``, ``doctor``, ``patient``, ``date``).
    """
    admin_ids = list(User.objects.filter(role=User.ROLE_ADMIN, is_active=True).values_list('id', flat=True))
    recipient_ids = [*admin_ids, appointment.get('doctor')]

    title, message = APPOINTMENT_MESSAGES.get(type, APPOINTMENT_FALLBACK)
    message = message.format(date=appointment.get('date', ''))

    return create_notification(
        title=title,
        message=message,
        type=type if type in Notification.valid_types() else 'system',
        recipient_ids=recipient_ids,
        sender=appointment.get('patient'),
        related_entity={
            'entityType': 'appointment',
            'entityId': appointment.get('_id') or appointment.get('id'),
        },
        priority='medium',
        dispatcher=dispatcher,
    )


def list_for_user(user: User, *, page: int = 1, limit: int = 10, read: Optional[bool] = None) -> Tuple[list[dict], int]:
    qs = NotificationRecipient.objects.filter(user=user)
    if read is not None:
        qs = qs.filter(is_read=read)
    total = qs.count()
    page = max(1, int(page or 1))
    limit = min(100, max(1, int(limit or 10)))
    start = (page - 1) * limit
    rows = qs.select_related('notification', 'notification__sender').order_by('-notification__created_at', '-id')[start:start + limit]
    return [format_notification(r.notification, r) for r in rows], total


def unread_count(user: User) -> int:
    return NotificationRecipient.objects.filter(user=user, is_read=False).count()


def mark_as_read(notification_id, user: User) -> Tuple[Optional[NotificationRecipient], bool]:
    """Mark one notification read for ``user``.

    Returns ``(recipient, changed)``; ``recipient`` is ``None`` when the user
    is not a recipient of that notification.
    """
    recipient = (
        NotificationRecipient.objects.select_related('notification', 'notification__sender')
        .filter(notification_id=notification_id, user=user)
        .first()
    )
    if recipient is None:
        return None, False
    if recipient.is_read:
        return recipient, False
    recipient.is_read = True
    recipient.read_at = timezone.now()
    recipient.save(update_fields=['is_read', 'read_at'])
    return recipient, True


def mark_all_as_read(user: User) -> int:
    return NotificationRecipient.objects.filter(user=user, is_read=False).update(is_read=True, read_at=timezone.now())
